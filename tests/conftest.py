"""Shared fixtures for the timing engine tests."""

import pytest

import demo_track
from beat_detector import BeatDetector
from config import EngineConfig
from gameplay_models import HitCircle
from judge import JudgementWindows


@pytest.fixture(scope="session")
def click_track_120():
    return demo_track.build_click_track(bpm=120.0, duration_seconds=8.0)


@pytest.fixture(scope="session")
def analysis_120(click_track_120):
    return BeatDetector().analyze(click_track_120.samples, click_track_120.sample_rate)


@pytest.fixture
def engine_config():
    return EngineConfig()


@pytest.fixture
def windows():
    return JudgementWindows(perfect_ms=50.0, good_ms=100.0, bad_ms=150.0, late_window_ms=150.0)


@pytest.fixture
def make_circle():
    def _make(circle_id=0, beat_ms=5000.0, lead_ms=1200.0, x=200.0, y=200.0, radius=50.0):
        return HitCircle(
            id=circle_id,
            beat_timestamp_ms=beat_ms,
            spawn_time_ms=max(0.0, beat_ms - lead_ms),
            x=x,
            y=y,
            radius=radius,
        )

    return _make
