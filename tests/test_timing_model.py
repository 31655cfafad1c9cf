"""Tests for the song time source."""

import pytest

from timing_model import TimingModel, TimingSnapshot


def test_starts_at_zero():
    model = TimingModel()
    assert model.snapshot() == TimingSnapshot(playback_ms=0.0, av_offset_ms=0.0, song_time_ms=0.0, is_ended=False)


def test_av_offset_shifts_song_time():
    model = TimingModel()
    model.set_av_offset_ms(40.0)
    model.update_playback_ms(1000.0)
    assert model.song_time_ms() == 960.0
    model.set_av_offset_ms(-25.0)
    assert model.song_time_ms() == 1025.0


def test_song_time_never_negative():
    model = TimingModel()
    model.set_av_offset_ms(200.0)
    model.update_playback_ms(50.0)
    assert model.song_time_ms() == 0.0


@pytest.mark.parametrize("value", [float("nan"), float("inf")])
def test_non_finite_positions_are_ignored(value):
    model = TimingModel()
    model.update_playback_ms(700.0)
    model.update_playback_ms(value)
    model.set_av_offset_ms(value)
    assert model.playback_ms() == 700.0
    assert model.av_offset_ms() == 0.0


def test_negative_position_clamps():
    model = TimingModel()
    model.update_playback_ms(-10.0)
    assert model.playback_ms() == 0.0


def test_seconds_input():
    model = TimingModel()
    model.update_playback_seconds(2.25)
    assert model.playback_ms() == pytest.approx(2250.0)


def test_ended_and_rewind_keep_offset():
    model = TimingModel()
    model.set_av_offset_ms(15.0)
    model.update_playback_ms(9000.0)
    model.mark_ended()
    assert model.is_ended()
    model.rewind()
    assert not model.is_ended()
    assert model.playback_ms() == 0.0
    assert model.av_offset_ms() == 15.0
