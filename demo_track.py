# demo_track.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from gameplay_models import CircleView, Cursor


@dataclass(frozen=True)
class DemoTrack:
    samples: np.ndarray
    sample_rate: int
    bpm: float
    click_times_ms: Tuple[float, ...]

    @property
    def duration_ms(self) -> float:
        return 1000.0 * float(self.samples.shape[0]) / float(self.sample_rate)


def build_click_track(
    *,
    bpm: float = 120.0,
    duration_seconds: float = 10.0,
    sample_rate: int = 22050,
    offset_seconds: float = 0.5,
    click_seconds: float = 0.02,
    accent_every: int = 4,
    noise_level: float = 0.0,
    seed: int = 0,
) -> DemoTrack:
    """Deterministic metronome track: decaying noise bursts on every beat, accented on each bar."""
    random_generator = np.random.default_rng(int(seed))
    total_samples = int(round(float(duration_seconds) * sample_rate))
    samples = np.zeros(total_samples, dtype=np.float32)
    if noise_level > 0.0:
        samples += (random_generator.standard_normal(total_samples) * float(noise_level)).astype(np.float32)

    click_length = max(1, int(round(float(click_seconds) * sample_rate)))
    decay = np.exp(-np.linspace(0.0, 6.0, click_length)).astype(np.float32)
    burst = (random_generator.uniform(-1.0, 1.0, click_length).astype(np.float32)) * decay

    seconds_per_beat = 60.0 / float(bpm)
    click_times_ms: List[float] = []
    beat_index = 0
    while True:
        click_time_seconds = float(offset_seconds) + beat_index * seconds_per_beat
        start = int(round(click_time_seconds * sample_rate))
        if start + click_length > total_samples:
            break
        gain = 0.9 if accent_every > 0 and beat_index % accent_every == 0 else 0.6
        samples[start:start + click_length] += burst * gain
        click_times_ms.append(1000.0 * start / sample_rate)
        beat_index += 1

    np.clip(samples, -1.0, 1.0, out=samples)
    return DemoTrack(samples=samples, sample_rate=int(sample_rate), bpm=float(bpm), click_times_ms=tuple(click_times_ms))


class ScriptedPlayer:
    """Plays a hit circle session with a fixed, repeatable timing pattern.

    timing_offsets_ms cycles per circle id: the cursor lands on a circle at beat + offset.
    Every miss_every-th circle is ignored so sessions can include misses.
    """

    def __init__(self, *, timing_offsets_ms: Sequence[float] = (0.0,), miss_every: int = 0) -> None:
        self._timing_offsets_ms = [float(value) for value in timing_offsets_ms] or [0.0]
        self._miss_every = int(miss_every)

    def planned_hit_ms(self, circle: CircleView) -> float:
        offset = self._timing_offsets_ms[int(circle.id) % len(self._timing_offsets_ms)]
        return float(circle.beat_timestamp_ms) + offset

    def skips(self, circle: CircleView) -> bool:
        return self._miss_every > 0 and (int(circle.id) + 1) % self._miss_every == 0

    def cursors_at(self, now_ms: float, circles: Sequence[CircleView]) -> List[Cursor]:
        cursors: List[Cursor] = []
        for circle in circles:
            if not circle.is_visible or self.skips(circle):
                continue
            if float(now_ms) >= self.planned_hit_ms(circle):
                cursors.append(Cursor(x=float(circle.x), y=float(circle.y), tracking_id=int(circle.id) % 2))
        return cursors


PLAYER_PROFILES = {
    "perfect": dict(timing_offsets_ms=(0.0,), miss_every=0),
    "steady": dict(timing_offsets_ms=(0.0, 30.0, -20.0, 70.0, 10.0), miss_every=0),
    "sloppy": dict(timing_offsets_ms=(-120.0, 80.0, 20.0, 130.0, -60.0), miss_every=7),
    "idle": dict(timing_offsets_ms=(0.0,), miss_every=1),
}


def build_player(profile: str) -> ScriptedPlayer:
    normalized_profile = (profile or "perfect").strip().lower()
    if normalized_profile not in PLAYER_PROFILES:
        raise ValueError(f"Unknown player profile {profile!r}, expected one of: {', '.join(sorted(PLAYER_PROFILES))}")
    return ScriptedPlayer(**PLAYER_PROFILES[normalized_profile])
