# -*- coding: utf-8 -*-
########################
# target_scheduler.py
########################
# Purpose:
# - Turns detected beats into positioned hit circles, one circle per beat.
# - Each circle spawns a fixed lead time before its beat, never before song time 0.
#
# Design notes:
# - Placement is deterministic: a sha256 seed over the beat timestamps, the layout seed and
#   SCHEDULER_VERSION drives a private random.Random.
# - Centres stay inside the field margins and keep a minimum spacing from the previous circle
#   when the field allows it.
# - Bump SCHEDULER_VERSION whenever the placement rules change.
#
########################
# Interfaces:
# Public constants:
# - SCHEDULER_VERSION: str
#
# Public classes:
# - class TargetScheduler
#   - __init__(scheduler_config: Optional[SchedulerConfig] = None)
#   - config -> SchedulerConfig
#   - spawn_time_for(beat_timestamp_ms: float) -> float
#   - generate(beats: Sequence[Beat], field_width: float, field_height: float) -> List[HitCircle]
#
# Inputs:
# - Beats in ascending timestamp order, field size in the cursor coordinate space.
#
# Outputs:
# - PENDING HitCircles in beat order, with ids 0..n-1.
########################

from __future__ import annotations

import hashlib
import math
import random
import struct
from typing import List, Optional, Sequence, Tuple

from config import SchedulerConfig
from gameplay_models import Beat, HitCircle


SCHEDULER_VERSION = "layout_v1"


def _seed_for(beats: Sequence[Beat], layout_seed: int, scheduler_version: str) -> int:
    digest_builder = hashlib.sha256()
    digest_builder.update(f"{scheduler_version}|{int(layout_seed)}|{len(beats)}".encode("utf-8"))
    for beat in beats:
        digest_builder.update(struct.pack(">d", float(beat.timestamp_ms)))
    return int.from_bytes(digest_builder.digest()[:8], byteorder="big", signed=False)


def _axis_bounds(extent: float, margin: float) -> Tuple[float, float]:
    low = float(margin)
    high = float(extent) - float(margin)
    if high < low:
        middle = max(0.0, float(extent)) / 2.0
        return middle, middle
    return low, high


class TargetScheduler:
    """Turns detected beats into positioned, time-windowed hit circles.

    One circle per beat, in beat order. spawn_time_ms is floored at 0, so beats earlier than
    the lead time appear at the start of the track with a shorter warning.
    Layout is a seeded random walk: the seed comes from the beat timestamps, so the same track
    always reproduces the same layout.
    """

    def __init__(self, scheduler_config: Optional[SchedulerConfig] = None) -> None:
        self._config = scheduler_config if scheduler_config is not None else SchedulerConfig()

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    def spawn_time_for(self, beat_timestamp_ms: float) -> float:
        return max(0.0, float(beat_timestamp_ms) - float(self._config.lead_time_ms))

    def generate(self, beats: Sequence[Beat], field_width: float, field_height: float) -> List[HitCircle]:
        if not beats:
            return []

        radius = float(self._config.circle_radius)
        margin = radius + float(self._config.edge_padding)
        x_low, x_high = _axis_bounds(field_width, margin)
        y_low, y_high = _axis_bounds(field_height, margin)

        random_generator = random.Random(_seed_for(beats, self._config.layout_seed, SCHEDULER_VERSION))
        min_spacing = float(self._config.min_spacing)
        attempts = int(self._config.placement_attempts)

        circles: List[HitCircle] = []
        previous_position: Optional[Tuple[float, float]] = None

        for index, beat in enumerate(beats):
            best_position = (x_low, y_low)
            best_distance = -1.0
            for _attempt in range(attempts):
                candidate = (random_generator.uniform(x_low, x_high), random_generator.uniform(y_low, y_high))
                if previous_position is None:
                    best_position = candidate
                    break
                distance = math.hypot(candidate[0] - previous_position[0], candidate[1] - previous_position[1])
                if distance >= min_spacing:
                    best_position = candidate
                    break
                if distance > best_distance:
                    best_position = candidate
                    best_distance = distance

            beat_time = float(beat.timestamp_ms)
            circles.append(
                HitCircle(
                    id=index,
                    beat_timestamp_ms=beat_time,
                    spawn_time_ms=self.spawn_time_for(beat_time),
                    x=float(best_position[0]),
                    y=float(best_position[1]),
                    radius=radius,
                    strength=float(beat.strength),
                )
            )
            previous_position = best_position

        return circles


def _run_unit_tests() -> None:
    scheduler = TargetScheduler(SchedulerConfig(lead_time_ms=1200.0))
    assert scheduler.generate([], 1280, 720) == []

    beats = [Beat(timestamp_ms=300.0, strength=0.5), Beat(timestamp_ms=900.0, strength=1.0), Beat(timestamp_ms=2500.0, strength=0.8)]
    circles = scheduler.generate(beats, 1280, 720)
    assert [circle.id for circle in circles] == [0, 1, 2]
    assert [circle.spawn_time_ms for circle in circles] == [0.0, 0.0, 1300.0]
    assert all(circle.spawn_time_ms <= circle.beat_timestamp_ms for circle in circles)

    again = scheduler.generate(beats, 1280, 720)
    assert [(c.x, c.y) for c in again] == [(c.x, c.y) for c in circles]


if __name__ == "__main__":
    _run_unit_tests()
    print("target_scheduler.py: ok")
