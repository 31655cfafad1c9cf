# -*- coding: utf-8 -*-
########################
# gameplay_models.py
########################
# Purpose:
# - Core gameplay data models shared by the analysis, scheduling, judging and scoring pipeline.
# - Defines beats, hit circles, cursors and judgement events.
#
# Design notes:
# - Keep these models stable. Prefer extending with new optional fields rather than breaking changes.
# - Plain dataclasses and enums only. HitCircle is the one mutable record; only TimingJudge mutates it.
# - Time values are milliseconds on the playback clock.
#
########################
# Interfaces:
# Public enums:
# - class CircleState(enum.Enum): PENDING | ACTIVE | RESOLVED
# - class HitKind(enum.Enum): PERFECT | GOOD | BAD | MISS
#
# Public dataclasses:
# - Beat(timestamp_ms: float, strength: float)
# - AnalysisResult(bpm: float, beats: tuple[Beat, ...], duration_ms: float)
# - HitCircle(id, beat_timestamp_ms, spawn_time_ms, x, y, radius, strength, state, result, resolved_at_ms, delta_ms)
# - CircleView (frozen copy of HitCircle for renderers)
# - Cursor(x: float, y: float, tracking_id: int)
# - HitResult(circle_id: int, kind: HitKind, at_ms: float, delta_ms: float)
#
# Inputs/Outputs:
# - These types are exchanged between BeatDetector, TargetScheduler, TimingJudge, ScoreEngine,
#   PlaySession and external renderers and trackers.
#
########################

from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import Optional, Tuple


class CircleState(enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    RESOLVED = "resolved"


class HitKind(enum.Enum):
    PERFECT = "perfect"
    GOOD = "good"
    BAD = "bad"
    MISS = "miss"


@dataclass(frozen=True)
class Beat:
    timestamp_ms: float
    strength: float


@dataclass(frozen=True)
class AnalysisResult:
    bpm: float
    beats: Tuple[Beat, ...]
    duration_ms: float = 0.0


@dataclass
class HitCircle:
    id: int
    beat_timestamp_ms: float
    spawn_time_ms: float
    x: float
    y: float
    radius: float
    strength: float = 1.0
    state: CircleState = CircleState.PENDING
    result: Optional[HitKind] = None
    resolved_at_ms: Optional[float] = None
    delta_ms: Optional[float] = None

    def view(self) -> "CircleView":
        return CircleView(
            id=int(self.id),
            beat_timestamp_ms=float(self.beat_timestamp_ms),
            spawn_time_ms=float(self.spawn_time_ms),
            x=float(self.x),
            y=float(self.y),
            radius=float(self.radius),
            strength=float(self.strength),
            state=self.state,
            result=self.result,
            resolved_at_ms=self.resolved_at_ms,
            delta_ms=self.delta_ms,
        )


@dataclass(frozen=True)
class CircleView:
    id: int
    beat_timestamp_ms: float
    spawn_time_ms: float
    x: float
    y: float
    radius: float
    strength: float
    state: CircleState
    result: Optional[HitKind]
    resolved_at_ms: Optional[float]
    delta_ms: Optional[float]

    @property
    def is_visible(self) -> bool:
        return self.state == CircleState.ACTIVE

    @property
    def is_hit(self) -> bool:
        return self.result is not None and self.result != HitKind.MISS


@dataclass(frozen=True)
class Cursor:
    x: float
    y: float
    tracking_id: int = 0


@dataclass(frozen=True)
class HitResult:
    circle_id: int
    kind: HitKind
    at_ms: float
    delta_ms: float = 0.0
