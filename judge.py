# -*- coding: utf-8 -*-
########################
# judge.py
########################
# Purpose:
# - Hit judgement engine for positioned hit circles.
# - Advances every HitCircle through PENDING -> ACTIVE -> RESOLVED on each tick.
# - Generates one HitResult per circle, for hits and for misses.
#
# Design notes:
# - Pure gameplay logic. Strict inputs: playback time in milliseconds and a cursor snapshot.
# - The judge owns the circle list and is the only writer of circle state.
# - The judge never touches score. Combo and points are ScoreEngine's job.
# - Malformed input is clamped, never raised. A tick always returns a list.
#
########################
# Interfaces:
# Public dataclasses:
# - JudgementWindows(perfect_ms: float, good_ms: float, bad_ms: float, late_window_ms: float)
#   - classify_delta(delta_ms: float) -> Optional[HitKind]
#   - from_config(judge_config: JudgeConfig) -> JudgementWindows
#
# Public classes:
# - class TimingJudge
#   - __init__(circles: Sequence[HitCircle], judgement_windows: JudgementWindows, *, field_width, field_height)
#   - judgement_windows() -> JudgementWindows
#   - circle_count() -> int
#   - unresolved_count() -> int
#   - is_complete() -> bool
#   - last_tick_ms() -> float
#   - circle(circle_id: int) -> CircleView
#   - snapshot() -> list[CircleView]
#   - visible_circles() -> list[CircleView]
#   - reset() -> None
#   - tick(now_ms: float, cursors: Iterable[Cursor]) -> list[HitResult]
#   - finish(now_ms: float) -> list[HitResult]
#
# Inputs:
# - now_ms from TimingModel (audio playback position).
# - Cursor snapshot from CursorFeed.
#
# Outputs:
# - HitResult events for ScoreEngine, renderers and stats.
# - Mutates HitCircle state in place.
#
########################

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Iterable, List, Optional, Sequence

from config import JudgeConfig
from gameplay_models import CircleState, CircleView, Cursor, HitCircle, HitKind, HitResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JudgementWindows:
    perfect_ms: float
    good_ms: float
    bad_ms: float
    late_window_ms: float

    @classmethod
    def from_config(cls, judge_config: JudgeConfig) -> "JudgementWindows":
        return cls(
            perfect_ms=float(judge_config.perfect_ms),
            good_ms=float(judge_config.good_ms),
            bad_ms=float(judge_config.bad_ms),
            late_window_ms=float(judge_config.late_window_ms),
        )

    def classify_delta(self, delta_ms: float) -> Optional[HitKind]:
        abs_delta = abs(float(delta_ms))
        if abs_delta <= float(self.perfect_ms):
            return HitKind.PERFECT
        if abs_delta <= float(self.good_ms):
            return HitKind.GOOD
        if abs_delta <= float(self.bad_ms):
            return HitKind.BAD
        return None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class TimingJudge:
    def __init__(
        self,
        circles: Sequence[HitCircle],
        judgement_windows: JudgementWindows,
        *,
        field_width: float,
        field_height: float,
    ) -> None:
        self._circles: List[HitCircle] = sorted(circles, key=lambda item: (float(item.beat_timestamp_ms), int(item.id)))
        self._by_id = {int(circle.id): circle for circle in self._circles}
        if len(self._by_id) != len(self._circles):
            raise ValueError("circle ids must be unique")
        self._spawn_order: List[HitCircle] = sorted(
            self._circles, key=lambda item: (float(item.spawn_time_ms), float(item.beat_timestamp_ms), int(item.id))
        )
        self._judgement_windows = judgement_windows
        self._field_width = max(0.0, float(field_width))
        self._field_height = max(0.0, float(field_height))

        self._activation_index = 0
        self._active: List[HitCircle] = []
        self._unresolved = len(self._circles)
        self._last_tick_ms = 0.0

    def judgement_windows(self) -> JudgementWindows:
        return self._judgement_windows

    def circle_count(self) -> int:
        return len(self._circles)

    def unresolved_count(self) -> int:
        return int(self._unresolved)

    def is_complete(self) -> bool:
        return self._unresolved == 0

    def last_tick_ms(self) -> float:
        return float(self._last_tick_ms)

    def circle(self, circle_id: int) -> CircleView:
        return self._by_id[int(circle_id)].view()

    def snapshot(self) -> List[CircleView]:
        return [circle.view() for circle in self._circles]

    def visible_circles(self) -> List[CircleView]:
        return [circle.view() for circle in self._active]

    def reset(self) -> None:
        for circle in self._circles:
            circle.state = CircleState.PENDING
            circle.result = None
            circle.resolved_at_ms = None
            circle.delta_ms = None
        self._activation_index = 0
        self._active = []
        self._unresolved = len(self._circles)
        self._last_tick_ms = 0.0

    def tick(self, now_ms: float, cursors: Iterable[Cursor] = ()) -> List[HitResult]:
        now = self._sanitize_time(now_ms)
        usable_cursors = self._sanitize_cursors(cursors)

        self._activate_due(now)
        events = self._expire_late(now)

        if usable_cursors and self._active:
            windows = self._judgement_windows
            still_active: List[HitCircle] = []
            for circle in self._active:
                delta = now - float(circle.beat_timestamp_ms)
                kind = windows.classify_delta(delta)
                if kind is not None and self._first_cursor_inside(circle, usable_cursors) is not None:
                    events.append(self._resolve(circle, kind, now))
                else:
                    still_active.append(circle)
            self._active = still_active

        return events

    def finish(self, now_ms: float) -> List[HitResult]:
        """Resolve every remaining circle as a miss. Used when playback ends."""
        now = self._sanitize_time(now_ms)
        events: List[HitResult] = []
        for circle in self._circles:
            if circle.state == CircleState.RESOLVED:
                continue
            circle.state = CircleState.ACTIVE
            events.append(self._resolve(circle, HitKind.MISS, now))
        self._activation_index = len(self._spawn_order)
        self._active = []
        return events

    def _sanitize_time(self, now_ms: float) -> float:
        try:
            value = float(now_ms)
        except (TypeError, ValueError):
            logger.debug("Ignoring non-numeric tick time %r", now_ms)
            return self._last_tick_ms
        if not math.isfinite(value):
            logger.debug("Ignoring non-finite tick time %r", now_ms)
            return self._last_tick_ms
        if value < self._last_tick_ms:
            # Also covers negative times, since _last_tick_ms starts at 0.
            value = self._last_tick_ms
        self._last_tick_ms = value
        return value

    def _sanitize_cursors(self, cursors: Iterable[Cursor]) -> List[Cursor]:
        usable: List[Cursor] = []
        for cursor in cursors or ():
            try:
                x = float(cursor.x)
                y = float(cursor.y)
                tracking_id = int(getattr(cursor, "tracking_id", 0) or 0)
            except (AttributeError, TypeError, ValueError):
                logger.debug("Dropping malformed cursor %r", cursor)
                continue
            if not (math.isfinite(x) and math.isfinite(y)):
                logger.debug("Dropping non-finite cursor %r", cursor)
                continue
            clamped_x = _clamp(x, 0.0, self._field_width)
            clamped_y = _clamp(y, 0.0, self._field_height)
            usable.append(Cursor(x=clamped_x, y=clamped_y, tracking_id=tracking_id))
        return usable

    def _activate_due(self, now: float) -> None:
        newly_active = False
        while self._activation_index < len(self._spawn_order):
            circle = self._spawn_order[self._activation_index]
            if float(circle.spawn_time_ms) > now:
                break
            self._activation_index += 1
            if circle.state == CircleState.PENDING:
                circle.state = CircleState.ACTIVE
                self._active.append(circle)
                newly_active = True
        if newly_active:
            self._active.sort(key=lambda item: (float(item.beat_timestamp_ms), int(item.id)))

    def _expire_late(self, now: float) -> List[HitResult]:
        late_window = float(self._judgement_windows.late_window_ms)
        misses: List[HitResult] = []
        still_active: List[HitCircle] = []
        for circle in self._active:
            if now > float(circle.beat_timestamp_ms) + late_window:
                misses.append(self._resolve(circle, HitKind.MISS, now))
            else:
                still_active.append(circle)
        self._active = still_active
        return misses

    def _first_cursor_inside(self, circle: HitCircle, cursors: Sequence[Cursor]) -> Optional[Cursor]:
        radius = float(circle.radius)
        for cursor in cursors:
            if math.hypot(float(cursor.x) - float(circle.x), float(cursor.y) - float(circle.y)) <= radius:
                return cursor
        return None

    def _resolve(self, circle: HitCircle, kind: HitKind, now: float) -> HitResult:
        delta = now - float(circle.beat_timestamp_ms)
        circle.state = CircleState.RESOLVED
        circle.result = kind
        circle.resolved_at_ms = now
        circle.delta_ms = delta
        self._unresolved -= 1
        return HitResult(circle_id=int(circle.id), kind=kind, at_ms=now, delta_ms=delta)


def _run_unit_tests() -> None:
    windows = JudgementWindows(perfect_ms=50.0, good_ms=100.0, bad_ms=150.0, late_window_ms=150.0)

    circle = HitCircle(id=0, beat_timestamp_ms=5000.0, spawn_time_ms=3800.0, x=100.0, y=100.0, radius=50.0)
    engine = TimingJudge([circle], windows, field_width=640, field_height=480)
    assert engine.tick(3000.0, []) == []
    assert engine.circle(0).state == CircleState.PENDING
    assert engine.tick(3800.0, []) == []
    assert engine.circle(0).state == CircleState.ACTIVE

    hits = engine.tick(5010.0, [Cursor(x=900.0, y=100.0, tracking_id=1), Cursor(x=110.0, y=95.0, tracking_id=0)])
    assert [(hit.circle_id, hit.kind) for hit in hits] == [(0, HitKind.PERFECT)]
    assert engine.tick(5020.0, [Cursor(x=100.0, y=100.0)]) == []

    engine.reset()
    assert engine.tick(5100.0, []) == []
    misses = engine.tick(5151.0, [Cursor(x=100.0, y=100.0)])
    assert [(miss.circle_id, miss.kind) for miss in misses] == [(0, HitKind.MISS)]
    assert engine.is_complete()
    assert engine.tick(5160.0, [Cursor(x=100.0, y=100.0)]) == []


if __name__ == "__main__":
    _run_unit_tests()
    print("judge.py: ok")
