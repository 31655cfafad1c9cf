# -*- coding: utf-8 -*-
########################
# play_session.py
########################
# Purpose:
# - Explicit session context for one play-through of one analyzed track.
# - Integrates TimingModel + CursorFeed + TimingJudge + ScoreEngine behind start/pause/resume/
#   restart/stop/tick, and builds the end-of-session report.
#
# Design notes:
# - Uses TimingModel as the single source of truth for song time. tick() without an explicit
#   time reads the clock. The embedding app owns the frame loop and calls tick() once per frame.
# - The judge is the only writer of circle state and the score engine the only writer of score.
#   This module just routes HitResult events from one to the other, in order.
# - An empty target set is valid: start() refuses it and returns False.
# - Stopping never resolves anything. State at the stop is kept and readable.
#
########################
# Interfaces:
# Public enums:
# - class SessionPhase(enum.Enum): READY | PLAYING | PAUSED | ENDED | STOPPED
#
# Public dataclasses:
# - TickOutcome(now_ms: float, events: tuple[HitResult, ...], score: ScoreState, phase: SessionPhase)
# - SessionReport(score, accuracy, grade, max_combo, perfects, goods, bads, misses,
#                 total_circles, resolved_circles, bpm)
#
# Public classes:
# - class PlaySession
#   - __init__(circles, *, field_width, field_height, config=None, timing=None, cursor_feed=None, bpm=None)
#   - from_analysis(analysis, *, field_width, field_height, config=None, ...) -> PlaySession
#   - phase() -> SessionPhase
#   - has_targets() -> bool
#   - start() -> bool / restart() -> bool
#   - pause() -> None / resume() -> None / stop() -> None
#   - tick(now_ms=None, cursors=None, *, ended=None) -> TickOutcome
#   - end(now_ms=None) -> list[HitResult]
#   - circles() -> list[CircleView] / visible_circles() -> list[CircleView]
#   - score_state() -> ScoreState
#   - report() -> SessionReport
#
########################

from __future__ import annotations

from dataclasses import asdict, dataclass
import enum
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from config import EngineConfig
from cursor_feed import CursorFeed
from gameplay_models import AnalysisResult, CircleView, Cursor, HitCircle, HitResult
from judge import JudgementWindows, TimingJudge
from score_engine import ScoreEngine, ScoreState
from target_scheduler import TargetScheduler
from timing_model import TimingModel


logger = logging.getLogger(__name__)


class SessionPhase(enum.Enum):
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    STOPPED = "stopped"


@dataclass(frozen=True)
class TickOutcome:
    now_ms: float
    events: Tuple[HitResult, ...]
    score: ScoreState
    phase: SessionPhase


@dataclass(frozen=True)
class SessionReport:
    score: int
    accuracy: float
    grade: str
    max_combo: int
    perfects: int
    goods: int
    bads: int
    misses: int
    total_circles: int
    resolved_circles: int
    bpm: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["accuracy"] = round(float(self.accuracy), 2)
        return payload


class PlaySession:
    def __init__(
        self,
        circles: Sequence[HitCircle],
        *,
        field_width: float,
        field_height: float,
        config: Optional[EngineConfig] = None,
        timing: Optional[TimingModel] = None,
        cursor_feed: Optional[CursorFeed] = None,
        bpm: Optional[float] = None,
    ) -> None:
        self._config = config if config is not None else EngineConfig()
        self._timing = timing if timing is not None else TimingModel()
        self._cursor_feed = (
            cursor_feed if cursor_feed is not None else CursorFeed(field_width=field_width, field_height=field_height)
        )
        self._judge = TimingJudge(
            circles,
            JudgementWindows.from_config(self._config.judge),
            field_width=field_width,
            field_height=field_height,
        )
        self._score_engine = ScoreEngine(self._config.scoring)
        self._bpm = float(bpm) if bpm is not None else None
        self._phase = SessionPhase.READY

    @classmethod
    def from_analysis(
        cls,
        analysis: AnalysisResult,
        *,
        field_width: float,
        field_height: float,
        config: Optional[EngineConfig] = None,
        timing: Optional[TimingModel] = None,
        cursor_feed: Optional[CursorFeed] = None,
    ) -> "PlaySession":
        engine_config = config if config is not None else EngineConfig()
        circles = TargetScheduler(engine_config.scheduler).generate(analysis.beats, field_width, field_height)
        if not circles:
            logger.warning("Analysis produced no playable targets")
        return cls(
            circles,
            field_width=field_width,
            field_height=field_height,
            config=engine_config,
            timing=timing,
            cursor_feed=cursor_feed,
            bpm=analysis.bpm,
        )

    @property
    def timing_model(self) -> TimingModel:
        return self._timing

    @property
    def cursor_feed(self) -> CursorFeed:
        return self._cursor_feed

    def phase(self) -> SessionPhase:
        return self._phase

    def has_targets(self) -> bool:
        return self._judge.circle_count() > 0

    def circles(self) -> List[CircleView]:
        return self._judge.snapshot()

    def visible_circles(self) -> List[CircleView]:
        return self._judge.visible_circles()

    def score_state(self) -> ScoreState:
        return self._score_engine.state()

    # -----------------
    # Lifecycle
    # -----------------

    def start(self) -> bool:
        if not self.has_targets():
            logger.warning("Refusing to start a session with no targets")
            return False
        self._judge.reset()
        self._score_engine.reset()
        self._timing.rewind()
        self._cursor_feed.clear()
        self._phase = SessionPhase.PLAYING
        logger.info("Session started with %d circles", self._judge.circle_count())
        return True

    def restart(self) -> bool:
        return self.start()

    def pause(self) -> None:
        if self._phase == SessionPhase.PLAYING:
            self._phase = SessionPhase.PAUSED

    def resume(self) -> None:
        if self._phase == SessionPhase.PAUSED:
            self._phase = SessionPhase.PLAYING

    def stop(self) -> None:
        if self._phase in (SessionPhase.PLAYING, SessionPhase.PAUSED):
            self._phase = SessionPhase.STOPPED
            logger.info(
                "Session stopped with %d of %d circles unresolved",
                self._judge.unresolved_count(),
                self._judge.circle_count(),
            )

    # -----------------
    # Per-frame
    # -----------------

    def tick(
        self,
        now_ms: Optional[float] = None,
        cursors: Optional[Iterable[Cursor]] = None,
        *,
        ended: Optional[bool] = None,
    ) -> TickOutcome:
        if self._phase != SessionPhase.PLAYING:
            return TickOutcome(
                now_ms=self._judge.last_tick_ms(),
                events=(),
                score=self._score_engine.state(),
                phase=self._phase,
            )

        now = self._timing.song_time_ms() if now_ms is None else now_ms
        cursor_snapshot = self._cursor_feed.snapshot() if cursors is None else tuple(cursors)
        playback_ended = self._timing.is_ended() if ended is None else bool(ended)

        events = self._judge.tick(now, cursor_snapshot)
        if playback_ended:
            events.extend(self._judge.finish(now))
            self._phase = SessionPhase.ENDED

        for event in events:
            self._score_engine.apply_result(event)

        if self._phase == SessionPhase.ENDED:
            logger.info("Session ended: %s", self.report().to_dict())

        return TickOutcome(
            now_ms=self._judge.last_tick_ms(),
            events=tuple(events),
            score=self._score_engine.state(),
            phase=self._phase,
        )

    def end(self, now_ms: Optional[float] = None) -> List[HitResult]:
        """Close out playback: one final tick that resolves every remaining circle."""
        if self._phase == SessionPhase.PAUSED:
            self._phase = SessionPhase.PLAYING
        return list(self.tick(now_ms, (), ended=True).events)

    def report(self) -> SessionReport:
        state = self._score_engine.state()
        return SessionReport(
            score=int(state.score),
            accuracy=float(self._score_engine.accuracy()),
            grade=self._score_engine.grade(),
            max_combo=int(state.max_combo),
            perfects=int(state.perfects),
            goods=int(state.goods),
            bads=int(state.bads),
            misses=int(state.misses),
            total_circles=int(self._judge.circle_count()),
            resolved_circles=int(self._judge.circle_count() - self._judge.unresolved_count()),
            bpm=self._bpm,
        )


def _run_unit_tests() -> None:
    from gameplay_models import Beat

    analysis = AnalysisResult(bpm=120.0, beats=(Beat(1000.0, 1.0), Beat(1500.0, 1.0), Beat(2000.0, 1.0)))
    session = PlaySession.from_analysis(analysis, field_width=1280, field_height=720)
    assert session.start()

    first = session.circles()[0]
    outcome = session.tick(1000.0, [Cursor(x=first.x, y=first.y)])
    assert [event.circle_id for event in outcome.events] == [0]
    assert outcome.score.combo == 1

    session.timing_model.update_playback_ms(2500.0)
    session.timing_model.mark_ended()
    outcome = session.tick()
    assert outcome.phase == SessionPhase.ENDED
    assert all(circle.result is not None for circle in session.circles())
    assert session.report().misses == 2

    empty = PlaySession.from_analysis(AnalysisResult(bpm=120.0, beats=()), field_width=1280, field_height=720)
    assert not empty.start()
    assert empty.phase() == SessionPhase.READY


if __name__ == "__main__":
    _run_unit_tests()
    print("play_session.py: ok")
