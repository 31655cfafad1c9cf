# -*- coding: utf-8 -*-
########################
# score_engine.py
########################
# Purpose:
# - Score, combo, per-kind counters, accuracy and grade.
# - apply() is a pure reducer over HitResult events in arrival order.
#
# Design notes:
# - Order matters: the combo multiplier uses the combo value just before each hit.
# - Point values, combo policy, accuracy weights and grade thresholds all come from ScoringConfig.
# - ScoreState is frozen. Only ScoreEngine.apply_result replaces the engine's current state.
#
########################
# Interfaces:
# Public dataclasses:
# - ScoreState(score, combo, max_combo, perfects, goods, bads, misses)
#   - judged_count() -> int
#   - count_for(kind: HitKind) -> int
#
# Public functions:
# - combo_multiplier(combo: int, scoring: ScoringConfig) -> float
# - points_for(kind: HitKind, combo: int, scoring: ScoringConfig) -> int
# - apply(result: HitResult, state: ScoreState, scoring: ScoringConfig) -> ScoreState
# - accuracy(state: ScoreState, scoring: ScoringConfig) -> float
# - grade(accuracy_percent: float, scoring: ScoringConfig) -> str
#
# Public classes:
# - class ScoreEngine
#   - __init__(scoring: Optional[ScoringConfig] = None)
#   - state() -> ScoreState
#   - reset() -> None
#   - apply_result(result: HitResult) -> ScoreState
#   - apply_results(results: Iterable[HitResult]) -> ScoreState
#   - accuracy() -> float
#   - grade() -> str
#
########################

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional

from config import ScoringConfig
from gameplay_models import HitKind, HitResult


_COUNTER_FIELDS = {
    HitKind.PERFECT: "perfects",
    HitKind.GOOD: "goods",
    HitKind.BAD: "bads",
    HitKind.MISS: "misses",
}


@dataclass(frozen=True)
class ScoreState:
    score: int = 0
    combo: int = 0
    max_combo: int = 0
    perfects: int = 0
    goods: int = 0
    bads: int = 0
    misses: int = 0

    def judged_count(self) -> int:
        return int(self.perfects + self.goods + self.bads + self.misses)

    def count_for(self, kind: HitKind) -> int:
        return int(getattr(self, _COUNTER_FIELDS[kind]))


def combo_multiplier(combo: int, scoring: ScoringConfig) -> float:
    stairs = max(0, int(combo)) // int(scoring.multiplier_step)
    growth = float(scoring.multiplier_base)
    if growth <= 1.0:
        return 1.0
    cap = float(scoring.max_multiplier)
    multiplier = 1.0
    for _stair in range(stairs):
        multiplier *= growth
        if multiplier >= cap:
            return cap
    return multiplier


def points_for(kind: HitKind, combo: int, scoring: ScoringConfig) -> int:
    base_points = int(scoring.rule_for(kind).points)
    return int(round(base_points * combo_multiplier(combo, scoring)))


def apply(result: HitResult, state: ScoreState, scoring: ScoringConfig) -> ScoreState:
    kind = result.kind
    rule = scoring.rule_for(kind)
    gained = points_for(kind, state.combo, scoring)

    if rule.maintains_combo:
        combo = state.combo + 1
    else:
        combo = 0

    counter_name = _COUNTER_FIELDS[kind]
    return replace(
        state,
        score=int(state.score + gained),
        combo=int(combo),
        max_combo=int(max(state.max_combo, combo)),
        **{counter_name: int(getattr(state, counter_name)) + 1},
    )


def accuracy(state: ScoreState, scoring: ScoringConfig) -> float:
    """Weighted percentage of judged circles, always within [0, 100]. Zero when nothing is judged."""
    total = state.judged_count()
    if total <= 0:
        return 0.0
    weighted = 0.0
    for kind in HitKind:
        weighted += float(scoring.rule_for(kind).accuracy_weight) * state.count_for(kind)
    return max(0.0, min(100.0, weighted / float(total)))


def grade(accuracy_percent: float, scoring: ScoringConfig) -> str:
    value = float(accuracy_percent)
    for threshold in scoring.grade_thresholds:
        if value >= float(threshold.min_accuracy):
            return str(threshold.grade)
    return str(scoring.fallback_grade)


class ScoreEngine:
    def __init__(self, scoring: Optional[ScoringConfig] = None) -> None:
        self._scoring = scoring if scoring is not None else ScoringConfig()
        self._state = ScoreState()

    @property
    def scoring(self) -> ScoringConfig:
        return self._scoring

    def state(self) -> ScoreState:
        return self._state

    def reset(self) -> None:
        self._state = ScoreState()

    def apply_result(self, result: HitResult) -> ScoreState:
        self._state = apply(result, self._state, self._scoring)
        return self._state

    def apply_results(self, results: Iterable[HitResult]) -> ScoreState:
        for result in results:
            self.apply_result(result)
        return self._state

    def accuracy(self) -> float:
        return accuracy(self._state, self._scoring)

    def grade(self) -> str:
        return grade(self.accuracy(), self._scoring)


def _run_unit_tests() -> None:
    scoring = ScoringConfig()
    engine = ScoreEngine(scoring)

    goods = [HitResult(circle_id=index, kind=HitKind.GOOD, at_ms=1000.0 * index) for index in range(20)]
    engine.apply_results(goods[:10])
    assert engine.state().score == 500
    assert engine.state().combo == 10
    engine.apply_results(goods[10:])
    assert engine.state().score == 1500

    engine.apply_result(HitResult(circle_id=20, kind=HitKind.MISS, at_ms=21000.0))
    assert engine.state().combo == 0
    assert engine.state().max_combo == 20
    assert 0.0 <= engine.accuracy() <= 100.0

    assert grade(96.0, scoring) == "S"
    assert grade(69.9, scoring) == "D"
    assert accuracy(ScoreState(), scoring) == 0.0


if __name__ == "__main__":
    _run_unit_tests()
    print("score_engine.py: ok")
