"""Tests for the hit judgement engine."""

import math

import pytest

from gameplay_models import CircleState, Cursor, HitKind
from judge import JudgementWindows, TimingJudge


def _judge(circles, windows, width=1280.0, height=720.0):
    return TimingJudge(circles, windows, field_width=width, field_height=height)


class TestWindows:
    @pytest.mark.parametrize(
        "delta,expected",
        [
            (0.0, HitKind.PERFECT),
            (-50.0, HitKind.PERFECT),
            (50.0, HitKind.PERFECT),
            (60.0, HitKind.GOOD),
            (-100.0, HitKind.GOOD),
            (120.0, HitKind.BAD),
            (-150.0, HitKind.BAD),
            (151.0, None),
            (-400.0, None),
        ],
    )
    def test_classify_delta(self, windows, delta, expected):
        assert windows.classify_delta(delta) == expected

    def test_from_config(self, engine_config):
        windows = JudgementWindows.from_config(engine_config.judge)
        assert windows.perfect_ms <= windows.good_ms <= windows.bad_ms


class TestLifecycle:
    def test_pending_until_spawn(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=5000.0, lead_ms=1200.0)], windows)
        assert judge.tick(3000.0, []) == []
        assert judge.circle(0).state == CircleState.PENDING
        assert judge.visible_circles() == []

    def test_active_from_spawn(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=5000.0, lead_ms=1200.0)], windows)
        judge.tick(3800.0, [])
        assert judge.circle(0).state == CircleState.ACTIVE
        assert [view.id for view in judge.visible_circles()] == [0]
        assert judge.visible_circles()[0].is_visible

    def test_hit_perfect_near_beat(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=5000.0)], windows)
        judge.tick(4000.0, [])
        events = judge.tick(5010.0, [Cursor(x=210.0, y=195.0)])
        assert [(event.circle_id, event.kind) for event in events] == [(0, HitKind.PERFECT)]
        assert events[0].delta_ms == pytest.approx(10.0)
        view = judge.circle(0)
        assert view.state == CircleState.RESOLVED
        assert view.is_hit
        assert not view.is_visible

    def test_late_circle_is_missed_and_stays_missed(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=5000.0)], windows)
        assert judge.tick(5100.0, []) == []
        events = judge.tick(5151.0, [])
        assert [(event.circle_id, event.kind) for event in events] == [(0, HitKind.MISS)]
        assert judge.tick(5160.0, [Cursor(x=200.0, y=200.0)]) == []
        assert judge.circle(0).result == HitKind.MISS

    def test_expiry_boundary_is_still_hittable(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=5000.0)], windows)
        judge.tick(4000.0, [])
        events = judge.tick(5150.0, [Cursor(x=200.0, y=200.0)])
        assert [event.kind for event in events] == [HitKind.BAD]

    @pytest.mark.parametrize("offset,expected", [(60.0, HitKind.GOOD), (120.0, HitKind.BAD), (-60.0, HitKind.GOOD)])
    def test_tiers(self, windows, make_circle, offset, expected):
        judge = _judge([make_circle(beat_ms=5000.0)], windows)
        judge.tick(4000.0, [])
        events = judge.tick(5000.0 + offset, [Cursor(x=200.0, y=200.0)])
        assert [event.kind for event in events] == [expected]

    def test_too_early_touch_does_nothing(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=5000.0)], windows)
        assert judge.tick(4500.0, [Cursor(x=200.0, y=200.0)]) == []
        assert judge.circle(0).state == CircleState.ACTIVE
        events = judge.tick(4990.0, [Cursor(x=200.0, y=200.0)])
        assert [event.kind for event in events] == [HitKind.PERFECT]

    def test_cursor_outside_radius_does_not_hit(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=5000.0, radius=50.0)], windows)
        judge.tick(4000.0, [])
        assert judge.tick(5000.0, [Cursor(x=251.0, y=200.0)]) == []
        events = judge.tick(5005.0, [Cursor(x=250.0, y=200.0)])
        assert [event.kind for event in events] == [HitKind.PERFECT]

    def test_any_cursor_can_hit(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=5000.0)], windows)
        judge.tick(4000.0, [])
        events = judge.tick(5000.0, [Cursor(x=900.0, y=600.0, tracking_id=1), Cursor(x=200.0, y=200.0, tracking_id=2)])
        assert [event.kind for event in events] == [HitKind.PERFECT]

    def test_zero_lead_time_circle_appears_on_beat(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=5000.0, lead_ms=0.0)], windows)
        assert judge.tick(4990.0, [Cursor(x=200.0, y=200.0)]) == []
        assert judge.circle(0).state == CircleState.PENDING
        events = judge.tick(5000.0, [Cursor(x=200.0, y=200.0)])
        assert [event.kind for event in events] == [HitKind.PERFECT]

    def test_large_jump_activates_and_expires_in_one_tick(self, windows, make_circle):
        circles = [make_circle(circle_id=index, beat_ms=1000.0 * (index + 1)) for index in range(5)]
        judge = _judge(circles, windows)
        events = judge.tick(10000.0, [])
        assert [event.circle_id for event in events] == [0, 1, 2, 3, 4]
        assert all(event.kind == HitKind.MISS for event in events)
        assert judge.is_complete()


class TestOrdering:
    def test_misses_come_before_hits(self, windows, make_circle):
        early = make_circle(circle_id=0, beat_ms=5000.0, x=100.0, y=100.0)
        later = make_circle(circle_id=1, beat_ms=5200.0, x=600.0, y=400.0)
        judge = _judge([later, early], windows)
        judge.tick(4500.0, [])
        events = judge.tick(5200.0, [Cursor(x=600.0, y=400.0)])
        assert [(event.circle_id, event.kind) for event in events] == [(0, HitKind.MISS), (1, HitKind.PERFECT)]

    def test_one_cursor_hits_overlapping_circles(self, windows, make_circle):
        first = make_circle(circle_id=0, beat_ms=5000.0)
        second = make_circle(circle_id=1, beat_ms=5040.0)
        judge = _judge([second, first], windows)
        judge.tick(4500.0, [])
        events = judge.tick(5020.0, [Cursor(x=200.0, y=200.0)])
        assert [event.circle_id for event in events] == [0, 1]

    def test_each_circle_resolves_once(self, windows, make_circle):
        circles = [make_circle(circle_id=index, beat_ms=600.0 * (index + 2)) for index in range(10)]
        judge = _judge(circles, windows)
        seen = []
        for now in range(0, 9000, 17):
            seen.extend(event.circle_id for event in judge.tick(float(now), [Cursor(x=200.0, y=200.0)]))
        seen.extend(event.circle_id for event in judge.finish(9000.0))
        assert sorted(seen) == list(range(10))
        assert len(seen) == len(set(seen))

    def test_duplicate_ids_are_rejected(self, windows, make_circle):
        with pytest.raises(ValueError):
            _judge([make_circle(circle_id=3), make_circle(circle_id=3, beat_ms=6000.0)], windows)


class TestMalformedInput:
    @pytest.mark.parametrize("bad_time", [-500.0, float("nan"), float("inf"), None, "soon"])
    def test_bad_time_is_clamped(self, windows, make_circle, bad_time):
        judge = _judge([make_circle(beat_ms=5000.0)], windows)
        judge.tick(4000.0, [])
        assert judge.tick(bad_time, [Cursor(x=200.0, y=200.0)]) == []
        assert judge.last_tick_ms() == 4000.0
        assert judge.circle(0).state == CircleState.ACTIVE

    def test_time_never_runs_backwards(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=5000.0)], windows)
        judge.tick(5151.0, [])
        assert judge.circle(0).result == HitKind.MISS
        assert judge.tick(5000.0, [Cursor(x=200.0, y=200.0)]) == []
        assert judge.last_tick_ms() == 5151.0

    def test_out_of_field_cursor_is_clamped(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=1000.0, x=10.0, y=10.0, radius=20.0)], windows, width=640.0, height=480.0)
        judge.tick(500.0, [])
        events = judge.tick(1000.0, [Cursor(x=-30.0, y=-30.0)])
        assert [event.kind for event in events] == [HitKind.PERFECT]

    def test_non_finite_and_malformed_cursors_are_dropped(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=1000.0)], windows)
        judge.tick(500.0, [])
        cursors = [Cursor(x=math.nan, y=200.0), Cursor(x=200.0, y=math.inf), object(), None]
        assert judge.tick(1000.0, cursors) == []
        assert judge.circle(0).state == CircleState.ACTIVE

    def test_missing_cursor_list_is_empty(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=1000.0)], windows)
        assert judge.tick(1000.0, None) == []


class TestFinishAndReset:
    def test_finish_misses_everything_unresolved(self, windows, make_circle):
        circles = [make_circle(circle_id=index, beat_ms=1000.0 * (index + 1)) for index in range(4)]
        judge = _judge(circles, windows)
        judge.tick(400.0, [])
        judge.tick(1000.0, [Cursor(x=200.0, y=200.0)])
        events = judge.finish(1500.0)
        assert [(event.circle_id, event.kind) for event in events] == [(1, HitKind.MISS), (2, HitKind.MISS), (3, HitKind.MISS)]
        assert judge.is_complete()
        assert judge.unresolved_count() == 0
        assert judge.finish(1600.0) == []
        assert judge.tick(5000.0, [Cursor(x=200.0, y=200.0)]) == []

    def test_reset_restores_pending_state(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=1000.0)], windows)
        judge.tick(1000.0, [Cursor(x=200.0, y=200.0)])
        assert judge.is_complete()
        judge.reset()
        assert judge.last_tick_ms() == 0.0
        assert judge.unresolved_count() == 1
        view = judge.circle(0)
        assert view.state == CircleState.PENDING
        assert view.result is None and view.resolved_at_ms is None
        events = judge.tick(1020.0, [Cursor(x=200.0, y=200.0)])
        assert [event.kind for event in events] == [HitKind.PERFECT]

    def test_snapshot_is_read_only_copy(self, windows, make_circle):
        judge = _judge([make_circle(beat_ms=1000.0)], windows)
        snapshot = judge.snapshot()
        judge.tick(1000.0, [Cursor(x=200.0, y=200.0)])
        assert snapshot[0].state == CircleState.PENDING
        assert judge.snapshot()[0].state == CircleState.RESOLVED
