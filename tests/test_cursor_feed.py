"""Tests for landmark mapping and the cursor snapshot hand-off."""

import threading
from types import SimpleNamespace

import pytest

from cursor_feed import INDEX_FINGER_TIP, CursorFeed, cursors_from_landmarks
from gameplay_models import Cursor


def _hand(tip_x, tip_y, as_objects=False):
    landmarks = [(0.5, 0.5)] * 21
    landmarks[INDEX_FINGER_TIP] = (tip_x, tip_y)
    if as_objects:
        return [SimpleNamespace(x=x, y=y, z=0.0) for x, y in landmarks]
    return landmarks


class TestLandmarkMapping:
    def test_index_fingertip_is_mirrored(self):
        cursors = cursors_from_landmarks([_hand(0.25, 0.5)], field_width=1280, field_height=720)
        assert cursors == [Cursor(x=960.0, y=360.0, tracking_id=0)]

    def test_mirroring_can_be_disabled(self):
        cursors = cursors_from_landmarks([_hand(0.25, 0.5)], field_width=1280, field_height=720, mirror=False)
        assert cursors == [Cursor(x=320.0, y=360.0, tracking_id=0)]

    def test_landmark_objects(self):
        cursors = cursors_from_landmarks([_hand(0.1, 0.2, as_objects=True)], field_width=100, field_height=100)
        assert cursors[0].x == pytest.approx(90.0)
        assert cursors[0].y == pytest.approx(20.0)

    def test_several_hands_with_tracking_ids(self):
        hands = [_hand(0.0, 0.0), _hand(1.0, 1.0)]
        cursors = cursors_from_landmarks(hands, field_width=200, field_height=100, tracking_ids=[11, 12])
        assert cursors == [Cursor(x=200.0, y=0.0, tracking_id=11), Cursor(x=0.0, y=100.0, tracking_id=12)]

    def test_incomplete_and_malformed_hands_are_skipped(self):
        hands = [[(0.1, 0.1)] * 3, None, _hand(float("nan"), 0.5), [object()] * 21, _hand(0.5, 0.5)]
        cursors = cursors_from_landmarks(hands, field_width=100, field_height=100)
        assert cursors == [Cursor(x=50.0, y=50.0, tracking_id=4)]

    def test_no_hands(self):
        assert cursors_from_landmarks([], field_width=100, field_height=100) == []


class TestCursorFeed:
    def test_publish_replaces_snapshot(self):
        feed = CursorFeed(field_width=100, field_height=100)
        feed.publish([Cursor(1.0, 2.0)])
        feed.publish([Cursor(3.0, 4.0), Cursor(5.0, 6.0, tracking_id=1)])
        assert feed.snapshot() == (Cursor(3.0, 4.0), Cursor(5.0, 6.0, tracking_id=1))
        assert feed.published_count() == 2

    def test_snapshot_is_immutable(self):
        feed = CursorFeed(field_width=100, field_height=100)
        source = [Cursor(1.0, 1.0)]
        feed.publish(source)
        source.append(Cursor(2.0, 2.0))
        assert feed.snapshot() == (Cursor(1.0, 1.0),)

    def test_publish_landmarks_uses_feed_settings(self):
        feed = CursorFeed(field_width=100, field_height=50, mirror=False)
        feed.publish_landmarks([_hand(0.5, 0.5)], tracking_ids=[3])
        assert feed.snapshot() == (Cursor(x=50.0, y=25.0, tracking_id=3),)

    def test_clear(self):
        feed = CursorFeed(field_width=100, field_height=100)
        feed.publish([Cursor(1.0, 1.0)])
        feed.clear()
        assert feed.snapshot() == ()

    def test_concurrent_publishers_never_tear_frames(self):
        feed = CursorFeed(field_width=100, field_height=100)
        frames = [tuple(Cursor(float(index), float(index), tracking_id=slot) for slot in range(3)) for index in range(200)]
        valid = set(frames) | {()}
        torn = []

        def writer():
            for frame in frames:
                feed.publish(frame)

        def reader():
            for _ in range(2000):
                snapshot = feed.snapshot()
                if snapshot not in valid:
                    torn.append(snapshot)

        threads = [threading.Thread(target=writer), threading.Thread(target=writer), threading.Thread(target=reader)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10.0)
        assert torn == []
        assert feed.published_count() == 400
