# -*- coding: utf-8 -*-
########################
# cursor_feed.py
########################
# Purpose:
# - Single hand-off point between the hand tracking collaborator and the judge.
# - Converts normalized hand landmarks into field-space Cursor values and publishes them
#   as immutable snapshots.
#
# Design notes:
# - This must be the only cursor source for a session. No duplicate landmark mapping elsewhere.
# - The tracker thread calls publish(); the judging thread calls snapshot(). The published value
#   is a tuple and is swapped as a whole, so readers never see a half-written frame.
# - The camera image is mirrored, so x is flipped by default.
#
########################
# Interfaces:
# Public constants:
# - INDEX_FINGER_TIP = 8
#
# Public functions:
# - cursors_from_landmarks(hands, *, field_width, field_height, mirror=True, landmark_index=8,
#                          tracking_ids=None) -> list[Cursor]
#
# Public classes:
# - class CursorFeed
#   - publish(cursors: Iterable[Cursor]) -> None
#   - publish_landmarks(hands, tracking_ids=None) -> None
#   - clear() -> None
#   - snapshot() -> tuple[Cursor, ...]
#   - published_count() -> int
#
# Inputs:
# - Per-frame hand landmark lists (each landmark has x, y in [0, 1]) or ready-made Cursor values.
#
# Outputs:
# - Cursor snapshots consumed by TimingJudge.tick via PlaySession.
#
########################

from __future__ import annotations

import logging
import math
import threading
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from gameplay_models import Cursor


logger = logging.getLogger(__name__)

INDEX_FINGER_TIP = 8


def _landmark_xy(landmark: Any) -> Tuple[float, float]:
    if isinstance(landmark, (tuple, list)):
        return float(landmark[0]), float(landmark[1])
    return float(landmark.x), float(landmark.y)


def cursors_from_landmarks(
    hands: Sequence[Sequence[Any]],
    *,
    field_width: float,
    field_height: float,
    mirror: bool = True,
    landmark_index: int = INDEX_FINGER_TIP,
    tracking_ids: Optional[Sequence[int]] = None,
) -> List[Cursor]:
    """
    Map one landmark per tracked hand to a field-space cursor.

    hands:
        One landmark list per detected hand. Landmarks may be objects exposing .x/.y or
        (x, y[, z]) tuples, normalized to [0, 1].
    tracking_ids:
        Stable per-hand identifiers from the tracker. When omitted, the hand's position in
        the list is used.

    Hands without the requested landmark, or with non-finite coordinates, are skipped.
    """
    cursors: List[Cursor] = []
    for hand_index, landmarks in enumerate(hands or ()):
        if landmarks is None or len(landmarks) <= int(landmark_index):
            continue
        try:
            normalized_x, normalized_y = _landmark_xy(landmarks[int(landmark_index)])
        except (AttributeError, IndexError, TypeError, ValueError):
            logger.debug("Skipping hand %d with malformed landmark", hand_index)
            continue
        if not (math.isfinite(normalized_x) and math.isfinite(normalized_y)):
            continue

        if mirror:
            normalized_x = 1.0 - normalized_x

        if tracking_ids is not None and hand_index < len(tracking_ids):
            tracking_id = int(tracking_ids[hand_index])
        else:
            tracking_id = hand_index

        cursors.append(
            Cursor(
                x=normalized_x * float(field_width),
                y=normalized_y * float(field_height),
                tracking_id=tracking_id,
            )
        )
    return cursors


class CursorFeed:
    """
    Latest-value cursor mailbox.

    Tracking frames arrive asynchronously relative to audio. The judge only ever sees the
    snapshot that was current when its tick started. Older frames are simply replaced.
    """

    def __init__(
        self,
        *,
        field_width: float,
        field_height: float,
        mirror: bool = True,
        landmark_index: int = INDEX_FINGER_TIP,
    ) -> None:
        self._field_width = float(field_width)
        self._field_height = float(field_height)
        self._mirror = bool(mirror)
        self._landmark_index = int(landmark_index)

        self._lock = threading.Lock()
        self._snapshot: Tuple[Cursor, ...] = ()
        self._published_count = 0

    def publish(self, cursors: Iterable[Cursor]) -> None:
        frozen = tuple(cursors or ())
        with self._lock:
            self._snapshot = frozen
            self._published_count += 1

    def publish_landmarks(self, hands: Sequence[Sequence[Any]], tracking_ids: Optional[Sequence[int]] = None) -> None:
        self.publish(
            cursors_from_landmarks(
                hands,
                field_width=self._field_width,
                field_height=self._field_height,
                mirror=self._mirror,
                landmark_index=self._landmark_index,
                tracking_ids=tracking_ids,
            )
        )

    def clear(self) -> None:
        self.publish(())

    def snapshot(self) -> Tuple[Cursor, ...]:
        with self._lock:
            return self._snapshot

    def published_count(self) -> int:
        with self._lock:
            return int(self._published_count)


def _run_unit_tests() -> None:
    hand = [(0.0, 0.0)] * 8 + [(0.25, 0.5)]
    cursors = cursors_from_landmarks([hand, [(0.1, 0.1)]], field_width=1280, field_height=720)
    assert cursors == [Cursor(x=960.0, y=360.0, tracking_id=0)]

    feed = CursorFeed(field_width=100, field_height=100, mirror=False)
    feed.publish_landmarks([hand], tracking_ids=[7])
    assert feed.snapshot() == (Cursor(x=25.0, y=50.0, tracking_id=7),)
    feed.clear()
    assert feed.snapshot() == ()
    assert feed.published_count() == 2


if __name__ == "__main__":
    _run_unit_tests()
    print("cursor_feed.py: ok")
