# -*- coding: utf-8 -*-
########################
# timing_model.py
########################
# Purpose:
# - Single source of truth for song timing in gameplay.
# - Converts the audio player position into song time by applying a configurable AV offset.
# - Tracks the player's "ended" signal so sessions can close out exactly once.
#
# Design notes:
# - Gameplay code must use TimingModel.song_time_ms. Never a free-running timer.
# - Keep this module pure and deterministic. The embedding app pushes positions in.
# - Clamp playback position and song time to non-negative.
#
########################
# Interfaces:
# Public dataclasses:
# - TimingSnapshot(playback_ms: float, av_offset_ms: float, song_time_ms: float, is_ended: bool)
#
# Public classes:
# - class TimingModel
#   - playback_ms() -> float
#   - av_offset_ms() -> float
#   - song_time_ms() -> float
#   - is_ended() -> bool
#   - set_av_offset_ms(av_offset_ms: float) -> None
#   - update_playback_ms(playback_ms: float) -> None
#   - update_playback_seconds(playback_seconds: float) -> None
#   - mark_ended() -> None
#   - rewind() -> None
#   - snapshot() -> TimingSnapshot
#
# Inputs:
# - Audio player position (milliseconds or seconds) and ended signal.
# - av_offset_ms from configuration or UI calibration.
#
# Outputs:
# - Derived song_time_ms used by TimingJudge and PlaySession.
#
########################

from __future__ import annotations

from dataclasses import dataclass
import math


@dataclass(frozen=True)
class TimingSnapshot:
    playback_ms: float
    av_offset_ms: float
    song_time_ms: float
    is_ended: bool


class TimingModel:
    def __init__(self) -> None:
        self._playback_ms = 0.0
        self._av_offset_ms = 0.0
        self._is_ended = False

    def playback_ms(self) -> float:
        return float(self._playback_ms)

    def av_offset_ms(self) -> float:
        return float(self._av_offset_ms)

    def song_time_ms(self) -> float:
        # Positive offset means the player hears audio later than the reported position.
        return max(0.0, float(self._playback_ms) - float(self._av_offset_ms))

    def is_ended(self) -> bool:
        return bool(self._is_ended)

    def set_av_offset_ms(self, av_offset_ms: float) -> None:
        value = float(av_offset_ms)
        if math.isfinite(value):
            self._av_offset_ms = value

    def update_playback_ms(self, playback_ms: float) -> None:
        value = float(playback_ms)
        if not math.isfinite(value):
            return
        if value < 0.0:
            value = 0.0
        self._playback_ms = value

    def update_playback_seconds(self, playback_seconds: float) -> None:
        self.update_playback_ms(float(playback_seconds) * 1000.0)

    def mark_ended(self) -> None:
        self._is_ended = True

    def rewind(self) -> None:
        self._playback_ms = 0.0
        self._is_ended = False

    def snapshot(self) -> TimingSnapshot:
        return TimingSnapshot(
            playback_ms=self.playback_ms(),
            av_offset_ms=self.av_offset_ms(),
            song_time_ms=self.song_time_ms(),
            is_ended=self.is_ended(),
        )


def _run_unit_tests() -> None:
    model = TimingModel()
    model.set_av_offset_ms(20.0)
    model.update_playback_ms(-5000.0)
    assert model.playback_ms() == 0.0
    assert model.song_time_ms() == 0.0

    model.update_playback_seconds(1.5)
    assert abs(model.song_time_ms() - 1480.0) < 1e-9

    model.update_playback_ms(float("nan"))
    assert abs(model.playback_ms() - 1500.0) < 1e-9

    model.mark_ended()
    snap = model.snapshot()
    assert snap.is_ended
    model.rewind()
    assert not model.is_ended() and model.playback_ms() == 0.0


if __name__ == "__main__":
    _run_unit_tests()
    print("timing_model.py: ok")
