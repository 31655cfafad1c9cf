# -*- coding: utf-8 -*-
########################
# beat_detector.py
########################
# Purpose:
# - Tempo and beat analysis of a decoded audio track.
# - Produces AnalysisResult(bpm, beats) used by TargetScheduler.
#
# Design notes:
# - librosa for the spectral work (STFT, onset strength, autocorrelation, peak picking).
#   No audio decoding, no threads, no wall clock.
# - Deterministic: identical samples always give identical bpm and beats.
# - Progress is optional and reported as integers, monotonically from 0 to 100.
# - Cancellation is cooperative through should_cancel(), checked between frame chunks.
# - Never returns a partial result: failures raise AnalysisError.
# - Octave choice: the prior only picks a starting lag. The period is then halved while the
#   faster octave keeps octave_ratio of the periodicity, so fast tracks are not read at half tempo.
#
########################
# Interfaces:
# Public exceptions:
# - class AnalysisError(Exception)
# - class AnalysisCancelledError(AnalysisError)
#
# Public classes:
# - class BeatDetector
#   - __init__(analysis_config: Optional[AnalysisConfig] = None)
#   - analyze(samples, sample_rate, on_progress=None, should_cancel=None) -> AnalysisResult
#
# Inputs:
# - samples: 1-D mono array, or 2-D (frames, channels) array, any float/int dtype.
# - sample_rate: samples per second.
#
# Outputs:
# - AnalysisResult with bpm and strictly increasing beats (milliseconds).
#
########################

from __future__ import annotations

import logging
import math
from typing import Callable, List, Optional, Tuple

import librosa
import numpy as np

from config import AnalysisConfig
from gameplay_models import AnalysisResult, Beat


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]
CancelCheck = Callable[[], bool]

_ENVELOPE_PROGRESS_SPAN = 80
_TEMPO_PROGRESS = 90
_MAX_REFINE_MULTIPLE = 8
_PEAK_HALF_WIDTH = 3


class AnalysisError(Exception):
    """Raised when a track cannot produce a usable tempo and beat list."""


class AnalysisCancelledError(AnalysisError):
    """Raised when a newer analysis request supersedes this one."""


class _ProgressReporter:
    def __init__(self, callback: Optional[ProgressCallback]) -> None:
        self._callback = callback
        self._last_percent = -1

    def report(self, percent: float) -> None:
        value = int(max(0.0, min(100.0, float(percent))))
        if value <= self._last_percent:
            return
        self._last_percent = value
        if self._callback is not None:
            self._callback(value)


def _to_mono(samples) -> np.ndarray:
    data = np.asarray(samples, dtype=np.float64)
    if data.ndim == 2:
        data = data.mean(axis=1)
    elif data.ndim != 1:
        raise AnalysisError(f"Expected mono or (frames, channels) samples, got shape {data.shape}")
    return np.ascontiguousarray(np.nan_to_num(data, nan=0.0, posinf=0.0, neginf=0.0))


def _local_argmax(values: np.ndarray, center: int, reach: int, low_bound: int, high_bound: int) -> int:
    low = max(int(low_bound), int(center) - int(reach))
    high = min(int(high_bound), int(center) + int(reach))
    if high < low:
        return min(max(int(center), int(low_bound)), int(high_bound))
    return low + int(np.argmax(values[low:high + 1]))


def _parabolic_peak(values: np.ndarray, index: int) -> float:
    """Sub-frame position of the peak at index."""
    if index <= 0 or index >= values.size - 1:
        return float(index)
    alpha = float(values[index - 1])
    beta = float(values[index])
    gamma = float(values[index + 1])
    denominator = alpha - 2.0 * beta + gamma
    if abs(denominator) <= 1e-12:
        return float(index)
    offset = 0.5 * (alpha - gamma) / denominator
    return float(index) + max(-0.5, min(0.5, offset))


class BeatDetector:
    def __init__(self, analysis_config: Optional[AnalysisConfig] = None) -> None:
        self._config = analysis_config if analysis_config is not None else AnalysisConfig()

    @property
    def config(self) -> AnalysisConfig:
        return self._config

    def analyze(
        self,
        samples,
        sample_rate: float,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck] = None,
    ) -> AnalysisResult:
        progress = _ProgressReporter(on_progress)
        progress.report(0)

        try:
            rate = float(sample_rate)
        except (TypeError, ValueError) as exc:
            raise AnalysisError(f"Invalid sample rate: {sample_rate!r}") from exc
        if not math.isfinite(rate) or rate <= 0.0:
            raise AnalysisError(f"Invalid sample rate: {sample_rate!r}")

        mono = _to_mono(samples)
        duration_seconds = float(mono.size) / rate
        if duration_seconds < float(self._config.min_duration_seconds):
            raise AnalysisError(
                f"Track too short: {duration_seconds:.2f}s, need at least {self._config.min_duration_seconds:.2f}s"
            )

        rms = float(np.sqrt(np.mean(mono * mono))) if mono.size else 0.0
        if rms < float(self._config.silence_rms_threshold):
            raise AnalysisError(f"Track is silent (rms={rms:.2e})")

        hop = max(1, int(round(rate * self._config.hop_ms / 1000.0)))
        frame = max(hop, int(round(rate * self._config.frame_ms / 1000.0)))
        if mono.size < frame:
            raise AnalysisError("Track too short for a single analysis frame")

        envelope = self._onset_envelope(
            mono, rate=rate, frame=frame, hop=hop, progress=progress, should_cancel=should_cancel
        )
        frames_per_second = rate / float(hop)

        period_frames, periodicity = self._estimate_period(envelope, frames_per_second)
        progress.report(_TEMPO_PROGRESS)
        if should_cancel is not None and should_cancel():
            raise AnalysisCancelledError("Analysis cancelled")

        frame_center_offset = 0.5 * float(frame)
        beats = self._track_beats(
            envelope,
            period_frames=period_frames,
            frame_to_ms=lambda index: 1000.0 * (index * hop + frame_center_offset) / rate,
        )
        if not beats:
            raise AnalysisError("No beats strong enough to schedule")

        bpm = 60.0 * frames_per_second / period_frames
        progress.report(100)
        logger.info(
            "Analyzed %.1fs track: bpm=%.2f beats=%d periodicity=%.3f",
            duration_seconds,
            bpm,
            len(beats),
            periodicity,
        )
        return AnalysisResult(bpm=float(bpm), beats=tuple(beats), duration_ms=1000.0 * duration_seconds)

    def _onset_envelope(
        self,
        mono: np.ndarray,
        *,
        rate: float,
        frame: int,
        hop: int,
        progress: _ProgressReporter,
        should_cancel: Optional[CancelCheck],
    ) -> np.ndarray:
        frame_count = 1 + (mono.size - frame) // hop
        chunk_frames = int(self._config.chunk_frames)
        flux = np.zeros(frame_count, dtype=np.float64)

        for chunk_start in range(0, frame_count, chunk_frames):
            if should_cancel is not None and should_cancel():
                raise AnalysisCancelledError("Analysis cancelled")

            chunk_stop = min(frame_count, chunk_start + chunk_frames)
            # One frame of overlap so the first flux value of the chunk has its predecessor.
            first_frame = max(0, chunk_start - 1)
            segment = mono[first_frame * hop:(chunk_stop - 1) * hop + frame]
            spectrum = librosa.stft(segment, n_fft=frame, hop_length=hop, window="hann", center=False)
            magnitudes = np.log1p(np.abs(spectrum))
            if magnitudes.shape[-1] > 1:
                chunk_flux = librosa.onset.onset_strength(
                    S=magnitudes, sr=rate, lag=1, max_size=1, center=False, aggregate=np.mean
                )
            else:
                chunk_flux = np.zeros(magnitudes.shape[-1], dtype=np.float64)
            flux[chunk_start:chunk_stop] = chunk_flux[chunk_start - first_frame:]

            progress.report(_ENVELOPE_PROGRESS_SPAN * chunk_stop / frame_count)

        mean_frames = max(1, int(round(self._config.local_mean_ms / self._config.hop_ms)))
        local_mean = np.convolve(flux, np.ones(mean_frames) / mean_frames, mode="same")
        envelope = np.maximum(flux - local_mean, 0.0)

        peak = float(envelope.max()) if envelope.size else 0.0
        if peak <= 0.0:
            raise AnalysisError("No onsets detected")
        return envelope / peak

    def _estimate_period(self, envelope: np.ndarray, frames_per_second: float) -> Tuple[float, float]:
        """Return (period in frames, normalized autocorrelation at that period)."""
        frame_count = int(envelope.size)
        acf = librosa.autocorrelate(envelope - envelope.mean())
        if acf[0] <= 0.0:
            raise AnalysisError("No detectable periodicity")
        acf = acf / acf[0]
        # Mass within one lag, so a period falling between two integer lags is not underrated.
        spread = np.pad(acf, 1, mode="constant")
        acf_mass = spread[:-2] + spread[1:-1] + spread[2:]

        shortest_period = frames_per_second * 60.0 / float(self._config.max_bpm)
        longest_period = frames_per_second * 60.0 / float(self._config.min_bpm)
        min_lag = max(1, int(math.floor(shortest_period)))
        max_lag = min(frame_count - 1, int(math.ceil(longest_period)))
        if min_lag >= max_lag:
            raise AnalysisError("Track too short to estimate tempo")

        lags = np.arange(min_lag, max_lag + 1)
        doubled = 2 * lags
        harmonic = np.where(doubled < frame_count, acf_mass[np.minimum(doubled, frame_count - 1)], 0.0)
        lag_bpm = frames_per_second * 60.0 / lags
        octaves_from_prior = np.log2(lag_bpm / float(self._config.tempo_prior_bpm)) / float(self._config.tempo_prior_octaves)
        prior = np.exp(-0.5 * octaves_from_prior * octaves_from_prior)
        scores = (acf_mass[lags] + 0.5 * harmonic) * prior

        lag = _local_argmax(acf, int(lags[int(np.argmax(scores))]), 1, min_lag, max_lag)

        octave_ratio = float(self._config.octave_ratio)
        while lag / 2.0 >= min_lag:
            faster = _local_argmax(acf, int(round(lag / 2.0)), 1, min_lag, max_lag)
            if faster >= lag or acf_mass[faster] < octave_ratio * acf_mass[lag]:
                break
            lag = faster

        periodicity = float(acf[lag])
        if periodicity < float(self._config.min_periodicity):
            raise AnalysisError(f"No detectable periodicity (peak={periodicity:.3f})")

        # A far multiple of the period pins it down more precisely than the first peak alone.
        period = _parabolic_peak(acf, lag)
        multiple = 1
        while multiple < _MAX_REFINE_MULTIPLE and (multiple + 1) * period + 2.0 < frame_count / 2.0:
            multiple += 1
        if multiple > 1:
            far_peak = _local_argmax(acf, int(round(multiple * period)), multiple // 2 + 1, 1, frame_count - 2)
            period = _parabolic_peak(acf, far_peak) / float(multiple)

        period = min(max(period, shortest_period), longest_period)
        return period, periodicity

    def _track_beats(
        self,
        envelope: np.ndarray,
        *,
        period_frames: float,
        frame_to_ms: Callable[[int], float],
    ) -> List[Beat]:
        frame_count = int(envelope.size)

        # Phase: the grid offset collecting the most onset energy per grid point.
        best_phase = 0
        best_energy = -1.0
        for phase in range(int(math.ceil(period_frames))):
            positions = np.round(np.arange(phase, frame_count, period_frames)).astype(int)
            positions = positions[positions < frame_count]
            if positions.size == 0:
                continue
            energy = float(envelope[positions].mean())
            if energy > best_energy:
                best_energy = energy
                best_phase = phase

        snap_radius = max(1, int(round(float(self._config.snap_tolerance) * period_frames)))
        min_strength = float(self._config.min_beat_strength)

        peaks = librosa.util.peak_pick(
            envelope,
            pre_max=_PEAK_HALF_WIDTH,
            post_max=_PEAK_HALF_WIDTH + 1,
            pre_avg=_PEAK_HALF_WIDTH,
            post_avg=_PEAK_HALF_WIDTH + 1,
            delta=0.0,
            wait=0,
        )
        peaks = np.asarray(peaks, dtype=int)
        peaks = peaks[envelope[peaks] >= min_strength]

        # Walk the grid from peak to peak so small period errors never accumulate.
        beats: List[Beat] = []
        previous_ms = -math.inf
        expected = float(best_phase)
        while expected - snap_radius < frame_count:
            low = int(np.searchsorted(peaks, expected - snap_radius, side="left"))
            high = int(np.searchsorted(peaks, expected + snap_radius, side="right"))
            if high <= low:
                expected += period_frames
                continue
            window = peaks[low:high]
            snapped = int(window[int(np.argmax(envelope[window]))])
            timestamp_ms = float(frame_to_ms(snapped))
            if timestamp_ms > previous_ms:
                beats.append(Beat(timestamp_ms=timestamp_ms, strength=float(envelope[snapped])))
                previous_ms = timestamp_ms
            next_expected = float(snapped) + period_frames
            expected = next_expected if next_expected > expected else expected + period_frames
        return beats


def _run_unit_tests() -> None:
    import demo_track

    track = demo_track.build_click_track(bpm=120.0, duration_seconds=8.0)
    reported: List[int] = []
    detector = BeatDetector()
    result = detector.analyze(track.samples, track.sample_rate, on_progress=reported.append)
    assert abs(result.bpm - 120.0) < 2.0, result.bpm
    assert reported[0] == 0 and reported[-1] == 100
    assert reported == sorted(set(reported))
    stamps = [beat.timestamp_ms for beat in result.beats]
    assert all(later > earlier for earlier, later in zip(stamps, stamps[1:]))

    again = detector.analyze(track.samples, track.sample_rate)
    assert again == result

    fast = demo_track.build_click_track(bpm=180.0, duration_seconds=10.0)
    assert abs(detector.analyze(fast.samples, fast.sample_rate).bpm - 180.0) < 3.0

    try:
        detector.analyze(np.zeros(track.samples.shape), track.sample_rate)
    except AnalysisError:
        pass
    else:
        raise AssertionError("Expected AnalysisError for silence")


if __name__ == "__main__":
    _run_unit_tests()
    print("beat_detector.py: ok")
