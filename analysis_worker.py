# -*- coding: utf-8 -*-
########################
# analysis_worker.py
########################
# Purpose:
# - Runs BeatDetector.analyze off the interactive path on a background thread.
# - Last request wins: each submission gets a monotonically increasing token, and only the
#   newest token may report progress, deliver a result, or publish latest_result().
#
# Design notes:
# - One worker thread. Submissions queue behind each other, superseded ones cancel themselves
#   at the next chunk boundary through BeatDetector's should_cancel hook.
# - Callbacks run on the worker thread. The embedding app marshals them to its UI thread.
# - Superseded requests complete their future with AnalysisCancelledError.
#
########################
# Interfaces:
# Public dataclasses:
# - AnalysisTicket(token: int, future: concurrent.futures.Future)
#
# Public classes:
# - class AnalysisWorker
#   - __init__(detector: Optional[BeatDetector] = None)
#   - submit(samples, sample_rate, *, on_progress=None, on_result=None, on_error=None) -> AnalysisTicket
#   - latest_token() -> int
#   - is_current(token: int) -> bool
#   - latest_result() -> Optional[AnalysisResult]
#   - cancel_pending() -> None
#   - shutdown(wait: bool = True) -> None
#
########################

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
import logging
import threading
from typing import Callable, Optional, Tuple

from beat_detector import AnalysisCancelledError, AnalysisError, BeatDetector
from gameplay_models import AnalysisResult


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]
ResultCallback = Callable[[int, AnalysisResult], None]
ErrorCallback = Callable[[int, AnalysisError], None]


@dataclass(frozen=True)
class AnalysisTicket:
    token: int
    future: Future


class AnalysisWorker:
    def __init__(self, detector: Optional[BeatDetector] = None) -> None:
        self._detector = detector if detector is not None else BeatDetector()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="handbeat-analysis")
        self._lock = threading.Lock()
        self._latest_token = 0
        self._published: Optional[Tuple[int, AnalysisResult]] = None

    def __enter__(self) -> "AnalysisWorker":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.shutdown(wait=True)

    def latest_token(self) -> int:
        with self._lock:
            return int(self._latest_token)

    def is_current(self, token: int) -> bool:
        with self._lock:
            return int(token) == self._latest_token

    def latest_result(self) -> Optional[AnalysisResult]:
        with self._lock:
            if self._published is None:
                return None
            return self._published[1]

    def cancel_pending(self) -> None:
        """Invalidate every in-flight request without starting a new one."""
        with self._lock:
            self._latest_token += 1

    def shutdown(self, wait: bool = True) -> None:
        self.cancel_pending()
        self._executor.shutdown(wait=wait)

    def submit(
        self,
        samples,
        sample_rate: float,
        *,
        on_progress: Optional[ProgressCallback] = None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> AnalysisTicket:
        with self._lock:
            self._latest_token += 1
            token = self._latest_token
        logger.debug("Queued analysis request %d", token)
        future = self._executor.submit(self._run, token, samples, sample_rate, on_progress, on_result, on_error)
        return AnalysisTicket(token=token, future=future)

    def _run(
        self,
        token: int,
        samples,
        sample_rate: float,
        on_progress: Optional[ProgressCallback],
        on_result: Optional[ResultCallback],
        on_error: Optional[ErrorCallback],
    ) -> AnalysisResult:
        if not self.is_current(token):
            raise AnalysisCancelledError(f"Analysis request {token} was superseded before it started")

        def should_cancel() -> bool:
            return not self.is_current(token)

        def report(percent: int) -> None:
            if on_progress is not None and self.is_current(token):
                on_progress(percent)

        try:
            result = self._detector.analyze(samples, sample_rate, on_progress=report, should_cancel=should_cancel)
        except AnalysisCancelledError:
            logger.info("Analysis request %d superseded", token)
            raise
        except AnalysisError as exc:
            if self.is_current(token):
                logger.warning("Analysis request %d failed: %s", token, exc)
                if on_error is not None:
                    on_error(token, exc)
            raise

        with self._lock:
            if token != self._latest_token:
                logger.info("Discarding stale analysis result %d", token)
                raise AnalysisCancelledError(f"Analysis request {token} was superseded")
            self._published = (token, result)

        if on_result is not None:
            on_result(token, result)
        return result


def _run_unit_tests() -> None:
    import demo_track

    track = demo_track.build_click_track(bpm=100.0, duration_seconds=6.0)
    delivered = []
    with AnalysisWorker() as worker:
        first = worker.submit(track.samples, track.sample_rate, on_result=lambda token, result: delivered.append(token))
        second = worker.submit(track.samples, track.sample_rate, on_result=lambda token, result: delivered.append(token))
        try:
            first.future.result()
        except AnalysisCancelledError:
            pass
        else:
            raise AssertionError("Expected the superseded request to be cancelled")
        result = second.future.result()
        assert delivered == [second.token]
        assert worker.latest_result() == result


if __name__ == "__main__":
    _run_unit_tests()
    print("analysis_worker.py: ok")
