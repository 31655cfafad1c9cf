"""Tests for background analysis with last-request-wins semantics."""

import threading

import numpy as np
import pytest

from analysis_worker import AnalysisWorker
from beat_detector import AnalysisCancelledError, AnalysisError, BeatDetector


class GatedDetector(BeatDetector):
    """Blocks inside analyze() until released, so tests control interleaving."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def analyze(self, samples, sample_rate, on_progress=None, should_cancel=None):
        self.entered.set()
        self.release.wait(timeout=10.0)
        return super().analyze(samples, sample_rate, on_progress=on_progress, should_cancel=should_cancel)


class TestLatestRequestWins:
    def test_newer_request_supersedes_running_one(self, click_track_120):
        detector = GatedDetector()
        delivered = []
        progress = {1: [], 2: []}
        with AnalysisWorker(detector) as worker:
            first = worker.submit(
                click_track_120.samples,
                click_track_120.sample_rate,
                on_progress=progress[1].append,
                on_result=lambda token, result: delivered.append(token),
            )
            assert detector.entered.wait(timeout=5.0)
            second = worker.submit(
                click_track_120.samples,
                click_track_120.sample_rate,
                on_progress=progress[2].append,
                on_result=lambda token, result: delivered.append(token),
            )
            detector.release.set()

            with pytest.raises(AnalysisCancelledError):
                first.future.result(timeout=30.0)
            result = second.future.result(timeout=30.0)

            assert (first.token, second.token) == (1, 2)
            assert delivered == [2]
            assert progress[1] == []
            assert progress[2][0] == 0 and progress[2][-1] == 100
            assert worker.latest_result() == result
            assert worker.is_current(2) and not worker.is_current(1)

    def test_queued_request_is_skipped_when_superseded(self, click_track_120):
        detector = GatedDetector()
        with AnalysisWorker(detector) as worker:
            first = worker.submit(click_track_120.samples, click_track_120.sample_rate)
            assert detector.entered.wait(timeout=5.0)
            queued = worker.submit(click_track_120.samples, click_track_120.sample_rate)
            latest = worker.submit(click_track_120.samples, click_track_120.sample_rate)
            detector.release.set()

            with pytest.raises(AnalysisCancelledError, match="before it started"):
                queued.future.result(timeout=30.0)
            with pytest.raises(AnalysisCancelledError):
                first.future.result(timeout=30.0)
            assert latest.future.result(timeout=30.0).bpm == pytest.approx(120.0, abs=2.0)

    def test_cancel_pending_drops_result(self, click_track_120):
        detector = GatedDetector()
        delivered = []
        with AnalysisWorker(detector) as worker:
            ticket = worker.submit(
                click_track_120.samples,
                click_track_120.sample_rate,
                on_result=lambda token, result: delivered.append(token),
            )
            assert detector.entered.wait(timeout=5.0)
            worker.cancel_pending()
            detector.release.set()
            with pytest.raises(AnalysisCancelledError):
                ticket.future.result(timeout=30.0)
            assert delivered == []
            assert worker.latest_result() is None


class TestFailures:
    def test_error_is_reported_for_current_request(self):
        errors = []
        with AnalysisWorker() as worker:
            ticket = worker.submit(
                np.zeros(22050 * 4, dtype=np.float32),
                22050,
                on_error=lambda token, exc: errors.append((token, exc)),
            )
            with pytest.raises(AnalysisError, match="silent"):
                ticket.future.result(timeout=30.0)
            assert [token for token, _exc in errors] == [ticket.token]
            assert isinstance(errors[0][1], AnalysisError)
            assert worker.latest_result() is None

    def test_single_request_publishes_result(self, click_track_120):
        results = []
        with AnalysisWorker() as worker:
            ticket = worker.submit(
                click_track_120.samples,
                click_track_120.sample_rate,
                on_result=lambda token, result: results.append((token, result)),
            )
            result = ticket.future.result(timeout=30.0)
            assert results == [(ticket.token, result)]
            assert worker.latest_token() == ticket.token
