"""
Unit tests for the console alert sink and sweep scheduler adapters.
"""

import logging
import threading
from unittest.mock import MagicMock

import pytest

from tests.support import START
from trust_engine.adapters.alerts.console import ConsoleAlertSink
from trust_engine.adapters.scheduler import SweepScheduler
from trust_engine.domain.models import AlertKind, CommunityAlert


class TestConsoleAlertSink:
    def alert(self, kind: AlertKind) -> CommunityAlert:
        return CommunityAlert(
            subject_id="org-1",
            proof_id="proof-1",
            kind=kind,
            message="twitter proof for '@acmelabs' changed",
            created_at=START,
        )

    def test_removal_logged_as_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="trust_engine"):
            ConsoleAlertSink().publish(self.alert(AlertKind.PROOF_REMOVED))

        assert len(caplog.records) == 1
        assert caplog.records[0].levelno == logging.WARNING
        assert "[ALERT] proof_removed" in caplog.text
        assert "subject=org-1" in caplog.text

    def test_restoration_logged_as_info(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="trust_engine"):
            ConsoleAlertSink().publish(self.alert(AlertKind.PROOF_RESTORED))

        assert caplog.records[0].levelno == logging.INFO


class TestSweepScheduler:
    def test_runs_sweep_periodically(self) -> None:
        ran = threading.Event()
        sweep = MagicMock(side_effect=lambda: ran.set())
        scheduler = SweepScheduler(sweep, interval_seconds=0.01)

        scheduler.start()
        try:
            assert ran.wait(timeout=2)
        finally:
            scheduler.stop()

        assert sweep.called
        assert not scheduler.running

    def test_failing_sweep_keeps_scheduler_alive(self, caplog: pytest.LogCaptureFixture) -> None:
        calls = []
        second = threading.Event()

        def sweep() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("storage down")
            second.set()

        scheduler = SweepScheduler(sweep, interval_seconds=0.01)
        with caplog.at_level(logging.ERROR, logger="trust_engine"):
            scheduler.start()
            try:
                assert second.wait(timeout=2)
            finally:
                scheduler.stop()

        assert "Scheduled sweep failed" in caplog.text

    def test_start_is_idempotent(self) -> None:
        scheduler = SweepScheduler(MagicMock(), interval_seconds=60)
        scheduler.start()
        thread = scheduler._thread
        try:
            scheduler.start()
            assert scheduler._thread is thread
        finally:
            scheduler.stop()
