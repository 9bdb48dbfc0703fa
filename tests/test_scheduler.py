"""Tests for scheduler.py."""

from datetime import datetime, timezone

from checker import SweepFetchError
from models import SweepReport
from scheduler import SweepScheduler


class ScriptedChecker:
    """Plays back a list of results; exceptions are raised. Stops the scheduler when done."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = 0
        self.scheduler = None

    def run_sweep(self):
        self.calls += 1
        item = self.script.pop(0)
        if not self.script and self.scheduler is not None:
            self.scheduler.stop()
        if isinstance(item, Exception):
            raise item
        return item


def _report():
    return SweepReport(started_at=datetime.now(timezone.utc))


class TestSweepScheduler:
    def test_fetch_failure_does_not_stop_loop(self, caplog):
        checker = ScriptedChecker([SweepFetchError("db down"), _report()])
        scheduler = SweepScheduler(checker, interval_seconds=0.01)
        checker.scheduler = scheduler

        with caplog.at_level("ERROR"):
            scheduler.run()

        assert checker.calls == 2
        assert scheduler.sweeps_run == 2
        assert "db down" in caplog.text

    def test_unexpected_error_is_logged(self, caplog):
        checker = ScriptedChecker([RuntimeError("kaboom")])
        scheduler = SweepScheduler(checker, interval_seconds=0.01)

        with caplog.at_level("ERROR"):
            assert scheduler.run_once() is None

        assert "Sweep crashed" in caplog.text

    def test_run_once_returns_report(self):
        report = _report()
        scheduler = SweepScheduler(ScriptedChecker([report]), interval_seconds=60)
        assert scheduler.run_once() is report

    def test_stop_interrupts_wait(self):
        checker = ScriptedChecker([_report(), _report()])
        scheduler = SweepScheduler(checker, interval_seconds=3600)
        thread = scheduler.start_background()

        scheduler.stop()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert scheduler.stopped
        assert checker.calls <= 1
