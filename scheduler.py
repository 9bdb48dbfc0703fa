"""Fixed-interval sweep loop."""

import logging
import threading
from typing import Optional

from checker import Checker, SweepFetchError
from models import SweepReport

logger = logging.getLogger(__name__)


class SweepScheduler:
    """Runs ``Checker.run_sweep`` forever, sleeping between sweeps.

    A sweep runs to completion before the interval starts counting, so a slow
    sweep pushes the next one back instead of overlapping it.
    """

    def __init__(self, checker: Checker, interval_seconds: float):
        self._checker = checker
        self._interval = interval_seconds
        self._stop = threading.Event()
        self.sweeps_run = 0

    def run_once(self) -> Optional[SweepReport]:
        """Run a single sweep. Errors are logged, never raised."""
        self.sweeps_run += 1
        try:
            return self._checker.run_sweep()
        except SweepFetchError as e:
            logger.error("Error checking tracked subscriptions: %s", e)
        except Exception:
            logger.exception("Sweep crashed")
        return None

    def run(self) -> None:
        logger.info("Starting sweep loop (interval=%gs)", self._interval)
        while not self._stop.is_set():
            self.run_once()
            self._stop.wait(self._interval)
        logger.info("Sweep loop stopped after %d sweep(s)", self.sweeps_run)

    def start_background(self) -> threading.Thread:
        thread = threading.Thread(target=self.run, name="sweep-scheduler", daemon=True)
        thread.start()
        return thread

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()
