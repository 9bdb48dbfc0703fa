"""Abstract base prober and deadline enforcement."""

import logging
import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from models import ProbeResult

logger = logging.getLogger(__name__)

# Leading integer of a status cell such as "5 of 30 seats remain."
_SEATS_RE = re.compile(r"^\s*([+-]?\d+)")


class ProbeError(Exception):
    """A single availability check failed."""

    def __init__(self, code: str, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(f"Probe for {code} failed: {reason}")


class ProbeTimeoutError(ProbeError):
    def __init__(self, code: str, timeout: float):
        self.timeout = timeout
        super().__init__(code, f"timed out after {timeout:g}s")


def parse_seats(status_text: str) -> int:
    """Read the seat count from the start of a status string; 0 when there is none."""
    match = _SEATS_RE.match(status_text or "")
    if not match:
        return 0
    return max(int(match.group(1)), 0)


class BaseProber(ABC):
    """Checks the current availability of a resource code.

    Subclasses implement ``search``. Callers use ``probe``, which bounds the
    search by the caller's timeout and normalizes every failure into a
    ``ProbeError``. Probers must be safe to call from several threads at once.
    """

    name: str = ""

    @abstractmethod
    def search(self, code: str, timeout: float) -> ProbeResult:
        """Look up ``code`` and return its availability. Subclasses must implement."""
        ...

    def probe(self, code: str, timeout: float) -> ProbeResult:
        # A search that never returns would otherwise hold up the sweep, so the
        # caller stops waiting at the deadline and the worker finishes on its own.
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"probe-{code}")
        try:
            future = executor.submit(self.search, code, timeout)
            try:
                result = future.result(timeout=timeout)
            except FutureTimeoutError as e:
                future.cancel()
                raise ProbeTimeoutError(code, timeout) from e
            except ProbeError:
                raise
            except Exception as e:
                raise ProbeError(code, str(e) or e.__class__.__name__) from e
        finally:
            executor.shutdown(wait=False)

        logger.debug("%s: %s has %d seat(s)", self.name or self.__class__.__name__, code, result.seats)
        return result
