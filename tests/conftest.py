"""Shared test fixtures."""

import threading

import pytest

from config import AppConfig
from models import ProbeResult
from probers.base import BaseProber, ProbeError
from state import TrackingStore
from telegram_notifier import NotifyError


class FakeProber(BaseProber):
    """Serves canned results per code; an Exception value is raised instead."""

    name = "fake"

    def __init__(self, results=None, barrier=None):
        self.results = dict(results or {})
        self.barrier = barrier
        self.calls = []
        self._lock = threading.Lock()

    def search(self, code, timeout):
        with self._lock:
            self.calls.append(code)
        if self.barrier is not None:
            self.barrier.wait(timeout=5)
        result = self.results.get(code)
        if result is None:
            raise ProbeError(code, "no such class")
        if isinstance(result, Exception):
            raise result
        return result


class FakeNotifier:
    """Records deliveries; fails for listed chat ids or for the first N calls."""

    def __init__(self, fail_for=(), fail_first=0):
        self.sent = []
        self.attempts = []
        self.fail_for = set(fail_for)
        self.fail_first = fail_first
        self._lock = threading.Lock()

    def deliver(self, chat_id, text, retry=True):
        with self._lock:
            self.attempts.append((chat_id, text))
            if chat_id in self.fail_for or len(self.attempts) <= self.fail_first:
                raise NotifyError("delivery refused")
            self.sent.append((chat_id, text))

    def texts_for(self, chat_id):
        return [text for cid, text in self.sent if cid == chat_id]


@pytest.fixture
def sample_config():
    return AppConfig(
        sweep_interval_seconds=180,
        probe_timeout_seconds=5,
        max_workers=8,
        delivery_failure_policy="mark",
    )


@pytest.fixture
def in_memory_store():
    store = TrackingStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def user(in_memory_store):
    return in_memory_store.get_or_create_user(1001, "alice")


@pytest.fixture
def fake_notifier():
    return FakeNotifier()


@pytest.fixture
def make_prober():
    def _make(results=None, barrier=None):
        return FakeProber(
            {code: (ProbeResult(code=code, seats=v[0], title=v[1]) if isinstance(v, tuple) else v)
             for code, v in (results or {}).items()},
            barrier=barrier,
        )
    return _make
