"""Tests for probers/base.py."""

import threading

import pytest

from models import ProbeResult
from probers.base import BaseProber, ProbeError, ProbeTimeoutError, parse_seats


class ScriptedProber(BaseProber):
    def __init__(self, action):
        self.action = action

    def search(self, code, timeout):
        return self.action(code)


class TestParseSeats:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("5", 5),
            ("  12 of 30 seats remain.", 12),
            ("0 of 25 seats remain.", 0),
            ("FULL: 0 of 25 seats remain.", 0),
            ("", 0),
            ("-3", 0),
        ],
    )
    def test_parse(self, text, expected):
        assert parse_seats(text) == expected

    def test_none(self):
        assert parse_seats(None) == 0


class TestProbe:
    def test_returns_result(self):
        prober = ScriptedProber(lambda code: ProbeResult(code=code, seats=2, title="Intro"))
        result = prober.probe("111", timeout=5)
        assert result.seats == 2

    def test_unexpected_exception_becomes_probe_error(self):
        def boom(code):
            raise RuntimeError("selector missing")

        with pytest.raises(ProbeError) as exc_info:
            ScriptedProber(boom).probe("111", timeout=5)
        assert exc_info.value.reason == "selector missing"
        assert exc_info.value.code == "111"

    def test_timeout(self):
        release = threading.Event()

        def hang(code):
            release.wait(timeout=5)
            return ProbeResult(code=code, seats=1)

        try:
            with pytest.raises(ProbeTimeoutError) as exc_info:
                ScriptedProber(hang).probe("111", timeout=0.1)
        finally:
            release.set()
        assert isinstance(exc_info.value, ProbeError)
        assert "timed out" in exc_info.value.reason
