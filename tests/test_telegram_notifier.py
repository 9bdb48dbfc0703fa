"""Tests for telegram_notifier.py."""

import pytest
import responses

from telegram_notifier import (
    MAX_MESSAGE_LENGTH,
    NotifyError,
    TelegramNotifier,
    TelegramRateLimitError,
    TelegramServerError,
    truncate_message,
)

SEND_URL = "https://api.telegram.org/bottest-token/sendMessage"
UPDATES_URL = "https://api.telegram.org/bottest-token/getUpdates"


@pytest.fixture
def notifier(monkeypatch):
    monkeypatch.setenv("DRY_RUN", "false")
    n = TelegramNotifier("test-token")
    yield n
    n.close()


class TestTruncate:
    def test_short_message_untouched(self):
        assert truncate_message("hi") == "hi"

    def test_long_message_truncated(self):
        text = truncate_message("x" * 5000)
        assert len(text) == MAX_MESSAGE_LENGTH
        assert text.endswith("...")


class TestDeliver:
    def test_dry_run(self, monkeypatch):
        monkeypatch.setenv("DRY_RUN", "true")
        TelegramNotifier("test-token").deliver(42, "hello")

    @responses.activate
    def test_successful_send(self, notifier):
        responses.add(responses.POST, SEND_URL, json={"ok": True, "result": {}}, status=200)
        notifier.deliver(42, "Good news!")
        assert len(responses.calls) == 1
        assert b'"chat_id": 42' in responses.calls[0].request.body

    @responses.activate
    def test_client_error_raises(self, notifier):
        responses.add(
            responses.POST,
            SEND_URL,
            json={"ok": False, "description": "Bad Request: chat not found"},
            status=400,
        )
        with pytest.raises(NotifyError, match="chat not found"):
            notifier.deliver(42, "hello")

    @responses.activate
    def test_rate_limit_sets_cooldown(self, notifier):
        responses.add(
            responses.POST,
            SEND_URL,
            json={"ok": False, "error_code": 429, "parameters": {"retry_after": 30}},
            status=429,
        )
        with pytest.raises(TelegramRateLimitError) as exc_info:
            notifier.deliver(42, "hello")
        assert exc_info.value.retry_after == 30

        # Still cooling down: no second request goes out
        with pytest.raises(TelegramRateLimitError):
            notifier.deliver(42, "hello again")
        assert len(responses.calls) == 1

    @responses.activate
    def test_single_attempt_on_server_error(self, notifier):
        responses.add(responses.POST, SEND_URL, json={"ok": False}, status=502)
        responses.add(responses.POST, SEND_URL, json={"ok": True, "result": {}}, status=200)
        with pytest.raises(TelegramServerError):
            notifier.deliver(42, "hello", retry=False)
        assert len(responses.calls) == 1

    def test_custom_http_host(self):
        n = TelegramNotifier("tok", host="http://localhost:8081")
        assert n._base_url == "http://localhost:8081/bottok"


class TestGetUpdates:
    @responses.activate
    def test_returns_results(self, notifier):
        responses.add(
            responses.GET,
            UPDATES_URL,
            json={"ok": True, "result": [{"update_id": 1, "message": {"text": "/help"}}]},
            status=200,
        )
        updates = notifier.get_updates(0)
        assert updates[0]["update_id"] == 1
        assert "offset=0" in responses.calls[0].request.url

    @responses.activate
    def test_not_ok_raises(self, notifier):
        responses.add(
            responses.GET,
            UPDATES_URL,
            json={"ok": False, "description": "Unauthorized"},
            status=200,
        )
        with pytest.raises(NotifyError, match="Unauthorized"):
            notifier.get_updates(0)
