"""Telegram Bot API client: message delivery with retry, and update polling."""

import logging
import threading
import time
from typing import Any

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import DEFAULT_TELEGRAM_HOST, is_dry_run

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096
DEFAULT_TIMEOUT = 10


class NotifyError(Exception):
    """A message could not be delivered."""


class TelegramRateLimitError(NotifyError):
    """Raised on 429; carries the server's cooldown."""

    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__(f"Rate limited, retry after {retry_after}s")


class TelegramServerError(NotifyError):
    """Raised on 5xx to trigger retry."""
    pass


def _base_url(host: str, token: str) -> str:
    if host.startswith("http://") or host.startswith("https://"):
        return f"{host.rstrip('/')}/bot{token}"
    return f"https://{host}/bot{token}"


def truncate_message(text: str) -> str:
    if len(text) > MAX_MESSAGE_LENGTH:
        return text[: MAX_MESSAGE_LENGTH - 3] + "..."
    return text


class TelegramNotifier:
    """Sends plain-text messages to Telegram chats.

    Safe to share between threads: the only mutable state is the rate-limit
    cooldown, which is guarded by a lock.
    """

    def __init__(self, token: str, host: str = DEFAULT_TELEGRAM_HOST, timeout: float = DEFAULT_TIMEOUT):
        self._base_url = _base_url(host, token)
        self._timeout = timeout
        self._session = requests.Session()
        self._cooldown_lock = threading.Lock()
        self._cooldown_until = 0.0

    def deliver(self, chat_id: int, text: str, retry: bool = True) -> None:
        """Send ``text`` to ``chat_id``. Raises NotifyError on failure.

        With ``retry=False`` the message is posted exactly once, even on a 5xx.
        """
        if is_dry_run():
            logger.info("[DRY RUN] Would send to %s: %s", chat_id, text)
            return

        now = time.time()
        with self._cooldown_lock:
            cooldown_until = self._cooldown_until
        if now < cooldown_until:
            raise TelegramRateLimitError(cooldown_until - now)

        payload = {"chat_id": chat_id, "text": truncate_message(text)}
        try:
            if retry:
                self._call_with_retry("sendMessage", payload)
            else:
                self._call("sendMessage", payload)
        except TelegramRateLimitError as e:
            with self._cooldown_lock:
                self._cooldown_until = max(self._cooldown_until, now + e.retry_after)
            logger.warning("Telegram rate limited, cooldown until %s", time.ctime(now + e.retry_after))
            raise
        except NotifyError:
            raise
        except requests.RequestException as e:
            raise NotifyError(f"can't send message: {e}") from e

    def get_updates(self, offset: int, limit: int = 100, poll_timeout: int = 0) -> list[dict[str, Any]]:
        """Fetch pending updates starting at ``offset``."""
        params = {"offset": offset, "limit": limit, "timeout": poll_timeout}
        resp = self._session.get(
            f"{self._base_url}/getUpdates",
            params=params,
            timeout=self._timeout + poll_timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        if not data.get("ok", False):
            raise NotifyError(f"getUpdates failed: {data.get('description', 'unknown error')}")
        return data.get("result", [])

    def close(self) -> None:
        self._session.close()

    @retry(
        retry=retry_if_exception_type(TelegramServerError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    def _call_with_retry(self, method: str, payload: dict) -> dict:
        """``_call`` retried only on 5xx."""
        return self._call(method, payload)

    def _call(self, method: str, payload: dict) -> dict:
        """POST to a Bot API method once. Raises TelegramRateLimitError on 429."""
        resp = self._session.post(f"{self._base_url}/{method}", json=payload, timeout=self._timeout)

        if resp.status_code == 429:
            try:
                retry_after = resp.json().get("parameters", {}).get("retry_after", 5)
            except ValueError:
                retry_after = float(resp.headers.get("Retry-After", 5))
            raise TelegramRateLimitError(float(retry_after))

        if resp.status_code >= 500:
            logger.warning("Telegram server error %d", resp.status_code)
            raise TelegramServerError(f"Status {resp.status_code}")

        if resp.status_code >= 400:
            try:
                description = resp.json().get("description", "")
            except ValueError:
                description = resp.text[:200]
            raise NotifyError(f"{method} failed with {resp.status_code}: {description}")

        return resp.json()
