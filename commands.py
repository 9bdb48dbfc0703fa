"""Chat command handling: add, remove, list and check-now."""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from models import ProbeResult, Subscription
from probers.base import BaseProber, ProbeError
from state import TrackingStore
from telegram_notifier import NotifyError, TelegramNotifier

logger = logging.getLogger(__name__)

START_TEXT = (
    "Hello! I'm the ND Classes bot. I can help you track class availability.\n\n"
    "Use /add CRN to add a class to track\n"
    "Use /remove CRN to stop tracking a class\n"
    "Use /list to see all classes you're tracking\n"
    "Use /check CRN to check a class availability now"
)

HELP_TEXT = (
    "Available commands:\n"
    "/start - Start the bot\n"
    "/help - Show this help message\n"
    "/add CRN - Add a class to track\n"
    "/remove CRN - Stop tracking a class\n"
    "/list - List all tracked classes\n"
    "/check CRN - Check class availability now"
)

UNKNOWN_COMMAND_TEXT = "Unknown command. Type /help for available commands."


class CommandProcessor:
    """Turns chat messages into store and prober calls and replies to the sender.

    ``/add`` and ``/check`` need a full probe, which can take tens of seconds,
    so with ``run_async`` they run on a small worker pool and the update loop
    moves on immediately.
    """

    def __init__(
        self,
        store: TrackingStore,
        prober: BaseProber,
        notifier: TelegramNotifier,
        probe_timeout: float = 90.0,
        run_async: bool = True,
        max_workers: int = 4,
    ):
        self._store = store
        self._prober = prober
        self._notifier = notifier
        self._probe_timeout = probe_timeout
        self._executor = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="command")
            if run_async
            else None
        )

    # -- operations ----------------------------------------------------------

    def add(self, user_id: int, code: str) -> tuple[Subscription, bool, ProbeResult]:
        """Probe ``code`` and start tracking it. Raises ProbeError before any write."""
        result = self._prober.probe(code, self._probe_timeout)
        subscription, is_new = self._store.add_subscription(user_id, code, result.display_title)
        return subscription, is_new, result

    def remove(self, user_id: int, code: str) -> bool:
        return self._store.deactivate_subscription(user_id, code)

    def list_subscriptions(self, user_id: int) -> list[Subscription]:
        return self._store.list_user_subscriptions(user_id)

    def check_now(self, code: str, user_id: Optional[int] = None) -> ProbeResult:
        """Probe ``code`` immediately.

        If the requesting user tracks the code under a stale title, the cached
        title is refreshed. Nothing else is written.
        """
        result = self._prober.probe(code, self._probe_timeout)
        if user_id is not None and result.title:
            for sub in self._store.list_user_subscriptions(user_id):
                if sub.code == code and sub.title != result.title:
                    logger.info("Updating title of %s from %r to %r", code, sub.title, result.title)
                    self._store.update_title(user_id, code, result.title)
        return result

    # -- chat surface --------------------------------------------------------

    def handle_update(self, update: dict[str, Any]) -> None:
        message = update.get("message") or {}
        text = (message.get("text") or "").strip()
        if not text:
            return

        chat = message.get("chat") or {}
        chat_id = chat.get("id")
        if chat_id is None:
            return
        username = (message.get("from") or {}).get("username", "")

        if text.startswith("/"):
            self.handle_command(chat_id, text, username)
        else:
            self._reply(chat_id, f"You said: {text}")

    def handle_command(self, chat_id: int, text: str, username: str = "") -> None:
        user = self._store.get_or_create_user(chat_id, username)
        command, _, arg = text.partition(" ")
        arg = arg.strip()

        if command == "/start":
            self._reply(chat_id, START_TEXT)
        elif command == "/help":
            self._reply(chat_id, HELP_TEXT)
        elif command == "/list":
            self._handle_list(chat_id, user.id)
        elif command == "/add":
            if not arg:
                self._reply(chat_id, "Error: CRN cannot be empty")
                return
            self._reply(chat_id, "Checking class and adding to list...")
            self._background(self._handle_add, chat_id, user.id, arg)
        elif command == "/remove":
            if not arg:
                self._reply(chat_id, "Error: CRN cannot be empty")
                return
            self._handle_remove(chat_id, user.id, arg)
        elif command == "/check" or command.startswith("/check_"):
            code = arg if command == "/check" else command[len("/check_"):]
            if not code:
                self._reply(chat_id, "Error: CRN cannot be empty")
                return
            logger.info("Processing check for %s from chat %s", code, chat_id)
            self._reply(chat_id, "Checking...")
            self._background(self._handle_check, chat_id, user.id, code)
        else:
            self._reply(chat_id, UNKNOWN_COMMAND_TEXT)

    def _handle_add(self, chat_id: int, user_id: int, code: str) -> None:
        try:
            subscription, is_new, result = self.add(user_id, code)
        except ProbeError as e:
            logger.warning("Add failed for %s: %s", code, e.reason)
            self._reply(
                chat_id,
                f"Error checking class for CRN {code}:\n\nError: {e.reason}\n\n"
                "Please verify the CRN is correct and try again.",
            )
            return
        except Exception as e:
            logger.exception("Failed to add %s for user %d", code, user_id)
            self._reply(chat_id, f"Error adding CRN to tracking list: {e}")
            return

        if is_new:
            self._reply(chat_id, f"Added CRN {code} ({subscription.title}) to your tracking list.")
        else:
            self._reply(chat_id, f"CRN {code} ({subscription.title}) is already in your tracking list.")

    def _handle_remove(self, chat_id: int, user_id: int, code: str) -> None:
        try:
            removed = self.remove(user_id, code)
        except Exception as e:
            logger.exception("Failed to remove %s for user %d", code, user_id)
            self._reply(chat_id, f"Error removing CRN from tracking list: {e}")
            return

        if removed:
            self._reply(chat_id, f"Removed CRN {code} from your tracking list.")
        else:
            self._reply(chat_id, f"CRN {code} is not in your tracking list.")

    def _handle_list(self, chat_id: int, user_id: int) -> None:
        try:
            subscriptions = self.list_subscriptions(user_id)
        except Exception as e:
            logger.exception("Failed to list subscriptions for user %d", user_id)
            self._reply(chat_id, f"Error retrieving tracked CRNs: {e}")
            return

        if not subscriptions:
            self._reply(chat_id, "You are not tracking any classes.")
            return
        lines = ["You are tracking the following classes:"]
        lines.extend(f"- {sub.code} ({sub.title})" for sub in subscriptions)
        self._reply(chat_id, "\n".join(lines))

    def _handle_check(self, chat_id: int, user_id: int, code: str) -> None:
        try:
            result = self.check_now(code, user_id)
        except ProbeError as e:
            logger.warning("Check failed for %s: %s", code, e.reason)
            self._reply(
                chat_id,
                f"Error checking class availability for CRN {code}:\n\nError: {e.reason}\n\n"
                "Please try again or contact support if the issue persists.",
            )
            return

        self._reply(
            chat_id,
            f"Class CRN {result.code or code}:\nTitle: {result.display_title}\n"
            f"Seats Available: {result.seats}",
        )

    def _reply(self, chat_id: int, text: str) -> None:
        self._notifier.deliver(chat_id, text)

    def _background(self, fn: Callable[..., None], *args) -> Optional[Future]:
        if self._executor is None:
            _run_logged(fn, *args)
            return None
        return self._executor.submit(_run_logged, fn, *args)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)


def poll_updates_once(notifier: TelegramNotifier, processor: CommandProcessor, offset: int) -> int:
    """Fetch and process one batch of updates. Returns the next offset.

    A failing update is logged and skipped so it is not redelivered forever.
    """
    for update in notifier.get_updates(offset, limit=100):
        try:
            processor.handle_update(update)
        except NotifyError as e:
            logger.warning("Could not reply to update %s: %s", update.get("update_id"), e)
        except Exception:
            logger.exception("Error processing update %s", update.get("update_id"))
        update_id = update.get("update_id", -1)
        if update_id >= offset:
            offset = update_id + 1
    return offset


def _run_logged(fn: Callable[..., None], *args) -> None:
    try:
        fn(*args)
    except NotifyError as e:
        logger.warning("Could not send reply: %s", e)
    except Exception:
        logger.exception("Command handler %s failed", fn.__name__)
