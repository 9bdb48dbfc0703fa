"""Availability sweep: probe every active subscription and notify each user once."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone

from config import AppConfig, DeliveryFailurePolicy
from models import (
    OutcomeKind,
    Subscription,
    SweepOutcome,
    SweepReport,
    format_availability_message,
)
from probers.base import BaseProber, ProbeError
from state import TrackingStore
from telegram_notifier import TelegramNotifier

logger = logging.getLogger(__name__)


class SweepFetchError(Exception):
    """The active subscriptions could not be loaded, so the sweep did nothing."""


class NotifiedSet:
    """User ids that have been claimed for notification in the current sweep.

    ``claim`` is the single check-and-insert step; two tasks racing for the
    same user can never both win it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._user_ids: set[int] = set()

    def claim(self, user_id: int) -> bool:
        """Add ``user_id``. Returns False if it was already present."""
        with self._lock:
            if user_id in self._user_ids:
                return False
            self._user_ids.add(user_id)
            return True

    def release(self, user_id: int) -> None:
        with self._lock:
            self._user_ids.discard(user_id)

    def __contains__(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._user_ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._user_ids)


class Checker:
    def __init__(
        self,
        store: TrackingStore,
        prober: BaseProber,
        notifier: TelegramNotifier,
        config: AppConfig,
    ):
        self._store = store
        self._prober = prober
        self._notifier = notifier
        self._probe_timeout = config.probe_timeout_seconds
        self._max_workers = max(1, config.max_workers)
        self._policy = config.delivery_failure_policy

    def run_sweep(self) -> SweepReport:
        """Probe all active subscriptions once and wait for every task to finish.

        Raises SweepFetchError only when the subscriptions cannot be loaded;
        per-subscription failures are recorded in the report instead.
        """
        report = SweepReport(started_at=datetime.now(timezone.utc))

        try:
            subscriptions = self._store.list_active_subscriptions()
        except Exception as e:
            raise SweepFetchError(f"failed to get active subscriptions: {e}") from e

        if not subscriptions:
            logger.debug("No active subscriptions, nothing to probe")
            report.finished_at = datetime.now(timezone.utc)
            return report

        logger.info("Probing %d subscription(s)...", len(subscriptions))
        notified = NotifiedSet()

        with ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(subscriptions)),
            thread_name_prefix="sweep",
        ) as executor:
            future_to_sub = {
                executor.submit(self._check_subscription, sub, notified): sub
                for sub in subscriptions
            }
            for future in as_completed(future_to_sub):
                sub = future_to_sub[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    logger.exception("Unexpected error checking %s for user %d", sub.code, sub.user_id)
                    outcome = SweepOutcome(subscription=sub, kind=OutcomeKind.PROBE_ERROR, error=str(e))
                report.outcomes.append(outcome)
                _log_outcome(outcome)

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            "Sweep finished: %d probed, %d notified, %d failed",
            len(report.outcomes),
            report.count(OutcomeKind.NOTIFIED),
            len(report.failures),
        )
        return report

    def _check_subscription(self, sub: Subscription, notified: NotifiedSet) -> SweepOutcome:
        try:
            result = self._prober.probe(sub.code, self._probe_timeout)
        except ProbeError as e:
            return SweepOutcome(subscription=sub, kind=OutcomeKind.PROBE_ERROR, error=e.reason)

        if result.seats <= 0:
            return SweepOutcome(subscription=sub, kind=OutcomeKind.UNAVAILABLE, seats=result.seats)

        if not notified.claim(sub.user_id):
            return SweepOutcome(subscription=sub, kind=OutcomeKind.ALREADY_NOTIFIED, seats=result.seats)

        try:
            user = self._store.get_user_by_id(sub.user_id)
        except Exception as e:
            notified.release(sub.user_id)
            return SweepOutcome(
                subscription=sub, kind=OutcomeKind.LOOKUP_ERROR, seats=result.seats, error=str(e)
            )

        message = format_availability_message(sub.code, sub.title, result.seats)
        try:
            self._notifier.deliver(user.external_id, message, retry=False)
        except Exception as e:
            if self._policy == DeliveryFailurePolicy.RELEASE:
                notified.release(sub.user_id)
            return SweepOutcome(
                subscription=sub, kind=OutcomeKind.DELIVERY_ERROR, seats=result.seats, error=str(e)
            )

        return SweepOutcome(subscription=sub, kind=OutcomeKind.NOTIFIED, seats=result.seats)


def _log_outcome(outcome: SweepOutcome) -> None:
    sub = outcome.subscription
    if outcome.kind == OutcomeKind.PROBE_ERROR:
        logger.warning("Error checking class %s: %s", sub.code, outcome.error)
    elif outcome.kind == OutcomeKind.LOOKUP_ERROR:
        logger.warning("Error getting user %d: %s", sub.user_id, outcome.error)
    elif outcome.kind == OutcomeKind.DELIVERY_ERROR:
        logger.warning("Error sending message to user %d for %s: %s", sub.user_id, sub.code, outcome.error)
    elif outcome.kind == OutcomeKind.NOTIFIED:
        logger.info("Notified user %d: %s has %d seat(s)", sub.user_id, sub.code, outcome.seats)
    else:
        logger.debug("%s for user %d: %s", sub.code, sub.user_id, outcome.kind.value)
