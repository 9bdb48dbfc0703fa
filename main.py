"""Main orchestrator: sweep scheduler + Telegram command loop."""

import argparse
import logging
import os
import signal
import sys
import threading

import requests

from checker import Checker
from commands import CommandProcessor, poll_updates_once
from config import get_bot_token, get_telegram_host, is_dry_run, load_config
from probers.class_search import ClassSearchProber
from scheduler import SweepScheduler
from state import TrackingStore
from telegram_notifier import NotifyError, TelegramNotifier

logger = logging.getLogger(__name__)

ERROR_BACKOFF_SECONDS = 5
SHUTDOWN_GRACE_SECONDS = 30

_shutdown = threading.Event()


def _handle_signal(signum, frame):
    logger.info("Received signal %d, shutting down gracefully...", signum)
    _shutdown.set()


def configure_logging(debug: bool = False) -> None:
    log_level = "DEBUG" if debug else os.environ.get("LOG_LEVEL", "INFO").upper()
    log_format = os.environ.get("LOG_FORMAT", "text").lower()

    if log_format == "json":
        # Structured JSON logging for production/observability
        import json as json_lib

        class JsonFormatter(logging.Formatter):
            def format(self, record):
                log_obj = {
                    "timestamp": self.formatTime(record),
                    "level": record.levelname,
                    "logger": record.name,
                    "thread": record.threadName,
                    "message": record.getMessage(),
                }
                if record.exc_info:
                    log_obj["exception"] = self.formatException(record.exc_info)
                return json_lib.dumps(log_obj)

        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.root.handlers = [handler]
        logging.root.setLevel(getattr(logging, log_level, logging.INFO))
    else:
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )

    # Selenium and urllib3 are very chatty at DEBUG
    for noisy in ("selenium", "urllib3", "WDM"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def join_scheduler(thread: threading.Thread, timeout: float) -> bool:
    """Wait for an in-flight sweep to finish. Returns False if it is still running."""
    thread.join(timeout=timeout)
    return not thread.is_alive()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Notify Telegram users when tracked classes have open seats.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    configure_logging(args.debug)
    logger.info("Starting class seat tracker")

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    config_path = os.environ.get("CONFIG_PATH", "config.json")
    env_path = os.environ.get("ENV_PATH", ".env")
    db_path = os.environ.get("DB_PATH", "tracking.db")

    config = load_config(config_path, env_path, required=False)
    token = get_bot_token()
    if not token:
        logger.error("BOT_TOKEN not set in environment variables")
        sys.exit(1)

    store = TrackingStore(db_path)
    notifier = TelegramNotifier(token, host=get_telegram_host())
    prober = ClassSearchProber(config.prober)
    checker = Checker(store, prober, notifier, config)
    scheduler = SweepScheduler(checker, config.sweep_interval_seconds)
    processor = CommandProcessor(store, prober, notifier, probe_timeout=config.probe_timeout_seconds)

    logger.info(
        "Sweeping every %ds (dry_run=%s, %d active subscription(s), policy=%s)",
        config.sweep_interval_seconds,
        is_dry_run(),
        store.count_active(),
        config.delivery_failure_policy.value,
    )
    scheduler_thread = scheduler.start_background()

    offset = 0
    try:
        while not _shutdown.is_set():
            try:
                offset = poll_updates_once(notifier, processor, offset)
            except (requests.RequestException, NotifyError) as e:
                logger.error("Error polling updates: %s", e)
                _shutdown.wait(ERROR_BACKOFF_SECONDS)
                continue
            _shutdown.wait(config.poll_interval_seconds)
    finally:
        scheduler.stop()
        processor.shutdown()
        if not join_scheduler(scheduler_thread, config.probe_timeout_seconds + SHUTDOWN_GRACE_SECONDS):
            logger.warning("Sweep still running after shutdown grace period")
        notifier.close()
        store.close()
        logger.info("Shut down cleanly")


if __name__ == "__main__":
    main()
