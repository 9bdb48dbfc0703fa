"""Configuration loading and validation."""

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_TELEGRAM_HOST = "api.telegram.org"


class DeliveryFailurePolicy(str, Enum):
    """What a sweep does with a user whose notification could not be delivered.

    MARK keeps the user in the notified set, so no other available
    subscription of theirs is tried again in the same sweep.
    RELEASE drops the user from the set so a sibling subscription that
    reaches the claim afterwards may retry. A sibling that already lost the
    claim while the failed delivery was in flight is not retried this sweep.
    """

    MARK = "mark"
    RELEASE = "release"


class ProberConfig(BaseModel):
    search_url: str = (
        "https://bxeregprod.oit.nd.edu/StudentRegistration/ssb/term/termSelection?mode=search"
    )
    term: str = "Fall Semester 2025"
    chrome_binary: Optional[str] = "/usr/bin/chromium"
    headless: bool = True
    page_load_wait_seconds: float = 14.0


class AppConfig(BaseModel):
    sweep_interval_seconds: int = 180
    probe_timeout_seconds: float = 90.0
    max_workers: int = 8
    delivery_failure_policy: DeliveryFailurePolicy = DeliveryFailurePolicy.MARK
    poll_interval_seconds: float = 1.0
    prober: ProberConfig = ProberConfig()


def load_config(
    config_path: str = "config.json",
    env_path: Optional[str] = ".env",
    required: bool = True,
) -> AppConfig:
    """Load .env and config.json, return validated AppConfig."""
    if env_path:
        env_file = Path(env_path)
        if env_file.exists():
            load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        if required:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        logger.info("Config file %s not found, using defaults", config_path)
        return AppConfig()

    with open(config_file) as f:
        raw = json.load(f)

    config = AppConfig(**raw)

    if config.sweep_interval_seconds < 60:
        logger.warning(
            "Sweep interval of %ds is aggressive for a browser-driven prober",
            config.sweep_interval_seconds,
        )

    return config


def get_bot_token() -> Optional[str]:
    """Resolve the Telegram bot token from the environment."""
    token = os.environ.get("BOT_TOKEN")
    if not token:
        logger.warning("BOT_TOKEN is not set")
        return None
    return token


def get_telegram_host() -> str:
    return os.environ.get("TELEGRAM_API_HOST", DEFAULT_TELEGRAM_HOST)


def is_dry_run() -> bool:
    """Check if DRY_RUN is enabled."""
    return os.environ.get("DRY_RUN", "false").lower() in ("true", "1", "yes")
