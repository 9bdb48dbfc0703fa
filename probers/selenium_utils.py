"""Chrome setup shared by browser-driven probers.

Several sweep workers start browsers at the same moment, and letting each of
them run ChromeDriverManager concurrently corrupts the downloaded archive. The
driver path is therefore resolved once, under a lock, and reused.
"""

import logging
import os
import shutil
import threading
from typing import Optional

from config import ProberConfig

logger = logging.getLogger(__name__)

_driver_path: Optional[str] = None
_lock = threading.Lock()

_WDM_CACHE_ROOT = os.path.expanduser("~/.wdm/drivers/chromedriver")

# Flags for running Chromium inside a container with no display or crash reporter
_CHROME_FLAGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-default-apps",
    "--disable-sync",
    "--disable-translate",
    "--disable-component-update",
    "--disable-crash-reporter",
    "--disable-breakpad",
    "--disable-features=TranslateUI,VizDisplayCompositor,Crashpad",
    "--blink-settings=imagesEnabled=false",
    "--log-level=3",
    "--window-size=1920,1080",
]


def _cached_driver() -> Optional[str]:
    """Newest executable chromedriver in the webdriver-manager cache, if any."""
    if not os.path.isdir(_WDM_CACHE_ROOT):
        return None
    for platform in sorted(os.listdir(_WDM_CACHE_ROOT)):
        platform_dir = os.path.join(_WDM_CACHE_ROOT, platform)
        try:
            versions = sorted(os.listdir(platform_dir), reverse=True)
        except OSError:
            continue
        for version in versions:
            version_dir = os.path.join(platform_dir, version)
            for root, _dirs, files in os.walk(version_dir):
                if "chromedriver" in files:
                    candidate = os.path.join(root, "chromedriver")
                    if os.access(candidate, os.X_OK):
                        return candidate
    return None


def resolve_driver_path() -> str:
    """Find a chromedriver: cache, then PATH, then a one-time download."""
    global _driver_path

    if _driver_path and os.path.isfile(_driver_path):
        return _driver_path

    with _lock:
        if _driver_path and os.path.isfile(_driver_path):
            return _driver_path

        path = _cached_driver() or shutil.which("chromedriver")
        if path:
            logger.info("Using chromedriver at %s", path)
        else:
            from webdriver_manager.chrome import ChromeDriverManager

            logger.info("No chromedriver found, downloading via ChromeDriverManager...")
            path = ChromeDriverManager().install()
            logger.info("Downloaded chromedriver to %s", path)

        _driver_path = path
        return path


def build_chrome_options(config: ProberConfig):
    from selenium.webdriver.chrome.options import Options

    options = Options()
    if config.chrome_binary and os.path.exists(config.chrome_binary):
        options.binary_location = config.chrome_binary
    if config.headless:
        options.add_argument("--headless=new")
    for flag in _CHROME_FLAGS:
        options.add_argument(flag)
    return options


def new_driver(config: ProberConfig, page_load_timeout: float):
    """Start a Chrome session configured for scraping."""
    from selenium import webdriver
    from selenium.webdriver.chrome.service import Service

    service = Service(executable_path=resolve_driver_path())
    driver = webdriver.Chrome(service=service, options=build_chrome_options(config))
    driver.set_page_load_timeout(page_load_timeout)
    return driver
