"""Prober for the Banner class-search site, driven through a headless browser.

The registration site renders everything client side and has no usable API,
so each probe walks the UI: pick the term, search by CRN, then read the Title
and Status cells of the first result row.
"""

import logging
import time

from config import ProberConfig
from models import ProbeResult
from probers.base import BaseProber, ProbeError, parse_seats
from probers.selenium_utils import new_driver

logger = logging.getLogger(__name__)

TERM_INPUT = "#s2id_txt_term"
TERM_SEARCH_INPUT = "#s2id_autogen1_search"
TERM_GO_BUTTON = "#term-go"
KEYWORD_INPUT = "#txt_keywordlike"
SEARCH_GO_BUTTON = "#search-go"
TITLE_CELL = '[data-content="Title"]'
STATUS_CELL = '[data-content="Status"]'


class ClassSearchProber(BaseProber):
    name = "class_search"

    def __init__(self, config: ProberConfig):
        self._config = config

    def search(self, code: str, timeout: float) -> ProbeResult:
        try:
            from selenium.common.exceptions import TimeoutException, WebDriverException
            from selenium.webdriver.common.by import By
            from selenium.webdriver.common.keys import Keys
            from selenium.webdriver.support import expected_conditions as EC
            from selenium.webdriver.support.ui import WebDriverWait
        except ImportError as e:
            raise ProbeError(code, "selenium not installed") from e

        deadline = time.monotonic() + timeout

        def wait_for(condition, locator):
            remaining = max(deadline - time.monotonic(), 0.1)
            return WebDriverWait(driver, remaining).until(condition(locator))

        driver = None
        try:
            driver = new_driver(self._config, page_load_timeout=timeout)
            logger.debug("%s: opening term selection for %s", self.name, code)
            driver.get(self._config.search_url)

            term_wait = min(self._config.page_load_wait_seconds, max(deadline - time.monotonic(), 0.1))
            WebDriverWait(driver, term_wait).until(
                EC.element_to_be_clickable((By.CSS_SELECTOR, TERM_INPUT))
            ).click()

            term_box = wait_for(EC.visibility_of_element_located, (By.CSS_SELECTOR, TERM_SEARCH_INPUT))
            term_box.send_keys(self._config.term)
            time.sleep(1)  # select2 filters the term list asynchronously
            term_box.send_keys(Keys.ENTER)
            wait_for(EC.element_to_be_clickable, (By.CSS_SELECTOR, TERM_GO_BUTTON)).click()

            keyword = wait_for(EC.visibility_of_element_located, (By.CSS_SELECTOR, KEYWORD_INPUT))
            keyword.send_keys(code)
            wait_for(EC.element_to_be_clickable, (By.CSS_SELECTOR, SEARCH_GO_BUTTON)).click()

            title_el = wait_for(EC.presence_of_element_located, (By.CSS_SELECTOR, TITLE_CELL))
            status_el = driver.find_element(By.CSS_SELECTOR, STATUS_CELL)
            title = title_el.text
            status = status_el.text
        except TimeoutException as e:
            raise ProbeError(code, "page did not load in time") from e
        except WebDriverException as e:
            raise ProbeError(code, f"browser error: {e.msg or e.__class__.__name__}") from e
        finally:
            if driver:
                driver.quit()

        seats = parse_seats(status)
        logger.debug("%s: %s status=%r seats=%d", self.name, code, status, seats)
        return ProbeResult(code=code, seats=seats, title=title)
