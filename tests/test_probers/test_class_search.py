"""Tests for the class-search prober with the browser mocked out."""

from unittest.mock import MagicMock

import pytest

from config import ProberConfig
from probers import class_search
from probers.base import ProbeError
from probers.class_search import STATUS_CELL, TITLE_CELL, ClassSearchProber


def _fake_driver(title="Data Structures", status="3 of 30 seats remain."):
    cells = {TITLE_CELL: title, STATUS_CELL: status}

    def find_element(by, selector):
        element = MagicMock()
        element.text = cells.get(selector, "")
        element.is_displayed.return_value = True
        element.is_enabled.return_value = True
        return element

    driver = MagicMock()
    driver.find_element.side_effect = find_element
    return driver


@pytest.fixture
def prober():
    return ClassSearchProber(ProberConfig(page_load_wait_seconds=1))


class TestClassSearchProber:
    def test_reads_title_and_seats(self, prober, monkeypatch):
        driver = _fake_driver()
        monkeypatch.setattr(class_search, "new_driver", lambda config, page_load_timeout: driver)
        monkeypatch.setattr(class_search.time, "sleep", lambda s: None)

        result = prober.probe("12345", timeout=5)

        assert result.code == "12345"
        assert result.title == "Data Structures"
        assert result.seats == 3
        driver.get.assert_called_once_with(ProberConfig().search_url)
        driver.quit.assert_called_once()

    def test_full_class(self, prober, monkeypatch):
        driver = _fake_driver(status="0 of 30 seats remain.")
        monkeypatch.setattr(class_search, "new_driver", lambda config, page_load_timeout: driver)
        monkeypatch.setattr(class_search.time, "sleep", lambda s: None)

        assert prober.probe("12345", timeout=5).seats == 0

    def test_browser_error_is_probe_error(self, prober, monkeypatch):
        from selenium.common.exceptions import WebDriverException

        driver = _fake_driver()
        driver.get.side_effect = WebDriverException("net::ERR_NAME_NOT_RESOLVED")
        monkeypatch.setattr(class_search, "new_driver", lambda config, page_load_timeout: driver)

        with pytest.raises(ProbeError, match="browser error"):
            prober.probe("12345", timeout=5)
        driver.quit.assert_called_once()
