"""Shared fixtures for the scraper test suite."""

import pytest

from scraper import Config


@pytest.fixture
def fast_config(tmp_path) -> Config:
    """Config with all waits zeroed so tests never sleep."""
    return Config(
        list_settle_ms=0,
        scroll_interval_ms=0,
        post_scroll_ms=0,
        detail_delay_ms=0,
        output_dir=str(tmp_path),
    )
