"""Pytest configuration and fixtures for E2E tests.

These tests drive a running server in a browser. Start it first:

    python -m askdocs.main

and point BASE_URL at it if it isn't on the default port.
"""
import os

import httpx
import pytest
from playwright.sync_api import Page


# Test configuration
BASE_URL = os.getenv("BASE_URL", "http://localhost:5000")
TEST_TIMEOUT = 30000  # 30 seconds


# Note: pytest-playwright provides these built-in options:
# --headed: Run tests in headed mode (visible browser)
# --slowmo: Slow down operations by N milliseconds
# --browser: Choose browser (chromium, firefox, webkit)


@pytest.fixture(scope="session")
def server_url() -> str:
    """Base URL of the running server; skips when nothing is listening."""
    try:
        httpx.get(f"{BASE_URL}/health/live", timeout=2.0).raise_for_status()
    except httpx.HTTPError:
        pytest.skip(f"No askdocs server reachable at {BASE_URL}")
    return BASE_URL


@pytest.fixture
def ask_page(server_url: str, page: Page) -> Page:
    """Navigate to the question page and return the page object."""
    page.goto(server_url)
    page.wait_for_load_state("networkidle")
    page.set_default_timeout(TEST_TIMEOUT)
    return page


@pytest.fixture
def sky_document(tmp_path):
    """Small document whose answer is easy to recognize."""
    path = tmp_path / "e2e_sky.txt"
    path.write_text("Facts\n\nThe sky above the e2e test is blue.\n", encoding="utf-8")
    return path
