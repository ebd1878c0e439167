"""
Shared fixtures: a mocked Playwright page and a quiet test config.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from browser_pilot.config import AgentConfig


@pytest.fixture
def config():
    """Config with short timeouts and no run directory."""
    return AgentConfig(
        max_steps=5,
        wait_ms=0,
        selector_timeout=50,
        action_timeout=200,
        network_idle_timeout=50,
        navigation_timeout=200,
        perception_timeout=1000,
        policy_timeout=1000,
        persist_runs=False,
        api_key=None,
    )


@pytest.fixture
def page():
    """A mocked async Playwright page with one resolvable element."""
    page = MagicMock()
    page.is_closed.return_value = False
    page.url = "https://news.example.com/"
    page.title = AsyncMock(return_value="Example News")
    page.evaluate = AsyncMock(return_value="Top headline   of the day")
    page.goto = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.screenshot = AsyncMock(return_value=b"\x89PNG")

    element = MagicMock()
    element.wait_for = AsyncMock()
    element.click = AsyncMock()
    element.fill = AsyncMock()
    element.inner_text = AsyncMock(return_value="  Top headline  ")
    page.locator.return_value.first = element
    page.element = element
    return page
