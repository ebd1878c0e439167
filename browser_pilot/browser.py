"""
Local browser session for Browser Pilot.

Launches Chromium through Playwright when the caller doesn't bring its
own page.
"""

import logging
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from .config import AgentConfig


logger = logging.getLogger(__name__)


USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"


class BrowserSession:
    """Owns a Playwright instance, one browser, one context and one page.

    Usage:
        session = BrowserSession(config)
        page = await session.start()
        ...
        await session.close()
    """

    def __init__(self, config: AgentConfig):
        self.config = config
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._closed = False

    @property
    def page(self) -> Optional[Page]:
        return self._page

    async def start(self) -> Page:
        """Launch the browser and open a page.

        Returns:
            The session's page

        Raises:
            RuntimeError: If the session has been closed
        """
        if self._closed:
            raise RuntimeError("Browser session has been closed")
        if self._page is not None:
            return self._page

        logger.debug("Launching Chromium (headless=%s)", self.config.headless)

        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self.config.headless)
            self._context = await self._browser.new_context(
                viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
                user_agent=USER_AGENT,
            )
            self._context.set_default_navigation_timeout(self.config.navigation_timeout)
            self._context.set_default_timeout(self.config.action_timeout)
            self._page = await self._context.new_page()
        except Exception:
            await self.close()
            raise

        return self._page

    async def close(self) -> None:
        """Close page, context, browser and Playwright. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        # Close in reverse order
        if self._context is not None:
            try:
                await self._context.close()
            except Exception as e:
                logger.debug("Error closing context: %s", e)
            self._context = None

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug("Error closing browser: %s", e)
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("Error stopping playwright: %s", e)
            self._playwright = None

        self._page = None

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
