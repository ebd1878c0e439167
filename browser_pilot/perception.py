"""
Page perception for Browser Pilot.

Reads URL, title, a bounded excerpt of the visible text and, optionally,
a screenshot. Only an unreachable page is an error; every other read
failure leaves the corresponding field empty.
"""

import asyncio
import logging
from typing import Optional

from playwright.async_api import Page

from .config import AgentConfig
from .errors import PerceptionError
from .types import Action, State
from .utils import clean_text, truncate_text


logger = logging.getLogger(__name__)


VISIBLE_TEXT_SCRIPT = """
() => {
    if (!document.body) {
        return document.title || '';
    }

    try {
        const walker = document.createTreeWalker(
            document.body,
            NodeFilter.SHOW_TEXT,
            {
                acceptNode: (node) => {
                    const parent = node.parentElement;
                    if (!parent) return NodeFilter.FILTER_REJECT;
                    const tag = parent.tagName.toLowerCase();
                    if (['script', 'style', 'noscript'].includes(tag)) {
                        return NodeFilter.FILTER_REJECT;
                    }
                    try {
                        const style = window.getComputedStyle(parent);
                        if (style.display === 'none' || style.visibility === 'hidden') {
                            return NodeFilter.FILTER_REJECT;
                        }
                    } catch (e) {
                        return NodeFilter.FILTER_ACCEPT;
                    }
                    return NodeFilter.FILTER_ACCEPT;
                }
            }
        );

        const texts = [];
        while (walker.nextNode()) {
            const text = walker.currentNode.textContent.trim();
            if (text) texts.push(text);
        }
        return texts.join(' ') || document.body.innerText || '';
    } catch (e) {
        return document.body.innerText || document.title || '';
    }
}
"""


async def read_visible_text(
    page: Page,
    max_chars: int,
    attempts: int = 3,
    backoff: float = 0.25,
) -> str:
    """Read the page's visible text, retrying transient failures.

    Navigation can destroy the execution context mid-read, so a failed
    read is retried with a short linear backoff before giving up.

    Returns:
        Whitespace-normalised text truncated to ``max_chars``, or ``""``
    """
    last_error: Optional[Exception] = None

    for attempt in range(attempts):
        try:
            text = await page.evaluate(VISIBLE_TEXT_SCRIPT)
            return truncate_text(clean_text(text or ""), max_chars)
        except Exception as e:
            last_error = e
            if attempt < attempts - 1:
                await asyncio.sleep(backoff * (attempt + 1))

    logger.debug("Visible text unavailable after %d attempts: %s", attempts, last_error)
    return ""


class SnapshotCollector:
    """Produces a ``State`` from a live page."""

    retry_backoff = 0.25

    def __init__(self, config: AgentConfig):
        self.config = config

    async def collect(
        self,
        page: Page,
        last_action: Optional[Action] = None,
        error: Optional[str] = None,
    ) -> State:
        """Observe the page.

        Args:
            page: Page to observe
            last_action: Action executed just before this observation
            error: Failure message of ``last_action``, if any

        Returns:
            State snapshot

        Raises:
            PerceptionError: If the page is closed, its URL can't be read,
                or the snapshot exceeds the perception timeout
        """
        timeout = self.config.perception_timeout / 1000
        try:
            state = await asyncio.wait_for(self._collect(page), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise PerceptionError(
                f"Snapshot timed out after {self.config.perception_timeout}ms"
            ) from e

        state.last_action = last_action
        state.error = error
        return state

    async def _collect(self, page: Page) -> State:
        if page is None:
            raise PerceptionError("No page bound")

        try:
            closed = page.is_closed()
        except Exception as e:
            raise PerceptionError(f"Page unreachable: {e}") from e
        if closed:
            raise PerceptionError("Page is closed")

        try:
            url = page.url
        except Exception as e:
            raise PerceptionError(f"Cannot read page URL: {e}") from e

        title = await self._read_title(page)
        dom_snippet = await read_visible_text(
            page,
            self.config.dom_max_chars,
            backoff=self.retry_backoff,
        )

        screenshot = None
        if self.config.capture_screenshots:
            screenshot = await self._capture_screenshot(page)

        return State(url=url, title=title, dom_snippet=dom_snippet, screenshot=screenshot)

    async def _read_title(self, page: Page) -> str:
        try:
            return (await page.title()) or ""
        except Exception as e:
            logger.debug("Title unavailable: %s", e)
            return ""

    async def _capture_screenshot(self, page: Page) -> Optional[bytes]:
        try:
            return await page.screenshot(full_page=False)
        except Exception as e:
            logger.debug("Screenshot failed: %s", e)
            return None
