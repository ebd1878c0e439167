"""
Action execution for Browser Pilot.

Applies one validated action to a Playwright page. Failures never escape:
every page error is turned into an ``ActionOutcome`` carrying an
``ExecutionError``.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import AgentConfig
from .perception import read_visible_text
from .types import (
    ActionOutcome,
    ClickAction,
    DoneAction,
    ErrorCode,
    ExecutionError,
    ExtractAction,
    NavigateAction,
    TypeAction,
    WaitAction,
)
from .utils import ensure_scheme, format_selector, truncate_text


logger = logging.getLogger(__name__)


def _failure(code: ErrorCode, message: str) -> ActionOutcome:
    message = truncate_text(message.strip().splitlines()[0] if message.strip() else code.value, 300)
    return ActionOutcome(
        success=False,
        message=message,
        error=ExecutionError(code=code, message=message),
    )


class ActionExecutor:
    """Executes browser actions via Playwright."""

    def __init__(self, config: AgentConfig):
        """Initialize the executor.

        Args:
            config: Agent configuration (timeouts, wait interval, text limits)
        """
        self.config = config
        self._handlers: dict[str, Callable[[Page, object], Awaitable[ActionOutcome]]] = {
            "navigate": self.navigate,
            "click": self.click,
            "type": self.type_text,
            "extract": self.extract,
            "wait": self.wait,
            "done": self.done,
        }

    async def execute(self, page: Page, action) -> ActionOutcome:
        """Execute a single action.

        Args:
            page: Page to act on
            action: Validated action

        Returns:
            ActionOutcome; ``error`` is set when the action failed
        """
        handler = self._handlers.get(action.kind)
        if handler is None:
            return _failure(ErrorCode.PAGE_ERROR, f"Unknown action: {action.kind}")

        deadline = self._deadline_ms(action.kind)
        try:
            return await asyncio.wait_for(handler(page, action), timeout=deadline / 1000)
        except asyncio.TimeoutError:
            return _failure(ErrorCode.TIMEOUT, f"{action.kind} timed out after {deadline}ms")
        except PlaywrightTimeoutError as e:
            return _failure(ErrorCode.TIMEOUT, f"Timeout: {e}")
        except PlaywrightError as e:
            code = ErrorCode.NAVIGATION_FAILED if action.kind == "navigate" else ErrorCode.PAGE_ERROR
            return _failure(code, f"{type(e).__name__}: {e}")
        except Exception as e:
            logger.debug("Unexpected error executing %s", action.kind, exc_info=True)
            return _failure(ErrorCode.PAGE_ERROR, f"{type(e).__name__}: {e}")

    def _deadline_ms(self, kind: str) -> int:
        if kind == "navigate":
            return self.config.navigation_timeout + self.config.network_idle_timeout
        if kind == "wait":
            return self.config.wait_ms + self.config.action_timeout
        return self.config.selector_timeout + self.config.action_timeout

    async def _resolve(self, page: Page, selector: str) -> Optional[Locator]:
        """Wait for the first element matching ``selector`` to be visible.

        Returns:
            The locator, or None if nothing matched within the selector timeout
        """
        locator = page.locator(format_selector(selector)).first
        try:
            await locator.wait_for(state="visible", timeout=self.config.selector_timeout)
        except PlaywrightTimeoutError:
            return None
        return locator

    async def navigate(self, page: Page, action: NavigateAction) -> ActionOutcome:
        url = ensure_scheme(action.url)
        await page.goto(url, wait_until="domcontentloaded", timeout=self.config.navigation_timeout)

        try:
            await page.wait_for_load_state("networkidle", timeout=self.config.network_idle_timeout)
        except PlaywrightTimeoutError:
            # Long-polling pages never go idle
            logger.debug("Network did not go idle on %s", url)

        return ActionOutcome(success=True, message=f"Navigated to {page.url}")

    async def click(self, page: Page, action: ClickAction) -> ActionOutcome:
        locator = await self._resolve(page, action.selector)
        if locator is None:
            return _failure(ErrorCode.SELECTOR_NOT_FOUND, f"Element not found: {action.selector}")

        await locator.click(timeout=self.config.action_timeout)

        try:
            await page.wait_for_load_state("domcontentloaded", timeout=self.config.network_idle_timeout)
        except PlaywrightTimeoutError:
            logger.debug("No load state after clicking %s", action.selector)

        return ActionOutcome(success=True, message=f"Clicked: {action.selector}")

    async def type_text(self, page: Page, action: TypeAction) -> ActionOutcome:
        locator = await self._resolve(page, action.selector)
        if locator is None:
            return _failure(ErrorCode.SELECTOR_NOT_FOUND, f"Element not found: {action.selector}")

        await locator.fill(action.text, timeout=self.config.action_timeout)
        return ActionOutcome(
            success=True,
            message=f"Typed {len(action.text)} characters into: {action.selector}",
        )

    async def extract(self, page: Page, action: ExtractAction) -> ActionOutcome:
        """Read a value for ``action.key``.

        With a selector, the inner text of the first visible match;
        otherwise the visible text of the whole page.
        """
        if action.selector:
            locator = await self._resolve(page, action.selector)
            if locator is None:
                return _failure(ErrorCode.SELECTOR_NOT_FOUND, f"Element not found: {action.selector}")
            value = (await locator.inner_text(timeout=self.config.action_timeout)).strip()
        else:
            value = await read_visible_text(page, self.config.dom_max_chars)

        return ActionOutcome(
            success=True,
            message=f"Extracted {len(value)} characters into '{action.key}'",
            extracted=(action.key, value),
        )

    async def wait(self, page: Page, action: WaitAction) -> ActionOutcome:
        await asyncio.sleep(self.config.wait_ms / 1000)
        return ActionOutcome(success=True, message=f"Waited {self.config.wait_ms}ms")

    async def done(self, page: Page, action: DoneAction) -> ActionOutcome:
        return ActionOutcome(success=True, message="Task completed")
