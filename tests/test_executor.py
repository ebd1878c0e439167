"""
Tests for the action executor.

The executor must never raise: every page failure comes back as an
outcome carrying an ExecutionError.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from browser_pilot.executor import ActionExecutor
from browser_pilot.types import (
    ClickAction,
    DoneAction,
    ErrorCode,
    ExtractAction,
    NavigateAction,
    TypeAction,
    WaitAction,
)


@pytest.fixture
def executor(config):
    return ActionExecutor(config)


class TestNavigate:

    @pytest.mark.asyncio
    async def test_adds_scheme_and_waits_for_network_idle(self, executor, page):
        outcome = await executor.execute(page, NavigateAction(url="example.com"))

        assert outcome.success
        page.goto.assert_awaited_once()
        assert page.goto.await_args.args[0] == "https://example.com"
        assert page.goto.await_args.kwargs["wait_until"] == "domcontentloaded"
        page.wait_for_load_state.assert_awaited_with("networkidle", timeout=50)

    @pytest.mark.asyncio
    async def test_network_never_idle_is_not_a_failure(self, executor, page):
        page.wait_for_load_state.side_effect = PlaywrightTimeoutError("still polling")

        outcome = await executor.execute(page, NavigateAction(url="https://example.com"))

        assert outcome.success
        assert outcome.error is None

    @pytest.mark.asyncio
    async def test_goto_error_is_navigation_failed(self, executor, page):
        page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://nope.invalid\nCall log: ...")

        outcome = await executor.execute(page, NavigateAction(url="https://nope.invalid"))

        assert not outcome.success
        assert outcome.error.code is ErrorCode.NAVIGATION_FAILED
        assert "ERR_NAME_NOT_RESOLVED" in outcome.error.message
        assert "Call log" not in outcome.error.message


class TestClickAndType:

    @pytest.mark.asyncio
    async def test_click(self, executor, page):
        outcome = await executor.execute(page, ClickAction(selector="#more"))

        assert outcome.success
        page.locator.assert_called_with("#more")
        page.element.click.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_text_selector_is_normalised(self, executor, page):
        await executor.execute(page, ClickAction(selector="Sign in now"))

        page.locator.assert_called_with('text="Sign in now"')

    @pytest.mark.asyncio
    async def test_click_selector_not_found(self, executor, page):
        page.element.wait_for.side_effect = PlaywrightTimeoutError("Timeout 50ms exceeded")

        outcome = await executor.execute(page, ClickAction(selector="#missing"))

        assert not outcome.success
        assert outcome.error.code is ErrorCode.SELECTOR_NOT_FOUND
        assert "#missing" in outcome.message
        page.element.click.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_type_fills_text(self, executor, page):
        outcome = await executor.execute(page, TypeAction(selector="input[name=q]", text="AI agents"))

        assert outcome.success
        page.element.fill.assert_awaited_once()
        assert page.element.fill.await_args.args[0] == "AI agents"

    @pytest.mark.asyncio
    async def test_type_selector_not_found(self, executor, page):
        page.element.wait_for.side_effect = PlaywrightTimeoutError("Timeout")

        outcome = await executor.execute(page, TypeAction(selector="#q", text="x"))

        assert outcome.error.code is ErrorCode.SELECTOR_NOT_FOUND
        page.element.fill.assert_not_awaited()


class TestExtract:

    @pytest.mark.asyncio
    async def test_extract_visible_text_without_selector(self, executor, page):
        outcome = await executor.execute(page, ExtractAction(key="headline"))

        assert outcome.success
        assert outcome.extracted == ("headline", "Top headline of the day")

    @pytest.mark.asyncio
    async def test_extract_with_selector(self, executor, page):
        outcome = await executor.execute(page, ExtractAction(key="headline", selector="h1"))

        assert outcome.extracted == ("headline", "Top headline")

    @pytest.mark.asyncio
    async def test_extract_selector_not_found(self, executor, page):
        page.element.wait_for.side_effect = PlaywrightTimeoutError("Timeout")

        outcome = await executor.execute(page, ExtractAction(key="headline", selector="h1.gone"))

        assert outcome.extracted is None
        assert outcome.error.code is ErrorCode.SELECTOR_NOT_FOUND


class TestWaitAndDone:

    @pytest.mark.asyncio
    async def test_wait(self, executor, page):
        outcome = await executor.execute(page, WaitAction())

        assert outcome.success
        assert outcome.message == "Waited 0ms"

    @pytest.mark.asyncio
    async def test_done_has_no_side_effects(self, executor, page):
        outcome = await executor.execute(page, DoneAction())

        assert outcome.success
        page.goto.assert_not_awaited()
        page.locator.assert_not_called()


class TestErrorNormalisation:

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_page_error(self, executor, page):
        page.element.click.side_effect = RuntimeError("Target page, context or browser has been closed")

        outcome = await executor.execute(page, ClickAction(selector="#more"))

        assert outcome.error.code is ErrorCode.PAGE_ERROR
        assert "RuntimeError" in outcome.message

    @pytest.mark.asyncio
    async def test_playwright_timeout_after_resolution(self, executor, page):
        page.element.click.side_effect = PlaywrightTimeoutError("element is not stable")

        outcome = await executor.execute(page, ClickAction(selector="#more"))

        assert outcome.error.code is ErrorCode.TIMEOUT

    @pytest.mark.asyncio
    async def test_hanging_page_call_is_bounded(self, executor, page):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        page.element.click = AsyncMock(side_effect=hang)

        outcome = await executor.execute(page, ClickAction(selector="#more"))

        assert outcome.error.code is ErrorCode.TIMEOUT
        assert "timed out" in outcome.message

    @pytest.mark.asyncio
    async def test_outcome_to_dict(self, executor, page):
        page.element.wait_for.side_effect = PlaywrightTimeoutError("Timeout")

        outcome = await executor.execute(page, ClickAction(selector="#x"))

        assert outcome.to_dict()["error"]["code"] == "selector_not_found"
