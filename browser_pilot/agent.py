"""
Agent core for Browser Pilot.

Provides the perceive, decide, execute loop that drives a page toward a
goal and assembles the run's result.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from playwright.async_api import Page

from .browser import BrowserSession
from .config import AgentConfig
from .errors import InitializationError, PerceptionError, PolicyError
from .executor import ActionExecutor
from .logger import RunLogger
from .perception import SnapshotCollector
from .policy import PolicyClient
from .types import Action, AgentResult, NavigateAction, TerminationReason


logger = logging.getLogger(__name__)


@dataclass
class _Run:
    """Mutable bookkeeping for one run. Never leaves the agent."""
    goal: str
    history: list[Action] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    steps: int = 0
    error: Optional[str] = None


class BrowserAgent:
    """Drives a page toward a goal, one action at a time."""

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        policy: Optional[PolicyClient] = None,
        executor: Optional[ActionExecutor] = None,
        collector: Optional[SnapshotCollector] = None,
        enable_console: bool = True,
    ):
        """Initialize the browser agent.

        Args:
            config: Agent configuration
            policy: Decides actions; defaults to an LLM-backed PolicyClient
            executor: Applies actions; defaults to ActionExecutor
            collector: Observes the page; defaults to SnapshotCollector
            enable_console: Whether to print progress with rich
        """
        self.config = config or AgentConfig()
        self._owns_policy = policy is None
        self.policy = policy or PolicyClient(self.config)
        self.executor = executor or ActionExecutor(self.config)
        self.collector = collector or SnapshotCollector(self.config)
        self.enable_console = enable_console

        self._page: Optional[Page] = None
        self._session: Optional[BrowserSession] = None
        self._running = False

    async def init(self, page: Optional[Page] = None) -> None:
        """Bind the page the agent will drive.

        Args:
            page: An open page. Without one, a local Chromium session is
                launched and owned by the agent.

        Raises:
            InitializationError: If no usable page could be obtained
            RuntimeError: If called while a run is in progress
        """
        if self._running:
            raise RuntimeError("Cannot re-initialize while a run is in progress")
        if page is not None and page.is_closed():
            raise InitializationError("Page is closed")

        await self._release_session()

        if page is not None:
            self._page = page
            return

        session = BrowserSession(self.config)
        try:
            self._page = await session.start()
        except Exception as e:
            raise InitializationError(f"Could not launch browser: {type(e).__name__}: {e}") from e
        self._session = session

    async def close(self) -> None:
        """Release resources the agent created. A caller's page is left open."""
        if self._owns_policy:
            await self.policy.aclose()
        await self._release_session()

    async def _release_session(self) -> None:
        """Close the browser launched by a previous init(), if any."""
        if self._session is not None:
            session, self._session = self._session, None
            await session.close()
        self._page = None

    async def __aenter__(self) -> "BrowserAgent":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def run(
        self,
        goal: str,
        start_url: str,
        abort: Optional[asyncio.Event] = None,
    ) -> AgentResult:
        """Run the agent until done, out of steps, or a fatal error.

        Args:
            goal: The task in natural language
            start_url: Page to open before the first step; empty to stay put
            abort: Set by the caller to stop between steps

        Returns:
            AgentResult with history up to the last completed step

        Raises:
            InitializationError: If ``init()`` has not bound a page
            RuntimeError: If a run is already in progress on this agent
        """
        if self._page is None:
            raise InitializationError("Agent not initialized. Call init() first.")
        if self._running:
            raise RuntimeError("A run is already in progress on this agent")

        self._running = True
        try:
            return await self._run(goal, start_url, abort)
        finally:
            self._running = False

    async def _run(
        self,
        goal: str,
        start_url: str,
        abort: Optional[asyncio.Event],
    ) -> AgentResult:
        started = time.monotonic()
        run = _Run(goal=goal)
        run_logger = RunLogger(
            goal,
            enable_console=self.enable_console,
            persist=self.config.persist_runs,
        )
        run_logger.print_header(start_url)

        try:
            reason = await self._main_loop(run, start_url, abort, started, run_logger)
        except Exception as e:
            logger.exception("Agent loop crashed")
            run.error = f"Unexpected error: {type(e).__name__}: {e}"
            run_logger.print_error(run.error)
            reason = TerminationReason.CRASHED

        duration_ms = int((time.monotonic() - started) * 1000)
        result = AgentResult(
            success=reason is TerminationReason.DONE,
            data=dict(run.data),
            history=tuple(run.history),
            duration_ms=duration_ms,
            reason=reason,
            steps=run.steps,
            error=run.error,
        )
        run_logger.print_summary(result.success, reason.value, result.data, duration_ms)
        return result

    async def _main_loop(
        self,
        run: _Run,
        start_url: str,
        abort: Optional[asyncio.Event],
        started: float,
        run_logger: RunLogger,
    ) -> TerminationReason:
        """Main agent loop.

        Returns:
            Why the loop stopped
        """
        page = self._page
        deadline = None
        if self.config.run_timeout is not None:
            deadline = started + self.config.run_timeout / 1000

        pending_error: Optional[str] = None
        last_action: Optional[Action] = None

        if start_url:
            outcome = await self.executor.execute(page, NavigateAction(url=start_url))
            if outcome.error is not None:
                pending_error = f"Opening {start_url} failed: {outcome.error}"
                run_logger.print_error(pending_error)

        while True:
            if abort is not None and abort.is_set():
                run.error = "Run cancelled"
                return TerminationReason.CANCELLED
            if deadline is not None and time.monotonic() >= deadline:
                run.error = f"Run exceeded {self.config.run_timeout}ms"
                return TerminationReason.TIMEOUT
            if run.steps >= self.config.max_steps:
                run.error = "Reached maximum step limit"
                return TerminationReason.BUDGET_EXCEEDED

            run.steps += 1

            try:
                state = await self.collector.collect(page, last_action=last_action, error=pending_error)
            except PerceptionError as e:
                run.error = str(e)
                run_logger.print_error(f"Perception failed: {e}")
                return TerminationReason.PERCEPTION_ERROR

            if state.screenshot is not None:
                run_logger.save_screenshot(state.screenshot)

            try:
                action = await self.policy.decide(run.goal, state, tuple(run.history))
            except PolicyError as e:
                run.error = str(e)
                run_logger.print_error(f"Policy failed: {e}")
                return TerminationReason.POLICY_ERROR

            run_logger.print_step(run.steps, action.kind, action.params, action.thought)

            if action.kind == "done":
                run.history.append(action)
                run_logger.log_step(state.summary(), action.to_dict(), {"success": True, "message": "Task completed"})
                run_logger.print_result(True, "Task completed")
                return TerminationReason.DONE

            outcome = await self.executor.execute(page, action)
            run.history.append(action)
            run_logger.log_step(
                state.summary(),
                action.to_dict(),
                outcome.to_dict(),
                error=str(outcome.error) if outcome.error else None,
            )
            run_logger.print_result(outcome.success, outcome.message)

            if outcome.error is not None:
                # Soft failure: shown to the policy on the next step
                pending_error = f"{action.kind} failed: {outcome.error}"
            else:
                pending_error = None
                if outcome.extracted is not None:
                    key, value = outcome.extracted
                    run.data[key] = value

            last_action = action


async def run_agent(
    goal: str,
    start_url: str,
    config: Optional[AgentConfig] = None,
    abort: Optional[asyncio.Event] = None,
) -> AgentResult:
    """Launch a local browser, run one goal, and clean up.

    Args:
        goal: The task in natural language
        start_url: Page to open first
        config: Agent configuration
        abort: Optional cancellation signal

    Returns:
        AgentResult
    """
    async with BrowserAgent(config) as agent:
        await agent.init()
        return await agent.run(goal, start_url, abort=abort)
