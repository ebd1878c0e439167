"""
Logging and artifact management for Browser Pilot.

Handles JSONL step logging, screenshot saving, and rich console output.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import get_runs_dir
from .utils import is_password_field, slugify


logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> None:
    """Route library loggers through rich.

    Args:
        debug: Show DEBUG records instead of WARNING and above
    """
    level = logging.DEBUG if debug else logging.WARNING
    root = logging.getLogger("browser_pilot")
    root.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(show_path=False, markup=False))


class RunLogger:
    """Manages logging and artifacts for a single agent run."""

    def __init__(
        self,
        goal: str,
        enable_console: bool = True,
        persist: bool = True,
        runs_dir: Optional[Path] = None,
    ):
        """Initialize the run logger.

        Args:
            goal: The goal being executed (used for directory naming)
            enable_console: Whether to print to console
            persist: Whether to write the run directory at all
            runs_dir: Parent directory for runs, defaults to ~/.browser_pilot/runs
        """
        self.goal = goal
        self.console = Console() if enable_console else None
        self.step_count = 0
        self.run_dir: Optional[Path] = None
        self.steps_file: Optional[Path] = None
        self.screenshots_dir: Optional[Path] = None

        if persist:
            try:
                self._create_run_dir(runs_dir or get_runs_dir())
            except OSError as e:
                logger.warning("Run log disabled, could not create run directory: %s", e)

    def _create_run_dir(self, parent: Path) -> None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        run_dir = parent / f"{timestamp}_{slugify(self.goal)}"
        run_dir.mkdir(parents=True, exist_ok=True)

        screenshots_dir = run_dir / "screenshots"
        screenshots_dir.mkdir(exist_ok=True)

        steps_file = run_dir / "steps.jsonl"
        steps_file.touch()

        self.run_dir = run_dir
        self.screenshots_dir = screenshots_dir
        self.steps_file = steps_file

    @property
    def run_path(self) -> Optional[Path]:
        """Get the path to the run directory."""
        return self.run_dir

    def log_step(
        self,
        state: dict[str, Any],
        action: dict[str, Any],
        result: dict[str, Any],
        error: Optional[str] = None,
    ) -> None:
        """Append a single step to the JSONL file.

        Args:
            state: Summary of the state the action was decided from
            action: The decided action in wire shape
            result: The execution outcome
            error: Optional error message
        """
        self.step_count += 1
        if self.steps_file is None:
            return

        step_data = {
            "step": self.step_count,
            "timestamp": datetime.now().isoformat(),
            "state_summary": state,
            "action": self._sanitize_action(action),
            "result": result,
            "error": error,
        }

        try:
            with open(self.steps_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(step_data, default=str) + "\n")
        except OSError as e:
            logger.warning("Could not write step %d to %s: %s", self.step_count, self.steps_file, e)

    def _sanitize_action(self, action: dict[str, Any]) -> dict[str, Any]:
        """Remove typed passwords before logging."""
        sanitized = dict(action)
        if sanitized.get("kind") == "type":
            params = sanitized.get("params", {})
            if is_password_field(params.get("selector", "")):
                sanitized["params"] = {**params, "text": "[REDACTED]"}
        return sanitized

    def save_screenshot(self, screenshot_bytes: bytes, label: Optional[str] = None) -> Optional[Path]:
        """Save a screenshot to the screenshots directory.

        Returns:
            Path to the saved screenshot, or None when not persisting or
            the write failed
        """
        if self.screenshots_dir is None:
            return None
        label_part = f"_{slugify(label)}" if label else ""
        path = self.screenshots_dir / f"step_{self.step_count + 1:03d}{label_part}.png"
        try:
            path.write_bytes(screenshot_bytes)
        except OSError as e:
            logger.warning("Could not save screenshot %s: %s", path, e)
            return None
        return path

    def print_header(self, start_url: str) -> None:
        if not self.console:
            return

        self.console.print()
        self.console.print(Panel(
            f"[bold cyan]Goal:[/bold cyan] {self.goal}\n"
            f"[bold cyan]Start:[/bold cyan] {start_url}",
            title="Browser Pilot",
            border_style="cyan",
        ))
        self.console.print()

    def print_step(self, step: int, kind: str, params: dict[str, Any], thought: str) -> None:
        """Print a decided action to the console.

        Args:
            step: Step number (1-based)
            kind: The action kind
            params: Action parameters
            thought: The model's reasoning
        """
        if not self.console:
            return

        step_text = Text()
        step_text.append(f"Step {step}: ", style="bold")
        step_text.append(kind, style="bold cyan")

        params_str = ", ".join(f"{k}={v!r}" for k, v in params.items())
        if params_str:
            step_text.append(f"({params_str})", style="dim")

        self.console.print(step_text)
        if thought:
            self.console.print(f"  [dim]Thought:[/dim] {thought}")

    def print_result(self, success: bool, message: str) -> None:
        if not self.console:
            return

        if success:
            self.console.print(f"  [green]OK[/green] {message}")
        else:
            self.console.print(f"  [red]FAILED[/red] {message}")
        self.console.print()

    def print_error(self, error: str) -> None:
        if not self.console:
            return
        self.console.print(f"  [bold red]Error:[/bold red] {error}")

    def print_summary(self, success: bool, reason: str, data: dict[str, Any], duration_ms: int) -> None:
        """Print the run summary to console."""
        if not self.console:
            return

        table = Table(title="Run Summary", show_header=False)
        table.add_column("Property", style="dim")
        table.add_column("Value")

        status = "[green]success[/green]" if success else "[red]failed[/red]"
        table.add_row("Outcome", status)
        table.add_row("Reason", reason)
        table.add_row("Steps Executed", str(self.step_count))
        table.add_row("Duration", f"{duration_ms} ms")
        table.add_row("Extracted Keys", ", ".join(data) or "(none)")
        if self.run_dir is not None:
            table.add_row("Steps Log", str(self.steps_file))

        self.console.print()
        self.console.print(table)
