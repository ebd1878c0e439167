"""
Configuration management for Browser Pilot.

Provides configuration dataclass and environment variable loading.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in ("1", "true", "yes")


def get_base_dir() -> Path:
    """Get the base directory for browser pilot data."""
    return Path.home() / ".browser_pilot"


def get_runs_dir() -> Path:
    """Get the directory for run logs."""
    return get_base_dir() / "runs"


@dataclass
class AgentConfig:
    """Configuration for the browser agent."""

    # Browser settings
    headless: bool = field(default_factory=lambda: _env_flag("BROWSER_PILOT_HEADLESS"))
    viewport_width: int = 1280
    viewport_height: int = 800

    # Agent settings
    max_steps: int = 20
    policy_max_retries: int = 2

    # LLM settings
    model_endpoint: str = field(
        default_factory=lambda: os.getenv(
            "BROWSER_PILOT_ENDPOINT",
            "http://127.0.0.1:11434/v1"
        )
    )
    model: str = field(
        default_factory=lambda: os.getenv(
            "BROWSER_PILOT_MODEL",
            "llama3"
        )
    )
    api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("BROWSER_PILOT_API_KEY")
    )
    temperature: float = 0.1
    max_tokens: int = 1000

    # Timeouts (ms)
    navigation_timeout: int = 30000
    action_timeout: int = 15000
    selector_timeout: int = 5000
    network_idle_timeout: int = 5000
    perception_timeout: int = 15000
    policy_timeout: int = 90000

    # Default pause for the wait action (ms)
    wait_ms: int = 2000

    # Overall deadline for one run (ms), None for no deadline
    run_timeout: Optional[int] = None

    # Content limits
    dom_max_chars: int = 5000
    history_length: int = 8

    # Attach a screenshot to each snapshot
    capture_screenshots: bool = False

    # Write steps.jsonl under the runs directory
    persist_runs: bool = True

    # Debug mode - enables verbose logging (off by default)
    debug: bool = field(default_factory=lambda: _env_flag("BROWSER_PILOT_DEBUG"))

    def __post_init__(self):
        if self.max_steps < 1:
            raise ValueError(f"max_steps must be at least 1, got {self.max_steps}")
        if self.policy_max_retries < 0:
            raise ValueError(
                f"policy_max_retries must not be negative, got {self.policy_max_retries}"
            )
        if self.dom_max_chars < 1:
            raise ValueError(f"dom_max_chars must be positive, got {self.dom_max_chars}")

    def ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        get_base_dir().mkdir(parents=True, exist_ok=True)
        get_runs_dir().mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_cli_args(
        cls,
        headless: bool = False,
        max_steps: int = 20,
        model_endpoint: Optional[str] = None,
        model: Optional[str] = None,
        screenshots: bool = False,
        run_timeout_s: Optional[float] = None,
        no_persist: bool = False,
        debug: bool = False,
    ) -> "AgentConfig":
        """Create configuration from CLI arguments."""
        config = cls(
            headless=headless,
            max_steps=max_steps,
            capture_screenshots=screenshots,
            run_timeout=int(run_timeout_s * 1000) if run_timeout_s else None,
            persist_runs=not no_persist,
        )
        if model_endpoint:
            config.model_endpoint = model_endpoint
        if model:
            config.model = model
        if debug:
            config.debug = True
        return config


# Default configuration values for documentation
DEFAULTS = {
    "headless": False,
    "max_steps": 20,
    "model_endpoint": "http://127.0.0.1:11434/v1",
    "model": "llama3",
    "policy_max_retries": 2,
    "action_timeout_ms": 15000,
    "selector_timeout_ms": 5000,
    "dom_max_chars": 5000,
    "history_length": 8,
}
