"""
Browser Pilot - an LLM-driven browser agent loop.

Observes a Playwright page, asks a model for the next action, executes
it, and repeats until the goal is done or the step budget runs out.
"""

__version__ = "0.1.0"
__author__ = "Browser Pilot Contributors"

from .agent import BrowserAgent, run_agent
from .config import AgentConfig
from .errors import AgentError, InitializationError, PerceptionError, PolicyError
from .types import AgentResult, ExecutionError, State, TerminationReason

__all__ = [
    "AgentConfig",
    "AgentError",
    "AgentResult",
    "BrowserAgent",
    "ExecutionError",
    "InitializationError",
    "PerceptionError",
    "PolicyError",
    "State",
    "TerminationReason",
    "run_agent",
]
