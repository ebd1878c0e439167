"""
Exception types for Browser Pilot.

Perception and policy failures end a run; initialization failures are
raised to the caller before the loop starts. Per-action failures are not
exceptions, see ``ExecutionError`` in ``types``.
"""


class AgentError(Exception):
    """Base class for agent errors."""


class InitializationError(AgentError):
    """The page handle could not be bound before the loop started."""


class PerceptionError(AgentError):
    """The page state could not be observed."""


class PolicyError(AgentError):
    """The model did not produce a valid action."""

    def __init__(self, message: str, attempts: int = 0, last_response: str = ""):
        super().__init__(message)
        self.attempts = attempts
        self.last_response = last_response
