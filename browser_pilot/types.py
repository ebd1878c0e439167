"""
Type definitions for Browser Pilot.

Actions are a tagged union keyed on ``kind``: each variant carries only the
parameters its kind needs, so an action that reaches the executor is always
well formed. States, outcomes and results are plain dataclasses.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _ActionBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    thought: str = Field(default="", description="Reasoning for this step")

    @property
    def params(self) -> dict[str, Any]:
        """Parameters of this action, without ``kind`` and ``thought``."""
        return self.model_dump(exclude={"kind", "thought"}, exclude_none=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape used in prompts and logs."""
        return {"thought": self.thought, "kind": self.kind, "params": self.params}


class NavigateAction(_ActionBase):
    kind: Literal["navigate"] = "navigate"
    url: str = Field(min_length=1)


class ClickAction(_ActionBase):
    kind: Literal["click"] = "click"
    selector: str = Field(min_length=1)


class TypeAction(_ActionBase):
    kind: Literal["type"] = "type"
    selector: str = Field(min_length=1)
    text: str


class ExtractAction(_ActionBase):
    """Store a value from the page under ``key``.

    Without a selector the page's visible text is used.
    """
    kind: Literal["extract"] = "extract"
    key: str = Field(min_length=1)
    selector: Optional[str] = None


class WaitAction(_ActionBase):
    kind: Literal["wait"] = "wait"


class DoneAction(_ActionBase):
    kind: Literal["done"] = "done"


Action = Annotated[
    Union[NavigateAction, ClickAction, TypeAction, ExtractAction, WaitAction, DoneAction],
    Field(discriminator="kind"),
]

_action_adapter = TypeAdapter(Action)


def action_from_dict(data: dict[str, Any]) -> Action:
    """Build a validated action from the model's JSON object.

    Accepts ``{"thought", "kind", "params": {...}}``. ``action`` is accepted
    in place of ``kind`` and null-valued params are dropped.

    Raises:
        pydantic.ValidationError: If the kind is unknown or params don't
            match what the kind requires.
    """
    if not isinstance(data, dict):
        raise TypeError(f"Expected a JSON object, got {type(data).__name__}")

    kind = data.get("kind", data.get("action"))
    params = data.get("params") or {}
    if not isinstance(params, dict):
        raise TypeError(f"'params' must be an object, got {type(params).__name__}")

    flat = {k: v for k, v in params.items() if v is not None}
    flat["kind"] = kind
    flat["thought"] = data.get("thought") or ""
    return _action_adapter.validate_python(flat)


class ErrorCode(str, Enum):
    """Categories of a failed action."""
    SELECTOR_NOT_FOUND = "selector_not_found"
    NAVIGATION_FAILED = "navigation_failed"
    TIMEOUT = "timeout"
    PAGE_ERROR = "page_error"


@dataclass(frozen=True)
class ExecutionError:
    """A single action failed. Recoverable; fed back to the policy."""
    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


@dataclass
class ActionOutcome:
    """Result of executing one action."""
    success: bool
    message: str
    extracted: Optional[tuple[str, Any]] = None
    error: Optional[ExecutionError] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
        }
        if self.extracted is not None:
            result["extracted"] = {self.extracted[0]: self.extracted[1]}
        if self.error is not None:
            result["error"] = {"code": self.error.code.value, "message": self.error.message}
        return result


@dataclass
class State:
    """Point-in-time observation of the page.

    Attributes:
        url: Current page URL
        title: Page title
        dom_snippet: Truncated visible text of the page
        screenshot: PNG bytes, when captured
        last_action: The action executed just before this observation
        error: Failure of ``last_action``, if it failed
    """
    url: str = ""
    title: str = ""
    dom_snippet: str = ""
    screenshot: Optional[bytes] = None
    last_action: Optional[Action] = None
    error: Optional[str] = None

    def summary(self) -> dict[str, Any]:
        """Short form for step logs."""
        return {
            "url": self.url,
            "title": self.title,
            "has_screenshot": self.screenshot is not None,
            "error": self.error,
        }


class TerminationReason(str, Enum):
    """Why a run stopped."""
    DONE = "done"
    BUDGET_EXCEEDED = "budget_exceeded"
    PERCEPTION_ERROR = "perception_error"
    POLICY_ERROR = "policy_error"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    CRASHED = "crashed"


@dataclass(frozen=True)
class AgentResult:
    """Result of running the agent."""
    success: bool
    data: dict[str, Any]
    history: tuple[Action, ...]
    duration_ms: int
    reason: TerminationReason
    steps: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "success": self.success,
            "data": self.data,
            "history": [action.to_dict() for action in self.history],
            "duration_ms": self.duration_ms,
            "reason": self.reason.value,
            "steps": self.steps,
            "error": self.error,
        }
