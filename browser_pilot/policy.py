"""
Policy client for Browser Pilot.

Turns (goal, state, history) into one validated action by asking an
OpenAI-compatible chat completion endpoint, with JSON recovery and
repair re-prompts for malformed responses.
"""

import asyncio
import base64
import json
import logging
import re
from typing import Any, Optional, Sequence

import httpx
from pydantic import ValidationError

from .config import AgentConfig
from .errors import PolicyError
from .types import Action, State, action_from_dict
from .utils import extract_json_from_response, truncate_text


logger = logging.getLogger(__name__)


class CompletionClient:
    """Async client for OpenAI-compatible chat completion APIs."""

    def __init__(self, config: AgentConfig, http_client: Optional[httpx.AsyncClient] = None):
        """Initialize the completion client.

        Args:
            config: Agent configuration
            http_client: Optional preconfigured client (owned by the caller)
        """
        self.config = config
        self.endpoint = config.model_endpoint.rstrip("/")
        self.model = config.model

        self.headers = {"Content-Type": "application/json"}
        if config.api_key:
            self.headers["Authorization"] = f"Bearer {config.api_key}"

        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=60.0)

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def complete(self, messages: list[dict[str, Any]], max_retries: int = 3) -> str:
        """Send a chat completion request with retry on rate limits.

        Args:
            messages: List of chat messages
            max_retries: Maximum retries on rate limit and transport errors

        Returns:
            The assistant's response content

        Raises:
            httpx.HTTPError: On network errors after retries exhausted
        """
        url = f"{self.endpoint}/chat/completions"
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

        last_error: Optional[httpx.HTTPError] = None
        for attempt in range(max_retries + 1):
            if attempt > 0:
                # Exponential backoff: 4s, 8s, 16s
                await asyncio.sleep(2 ** (attempt + 1))

            try:
                response = await self.client.post(url, json=payload, headers=self.headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                last_error = e
                retryable = e.response.status_code == 429 or e.response.status_code >= 500
                if retryable and attempt < max_retries:
                    logger.debug("Completion returned %d, retrying", e.response.status_code)
                    continue
                raise
            except httpx.TransportError as e:
                last_error = e
                if attempt < max_retries:
                    logger.debug("Completion transport error, retrying: %s", e)
                    continue
                raise

            try:
                data = response.json()
                return data["choices"][0]["message"]["content"] or ""
            except (ValueError, KeyError, IndexError, TypeError) as e:
                raise httpx.DecodingError(
                    f"Unexpected completion payload: {e}", request=response.request
                ) from e

        raise last_error


def parse_json_with_recovery(raw_response: str) -> dict[str, Any]:
    """Parse JSON with multiple recovery strategies.

    Args:
        raw_response: Raw response that should contain JSON

    Returns:
        Parsed JSON object

    Raises:
        json.JSONDecodeError: If all parsing attempts fail
    """
    json_str = extract_json_from_response(raw_response)
    if json_str:
        try:
            return json.loads(json_str)
        except json.JSONDecodeError:
            pass

    cleaned = raw_response.strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Trailing commas before } or ]
    cleaned = re.sub(r',\s*([}\]])', r'\1', cleaned)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    start = cleaned.find('{')
    end = cleaned.rfind('}')
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            pass

    raise json.JSONDecodeError("Could not parse JSON from response", raw_response, 0)


def parse_action(raw_response: str) -> Action:
    """Parse and validate a model response into an action.

    Raises:
        json.JSONDecodeError: If no JSON object can be recovered
        pydantic.ValidationError: If the object is not a valid action
        TypeError: If the JSON is not an object
    """
    return action_from_dict(parse_json_with_recovery(raw_response))


class PolicyClient:
    """Decides the next action from the goal, the current state and history."""

    SYSTEM_PROMPT = """You are a precise browser automation agent working toward a goal on a live web page.

You receive the current page state and must respond with a SINGLE next action.

CRITICAL: Respond with ONLY valid JSON, no markdown, no prose outside the JSON.

Schema:
{
  "thought": "short reasoning for this step",
  "kind": "navigate|click|type|extract|wait|done",
  "params": { ... }
}

Params by kind (give exactly these, nothing else):
- navigate: { "url": "https://..." }
- click: { "selector": "css selector or visible text" }
- type: { "selector": "...", "text": "..." }
- extract: { "key": "name to store the value under" } or { "key": "...", "selector": "..." }
  Without a selector the page's visible text is stored.
- wait: {}
- done: {}

Rules:
1. If the previous action failed, do NOT repeat it unchanged. Try another selector or approach.
2. Use "extract" to record every value the goal asks for before finishing.
3. Choose "done" as soon as the goal is achieved."""

    REPAIR_PROMPT = """Your previous response was rejected: {error}

Respond again with ONLY one valid JSON object of the form
{{"thought": "...", "kind": "navigate|click|type|extract|wait|done", "params": {{...}}}}
with exactly the params required by the kind."""

    def __init__(self, config: AgentConfig, completion: Optional[CompletionClient] = None):
        """Initialize the policy client.

        Args:
            config: Agent configuration
            completion: Completion capability, defaults to an HTTP client
                for ``config.model_endpoint``
        """
        self.config = config
        self._owns_completion = completion is None
        self.completion = completion or CompletionClient(config)

    async def aclose(self) -> None:
        if self._owns_completion:
            await self.completion.aclose()

    def build_messages(self, goal: str, state: State, history: Sequence[Action]) -> list[dict[str, Any]]:
        """Build the chat messages for one decision.

        Args:
            goal: The task to accomplish
            state: Current page state
            history: All actions executed so far

        Returns:
            List of chat messages
        """
        feedback = ""
        if state.error:
            feedback = (
                "PREVIOUS ACTION FAILED:\n"
                f"{state.error}\n"
                "Do NOT repeat the same failing action.\n\n"
            )

        state_text = f"""Goal: {goal}

Current Page State:
- URL: {state.url}
- Title: {state.title}

Visible Text (truncated):
{state.dom_snippet or '(empty)'}

Recent Actions ({len(history)} total):
{self._format_history(history)}

{feedback}What is your next action? Respond with JSON only."""

        if state.screenshot is not None:
            encoded = base64.b64encode(state.screenshot).decode("ascii")
            content: Any = [
                {"type": "text", "text": state_text},
                {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{encoded}"}},
            ]
        else:
            content = state_text

        return [
            {"role": "system", "content": self.SYSTEM_PROMPT},
            {"role": "user", "content": content},
        ]

    def _format_history(self, history: Sequence[Action]) -> str:
        """Condense the last ``history_length`` actions for the prompt."""
        if not history:
            return "(no previous actions)"

        recent = history[-self.config.history_length:]
        offset = len(history) - len(recent)
        lines = []
        for i, action in enumerate(recent, start=offset + 1):
            params = ", ".join(
                f"{k}={truncate_text(str(v), 80)!r}" for k, v in action.params.items()
            )
            lines.append(f"{i}. {action.kind}({params})")
        return "\n".join(lines)

    async def decide(self, goal: str, state: State, history: Sequence[Action]) -> Action:
        """Get the next action from the model.

        Args:
            goal: The task to accomplish
            state: Current page state
            history: All actions executed so far

        Returns:
            Validated action

        Raises:
            PolicyError: If no valid action was produced within the retry
                bound, or the completion service failed or timed out
        """
        base_messages = self.build_messages(goal, state, history)
        messages = base_messages
        max_attempts = self.config.policy_max_retries + 1
        timeout = self.config.policy_timeout / 1000
        last_error: Optional[Exception] = None
        raw_response = ""

        for attempt in range(1, max_attempts + 1):
            try:
                raw_response = await asyncio.wait_for(
                    self.completion.complete(messages), timeout=timeout
                )
            except asyncio.TimeoutError as e:
                raise PolicyError(
                    f"Completion timed out after {self.config.policy_timeout}ms",
                    attempts=attempt,
                ) from e
            except httpx.HTTPError as e:
                raise PolicyError(
                    f"Completion request failed: {type(e).__name__}: {e}",
                    attempts=attempt,
                ) from e

            try:
                return parse_action(raw_response)
            except (json.JSONDecodeError, ValidationError, TypeError) as e:
                last_error = e
                logger.debug("Invalid action on attempt %d/%d: %s", attempt, max_attempts, e)

            messages = base_messages + [
                {"role": "assistant", "content": raw_response},
                {"role": "user", "content": self.REPAIR_PROMPT.format(error=_short_error(last_error))},
            ]

        raise PolicyError(
            f"No valid action after {max_attempts} attempts: {_short_error(last_error)}",
            attempts=max_attempts,
            last_response=raw_response,
        )


def _short_error(error: Optional[Exception]) -> str:
    if error is None:
        return "unknown error"
    if isinstance(error, ValidationError):
        parts = []
        for item in error.errors():
            loc = ".".join(str(p) for p in item.get("loc", ()))
            parts.append(f"{loc}: {item.get('msg', '')}" if loc else item.get("msg", ""))
        return truncate_text("; ".join(parts), 500)
    return truncate_text(str(error), 500)
