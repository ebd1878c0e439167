"""
Tests for the policy client and the completion client.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from browser_pilot.errors import PolicyError
from browser_pilot.policy import CompletionClient, PolicyClient
from browser_pilot.types import (
    ClickAction,
    DoneAction,
    ExtractAction,
    NavigateAction,
    State,
)


def scripted_completion(*responses):
    completion = MagicMock()
    completion.complete = AsyncMock(side_effect=list(responses))
    return completion


@pytest.fixture
def state():
    return State(url="https://news.example.com/", title="Example News", dom_snippet="Top headline")


class TestBuildMessages:

    def test_includes_goal_and_state(self, config, state):
        policy = PolicyClient(config, completion=scripted_completion())

        messages = policy.build_messages("extract the top headline", state, ())

        assert messages[0]["role"] == "system"
        user = messages[1]["content"]
        assert "extract the top headline" in user
        assert "https://news.example.com/" in user
        assert "Top headline" in user
        assert "(no previous actions)" in user
        assert "PREVIOUS ACTION FAILED" not in user

    def test_includes_previous_error(self, config, state):
        state.error = "click failed: selector_not_found: Element not found: #more"
        policy = PolicyClient(config, completion=scripted_completion())

        user = policy.build_messages("goal", state, ())[1]["content"]

        assert "PREVIOUS ACTION FAILED" in user
        assert "#more" in user

    def test_history_is_condensed(self, config, state):
        config.history_length = 2
        history = (
            NavigateAction(url="https://a.example"),
            ClickAction(selector="#one"),
            ExtractAction(key="headline"),
        )
        policy = PolicyClient(config, completion=scripted_completion())

        user = policy.build_messages("goal", state, history)[1]["content"]

        assert "3 total" in user
        assert "https://a.example" not in user
        assert "2. click(selector='#one')" in user
        assert "3. extract(key='headline')" in user

    def test_screenshot_sent_as_image(self, config, state):
        state.screenshot = b"\x89PNG"
        policy = PolicyClient(config, completion=scripted_completion())

        content = policy.build_messages("goal", state, ())[1]["content"]

        assert content[0]["type"] == "text"
        assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")


class TestDecide:

    @pytest.mark.asyncio
    async def test_valid_response(self, config, state):
        completion = scripted_completion(
            '{"thought": "open it", "kind": "navigate", "params": {"url": "https://x.example"}}'
        )
        policy = PolicyClient(config, completion=completion)

        action = await policy.decide("goal", state, ())

        assert action == NavigateAction(thought="open it", url="https://x.example")
        completion.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_with_validation_error(self, config, state):
        completion = scripted_completion(
            "I will click the button",
            '{"kind": "click", "params": {}}',
            '{"thought": "finished", "kind": "done", "params": {}}',
        )
        policy = PolicyClient(config, completion=completion)

        action = await policy.decide("goal", state, ())

        assert isinstance(action, DoneAction)
        assert completion.complete.await_count == 3
        repair = completion.complete.await_args_list[2].args[0]
        assert repair[-2] == {"role": "assistant", "content": '{"kind": "click", "params": {}}'}
        assert "rejected" in repair[-1]["content"]
        assert "selector" in repair[-1]["content"]

    @pytest.mark.asyncio
    async def test_repair_messages_do_not_accumulate(self, config, state):
        completion = scripted_completion("nope", "still nope", '{"kind": "wait", "params": {}}')
        policy = PolicyClient(config, completion=completion)

        await policy.decide("goal", state, ())

        sizes = [len(call.args[0]) for call in completion.complete.await_args_list]
        assert sizes == [2, 4, 4]

    @pytest.mark.asyncio
    async def test_gives_up_after_retry_bound(self, config, state):
        completion = scripted_completion("a", "b", "c", "d")
        policy = PolicyClient(config, completion=completion)

        with pytest.raises(PolicyError) as exc_info:
            await policy.decide("goal", state, ())

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_response == "c"
        assert completion.complete.await_count == 3

    @pytest.mark.asyncio
    async def test_zero_retries(self, config, state):
        config.policy_max_retries = 0
        completion = scripted_completion("garbage", '{"kind": "done"}')
        policy = PolicyClient(config, completion=completion)

        with pytest.raises(PolicyError):
            await policy.decide("goal", state, ())
        assert completion.complete.await_count == 1

    @pytest.mark.asyncio
    async def test_transport_error_is_policy_error(self, config, state):
        completion = scripted_completion(httpx.ConnectError("connection refused"))
        policy = PolicyClient(config, completion=completion)

        with pytest.raises(PolicyError, match="ConnectError"):
            await policy.decide("goal", state, ())
        assert completion.complete.await_count == 1

    @pytest.mark.asyncio
    async def test_timeout_is_policy_error(self, config, state):
        config.policy_timeout = 20

        async def hang(messages):
            await asyncio.sleep(10)

        completion = MagicMock()
        completion.complete = AsyncMock(side_effect=hang)
        policy = PolicyClient(config, completion=completion)

        with pytest.raises(PolicyError, match="timed out"):
            await policy.decide("goal", state, ())

    @pytest.mark.asyncio
    async def test_injected_completion_is_not_closed(self, config):
        completion = scripted_completion()
        completion.aclose = AsyncMock()
        policy = PolicyClient(config, completion=completion)

        await policy.aclose()

        completion.aclose.assert_not_awaited()


def _chat_response(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


class TestCompletionClient:

    @pytest.mark.asyncio
    async def test_posts_chat_completion(self, config):
        config.api_key = "sk-test"
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _chat_response('{"kind": "done"}')

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = CompletionClient(config, http_client=http)
            content = await client.complete([{"role": "user", "content": "hi"}])

        assert content == '{"kind": "done"}'
        assert seen[0].url.path.endswith("/chat/completions")
        assert seen[0].headers["Authorization"] == "Bearer sk-test"
        body = json.loads(seen[0].content)
        assert body["model"] == config.model
        assert body["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, config):
        responses = [httpx.Response(429), _chat_response("ok")]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = CompletionClient(config, http_client=http)
            with patch("browser_pilot.policy.asyncio.sleep", new=AsyncMock()) as sleep:
                content = await client.complete([{"role": "user", "content": "hi"}])

        assert content == "ok"
        sleep.assert_awaited_once_with(4)

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, config):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, json={"error": "bad model"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = CompletionClient(config, http_client=http)
            with pytest.raises(httpx.HTTPStatusError):
                await client.complete([{"role": "user", "content": "hi"}])

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_payload(self, config):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = CompletionClient(config, http_client=http)
            with pytest.raises(httpx.DecodingError):
                await client.complete([{"role": "user", "content": "hi"}])
