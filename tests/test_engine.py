"""Tests for the conversation turn engine."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Annotated

import pytest

from artifact_chat import (
    APIError,
    ArtifactKind,
    CancellationToken,
    ConversationStateError,
    ErrorKind,
    Message,
    Response,
    Role,
    TextContent,
    ToolDeclaration,
    ToolOk,
    ToolUseContent,
    TurnComplete,
    TurnEngine,
    TurnFailed,
    TurnInProgressError,
    TurnState,
    Usage,
    check_alternation,
)
from artifact_chat.data_structures import to_wire_messages
from artifact_chat.engine import CANCELLED_TOOL_MESSAGE, EMPTY_REPLY_TEXT
from artifact_chat.tools import CalculatorTool, Desc, Tool, ToolRegistry, WeatherTool

# =============================================================================
# Fakes
# =============================================================================


def text_response(text: str) -> Response:
    return Response(
        id="msg",
        model="fake",
        content=[TextContent(text)],
        stop_reason="end_turn",
        usage=Usage(10, 5),
    )


def tool_response(*calls: ToolUseContent, text: str = "") -> Response:
    content: list = [TextContent(text)] if text else []
    content.extend(calls)
    return Response(
        id="msg", model="fake", content=content, stop_reason="tool_use", usage=Usage(10, 5)
    )


def calc_call(call_id: str, expression: str) -> ToolUseContent:
    return ToolUseContent(id=call_id, name="calculator", input={"expression": expression})


class ScriptedAPI:
    """Returns queued responses (or raises queued errors) one send at a time."""

    model = "fake"

    def __init__(self, *replies: Response | Exception):
        self.replies = list(replies)
        self.requests: list[tuple[Message, ...]] = []
        self.tools: list[Sequence[ToolDeclaration]] = []

    async def send(
        self, messages: Sequence[Message], tools: Sequence[ToolDeclaration] = ()
    ) -> Response:
        self.requests.append(tuple(messages))
        self.tools.append(tools)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class LoopingAPI:
    """Requests a tool call on every round trip."""

    model = "fake"

    def __init__(self) -> None:
        self.calls = 0

    async def send(
        self, messages: Sequence[Message], tools: Sequence[ToolDeclaration] = ()
    ) -> Response:
        self.calls += 1
        return tool_response(calc_call(f"t{self.calls}", "1+1"))


class HangingAPI:
    """Blocks in send until cancelled."""

    model = "fake"

    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def send(
        self, messages: Sequence[Message], tools: Sequence[ToolDeclaration] = ()
    ) -> Response:
        self.started.set()
        await asyncio.sleep(3600)
        raise AssertionError("unreachable")


@dataclass
class _WaitInput:
    label: Annotated[str, Desc("Anything")]


@dataclass
class _WaitTool(Tool):
    name: str = "wait"
    description: str = "Blocks until cancelled"

    def __post_init__(self) -> None:
        self.started = asyncio.Event()

    async def __call__(self, input: _WaitInput) -> ToolOk:
        self.started.set()
        await asyncio.sleep(3600)
        return ToolOk(input.label)


def _engine(api: object, **kwargs: object) -> TurnEngine:
    registry = ToolRegistry([CalculatorTool(), WeatherTool()])
    return TurnEngine(api=api, registry=registry, **kwargs)  # type: ignore[arg-type]


# =============================================================================
# Tests
# =============================================================================


class TestSimpleTurns:
    async def test_text_reply(self) -> None:
        api = ScriptedAPI(text_response("Hello there!"))
        engine = _engine(api)

        outcome = await engine.run_turn("Hi")

        assert outcome.ok
        assert outcome.status == TurnComplete()
        assert outcome.text == "Hello there!"
        assert outcome.round_trips == 1
        assert outcome.usage == Usage(10, 5)
        assert [m.role for m in outcome.messages] == [Role.USER, Role.ASSISTANT]
        assert engine.state is TurnState.AWAITING_USER_INPUT

    async def test_tools_are_declared(self) -> None:
        api = ScriptedAPI(text_response("ok"))
        await _engine(api).run_turn("Hi")
        assert [d.name for d in api.tools[0]] == ["calculator", "weather"]

    async def test_calculator_round_trip(self) -> None:
        api = ScriptedAPI(
            tool_response(calc_call("toolu_1", "15*23"), text="Let me calculate."),
            text_response("15 * 23 = 345"),
        )
        engine = _engine(api)

        outcome = await engine.run_turn("What's 15 * 23?")

        assert outcome.ok
        assert outcome.round_trips == 2
        assert outcome.text == "Let me calculate.\n\n15 * 23 = 345"
        assert outcome.usage == Usage(20, 10)
        assert [m.role for m in outcome.messages] == [
            Role.USER,
            Role.ASSISTANT,
            Role.TOOL,
            Role.ASSISTANT,
        ]

        tool_message = api.requests[1][-1]
        assert tool_message.role is Role.TOOL
        [result] = tool_message.get_tool_results()
        assert result.tool_use_id == "toolu_1"
        assert result.output == "345"
        assert not result.is_error

    async def test_multiple_tool_calls_in_one_reply(self) -> None:
        api = ScriptedAPI(
            tool_response(
                calc_call("a", "2+2"),
                ToolUseContent(id="b", name="weather", input={"location": "Paris"}),
            ),
            text_response("done"),
        )
        outcome = await _engine(api).run_turn("Two things")

        results = api.requests[1][-1].get_tool_results()
        assert [r.tool_use_id for r in results] == ["a", "b"]
        assert results[0].output == "4"
        assert results[1].output.startswith("Weather for Paris:")
        assert outcome.ok

    async def test_unknown_tool_is_reported_to_model(self) -> None:
        api = ScriptedAPI(
            tool_response(ToolUseContent(id="x", name="search", input={"q": "cats"})),
            text_response("I cannot search."),
        )
        outcome = await _engine(api).run_turn("Search cats")

        [result] = api.requests[1][-1].get_tool_results()
        assert result.is_error
        assert result.output == "Error: Unknown tool: search"
        assert outcome.ok

    async def test_artifacts_are_extracted(self) -> None:
        reply = (
            "Here you go:\n"
            '<artifact type="text/html" title="Page">\n<p>Hi</p>\n</artifact>'
        )
        api = ScriptedAPI(text_response(reply))
        outcome = await _engine(api).run_turn("Make a page")

        assert len(outcome.artifacts) == 1
        assert outcome.artifacts[0].kind is ArtifactKind.HTML
        assert outcome.artifacts[0].content == "<p>Hi</p>"
        assert outcome.text == "Here you go:\n[artifact: Page (html)]"
        # The stored reply keeps the raw text
        assert "<artifact" in outcome.messages[-1].get_text()

    async def test_empty_text_rejected(self) -> None:
        engine = _engine(ScriptedAPI())
        with pytest.raises(ValueError):
            await engine.run_turn("   ")
        assert len(engine.conversation) == 0

    def test_max_round_trips_validated(self) -> None:
        with pytest.raises(ValueError, match="max_round_trips"):
            _engine(ScriptedAPI(), max_round_trips=0)


class TestFailures:
    async def test_round_trip_limit(self) -> None:
        api = LoopingAPI()
        engine = _engine(api, max_round_trips=3)

        outcome = await engine.run_turn("Loop forever")

        assert api.calls == 3
        assert outcome.round_trips == 3
        assert outcome.status == TurnFailed(
            ErrorKind.ROUND_TRIP_LIMIT_EXCEEDED, "Stopped after 3 round trips"
        )
        assert engine.conversation.last is not None
        assert engine.conversation.last.role is Role.TOOL
        check_alternation(engine.conversation.messages)

    async def test_conversation_continues_after_limit(self) -> None:
        engine = _engine(LoopingAPI(), max_round_trips=1)
        await engine.run_turn("first")

        engine.api = ScriptedAPI(text_response("back to normal"))
        outcome = await engine.run_turn("second")

        assert outcome.ok
        check_alternation(engine.conversation.messages)

    async def test_transport_error_then_retry(self) -> None:
        api = ScriptedAPI(
            APIError("HTTP 529: Overloaded", status_code=529, provider="Claude"),
            text_response("Now it works"),
        )
        engine = _engine(api)

        failed = await engine.run_turn("Hello")
        assert isinstance(failed.status, TurnFailed)
        assert failed.status.kind is ErrorKind.TRANSPORT_ERROR
        assert "Overloaded" in failed.status.message
        assert not failed.ok
        assert engine.conversation.pending_user_message is not None

        retried = await engine.run_turn("Hello")
        assert retried.ok
        assert [m.role for m in engine.conversation] == [Role.USER, Role.ASSISTANT]
        assert [m.role for m in retried.messages] == [Role.USER, Role.ASSISTANT]
        # The retry resends the same single user message
        assert api.requests[1] == api.requests[0]

    async def test_different_text_while_pending_is_rejected(self) -> None:
        engine = _engine(ScriptedAPI(APIError("down")))
        await engine.run_turn("first")

        with pytest.raises(ConversationStateError):
            await engine.run_turn("something else")
        assert len(engine.conversation) == 1

    async def test_failure_after_tool_round_resumes_without_duplicate(self) -> None:
        api = ScriptedAPI(
            tool_response(calc_call("t1", "15*23")),
            APIError("HTTP 529: Overloaded", status_code=529, provider="Claude"),
            text_response("15 * 23 = 345"),
        )
        engine = _engine(api)

        failed = await engine.run_turn("What's 15 * 23?")
        assert isinstance(failed.status, TurnFailed)
        assert engine.conversation.pending_user_message is None
        prompt = engine.conversation.unanswered_prompt
        assert prompt is not None and prompt.get_text() == "What's 15 * 23?"

        resumed = await engine.run_turn("What's 15 * 23?")

        assert resumed.ok
        assert resumed.text == "15 * 23 = 345"
        assert [m.role for m in engine.conversation] == [
            Role.USER,
            Role.ASSISTANT,
            Role.TOOL,
            Role.ASSISTANT,
        ]
        assert [m.role for m in resumed.messages] == [Role.ASSISTANT]
        assert api.requests[2] == api.requests[1]
        assert engine.conversation.unanswered_prompt is None

    async def test_new_text_after_tool_round_failure_starts_new_turn(self) -> None:
        api = ScriptedAPI(
            tool_response(calc_call("t1", "2+2")),
            APIError("down"),
            text_response("ok"),
        )
        engine = _engine(api)
        await engine.run_turn("first")

        outcome = await engine.run_turn("second")

        assert outcome.ok
        assert [m.role for m in outcome.messages] == [Role.USER, Role.ASSISTANT]
        check_alternation(engine.conversation.messages)


class TestEmptyReplies:
    @pytest.mark.parametrize(
        "content",
        [[], [TextContent("")], [TextContent("  \n")]],
        ids=["none", "empty", "blank"],
    )
    async def test_empty_reply_keeps_history_sendable(self, content: list) -> None:
        empty = Response("msg", "fake", content, "end_turn", Usage())
        api = ScriptedAPI(
            tool_response(calc_call("t1", "1+1")),
            empty,
            text_response("still here"),
        )
        engine = _engine(api)

        first = await engine.run_turn("compute")
        assert first.ok
        assert first.text == ""
        stored = engine.conversation.last
        assert stored == Message(Role.ASSISTANT, [TextContent(EMPTY_REPLY_TEXT)])

        second = await engine.run_turn("again")

        assert second.ok
        wire = to_wire_messages(api.requests[-1])
        assert all(m["content"] for m in wire)
        assert [m["role"] for m in wire] == ["user", "assistant", "user", "assistant", "user"]

    async def test_empty_first_reply_completes_turn(self) -> None:
        engine = _engine(ScriptedAPI(Response("msg", "fake", [], "end_turn", Usage())))

        outcome = await engine.run_turn("hi")

        assert outcome.ok
        assert engine.conversation.pending_user_message is None
        check_alternation(engine.conversation.messages)

    async def test_reset_clears_pending_message(self) -> None:
        engine = _engine(ScriptedAPI(APIError("down"), text_response("hi")))
        await engine.run_turn("first")
        engine.reset()

        outcome = await engine.run_turn("something else")
        assert outcome.ok
        assert len(engine.conversation) == 2


class TestStateAndCallbacks:
    async def test_state_sequence_for_tool_turn(self) -> None:
        states: list[TurnState] = []
        roles: list[Role] = []
        api = ScriptedAPI(
            tool_response(calc_call("t1", "1+1")),
            text_response("2"),
        )
        engine = _engine(api, on_state_change=states.append)
        engine.on_message = lambda message: roles.append(message.role)

        await engine.run_turn("1+1?")

        assert states == [
            TurnState.REQUESTING_COMPLETION,
            TurnState.EXECUTING_TOOLS,
            TurnState.REQUESTING_COMPLETION,
            TurnState.TURN_COMPLETE,
            TurnState.AWAITING_USER_INPUT,
        ]
        assert roles == [Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]

    async def test_failed_state_is_reported(self) -> None:
        states: list[TurnState] = []
        engine = _engine(ScriptedAPI(APIError("down")), on_state_change=states.append)
        await engine.run_turn("hi")
        assert states == [
            TurnState.REQUESTING_COMPLETION,
            TurnState.TURN_FAILED,
            TurnState.AWAITING_USER_INPUT,
        ]

    async def test_concurrent_turn_rejected(self) -> None:
        api = HangingAPI()
        engine = _engine(api)
        token = CancellationToken()
        task = asyncio.create_task(engine.run_turn("first", cancel_token=token))
        await api.started.wait()

        assert engine.is_running
        with pytest.raises(TurnInProgressError):
            await engine.run_turn("second")
        with pytest.raises(TurnInProgressError):
            engine.reset()

        token.cancel()
        await task
        assert not engine.is_running


class TestCancellation:
    async def test_cancel_during_request(self) -> None:
        api = HangingAPI()
        engine = _engine(api)
        token = CancellationToken()

        task = asyncio.create_task(engine.run_turn("Hi", cancel_token=token))
        await api.started.wait()
        token.cancel()
        outcome = await task

        assert outcome.status == TurnFailed(
            ErrorKind.CANCELLED, "Request cancelled by user."
        )
        assert outcome.round_trips == 0
        assert engine.conversation.pending_user_message is not None
        assert engine.state is TurnState.AWAITING_USER_INPUT

    async def test_cancel_during_tools(self) -> None:
        wait_tool = _WaitTool()
        api = ScriptedAPI(
            tool_response(
                ToolUseContent(id="w1", name="wait", input={"label": "a"}),
                calc_call("c1", "2*3"),
            ),
        )
        engine = TurnEngine(api=api, registry=ToolRegistry([wait_tool, CalculatorTool()]))
        token = CancellationToken()

        task = asyncio.create_task(engine.run_turn("Go", cancel_token=token))
        await wait_tool.started.wait()
        token.cancel()
        outcome = await task

        assert isinstance(outcome.status, TurnFailed)
        assert outcome.status.kind is ErrorKind.CANCELLED
        last = engine.conversation.last
        assert last is not None and last.role is Role.TOOL
        results = last.get_tool_results()
        assert [r.tool_use_id for r in results] == ["w1", "c1"]
        assert all(r.is_error for r in results)
        assert all(r.output == CANCELLED_TOOL_MESSAGE for r in results)
        check_alternation(engine.conversation.messages)

    async def test_cancelled_token_before_turn(self) -> None:
        api = ScriptedAPI(text_response("never sent"))
        token = CancellationToken()
        token.cancel()

        outcome = await _engine(api).run_turn("Hi", cancel_token=token)

        assert isinstance(outcome.status, TurnFailed)
        assert outcome.status.kind is ErrorKind.CANCELLED
        assert api.requests == []

    async def test_outer_cancellation_propagates(self) -> None:
        api = HangingAPI()
        engine = _engine(api)
        task = asyncio.create_task(engine.run_turn("Hi", cancel_token=CancellationToken()))
        await api.started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert not engine.is_running


class TestRandomizedConversations:
    @pytest.mark.parametrize("seed", range(20))
    async def test_history_always_alternates(self, seed: int) -> None:
        rng = random.Random(seed)

        class RandomAPI:
            model = "fake"
            counter = 0

            async def send(
                self,
                messages: Sequence[Message],
                tools: Sequence[ToolDeclaration] = (),
            ) -> Response:
                check_alternation(messages)
                RandomAPI.counter += 1
                roll = rng.random()
                if roll < 0.15:
                    raise APIError("flaky network")
                if roll < 0.6:
                    calls = [
                        ToolUseContent(
                            id=f"t{RandomAPI.counter}-{i}",
                            name=rng.choice(["calculator", "weather", "missing"]),
                            input=rng.choice(
                                [{"expression": "3*7"}, {"location": "Rome"}, {}]
                            ),
                        )
                        for i in range(rng.randint(1, 3))
                    ]
                    return tool_response(*calls)
                return text_response(f"reply {RandomAPI.counter}")

        engine = _engine(RandomAPI(), max_round_trips=rng.randint(1, 4))
        for turn in range(8):
            text = f"message {turn}"
            outcome = await engine.run_turn(text)
            while (
                isinstance(outcome.status, TurnFailed)
                and outcome.status.kind is ErrorKind.TRANSPORT_ERROR
                and engine.conversation.pending_user_message is not None
            ):
                outcome = await engine.run_turn(text)
            check_alternation(engine.conversation.messages)
            assert engine.state is TurnState.AWAITING_USER_INPUT
