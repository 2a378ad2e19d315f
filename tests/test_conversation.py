"""Tests for the append-only conversation history."""

from __future__ import annotations

import pytest

from artifact_chat.conversation import (
    Conversation,
    ConversationStateError,
    check_alternation,
)
from artifact_chat.data_structures import (
    Message,
    Role,
    TextContent,
    ToolResultContent,
    ToolUseContent,
)


def _user(text: str = "hi") -> Message:
    return Message(Role.USER, text)


def _assistant(text: str = "hello") -> Message:
    return Message(Role.ASSISTANT, [TextContent(text)])


def _calls(*ids: str) -> Message:
    return Message(
        Role.ASSISTANT,
        [ToolUseContent(id=i, name="calculator", input={"expression": "1+1"}) for i in ids],
    )


def _results(*ids: str) -> Message:
    return Message(Role.TOOL, [ToolResultContent(tool_use_id=i, output="2") for i in ids])


class TestValidTransitions:
    def test_simple_exchange(self) -> None:
        conv = Conversation()
        conv.append(_user())
        conv.append(_assistant())
        conv.append(_user("again"))
        assert [m.role for m in conv] == [Role.USER, Role.ASSISTANT, Role.USER]

    def test_tool_round_trip(self) -> None:
        conv = Conversation([_user(), _calls("a", "b"), _results("b", "a"), _assistant()])
        assert len(conv) == 4

    def test_user_may_follow_tool_results(self) -> None:
        conv = Conversation([_user(), _calls("a"), _results("a")])
        conv.append(_user("next"))
        assert conv.pending_user_message == _user("next")

    def test_check_alternation_accepts_valid_history(self) -> None:
        check_alternation([_user(), _calls("a"), _results("a"), _assistant(), _user()])


class TestInvalidTransitions:
    def test_must_start_with_user(self) -> None:
        with pytest.raises(ConversationStateError, match="start with a user"):
            Conversation([_assistant()])

    def test_two_users_in_a_row(self) -> None:
        conv = Conversation([_user()])
        with pytest.raises(ConversationStateError):
            conv.append(_user("again"))
        assert len(conv) == 1

    def test_two_assistants_in_a_row(self) -> None:
        conv = Conversation([_user(), _assistant()])
        with pytest.raises(ConversationStateError):
            conv.append(_assistant())

    def test_user_after_pending_tool_calls(self) -> None:
        conv = Conversation([_user(), _calls("a")])
        with pytest.raises(ConversationStateError, match="with tool calls"):
            conv.append(_user())

    def test_tool_results_without_calls(self) -> None:
        conv = Conversation([_user(), _assistant()])
        with pytest.raises(ConversationStateError):
            conv.append(_results("a"))

    def test_results_must_answer_every_call(self) -> None:
        conv = Conversation([_user(), _calls("a", "b")])
        with pytest.raises(ConversationStateError, match="do not answer"):
            conv.append(_results("a"))

    def test_tool_message_with_text_rejected(self) -> None:
        conv = Conversation([_user(), _calls("a")])
        bad = Message(
            Role.TOOL,
            [TextContent("note"), ToolResultContent(tool_use_id="a", output="2")],
        )
        with pytest.raises(ConversationStateError, match="only tool_result"):
            conv.append(bad)

    def test_user_message_with_tool_use_rejected(self) -> None:
        bad = Message(Role.USER, [ToolUseContent(id="a", name="calculator")])
        with pytest.raises(ConversationStateError, match="tool_use"):
            Conversation([bad])

    def test_check_alternation_reports_first_violation(self) -> None:
        with pytest.raises(ConversationStateError):
            check_alternation([_user(), _assistant(), _assistant()])


class TestAccessors:
    def test_snapshots_are_immutable(self) -> None:
        conv = Conversation([_user()])
        snapshot = conv.messages
        conv.append(_assistant())
        assert len(snapshot) == 1
        assert isinstance(snapshot, tuple)

    def test_last_and_pending(self) -> None:
        conv = Conversation()
        assert conv.last is None
        assert conv.pending_user_message is None
        conv.append(_user())
        assert conv.pending_user_message == _user()
        conv.append(_assistant())
        assert conv.pending_user_message is None

    def test_unanswered_prompt(self) -> None:
        conv = Conversation([_user("first"), _assistant(), _user("second")])
        assert conv.unanswered_prompt == _user("second")
        conv.append(_calls("t1"))
        assert conv.unanswered_prompt is None
        conv.append(_results("t1"))
        assert conv.unanswered_prompt == _user("second")
        assert conv.pending_user_message is None
        conv.append(_assistant("done"))
        assert conv.unanswered_prompt is None

    def test_tail(self) -> None:
        conv = Conversation([_user(), _assistant(), _user("b")])
        assert conv.tail(1) == (_assistant(), _user("b"))
        assert conv.tail(3) == ()

    def test_repr(self) -> None:
        conv = Conversation([_user(), _assistant()])
        assert repr(conv) == "Conversation([user,assistant])"
