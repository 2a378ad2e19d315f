"""Append-only conversation history with role-transition checks."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence

from .data_structures import Message, Role, ToolResultContent, ToolUseContent

__all__ = ["Conversation", "ConversationStateError", "check_alternation"]

logger = logging.getLogger(__name__)


class ConversationStateError(Exception):
    """Raised when an append would break the conversation's role ordering."""


def _check_tool_pairing(
    calls: Sequence[ToolUseContent], results: Sequence[ToolResultContent]
) -> None:
    expected = [c.id for c in calls]
    answered = [r.tool_use_id for r in results]
    if sorted(expected) != sorted(answered):
        raise ConversationStateError(
            f"tool results {answered} do not answer tool calls {expected}"
        )


def _check_transition(previous: Message | None, message: Message) -> None:
    """Validate appending `message` after `previous`.

    Raises:
        ConversationStateError: If the transition is not allowed.
    """
    role = message.role

    if role is Role.TOOL:
        if message.get_text() or not message.get_tool_results():
            raise ConversationStateError(
                "tool messages must contain only tool_result blocks"
            )
    elif message.get_tool_results():
        raise ConversationStateError(f"{role.value} message carries tool_result blocks")

    if role is not Role.ASSISTANT and message.has_tool_use():
        raise ConversationStateError(f"{role.value} message carries tool_use blocks")

    if previous is None:
        if role is not Role.USER:
            raise ConversationStateError(
                f"conversation must start with a user message, got {role.value}"
            )
        return

    match (previous.role, role):
        case (Role.USER, Role.ASSISTANT) | (Role.TOOL, Role.ASSISTANT):
            return
        case (Role.ASSISTANT, Role.USER) if not previous.has_tool_use():
            return
        case (Role.ASSISTANT, Role.TOOL) if previous.has_tool_use():
            _check_tool_pairing(previous.get_tool_use(), message.get_tool_results())
            return
        case (Role.TOOL, Role.USER):
            return
        case _:
            raise ConversationStateError(
                f"cannot append {role.value} message after {previous.role.value}"
                + (" with tool calls" if previous.has_tool_use() else "")
            )


def check_alternation(messages: Sequence[Message]) -> None:
    """Validate a whole message sequence against the transition table.

    Raises:
        ConversationStateError: At the first invalid transition.
    """
    previous: Message | None = None
    for message in messages:
        _check_transition(previous, message)
        previous = message


class Conversation:
    """Ordered, append-only message history.

    Every append is checked against the allowed role transitions, so a
    conversation handed to the transport is always well formed. Readers get
    tuple snapshots that later appends do not affect.
    """

    def __init__(self, messages: Sequence[Message] = ()):
        self._messages: list[Message] = []
        for message in messages:
            self.append(message)

    def __repr__(self) -> str:
        roles = ",".join(m.role.value for m in self._messages)
        return f"Conversation([{roles}])"

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    @property
    def pending_user_message(self) -> Message | None:
        """The trailing user message still waiting for a reply, if any."""
        last = self.last
        if last is not None and last.role is Role.USER:
            return last
        return None

    @property
    def unanswered_prompt(self) -> Message | None:
        """The user message whose turn never got a final assistant reply.

        Set when the history ends in that user message, or in the tool
        results of a round the model has not answered yet.
        """
        last = self.last
        if last is None or last.role is Role.ASSISTANT:
            return None
        for message in reversed(self._messages):
            if message.role is Role.USER:
                return message
        return None

    def tail(self, start: int) -> tuple[Message, ...]:
        """Messages appended at or after position `start`."""
        return tuple(self._messages[start:])

    def append(self, message: Message) -> None:
        """Append a message after validating the role transition.

        Raises:
            ConversationStateError: If the message cannot follow the current tail.
        """
        _check_transition(self.last, message)
        self._messages.append(message)
        logger.debug(
            "appended %s message (%d total)", message.role.value, len(self._messages)
        )
