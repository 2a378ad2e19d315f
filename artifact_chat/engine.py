"""Conversation turn engine.

Drives one user turn: append the user message, ask the model, run any tools
it requests, feed the results back, and stop when a reply has no tool calls
or the round-trip ceiling is reached.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from .api_base import APIError, APIProtocol
from .artifacts import Artifact, extract
from .cancellation import CancellationToken
from .conversation import Conversation, ConversationStateError
from .data_structures import (
    ErrorKind,
    Message,
    Response,
    Role,
    TextContent,
    ToolResultContent,
    ToolUseContent,
    Usage,
)
from .tools import ToolRegistry, get_default_tools

__all__ = [
    "DEFAULT_MAX_ROUND_TRIPS",
    "TurnComplete",
    "TurnEngine",
    "TurnFailed",
    "TurnInProgressError",
    "TurnOutcome",
    "TurnState",
    "TurnStatus",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ROUND_TRIPS = 10
CANCELLED_TOOL_MESSAGE = "Operation cancelled by user."
EMPTY_REPLY_TEXT = "(no response)"


class TurnState(str, Enum):
    AWAITING_USER_INPUT = "awaiting_user_input"
    REQUESTING_COMPLETION = "requesting_completion"
    EXECUTING_TOOLS = "executing_tools"
    TURN_COMPLETE = "turn_complete"
    TURN_FAILED = "turn_failed"


@dataclass(frozen=True)
class TurnComplete:
    """The turn ended with a reply that requested no tools."""


@dataclass(frozen=True)
class TurnFailed:
    """The turn stopped early; the conversation is still usable."""

    kind: ErrorKind
    message: str


TurnStatus = TurnComplete | TurnFailed


@dataclass(frozen=True)
class TurnOutcome:
    """Everything a caller needs to render a finished turn."""

    text: str
    artifacts: tuple[Artifact, ...]
    messages: tuple[Message, ...]
    usage: Usage
    round_trips: int
    status: TurnStatus

    @property
    def ok(self) -> bool:
        return isinstance(self.status, TurnComplete)


class TurnInProgressError(Exception):
    """Raised when run_turn is called while another turn is still running."""


StateCallback = Callable[[TurnState], None]
MessageCallback = Callable[[Message], None]


@dataclass
class TurnEngine:
    """Runs conversation turns against an API and a tool registry.

    Example:
        >>> engine = TurnEngine(api=ClaudeAPI(api_key=key))
        >>> outcome = await engine.run_turn("What's 15 * 23?")
        >>> outcome.text
        '15 * 23 = 345'

    Only one turn may run at a time. Transport and round-trip failures are
    reported in ``TurnOutcome.status``; they never raise.
    """

    api: APIProtocol
    registry: ToolRegistry = field(
        default_factory=lambda: ToolRegistry(get_default_tools())
    )
    max_round_trips: int = DEFAULT_MAX_ROUND_TRIPS
    conversation: Conversation = field(default_factory=Conversation)
    on_state_change: StateCallback | None = None
    on_message: MessageCallback | None = None

    _state: TurnState = field(default=TurnState.AWAITING_USER_INPUT, init=False)
    _running: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        if self.max_round_trips < 1:
            raise ValueError(
                f"max_round_trips must be at least 1, got {self.max_round_trips}"
            )

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    def reset(self) -> None:
        """Start a fresh conversation.

        Raises:
            TurnInProgressError: If a turn is running.
        """
        if self._running:
            raise TurnInProgressError("cannot reset while a turn is running")
        self.conversation = Conversation()
        self._set_state(TurnState.AWAITING_USER_INPUT)

    def _set_state(self, state: TurnState) -> None:
        if state is self._state:
            return
        logger.debug("state %s -> %s", self._state.value, state.value)
        self._state = state
        if self.on_state_change is not None:
            self.on_state_change(state)

    def _append(self, message: Message) -> None:
        self.conversation.append(message)
        if self.on_message is not None:
            self.on_message(message)

    async def _guarded(
        self, coro: Coroutine[Any, Any, T], cancel_token: CancellationToken | None
    ) -> T:
        if cancel_token is None:
            return await coro
        return await cancel_token.run(coro)

    def _begin(self, text: str) -> int:
        """Append (or reuse) the user message; return where the turn starts."""
        pending = self.conversation.pending_user_message
        if pending is not None:
            if pending.get_text() != text:
                raise ConversationStateError(
                    "the previous message has no reply yet; retry it or start "
                    "a new conversation"
                )
            logger.info("retrying pending user message")
            return len(self.conversation) - 1

        start = len(self.conversation)
        prompt = self.conversation.unanswered_prompt
        if prompt is not None and prompt.get_text() == text:
            # history ends in tool results: ask for the completion again
            logger.info("resuming turn after unanswered tool results")
            return start

        self._append(Message(Role.USER, text))
        return start

    async def run_turn(
        self, text: str, cancel_token: CancellationToken | None = None
    ) -> TurnOutcome:
        """Run one user turn to completion, failure or cancellation.

        Args:
            text: The user's message. Re-sending the text of a turn that never
                got a final reply (the history ends in that message or in its
                tool results) resumes it instead of appending a duplicate.
            cancel_token: Optional token; cancelling it abandons the in-flight
                API call or tool batch.

        Raises:
            TurnInProgressError: If another turn is running on this engine.
            ConversationStateError: If a different message is still pending.
            ValueError: If text is empty.
        """
        if self._running:
            raise TurnInProgressError("a turn is already in progress")
        if not text.strip():
            raise ValueError("message text cannot be empty")

        self._running = True
        try:
            start = self._begin(text)
            return await self._loop(start, cancel_token)
        finally:
            self._running = False
            self._set_state(TurnState.AWAITING_USER_INPUT)

    async def _loop(
        self, start: int, cancel_token: CancellationToken | None
    ) -> TurnOutcome:
        texts: list[str] = []
        artifacts: list[Artifact] = []
        usage = Usage()
        declarations = self.registry.list_declarations()

        def finish(status: TurnStatus, round_trips: int) -> TurnOutcome:
            if isinstance(status, TurnFailed):
                logger.warning(
                    "turn failed (%s): %s", status.kind.value, status.message
                )
                self._set_state(TurnState.TURN_FAILED)
            else:
                self._set_state(TurnState.TURN_COMPLETE)
            return TurnOutcome(
                text="\n\n".join(texts),
                artifacts=tuple(artifacts),
                messages=self.conversation.tail(start),
                usage=usage,
                round_trips=round_trips,
                status=status,
            )

        for round_trip in range(1, self.max_round_trips + 1):
            self._set_state(TurnState.REQUESTING_COMPLETION)
            try:
                response: Response = await self._guarded(
                    self.api.send(self.conversation.messages, declarations),
                    cancel_token,
                )
            except asyncio.CancelledError:
                if cancel_token is None or not cancel_token.is_cancelled:
                    raise
                return finish(
                    TurnFailed(ErrorKind.CANCELLED, "Request cancelled by user."),
                    round_trip - 1,
                )
            except APIError as e:
                return finish(
                    TurnFailed(ErrorKind.TRANSPORT_ERROR, str(e)), round_trip
                )

            usage = usage + response.usage
            reply = _history_entry(response)
            self._append(reply)

            extraction = extract(response.get_text())
            if extraction.display_text.strip():
                texts.append(extraction.display_text)
            artifacts.extend(extraction.artifacts)

            calls = reply.get_tool_use()
            if not calls:
                logger.info(
                    "turn complete after %d round trip(s), %d artifact(s)",
                    round_trip,
                    len(artifacts),
                )
                return finish(TurnComplete(), round_trip)

            self._set_state(TurnState.EXECUTING_TOOLS)
            logger.info("executing tools: %s", ", ".join(c.name for c in calls))
            try:
                results = await self._guarded(
                    self.registry.invoke_all(calls), cancel_token
                )
            except asyncio.CancelledError:
                if cancel_token is None or not cancel_token.is_cancelled:
                    raise
                self._append(Message(Role.TOOL, _cancelled_results(calls)))
                return finish(
                    TurnFailed(ErrorKind.CANCELLED, "Tools cancelled by user."),
                    round_trip,
                )
            self._append(Message(Role.TOOL, results))

        return finish(
            TurnFailed(
                ErrorKind.ROUND_TRIP_LIMIT_EXCEEDED,
                f"Stopped after {self.max_round_trips} round trips",
            ),
            self.max_round_trips,
        )


def _cancelled_results(calls: Sequence[ToolUseContent]) -> list[ToolResultContent]:
    return [
        ToolResultContent(
            tool_use_id=call.id, output=CANCELLED_TOOL_MESSAGE, is_error=True
        )
        for call in calls
    ]


def _history_entry(response: Response) -> Message:
    """The assistant message to store for a reply.

    The API rejects an earlier assistant message with no content (or only
    blank text), so an empty reply is stored as ``EMPTY_REPLY_TEXT``.
    """
    blocks = [
        block
        for block in response.content
        if not (isinstance(block, TextContent) and not block.text.strip())
    ]
    if not blocks:
        logger.warning(
            "empty reply %s (stop_reason=%s)", response.id, response.stop_reason
        )
        blocks = [TextContent(EMPTY_REPLY_TEXT)]
    return Message(Role.ASSISTANT, blocks)
