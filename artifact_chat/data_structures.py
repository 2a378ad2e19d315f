"""
Value types shared by the transport, the tool registry and the turn engine.

Content blocks, messages and tool outcomes are frozen dataclasses combined
into unions, so callers ``match`` on them and let ``assert_never`` flag a
missing case.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Never, TypeAlias, TypedDict

JSONValue: TypeAlias = (
    str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]
)
JSONObject: TypeAlias = dict[str, JSONValue]


class JSONSchema(TypedDict, total=False):
    """Subset of JSON Schema used for tool ``input_schema``."""

    type: str
    description: str
    enum: list[str]
    items: "JSONSchema"
    properties: dict[str, "JSONSchema"]
    required: list[str]
    additionalProperties: bool


# Wire shapes of the Messages API


class WireText(TypedDict):
    type: str
    text: str


class WireToolUse(TypedDict):
    type: str
    id: str
    name: str
    input: JSONObject


class WireToolResult(TypedDict):
    type: str
    tool_use_id: str
    content: str
    is_error: bool


WireBlock: TypeAlias = WireText | WireToolUse | WireToolResult


class WireMessage(TypedDict):
    role: str
    content: str | list[WireBlock]


class WireTool(TypedDict):
    name: str
    description: str
    input_schema: dict[str, object]


def assert_never(value: Never) -> Never:
    """Fail loudly when a ``match`` falls through.

    Put it in the ``case _ as unreachable`` arm; a type checker then
    reports any union member the other arms forgot.
    """
    raise AssertionError(f"Unhandled case: {value!r}")


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    @property
    def wire_role(self) -> str:
        """The API only knows two roles; tool results go out as ``user``."""
        return "assistant" if self is Role.ASSISTANT else "user"


class ErrorKind(str, Enum):
    """Why a turn or a tool call did not succeed."""

    TRANSPORT_ERROR = "transport_error"
    UNKNOWN_TOOL = "unknown_tool"
    TOOL_EXECUTION_ERROR = "tool_execution_error"
    ROUND_TRIP_LIMIT_EXCEEDED = "round_trip_limit_exceeded"
    ARTIFACT_EXTRACTION_ANOMALY = "artifact_extraction_anomaly"
    CANCELLED = "cancelled"


def _require_type(owner: str, attr: str, value: object, expected: type) -> None:
    if not isinstance(value, expected):
        raise TypeError(
            f"{owner}.{attr} expects {expected.__name__}, not {type(value).__name__}"
        )


def _require_nonempty(owner: str, attr: str, value: str) -> None:
    if not value:
        raise ValueError(f"{owner}.{attr} must be a non-empty string")


@dataclass(frozen=True)
class TextContent:
    text: str

    def __post_init__(self) -> None:
        _require_type("TextContent", "text", self.text, str)

    def to_dict(self) -> WireText:
        return WireText(type="text", text=self.text)


@dataclass(frozen=True)
class ToolUseContent:
    """A tool call requested by the model; ``id`` pairs it with its result."""

    id: str
    name: str
    input: JSONObject = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require_nonempty("ToolUseContent", "id", self.id)
        _require_nonempty("ToolUseContent", "name", self.name)
        _require_type("ToolUseContent", "input", self.input, dict)

    def to_dict(self) -> WireToolUse:
        return WireToolUse(type="tool_use", id=self.id, name=self.name, input=self.input)


@dataclass(frozen=True)
class ToolResultContent:
    tool_use_id: str
    output: str
    is_error: bool = False

    def __post_init__(self) -> None:
        _require_nonempty("ToolResultContent", "tool_use_id", self.tool_use_id)
        _require_type("ToolResultContent", "output", self.output, str)

    def to_dict(self) -> WireToolResult:
        # the API calls the payload "content"
        return WireToolResult(
            type="tool_result",
            tool_use_id=self.tool_use_id,
            content=self.output,
            is_error=self.is_error,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ToolResultContent:
        """Read a ``tool_result`` block; list content is flattened to its text."""
        payload = data.get("content", "")
        if isinstance(payload, list):
            pieces = (p.get("text", "") for p in payload if isinstance(p, Mapping))
            payload = "".join(str(piece) for piece in pieces)
        return cls(
            tool_use_id=str(data.get("tool_use_id", "")),
            output=str(payload),
            is_error=bool(data.get("is_error")),
        )


ContentBlock: TypeAlias = TextContent | ToolUseContent | ToolResultContent


def _text_of(blocks: Iterable[ContentBlock], separator: str) -> str:
    return separator.join(b.text for b in blocks if isinstance(b, TextContent))


def _calls_in(blocks: Iterable[ContentBlock]) -> list[ToolUseContent]:
    return [b for b in blocks if isinstance(b, ToolUseContent)]


@dataclass(frozen=True)
class Message:
    """One entry of the conversation history.

    ``content`` is either a bare string or a sequence of blocks. Sequences
    are copied into a tuple so a message never changes after it is built.
    """

    role: Role
    content: str | Sequence[ContentBlock]

    def __post_init__(self) -> None:
        if not isinstance(self.content, str):
            object.__setattr__(self, "content", tuple(self.content))

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        if isinstance(self.content, str):
            return (TextContent(self.content),)
        return tuple(self.content)

    def get_text(self, separator: str = "\n") -> str:
        return _text_of(self.blocks, separator)

    def get_tool_use(self) -> list[ToolUseContent]:
        return _calls_in(self.blocks)

    def get_tool_results(self) -> list[ToolResultContent]:
        return [b for b in self.blocks if isinstance(b, ToolResultContent)]

    def has_tool_use(self) -> bool:
        return bool(self.get_tool_use())

    def to_dict(self) -> WireMessage:
        body: str | list[WireBlock]
        if isinstance(self.content, str):
            body = self.content
        else:
            body = [block.to_dict() for block in self.content]
        return WireMessage(role=self.role.wire_role, content=body)


@dataclass(frozen=True)
class ToolDeclaration:
    """What a tool tells the model about itself: name, purpose, input schema."""

    name: str
    description: str
    input_schema: Mapping[str, object]

    def __post_init__(self) -> None:
        _require_nonempty("ToolDeclaration", "name", self.name)
        _require_type("ToolDeclaration", "description", self.description, str)
        _require_type("ToolDeclaration", "input_schema", self.input_schema, Mapping)

    def to_dict(self) -> WireTool:
        return WireTool(
            name=self.name,
            description=self.description,
            input_schema=dict(self.input_schema),
        )


# Tool outcomes are returned, not raised


@dataclass(frozen=True)
class ToolOk:
    output: str

    def to_block(self, tool_use_id: str) -> ToolResultContent:
        return ToolResultContent(tool_use_id, self.output)


@dataclass(frozen=True)
class ToolErr:
    """A failed call; the model sees ``Error: <message>`` as the result."""

    kind: ErrorKind
    message: str

    def to_block(self, tool_use_id: str) -> ToolResultContent:
        return ToolResultContent(tool_use_id, f"Error: {self.message}", is_error=True)


ToolInvocationResult: TypeAlias = ToolOk | ToolErr


def parse_content_block(raw: object) -> ContentBlock | None:
    """Turn one block of an API reply into a ``ContentBlock``.

    Block types this client does not model (thinking, server tools) come
    back as ``None``. A ``text`` or ``tool_use`` block with missing fields
    raises ``ValueError``.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"content block must be an object, got {type(raw).__name__}")

    match raw.get("type"):
        case "text":
            text = raw.get("text")
            if not isinstance(text, str):
                raise ValueError("text block is missing 'text'")
            return TextContent(text)
        case "tool_use":
            call_id, name = raw.get("id"), raw.get("name")
            if not (isinstance(call_id, str) and isinstance(name, str)):
                raise ValueError("tool_use block is missing 'id' or 'name'")
            arguments = raw.get("input")
            if arguments is None:
                arguments = {}
            elif not isinstance(arguments, dict):
                raise ValueError("tool_use block 'input' must be an object")
            return ToolUseContent(call_id, name, arguments)
        case _:
            return None


def _as_blocks(content: str | list[WireBlock]) -> list[WireBlock]:
    if isinstance(content, str):
        return [WireText(type="text", text=content)]
    return list(content)


def to_wire_messages(messages: Sequence[Message]) -> list[WireMessage]:
    """Serialize history for a request.

    Neighbours that end up with the same wire role are folded into one
    message. That happens when tool results (sent as ``user``) are followed
    directly by the next user prompt after a stopped turn.
    """
    wire: list[WireMessage] = []
    for message in messages:
        entry = message.to_dict()
        if not wire or wire[-1]["role"] != entry["role"]:
            wire.append(entry)
            continue
        folded = _as_blocks(wire[-1]["content"]) + _as_blocks(entry["content"])
        wire[-1] = WireMessage(role=entry["role"], content=folded)
    return wire


@dataclass
class Usage:
    """Token counts reported by the API; ``+`` sums them over a turn."""

    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            self.input_tokens + other.input_tokens,
            self.output_tokens + other.output_tokens,
        )


def _count(data: Mapping[str, object], key: str) -> int:
    value = data.get(key)
    return value if isinstance(value, int) else 0


@dataclass
class Response:
    """A parsed Messages API reply."""

    id: str
    model: str
    content: list[ContentBlock]
    stop_reason: str | None
    usage: Usage

    def __repr__(self) -> str:
        kinds = [type(block).__name__ for block in self.content]
        return f"Response({self.id!r}, stop={self.stop_reason!r}, blocks={kinds})"

    def get_text(self, separator: str = "\n") -> str:
        return _text_of(self.content, separator)

    def get_tool_use(self) -> list[ToolUseContent]:
        return _calls_in(self.content)

    def has_tool_use(self) -> bool:
        return bool(self.get_tool_use())

    def to_message(self) -> Message:
        """The assistant message to append to history."""
        return Message(Role.ASSISTANT, self.content)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Response:
        """Build a response from the decoded JSON body.

        Raises:
            ValueError: If ``content`` is not a list or a block is malformed.
        """
        raw_blocks = data.get("content")
        if not isinstance(raw_blocks, list):
            raise ValueError("response is missing a 'content' list")
        parsed = (parse_content_block(raw) for raw in raw_blocks)

        raw_usage = data.get("usage")
        usage = Usage()
        if isinstance(raw_usage, Mapping):
            usage = Usage(_count(raw_usage, "input_tokens"), _count(raw_usage, "output_tokens"))

        stop = data.get("stop_reason")
        return cls(
            id=str(data.get("id", "")),
            model=str(data.get("model", "")),
            content=[block for block in parsed if block is not None],
            stop_reason=stop if isinstance(stop, str) else None,
            usage=usage,
        )
