"""Message data structures for the chat transcript.

- UIMessage: one entry in the transcript with its own output buffer
- MessageType: what produced the entry (user, assistant, tool, ...)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from rich.console import RenderableType
from rich.text import Text


class MessageType(Enum):
    """Origin of a transcript entry."""

    WELCOME = "welcome"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    SYSTEM = "system"
    ERROR = "error"
    STATUS = "status"


@dataclass
class UIMessage:
    """A transcript entry.

    Attributes:
        message_type: Origin of the entry
        output_buffer: Renderables printed in order
        id: Short unique identifier
    """

    message_type: MessageType
    output_buffer: list[RenderableType] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid4())[:8])

    @classmethod
    def of(cls, message_type: MessageType, *content: RenderableType) -> "UIMessage":
        return cls(message_type=message_type, output_buffer=list(content))

    def append(self, content: str | RenderableType, style: str = "") -> None:
        """Add content; plain strings are wrapped in Text with the given style."""
        if isinstance(content, str):
            content = Text(content, style=style)
        self.output_buffer.append(content)
