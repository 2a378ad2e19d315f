"""Scrollable transcript for the terminal app.

The message list is the source of truth for rendering: scrolling clears the
screen and re-renders a window of messages, so the transcript can be paged
without relying on the terminal's own scrollback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from rich.console import Console

from .messages import UIMessage


@dataclass
class MessageList:
    """Ordered transcript plus a scroll position.

    ``offset`` counts messages hidden below the window; 0 means the view
    follows the newest message.
    """

    messages: list[UIMessage] = field(default_factory=list)
    offset: int = 0

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[UIMessage]:
        return iter(self.messages)

    @property
    def at_bottom(self) -> bool:
        return self.offset == 0

    def add(self, msg: UIMessage) -> UIMessage:
        """Append a message and jump back to the newest entry."""
        self.messages.append(msg)
        self.offset = 0
        return msg

    def clear(self) -> None:
        self.messages.clear()
        self.offset = 0

    def scroll(self, delta: int) -> int:
        """Move the window; negative is up (older), positive is down (newer).

        Returns:
            The new offset, clamped so at least one message stays visible.
        """
        max_offset = max(len(self.messages) - 1, 0)
        self.offset = min(max(self.offset - delta, 0), max_offset)
        return self.offset

    def visible(self, page_size: int | None = None) -> list[UIMessage]:
        """Messages in the current window, oldest first."""
        end = len(self.messages) - self.offset
        start = 0 if page_size is None else max(end - page_size, 0)
        return self.messages[start:end]

    def render_message(self, msg: UIMessage, console: Console) -> None:
        for item in msg.output_buffer:
            console.print(item)

    def full_redraw(self, console: Console, page_size: int | None = None) -> None:
        """Clear the screen and re-render the current window."""
        console.clear()
        for msg in self.visible(page_size):
            self.render_message(msg, console)
