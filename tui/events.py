"""Input events for the terminal app.

Key presses and slash commands are both turned into small frozen dataclasses
so the app handles them in one ``match`` statement.
"""

from __future__ import annotations

from dataclasses import dataclass

from prompt_toolkit.application import get_app
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings, KeyPressEvent
from prompt_toolkit.keys import Keys

# Messages moved by PageUp/PageDown and by /up, /down without a count
PAGE_SIZE = 5


@dataclass(frozen=True)
class SubmitText:
    """Send text to the model."""

    text: str


@dataclass(frozen=True)
class Scroll:
    """Move the transcript window; negative is up (older)."""

    delta: int


@dataclass(frozen=True)
class OpenArtifact:
    """Open a shelf artifact by 1-based number; None opens the latest."""

    index: int | None = None


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class RunCommand:
    """Slash command handled by the app itself (/help, /clear, ...)."""

    name: str
    argument: str = ""


Event = SubmitText | Scroll | OpenArtifact | Quit | RunCommand


class InvalidCommand(ValueError):
    """Slash command with an argument that could not be parsed."""


def _parse_count(argument: str, command: str) -> int | None:
    if not argument:
        return None
    try:
        value = int(argument)
    except ValueError:
        raise InvalidCommand(f"{command} expects a number, got {argument!r}") from None
    if value < 1:
        raise InvalidCommand(f"{command} expects a positive number, got {value}")
    return value


def parse_input(text: str) -> Event | None:
    """Turn a line of user input into an event.

    Returns None for blank input.

    Raises:
        InvalidCommand: If a known command has a malformed argument.
    """
    text = text.strip()
    if not text:
        return None
    if not text.startswith("/"):
        return SubmitText(text)

    name, _, argument = text.partition(" ")
    name = name.lower()
    argument = argument.strip()

    match name:
        case "/quit" | "/exit" | "/q":
            return Quit()
        case "/open":
            return OpenArtifact(_parse_count(argument, name))
        case "/up":
            return Scroll(-(_parse_count(argument, name) or PAGE_SIZE))
        case "/down":
            return Scroll(_parse_count(argument, name) or PAGE_SIZE)
        case _:
            return RunCommand(name, argument)


def build_key_bindings() -> KeyBindings:
    """Key bindings that end the prompt with an event instead of text.

    - Ctrl+J: insert a newline
    - Tab (on empty input): open the latest artifact
    - PageUp/PageDown: scroll the transcript
    - Ctrl+Q: quit
    """
    bindings = KeyBindings()
    input_is_empty = Condition(lambda: not get_app().current_buffer.text)

    @bindings.add(Keys.ControlJ)
    def insert_newline(event: KeyPressEvent) -> None:
        event.current_buffer.insert_text("\n")

    @bindings.add(Keys.Tab, filter=input_is_empty)
    def open_latest(event: KeyPressEvent) -> None:
        event.app.exit(result=OpenArtifact())

    @bindings.add(Keys.PageUp)
    def scroll_up(event: KeyPressEvent) -> None:
        event.app.exit(result=Scroll(-PAGE_SIZE))

    @bindings.add(Keys.PageDown)
    def scroll_down(event: KeyPressEvent) -> None:
        event.app.exit(result=Scroll(PAGE_SIZE))

    @bindings.add(Keys.ControlQ)
    def quit_app(event: KeyPressEvent) -> None:
        event.app.exit(result=Quit())

    return bindings
