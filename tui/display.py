"""Rich renderables for the chat transcript.

Nothing here prints. Each helper takes text (or a finished turn) and hands
back something ``Console.print`` understands.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from rich.console import Console, ConsoleOptions, RenderableType, RenderResult
from rich.markdown import Markdown, TextElement
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from artifact_chat.artifacts import Artifact
from artifact_chat.data_structures import ErrorKind, JSONValue, Usage, assert_never
from artifact_chat.engine import TurnComplete, TurnFailed, TurnStatus

MAX_TOOL_RESULT_LINES = 40
MAX_PARAM_LENGTH = 60

USER_PROMPT = "> "


class HashHeading(TextElement):
    """Heading drawn as bold ``## Title`` at the left margin."""

    @classmethod
    def create(cls, markdown: Markdown, token: object) -> HashHeading:
        tag = getattr(token, "tag", "h1")
        return cls(level=int(tag.lstrip("h") or 1))

    def __init__(self, level: int) -> None:
        super().__init__()
        self.level = level

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        heading = Text(f"{'#' * self.level} ")
        heading.append_text(self.text)
        heading.stylize("bold")
        yield heading


class FlushCodeBlock(TextElement):
    """Highlighted code without the one-space gutter Rich adds by default.

    The gutter would otherwise end up in code copied out of the terminal.
    """

    style_name = "markdown.code_block"

    @classmethod
    def create(cls, markdown: Markdown, token: object) -> FlushCodeBlock:
        info = getattr(token, "info", None) or ""
        language = info.split(" ", 1)[0]
        return cls(language or "text", markdown.code_theme)

    def __init__(self, language: str, theme: str) -> None:
        self.language = language
        self.theme = theme

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        code = str(self.text).rstrip()
        yield Syntax(
            code,
            self.language,
            theme=self.theme,
            padding=0,
            word_wrap=False,
            background_color="default",
        )


class ChatMarkdown(Markdown):
    """Markdown with ``HashHeading`` headings and ``FlushCodeBlock`` code."""

    elements = Markdown.elements | {
        "heading_open": HashHeading,
        "fence": FlushCodeBlock,
        "code_block": FlushCodeBlock,
    }


def render_markdown(text: str) -> RenderableType:
    return ChatMarkdown(text.rstrip(), code_theme="native")


def format_user_message(text: str) -> RenderableType:
    """Echo of what the user typed, prompt on the first line, shaded."""
    first, *rest = text.split("\n")
    gutter = " " * len(USER_PROMPT)
    body = [USER_PROMPT + first, *(gutter + line for line in rest)]
    return Text("\n".join(body), style="on grey30")


def format_assistant_message(text: str) -> RenderableType:
    # placeholders were substituted by the extractor before this point
    return render_markdown(text)


def _clip(value: JSONValue, limit: int = MAX_PARAM_LENGTH) -> str:
    shown = str(value)
    return shown if len(shown) <= limit else shown[: limit - 3] + "..."


def format_tool_call(name: str, params: Mapping[str, JSONValue]) -> Text:
    """``name(key: value, ...)`` with long values clipped."""
    args: list[Text] = [
        Text.assemble((key, "cyan"), (": ", "dim"), _clip(value))
        for key, value in params.items()
    ]
    return Text.assemble(
        (name, "yellow bold"),
        ("(", "dim"),
        Text(", ", style="dim").join(args),
        (")", "dim"),
    )


def format_tool_result(output: str, is_error: bool = False) -> Text:
    """Tool output, dimmed (red on error), cut to ``MAX_TOOL_RESULT_LINES``."""
    lines = output.rstrip("\n").split("\n")
    shown, dropped = lines[:MAX_TOOL_RESULT_LINES], lines[MAX_TOOL_RESULT_LINES:]

    result = Text(overflow="fold")
    result.append("\n".join(shown), style="red" if is_error else "dim")
    if dropped:
        result.append(f"\n... ({len(dropped)} more lines)", style="dim")
    return result


def format_system_message(text: str) -> Text:
    return Text(f"[{text}]", style="dim")


def format_error_message(text: str) -> Text:
    return Text.assemble(("Error: ", "red bold"), (text, "red"))


def format_token_count(usage: Usage) -> Text:
    total = usage.input_tokens + usage.output_tokens
    return Text.assemble(
        ("Tokens: ", "dim"),
        (f"in={usage.input_tokens}", "cyan dim"),
        (" ", "dim"),
        (f"out={usage.output_tokens}", "green dim"),
        (" ", "dim"),
        (f"total={total}", "magenta dim"),
    )

_FAILURE_LABELS: dict[ErrorKind, str] = {
    ErrorKind.TRANSPORT_ERROR: "request failed",
    ErrorKind.ROUND_TRIP_LIMIT_EXCEEDED: "tool loop limit reached",
    ErrorKind.CANCELLED: "cancelled",
}


def artifact_count_text(count: int) -> str:
    if count == 0:
        return "No artifacts generated yet"
    return f"{count} artifact(s) available - Press Tab to view latest"


def format_status_line(
    status: TurnStatus, artifact_count: int, retryable: bool = False
) -> Text:
    """Status shown after every turn.

    Completed turns report how many artifacts the session holds; failures
    get a red line naming the error kind.
    """
    match status:
        case TurnComplete():
            return Text(artifact_count_text(artifact_count), style="green dim")
        case TurnFailed(kind=kind, message=message):
            label = _FAILURE_LABELS.get(kind, kind.value)
            result = Text()
            result.append(f" {kind.value} ", style="bold white on red")
            result.append(f" {label}: {message}", style="red")
            if retryable:
                result.append("  (/retry to resend)", style="dim")
            return result
        case _ as unreachable:
            assert_never(unreachable)


def format_artifact_list(artifacts: Sequence[Artifact]) -> RenderableType:
    """Table of session artifacts with their 1-based shelf numbers."""
    if not artifacts:
        return format_system_message("No artifacts yet")

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Title")
    table.add_column("Kind", style="yellow")
    table.add_column("Type", style="dim")
    for number, artifact in enumerate(artifacts, start=1):
        table.add_row(
            str(number), artifact.title, artifact.kind.value, artifact.content_type
        )
    return table
