"""Rich-based terminal chat application for artifact-chat.

This module provides the terminal app that uses:
- Rich Console.print() for the transcript
- Rich Live for the spinner while a turn runs
- prompt_toolkit for input with history and key bindings

Architecture:
    Transcript (MessageList, re-rendered when scrolling)
    ├── User message 1
    ├── Tool calls / results
    ├── Assistant reply 1 (artifacts replaced by placeholders)
    └── Status line

    Artifact shelf (session-wide, 1-based numbers, survives /clear)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from prompt_toolkit.styles import Style
from rich.console import Console, RenderableType
from rich.live import Live
from rich.spinner import Spinner
from rich.text import Text

from artifact_chat import (
    Artifact,
    ArtifactStore,
    CancellationToken,
    ClaudeAPI,
    ConversationStateError,
    Message,
    Role,
    TurnEngine,
    TurnFailed,
    TurnOutcome,
    TurnState,
    extract,
)

from .config import (
    DEFAULT_CONFIG_PATH,
    ChatConfig,
    ConfigError,
    load_cli_config,
    save_cli_config,
)
from .display import (
    format_artifact_list,
    format_assistant_message,
    format_error_message,
    format_status_line,
    format_system_message,
    format_token_count,
    format_tool_call,
    format_tool_result,
    format_user_message,
)
from .events import (
    Event,
    InvalidCommand,
    OpenArtifact,
    Quit,
    RunCommand,
    Scroll,
    SubmitText,
    build_key_bindings,
    parse_input,
)
from .logging_config import setup_logging
from .message_list import MessageList
from .messages import MessageType, UIMessage

logger = logging.getLogger(__name__)

HISTORY_PATH = Path.home() / ".artifact-chat-history"

SYSTEM_PROMPT = """You are a helpful assistant in a terminal chat.

You can use the calculator tool for arithmetic and the weather tool for
current conditions.

When you produce a self-contained deliverable (a web page, a React component
or a script), wrap it in an artifact block:

<artifact identifier="short-id" type="TYPE" title="Title">
...content...
</artifact>

TYPE is one of text/html, application/vnd.ant.react (define a component
named App), text/javascript or text/typescript. Keep explanations outside
the block."""

HELP_TEXT = """Commands:
  /quit (/exit, /q) - Leave artifact-chat
  /clear - Start a new conversation (artifacts are kept)
  /artifacts - List artifacts from this session
  /open [N] - Open artifact N (default: latest)
  /up [N], /down [N] - Scroll the transcript
  /retry - Resume the last turn after a failure
  /help - This text

Input:
  Enter - Send message
  Ctrl+J - Line break inside a message
  Tab - Open the latest artifact (on empty input)
  PageUp/PageDown - Scroll the transcript
  Ctrl+C - Cancel the running turn
  Ctrl+Q, Ctrl+D - Exit"""

_SPINNER_TEXT: dict[TurnState, str] = {
    TurnState.REQUESTING_COMPLETION: "Thinking... (Ctrl+C to cancel)",
    TurnState.EXECUTING_TOOLS: "Running tools... (Ctrl+C to cancel)",
}


@dataclass
class ChatApp:
    """Terminal chat app driving a TurnEngine.

    Every input (typed text, slash command or key binding) becomes an Event
    and goes through handle_event().
    """

    engine: TurnEngine
    console: Console = field(default_factory=lambda: Console(soft_wrap=True))
    store: ArtifactStore = field(default_factory=ArtifactStore)
    transcript: MessageList = field(default_factory=MessageList)
    artifacts: list[Artifact] = field(default_factory=list)
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    debug: bool = False
    session: PromptSession[object] | None = None
    _spinner: Spinner | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.engine.on_message = self.on_message
        self.engine.on_state_change = self.on_state_change

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def show(self, message_type: MessageType, *content: RenderableType) -> None:
        """Add an entry to the transcript and print it."""
        was_scrolled = not self.transcript.at_bottom
        msg = self.transcript.add(UIMessage.of(message_type, *content))
        if was_scrolled:
            self.transcript.full_redraw(self.console, self.page_size)
        else:
            self.transcript.render_message(msg, self.console)

    def system(self, text: str) -> None:
        self.show(MessageType.SYSTEM, format_system_message(text))

    def error(self, text: str) -> None:
        self.show(MessageType.ERROR, format_error_message(text))

    @property
    def page_size(self) -> int:
        # Rough number of transcript entries that fit on screen
        return max(self.console.size.height // 3, 3)

    # -------------------------------------------------------------------------
    # Engine callbacks
    # -------------------------------------------------------------------------

    def on_message(self, message: Message) -> None:
        """Render each message as the engine appends it."""
        match message.role:
            case Role.USER:
                self.show(MessageType.USER, format_user_message(message.get_text()))
            case Role.ASSISTANT:
                text = extract(message.get_text()).display_text
                if text.strip():
                    self.show(MessageType.ASSISTANT, format_assistant_message(text))
                for call in message.get_tool_use():
                    self.show(
                        MessageType.TOOL_CALL, format_tool_call(call.name, call.input)
                    )
            case Role.TOOL:
                for result in message.get_tool_results():
                    self.show(
                        MessageType.TOOL_RESULT,
                        format_tool_result(result.output, result.is_error),
                    )

    def on_state_change(self, state: TurnState) -> None:
        text = _SPINNER_TEXT.get(state)
        if text is not None and self._spinner is not None:
            self._spinner.update(text=text)

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    async def get_event(self) -> Event | None:
        """Read one input event using prompt_toolkit.

        Returns:
            The event, or None when there is nothing to do (blank line, Ctrl+C
            at the prompt, or a malformed command that was reported).
        """
        if self.session is None:
            self.session = PromptSession(
                history=FileHistory(str(HISTORY_PATH)),
                key_bindings=build_key_bindings(),
            )

        try:
            # prompt() blocks, so it runs on a worker thread
            loop = asyncio.get_running_loop()
            toolbar_style = Style.from_dict({"bottom-toolbar": "noreverse"})
            result = await loop.run_in_executor(
                None,
                lambda: self.session.prompt(  # type: ignore[union-attr]
                    "> ", bottom_toolbar=" ", style=toolbar_style
                ),
            )
        except EOFError:
            # Ctrl+D pressed
            return Quit()
        except KeyboardInterrupt:
            # Ctrl+C at the prompt - just continue
            return None

        if not isinstance(result, str):
            return result  # type: ignore[return-value]

        if result.strip():
            # Clear the echoed input so the transcript shows the formatted copy
            for _ in range(2 + result.count("\n")):
                self.console.file.write("\033[A\033[2K")
            self.console.file.flush()

        try:
            return parse_input(result)
        except InvalidCommand as e:
            self.error(str(e))
            return None

    # -------------------------------------------------------------------------
    # Event handling
    # -------------------------------------------------------------------------

    async def handle_event(self, event: Event) -> bool:
        """Handle one event.

        Returns:
            False once the user asked to leave.
        """
        match event:
            case Quit():
                return False
            case SubmitText(text=text):
                await self.send_message(text)
            case Scroll(delta=delta):
                self.scroll(delta)
            case OpenArtifact(index=index):
                self.open_artifact(index)
            case RunCommand(name=name, argument=argument):
                await self.handle_command(name, argument)
        return True

    async def handle_command(self, name: str, argument: str = "") -> None:
        if name == "/help":
            self.system(HELP_TEXT)
        elif name == "/clear":
            self.engine.reset()
            self.transcript.clear()
            self.console.clear()
            self.system(f"Conversation reset. {len(self.artifacts)} artifact(s) kept.")
        elif name == "/artifacts":
            self.show(MessageType.SYSTEM, format_artifact_list(self.artifacts))
        elif name == "/retry":
            prompt = self.engine.conversation.unanswered_prompt
            if prompt is None:
                self.system("Nothing to retry.")
            else:
                self.system("Retrying last message...")
                await self.send_message(prompt.get_text())
        else:
            self.error(f"Unknown command: {name}")
            self.system("Type /help for available commands.")

    def scroll(self, delta: int) -> None:
        self.transcript.scroll(delta)
        self.transcript.full_redraw(self.console, self.page_size)
        if not self.transcript.at_bottom:
            self.console.print(
                format_system_message(
                    f"{self.transcript.offset} newer message(s) below"
                    " - /down or PageDown"
                )
            )

    def open_artifact(self, number: int | None) -> None:
        """Open a shelf artifact (1-based number, None for the latest)."""
        if not self.artifacts:
            self.system("No artifacts generated yet.")
            return
        if number is None:
            number = len(self.artifacts)
        if not 1 <= number <= len(self.artifacts):
            self.error(f"No artifact {number} (have 1-{len(self.artifacts)})")
            return

        artifact = self.artifacts[number - 1]
        try:
            path = self.store.open(artifact)
        except OSError as e:
            logger.exception("failed to open artifact %r", artifact.title)
            self.error(f"Could not save artifact: {e}")
            return

        if artifact.kind.viewable:
            self.system(f"Opened {artifact.title} in browser ({path})")
        else:
            self.system(f"Saved {artifact.title} to {path}")

    # -------------------------------------------------------------------------
    # Turns
    # -------------------------------------------------------------------------

    async def send_message(self, text: str) -> TurnOutcome | None:
        """Run one turn and render its outcome."""
        self.cancel_token.reset()
        self._spinner = Spinner(
            "dots", text=_SPINNER_TEXT[TurnState.REQUESTING_COMPLETION]
        )
        try:
            with Live(
                self._spinner,
                console=self.console,
                refresh_per_second=10,
                transient=True,
            ):
                with self.cancel_token.sigint():
                    outcome = await self.engine.run_turn(text, self.cancel_token)
        except ConversationStateError as e:
            self.error(str(e))
            self.system("Use /retry to resend it or /clear to start over.")
            return None
        finally:
            self._spinner = None

        self.artifacts.extend(outcome.artifacts)
        self.show_status(outcome)
        return outcome

    def show_status(self, outcome: TurnOutcome) -> None:
        retryable = (
            isinstance(outcome.status, TurnFailed)
            and self.engine.conversation.unanswered_prompt is not None
        )
        items: list[RenderableType] = [
            format_status_line(outcome.status, len(self.artifacts), retryable)
        ]
        if self.debug:
            items.append(format_token_count(outcome.usage))
        self.show(MessageType.STATUS, *items)
        self.console.print()

    async def run(self) -> None:
        """Greet, then read and handle events until Quit."""
        self.show(
            MessageType.WELCOME,
            Text("artifact-chat", style="bold cyan"),
            Text(
                f"Model: {self.engine.api.model}. /help for commands. "
                "Ctrl+C to cancel. Ctrl+D to exit.",
                style="dim",
            ),
        )
        self.console.print()

        try:
            while True:
                event = await self.get_event()
                if event is None:
                    continue
                if not await self.handle_event(event):
                    break
        finally:
            self.store.cleanup()
            self.console.print(format_system_message("Goodbye!"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="artifact-chat",
        description="Chat with Claude in the terminal, with tools and artifacts.",
    )
    parser.add_argument("--api-key", "-k", help="Anthropic API key")
    parser.add_argument("--model", help="Claude model to use")
    parser.add_argument("--max-tokens", type=int, help="Maximum tokens per reply")
    parser.add_argument(
        "--max-round-trips",
        type=int,
        help="Maximum API calls per turn (default: 10)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level and show token usage",
    )
    parser.add_argument("--log-file", help="Log file path")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Preferences file (default: ~/.artifact-chat.json)",
    )
    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save model, max tokens and max round trips as defaults",
    )
    return parser


async def run_app(config: ChatConfig) -> None:
    async with ClaudeAPI(
        api_key=config.api_key,
        model=config.model,
        max_tokens=config.max_tokens,
        system=config.system,
    ) as api:
        engine = TurnEngine(api=api, max_round_trips=config.max_round_trips)
        app = ChatApp(engine=engine, debug=config.debug)
        await app.run()


def main(argv: list[str] | None = None) -> None:
    """Entry point for the terminal application."""
    args = build_parser().parse_args(argv)

    try:
        config = ChatConfig.resolve(
            api_key=args.api_key,
            model=args.model,
            max_tokens=args.max_tokens,
            max_round_trips=args.max_round_trips,
            system=SYSTEM_PROMPT,
            debug=args.debug,
            log_file=args.log_file,
            preferences=load_cli_config(args.config),
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.save_config:
        save_cli_config(config.preferences(), args.config)

    setup_logging(config.log_file, debug=config.debug)
    logger.info("starting artifact-chat with model %s", config.model)

    try:
        asyncio.run(run_app(config))
    except KeyboardInterrupt:
        print("\nGoodbye!")
        sys.exit(0)


if __name__ == "__main__":
    main()
