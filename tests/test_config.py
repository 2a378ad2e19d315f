"""Tests for configuration resolution and file logging setup."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from tui.config import (
    DEFAULT_LOG_FILE,
    MISSING_API_KEY_MESSAGE,
    ChatConfig,
    ConfigError,
    load_cli_config,
    resolve_api_key,
    save_cli_config,
)
from tui.logging_config import setup_logging


class TestResolveApiKey:
    def test_flag_wins(self) -> None:
        assert resolve_api_key("flag-key", {"ANTHROPIC_API_KEY": "env-key"}) == "flag-key"

    def test_environment_fallback(self) -> None:
        assert resolve_api_key(None, {"ANTHROPIC_API_KEY": " env-key \n"}) == "env-key"

    @pytest.mark.parametrize(
        "environ", [{}, {"ANTHROPIC_API_KEY": ""}, {"ANTHROPIC_API_KEY": "  "}]
    )
    def test_missing(self, environ: dict[str, str]) -> None:
        with pytest.raises(ConfigError) as exc_info:
            resolve_api_key(None, environ)
        assert str(exc_info.value) == MISSING_API_KEY_MESSAGE
        assert "ANTHROPIC_API_KEY" in str(exc_info.value)


class TestChatConfig:
    def test_defaults(self) -> None:
        config = ChatConfig.resolve(environ={"ANTHROPIC_API_KEY": "k"})
        assert config.api_key == "k"
        assert config.model == "claude-sonnet-4-20250514"
        assert config.max_tokens == 4000
        assert config.max_round_trips == 10
        assert config.log_file == DEFAULT_LOG_FILE
        assert not config.debug

    def test_explicit_values_beat_preferences(self) -> None:
        config = ChatConfig.resolve(
            api_key="k",
            model="claude-opus-4-5-20251101",
            preferences={"model": "saved-model", "max_tokens": 1024},
        )
        assert config.model == "claude-opus-4-5-20251101"
        assert config.max_tokens == 1024

    def test_zero_is_not_treated_as_missing(self) -> None:
        with pytest.raises(ConfigError, match="max_round_trips"):
            ChatConfig.resolve(api_key="k", max_round_trips=0)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_tokens": -5},
            {"max_tokens": "many"},
            {"model": ""},
        ],
    )
    def test_invalid_values(self, kwargs: dict[str, object]) -> None:
        with pytest.raises(ConfigError):
            ChatConfig(api_key="k", **kwargs)  # type: ignore[arg-type]

    def test_preferences_exclude_api_key(self) -> None:
        config = ChatConfig(api_key="secret", max_tokens=2048)
        prefs = config.preferences()
        assert prefs == {
            "model": "claude-sonnet-4-20250514",
            "max_tokens": 2048,
            "max_round_trips": 10,
        }


class TestConfigFile:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_cli_config(str(tmp_path / "nope.json")) == {}

    def test_round_trip(self, tmp_path: Path) -> None:
        path = str(tmp_path / "nested" / "config.json")
        save_cli_config({"model": "m", "max_tokens": 10, "max_round_trips": 2}, path)
        assert load_cli_config(path) == {"model": "m", "max_tokens": 10, "max_round_trips": 2}

    def test_unknown_keys_dropped(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"model": "m", "api_key": "leak"}), encoding="utf-8")
        assert load_cli_config(str(path)) == {"model": "m"}

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
    def test_invalid_file_ignored(
        self, tmp_path: Path, content: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "config.json"
        path.write_text(content, encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="tui.config"):
            assert load_cli_config(str(path)) == {}
        assert "ignoring" in caplog.text


@pytest.fixture
def restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    names = ("artifact_chat", "tui", "httpx", "httpcore", "asyncio")
    levels = {name: logging.getLogger(name).level for name in names}
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    for name, saved in levels.items():
        logging.getLogger(name).setLevel(saved)


@pytest.mark.usefixtures("restore_logging")
class TestSetupLogging:
    def test_writes_app_records_to_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "chat.log"
        handler = setup_logging(str(log_file))

        logging.getLogger("artifact_chat.engine").info("turn complete")
        logging.getLogger("httpx").info("HTTP Request: POST ...")
        handler.flush()

        text = log_file.read_text(encoding="utf-8")
        assert "[INFO] artifact_chat.engine: turn complete" in text
        assert "HTTP Request" not in text

    def test_debug_levels(self, tmp_path: Path) -> None:
        setup_logging(str(tmp_path / "chat.log"), debug=True)
        assert logging.getLogger("artifact_chat").level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.DEBUG

    def test_second_call_replaces_handler(self, tmp_path: Path) -> None:
        first = setup_logging(str(tmp_path / "a.log"))
        second = setup_logging(str(tmp_path / "b.log"))

        rotating = [
            h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)
        ]
        assert rotating == [second]
        assert first not in logging.getLogger().handlers
