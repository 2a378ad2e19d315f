"""Configuration loading/saving for artifact-chat."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from artifact_chat.claude_api import DEFAULT_MAX_TOKENS, DEFAULT_MODEL
from artifact_chat.engine import DEFAULT_MAX_ROUND_TRIPS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.expanduser("~/.artifact-chat.json")
DEFAULT_LOG_FILE = os.path.expanduser("~/.artifact-chat/artifact-chat.log")
API_KEY_ENV_VAR = "ANTHROPIC_API_KEY"
MISSING_API_KEY_MESSAGE = (
    f"API key required. Use --api-key or set {API_KEY_ENV_VAR}"
)

# Keys persisted in the preferences file
PREFERENCE_KEYS = ("model", "max_tokens", "max_round_trips")


class ConfigError(Exception):
    """Invalid or missing configuration."""


def load_cli_config(path: str = DEFAULT_CONFIG_PATH) -> dict[str, Any]:
    """Load CLI config from disk. Returns empty dict if not found or invalid."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        logger.warning("ignoring unreadable config %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("ignoring config %s: top level is not an object", path)
        return {}
    return {k: v for k, v in data.items() if k in PREFERENCE_KEYS}


def save_cli_config(config: Mapping[str, Any], path: str = DEFAULT_CONFIG_PATH) -> None:
    """Persist CLI config to disk."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(dict(config), f, indent=2)


def resolve_api_key(
    flag_value: str | None, environ: Mapping[str, str] | None = None
) -> str:
    """Pick the API key from the command line flag, then the environment.

    Raises:
        ConfigError: If neither provides a non-empty key.
    """
    if flag_value:
        return flag_value
    env = os.environ if environ is None else environ
    key = env.get(API_KEY_ENV_VAR, "").strip()
    if not key:
        raise ConfigError(MISSING_API_KEY_MESSAGE)
    return key


def _first(*values: Any) -> Any:
    """Return the first value that is not None."""
    return next(v for v in values if v is not None)


@dataclass
class ChatConfig:
    """Resolved settings for one chat session."""

    api_key: str
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_round_trips: int = DEFAULT_MAX_ROUND_TRIPS
    system: str | None = None
    debug: bool = False
    log_file: str = DEFAULT_LOG_FILE

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ConfigError(MISSING_API_KEY_MESSAGE)
        if not self.model:
            raise ConfigError("model cannot be empty")
        if not isinstance(self.max_tokens, int) or self.max_tokens < 1:
            raise ConfigError(
                f"max_tokens must be a positive integer, got {self.max_tokens!r}"
            )
        if not isinstance(self.max_round_trips, int) or self.max_round_trips < 1:
            raise ConfigError(
                "max_round_trips must be a positive integer, "
                f"got {self.max_round_trips!r}"
            )

    @classmethod
    def resolve(
        cls,
        *,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        max_round_trips: int | None = None,
        system: str | None = None,
        debug: bool = False,
        log_file: str | None = None,
        preferences: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "ChatConfig":
        """Merge explicit values over saved preferences over defaults.

        Raises:
            ConfigError: If the API key is missing or a value is invalid.
        """
        prefs = preferences or {}
        return cls(
            api_key=resolve_api_key(api_key, environ),
            model=_first(model, prefs.get("model"), DEFAULT_MODEL),
            max_tokens=_first(max_tokens, prefs.get("max_tokens"), DEFAULT_MAX_TOKENS),
            max_round_trips=_first(
                max_round_trips, prefs.get("max_round_trips"), DEFAULT_MAX_ROUND_TRIPS
            ),
            system=system,
            debug=debug,
            log_file=log_file or DEFAULT_LOG_FILE,
        )

    def preferences(self) -> dict[str, Any]:
        """Settings worth saving between sessions (never the API key)."""
        return {key: getattr(self, key) for key in PREFERENCE_KEYS}
