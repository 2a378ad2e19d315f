"""artifact_chat: a terminal chat loop for Claude with tools and artifacts

The library side of artifact-chat. A turn engine drives the conversation
with the Messages API, runs the model's tool calls through a registry, and
pulls ``<artifact>`` blocks out of replies so a front end can open them.
"""

import logging

# API base classes (shared infrastructure)
from .api_base import APIClientMixin, APIError, APIProtocol

# Artifacts
from .artifacts import (
    Artifact,
    ArtifactKind,
    ArtifactStore,
    Extraction,
    classify,
    extract,
    wrap_component,
)

# Cancellation support
from .cancellation import CancellationToken

# API client
from .claude_api import DEFAULT_MAX_TOKENS, DEFAULT_MODEL, ClaudeAPI

# Conversation history
from .conversation import Conversation, ConversationStateError, check_alternation

# Data structures - Core types
from .data_structures import (
    ContentBlock,
    ErrorKind,
    JSONObject,
    JSONSchema,
    JSONValue,
    Message,
    Response,
    Role,
    TextContent,
    ToolDeclaration,
    ToolErr,
    ToolInvocationResult,
    ToolOk,
    ToolResultContent,
    ToolUseContent,
    Usage,
    assert_never,
)

# Turn engine
from .engine import (
    DEFAULT_MAX_ROUND_TRIPS,
    TurnComplete,
    TurnEngine,
    TurnFailed,
    TurnInProgressError,
    TurnOutcome,
    TurnState,
    TurnStatus,
)

# Tools
from .tools import (
    CalculatorTool,
    Desc,
    Tool,
    ToolRegistry,
    WeatherTool,
    get_default_tools,
)

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # API
    "APIClientMixin",
    "APIError",
    "APIProtocol",
    "ClaudeAPI",
    "DEFAULT_MODEL",
    "DEFAULT_MAX_TOKENS",
    # Artifacts
    "Artifact",
    "ArtifactKind",
    "ArtifactStore",
    "Extraction",
    "classify",
    "extract",
    "wrap_component",
    # Cancellation
    "CancellationToken",
    # Conversation
    "Conversation",
    "ConversationStateError",
    "check_alternation",
    # Data structures
    "ContentBlock",
    "ErrorKind",
    "JSONObject",
    "JSONSchema",
    "JSONValue",
    "Message",
    "Response",
    "Role",
    "TextContent",
    "ToolDeclaration",
    "ToolErr",
    "ToolInvocationResult",
    "ToolOk",
    "ToolResultContent",
    "ToolUseContent",
    "Usage",
    "assert_never",
    # Engine
    "DEFAULT_MAX_ROUND_TRIPS",
    "TurnComplete",
    "TurnEngine",
    "TurnFailed",
    "TurnInProgressError",
    "TurnOutcome",
    "TurnState",
    "TurnStatus",
    # Tools
    "CalculatorTool",
    "Desc",
    "Tool",
    "ToolRegistry",
    "WeatherTool",
    "get_default_tools",
]
