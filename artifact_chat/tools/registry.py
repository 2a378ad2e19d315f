"""Tool registry: declarations and name-based dispatch."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..data_structures import (
    ErrorKind,
    ToolDeclaration,
    ToolErr,
    ToolInvocationResult,
    ToolOk,
    ToolResultContent,
    ToolUseContent,
)
from .base import Tool, validate_input

__all__ = ["ToolRegistry"]

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Holds the tools available to the model and dispatches calls by name.

    Invocation never raises for tool-scoped problems: unknown names, invalid
    input and exceptions escaping a tool all come back as ToolErr, so the
    model can see the failure and carry on.
    """

    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def __repr__(self) -> str:
        return f"ToolRegistry({list(self._tools)})"

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def register(self, tool: Tool) -> None:
        """Add a tool.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if tool.name in self._tools:
            raise ValueError(f"Duplicate tool name: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_declarations(self) -> list[ToolDeclaration]:
        """Declarations in registration order."""
        return [tool.declaration() for tool in self._tools.values()]

    async def invoke(
        self, name: str, input: Mapping[str, Any] | None
    ) -> ToolInvocationResult:
        """Run one tool by name and return its result as data."""
        tool = self._tools.get(name)
        if tool is None:
            logger.info("model requested unknown tool %r", name)
            return ToolErr(ErrorKind.UNKNOWN_TOOL, f"Unknown tool: {name}")

        problems = validate_input(tool.input_schema, dict(input or {}))
        if problems:
            return ToolErr(
                ErrorKind.TOOL_EXECUTION_ERROR,
                f"Invalid input for {name}: {'; '.join(problems)}",
            )

        try:
            result = await tool.execute(input)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("tool %s raised", name)
            return ToolErr(ErrorKind.TOOL_EXECUTION_ERROR, f"{name} failed: {e}")

        match result:
            case ToolOk() | ToolErr():
                logger.debug("tool %s -> %s", name, type(result).__name__)
                return result
            case _:
                logger.error("tool %s returned %r", name, result)
                return ToolErr(
                    ErrorKind.TOOL_EXECUTION_ERROR,
                    f"{name} returned an unexpected result",
                )

    async def invoke_all(
        self, calls: Sequence[ToolUseContent]
    ) -> list[ToolResultContent]:
        """Run every call of one reply concurrently.

        Returns one result block per call, in call order, each linked to its
        call by tool_use_id.
        """
        results = await asyncio.gather(
            *(self.invoke(call.name, call.input) for call in calls)
        )
        return [
            result.to_block(call.id) for call, result in zip(calls, results)
        ]
