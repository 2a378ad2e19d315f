"""Custom Tool: register an extra tool and save the artifacts a turn produces."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

from artifact_chat import (
    ArtifactStore,
    ClaudeAPI,
    Desc,
    Tool,
    ToolOk,
    ToolRegistry,
    TurnEngine,
    get_default_tools,
)


@dataclass
class ShoutInput:
    text: Annotated[str, Desc("Text to upper-case")]


@dataclass
class ShoutTool(Tool):
    name: str = "shout"
    description: str = "Return the text in upper case"

    async def __call__(self, input: ShoutInput) -> ToolOk:
        return ToolOk(input.text.upper())


async def main() -> None:
    registry = ToolRegistry([*get_default_tools(), ShoutTool()])

    async with ClaudeAPI(api_key=os.environ["ANTHROPIC_API_KEY"]) as api:
        engine = TurnEngine(api=api, registry=registry)
        outcome = await engine.run_turn(
            "Shout 'hello', then make a small HTML page showing the result "
            'inside <artifact type="text/html" title="Shout"> ... </artifact>.'
        )

    print(outcome.text)
    store = ArtifactStore(Path("artifacts"))
    for artifact in outcome.artifacts:
        print("saved", store.persist_and_locate(artifact))


if __name__ == "__main__":
    asyncio.run(main())
