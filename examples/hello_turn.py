"""Hello Turn: one headless turn with the built-in tools."""

import asyncio
import os

from artifact_chat import ClaudeAPI, TurnEngine


async def main() -> None:
    async with ClaudeAPI(api_key=os.environ["ANTHROPIC_API_KEY"]) as api:
        engine = TurnEngine(api=api)
        outcome = await engine.run_turn("What's 15 * 23? And the weather in Paris?")

    print(outcome.text)
    print(f"status={outcome.status} round_trips={outcome.round_trips}")
    print(engine.conversation)


if __name__ == "__main__":
    asyncio.run(main())
