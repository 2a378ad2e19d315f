"""Weather tool backed by fixed mock conditions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Annotated

from ..data_structures import ErrorKind, ToolErr, ToolInvocationResult, ToolOk
from .base import Desc, Tool

MAX_LOCATION_LENGTH = 100

_LOCATION_RE = re.compile(r"^(?:[^\W_]|[ ,.'-])+$")

# Every location reports the same conditions
MOCK_CONDITIONS: tuple[tuple[str, str], ...] = (
    ("temperature", "22°C"),
    ("condition", "Partly cloudy"),
    ("humidity", "65%"),
    ("wind", "10 km/h NE"),
)


def format_report(location: str) -> str:
    lines = [f"Weather for {location}:"]
    lines.extend(f"  {key}: {value}" for key, value in MOCK_CONDITIONS)
    return "\n".join(lines) + "\n"


@dataclass
class WeatherInput:
    """Input for WeatherTool."""

    location: Annotated[str, Desc("City or place name, e.g. 'Paris, France'")]


@dataclass
class WeatherTool(Tool):
    """Report current weather for a location."""

    name: str = "weather"
    description: str = """Get weather information for a location.

Returns temperature, sky condition, humidity and wind.

Examples:
  WeatherInput(location="Tokyo")
  WeatherInput(location="St. John's, Canada")"""

    async def __call__(self, input: WeatherInput) -> ToolInvocationResult:
        location = input.location.strip()
        if not location:
            return ToolErr(ErrorKind.TOOL_EXECUTION_ERROR, "Location cannot be empty")
        if len(location) > MAX_LOCATION_LENGTH:
            return ToolErr(
                ErrorKind.TOOL_EXECUTION_ERROR,
                f"Location too long (limit {MAX_LOCATION_LENGTH} characters)",
            )
        if not _LOCATION_RE.match(location):
            return ToolErr(
                ErrorKind.TOOL_EXECUTION_ERROR, f"Invalid location: {location!r}"
            )
        return ToolOk(format_report(location))
