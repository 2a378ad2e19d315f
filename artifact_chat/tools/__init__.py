"""Built-in tools and the registry that dispatches them.

Each tool is in its own module; schemas are inferred from the dataclass
annotation on the tool's __call__ input parameter.
"""

from .base import (
    Desc,
    InputSchemaDict,
    Tool,
    convert_input,
    get_call_input_type,
    schema_from_dataclass,
    validate_input,
)
from .calculator import CalculationError, CalculatorInput, CalculatorTool, evaluate
from .registry import ToolRegistry
from .weather import WeatherInput, WeatherTool


def get_default_tools() -> list[Tool]:
    """Get the default set of built-in tools.

    Returns a new list of tool instances each time it's called.
    """
    return [
        CalculatorTool(),
        WeatherTool(),
    ]


__all__ = [
    # Base classes and utilities
    "Tool",
    "InputSchemaDict",
    "Desc",
    "convert_input",
    "get_call_input_type",
    "schema_from_dataclass",
    "validate_input",
    # Registry
    "ToolRegistry",
    "get_default_tools",
    # Tools
    "CalculatorTool",
    "CalculatorInput",
    "CalculationError",
    "evaluate",
    "WeatherTool",
    "WeatherInput",
]
