"""Calculator tool: safe arithmetic evaluation."""

from __future__ import annotations

import ast
import math
import operator
from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated, Any

from ..data_structures import ErrorKind, ToolErr, ToolInvocationResult, ToolOk
from .base import Desc, Tool

MAX_EXPRESSION_LENGTH = 1000
MAX_EXPONENT = 1000
MAX_RESULT_DIGITS = 4000

Number = int | float

_BINARY_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "sqrt": math.sqrt,
    "abs": abs,
    "round": round,
    "floor": math.floor,
    "ceil": math.ceil,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "log": math.log,
    "log10": math.log10,
    "exp": math.exp,
}

_CONSTANTS: dict[str, float] = {
    "pi": math.pi,
    "e": math.e,
}


class CalculationError(Exception):
    """Expression could not be evaluated."""


def _check_power(base: Number, exponent: Number) -> None:
    if abs(exponent) > MAX_EXPONENT:
        raise CalculationError(f"Exponent too large (limit {MAX_EXPONENT})")
    # Integer powers are exact, so bound the digit count before computing
    if abs(base) > 1 and exponent > 0:
        if exponent * math.log10(abs(base)) > MAX_RESULT_DIGITS:
            raise CalculationError("Result too large")


def _eval_node(node: ast.AST) -> Number:
    match node:
        case ast.Expression(body=body):
            return _eval_node(body)

        case ast.Constant(value=value):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise CalculationError(f"Unsupported literal: {value!r}")
            return value

        case ast.Name(id=name):
            if name in _CONSTANTS:
                return _CONSTANTS[name]
            raise CalculationError(f"Unknown name: {name}")

        case ast.UnaryOp(op=op, operand=operand):
            unary = _UNARY_OPS.get(type(op))
            if unary is None:
                raise CalculationError(f"Unsupported operator: {type(op).__name__}")
            return unary(_eval_node(operand))

        case ast.BinOp(left=left, op=op, right=right):
            binary = _BINARY_OPS.get(type(op))
            if binary is None:
                hint = " (use ** for powers)" if isinstance(op, ast.BitXor) else ""
                raise CalculationError(
                    f"Unsupported operator: {type(op).__name__}{hint}"
                )
            lhs = _eval_node(left)
            rhs = _eval_node(right)
            if isinstance(op, ast.Pow):
                _check_power(lhs, rhs)
            try:
                return binary(lhs, rhs)
            except ZeroDivisionError:
                raise CalculationError("Division by zero") from None

        case ast.Call(func=ast.Name(id=name), args=args, keywords=[]):
            func = _FUNCTIONS.get(name)
            if func is None:
                raise CalculationError(f"Unknown function: {name}")
            values = [_eval_node(arg) for arg in args]
            try:
                return func(*values)
            except (TypeError, ValueError) as e:
                raise CalculationError(f"Invalid arguments for {name}: {e}") from None

        case _:
            raise CalculationError(f"Unsupported expression: {type(node).__name__}")


def evaluate(expression: str) -> Number:
    """Evaluate an arithmetic expression without using eval().

    Raises:
        CalculationError: On syntax errors, unsupported constructs or math errors.
    """
    if not expression.strip():
        raise CalculationError("Empty expression")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise CalculationError(
            f"Expression too long (limit {MAX_EXPRESSION_LENGTH} characters)"
        )

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError:
        raise CalculationError(f"Invalid expression: {expression}") from None

    try:
        result = _eval_node(tree)
    except OverflowError:
        raise CalculationError("Result too large") from None

    if isinstance(result, complex):
        raise CalculationError("Result is not a real number")
    if isinstance(result, float) and not math.isfinite(result):
        raise CalculationError("Result is not a finite number")
    if isinstance(result, int) and result:
        if math.log10(abs(result)) > MAX_RESULT_DIGITS:
            raise CalculationError("Result too large")
    return result


def format_number(value: Number) -> str:
    """Render a result, dropping the decimal point for integral values."""
    if isinstance(value, int):
        return str(value)
    if value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return format(value, ".12g")


@dataclass
class CalculatorInput:
    """Input for CalculatorTool."""

    expression: Annotated[
        str, Desc("Mathematical expression to evaluate, e.g. '15 * 23'")
    ]


@dataclass
class CalculatorTool(Tool):
    """Evaluate arithmetic expressions."""

    name: str = "calculator"
    description: str = """Perform mathematical calculations.

Supports numbers, + - * / // % ** and parentheses, the functions
sqrt, abs, round, floor, ceil, sin, cos, tan, log, log10, exp
and the constants pi and e.

Examples:
  CalculatorInput(expression="15 * 23")
  CalculatorInput(expression="sqrt(2) * pi")"""

    async def __call__(self, input: CalculatorInput) -> ToolInvocationResult:
        try:
            result = evaluate(input.expression)
        except CalculationError as e:
            return ToolErr(ErrorKind.TOOL_EXECUTION_ERROR, str(e))
        return ToolOk(format_number(result))
