"""Tool base class: input schemas are derived from the ``__call__`` annotation."""

from __future__ import annotations

import dataclasses
import inspect
import types
from collections.abc import Mapping
from dataclasses import dataclass
from typing import (
    Annotated,
    Any,
    ClassVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from ..data_structures import (
    ErrorKind,
    JSONValue,
    ToolDeclaration,
    ToolErr,
    ToolInvocationResult,
    ToolOk,
)

# Schemas are built dynamically, so they are kept as plain dicts
InputSchemaDict = dict[str, object]

_JSON_SCALARS: dict[type, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
}


def _object_schema(properties: dict[str, object], required: list[str]) -> InputSchemaDict:
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


def _is_dataclass_type(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def _unwrap_annotated(hint: Any) -> tuple[Any, tuple[Any, ...]]:
    if get_origin(hint) is Annotated:
        base, *extras = get_args(hint)
        return base, tuple(extras)
    return hint, ()


class Desc:
    """Description attached to a dataclass field via ``Annotated``::

        city: Annotated[str, Desc("City name like Tokyo")]
    """

    def __init__(self, description: str):
        self.description = description

    def __repr__(self) -> str:
        return f"Desc({self.description!r})"


# -- annotation -> input type -------------------------------------------------


def get_call_input_type(cls: type) -> type | None:
    """Return the dataclass a tool's ``__call__`` takes as ``input``.

    ``None`` means the tool takes no input: the parameter is missing,
    annotated ``None``, or only ``None`` survives an ``Optional``.

    Raises:
        TypeError: If the annotation is unreadable or is not a single dataclass.
    """
    call = getattr(cls, "__call__", None)
    if call is None:
        raise TypeError(f"{cls.__name__} is not callable")

    try:
        hints = get_type_hints(call, include_extras=True)
    except Exception as e:
        raise TypeError(f"cannot resolve annotations of {cls.__name__}.__call__") from e

    annotation: Any = hints.get("input", type(None))
    if get_origin(annotation) in (Union, types.UnionType):
        members = [a for a in get_args(annotation) if a is not type(None)]
        if len(members) > 1:
            raise TypeError(
                f"{cls.__name__}.__call__ accepts a union of several input types"
            )
        annotation = members[0] if members else type(None)

    if annotation is type(None):
        return None
    if not _is_dataclass_type(annotation):
        raise TypeError(
            f"{cls.__name__}.__call__ input must be a dataclass, got {annotation!r}"
        )
    return annotation


# -- raw dict -> dataclass ----------------------------------------------------


def _coerce(value: Any, target: Any) -> Any:
    """Rebuild nested dataclasses (and lists of them) from decoded JSON."""
    if value is None:
        return None

    if get_origin(target) is list:
        item_type = next(iter(get_args(target)), None)
        if _is_dataclass_type(item_type) and isinstance(value, list):
            return [_coerce(item, item_type) for item in value]
        return value

    if _is_dataclass_type(target) and isinstance(value, dict):
        hints = get_type_hints(target, include_extras=True)
        kwargs = {
            key: _coerce(item, _unwrap_annotated(hints.get(key, Any))[0])
            for key, item in value.items()
        }
        return target(**kwargs)

    return value


def convert_input(input_dict: Mapping[str, Any] | None, input_type: type | None) -> Any:
    """Build ``input_type`` from the tool input the model sent.

    Unknown keys surface as the ``TypeError`` the dataclass constructor raises.
    """
    if input_type is None:
        return None
    return _coerce(dict(input_dict or {}), input_type)


# -- dataclass -> JSON schema -------------------------------------------------


def _schema_for(py_type: Any) -> dict[str, Any]:
    if get_origin(py_type) is list:
        args = get_args(py_type)
        return {"type": "array", "items": _schema_for(args[0])} if args else {"type": "array"}
    if _is_dataclass_type(py_type):
        return schema_from_dataclass(py_type)
    # anything unrecognised is advertised as a string
    return {"type": _JSON_SCALARS.get(py_type, "string")}


def schema_from_dataclass(cls: type) -> InputSchemaDict:
    """Describe a dataclass as a JSON object schema.

    Field types map onto JSON types, ``Desc`` annotations become
    ``description`` entries, and fields without a default are required.
    """
    hints = get_type_hints(cls, include_extras=True)
    properties: dict[str, object] = {}
    required: list[str] = []

    for f in dataclasses.fields(cls):
        py_type, extras = _unwrap_annotated(hints.get(f.name, str))
        prop = _schema_for(py_type)
        descriptions = [x.description for x in extras if isinstance(x, Desc)]
        if descriptions:
            prop["description"] = descriptions[0]
        properties[f.name] = prop

        has_default = not (
            f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING
        )
        if not has_default:
            required.append(f.name)

    return _object_schema(properties, required)


# -- validation against a declared schema -------------------------------------

_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
}


def _has_json_type(value: JSONValue, json_type: object) -> bool:
    check = _TYPE_CHECKS.get(json_type) if isinstance(json_type, str) else None
    return check is None or check(value)


def validate_input(schema: Mapping[str, object], value: object) -> list[str]:
    """List what is wrong with ``value`` under ``schema``; empty means valid.

    Covers what tool schemas here express: an object with required fields,
    typed properties, and no extras when ``additionalProperties`` is false.
    """
    if not isinstance(value, dict):
        return [f"expected an object, got {type(value).__name__}"]

    properties = schema.get("properties")
    if not isinstance(properties, Mapping):
        properties = {}
    required = schema.get("required")
    closed = schema.get("additionalProperties") is False

    problems = [
        f"missing required field '{name}'"
        for name in (required if isinstance(required, list) else [])
        if name not in value
    ]
    for name, item in value.items():
        if name not in properties:
            if closed:
                problems.append(f"unexpected field '{name}'")
            continue
        prop = properties[name]
        expected = prop.get("type") if isinstance(prop, Mapping) else None
        if not _has_json_type(item, expected):
            problems.append(
                f"field '{name}' must be of type {expected}, got {type(item).__name__}"
            )
    return problems


# -- the base class -----------------------------------------------------------


@dataclass
class Tool:
    """Subclass, give ``name``/``description`` defaults, and write ``__call__``.

    The ``input`` parameter's dataclass annotation is read once, when the
    subclass is created, and becomes ``input_schema``::

        @dataclass
        class EchoInput:
            text: Annotated[str, Desc("Text to echo back")]

        @dataclass
        class EchoTool(Tool):
            name: str = "echo"
            description: str = "Echo the input text"

            async def __call__(self, input: EchoInput) -> ToolInvocationResult:
                return ToolOk(input.text)

    A ``__call__`` without an ``input`` parameter declares a no-input tool.
    """

    name: str
    description: str

    _input_type: ClassVar[type | None] = None
    _schema: ClassVar[InputSchemaDict | None] = None
    _takes_input: ClassVar[bool] = True

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "__call__" not in vars(cls):
            return
        try:
            params = inspect.signature(cls.__call__).parameters
            input_type = get_call_input_type(cls)
        except TypeError:
            return
        cls._input_type = input_type
        cls._takes_input = "input" in params
        cls._schema = (
            schema_from_dataclass(input_type)
            if input_type is not None
            else _object_schema({}, [])
        )

    @property
    def input_schema(self) -> InputSchemaDict:
        return self._schema if self._schema is not None else _object_schema({}, [])

    def declaration(self) -> ToolDeclaration:
        return ToolDeclaration(self.name, self.description, self.input_schema)

    async def execute(
        self, input: Mapping[str, Any] | None = None
    ) -> ToolInvocationResult:
        """Build the typed input from the raw mapping and invoke the tool.

        An input that does not fit the dataclass comes back as a ``ToolErr``.
        """
        if not self._takes_input:
            return await self.__call__()  # type: ignore[call-arg]
        try:
            typed_input = convert_input(input, self._input_type)
        except TypeError as e:
            return ToolErr(
                ErrorKind.TOOL_EXECUTION_ERROR, f"Invalid input for {self.name}: {e}"
            )
        return await self.__call__(typed_input)

    async def __call__(self, input: Any) -> ToolInvocationResult:
        raise NotImplementedError(f"tool {self.name!r} has no __call__ implementation")


__all__ = [
    "Desc",
    "InputSchemaDict",
    "Tool",
    "ToolErr",
    "ToolOk",
    "convert_input",
    "get_call_input_type",
    "schema_from_dataclass",
    "validate_input",
]
