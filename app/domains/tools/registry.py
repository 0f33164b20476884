"""Tool registry.

A tool is a name, a description shown to the model, a pydantic input model
and an async ``execute``. Expected failures come back as
``{"success": False, "error": ...}`` payloads; only missing configuration
raises, which aborts the generation step.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from app.exceptions.tools import ToolInputValidationError, UnknownToolError

logger = logging.getLogger(__name__)

ToolExecute = Callable[[Any], Awaitable[dict[str, Any]]]

# Keys the model API accepts in a function parameter schema.
_DECLARATION_KEYS = ("type", "description", "nullable", "enum", "properties", "required", "items")


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[BaseModel]
    execute: ToolExecute


def _resolve(schema: dict[str, Any], defs: dict[str, Any]) -> dict[str, Any]:
    ref = schema.get("$ref")
    if ref:
        return _resolve(defs[ref.rsplit("/", 1)[-1]], defs)
    return schema


def _to_declaration_schema(schema: dict[str, Any], defs: dict[str, Any]) -> dict[str, Any]:
    """Reduce a pydantic JSON schema to the subset function declarations allow."""
    schema = _resolve(schema, defs)
    nullable = False
    variants = schema.get("anyOf")
    if variants:
        concrete = [v for v in variants if v.get("type") != "null"]
        nullable = len(concrete) < len(variants)
        merged = {k: v for k, v in schema.items() if k != "anyOf"}
        schema = {**_resolve(concrete[0], defs), **merged} if concrete else merged

    reduced: dict[str, Any] = {}
    for key in _DECLARATION_KEYS:
        if key not in schema:
            continue
        value = schema[key]
        if key == "properties":
            value = {name: _to_declaration_schema(prop, defs) for name, prop in value.items()}
        elif key == "items":
            value = _to_declaration_schema(value, defs)
        reduced[key] = value
    if nullable:
        reduced["nullable"] = True
    return reduced


def function_parameters(input_model: type[BaseModel]) -> dict[str, Any]:
    schema = input_model.model_json_schema()
    return _to_declaration_schema(schema, schema.get("$defs", {}))


class ToolRegistry:
    """Name-keyed collection of tools."""

    def __init__(self, tools: Iterable[ToolSpec] = ()):
        self._tools: dict[str, ToolSpec] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolSpec) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolSpec:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def declarations(self) -> list[dict[str, Any]]:
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": function_parameters(tool.input_model),
            }
            for tool in self._tools.values()
        ]

    def validate(self, name: str, arguments: dict[str, Any] | None) -> BaseModel:
        tool = self.get(name)
        try:
            return tool.input_model.model_validate(arguments or {})
        except ValidationError as e:
            raise ToolInputValidationError(
                name, e.errors(include_url=False, include_context=False, include_input=False)
            ) from e

    async def execute(self, name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
        params = self.validate(name, arguments)
        logger.info(f"🛠️ Executing tool {name}")
        return await self.get(name).execute(params)
