"""Translate tool definitions to and from each provider's wire dialect.

Translation is total and order preserving: every definition maps to one
wire entry, required parameter names and enumerations are carried over
unchanged.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence

from ..tools import ToolDefinition


def to_openai_tool(tool: ToolDefinition) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.json_schema(),
        },
    }


def from_openai_tool(entry: Dict[str, Any]) -> ToolDefinition:
    function = entry.get("function", entry)
    return ToolDefinition.from_schema(function["name"], function.get("description", ""), function.get("parameters"))


def to_anthropic_tool(tool: ToolDefinition) -> Dict[str, Any]:
    return {
        "name": tool.name,
        "description": tool.description,
        "input_schema": tool.json_schema(),
    }


def from_anthropic_tool(entry: Dict[str, Any]) -> ToolDefinition:
    return ToolDefinition.from_schema(entry["name"], entry.get("description", ""), entry.get("input_schema"))


def _gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    # Gemini's OpenAPI subset spells types in upper case.
    converted = copy.deepcopy(schema)
    if "type" in converted:
        converted["type"] = str(converted["type"]).upper()
    if "properties" in converted:
        converted["properties"] = {k: _gemini_schema(v) for k, v in converted["properties"].items()}
    if "items" in converted:
        converted["items"] = _gemini_schema(converted["items"])
    return converted


def _json_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    converted = copy.deepcopy(schema)
    if "type" in converted:
        converted["type"] = str(converted["type"]).lower()
    if "properties" in converted:
        converted["properties"] = {k: _json_schema(v) for k, v in converted["properties"].items()}
    if "items" in converted:
        converted["items"] = _json_schema(converted["items"])
    return converted


def to_gemini_tool(tool: ToolDefinition) -> Dict[str, Any]:
    declaration: Dict[str, Any] = {"name": tool.name, "description": tool.description}
    if tool.parameters:
        declaration["parameters"] = _gemini_schema(tool.json_schema())
    return declaration


def from_gemini_tool(entry: Dict[str, Any]) -> ToolDefinition:
    parameters = entry.get("parameters")
    return ToolDefinition.from_schema(
        entry["name"], entry.get("description", ""), _json_schema(parameters) if parameters else None
    )


@dataclass(frozen=True)
class ToolDialect:
    name: str
    encode: Callable[[ToolDefinition], Dict[str, Any]]
    decode: Callable[[Dict[str, Any]], ToolDefinition]

    def encode_all(self, tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
        return [self.encode(tool) for tool in tools]

    def decode_all(self, entries: Sequence[Dict[str, Any]]) -> List[ToolDefinition]:
        return [self.decode(entry) for entry in entries]


OPENAI_DIALECT = ToolDialect("openai", to_openai_tool, from_openai_tool)
ANTHROPIC_DIALECT = ToolDialect("anthropic", to_anthropic_tool, from_anthropic_tool)
GEMINI_DIALECT = ToolDialect("gemini", to_gemini_tool, from_gemini_tool)

DIALECTS: Dict[str, ToolDialect] = {
    d.name: d for d in (OPENAI_DIALECT, ANTHROPIC_DIALECT, GEMINI_DIALECT)
}
