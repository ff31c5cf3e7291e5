"""
Canonical tool definitions and tool calls, with conversions between the
MCP-native shapes and the flat function-call shapes used by OpenAI-style
model backends.

Native tool description::

    {"name": str, "description": str, "inputSchema": {"properties": ..., "required": ...}}

Function-call tool description::

    {"type": "function",
     "function": {"name": str, "description": str,
                  "parameters": {"type": "object", "properties": ..., "required": ...}}}

The top-level ``"type": "object"`` belongs to the function-call shape: it is
added by ``to_function()`` and removed again by ``from_function()``. A missing
description stays missing in both shapes.

Tool calls are carried either with an input object (``tool_use``) or with
JSON-stringified arguments (``function``).
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

FUNCTION_SCHEMA_TYPE = "object"


@dataclass(frozen=True)
class ToolDefinition:
    """A tool exposed by a provider."""

    name: str
    description: Optional[str] = None
    input_schema: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mcp(cls, tool: Any) -> "ToolDefinition":
        """Build from a native tool description (dict or ``mcp.types.Tool``)."""
        if not isinstance(tool, Mapping):
            # pydantic model; aliases give the wire names (inputSchema)
            tool = tool.model_dump(by_alias=True, exclude_none=True)
        name = tool.get("name")
        if not name:
            raise ValueError("Tool definition must have a name")
        return cls(
            name=name,
            description=tool.get("description"),
            input_schema=dict(tool.get("inputSchema") or {}),
        )

    def to_mcp(self) -> Dict[str, Any]:
        native: Dict[str, Any] = {"name": self.name}
        if self.description is not None:
            native["description"] = self.description
        native["inputSchema"] = dict(self.input_schema)
        return native

    def to_function(self) -> Dict[str, Any]:
        """Convert to the flat function-call shape."""
        parameters = {"type": FUNCTION_SCHEMA_TYPE}
        parameters.update(self.input_schema)
        function: Dict[str, Any] = {"name": self.name}
        if self.description is not None:
            function["description"] = self.description
        function["parameters"] = parameters
        return {"type": "function", "function": function}

    @classmethod
    def from_function(cls, tool: Mapping[str, Any]) -> "ToolDefinition":
        function = tool.get("function") or {}
        name = function.get("name")
        if not name:
            raise ValueError("Function tool definition must have a name")
        parameters = dict(function.get("parameters") or {})
        if parameters.get("type") == FUNCTION_SCHEMA_TYPE:
            del parameters["type"]
        return cls(
            name=name,
            description=function.get("description"),
            input_schema=parameters,
        )


@dataclass(frozen=True)
class ToolCall:
    """A model's request to invoke a tool."""

    id: Optional[str]
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_chunk(cls, content: Mapping[str, Any]) -> "ToolCall":
        """Build from the ``content`` of a normalized ``tool_call`` stream chunk."""
        arguments = content.get("arguments")
        return cls(
            id=content.get("tool_call_id") or content.get("id"),
            name=content.get("name") or "",
            arguments=dict(arguments) if isinstance(arguments, Mapping) else {},
        )

    def to_tool_use(self) -> Dict[str, Any]:
        """Input-object representation."""
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": dict(self.arguments)}

    @classmethod
    def from_tool_use(cls, tool_use: Mapping[str, Any]) -> "ToolCall":
        return cls(
            id=tool_use.get("id"),
            name=tool_use.get("name") or "",
            arguments=dict(tool_use.get("input") or {}),
        )

    def to_function_call(self) -> Dict[str, Any]:
        """Stringified-arguments representation."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": json.dumps(self.arguments)},
        }

    @classmethod
    def from_function_call(cls, tool_call: Mapping[str, Any]) -> "ToolCall":
        function = tool_call.get("function") or {}
        return cls(
            id=tool_call.get("id"),
            name=function.get("name") or "",
            arguments=parse_arguments(function.get("arguments")),
        )


def parse_arguments(raw: Any) -> Dict[str, Any]:
    """Decode stringified tool arguments. Objects pass through unchanged."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    try:
        value = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        logger.warning("Failed to parse tool arguments JSON: %s", e)
        return {}
    if not isinstance(value, dict):
        logger.warning("Tool arguments are not a JSON object: %r", value)
        return {}
    return value
