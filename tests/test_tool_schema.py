"""Tests for tool definition / tool call conversions."""

import pytest

from llm_tool_host.mcp.tool_schema import ToolCall, ToolDefinition, parse_arguments

SCHEMA = {
    "type": "object",
    "properties": {"path": {"type": "string", "description": "File path"}},
    "required": ["path"],
}

# Native descriptions carry the properties and required list without a top-level type
NATIVE_SCHEMA = {
    "properties": {"path": {"type": "string", "description": "File path"}},
    "required": ["path"],
}


def test_native_round_trip():
    """MCP形式との相互変換で情報が失われない"""
    native = {"name": "read_file", "description": "Read a file", "inputSchema": SCHEMA}
    tool = ToolDefinition.from_mcp(native)
    assert tool.to_mcp() == native
    assert ToolDefinition.from_mcp(tool.to_mcp()) == tool


@pytest.mark.parametrize(
    "native",
    [
        {"name": "read_file", "description": "Read a file", "inputSchema": NATIVE_SCHEMA},
        {"name": "now", "inputSchema": {}},
        {"name": "ping", "description": "", "inputSchema": {"properties": {}}},
    ],
)
def test_native_to_function_and_back(native):
    """MCP形式 -> 関数呼び出し形式 -> MCP形式で元の説明が復元される"""
    function = ToolDefinition.from_mcp(native).to_function()

    assert ToolDefinition.from_function(function).to_mcp() == native


def test_to_function_shape():
    """関数呼び出し形式ではparametersにtype: objectが付く"""
    function = ToolDefinition("read_file", "Read a file", NATIVE_SCHEMA).to_function()

    assert function == {
        "type": "function",
        "function": {
            "name": "read_file",
            "description": "Read a file",
            "parameters": {"type": "object", **NATIVE_SCHEMA},
        },
    }


def test_missing_description_is_not_invented():
    """説明がなければどちらの形式にも出力されない"""
    tool = ToolDefinition.from_mcp({"name": "now", "inputSchema": {}})

    assert tool.description is None
    assert "description" not in tool.to_mcp()
    assert "description" not in tool.to_function()["function"]
    assert tool.to_function()["function"]["parameters"] == {"type": "object"}


def test_from_mcp_accepts_sdk_tool():
    """mcp.types.Toolからも変換できる"""
    from mcp import types as mcp_types

    sdk_tool = mcp_types.Tool(name="read_file", description="Read a file", inputSchema=SCHEMA)

    assert ToolDefinition.from_mcp(sdk_tool) == ToolDefinition("read_file", "Read a file", SCHEMA)


def test_from_mcp_requires_name():
    with pytest.raises(ValueError):
        ToolDefinition.from_mcp({"description": "nameless"})


def test_tool_call_function_round_trip():
    """文字列化された引数との相互変換"""
    call = ToolCall("call_1", "read_file", {"path": "README.md"})
    wire = call.to_function_call()

    assert wire["function"]["arguments"] == '{"path": "README.md"}'
    assert ToolCall.from_function_call(wire) == call


def test_tool_call_tool_use_round_trip():
    """入力オブジェクト形式との相互変換"""
    call = ToolCall("toolu_1", "read_file", {"path": "README.md"})
    wire = call.to_tool_use()

    assert wire == {
        "type": "tool_use",
        "id": "toolu_1",
        "name": "read_file",
        "input": {"path": "README.md"},
    }
    assert ToolCall.from_tool_use(wire) == call


def test_tool_call_from_chunk():
    call = ToolCall.from_chunk(
        {"name": "read_file", "arguments": {"path": "a"}, "tool_call_id": "call_9"}
    )
    assert call == ToolCall("call_9", "read_file", {"path": "a"})


def test_parse_arguments():
    assert parse_arguments(None) == {}
    assert parse_arguments("") == {}
    assert parse_arguments({"a": 1}) == {"a": 1}
    assert parse_arguments('{"a": 1}') == {"a": 1}


def test_parse_arguments_invalid_json_falls_back_to_empty(caplog):
    assert parse_arguments("{not json") == {}
    assert parse_arguments("[1, 2]") == {}
    assert "Failed to parse tool arguments JSON" in caplog.text
