"""
MCP (Model Context Protocol) client package.
"""

from llm_tool_host.mcp.capabilities import ClientCapabilities, ServerCapabilities
from llm_tool_host.mcp.client import (
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    ClientState,
    MCPClient,
)
from llm_tool_host.mcp.correlator import RequestCorrelator
from llm_tool_host.mcp.errors import (
    CapabilityError,
    ClientStateError,
    HandshakeError,
    MCPError,
    RequestTimeoutError,
    RPCError,
    ToolNotFoundError,
    TransportError,
    UnsupportedProtocolVersionError,
)
from llm_tool_host.mcp.permissions import PermissionCache, PermissionChoice
from llm_tool_host.mcp.server_config import MCPServerConfig
from llm_tool_host.mcp.server_manager import MCPServerManager
from llm_tool_host.mcp.tool_schema import ToolCall, ToolDefinition
from llm_tool_host.mcp.transport import StdioTransport

__all__ = [
    "LATEST_PROTOCOL_VERSION",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "CapabilityError",
    "ClientCapabilities",
    "ClientState",
    "ClientStateError",
    "HandshakeError",
    "MCPClient",
    "MCPError",
    "MCPServerConfig",
    "MCPServerManager",
    "PermissionCache",
    "PermissionChoice",
    "RPCError",
    "RequestCorrelator",
    "RequestTimeoutError",
    "ServerCapabilities",
    "StdioTransport",
    "ToolCall",
    "ToolDefinition",
    "ToolNotFoundError",
    "TransportError",
    "UnsupportedProtocolVersionError",
]
