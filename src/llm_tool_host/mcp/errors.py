"""
Exception types raised by the MCP protocol layer.

The classes mix in builtin exception types so callers can keep catching
``ConnectionError`` / ``TimeoutError`` / ``LookupError`` where that is
all they care about.
"""

from typing import Any, Optional


class MCPError(Exception):
    """Base class for all MCP protocol-layer errors."""


class TransportError(MCPError, ConnectionError):
    """The provider subprocess could not be spawned, written to, or has exited."""


class ClientStateError(MCPError, ConnectionError):
    """An operation was attempted on a client that is not in the required state."""


class HandshakeError(MCPError, ConnectionError):
    """The initialize handshake with a provider failed."""


class UnsupportedProtocolVersionError(HandshakeError):
    """The provider negotiated a protocol version outside the allow-list."""

    def __init__(self, version: Any):
        super().__init__(f"Server protocol version is not supported: {version!r}")
        self.version = version


class CapabilityError(MCPError):
    """A method or notification is unknown or its required capability is missing."""

    def __init__(self, message: str, method: str, path: Optional[str] = None):
        super().__init__(message)
        self.method = method
        self.path = path


class RPCError(MCPError):
    """A JSON-RPC response carried an ``error`` member."""

    def __init__(self, code: Optional[int], message: str, data: Any = None, method: str = ""):
        detail = f"Error response from server (code={code}): {message}"
        if method:
            detail = f"{detail} [method={method}]"
        super().__init__(detail)
        self.code = code
        self.message = message
        self.data = data
        self.method = method


class RequestTimeoutError(MCPError, TimeoutError):
    """No reply arrived for a request within its timeout window."""

    def __init__(self, method: str, request_id: int, timeout: float):
        super().__init__(
            f"Timeout waiting for response to '{method}' (id={request_id}) after {timeout}s"
        )
        self.method = method
        self.request_id = request_id
        self.timeout = timeout


class ToolNotFoundError(MCPError, LookupError):
    """No registered provider exposes the requested tool."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' not found in any server")
        self.tool_name = tool_name
