"""
MCP client implementation for one provider subprocess.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from mcp import types as mcp_types
from pydantic import ValidationError

from .capabilities import (
    ClientCapabilities,
    ServerCapabilities,
    assert_notification_capability,
    assert_request_capability,
)
from .correlator import (
    DEFAULT_TIMEOUT,
    JSONRPC_VERSION,
    USE_DEFAULT_TIMEOUT,
    RequestCorrelator,
    to_wire,
)
from .errors import (
    ClientStateError,
    HandshakeError,
    MCPError,
    UnsupportedProtocolVersionError,
)
from .tool_schema import ToolDefinition

logger = logging.getLogger(__name__)

LATEST_PROTOCOL_VERSION = "2024-11-05"
SUPPORTED_PROTOCOL_VERSIONS = (LATEST_PROTOCOL_VERSION, "2024-10-07")

CLIENT_NAME = "llm-tool-host"
CLIENT_VERSION = "0.1.0"

METHOD_NOT_FOUND = -32601


class ClientState(Enum):
    CREATED = "created"
    INITIALIZING = "initializing"
    READY = "ready"
    DEAD = "dead"


class MCPClient:
    """Protocol client bound to one provider transport.

    The client performs the initialize handshake, keeps the negotiated
    capabilities, refuses any request or notification the negotiated
    capabilities do not allow, and caches the provider's tool catalog.
    """

    def __init__(
        self,
        name: str,
        transport,
        capabilities: Optional[ClientCapabilities] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
    ):
        """Initialize MCPClient over a transport.

        Args:
            name: Provider name, used for routing and log messages
            transport: Object with ``start()``, ``send()``, ``kill()``,
                ``on_message()`` and ``on_exit()`` (normally ``StdioTransport``)
            capabilities: Capabilities this client declares
            timeout: Default per-request timeout in seconds (None = no timeout)
        """
        self.name = name
        self.transport = transport
        self.client_capabilities = capabilities or ClientCapabilities()
        self.server_capabilities = ServerCapabilities()
        self.server_info: Optional[Dict[str, Any]] = None
        self.protocol_version: Optional[str] = None
        self.state = ClientState.CREATED
        self._tool_catalog: Optional[List[ToolDefinition]] = None
        self._correlator = RequestCorrelator(transport.send, default_timeout=timeout)
        self._background: set = set()

        transport.on_message(self._handle_message)
        transport.on_exit(self._handle_exit)

    @property
    def is_ready(self) -> bool:
        return self.state is ClientState.READY

    # Lifecycle

    async def initialize(self) -> "MCPClient":
        """Run the initialize handshake.

        Raises:
            ClientStateError: If the handshake was already attempted
            UnsupportedProtocolVersionError: If the server's version is not accepted
            HandshakeError: If the server cannot be started or does not reply
        """
        if self.state is not ClientState.CREATED:
            raise ClientStateError(
                f"Client '{self.name}' cannot initialize from state {self.state.value}"
            )
        self.state = ClientState.INITIALIZING

        client_info = mcp_types.Implementation(name=CLIENT_NAME, version=CLIENT_VERSION)
        try:
            await self.transport.start()
            result = await self._correlator.request(
                "initialize",
                {
                    "protocolVersion": LATEST_PROTOCOL_VERSION,
                    "clientInfo": client_info.model_dump(exclude_none=True),
                    "capabilities": self.client_capabilities.to_dict(),
                },
            )
        except MCPError as e:
            self._fail_handshake()
            raise HandshakeError(f"Failed to initialize MCP server '{self.name}': {e}") from e

        if not isinstance(result, dict):
            self._fail_handshake()
            raise HandshakeError(f"MCP server '{self.name}' returned no initialize result")

        version = result.get("protocolVersion")
        if version not in SUPPORTED_PROTOCOL_VERSIONS:
            self._fail_handshake()
            raise UnsupportedProtocolVersionError(version)

        if self.state is ClientState.DEAD:
            # Process exited while the reply was in flight.
            raise HandshakeError(f"MCP server '{self.name}' exited during initialization")

        self.protocol_version = version
        self.server_capabilities = ServerCapabilities.from_dict(result.get("capabilities"))
        self.server_info = result.get("serverInfo")

        try:
            await self.notification("notifications/initialized")
        except MCPError as e:
            self._fail_handshake()
            raise HandshakeError(f"Failed to initialize MCP server '{self.name}': {e}") from e

        self.state = ClientState.READY
        logger.info(
            "[%s] Initialized (protocol=%s, server=%s)", self.name, version, self.server_info
        )
        return self

    def kill(self) -> None:
        """Terminate the provider. Outstanding requests are abandoned."""
        if self.state is not ClientState.DEAD:
            logger.info("[%s] Killing MCP client", self.name)
        self.state = ClientState.DEAD
        self.transport.kill()

    def _fail_handshake(self) -> None:
        self.state = ClientState.DEAD
        self.transport.kill()

    def _handle_exit(self, returncode: Optional[int]) -> None:
        if self.state is not ClientState.DEAD:
            logger.warning("[%s] MCP server exited unexpectedly (code=%s)", self.name, returncode)
        self.state = ClientState.DEAD

    # Messaging

    async def request(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Any = USE_DEFAULT_TIMEOUT,
    ) -> Any:
        """Send a capability-checked request and return its result.

        Raises:
            ClientStateError: If the client is not ready
            CapabilityError: If the method is unknown or not supported by the server
            RPCError: If the server replies with an error
            RequestTimeoutError: If no reply arrives in time
        """
        if self.state is not ClientState.READY:
            raise ClientStateError(
                f"Client '{self.name}' is not ready (state={self.state.value}) for {method}"
            )
        assert_request_capability(method, self.server_capabilities)
        return await self._correlator.request(method, params, timeout=timeout)

    async def notification(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Emit a one-way notification that expects no reply."""
        if self.state not in (ClientState.INITIALIZING, ClientState.READY):
            raise ClientStateError(
                f"Client '{self.name}' cannot send {method} in state {self.state.value}"
            )
        assert_notification_capability(method, self.client_capabilities)
        await self._correlator.notify(method, params)

    def _handle_message(self, message: Any) -> None:
        if not isinstance(message, dict):
            logger.warning("[%s] Ignoring non-object message: %r", self.name, message)
            return

        try:
            envelope = mcp_types.JSONRPCMessage.model_validate(message).root
        except ValidationError as e:
            logger.warning("[%s] Ignoring invalid JSON-RPC message: %s", self.name, e)
            return

        if isinstance(envelope, (mcp_types.JSONRPCResponse, mcp_types.JSONRPCError)):
            self._correlator.handle_response(message)
        elif isinstance(envelope, mcp_types.JSONRPCRequest):
            self._spawn(self._answer_server_request(envelope.id, envelope.method))
        else:
            logger.debug("[%s] Notification from server: %s", self.name, envelope.method)

    async def _answer_server_request(self, request_id: Any, method: str) -> None:
        reply: Any
        if method == "ping":
            reply = mcp_types.JSONRPCResponse(jsonrpc=JSONRPC_VERSION, id=request_id, result={})
        else:
            logger.debug("[%s] Rejecting server request: %s", self.name, method)
            reply = mcp_types.JSONRPCError(
                jsonrpc=JSONRPC_VERSION,
                id=request_id,
                error=mcp_types.ErrorData(
                    code=METHOD_NOT_FOUND, message=f"Method not found: {method}"
                ),
            )
        try:
            await self.transport.send(to_wire(reply))
        except MCPError as e:
            logger.warning("[%s] Failed to answer server request %s: %s", self.name, method, e)

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # Method wrappers

    async def ping(self):
        return await self.request("ping")

    async def complete(self, params: Dict[str, Any]):
        return await self.request("completion/complete", params)

    async def set_logging_level(self, level: str):
        return await self.request("logging/setLevel", {"level": level})

    async def get_prompt(self, params: Dict[str, Any]):
        return await self.request("prompts/get", params)

    async def list_prompts(self, params: Optional[Dict[str, Any]] = None):
        return await self.request("prompts/list", params)

    async def list_resources(self, params: Optional[Dict[str, Any]] = None):
        return await self.request("resources/list", params)

    async def list_resource_templates(self, params: Optional[Dict[str, Any]] = None):
        return await self.request("resources/templates/list", params)

    async def read_resource(self, params: Dict[str, Any]):
        return await self.request("resources/read", params)

    async def subscribe_resource(self, params: Dict[str, Any]):
        return await self.request("resources/subscribe", params)

    async def unsubscribe_resource(self, params: Dict[str, Any]):
        return await self.request("resources/unsubscribe", params)

    async def list_tools(self, params: Optional[Dict[str, Any]] = None):
        return await self.request("tools/list", params)

    async def send_roots_list_changed(self) -> None:
        await self.notification("notifications/roots/list_changed")

    async def get_tools(self) -> List[ToolDefinition]:
        """Return the provider's tool catalog, fetching it on first use.

        Returns:
            List of ToolDefinition in the order the provider listed them
        """
        if self._tool_catalog is not None:
            return list(self._tool_catalog)

        catalog: List[ToolDefinition] = []
        cursor = None
        while True:
            result = await self.list_tools({"cursor": cursor} if cursor else None) or {}
            for raw_tool in result.get("tools", []):
                try:
                    tool = mcp_types.Tool.model_validate(raw_tool)
                except ValidationError as e:
                    logger.warning("[%s] Skipping invalid tool definition: %s", self.name, e)
                    continue
                catalog.append(ToolDefinition.from_mcp(tool))
            cursor = result.get("nextCursor")
            if not cursor:
                break

        self._tool_catalog = catalog
        logger.debug("[%s] Cached %d tool(s)", self.name, len(catalog))
        return list(catalog)

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        timeout: Any = USE_DEFAULT_TIMEOUT,
    ) -> Dict[str, Any]:
        """Execute a tool on the provider.

        Args:
            name: Tool name (e.g., "read_file")
            arguments: Tool arguments as dict (e.g., {"path": "README.md"})

        Returns:
            Tool result with structure:
            {
                "content": [
                    {"type": "text", "text": "..."},
                    # or {"type": "image", "data": "...", "mimeType": "..."},
                    # or {"type": "resource", "resource": {...}}
                ],
                "isError": bool
            }
        """
        raw = await self.request(
            "tools/call", {"name": name, "arguments": arguments or {}}, timeout=timeout
        )
        try:
            response = mcp_types.CallToolResult.model_validate(raw or {})
        except ValidationError as e:
            logger.warning("[%s] Malformed tools/call result for '%s': %s", self.name, name, e)
            return {
                "content": [{"type": "text", "text": f"Malformed tool result: {raw!r}"}],
                "isError": True,
            }

        dumped = response.model_dump(by_alias=True, exclude_none=True)
        return {
            "content": list(dumped.get("content", [])),
            "isError": bool(dumped.get("isError")),
        }
