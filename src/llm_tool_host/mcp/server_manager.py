"""
MCP server manager for managing multiple MCP servers.

This module provides centralized management of multiple MCP server instances,
including lifecycle management, tool aggregation, permission checks and tool
execution routing.
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .capabilities import ClientCapabilities
from .client import ClientState, MCPClient
from .correlator import DEFAULT_TIMEOUT
from .errors import MCPError, ToolNotFoundError
from .permissions import (
    PermissionCache,
    PermissionChoice,
    PermissionPrompt,
    ask_permission,
    console_permission_prompt,
)
from .server_config import MCPServerConfig, load_server_configs
from .tool_schema import ToolCall, ToolDefinition
from .transport import StdioTransport

logger = logging.getLogger(__name__)


class MCPServerManager:
    """Manager for multiple MCP server instances.

    This class handles the lifecycle of multiple MCP servers, aggregates their
    tools, and routes tool calls to the appropriate server. When two servers
    expose a tool with the same name, the server registered last wins: it
    receives the calls and its definition is the one listed.
    """

    def __init__(
        self,
        permission_prompt: Optional[PermissionPrompt] = None,
        client_capabilities: Optional[ClientCapabilities] = None,
    ):
        """Initialize the MCP server manager.

        Args:
            permission_prompt: Callable asked before a tool runs for the first
                time in this session. Defaults to a console prompt.
            client_capabilities: Capabilities declared by every client
        """
        self._servers: Dict[str, MCPServerConfig] = {}
        self._clients: Dict[str, MCPClient] = {}
        self._handshakes: Dict[str, asyncio.Task] = {}
        self._tool_to_server: Dict[str, str] = {}
        self._all_tools: List[ToolDefinition] = []
        self._client_capabilities = client_capabilities
        self._permission_prompt = permission_prompt or console_permission_prompt
        self.permissions = PermissionCache()

    # Registration and lifecycle

    def add_server(self, config: MCPServerConfig) -> None:
        """Add a server configuration to the manager.

        Raises:
            ValueError: If a server with the same name is already registered,
                or the configuration is invalid
        """
        self._check_new_servers([config])
        self._servers[config.name] = config
        logger.debug(f"Added server: {config.name}")

    def load(self, configs: Iterable[MCPServerConfig]) -> None:
        """Register servers and start their handshakes.

        Must be called with a running event loop. Registration does not wait
        for the handshakes; use ``wait_until_ready()`` for that.
        """
        configs = list(configs)
        self._check_new_servers(configs)
        for config in configs:
            self._servers[config.name] = config
            logger.debug(f"Added server: {config.name}")

        logger.info(f"Starting {len(configs)} MCP server(s)...")
        for config in configs:
            transport = StdioTransport(
                config.command, config.args, config.env, name=config.name
            )
            client = MCPClient(
                config.name,
                transport,
                capabilities=self._client_capabilities,
                timeout=config.timeout,
            )
            self._clients[config.name] = client
            self._handshakes[config.name] = asyncio.ensure_future(self._initialize(client))

    def _check_new_servers(self, configs: List[MCPServerConfig]) -> None:
        """Validate a whole batch before any of it is registered."""
        seen = set()
        for config in configs:
            if config.name in self._servers or config.name in seen:
                raise ValueError(f"Server '{config.name}' is already registered")
            issues = config.validate()
            if issues:
                raise ValueError(f"Invalid server configuration: {', '.join(issues)}")
            seen.add(config.name)

    def load_from_file(
        self, path: Union[str, Path, None], timeout: Optional[float] = DEFAULT_TIMEOUT
    ) -> List[MCPServerConfig]:
        """Register every server listed in a ``.mcpconfig.json`` file.

        A missing file or empty "mcpServers" mapping registers nothing.
        """
        configs = load_server_configs(path, timeout=timeout)
        self.load(configs)
        return configs

    async def _initialize(self, client: MCPClient) -> None:
        try:
            await client.initialize()
            logger.info(f"Started server: {client.name}")
        except MCPError as e:
            logger.error(f"Failed to start server '{client.name}': {e}")

    async def wait_until_ready(self) -> Dict[str, ClientState]:
        """Wait for all pending handshakes and report each server's state."""
        pending = [task for task in self._handshakes.values() if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return {name: client.state for name, client in self._clients.items()}

    def kill_all(self) -> None:
        """Kill every server and forget all registrations. Safe to call repeatedly."""
        if self._clients:
            logger.info("Stopping all MCP servers...")

        for task in self._handshakes.values():
            if not task.done():
                task.cancel()

        for name, client in list(self._clients.items()):
            try:
                client.kill()
                logger.info(f"Stopped server: {name}")
            except Exception as e:
                logger.warning(f"Error stopping server '{name}': {e}")

        self._servers.clear()
        self._clients.clear()
        self._handshakes.clear()
        self._tool_to_server.clear()
        self._all_tools.clear()

    # Lookup

    @property
    def server_names(self) -> List[str]:
        return list(self._clients)

    def get_client(self, name: str) -> Optional[MCPClient]:
        return self._clients.get(name)

    def get_server_configs(self) -> List[MCPServerConfig]:
        """Registered server configurations, in registration order."""
        return list(self._servers.values())

    def get_tool_routes(self) -> Dict[str, str]:
        """Tool name -> server name, as of the last ``get_all_tools()``."""
        return dict(self._tool_to_server)

    async def get_all_tools(self) -> List[ToolDefinition]:
        """Aggregate the tool catalogs of all ready servers.

        The routing table is rebuilt from scratch on every call. Servers that
        are not ready (still initializing, failed, or killed) contribute nothing.

        Returns:
            list[ToolDefinition]: Aggregated tools, one entry per tool name
        """
        routes: Dict[str, str] = {}
        catalog: List[ToolDefinition] = []

        for server_name, client in list(self._clients.items()):
            if not client.is_ready:
                continue
            try:
                tools = await client.get_tools()
            except MCPError as e:
                logger.warning(f"Failed to list tools of server '{server_name}': {e}")
                continue

            for tool in tools:
                previous = routes.get(tool.name)
                if previous is not None:
                    logger.warning(
                        "Tool '%s' from server '%s' replaces the one from server '%s'",
                        tool.name,
                        server_name,
                        previous,
                    )
                    catalog = [t for t in catalog if t.name != tool.name]
                routes[tool.name] = server_name
                catalog.append(tool)

        self._tool_to_server = routes
        self._all_tools = catalog
        return list(catalog)

    # Execution

    async def run_tool(self, tool_call: ToolCall) -> dict:
        """Execute a tool on the server that owns it, after a permission check.

        Args:
            tool_call: Requested tool call

        Returns:
            Tool result dict with 'content' and 'isError' keys. A denied call
            returns an error result without contacting the server.

        Raises:
            ToolNotFoundError: If no registered server exposes the tool
        """
        server_name = self._tool_to_server.get(tool_call.name)
        client = self._clients.get(server_name) if server_name else None
        if client is None:
            raise ToolNotFoundError(tool_call.name)

        if not await self._is_permitted(tool_call):
            logger.info(f"Permission denied for tool '{tool_call.name}'")
            return {
                "content": [
                    {"type": "text", "text": f"User denied permission to run tool '{tool_call.name}'"}
                ],
                "isError": True,
            }

        logger.info(f"Calling tool '{tool_call.name}' on server '{server_name}'")
        return await client.call_tool(tool_call.name, tool_call.arguments)

    async def _is_permitted(self, tool_call: ToolCall) -> bool:
        decision = self.permissions.get(tool_call.name)
        if decision is not None:
            return decision

        choice = await ask_permission(self._permission_prompt, tool_call)
        if choice is PermissionChoice.ALLOW_SESSION:
            self.permissions.grant(tool_call.name)
            return True
        if choice is PermissionChoice.ALLOW_ONCE:
            return True
        self.permissions.deny(tool_call.name)
        return False
