"""
MCP server configuration data structures.

This module defines the provider configuration and reads the project-scoped
``.mcpconfig.json`` file::

    {
      "mcpServers": {
        "github": {
          "command": "npx",
          "args": ["-y", "@modelcontextprotocol/server-github"],
          "env": {"GITHUB_PERSONAL_ACCESS_TOKEN": "..."}
        }
      }
    }
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Tuple, Union

from .correlator import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = ".mcpconfig.json"


@dataclass(frozen=True)
class MCPServerConfig:
    """Configuration for an MCP server.

    Attributes:
        name: Unique, case-sensitive identifier for this server instance
        command: Command to launch the MCP server (e.g., "npx", "uvx")
        args: Arguments for the server command
        env: Extra environment variables for the server process
        timeout: Per-request timeout in seconds (None waits forever)
    """

    name: str
    command: str
    args: Tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    timeout: Optional[float] = DEFAULT_TIMEOUT

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues.

        Returns:
            list[str]: List of validation error messages. Empty if valid.
        """
        issues = []

        if not self.name:
            issues.append("Server name cannot be empty")

        if not self.command:
            issues.append("Server command cannot be empty")

        if self.timeout is not None and self.timeout <= 0:
            issues.append(f"Invalid timeout: {self.timeout} (must be > 0)")

        return issues


def parse_server_configs(
    data: Mapping, timeout: Optional[float] = DEFAULT_TIMEOUT
) -> List[MCPServerConfig]:
    """Build server configurations from a decoded config document.

    Args:
        data: Decoded JSON object with an optional "mcpServers" mapping
        timeout: Per-request timeout applied to every server

    Returns:
        list[MCPServerConfig]: One entry per server, in file order

    Raises:
        ValueError: If the document or a server entry has the wrong shape
    """
    if not isinstance(data, Mapping):
        raise ValueError("MCP config must be a JSON object")

    servers = data.get("mcpServers")
    if servers is None:
        servers = {}
    if not isinstance(servers, Mapping):
        raise ValueError("'mcpServers' must be a JSON object")

    configs = []
    for name, entry in servers.items():
        if not isinstance(entry, Mapping):
            raise ValueError(f"Server '{name}' must be a JSON object")
        command = entry.get("command")
        args = entry.get("args")
        env = entry.get("env")
        if args is None:
            args = []
        if env is None:
            env = {}
        if command is not None and not isinstance(command, str):
            raise ValueError(f"Server '{name}': 'command' must be a string")
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise ValueError(f"Server '{name}': 'args' must be a list of strings")
        if not isinstance(env, Mapping):
            raise ValueError(f"Server '{name}': 'env' must be a JSON object")
        configs.append(
            MCPServerConfig(
                name=name,
                command=command or "",
                args=tuple(args),
                env={str(k): str(v) for k, v in env.items()},
                timeout=timeout,
            )
        )
    return configs


def load_server_configs(
    path: Union[str, Path, None], timeout: Optional[float] = DEFAULT_TIMEOUT
) -> List[MCPServerConfig]:
    """Read server configurations from a config file.

    A missing file or an empty "mcpServers" mapping yields no servers.

    Raises:
        ValueError: If the file is not valid JSON or has the wrong shape
    """
    if path is None:
        return []
    config_path = Path(path)
    if not config_path.is_file():
        logger.debug("No MCP config file at %s", config_path)
        return []

    text = config_path.read_text(encoding="utf-8")
    if not text.strip():
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid MCP config file {config_path}: {e}") from e

    configs = parse_server_configs(data, timeout=timeout)
    logger.debug("Loaded %d MCP server config(s) from %s", len(configs), config_path)
    return configs


def find_config_file(
    filename: str = DEFAULT_CONFIG_FILENAME, start: Union[str, Path, None] = None
) -> Optional[Path]:
    """Find ``filename`` in ``start`` (default: cwd) or the nearest parent directory."""
    directory = Path(start or Path.cwd()).resolve()
    for candidate_dir in (directory, *directory.parents):
        candidate = candidate_dir / filename
        if candidate.is_file():
            return candidate
    return None
