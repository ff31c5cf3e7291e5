"""Shared fixtures for e2e tests."""

import sys
from pathlib import Path

import pytest

from llm_tool_host.mcp.server_config import MCPServerConfig

SERVER_SCRIPT = Path(__file__).with_name("fs_server.py")


@pytest.fixture
def fs_server_config():
    """Config launching the FastMCP test server with the current interpreter."""
    return MCPServerConfig(
        name="fs",
        command=sys.executable,
        args=(str(SERVER_SCRIPT),),
        # Interpreter start-up plus the mcp import can be slow on CI
        timeout=30.0,
    )
