"""llm_tool_host - drive a streaming LLM conversation against local MCP tool servers."""

from .core_modules import ConversationTurn, TurnAbortedError, TurnResult
from .mcp import MCPClient, MCPServerManager, StdioTransport
from .providers import ModelBackend, OpenAIBackend

__version__ = "0.1.0"

__all__ = [
    "ConversationTurn",
    "MCPClient",
    "MCPServerManager",
    "ModelBackend",
    "OpenAIBackend",
    "StdioTransport",
    "TurnAbortedError",
    "TurnResult",
]
