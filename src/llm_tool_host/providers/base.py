"""Base classes for model backends

This module defines the interface the conversation loop needs from a model
backend. Requests are opaque to the loop; only the backend knows their shape.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

from ..mcp.tool_schema import ToolCall, ToolDefinition


class ModelBackend(ABC):
    """Abstract base class for model backends"""

    name: str = "model"

    @abstractmethod
    def build_request(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[ToolDefinition]] = None,
        system_prompt: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Build the initial request of a turn

        Args:
            messages: Messages in the backend's format
            tools: Tools the model may call
            system_prompt: Optional system instruction

        Returns:
            Backend-specific request object
        """

    @abstractmethod
    def stream(self, request: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """Issue a request as a streamed call

        Yields:
            Normalized chunks:
                {"type": "text", "content": str} or
                {"type": "tool_call", "content": {"name", "arguments", "tool_call_id"}}
        """

    @abstractmethod
    def continue_request(
        self, previous_request: Dict[str, Any], text: str, tool_calls: List[ToolCall]
    ) -> Dict[str, Any]:
        """Build the request continuing a turn after a model response

        The new request carries the previous request's history plus an
        assistant message with the response's text and tool calls. It MUST NOT
        mutate ``previous_request``.
        """

    @abstractmethod
    def add_tool_result(
        self, request: Dict[str, Any], tool_call: ToolCall, content: str, is_error: bool
    ) -> None:
        """Append a tool result message to a continuation request (in place)"""
