"""OpenAI-compatible chat completions backend

Works with the OpenAI API and with OpenAI-compatible local servers such as
Ollama (set OPENAI_BASE_URL, e.g. http://localhost:11434/v1).
"""

import copy
import json
import logging
from typing import Any, Dict, List, Optional

import openai

from ..config import get_config
from ..mcp.tool_schema import ToolCall, ToolDefinition, parse_arguments
from .base import ModelBackend

logger = logging.getLogger(__name__)


def tools_to_openai_format(tools: Optional[List[ToolDefinition]]) -> Optional[List[Dict[str, Any]]]:
    """Convert tool definitions to OpenAI tools format.

    Returns:
        List of OpenAI tool definitions, or None if no tools are provided.
    """
    if not tools:
        return None
    return [tool.to_function() for tool in tools]


class OpenAIToolCallAssembler:
    """Assembles OpenAI API streaming tool calls.

    OpenAI API streams tool calls where arguments arrive as partial JSON strings
    across multiple chunks. Each tool call has an 'index' to identify it in
    parallel function calling scenarios.

    Design:
        - Arguments arrive as incremental JSON strings: '{"pa' → 'th": "RE' → 'ADME.md"}'
        - Parse JSON only when complete (end of stream or finish_reason)
        - Multiple tool calls identified by index attribute
    """

    def __init__(self):
        self._tools_by_index: Dict[int, Dict[str, Any]] = {}

    def reset(self) -> None:
        """Clear all internal state for reuse."""
        self._tools_by_index.clear()

    def process_tool_call(self, tool_call_delta) -> None:
        """Accumulate one tool_call delta from a streaming response.

        Args:
            tool_call_delta: Tool call delta with structure:
                {
                    "index": int,
                    "id": str (optional, first chunk only),
                    "function": {
                        "name": str (optional, first chunk only),
                        "arguments": str (partial JSON fragment)
                    }
                }
        """
        index = getattr(tool_call_delta, "index", None) or 0
        function = getattr(tool_call_delta, "function", None)

        if index not in self._tools_by_index:
            self._tools_by_index[index] = {
                "id": None,
                "name": None,
                "arguments_json": "",
                "complete": False,
            }
        tool_call = self._tools_by_index[index]

        if getattr(tool_call_delta, "id", None):
            tool_call["id"] = tool_call_delta.id
        if function is not None and getattr(function, "name", None):
            tool_call["name"] = function.name

        arguments = getattr(function, "arguments", None) if function is not None else None
        if isinstance(arguments, dict):
            # Some compatible servers send the complete object at once
            tool_call["arguments_json"] = json.dumps(arguments)
        elif arguments:
            tool_call["arguments_json"] += arguments

    def finalize_pending_calls(self):
        """Finalize all pending tool calls at end of stream.

        Yields:
            Dict[str, Any]: {"type": "tool_call", "content": {...}}
        """
        for index in sorted(self._tools_by_index.keys()):
            tool_call = self._tools_by_index[index]
            if tool_call["complete"]:
                continue

            arguments = parse_arguments(tool_call["arguments_json"])
            logger.debug(
                "Finalizing tool_call: index=%s, id=%s, name=%s",
                index,
                tool_call["id"],
                tool_call["name"],
            )
            tool_call["complete"] = True
            yield {
                "type": "tool_call",
                "content": {
                    "name": tool_call["name"],
                    "arguments": arguments,
                    "tool_call_id": tool_call["id"],
                },
            }


def extract_text_from_chunk(chunk) -> str:
    """Extract text from a chat completions stream chunk."""
    if hasattr(chunk, "choices") and chunk.choices:
        delta = chunk.choices[0].delta
        delta_content = getattr(delta, "content", None)

        # Handle both string and list responses from OpenAI API
        if isinstance(delta_content, list):
            return "".join(
                part.text if hasattr(part, "text") else str(part) for part in delta_content
            )
        elif delta_content is not None:
            return delta_content
    return ""


class OpenAIBackend(ModelBackend):
    """Streaming chat completions backend with tool calling."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        client=None,
    ):
        # Use provided values or fall back to configuration
        config = get_config()
        self.api_key = api_key or config.openai_api_key
        self.model = model or config.model
        self.base_url = base_url or config.openai_base_url
        self._client = client
        if self._client is None and (self.api_key or self.base_url):
            # Local OpenAI-compatible servers ignore the key but the SDK requires one
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key or "not-needed", base_url=self.base_url
            )

    def build_request(self, messages, tools=None, system_prompt=None):
        request_messages = []
        if system_prompt and system_prompt.strip():
            request_messages.append({"role": "system", "content": system_prompt})
        request_messages.extend(copy.deepcopy(messages))

        request: Dict[str, Any] = {
            "model": self.model,
            "messages": request_messages,
            "stream": True,
        }
        openai_tools = tools_to_openai_format(tools)
        if openai_tools:
            request["tools"] = openai_tools
            request["tool_choice"] = "auto"
        return request

    async def stream(self, request):
        """Call the chat completions API and yield normalized chunks."""
        if self._client is None:
            raise ValueError("OPENAI_API_KEY is not set")

        response = await self._client.chat.completions.create(**request)

        assembler = OpenAIToolCallAssembler()
        async for chunk in response:
            if getattr(chunk, "choices", None):
                choice = chunk.choices[0]
                delta = choice.delta
                finish_reason = getattr(choice, "finish_reason", None)

                if getattr(delta, "tool_calls", None):
                    for tool_call_delta in delta.tool_calls:
                        assembler.process_tool_call(tool_call_delta)

                if finish_reason == "tool_calls":
                    for result in assembler.finalize_pending_calls():
                        yield result
                    continue

            text_content = extract_text_from_chunk(chunk)
            if text_content:
                yield {"type": "text", "content": text_content}

        # Servers that finish with "stop" after tool calls
        for result in assembler.finalize_pending_calls():
            yield result

    def continue_request(self, previous_request, text, tool_calls):
        request = copy.deepcopy(previous_request)
        message: Dict[str, Any] = {"role": "assistant", "content": text or None}
        if tool_calls:
            message["tool_calls"] = [tool_call.to_function_call() for tool_call in tool_calls]
        if text or tool_calls:
            request["messages"].append(message)
        return request

    def add_tool_result(self, request, tool_call: ToolCall, content: str, is_error: bool):
        # OpenAI has no error flag on tool messages; the text carries it
        request["messages"].append(
            {"role": "tool", "tool_call_id": tool_call.id, "content": content}
        )
