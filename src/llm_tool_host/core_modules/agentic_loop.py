"""Agentic Loop implementation module

A ConversationTurn drives one user turn: it streams model requests and
dispatches the tool calls they produce until no work is left.

Work is kept in two FIFO queues. Tool calls are always drained before the
next model request is issued, so a continuation request only goes out once
every tool result of the response it continues has been added to it.

The turn ends when:
- both queues are empty (the completion hook runs and a TurnResult is returned)
- a model stream fails or a tool dispatch hits a connection failure
  (TurnAbortedError is raised)
"""

import dataclasses
import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from ..history_utils import tool_error_text, tool_result_to_text
from ..mcp.tool_schema import ToolCall
from ..providers.base import ModelBackend

logger = logging.getLogger(__name__)


class TurnAbortedError(Exception):
    """Raised when a turn cannot continue."""


@dataclass(frozen=True)
class TurnResult:
    """Result of ConversationTurn.run().

    Attributes:
        chunks: All chunks emitted during the turn (text, tool_call, tool_result)
        final_text: Text of the last model response
        requests_issued: Number of model requests streamed
        tool_calls_made: Number of tool calls dispatched
        final_request: The last request sent to the model
    """

    chunks: List[Dict[str, Any]]
    final_text: str
    requests_issued: int
    tool_calls_made: int
    final_request: Optional[Dict[str, Any]] = None


@dataclass
class _ResponseContext:
    """Tracks one model response and the continuation built from its tool results."""

    request: Dict[str, Any]
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    continuation: Optional[Dict[str, Any]] = None


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class ConversationTurn:
    """Runs one turn of a conversation against a model backend and an MCP host.

    Args:
        backend: ModelBackend that builds and streams requests
        host: Object exposing ``async run_tool(ToolCall) -> dict`` (MCPServerManager)
        initial_request: First request of the turn, built by ``backend.build_request``
        sink: Optional callable receiving each text fragment as it streams.
              May be sync or async.
        on_complete: Optional callable invoked once with the TurnResult when
                     the turn finishes normally. May be sync or async.
    """

    def __init__(
        self,
        backend: ModelBackend,
        host: Any,
        initial_request: Dict[str, Any],
        sink: Optional[Callable[[str], Any]] = None,
        on_complete: Optional[Callable[[TurnResult], Any]] = None,
    ):
        self.backend = backend
        self.host = host
        self.sink = sink
        self.on_complete = on_complete
        self.pending_requests: Deque[Dict[str, Any]] = deque([initial_request])
        self.pending_tool_calls: Deque[Tuple[_ResponseContext, ToolCall]] = deque()

        self._chunks: List[Dict[str, Any]] = []
        self._final_text = ""
        self._last_request: Optional[Dict[str, Any]] = None
        self._requests_issued = 0
        self._tool_calls_made = 0
        self._fallback_ids = 0
        self._finished = False

    async def run(self) -> TurnResult:
        """Step until both queues are empty.

        Raises:
            TurnAbortedError: If a model stream or a tool connection fails
            RuntimeError: If the turn was already run
        """
        if self._finished:
            raise RuntimeError("ConversationTurn has already been run")
        self._finished = True

        while self.pending_tool_calls or self.pending_requests:
            if self.pending_tool_calls:
                context, tool_call = self.pending_tool_calls.popleft()
                await self._dispatch_tool_call(context, tool_call)
            else:
                request = self.pending_requests.popleft()
                await self._issue_request(request)

        result = TurnResult(
            chunks=list(self._chunks),
            final_text=self._final_text,
            requests_issued=self._requests_issued,
            tool_calls_made=self._tool_calls_made,
            final_request=self._last_request,
        )
        if self.on_complete is not None:
            await _maybe_await(self.on_complete(result))
        return result

    async def _issue_request(self, request: Dict[str, Any]) -> None:
        context = _ResponseContext(request=request)
        self._requests_issued += 1
        self._last_request = request

        try:
            stream = self.backend.stream(request)
        except Exception as e:
            raise self._model_failure(e) from e

        try:
            while True:
                # Sink errors propagate unchanged; only stream failures abort the turn
                try:
                    chunk = await stream.__anext__()
                except StopAsyncIteration:
                    break
                except Exception as e:
                    raise self._model_failure(e) from e
                await self._handle_chunk(context, chunk)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        self._final_text = context.text
        for tool_call in context.tool_calls:
            self.pending_tool_calls.append((context, tool_call))

    def _model_failure(self, error: Exception) -> TurnAbortedError:
        logger.error("Model request failed (%s): %s", self.backend.name, error)
        return TurnAbortedError(f"Model request failed: {error}")

    async def _handle_chunk(self, context: _ResponseContext, chunk: Dict[str, Any]) -> None:
        chunk_type = chunk.get("type")
        if chunk_type == "text":
            content = chunk.get("content", "")
            context.text += content
            self._chunks.append(chunk)
            if self.sink is not None:
                await _maybe_await(self.sink(content))
        elif chunk_type == "tool_call":
            tool_call = self._to_tool_call(chunk.get("content", {}))
            context.tool_calls.append(tool_call)
            self._chunks.append(
                {
                    "type": "tool_call",
                    "content": {
                        "name": tool_call.name,
                        "arguments": dict(tool_call.arguments),
                        "tool_call_id": tool_call.id,
                    },
                }
            )
        else:
            logger.debug("Ignoring chunk of type %s", chunk_type)

    def _to_tool_call(self, content: Dict[str, Any]) -> ToolCall:
        tool_call = ToolCall.from_chunk(content)
        if not tool_call.id:
            # Backends such as Ollama may omit ids; results still need one to pair with
            self._fallback_ids += 1
            fallback_id = f"call_{self._fallback_ids}_{tool_call.name}"
            logger.warning(
                "Tool call missing tool_call_id; using fallback (name=%s)", tool_call.name
            )
            tool_call = dataclasses.replace(tool_call, id=fallback_id)
        return tool_call

    async def _dispatch_tool_call(self, context: _ResponseContext, tool_call: ToolCall) -> None:
        self._tool_calls_made += 1
        try:
            result = await self.host.run_tool(tool_call)
        except ConnectionError as e:
            # Provider is gone; the conversation cannot be completed
            logger.error("MCP connection error during tool execution: %s", tool_call.name)
            raise TurnAbortedError(f"Tool '{tool_call.name}' failed: {e}") from e
        except Exception as e:
            logger.warning("Tool execution failed for %s: %s", tool_call.name, e)
            text, is_error = tool_error_text(e), True
        else:
            text, is_error = tool_result_to_text(result)
            if is_error:
                logger.warning("Tool '%s' returned error: %s", tool_call.name, text)

        self._chunks.append(
            {
                "type": "tool_result",
                "content": {
                    "name": tool_call.name,
                    "tool_call_id": tool_call.id,
                    "content": text,
                    "is_error": is_error,
                },
            }
        )
        self._fold_result(context, tool_call, text, is_error)

    def _fold_result(
        self, context: _ResponseContext, tool_call: ToolCall, text: str, is_error: bool
    ) -> None:
        if context.continuation is None:
            context.continuation = self.backend.continue_request(
                context.request, context.text, context.tool_calls
            )
            self.pending_requests.append(context.continuation)
        self.backend.add_tool_result(context.continuation, tool_call, text, is_error)
