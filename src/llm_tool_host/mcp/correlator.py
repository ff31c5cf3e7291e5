"""
JSON-RPC request/response correlation.

Each outgoing request gets the next integer id and an ``asyncio.Future``
that is resolved exactly once: by the matching reply, or by its timeout.
Replies may arrive in any order.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from mcp import types as mcp_types

from .errors import RPCError, RequestTimeoutError

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
DEFAULT_TIMEOUT = 5.0  # seconds

# Sentinel so callers can pass ``timeout=None`` to wait forever.
USE_DEFAULT_TIMEOUT: Any = object()


def to_wire(message: Any) -> Dict[str, Any]:
    """Dump a ``mcp.types`` JSON-RPC model to its wire dict."""
    return message.model_dump(by_alias=True, exclude_none=True)


@dataclass
class PendingRequest:
    """A request awaiting its reply."""

    id: int
    method: str
    future: asyncio.Future
    timer: Optional[asyncio.TimerHandle] = None


class RequestCorrelator:
    """Assigns request ids and resolves each pending request exactly once."""

    def __init__(
        self,
        send: Callable[[Dict[str, Any]], Awaitable[None]],
        default_timeout: Optional[float] = DEFAULT_TIMEOUT,
    ):
        """Initialize the correlator.

        Args:
            send: Coroutine function writing one envelope to the wire
            default_timeout: Seconds to wait for a reply; None waits forever
        """
        self._send = send
        self.default_timeout = default_timeout
        self._next_id = 0
        self._pending: Dict[int, PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: int) -> bool:
        return request_id in self._pending

    def _allocate_id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def request(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Any = USE_DEFAULT_TIMEOUT,
    ) -> Any:
        """Send a request and wait for its result.

        Args:
            method: JSON-RPC method name
            params: Request parameters (an empty object is sent if omitted)
            timeout: Seconds to wait; None waits forever. Defaults to
                ``default_timeout``.

        Returns:
            The reply's ``result`` member.

        Raises:
            RPCError: If the reply carries an ``error`` member
            RequestTimeoutError: If no reply arrives in time
        """
        if timeout is USE_DEFAULT_TIMEOUT:
            timeout = self.default_timeout

        loop = asyncio.get_running_loop()
        request_id = self._allocate_id()
        pending = PendingRequest(id=request_id, method=method, future=loop.create_future())
        self._pending[request_id] = pending

        envelope = to_wire(
            mcp_types.JSONRPCRequest(
                jsonrpc=JSONRPC_VERSION, id=request_id, method=method, params=params or {}
            )
        )
        try:
            await self._send(envelope)
        except BaseException:
            self._discard(request_id)
            raise

        if timeout is not None and not pending.future.done():
            pending.timer = loop.call_later(timeout, self._expire, request_id, timeout)

        try:
            return await pending.future
        except asyncio.CancelledError:
            self._discard(request_id)
            raise

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a notification. No id is assigned and no reply is expected."""
        await self._send(
            to_wire(
                mcp_types.JSONRPCNotification(
                    jsonrpc=JSONRPC_VERSION, method=method, params=params or {}
                )
            )
        )

    def handle_response(self, message: Dict[str, Any]) -> None:
        """Resolve the pending request matching a reply's ``id``.

        Replies for ids that are not pending (e.g. after a timeout) are ignored.
        """
        request_id = message.get("id")
        pending = self._pending.pop(request_id, None)
        if pending is None:
            logger.debug("Ignoring reply for unknown or expired request id=%s", request_id)
            return
        if pending.timer is not None:
            pending.timer.cancel()
        if pending.future.done():
            return

        error = message.get("error")
        if error is not None:
            if isinstance(error, dict):
                exc = RPCError(
                    error.get("code"),
                    str(error.get("message", "")),
                    error.get("data"),
                    method=pending.method,
                )
            else:
                exc = RPCError(None, str(error), method=pending.method)
            pending.future.set_exception(exc)
        else:
            pending.future.set_result(message.get("result"))

    def _expire(self, request_id: int, timeout: float) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None or pending.future.done():
            return
        logger.warning("Request '%s' (id=%s) timed out after %ss", pending.method, request_id, timeout)
        pending.future.set_exception(RequestTimeoutError(pending.method, request_id, timeout))

    def _discard(self, request_id: int) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()
