"""
Structured MCP capability sets and per-method capability requirements.

Capabilities are negotiated once during the initialize handshake. A
top-level capability counts as present when it is advertised as ``true``
or as an object (``{}`` included); a nested flag such as
``resources.subscribe`` is present only when its parent is an object with
a truthy entry for it. Anything else is absent.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import CapabilityError


def _present(value: Any) -> bool:
    return value is not None and value is not False


def _nested(parent: Any, key: str) -> bool:
    return isinstance(parent, Mapping) and bool(parent.get(key))


@dataclass(frozen=True)
class ServerCapabilities:
    """Capabilities advertised by a provider in its initialize result."""

    logging: bool = False
    prompts: bool = False
    prompts_list_changed: bool = False
    resources: bool = False
    resources_subscribe: bool = False
    resources_list_changed: bool = False
    tools: bool = False
    tools_list_changed: bool = False
    completions: bool = False
    experimental: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ServerCapabilities":
        data = data or {}
        return cls(
            logging=_present(data.get("logging")),
            prompts=_present(data.get("prompts")),
            prompts_list_changed=_nested(data.get("prompts"), "listChanged"),
            resources=_present(data.get("resources")),
            resources_subscribe=_nested(data.get("resources"), "subscribe"),
            resources_list_changed=_nested(data.get("resources"), "listChanged"),
            tools=_present(data.get("tools")),
            tools_list_changed=_nested(data.get("tools"), "listChanged"),
            completions=_present(data.get("completions")),
            experimental=dict(data.get("experimental") or {}),
        )


@dataclass(frozen=True)
class ClientCapabilities:
    """Capabilities this client declares in its initialize request."""

    roots: bool = False
    roots_list_changed: bool = False
    sampling: bool = False
    experimental: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ClientCapabilities":
        data = data or {}
        return cls(
            roots=_present(data.get("roots")),
            roots_list_changed=_nested(data.get("roots"), "listChanged"),
            sampling=_present(data.get("sampling")),
            experimental=dict(data.get("experimental") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation for the ``capabilities`` member of ``initialize``."""
        result: Dict[str, Any] = {}
        if self.roots:
            result["roots"] = {"listChanged": self.roots_list_changed}
        if self.sampling:
            result["sampling"] = {}
        if self.experimental:
            result["experimental"] = dict(self.experimental)
        return result


# Required server capabilities per outgoing request method.
REQUEST_REQUIREMENTS: Dict[str, Tuple[str, ...]] = {
    "initialize": (),
    "ping": (),
    "logging/setLevel": ("logging",),
    "prompts/get": ("prompts",),
    "prompts/list": ("prompts",),
    "completion/complete": ("prompts",),
    "resources/list": ("resources",),
    "resources/templates/list": ("resources",),
    "resources/read": ("resources",),
    "resources/subscribe": ("resources", "resources_subscribe"),
    "resources/unsubscribe": ("resources",),
    "tools/call": ("tools",),
    "tools/list": ("tools",),
}

# Required client capabilities per outgoing notification method.
NOTIFICATION_REQUIREMENTS: Dict[str, Tuple[str, ...]] = {
    "notifications/initialized": (),
    "notifications/cancelled": (),
    "notifications/progress": (),
    "notifications/roots/list_changed": ("roots", "roots_list_changed"),
}


def _display(flag: str) -> str:
    return flag.replace("_list_changed", "/listChanged").replace("_", "/")


def assert_request_capability(method: str, capabilities: ServerCapabilities) -> None:
    """Raise ``CapabilityError`` unless the server supports ``method``."""
    requirements = REQUEST_REQUIREMENTS.get(method)
    if requirements is None:
        raise CapabilityError(f"Method {method} is not supported", method)
    for flag in requirements:
        if not getattr(capabilities, flag):
            path = _display(flag)
            raise CapabilityError(
                f"Server does not support {path} (required for {method})", method, path
            )


def assert_notification_capability(method: str, capabilities: ClientCapabilities) -> None:
    """Raise ``CapabilityError`` unless this client may emit notification ``method``."""
    requirements = NOTIFICATION_REQUIREMENTS.get(method)
    if requirements is None:
        raise CapabilityError(f"Notification {method} is not supported", method)
    for flag in requirements:
        if not getattr(capabilities, flag):
            path = _display(flag)
            raise CapabilityError(
                f"Client does not support {path} notifications (required for {method})",
                method,
                path,
            )
