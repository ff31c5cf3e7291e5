"""
Per-session tool permissions.

Before a tool runs for the first time the user picks one of three answers:
allow for the rest of the session, allow this call only, or deny. Session
grants and denials are remembered in a ``PermissionCache``; nothing is
persisted.
"""

import asyncio
import inspect
import json
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Union

from .tool_schema import ToolCall

logger = logging.getLogger(__name__)


class PermissionChoice(str, Enum):
    ALLOW_SESSION = "allow"
    ALLOW_ONCE = "once"
    DENY = "deny"


PermissionPrompt = Callable[
    [ToolCall], Union[PermissionChoice, Awaitable[PermissionChoice]]
]


class PermissionCache:
    """Tool name -> granted (True) / denied (False) for the current session."""

    def __init__(self):
        self._decisions: Dict[str, bool] = {}

    def get(self, tool_name: str) -> Optional[bool]:
        return self._decisions.get(tool_name)

    def grant(self, tool_name: str) -> None:
        self._decisions[tool_name] = True

    def deny(self, tool_name: str) -> None:
        self._decisions[tool_name] = False

    def clear(self) -> None:
        self._decisions.clear()

    def __contains__(self, tool_name: str) -> bool:
        return tool_name in self._decisions

    def __len__(self) -> int:
        return len(self._decisions)


async def ask_permission(prompt: PermissionPrompt, tool_call: ToolCall) -> PermissionChoice:
    """Run a prompt that may be sync or async and normalize its answer."""
    answer = prompt(tool_call)
    if inspect.isawaitable(answer):
        answer = await answer
    return PermissionChoice(answer)


_CONSOLE_ANSWERS = {
    "a": PermissionChoice.ALLOW_SESSION,
    "allow": PermissionChoice.ALLOW_SESSION,
    "o": PermissionChoice.ALLOW_ONCE,
    "once": PermissionChoice.ALLOW_ONCE,
    "d": PermissionChoice.DENY,
    "deny": PermissionChoice.DENY,
    "": PermissionChoice.DENY,
}


async def console_permission_prompt(tool_call: ToolCall) -> PermissionChoice:
    """Ask on the terminal whether ``tool_call`` may run."""
    print(f"\nツール実行の許可: {tool_call.name} {json.dumps(tool_call.arguments, ensure_ascii=False)}")
    while True:
        answer = await asyncio.to_thread(
            input, "[a]セッション中は許可 / [o]今回のみ許可 / [d]拒否 (既定: d): "
        )
        choice = _CONSOLE_ANSWERS.get(answer.strip().lower())
        if choice is not None:
            return choice
        print("a, o, d のいずれかを入力してください。")
