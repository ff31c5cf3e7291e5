"""Core sub-package for llm_tool_host

- agentic_loop: ConversationTurn, the per-turn request/tool-call loop
"""

from .agentic_loop import ConversationTurn, TurnAbortedError, TurnResult

__all__ = ["ConversationTurn", "TurnAbortedError", "TurnResult"]
