"""Runtime initialization for llm-tool-host.

Call init_runtime() once at startup, before anything reads the configuration
or spawns MCP servers.
"""

import logging
import os
import sys
import threading
from typing import Optional

from dotenv import load_dotenv

from .config import load_config_from_env, reset_config, set_config

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_LEVEL_ENV = "LLM_TOOL_HOST_LOG_LEVEL"

_initialized = False
_init_lock = threading.Lock()


def _resolve_log_level(log_level: Optional[str]) -> Optional[int]:
    if not log_level:
        return None
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")
    return numeric_level


def init_runtime(log_level: Optional[str] = None) -> None:
    """Initialize the runtime environment.

    This function:
    1. Loads environment variables from a .env file
    2. Initializes the global configuration repository
    3. Configures logging to stderr if a level is given (argument first,
       then LLM_TOOL_HOST_LOG_LEVEL)

    Stdout is left to the conversation; MCP server chatter and protocol
    traces go to stderr.

    Note:
        Idempotent. Once initialized, later calls are ignored, including
        their log_level.

    Raises:
        ValueError: If an invalid log level is provided.
    """
    global _initialized

    if _initialized:
        logger.debug("Runtime already initialized, skipping")
        return

    with _init_lock:
        if _initialized:
            return

        try:
            load_dotenv()
            numeric_level = _resolve_log_level(log_level or os.getenv(LOG_LEVEL_ENV))

            set_config(load_config_from_env())

            if numeric_level is not None:
                logging.basicConfig(level=numeric_level, format=LOG_FORMAT, stream=sys.stderr)

            _initialized = True
            logger.debug("Runtime initialized")
        except Exception:
            # Leave no half-initialized configuration behind
            reset_config()
            raise


def is_initialized() -> bool:
    """Check if runtime has been initialized."""
    return _initialized


def reset_runtime() -> None:
    """Reset initialization state (for testing purposes only)."""
    global _initialized
    _initialized = False
