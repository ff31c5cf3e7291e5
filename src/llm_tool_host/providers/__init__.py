"""Model backend implementations

This package contains the model backend interface and its implementations.
"""

from .base import ModelBackend
from .openai import OpenAIBackend, OpenAIToolCallAssembler

__all__ = [
    "ModelBackend",
    "OpenAIBackend",
    "OpenAIToolCallAssembler",
]
