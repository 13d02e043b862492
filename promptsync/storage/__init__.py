"""
Structured cache backends for prompt records.
"""

from .base import PromptCache, CacheTransaction
from .memory import InMemoryPromptCache
from .sqlite import SqlitePromptCache

__all__ = [
    "PromptCache",
    "CacheTransaction",
    "InMemoryPromptCache",
    "SqlitePromptCache",
]
