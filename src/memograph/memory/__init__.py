"""Conversation memory over the similarity index."""

from memograph.memory.conversation import ConversationMemoryManager
from memograph.memory.models import (
    ConversationMemory,
    ConversationMemoryStats,
    MemoryFilter,
    MemorySearchQuery,
    MessageRole,
    ScoredMemory,
)

__all__ = [
    "ConversationMemory",
    "ConversationMemoryManager",
    "ConversationMemoryStats",
    "MemoryFilter",
    "MemorySearchQuery",
    "MessageRole",
    "ScoredMemory",
]
