"""Data models for conversation memory."""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, JsonValue

from memograph.knowledge.models import UtcDatetime, utcnow


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ConversationMemory(BaseModel):
    """One remembered conversation turn."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    conversation_id: str = Field(..., description="Conversation this turn belongs to")
    agent_name: str | None = Field(None, description="Agent that produced or handled the turn")
    role: MessageRole
    content: str = Field(..., description="The raw text content")
    timestamp: UtcDatetime = Field(default_factory=utcnow)
    metadata: dict[str, JsonValue] = Field(
        default_factory=dict,
        description="Extra data such as tags, tools, success or error flags",
    )
    embedding: list[float] | None = None


class ScoredMemory(ConversationMemory):
    score: float = Field(..., description="Cosine similarity to the query")


class MemoryFilter(BaseModel):
    """Restricts a memory search. Unset fields match everything."""

    conversation_id: str | None = None
    agent_name: str | None = None
    role: MessageRole | None = None
    tags: list[str] | None = Field(
        None, description="Matches memories carrying any of these tags"
    )
    start: UtcDatetime | None = Field(None, description="Earliest timestamp, inclusive")
    end: UtcDatetime | None = Field(None, description="Latest timestamp, inclusive")
    success: bool | None = None
    error: bool | None = None


class MemorySearchQuery(BaseModel):
    text: str
    filters: MemoryFilter | None = None
    limit: int = Field(10, ge=0)
    threshold: float = Field(0.7, description="Minimum similarity score")


class ConversationMemoryStats(BaseModel):
    total_memories: int
    unique_conversations: int
    unique_agents: int
    oldest_memory: datetime | None = None
    newest_memory: datetime | None = None
