"""Tests for conversation memory models."""

from datetime import datetime, timezone

import pydantic
import pytest

from memograph.memory.models import (
    ConversationMemory,
    MemoryFilter,
    MemorySearchQuery,
    MessageRole,
    ScoredMemory,
)


class TestConversationMemory:
    def test_defaults(self):
        memory = ConversationMemory(conversation_id="c", role="user", content="hi")
        assert memory.role is MessageRole.USER
        assert memory.id
        assert memory.timestamp.tzinfo is not None
        assert memory.metadata == {}
        assert memory.embedding is None

    def test_naive_timestamp_is_utc(self):
        memory = ConversationMemory(
            conversation_id="c", role="user", content="x", timestamp=datetime(2024, 1, 1, 12)
        )
        assert memory.timestamp == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        assert MemoryFilter(start=datetime(2024, 1, 1)).start.tzinfo is timezone.utc

    def test_ids_are_unique(self):
        a = ConversationMemory(conversation_id="c", role="user", content="x")
        b = ConversationMemory(conversation_id="c", role="user", content="x")
        assert a.id != b.id

    def test_rejects_unknown_role(self):
        with pytest.raises(pydantic.ValidationError):
            ConversationMemory(conversation_id="c", role="narrator", content="x")

    def test_scored_memory_requires_score(self):
        with pytest.raises(pydantic.ValidationError):
            ScoredMemory(conversation_id="c", role="user", content="x")


class TestSearchModels:
    def test_query_defaults(self):
        query = MemorySearchQuery(text="bug")
        assert query.limit == 10
        assert query.threshold == 0.7
        assert query.filters is None

    def test_filter_fields_default_to_unset(self):
        assert MemoryFilter().model_dump(exclude_none=True) == {}
