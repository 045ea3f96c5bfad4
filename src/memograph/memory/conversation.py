"""Conversation memory built on the similarity index.

Every remembered turn is stored as one vector record whose id is the
memory id and whose metadata carries the turn itself, so the store's
snapshot is the only state to persist.
"""

import logging
from datetime import datetime
from typing import Any, Callable

from memograph.errors import DimensionMismatchError
from memograph.knowledge.models import as_utc
from memograph.memory.models import (
    ConversationMemory,
    ConversationMemoryStats,
    MemoryFilter,
    MemorySearchQuery,
    MessageRole,
    ScoredMemory,
)
from memograph.vector.embeddings import EmbeddingProvider
from memograph.vector.store import VectorRecord, VectorStore

logger = logging.getLogger(__name__)

CORE_KEYS = ("conversation_id", "agent_name", "role", "content", "timestamp")
SIMILAR_PROBLEM_THRESHOLD = 0.75


def _timestamp(metadata: dict[str, Any]) -> datetime:
    return as_utc(datetime.fromisoformat(metadata["timestamp"]))


def _build_filter(filters: MemoryFilter) -> Callable[[dict[str, Any]], bool]:
    """Turn a MemoryFilter into a metadata predicate. All set fields must match."""
    start, end = filters.start, filters.end

    def predicate(metadata: dict[str, Any]) -> bool:
        if filters.conversation_id and metadata.get("conversation_id") != filters.conversation_id:
            return False
        if filters.agent_name and metadata.get("agent_name") != filters.agent_name:
            return False
        if filters.role and metadata.get("role") != filters.role.value:
            return False
        if filters.tags:
            tags = metadata.get("tags")
            if not isinstance(tags, list) or not any(t in tags for t in filters.tags):
                return False
        if start or end:
            timestamp = _timestamp(metadata)
            if start and timestamp < start:
                return False
            if end and timestamp > end:
                return False
        if filters.success is not None and metadata.get("success") != filters.success:
            return False
        if filters.error is not None and metadata.get("error") != filters.error:
            return False
        return True

    return predicate


class ConversationMemoryManager:
    """Stores conversation turns and retrieves them by meaning.

    Args:
        vector_store: Index holding one record per memory.
        embedding_provider: Provider used to embed content and queries.

    Raises:
        DimensionMismatchError: If the provider and store disagree on dimension.
    """

    def __init__(
        self, vector_store: VectorStore, embedding_provider: EmbeddingProvider
    ) -> None:
        if embedding_provider.dimension != vector_store.dimension:
            raise DimensionMismatchError(
                vector_store.dimension,
                embedding_provider.dimension,
                context=f"Embedding provider {embedding_provider.name}",
            )
        self.store = vector_store
        self.embeddings = embedding_provider

    def initialize(self) -> bool:
        """Load persisted memories. Returns False when none were saved yet."""
        return self.store.load()

    def add_memory(self, memory: ConversationMemory) -> str:
        """Embed and store one conversation turn.

        Args:
            memory: The turn to remember. Its ``embedding`` is ignored.

        Returns:
            The memory id.
        """
        embedding = self.embeddings.embed(memory.content)
        self.store.add(embedding, metadata=self._metadata(memory), record_id=memory.id)
        logger.debug("Added memory %s to conversation %s", memory.id, memory.conversation_id)
        return memory.id

    def add_memories(self, memories: list[ConversationMemory]) -> list[str]:
        """Store several turns with a single batch embedding call."""
        if not memories:
            return []
        embeddings = self.embeddings.embed_batch([m.content for m in memories])
        return self.store.add_batch(
            VectorRecord(id=m.id, embedding=e, metadata=self._metadata(m))
            for m, e in zip(memories, embeddings)
        )

    def search_similar(self, query: MemorySearchQuery) -> list[ScoredMemory]:
        """Find remembered turns similar to the query text.

        Returns:
            Matches with score >= ``query.threshold``, best first.
        """
        results = self.store.search(
            self.embeddings.embed(query.text),
            limit=query.limit,
            threshold=query.threshold,
            metadata_filter=_build_filter(query.filters) if query.filters else None,
        )
        return [
            ScoredMemory(**self._from_metadata(r.id, r.metadata), score=r.score)
            for r in results
        ]

    def find_similar_problems(
        self, description: str, limit: int = 5
    ) -> list[ScoredMemory]:
        """Find successful assistant answers to similar problems."""
        return self.search_similar(
            MemorySearchQuery(
                text=description,
                limit=limit,
                threshold=SIMILAR_PROBLEM_THRESHOLD,
                filters=MemoryFilter(role=MessageRole.ASSISTANT, success=True),
            )
        )

    def get_conversation_history(
        self, conversation_id: str, limit: int | None = None
    ) -> list[ConversationMemory]:
        """Return a conversation's turns, oldest first."""
        memories = self._query(lambda m: m.get("conversation_id") == conversation_id)
        memories.sort(key=lambda m: m.timestamp)
        return memories if limit is None else memories[:limit]

    def get_memories_by_agent(
        self, agent_name: str, limit: int | None = None
    ) -> list[ConversationMemory]:
        """Return an agent's turns, newest first."""
        memories = self._query(lambda m: m.get("agent_name") == agent_name)
        memories.sort(key=lambda m: m.timestamp, reverse=True)
        return memories if limit is None else memories[:limit]

    def get_related_context(
        self, query: str, limit: int = 5, threshold: float = 0.7
    ) -> list[str]:
        """Return the content of turns related to ``query``, for prompt context."""
        results = self.search_similar(
            MemorySearchQuery(text=query, limit=limit, threshold=threshold)
        )
        return [r.content for r in results]

    def delete_conversation(self, conversation_id: str) -> int:
        """Forget every turn of a conversation. Returns the number removed."""
        records = self.store.query(lambda m: m.get("conversation_id") == conversation_id)
        for record in records:
            self.store.delete(record.id)
        logger.info("Deleted %d memories of conversation %s", len(records), conversation_id)
        return len(records)

    def get_stats(self) -> ConversationMemoryStats:
        records = self.store.query(lambda m: "conversation_id" in m)
        conversations = {r.metadata["conversation_id"] for r in records}
        agents = {r.metadata["agent_name"] for r in records if r.metadata.get("agent_name")}
        timestamps = [_timestamp(r.metadata) for r in records]
        return ConversationMemoryStats(
            total_memories=len(records),
            unique_conversations=len(conversations),
            unique_agents=len(agents),
            oldest_memory=min(timestamps) if timestamps else None,
            newest_memory=max(timestamps) if timestamps else None,
        )

    def clear(self) -> None:
        self.store.clear()

    def save(self) -> bool:
        return self.store.save()

    def cleanup(self) -> None:
        self.store.cleanup()

    @staticmethod
    def _metadata(memory: ConversationMemory) -> dict[str, Any]:
        return {
            **memory.metadata,
            "conversation_id": memory.conversation_id,
            "agent_name": memory.agent_name,
            "role": memory.role.value,
            "content": memory.content,
            "timestamp": memory.timestamp.isoformat(),
        }

    @staticmethod
    def _from_metadata(memory_id: str, metadata: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": memory_id,
            "conversation_id": metadata["conversation_id"],
            "agent_name": metadata.get("agent_name"),
            "role": metadata["role"],
            "content": metadata["content"],
            "timestamp": _timestamp(metadata),
            "metadata": {k: v for k, v in metadata.items() if k not in CORE_KEYS},
        }

    def _query(self, predicate: Callable[[dict[str, Any]], bool]) -> list[ConversationMemory]:
        return [
            ConversationMemory(
                **self._from_metadata(r.id, r.metadata), embedding=r.embedding
            )
            for r in self.store.query(predicate)
        ]
