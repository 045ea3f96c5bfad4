"""Fixed-dimension similarity index with exhaustive cosine search.

Records live in an insertion-ordered table. Search scans every record,
so results are exact. When the store is full, the record with the oldest
``created_at`` is evicted. Snapshots are JSON written through a temp
file and renamed into place.
"""

import logging
import math
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

from pydantic import Field, JsonValue
from pydantic import ValidationError as PydanticValidationError

from memograph.config import VectorStoreConfig
from memograph.errors import (
    DimensionMismatchError,
    DuplicateIdError,
    NotFoundError,
    PersistenceError,
)
from memograph.knowledge.models import CamelModel, UtcDatetime, utcnow
from memograph.storage import RepeatingTimer, atomic_write_json, read_json

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

MetadataFilter = Mapping[str, Any] | Callable[[dict[str, Any]], bool]


def dot_product(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b), context="Vector")
    return sum(x * y for x, y in zip(a, b))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    dot = dot_product(a, b)
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b), context="Vector")
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


def normalize_vector(vector: Sequence[float]) -> list[float]:
    """Scale a vector to unit length. Zero vectors are returned unchanged."""
    norm = math.sqrt(sum(x * x for x in vector))
    if norm == 0.0:
        return list(vector)
    return [x / norm for x in vector]


class VectorRecord(CamelModel):
    """A stored embedding with its metadata."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    embedding: list[float]
    metadata: dict[str, JsonValue] = Field(default_factory=dict)
    created_at: UtcDatetime = Field(default_factory=utcnow)


class VectorSearchResult(CamelModel):
    id: str
    score: float = Field(..., description="Cosine similarity to the query")
    metadata: dict[str, JsonValue] = Field(default_factory=dict)


class VectorStoreStats(CamelModel):
    count: int
    dimension: int
    max_vectors: int
    oldest: datetime | None = None
    newest: datetime | None = None
    dirty: bool = False
    persist_path: Path


class VectorStore:
    """Thread-safe in-memory similarity index with JSON persistence.

    Args:
        config: Store settings. Defaults to VectorStoreConfig().
    """

    def __init__(self, config: VectorStoreConfig | None = None) -> None:
        self.config = config or VectorStoreConfig()
        self._records: dict[str, VectorRecord] = {}
        self._lock = threading.RLock()
        self._dirty = False
        self._timer: RepeatingTimer | None = None
        if self.config.auto_save:
            self._timer = RepeatingTimer(
                self.config.save_interval, self.save, name="vector-autosave"
            )
            self._timer.start()

    @property
    def dimension(self) -> int:
        return self.config.dimension

    @property
    def dirty(self) -> bool:
        return self._dirty

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(
        self,
        embedding: Sequence[float],
        metadata: dict[str, Any] | None = None,
        record_id: str | None = None,
        created_at: datetime | None = None,
    ) -> str:
        """Insert one embedding, evicting the oldest record when full.

        Args:
            embedding: Vector of exactly ``dimension`` floats.
            metadata: Optional JSON-compatible metadata.
            record_id: Explicit id; a UUID is generated when omitted.
            created_at: Creation time; now when omitted.

        Returns:
            The record id.

        Raises:
            DimensionMismatchError: If the embedding has the wrong length.
            DuplicateIdError: If ``record_id`` is already stored.
        """
        record = self._build_record(embedding, metadata, record_id, created_at)
        with self._lock:
            if record.id in self._records:
                raise DuplicateIdError("Vector", record.id)
            self._insert(record)
        logger.debug("Added vector %s", record.id)
        return record.id

    def add_batch(self, records: Iterable[VectorRecord]) -> list[str]:
        """Insert several records; nothing is inserted if any is invalid.

        Raises:
            DimensionMismatchError: If any embedding has the wrong length.
            DuplicateIdError: If any id is already stored or repeated.
        """
        records = list(records)
        for record in records:
            self._check_dimension(record.embedding)

        with self._lock:
            seen: set[str] = set()
            for record in records:
                if record.id in self._records or record.id in seen:
                    raise DuplicateIdError("Vector", record.id)
                seen.add(record.id)
            for record in records:
                self._insert(record)
        logger.debug("Added %d vectors", len(records))
        return [record.id for record in records]

    def delete(self, record_id: str) -> None:
        """Remove a record.

        Raises:
            NotFoundError: If the id is not stored.
        """
        with self._lock:
            if self._records.pop(record_id, None) is None:
                raise NotFoundError("Vector", record_id)
            self._dirty = True
        logger.debug("Deleted vector %s", record_id)

    def update_metadata(self, record_id: str, metadata: dict[str, Any]) -> VectorRecord:
        """Merge keys into a record's metadata and return the updated record.

        Raises:
            NotFoundError: If the id is not stored.
        """
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise NotFoundError("Vector", record_id)
            updated = VectorRecord.model_validate(
                {
                    **record.model_dump(),
                    "metadata": {**record.metadata, **metadata},
                }
            )
            self._records[record_id] = updated
            self._dirty = True
            return updated

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._dirty = True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def search(
        self,
        query: Sequence[float],
        limit: int = 10,
        threshold: float = 0.0,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[VectorSearchResult]:
        """Find the stored vectors most similar to ``query``.

        Args:
            query: Query embedding.
            limit: Maximum results.
            threshold: Minimum cosine similarity.
            metadata_filter: Either a mapping every result's metadata must
                equal key-by-key, or a predicate over the metadata.

        Returns:
            Results sorted by descending score; equal scores keep
            insertion order.

        Raises:
            DimensionMismatchError: If the query has the wrong length.
        """
        self._check_dimension(query, context="Query")
        if limit <= 0:
            return []

        scored: list[VectorSearchResult] = []
        with self._lock:
            for record in self._records.values():
                if metadata_filter is not None and not _passes(
                    record.metadata, metadata_filter
                ):
                    continue
                score = cosine_similarity(query, record.embedding)
                if score >= threshold:
                    scored.append(
                        VectorSearchResult(
                            id=record.id, score=score, metadata=dict(record.metadata)
                        )
                    )
        # sort is stable, so ties stay in insertion order
        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:limit]

    def get(self, record_id: str) -> VectorRecord | None:
        with self._lock:
            return self._records.get(record_id)

    def query(self, predicate: Callable[[dict[str, Any]], bool]) -> list[VectorRecord]:
        """Return records whose metadata satisfies ``predicate``, in insertion order."""
        with self._lock:
            return [r for r in self._records.values() if predicate(r.metadata)]

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return record_id in self._records

    def get_stats(self) -> VectorStoreStats:
        with self._lock:
            created = [r.created_at for r in self._records.values()]
            return VectorStoreStats(
                count=len(self._records),
                dimension=self.dimension,
                max_vectors=self.config.max_vectors,
                oldest=min(created) if created else None,
                newest=max(created) if created else None,
                dirty=self._dirty,
                persist_path=self.config.persist_path,
            )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_json(self) -> dict[str, Any]:
        with self._lock:
            vectors = [
                r.model_dump(mode="json", by_alias=True) for r in self._records.values()
            ]
        return {
            "version": SNAPSHOT_VERSION,
            "dimension": self.dimension,
            "count": len(vectors),
            "vectors": vectors,
            "savedAt": utcnow().isoformat(),
        }

    def save(self) -> bool:
        """Write a snapshot if anything changed since the last save.

        Returns:
            True if a snapshot was written, False when the store was clean.

        Raises:
            PersistenceError: If writing fails. The store stays dirty.
        """
        with self._lock:
            if not self._dirty:
                return False
            data = self.to_json()
            atomic_write_json(self.config.persist_path, data)
            self._dirty = False
        logger.info("Saved %d vectors to %s", data["count"], self.config.persist_path)
        return True

    def load(self) -> bool:
        """Replace the contents with the snapshot on disk.

        Returns:
            False if no snapshot exists, True once loaded.

        Raises:
            PersistenceError: If the snapshot is unreadable or malformed.
            DimensionMismatchError: If the snapshot was built for another dimension.
        """
        path = self.config.persist_path
        data = read_json(path)
        if data is None:
            return False
        records = self._parse_snapshot(data, path)

        with self._lock:
            self._records = {r.id: r for r in records}
            while len(self._records) > self.config.max_vectors:
                self._evict_oldest()
            self._dirty = False
        logger.info("Loaded %d vectors from %s", len(records), path)
        return True

    def export(self, export_path: Path) -> int:
        """Write every record to a portable snapshot file. Returns the count."""
        data = self.to_json()
        atomic_write_json(export_path, data, indent=2)
        return data["count"]

    def import_vectors(self, import_path: Path) -> int:
        """Add records from a snapshot file, skipping ids already stored.

        Returns:
            Number of records imported.

        Raises:
            PersistenceError: If the file is missing or malformed.
            DimensionMismatchError: If the file was built for another dimension.
        """
        data = read_json(import_path)
        if data is None:
            raise PersistenceError("Import file not found", import_path)
        records = self._parse_snapshot(data, import_path)

        imported = 0
        with self._lock:
            for record in records:
                if record.id in self._records:
                    continue
                self._insert(record)
                imported += 1
        logger.info("Imported %d vectors from %s", imported, import_path)
        return imported

    def cleanup(self) -> None:
        """Stop the auto-save timer and flush unsaved changes."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.save()

    def __enter__(self) -> "VectorStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.cleanup()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_dimension(self, embedding: Sequence[float], context: str = "Embedding") -> None:
        if len(embedding) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(embedding), context=context)

    def _build_record(
        self,
        embedding: Sequence[float],
        metadata: dict[str, Any] | None,
        record_id: str | None,
        created_at: datetime | None,
    ) -> VectorRecord:
        self._check_dimension(embedding)
        fields: dict[str, Any] = {
            "embedding": list(embedding),
            "metadata": metadata or {},
        }
        if record_id is not None:
            fields["id"] = record_id
        if created_at is not None:
            fields["created_at"] = created_at
        return VectorRecord.model_validate(fields)

    def _insert(self, record: VectorRecord) -> None:
        """Store a validated record. Caller holds the lock."""
        if len(self._records) >= self.config.max_vectors:
            self._evict_oldest()
        self._records[record.id] = record
        self._dirty = True

    def _evict_oldest(self) -> None:
        # min() keeps the first of equal timestamps, i.e. the earliest inserted
        oldest = min(self._records.values(), key=lambda r: r.created_at)
        del self._records[oldest.id]
        logger.debug("Evicted oldest vector %s", oldest.id)

    def _parse_snapshot(self, data: Any, path: Path) -> list[VectorRecord]:
        if not isinstance(data, dict) or not isinstance(data.get("vectors"), list):
            raise PersistenceError("Vector snapshot has no 'vectors' list", path)

        stored_dimension = data.get("dimension", self.dimension)
        if stored_dimension != self.dimension:
            raise DimensionMismatchError(
                self.dimension, stored_dimension, context="Stored index"
            )

        try:
            records = [VectorRecord.model_validate(v) for v in data["vectors"]]
        except PydanticValidationError as exc:
            raise PersistenceError(f"Corrupt vector snapshot ({exc})", path) from exc

        for record in records:
            self._check_dimension(record.embedding, context=f"Stored vector {record.id}")
        return records


def _passes(metadata: dict[str, Any], metadata_filter: MetadataFilter) -> bool:
    if callable(metadata_filter):
        return bool(metadata_filter(metadata))
    return all(metadata.get(key) == value for key, value in metadata_filter.items())
