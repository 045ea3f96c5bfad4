"""Embedding providers and the embedding cache.

The engine never computes meaningful embeddings itself. It calls a
provider: the OpenAI-compatible HTTP provider for real use, or the
character-hash provider when no API is available.
"""

import hashlib
import logging
import math
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

from memograph.config import EmbeddingConfig
from memograph.errors import ConfigError, DimensionMismatchError

logger = logging.getLogger(__name__)

OPENAI_MODEL_DIMENSIONS = {
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}
OPENAI_MAX_INPUT_TOKENS = 8191
HASH_MAX_INPUT_CHARS = 10000


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Interface every embedding backend implements."""

    def embed(self, text: str) -> list[float]:
        """Embed one text."""
        ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts, returning vectors in input order."""
        ...

    @property
    def dimension(self) -> int:
        """Length of every returned vector."""
        ...

    @property
    def max_input_length(self) -> int:
        """Largest input the backend accepts (tokens or characters)."""
        ...

    @property
    def name(self) -> str:
        """Human-readable provider name."""
        ...


class OpenAIEmbeddingProvider:
    """Embeddings from an OpenAI-compatible ``/embeddings`` endpoint.

    Args:
        api_key: Bearer token for the API.
        model: Embedding model name.
        base_url: API root, e.g. https://api.openai.com/v1.
        timeout: Request timeout in seconds.
        dimension: Expected vector size. Looked up from the model when omitted.
        client: Preconfigured httpx client, mainly for tests.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-ada-002",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        dimension: int | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._dimension = dimension or OPENAI_MODEL_DIMENSIONS.get(model, 1536)
        self.client = client or httpx.Client(timeout=timeout)
        self.client.headers["Authorization"] = f"Bearer {api_key}"

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def max_input_length(self) -> int:
        return OPENAI_MAX_INPUT_TOKENS

    @property
    def name(self) -> str:
        return f"OpenAI ({self.model})"

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in a single request.

        Args:
            texts: Texts to embed.

        Returns:
            One vector per text, in input order.

        Raises:
            httpx.HTTPStatusError: If the request fails.
            DimensionMismatchError: If the API returns vectors of another size.
        """
        if not texts:
            return []

        resp = self.client.post(
            f"{self.base_url}/embeddings",
            json={"model": self.model, "input": texts},
        )
        resp.raise_for_status()
        data = sorted(resp.json()["data"], key=lambda item: item["index"])

        vectors = [item["embedding"] for item in data]
        if len(vectors) != len(texts):
            raise ValueError(
                f"Embedding API returned {len(vectors)} vectors for {len(texts)} inputs"
            )
        for vector in vectors:
            if len(vector) != self._dimension:
                raise DimensionMismatchError(
                    self._dimension, len(vector), context=self.name
                )
        return vectors

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> "OpenAIEmbeddingProvider":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class HashEmbeddingProvider:
    """Deterministic character-histogram embeddings.

    Each character increments the bucket ``ord(c) % dimension`` and the
    result is scaled to unit length. Texts with similar characters get
    similar vectors; nothing here is semantic.

    Args:
        dimension: Vector size.
    """

    def __init__(self, dimension: int = 384) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def max_input_length(self) -> int:
        return HASH_MAX_INPUT_CHARS

    @property
    def name(self) -> str:
        return "Simple Hash"

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for char in text:
            vector[ord(char) % self._dimension] += 1.0

        magnitude = math.sqrt(sum(v * v for v in vector))
        if magnitude > 0:
            vector = [v / magnitude for v in vector]
        return vector

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]


class CacheStats(BaseModel):
    size: int
    max_size: int
    hits: int
    misses: int
    hit_rate: float


class EmbeddingCache:
    """Size-capped, time-limited cache of embeddings keyed by exact text.

    Args:
        max_size: Entries kept before the oldest is evicted.
        ttl: Seconds an entry stays valid.
        clock: Monotonic time source, injectable for tests.

    Raises:
        ConfigError: If ``max_size`` or ``ttl`` is not positive.
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl: float = 86400.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size <= 0:
            raise ConfigError(f"Embedding cache size must be positive, got {max_size}")
        if ttl <= 0:
            raise ConfigError(f"Embedding cache ttl must be positive, got {ttl}")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[str, tuple[list[float], float]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def get(self, text: str) -> list[float] | None:
        """Return the cached vector, or None if absent or expired."""
        key = self._key(text)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._clock() - entry[1] > self.ttl:
                del self._entries[key]
                entry = None
            if entry is None:
                self.misses += 1
                return None
            self.hits += 1
            return entry[0]

    def set(self, text: str, embedding: list[float]) -> None:
        key = self._key(text)
        with self._lock:
            # re-setting a key makes it the newest entry
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = (embedding, self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> CacheStats:
        with self._lock:
            lookups = self.hits + self.misses
            return CacheStats(
                size=len(self._entries),
                max_size=self.max_size,
                hits=self.hits,
                misses=self.misses,
                hit_rate=self.hits / lookups if lookups else 0.0,
            )


class CachedEmbeddingProvider:
    """Wraps any provider with an EmbeddingCache.

    Args:
        provider: Provider that computes uncached embeddings.
        cache_size: Maximum cached entries.
        cache_ttl: Seconds a cached entry stays valid.
        cache: Existing cache to use instead of creating one.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache_size: int = 1000,
        cache_ttl: float = 86400.0,
        cache: EmbeddingCache | None = None,
    ) -> None:
        self.provider = provider
        self.cache = cache or EmbeddingCache(max_size=cache_size, ttl=cache_ttl)

    @property
    def dimension(self) -> int:
        return self.provider.dimension

    @property
    def max_input_length(self) -> int:
        return self.provider.max_input_length

    @property
    def name(self) -> str:
        return f"Cached {self.provider.name}"

    def embed(self, text: str) -> list[float]:
        cached = self.cache.get(text)
        if cached is not None:
            return cached
        embedding = self.provider.embed(text)
        self.cache.set(text, embedding)
        return embedding

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts, fetching only cache misses in one provider call.

        Returns:
            Vectors in the same order as ``texts``.
        """
        results: list[list[float] | None] = [self.cache.get(text) for text in texts]

        missing: list[str] = []
        for text, cached in zip(texts, results):
            if cached is None and text not in missing:
                missing.append(text)

        if missing:
            logger.debug(
                "Embedding cache: %d hits, %d misses",
                len(texts) - len(missing),
                len(missing),
            )
            fetched = dict(zip(missing, self.provider.embed_batch(missing)))
            for text, embedding in fetched.items():
                self.cache.set(text, embedding)
            results = [
                fetched[text] if cached is None else cached
                for text, cached in zip(texts, results)
            ]
        return results  # type: ignore[return-value]

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()


def create_embedding_provider(config: EmbeddingConfig | None = None) -> EmbeddingProvider:
    """Build the provider named in the configuration.

    An "openai" provider without an API key falls back to the hash
    provider with a warning, so the engine still runs offline.

    Raises:
        ConfigError: If the provider kind is unknown.
    """
    config = config or EmbeddingConfig()
    if config.provider == "openai":
        if not config.api_key:
            logger.warning(
                "OpenAI API key not found, falling back to the hash embedding provider"
            )
            return HashEmbeddingProvider(config.dimension)
        return OpenAIEmbeddingProvider(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            timeout=config.timeout,
        )
    if config.provider == "simple":
        return HashEmbeddingProvider(config.dimension)
    raise ConfigError(f"Unknown embedding provider: {config.provider}")
