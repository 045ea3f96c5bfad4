"""Exception hierarchy shared by the graph, vector and persistence layers."""

from pathlib import Path


class MemographError(Exception):
    """Base class for all memograph errors."""


class NotFoundError(MemographError, KeyError):
    """An entity, relationship or vector record does not exist.

    Args:
        kind: What was looked up (e.g. 'Entity', 'Relationship').
        identifier: The id that was not found.
    """

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} with id {identifier} not found")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return self.args[0]


class DuplicateIdError(MemographError):
    """An id was inserted twice."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} with id {identifier} already exists")


class DimensionMismatchError(MemographError, ValueError):
    """A vector does not match the configured embedding dimension."""

    def __init__(self, expected: int, actual: int, context: str = "Embedding") -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{context} dimension mismatch: expected {expected}, got {actual}"
        )


class PersistenceError(MemographError):
    """Saving or loading a snapshot failed.

    Args:
        message: Human-readable description.
        path: The file involved, if any.
    """

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message if path is None else f"{message}: {path}")


class ValidationError(MemographError, ValueError):
    """A query, filter or update was malformed."""


class ConfigError(MemographError):
    """Configuration could not be loaded or is invalid."""
