"""Exception hierarchy for memvault.

Every error raised by the memory engine derives from MemVaultError and
carries the context needed to build an actionable message (field name,
operator, expected vs actual dimensionality) as attributes.
"""

from typing import Any


class MemVaultError(Exception):
    """Base exception for memory engine operations."""

    pass


class InvalidArgumentError(MemVaultError, ValueError):
    """Raised when a caller passes an unusable argument."""

    pass


class DimensionalityMismatchError(MemVaultError):
    """Raised when a vector length disagrees with its collection."""

    def __init__(self, expected: int, actual: int, context: str = "") -> None:
        self.expected = expected
        self.actual = actual
        self.context = context
        where = f" ({context})" if context else ""
        super().__init__(
            f"Dimensionality mismatch{where}: expected {expected}, got {actual}"
        )


class CollectionExistsError(DimensionalityMismatchError):
    """Raised when a collection is re-created with a different dimensionality."""

    def __init__(self, collection: str, expected: int, actual: int) -> None:
        self.collection = collection
        super().__init__(expected, actual, context=f"collection {collection} already exists")


class NotFoundError(MemVaultError, KeyError):
    """Raised when a lookup targets something that does not exist."""

    def __str__(self) -> str:
        # KeyError would repr() the message otherwise
        return str(self.args[0]) if self.args else ""


class MemoryNotFoundError(NotFoundError):
    """Raised on get/update of an unknown memory id."""

    def __init__(self, memory_id: str) -> None:
        self.memory_id = memory_id
        super().__init__(f"Memory not found: {memory_id}")


class CollectionNotFoundError(NotFoundError):
    """Raised when writing into a collection that was never created."""

    def __init__(self, collection: str) -> None:
        self.collection = collection
        super().__init__(f"Collection not found: {collection}")


class IdConflictError(MemVaultError):
    """Raised when an id is already owned by a record in another scope."""

    def __init__(self, record_id: str, owner: str) -> None:
        self.record_id = record_id
        self.owner = owner
        super().__init__(f"Id {record_id} already belongs to collection {owner}")


class MissingVectorError(MemVaultError):
    """Raised when similarity deduplication is asked to run without a vector."""

    pass


class InvalidQueryError(MemVaultError):
    """Raised when a filter, aggregation or query is malformed."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        operator: Any = None,
    ) -> None:
        self.field = field
        self.operator = operator
        details = []
        if field is not None:
            details.append(f"field={field!r}")
        if operator is not None:
            details.append(f"operator={getattr(operator, 'value', operator)}")
        suffix = f" [{', '.join(details)}]" if details else ""
        super().__init__(f"{message}{suffix}")


class EmptyQueryError(InvalidQueryError):
    """Raised when an AND/OR query has no children."""

    pass


class OperationCancelledError(MemVaultError):
    """Raised when a scan is aborted by its deadline or an explicit cancel."""

    pass


class GenerationError(MemVaultError):
    """Raised when a text generation backend fails."""

    pass
