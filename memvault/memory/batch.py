"""Batch add/update/delete operations."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from memvault.errors import InvalidArgumentError


class BatchOpType(str, Enum):
    """Kind of batched operation."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class BatchOp:
    """One operation in a batch.

    Adds carry content (the id is assigned when stored); updates and
    deletes target an existing memory id.
    """

    op_type: BatchOpType
    memory_id: Optional[str] = None
    content: Optional[str] = None
    memory_type: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @classmethod
    def add(
        cls,
        content: str,
        memory_type: str = "general",
        metadata: Optional[dict[str, Any]] = None,
    ) -> "BatchOp":
        return cls(BatchOpType.ADD, content=content, memory_type=memory_type, metadata=metadata)

    @classmethod
    def update(
        cls,
        memory_id: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> "BatchOp":
        return cls(BatchOpType.UPDATE, memory_id=memory_id, content=content, metadata=metadata)

    @classmethod
    def delete(cls, memory_id: str) -> "BatchOp":
        return cls(BatchOpType.DELETE, memory_id=memory_id)


@dataclass
class BatchResult:
    """Outcome counts for a batch."""

    total: int
    successful: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    memory_ids: list[str] = field(default_factory=list)

    def add_success(self, memory_id: Optional[str] = None) -> None:
        self.successful += 1
        if memory_id is not None:
            self.memory_ids.append(memory_id)

    def add_error(self, error: str) -> None:
        self.failed += 1
        self.errors.append(error)

    def all_succeeded(self) -> bool:
        return self.failed == 0

    def success_rate(self) -> float:
        """Fraction of operations that succeeded; 1.0 for an empty batch."""
        if self.total == 0:
            return 1.0
        return self.successful / self.total


class BatchProcessor:
    """Splits operation lists into chunks.

    Args:
        batch_size: Operations per chunk.
        continue_on_error: Keep going after a failed operation.
    """

    def __init__(self, batch_size: int = 32, continue_on_error: bool = True) -> None:
        if batch_size <= 0:
            raise InvalidArgumentError(f"batch_size must be positive, got {batch_size}")
        self.batch_size = batch_size
        self.continue_on_error = continue_on_error

    def split_into_batches(
        self, ops: list[BatchOp], size: Optional[int] = None
    ) -> list[list[BatchOp]]:
        size = size or self.batch_size
        return [ops[i:i + size] for i in range(0, len(ops), size)]

    def optimize_batch_size(self, op_count: int) -> int:
        """Pick a chunk size for `op_count` operations."""
        if op_count < 10:
            return op_count
        if op_count < 100:
            return 10
        if op_count < 1000:
            return 32
        return 64

    def plan(self, ops: list[BatchOp]) -> list[list[BatchOp]]:
        """Chunks sized for this batch, never larger than `batch_size`."""
        size = max(1, min(self.batch_size, self.optimize_batch_size(len(ops))))
        return self.split_into_batches(ops, size)
