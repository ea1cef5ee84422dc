"""Per-entity result collection for best-effort batch operations.

One failing symbol, agent or position must never blank out a whole
aggregate. Batch operations record each entity's outcome here instead
of raising; callers decide what to do with the failures.
"""

from dataclasses import dataclass, field
from typing import Generic, TypeVar

from arena.exceptions import PartialFailure
from arena.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class BatchResult(Generic[T]):
    """Successful values and failures of one batch, keyed by entity."""

    results: dict[str, T] = field(default_factory=dict)
    failures: dict[str, PartialFailure] = field(default_factory=dict)

    def record_success(self, key: str, value: T) -> None:
        self.results[key] = value

    def record_failure(self, key: str, error: BaseException) -> PartialFailure:
        """Store a failure for key and log it. Returns the wrapped failure."""
        failure = error if isinstance(error, PartialFailure) else PartialFailure(key, error)
        self.failures[key] = failure
        logger.warning(
            "batch_entity_failed",
            key=key,
            error=str(error),
            error_type=type(error).__name__,
        )
        return failure

    @property
    def ok(self) -> bool:
        """True when no entity failed."""
        return not self.failures

    @property
    def partial(self) -> bool:
        """True when some but not all entities failed."""
        return bool(self.failures) and bool(self.results)

    def values(self) -> list[T]:
        return list(self.results.values())
