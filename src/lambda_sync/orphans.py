"""Generic removal of live resources that are no longer declared."""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SweepResult:
    """Result of one sweep."""

    removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def extend(self, other: SweepResult) -> None:
        self.removed.extend(other.removed)
        self.errors.extend(other.errors)


@dataclass(frozen=True)
class OrphanSweep(Generic[T]):
    """
    One kind of live resource that can become orphaned.

    Attributes:
        kind: Label used in logs and results (e.g., "subscription")
        list_live: Returns the live resources associated with the function
        identity: Key compared against the declared set
        delete_one: Removes a single live resource
        describe: Human-readable name of a live resource
    """

    kind: str
    list_live: Callable[[], Iterable[T]]
    identity: Callable[[T], Hashable]
    delete_one: Callable[[T], None]
    describe: Callable[[T], str] = str

    def run(self, declared: Collection[Hashable]) -> SweepResult:
        """Delete every live resource whose identity is not in ``declared``.

        A failure removing one resource is logged and recorded; the
        remaining orphans are still processed.
        """
        result = SweepResult()
        try:
            live = list(self.list_live())
        except ClientError as e:
            logger.warning("Unable to list %ss for orphan cleanup: %s", self.kind, e)
            result.errors.append(f"list {self.kind}s: {e}")
            return result

        for item in live:
            if self.identity(item) in declared:
                continue
            label = f"{self.kind} {self.describe(item)}"
            try:
                self.delete_one(item)
            except ClientError as e:
                logger.warning("Failed to remove orphaned %s: %s", label, e)
                result.errors.append(f"remove {label}: {e}")
                continue
            logger.info("Removed orphaned %s", label)
            result.removed.append(label)
        return result
