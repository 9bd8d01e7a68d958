"""
Record Model
============
Extracted items and the containers that carry them out of a run.

- ``Record``        one extracted item, equal by ``content`` only
- ``RecordSet``     append-only, discovery-ordered, unique on ``content``
- ``Success`` / ``Failure``  the two shapes of an ``ExtractionOutcome``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Set, Tuple, Union

from .errors import ExtractionError, FailureKind


@dataclass(frozen=True)
class Record:
    """A single extracted item.

    ``observed_at`` is best-effort (may be empty) and does not take part in
    equality or hashing.
    """
    content: str
    observed_at: str = field(default="", compare=False)

    @property
    def is_blank(self) -> bool:
        return not self.content.strip()

    @classmethod
    def from_raw(cls, raw: Dict) -> "Record":
        """Build from a driver row (``{"content": ..., "observedAt": ...}``)."""
        content = raw.get("content") or ""
        observed_at = raw.get("observedAt") or raw.get("observed_at") or ""
        return cls(content=str(content), observed_at=str(observed_at))


class RecordSet:
    """Ordered set of records keyed on ``content``.

    Adding a duplicate is a no-op; adding a new record appends it, so
    iteration order is first-discovery order regardless of how the source
    page re-renders between reads.  Blank content is rejected before the
    uniqueness check.
    """

    def __init__(self) -> None:
        self._records: List[Record] = []
        self._seen: Set[str] = set()

    def add(self, record: Record) -> bool:
        """Insert ``record``; return True only if it was new."""
        if record.is_blank:
            return False
        if record.content in self._seen:
            return False
        self._seen.add(record.content)
        self._records.append(record)
        return True

    def first(self, limit: int) -> Tuple[Record, ...]:
        """The first ``limit`` records in discovery order."""
        return tuple(self._records[:limit])

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)

    def __contains__(self, item) -> bool:
        content = item.content if isinstance(item, Record) else item
        return content in self._seen

    def __repr__(self) -> str:
        return f"RecordSet(size={len(self._records)})"


@dataclass(frozen=True)
class Success:
    """Run finished with zero or more records.

    ``truncated_at`` is the cap that was applied, ``discovered`` the number of
    unique records seen before truncation.  An empty ``records`` tuple is the
    EmptyResult case: structural completion, not an error.
    """
    records: Tuple[Record, ...]
    truncated_at: int
    discovered: int = 0
    salvaged: bool = False

    @property
    def ok(self) -> bool:
        return True

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def truncated(self) -> bool:
        return self.discovered > len(self.records)

    def raise_for_failure(self) -> "Success":
        return self


@dataclass(frozen=True)
class Failure:
    """Run ended in a classified failure; ``partial_records`` is always empty
    in practice because any salvaged record turns the run into a Success."""
    kind: FailureKind
    partial_records: Tuple[Record, ...] = ()
    detail: str = ""

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return self.kind.describe(self.detail)

    def raise_for_failure(self) -> None:
        raise ExtractionError(self.kind, self.detail)


ExtractionOutcome = Union[Success, Failure]


def raise_for_outcome(outcome: ExtractionOutcome) -> Tuple[Record, ...]:
    """Return the records of a Success or raise ``ExtractionError``."""
    if isinstance(outcome, Failure):
        outcome.raise_for_failure()
    return outcome.records


__all__ = [
    "Record",
    "RecordSet",
    "Success",
    "Failure",
    "ExtractionOutcome",
    "raise_for_outcome",
]
