"""Summary of one batch of documents added to an index."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class AddDocumentsReport:
    """Counts of documents seen, added and skipped as duplicates."""

    total: int = 0
    added: int = 0
    skipped_duplicates: int = 0

    def is_all_added(self) -> bool:
        """True when no document was skipped."""
        return self.skipped_duplicates == 0

    def record_added(self) -> None:
        self.added += 1

    def record_skipped(self) -> None:
        self.skipped_duplicates += 1

    def record_total(self) -> None:
        self.total += 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)