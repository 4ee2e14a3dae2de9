# feefund/ports/journal.py
from __future__ import annotations

from typing import Protocol
from ..domain.models import TxRecord


class TxJournal(Protocol):
    """Port for appending submitted transaction records (e.g., JSONL journal)."""

    async def append(self, rec: TxRecord) -> None:
        """Append a record atomically (callers handle ordering)."""
