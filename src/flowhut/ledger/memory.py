"""In-memory ledger store."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from flowhut.ledger.base import LedgerStore, RecordView
from flowhut.ledger.models import JobRecord, JobStatus

logger = logging.getLogger(__name__)


class InMemoryLedger(LedgerStore):
    """List-backed ledger, used for tests and dry runs."""

    def __init__(self, records: Iterable[JobRecord] | None = None) -> None:
        self._records: list[JobRecord] = [replace(r) for r in records or []]

    def append(self, record: JobRecord) -> None:
        self._records.append(replace(record))

    def update_status(self, job_id: str, new_status: JobStatus) -> bool:
        changed = False
        for record in self._records:
            if record.job_id != job_id:
                continue
            if record.is_terminal:
                logger.debug(f"Ignoring {new_status.value} for {job_id}: already {record.last_status.value}")
                continue
            if record.last_status != new_status:
                record.last_status = new_status
                changed = True
        return changed

    def list(self) -> Iterable[JobRecord]:
        # Copies so callers cannot mutate stored rows
        return RecordView(lambda: (replace(r) for r in self._records))
