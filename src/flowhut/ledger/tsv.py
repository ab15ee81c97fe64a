"""Tab-separated ledger file shared by concurrent invocations."""

from __future__ import annotations

import csv
import logging
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterable, Iterator

from flowhut.errors import PersistenceError
from flowhut.ledger.base import LedgerStore, RecordView
from flowhut.ledger.models import LEDGER_COLUMNS, JobRecord, JobStatus

logger = logging.getLogger(__name__)


class TsvLedger(LedgerStore):
    """File-backed ledger.

    Layout: one header row, then one tab-separated row per job with the
    columns ``submitted_at, server_url, job_id, workflow_name, last_status``.

    Writers serialize on an exclusive lock held on a sidecar ``.lock`` file.
    Appends add a single line; status updates rewrite the table to a temp
    file and rename it over the ledger. Readers never lock.
    """

    FILENAME = "all.workflow.database.tsv"

    def __init__(self, path: Path) -> None:
        self.path = path
        self.lock_path = path.with_name(path.name + ".lock")

    @staticmethod
    def _lock_file(f: IO) -> None:
        """Acquire an exclusive file lock (cross-platform)."""
        if sys.platform == "win32":
            import msvcrt

            msvcrt.locking(f.fileno(), msvcrt.LK_LOCK, 1)
        else:
            import fcntl

            fcntl.flock(f.fileno(), fcntl.LOCK_EX)

    @staticmethod
    def _unlock_file(f: IO) -> None:
        """Release a file lock (cross-platform)."""
        if sys.platform == "win32":
            import msvcrt

            msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)
        else:
            import fcntl

            fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    @contextmanager
    def _write_lock(self) -> Iterator[None]:
        """Hold the writer lock for the duration of the block."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lock_handle = open(self.lock_path, "a+")
        except OSError as e:
            raise PersistenceError(f"Cannot lock ledger {self.path}: {e}") from e

        with lock_handle:
            self._lock_file(lock_handle)
            try:
                yield
            finally:
                self._unlock_file(lock_handle)

    def _read_rows(self) -> Iterator[list[str]]:
        """Yield raw data rows, header excluded."""
        if not self.path.exists():
            return
        with open(self.path, "r", newline="", encoding="utf-8") as f:
            for index, row in enumerate(csv.reader(f, delimiter="\t")):
                if not row:
                    continue
                if index == 0 and row == LEDGER_COLUMNS:
                    continue
                yield row

    def _iter_records(self) -> Iterator[JobRecord]:
        for row in self._read_rows():
            try:
                yield JobRecord.from_row(row)
            except ValueError as e:
                logger.warning(f"Skipping malformed ledger row {row!r}: {e}")

    def append(self, record: JobRecord) -> None:
        with self._write_lock():
            try:
                new_file = not self.path.exists() or self.path.stat().st_size == 0
                with open(self.path, "a", newline="", encoding="utf-8") as f:
                    writer = csv.writer(f, delimiter="\t", lineterminator="\n")
                    if new_file:
                        writer.writerow(LEDGER_COLUMNS)
                    writer.writerow(record.to_row())
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise PersistenceError(f"Cannot write ledger {self.path}: {e}") from e
        logger.debug(f"Recorded job {record.job_id} in {self.path}")

    def update_status(self, job_id: str, new_status: JobStatus) -> bool:
        with self._write_lock():
            rows = list(self._read_rows())
            changed = False
            for row in rows:
                # Exact key match on the job id column only
                if len(row) != len(LEDGER_COLUMNS) or row[2] != job_id:
                    continue
                current = JobStatus.from_string(row[4])
                if current.is_terminal:
                    logger.debug(f"Ignoring {new_status.value} for {job_id}: already {current.value}")
                    continue
                if row[4] != new_status.value:
                    row[4] = new_status.value
                    changed = True

            if changed:
                self._rewrite(rows)
        return changed

    def _rewrite(self, rows: list[list[str]]) -> None:
        """Replace the ledger atomically. Caller holds the writer lock."""
        temp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(temp_path, "w", newline="", encoding="utf-8") as f:
                writer = csv.writer(f, delimiter="\t", lineterminator="\n")
                writer.writerow(LEDGER_COLUMNS)
                writer.writerows(rows)
                f.flush()
                os.fsync(f.fileno())
            temp_path.replace(self.path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise PersistenceError(f"Cannot rewrite ledger {self.path}: {e}") from e

    def list(self) -> Iterable[JobRecord]:
        return RecordView(self._iter_records)
