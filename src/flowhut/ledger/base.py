"""Abstract base class for ledger stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Iterable, Iterator

from flowhut.errors import AmbiguousReference, IndexOutOfRange, NoSuchRecord
from flowhut.ledger.models import JobRecord, JobStatus


class RecordView:
    """Restartable view over ledger records; each iteration re-reads the store."""

    def __init__(self, factory: Callable[[], Iterator[JobRecord]]) -> None:
        self._factory = factory

    def __iter__(self) -> Iterator[JobRecord]:
        return self._factory()


class LedgerStore(ABC):
    """Durable, ordered record of submitted jobs (insertion order = submission order)."""

    @abstractmethod
    def append(self, record: JobRecord) -> None:
        """Add a new record.

        Raises:
            PersistenceError: If the backing store cannot be written.
        """
        ...

    @abstractmethod
    def update_status(self, job_id: str, new_status: JobStatus) -> bool:
        """Overwrite the status of every row whose job id is exactly ``job_id``.

        Unknown ids are ignored. Rows already in a terminal state keep it.

        Returns:
            True if at least one row changed.
        """
        ...

    @abstractmethod
    def list(self) -> Iterable[JobRecord]:
        """Return all records in insertion order as a restartable iterable."""
        ...

    def most_recent(self, n: int = 1) -> JobRecord:
        """Return the n-th record from the end (n=1 is the newest)."""
        records = list(self.list())
        if not records:
            raise NoSuchRecord("The ledger is empty")
        if n < 1 or n > len(records):
            raise IndexOutOfRange(
                f"Cannot go back {n} submissions: only {len(records)} recorded"
            )
        return records[-n]

    def find_by_prefix_or_exact(self, job_id: str) -> JobRecord:
        """Find a record by exact job id, falling back to a unique id prefix.

        The latest row wins when an id was recorded more than once.
        """
        if not job_id:
            raise NoSuchRecord("Empty job id")

        records = list(self.list())
        for record in reversed(records):
            if record.job_id == job_id:
                return record

        matches: dict[str, JobRecord] = {}
        for record in records:
            if record.job_id.startswith(job_id):
                matches[record.job_id] = record

        if len(matches) > 1:
            raise AmbiguousReference(
                f"'{job_id}' matches {len(matches)} jobs: {', '.join(sorted(matches))}"
            )
        if matches:
            return next(iter(matches.values()))
        raise NoSuchRecord(f"Job '{job_id}' not found in ledger")

    def __len__(self) -> int:
        return sum(1 for _ in self.list())
