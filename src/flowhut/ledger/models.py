"""Data models for the submission ledger."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

# Column order of the ledger file
LEDGER_COLUMNS = ["submitted_at", "server_url", "job_id", "workflow_name", "last_status"]


class JobStatus(str, Enum):
    """Last known state of a workflow job."""

    SUBMITTED = "Submitted"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ABORTED = "Aborted"
    UNKNOWN = "Unknown"

    @classmethod
    def from_string(cls, status: str | None) -> "JobStatus":
        """Parse a server or ledger status string, case-insensitively."""
        if not status:
            return cls.UNKNOWN
        status = status.strip().lower()
        # Server-side transitional states
        alias_map = {
            "aborting": cls.RUNNING,
            "on hold": cls.SUBMITTED,
            "onhold": cls.SUBMITTED,
        }
        if status in alias_map:
            return alias_map[status]
        for member in cls:
            if member.value.lower() == status:
                return member
        return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        """Check if the job can no longer change state."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.ABORTED})


@dataclass
class JobRecord:
    """One submitted job as recorded in the ledger."""

    submitted_at: datetime
    server_url: str
    job_id: str
    workflow_name: str
    last_status: JobStatus = JobStatus.SUBMITTED

    def to_row(self) -> list[str]:
        """Serialize to a ledger row."""
        return [
            self.submitted_at.isoformat(timespec="seconds"),
            self.server_url,
            self.job_id,
            self.workflow_name,
            self.last_status.value,
        ]

    @classmethod
    def from_row(cls, row: list[str]) -> "JobRecord":
        """Deserialize from a ledger row."""
        if len(row) != len(LEDGER_COLUMNS):
            raise ValueError(f"Expected {len(LEDGER_COLUMNS)} fields, got {len(row)}")
        return cls(
            submitted_at=datetime.fromisoformat(row[0]),
            server_url=row[1],
            job_id=row[2],
            workflow_name=row[3],
            last_status=JobStatus.from_string(row[4]),
        )

    @property
    def is_terminal(self) -> bool:
        """Check if the recorded status is terminal."""
        return self.last_status.is_terminal


@dataclass(frozen=True)
class ResolvedReference:
    """A job id paired with the server it lives on."""

    job_id: str
    server_url: str
