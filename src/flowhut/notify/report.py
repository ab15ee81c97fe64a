"""Human-readable completion reports."""

import json
from datetime import datetime
from typing import Any

from flowhut.ledger import JobStatus
from flowhut.notify.models import NotificationTask


def format_subject(task: NotificationTask, status: JobStatus) -> str:
    return f"[flowhut] Workflow {task.job_id} {status.value}"


def format_report(
    task: NotificationTask,
    status: JobStatus,
    metadata: dict[str, Any] | None,
    metadata_error: str | None = None,
    finished_at: datetime | None = None,
) -> str:
    """Build the plain-text notification body."""
    finished_at = finished_at or datetime.now()
    lines = [
        f"Workflow {task.job_id} finished with status {status.value}.",
        "",
        f"Job id:       {task.job_id}",
        f"Server:       {task.server_url}",
        f"Status:       {status.value}",
        f"Reported at:  {finished_at.isoformat(timespec='seconds')}",
        f"Requested by: {task.requested_by}@{task.requested_from}",
        "",
        "Metadata:",
    ]
    if metadata is not None:
        lines.append(json.dumps(metadata, indent=2, sort_keys=True, default=str))
    else:
        lines.append(f"(unavailable: {metadata_error or 'not fetched'})")
    return "\n".join(lines) + "\n"
