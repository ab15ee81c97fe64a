"""Task messages handed to notification workers."""

import getpass
import socket
import uuid
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field

from flowhut.ledger import ResolvedReference


def _local_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


class NotificationTask(BaseModel):
    """Request to watch one job and mail its outcome.

    Serialized as JSON and handed to a local or remote worker process.
    """

    task_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    job_id: str
    server_url: str
    recipient: str
    requested_by: str = Field(default_factory=_local_user)
    requested_from: str = Field(default_factory=socket.gethostname)
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def reference(self) -> ResolvedReference:
        return ResolvedReference(job_id=self.job_id, server_url=self.server_url)


@dataclass
class TaskHandle:
    """A locally spawned worker process."""

    task_id: str
    pid: int
    task_file: str
    log_file: str


@dataclass
class RemoteTaskHandle:
    """A worker process started on another host."""

    task_id: str
    host: str
    pid: int
    task_file: str
