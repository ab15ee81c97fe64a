"""Notification daemon: wait for a job to finish, then mail the outcome once."""

import asyncio
import logging
from typing import Any

from flowhut.errors import ApiError, DeliveryError
from flowhut.ledger import JobStatus
from flowhut.notify.mailer import Mailer
from flowhut.notify.models import NotificationTask, RemoteTaskHandle, TaskHandle
from flowhut.notify.remote import RemoteDispatcher
from flowhut.notify.report import format_report, format_subject
from flowhut.notify.scheduler import LocalScheduler
from flowhut.poller import StatusPoller

logger = logging.getLogger(__name__)


class NotificationDaemon:
    """Runs the status poller to completion and sends one notification.

    Delivery is attempted at most once. If the worker is killed before the
    job finishes, nothing is sent and nothing is retried: there is no
    persistent task queue.
    """

    def __init__(
        self,
        poller: StatusPoller,
        mailer: Mailer,
        scheduler: LocalScheduler,
        dispatcher: RemoteDispatcher,
    ) -> None:
        self.poller = poller
        self.mailer = mailer
        self.scheduler = scheduler
        self.dispatcher = dispatcher

    async def watch(
        self,
        task: NotificationTask,
        shutdown_event: asyncio.Event | None = None,
    ) -> JobStatus | None:
        """Poll the task's job until it is terminal, then notify the recipient.

        Returns:
            The terminal status, or None if cancelled before it was reached.

        Raises:
            UnrecoverablePollError: Polling hit a permanent failure.
            DeliveryError: The message could not be sent.
        """
        status = await self.poller.wait_for_terminal(task.reference, shutdown_event)
        if status is None:
            logger.warning(f"Watch of {task.job_id} cancelled; no notification sent")
            return None

        metadata: dict[str, Any] | None = None
        metadata_error: str | None = None
        try:
            metadata = await self.poller.api.get_metadata(task.job_id, task.server_url)
        except ApiError as e:
            logger.warning(f"Could not fetch metadata for {task.job_id}: {e}")
            metadata_error = str(e)

        subject = format_subject(task, status)
        body = format_report(task, status, metadata, metadata_error)
        try:
            await asyncio.to_thread(self.mailer.send, task.recipient, subject, body)
        except DeliveryError as e:
            logger.error(f"Notification for {task.job_id} not delivered: {e}")
            raise

        return status

    def run_local(self, job_id: str, server_url: str, recipient: str) -> TaskHandle:
        """Watch a job from a detached local worker; returns once it is started."""
        task = NotificationTask(job_id=job_id, server_url=server_url, recipient=recipient)
        return self.scheduler.submit(task)

    async def run_remote(
        self,
        target_host: str,
        job_id: str,
        server_url: str,
        recipient: str,
    ) -> RemoteTaskHandle:
        """Watch a job from a worker on ``target_host``; fire and forget."""
        task = NotificationTask(job_id=job_id, server_url=server_url, recipient=recipient)
        return await self.dispatcher.dispatch(target_host, task)
