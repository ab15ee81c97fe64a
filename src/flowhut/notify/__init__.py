"""Completion notifications for workflow jobs."""

from flowhut.notify.daemon import NotificationDaemon
from flowhut.notify.mailer import Mailer, SMTPMailer
from flowhut.notify.models import NotificationTask, RemoteTaskHandle, TaskHandle
from flowhut.notify.remote import RemoteDispatcher
from flowhut.notify.scheduler import LocalScheduler

__all__ = [
    "LocalScheduler",
    "Mailer",
    "NotificationDaemon",
    "NotificationTask",
    "RemoteDispatcher",
    "RemoteTaskHandle",
    "SMTPMailer",
    "TaskHandle",
]
