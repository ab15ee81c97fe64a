"""Detached local execution of notification workers."""

import logging
import os
import signal
import subprocess
import sys
from pathlib import Path
from typing import Any

from flowhut.errors import WorkerSpawnError
from flowhut.notify.models import NotificationTask, TaskHandle

logger = logging.getLogger(__name__)


class LocalScheduler:
    """Spawns one detached worker process per notification task.

    Each task is written to ``<spool_dir>/<task-id>.json`` and picked up by
    ``python -m flowhut worker --task-file``. The worker runs in its own
    session, so it outlives the invoking command. Its output goes to
    ``<spool_dir>/<task-id>.log``.
    """

    def __init__(
        self,
        spool_dir: Path,
        config_path: Path | None = None,
        python: str = sys.executable,
    ) -> None:
        self.spool_dir = spool_dir
        self.config_path = config_path
        self.python = python

    def _command(self, task_file: Path) -> list[str]:
        command = [self.python, "-m", "flowhut"]
        if self.config_path is not None:
            command += ["--config", str(self.config_path.resolve())]
        return command + ["worker", "--task-file", str(task_file)]

    def submit(self, task: NotificationTask) -> TaskHandle:
        """Write the task message and start a detached worker for it.

        Raises:
            WorkerSpawnError: The task file or the process could not be created.
        """
        task_file = self.spool_dir / f"{task.task_id}.json"
        log_file = self.spool_dir / f"{task.task_id}.log"

        popen_kwargs: dict[str, Any] = {}
        if sys.platform == "win32":
            popen_kwargs["creationflags"] = (
                subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
            )
        else:
            popen_kwargs["start_new_session"] = True

        try:
            self.spool_dir.mkdir(parents=True, exist_ok=True)
            task_file.write_text(task.model_dump_json(indent=2))
            with open(log_file, "a") as log:
                process = subprocess.Popen(
                    self._command(task_file),
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    close_fds=True,
                    **popen_kwargs,
                )
        except OSError as e:
            raise WorkerSpawnError(f"Cannot start notification worker: {e}") from e

        logger.info(f"Started worker {process.pid} for job {task.job_id} (task {task.task_id})")
        return TaskHandle(
            task_id=task.task_id,
            pid=process.pid,
            task_file=str(task_file),
            log_file=str(log_file),
        )

    def cancel(self, handle: TaskHandle) -> bool:
        """Terminate a worker. Returns False if it had already exited."""
        try:
            os.kill(handle.pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.info(f"Worker {handle.pid} already exited")
            return False
        logger.info(f"Sent SIGTERM to worker {handle.pid} (task {handle.task_id})")
        return True
