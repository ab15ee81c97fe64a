"""Status polling until a job reaches a terminal state."""

import asyncio
import logging

from flowhut.api import WorkflowApiClient
from flowhut.errors import ApiError, UnrecoverablePollError
from flowhut.ledger import JobStatus, LedgerStore, ResolvedReference

logger = logging.getLogger(__name__)


class StatusPoller:
    """Queries a job's status and mirrors it into the ledger.

    Transient API errors are retried forever at the poll interval; permanent
    ones (bad host, rejected credentials, unknown job) end the loop.
    """

    def __init__(
        self,
        api: WorkflowApiClient,
        ledger: LedgerStore,
        poll_interval: float = 10,
    ) -> None:
        self.api = api
        self.ledger = ledger
        self.poll_interval = poll_interval

    async def refresh(self, ref: ResolvedReference) -> JobStatus:
        """Run a single poll tick and record the result.

        Raises:
            ApiError: The server could not be queried.
        """
        response = await self.api.get_status(ref.job_id, ref.server_url)
        status = response.job_status
        self.ledger.update_status(ref.job_id, status)
        return status

    async def wait_for_terminal(
        self,
        ref: ResolvedReference,
        shutdown_event: asyncio.Event | None = None,
    ) -> JobStatus | None:
        """Poll until the job is Succeeded, Failed or Aborted.

        Args:
            ref: Job to poll.
            shutdown_event: Optional cancellation signal checked between ticks.

        Returns:
            The terminal status, or None if the shutdown event was set first.

        Raises:
            UnrecoverablePollError: On a non-transient API error.
        """
        logger.info(f"Polling {ref.job_id} on {ref.server_url} every {self.poll_interval}s")
        ticks = 0

        while shutdown_event is None or not shutdown_event.is_set():
            ticks += 1
            try:
                status = await self.refresh(ref)
            except ApiError as e:
                if not e.transient:
                    logger.error(f"Giving up on {ref.job_id}: {e}")
                    raise UnrecoverablePollError(f"Cannot poll {ref.job_id}: {e}") from e
                logger.warning(f"Poll {ticks} for {ref.job_id} failed, retrying: {e}")
            else:
                if status.is_terminal:
                    logger.info(f"Job {ref.job_id} finished as {status.value} after {ticks} polls")
                    return status
                logger.debug(f"Job {ref.job_id} is {status.value}")

            if await self._sleep(shutdown_event):
                break

        logger.info(f"Stopped polling {ref.job_id} on shutdown")
        return None

    async def _sleep(self, shutdown_event: asyncio.Event | None) -> bool:
        """Sleep one poll interval. Returns True if woken by shutdown."""
        if shutdown_event is None:
            await asyncio.sleep(self.poll_interval)
            return False
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=self.poll_interval)
            return True
        except asyncio.TimeoutError:
            return False
