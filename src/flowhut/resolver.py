"""Turn user job references into concrete (job id, server) pairs."""

import logging
import re

from flowhut.errors import IndexOutOfRange, NoPriorSubmission, NoSuchRecord
from flowhut.ledger import LedgerStore, ResolvedReference

logger = logging.getLogger(__name__)

RELATIVE_REFERENCE = re.compile(r"^-([0-9]+)$")


class ReferenceResolver:
    """Resolves empty, relative (-n) and explicit job references against the ledger.

    Resolution never writes to the ledger.
    """

    def __init__(self, ledger: LedgerStore, default_server_url: str) -> None:
        self.ledger = ledger
        self.default_server_url = default_server_url

    def resolve(self, token: str | None = None) -> ResolvedReference:
        """Resolve a reference token.

        Args:
            token: Empty/None for the latest job, ``-n`` for the n-th latest,
                anything else is taken as a job id (or id prefix).

        Raises:
            NoPriorSubmission: The ledger has no rows to default to.
            IndexOutOfRange: ``-n`` goes back further than the ledger.
            AmbiguousReference: An id prefix matches several jobs.
        """
        token = (token or "").strip()

        if not token:
            return self._nth_latest(1)

        match = RELATIVE_REFERENCE.match(token)
        if match:
            return self._nth_latest(int(match.group(1)))

        try:
            record = self.ledger.find_by_prefix_or_exact(token)
        except NoSuchRecord:
            logger.debug(f"Job {token} not in ledger, using default server {self.default_server_url}")
            return ResolvedReference(job_id=token, server_url=self.default_server_url)
        return ResolvedReference(job_id=record.job_id, server_url=record.server_url)

    def _nth_latest(self, n: int) -> ResolvedReference:
        try:
            record = self.ledger.most_recent(n)
        except IndexOutOfRange:
            raise
        except NoSuchRecord as e:
            raise NoPriorSubmission() from e
        return ResolvedReference(job_id=record.job_id, server_url=record.server_url)
