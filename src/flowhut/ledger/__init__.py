"""Submission ledger: durable record of submitted jobs."""

from flowhut.ledger.base import LedgerStore
from flowhut.ledger.cache import JobCache
from flowhut.ledger.memory import InMemoryLedger
from flowhut.ledger.models import JobRecord, JobStatus, ResolvedReference
from flowhut.ledger.tsv import TsvLedger

__all__ = [
    "InMemoryLedger",
    "JobCache",
    "JobRecord",
    "JobStatus",
    "LedgerStore",
    "ResolvedReference",
    "TsvLedger",
]
