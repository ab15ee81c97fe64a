"""Tests for job reference resolution."""

from datetime import datetime

import pytest

from flowhut.errors import AmbiguousReference, IndexOutOfRange, NoPriorSubmission
from flowhut.ledger import InMemoryLedger, JobRecord, ResolvedReference
from flowhut.resolver import ReferenceResolver

DEFAULT_SERVER = "http://default:8000"


def _make_resolver(rows: int = 3) -> ReferenceResolver:
    ledger = InMemoryLedger()
    for i in range(1, rows + 1):
        ledger.append(
            JobRecord(
                submitted_at=datetime(2024, 1, i),
                server_url=f"http://server-{i}:8000",
                job_id=f"job-{i}",
                workflow_name=f"wf{i}.wdl",
            )
        )
    return ReferenceResolver(ledger, DEFAULT_SERVER)


class TestResolve:
    """Tests for ReferenceResolver.resolve."""

    @pytest.mark.parametrize("token", ["", None, "   "])
    def test_empty_token_on_empty_ledger(self, token):
        with pytest.raises(NoPriorSubmission):
            _make_resolver(rows=0).resolve(token)

    def test_empty_token_resolves_latest(self):
        assert _make_resolver().resolve("") == ResolvedReference("job-3", "http://server-3:8000")

    def test_relative_token(self):
        assert _make_resolver().resolve("-2") == ResolvedReference("job-2", "http://server-2:8000")

    def test_relative_token_out_of_range(self):
        with pytest.raises(IndexOutOfRange):
            _make_resolver().resolve("-4")

    def test_relative_token_on_empty_ledger(self):
        with pytest.raises(NoPriorSubmission):
            _make_resolver(rows=0).resolve("-1")

    def test_explicit_id_recovers_server(self):
        assert _make_resolver().resolve("job-1").server_url == "http://server-1:8000"

    def test_unknown_id_uses_default_server(self):
        ref = _make_resolver().resolve("5b6e0c8a-unrecorded")
        assert ref == ResolvedReference("5b6e0c8a-unrecorded", DEFAULT_SERVER)

    def test_ambiguous_prefix_propagates(self):
        with pytest.raises(AmbiguousReference):
            _make_resolver().resolve("job-")

    def test_resolution_does_not_write(self):
        resolver = _make_resolver()
        before = list(resolver.ledger.list())

        resolver.resolve("")
        resolver.resolve("-3")
        resolver.resolve("missing")

        assert list(resolver.ledger.list()) == before
