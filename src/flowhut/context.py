"""Per-invocation application context."""

from dataclasses import dataclass
from pathlib import Path

from flowhut.api import WorkflowApiClient
from flowhut.config_schema import FlowHutConfig
from flowhut.ledger import JobCache, LedgerStore, TsvLedger
from flowhut.notify import (
    LocalScheduler,
    Mailer,
    NotificationDaemon,
    RemoteDispatcher,
    SMTPMailer,
)
from flowhut.poller import StatusPoller
from flowhut.resolver import ReferenceResolver


@dataclass
class FlowHutContext:
    """Components wired from one configuration."""

    config: FlowHutConfig
    ledger: LedgerStore
    cache: JobCache
    api: WorkflowApiClient
    resolver: ReferenceResolver
    poller: StatusPoller
    daemon: NotificationDaemon

    async def close(self) -> None:
        await self.api.close()


def build_context(
    config: FlowHutConfig,
    config_path: Path | None = None,
    ledger: LedgerStore | None = None,
    api: WorkflowApiClient | None = None,
    mailer: Mailer | None = None,
    dispatcher: RemoteDispatcher | None = None,
) -> FlowHutContext:
    """Build the component graph; explicit arguments replace the defaults."""
    settings = config.settings
    state_dir = settings.state_dir_resolved

    if ledger is None:
        ledger = TsvLedger(state_dir / TsvLedger.FILENAME)
    if api is None:
        api = WorkflowApiClient(
            timeout=settings.request_timeout,
            connect_timeout=settings.connect_timeout,
        )

    poller = StatusPoller(api, ledger, poll_interval=settings.poll_interval)
    daemon = NotificationDaemon(
        poller=poller,
        mailer=mailer or SMTPMailer(config.smtp),
        scheduler=LocalScheduler(state_dir / "tasks", config_path=config_path),
        dispatcher=dispatcher or RemoteDispatcher(config),
    )

    return FlowHutContext(
        config=config,
        ledger=ledger,
        cache=JobCache(state_dir),
        api=api,
        resolver=ReferenceResolver(ledger, settings.server_url),
        poller=poller,
        daemon=daemon,
    )
