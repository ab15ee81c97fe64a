"""Command-line interface for flowhut."""

import argparse
import asyncio
import json
import logging
import re
import signal
import sys
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable

import yaml
from pydantic import ValidationError

from flowhut import __version__
from flowhut.config import find_config_file, load_config
from flowhut.context import FlowHutContext, build_context
from flowhut.errors import (
    EXIT_OK,
    EXIT_UNEXPECTED,
    ApiError,
    ConfigError,
    FlowHutError,
    MissingRecipient,
    UsageError,
)
from flowhut.ledger import JobRecord, JobStatus, ResolvedReference
from flowhut.notify import NotificationTask

logger = logging.getLogger(__name__)

# One address, no lists
RECIPIENT_PATTERN = re.compile(r"^[^@\s,;]+@[^@\s,;]+\.[^@\s,;]+$")

STATUS_COLORS = {
    JobStatus.SUBMITTED: "\033[36m",
    JobStatus.RUNNING: "\033[34m",
    JobStatus.SUCCEEDED: "\033[32m",
    JobStatus.FAILED: "\033[31m",
    JobStatus.ABORTED: "\033[33m",
    JobStatus.UNKNOWN: "\033[90m",
}
RESET_COLOR = "\033[0m"

LIST_HEADER = ["DATE", "SERVER", "ID", "NAME", "STATUS"]


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _print_error(error: BaseException) -> None:
    lines = str(error).splitlines() or [type(error).__name__]
    print(f"flowhut: error: {lines[0]}", file=sys.stderr)


# -- Subcommands ---------------------------------------------------------------


async def cmd_submit(ctx: FlowHutContext, args: argparse.Namespace) -> int:
    """Submit a workflow and record it in the ledger."""
    files = [args.workflow, args.inputs, args.options, args.dependencies]
    for path in files:
        if path is not None and not path.is_file():
            raise UsageError(f"File not found: {path}")

    server_url = ctx.config.settings.server_url
    response = await ctx.api.submit(
        server_url,
        args.workflow,
        inputs=args.inputs,
        options=args.options,
        dependencies=args.dependencies,
    )

    record = JobRecord(
        submitted_at=datetime.now(),
        server_url=server_url,
        job_id=response.id,
        workflow_name=args.workflow.name,
        last_status=response.job_status,
    )
    try:
        ctx.ledger.append(record)
    except FlowHutError:
        logger.error(f"Job {response.id} was submitted but could not be recorded")
        raise

    try:
        ctx.cache.store_files(server_url, response.id, [p for p in files if p is not None])
    except OSError as e:
        logger.warning(f"Could not cache submitted files for {response.id}: {e}")

    _print_json({"id": response.id, "status": response.job_status.value, "server": server_url})
    return EXIT_OK


async def cmd_status(ctx: FlowHutContext, args: argparse.Namespace) -> int:
    ref = ctx.resolver.resolve(args.ref)
    status = await ctx.poller.refresh(ref)
    _print_json({"id": ref.job_id, "server": ref.server_url, "status": status.value})
    return EXIT_OK


async def cmd_abort(ctx: FlowHutContext, args: argparse.Namespace) -> int:
    ref = ctx.resolver.resolve(args.ref)
    response = await ctx.api.abort(ref.job_id, ref.server_url)
    ctx.ledger.update_status(ref.job_id, response.job_status)
    _print_json({"id": ref.job_id, "server": ref.server_url, "status": response.status})
    return EXIT_OK


async def cmd_metadata(ctx: FlowHutContext, args: argparse.Namespace) -> int:
    ref = ctx.resolver.resolve(args.ref)
    metadata = await ctx.api.get_metadata(
        ref.job_id,
        ref.server_url,
        include_keys=args.key,
        expand_subworkflows=args.expand,
    )
    try:
        ctx.cache.store_metadata(ref.server_url, ref.job_id, metadata)
    except OSError as e:
        logger.warning(f"Could not cache metadata for {ref.job_id}: {e}")
    _print_json(metadata)
    return EXIT_OK


async def cmd_logs(ctx: FlowHutContext, args: argparse.Namespace) -> int:
    ref = ctx.resolver.resolve(args.ref)
    _print_json(await ctx.api.get_logs(ref.job_id, ref.server_url))
    return EXIT_OK


def _resolve_recipient(ctx: FlowHutContext, recipient: str | None) -> str:
    recipient = (recipient or ctx.config.settings.default_recipient or "").strip()
    if not recipient:
        raise MissingRecipient("No recipient given and no default_recipient configured")
    if not RECIPIENT_PATTERN.match(recipient):
        raise MissingRecipient(f"Recipient must be a single email address, got '{recipient}'")
    return recipient


async def cmd_notify(ctx: FlowHutContext, args: argparse.Namespace) -> int:
    """Mail the recipient when the job finishes."""
    recipient = _resolve_recipient(ctx, args.recipient)
    ref = ctx.resolver.resolve(args.job)
    server_url = args.notify_server or ref.server_url

    if args.foreground:
        task = NotificationTask(job_id=ref.job_id, server_url=server_url, recipient=recipient)
        status = await ctx.daemon.watch(task)
        _print_json({"id": ref.job_id, "server": server_url, "status": status.value if status else None})
    elif args.host:
        handle = await ctx.daemon.run_remote(args.host, ref.job_id, server_url, recipient)
        _print_json({"id": ref.job_id, "server": server_url, "recipient": recipient, **asdict(handle)})
    else:
        handle = ctx.daemon.run_local(ref.job_id, server_url, recipient)
        _print_json({"id": ref.job_id, "server": server_url, "recipient": recipient, **asdict(handle)})
    return EXIT_OK


def _format_table(records: list[JobRecord], color: bool) -> list[str]:
    rows = [
        [
            r.submitted_at.isoformat(sep=" ", timespec="seconds"),
            r.server_url,
            r.job_id,
            r.workflow_name,
            r.last_status.value,
        ]
        for r in records
    ]
    widths = [max(len(row[i]) for row in [LIST_HEADER, *rows]) for i in range(len(LIST_HEADER))]

    lines = ["  ".join(cell.ljust(widths[i]) for i, cell in enumerate(LIST_HEADER)).rstrip()]
    for record, row in zip(records, rows):
        cells = [cell.ljust(widths[i]) for i, cell in enumerate(row)]
        if color:
            cells[-1] = f"{STATUS_COLORS[record.last_status]}{row[-1]}{RESET_COLOR}"
        lines.append("  ".join(cells).rstrip())
    return lines


async def cmd_list(ctx: FlowHutContext, args: argparse.Namespace) -> int:
    """Print every recorded job, optionally refreshing unfinished ones first."""
    records = list(ctx.ledger.list())

    if args.refresh:
        for record in records:
            if record.is_terminal:
                continue
            ref = ResolvedReference(job_id=record.job_id, server_url=record.server_url)
            try:
                record.last_status = await ctx.poller.refresh(ref)
            except ApiError as e:
                logger.warning(f"Could not refresh {record.job_id}: {e}")

    if args.color or sys.stdout.isatty():
        lines = _format_table(records, color=args.color)
    else:
        lines = ["\t".join(LIST_HEADER)] + ["\t".join(r.to_row()) for r in records]
    for line in lines:
        print(line)
    return EXIT_OK


async def cmd_worker(ctx: FlowHutContext, args: argparse.Namespace) -> int:
    """Run one notification task in this process (started by notify)."""
    task_file: Path = args.task_file
    task = NotificationTask.model_validate_json(task_file.read_text())
    logger.info(f"Worker for task {task.task_id}: job {task.job_id} on {task.server_url}")

    # SIGTERM from LocalScheduler.cancel stops polling without notifying
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    handled: list[signal.Signals] = []
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
            handled.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            pass

    try:
        status = await ctx.daemon.watch(task, shutdown_event)
    finally:
        for sig in handled:
            loop.remove_signal_handler(sig)
        task_file.unlink(missing_ok=True)
    _print_json({"task_id": task.task_id, "id": task.job_id, "status": status.value if status else None})
    return EXIT_OK


COMMANDS: dict[str, Callable[[FlowHutContext, argparse.Namespace], Awaitable[int]]] = {
    "submit": cmd_submit,
    "status": cmd_status,
    "abort": cmd_abort,
    "metadata": cmd_metadata,
    "logs": cmd_logs,
    "notify": cmd_notify,
    "list": cmd_list,
    "worker": cmd_worker,
}


# -- Entry point ---------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="flowhut",
        description="flowhut - Workflow server client with a local job ledger",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Path to configuration file (default: ./flowhut.yaml)",
    )
    parser.add_argument(
        "--server",
        "-s",
        type=str,
        help="Workflow server URL (overrides config)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)
    ref_help = "Job id, -n for the n-th latest submission (default: latest)"

    submit = subparsers.add_parser("submit", help="Submit a workflow")
    submit.add_argument("workflow", type=Path, help="Workflow definition file")
    submit.add_argument("inputs", type=Path, nargs="?", help="Inputs JSON")
    submit.add_argument("options", type=Path, nargs="?", help="Workflow options JSON")
    submit.add_argument("dependencies", type=Path, nargs="?", help="Zip of imported definitions")

    for name, help_text in [
        ("status", "Show the status of a job"),
        ("abort", "Abort a running job"),
        ("logs", "Show the log locations of a job"),
    ]:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("ref", nargs="?", default="", help=ref_help)

    metadata = subparsers.add_parser("metadata", help="Show job metadata")
    metadata.add_argument("ref", nargs="?", default="", help=ref_help)
    metadata.add_argument("--key", "-k", action="append", help="Only include this top-level key")
    metadata.add_argument("--expand", action="store_true", help="Expand subworkflow metadata")

    notify = subparsers.add_parser("notify", help="Email the recipient when a job finishes")
    notify.add_argument("recipient", nargs="?", help="Email address (default: settings.default_recipient)")
    notify.add_argument("host", nargs="?", help="Run the watcher on this host over SSH")
    notify.add_argument("notify_server", nargs="?", metavar="server", help="Workflow server URL of the job")
    notify.add_argument("--job", "-j", default="", help=ref_help)
    notify.add_argument("--foreground", action="store_true", help="Watch in this process instead of detaching")

    list_parser = subparsers.add_parser("list", help="List submitted jobs")
    list_parser.add_argument("--color", action="store_true", help="Color statuses")
    list_parser.add_argument("--refresh", action="store_true", help="Refresh unfinished jobs first")

    worker = subparsers.add_parser("worker", help=argparse.SUPPRESS)
    worker.add_argument("--task-file", type=Path, required=True)

    return parser


async def _run(
    args: argparse.Namespace,
    context_factory: Callable[..., FlowHutContext] = build_context,
) -> int:
    try:
        config_path = find_config_file(args.config)
        config = load_config(config_path)
    except (FileNotFoundError, ValidationError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    if args.server:
        config.settings.server_url = args.server

    ctx = context_factory(config, config_path)
    try:
        return await COMMANDS[args.command](ctx, args)
    finally:
        await ctx.close()


def main(
    argv: list[str] | None = None,
    context_factory: Callable[..., FlowHutContext] = build_context,
) -> int:
    """Run the CLI and return the exit code."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        level = logging.DEBUG
    elif args.command == "worker":
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        return asyncio.run(_run(args, context_factory))
    except FlowHutError as e:
        _print_error(e)
        return e.exit_code
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.exception("Unexpected error")
        _print_error(e)
        return EXIT_UNEXPECTED


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
