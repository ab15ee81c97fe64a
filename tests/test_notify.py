"""Tests for completion notifications: daemon, report, local and remote workers."""

import asyncio
import json
import signal
import subprocess
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from flowhut.api import StatusResponse
from flowhut.config_schema import FlowHutConfig, RemoteHostConfig, SMTPConfig, SSHConfig
from flowhut.errors import ApiError, DeliveryError, RemoteDispatchError, WorkerSpawnError
from flowhut.ledger import InMemoryLedger, JobRecord, JobStatus
from flowhut.notify import (
    LocalScheduler,
    Mailer,
    NotificationDaemon,
    NotificationTask,
    RemoteDispatcher,
    SMTPMailer,
    TaskHandle,
)
from flowhut.notify.remote import PACKAGE_DIR
from flowhut.notify.report import format_report, format_subject
from flowhut.poller import StatusPoller
from flowhut.ssh import SSHClient

SERVER = "http://cromwell.example.org:8000"
JOB_ID = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


def _task(**overrides) -> NotificationTask:
    fields = {
        "task_id": "abc123def456",
        "job_id": JOB_ID,
        "server_url": SERVER,
        "recipient": "alice@example.org",
        "requested_by": "alice",
        "requested_from": "laptop",
    }
    fields.update(overrides)
    return NotificationTask(**fields)


def _make_daemon(statuses, metadata=None, metadata_error=None):
    """Build a daemon whose API returns ``statuses`` in order."""
    api = AsyncMock()
    api.get_status.side_effect = [
        s if isinstance(s, Exception) else StatusResponse(id=JOB_ID, status=s)
        for s in statuses
    ]
    if metadata_error is not None:
        api.get_metadata.side_effect = metadata_error
    else:
        api.get_metadata.return_value = metadata or {"id": JOB_ID, "outputs": {}}

    ledger = InMemoryLedger([
        JobRecord(
            submitted_at=datetime(2024, 5, 1),
            server_url=SERVER,
            job_id=JOB_ID,
            workflow_name="align.wdl",
        )
    ])
    mailer = MagicMock(spec=Mailer)
    daemon = NotificationDaemon(
        poller=StatusPoller(api, ledger, poll_interval=0),
        mailer=mailer,
        scheduler=MagicMock(spec=LocalScheduler),
        dispatcher=MagicMock(spec=RemoteDispatcher),
    )
    return daemon, api, ledger, mailer


class TestWatch:
    """Tests for NotificationDaemon.watch."""

    @pytest.mark.asyncio
    async def test_sends_exactly_one_message(self):
        daemon, api, ledger, mailer = _make_daemon(
            ["Running", "Running", "Succeeded"],
            metadata={"id": JOB_ID, "outputs": {"align.bam": "/data/out.bam"}},
        )

        status = await daemon.watch(_task())

        assert status == JobStatus.SUCCEEDED
        assert mailer.send.call_count == 1
        recipient, subject, body = mailer.send.call_args.args
        assert recipient == "alice@example.org"
        assert subject == f"[flowhut] Workflow {JOB_ID} Succeeded"
        assert "/data/out.bam" in body
        assert ledger.most_recent().last_status == JobStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_metadata_failure_still_notifies(self):
        daemon, api, ledger, mailer = _make_daemon(
            ["Failed"], metadata_error=ApiError("HTTP 500", status_code=500)
        )

        assert await daemon.watch(_task()) == JobStatus.FAILED

        body = mailer.send.call_args.args[2]
        assert "unavailable: HTTP 500" in body

    @pytest.mark.asyncio
    async def test_delivery_error_propagates(self):
        daemon, api, ledger, mailer = _make_daemon(["Aborted"])
        mailer.send.side_effect = DeliveryError("relay refused")

        with pytest.raises(DeliveryError):
            await daemon.watch(_task())

        assert mailer.send.call_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_watch_sends_nothing(self):
        daemon, api, ledger, mailer = _make_daemon([])
        event = asyncio.Event()
        event.set()

        assert await daemon.watch(_task(), shutdown_event=event) is None
        mailer.send.assert_not_called()
        api.get_metadata.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transient_errors_then_terminal(self):
        daemon, api, ledger, mailer = _make_daemon(
            [ApiError("timed out"), ApiError("timed out"), "Succeeded"]
        )

        assert await daemon.watch(_task()) == JobStatus.SUCCEEDED
        assert mailer.send.call_count == 1


class TestRunLocalAndRemote:
    """Tests for the daemon entry points that hand off to workers."""

    def test_run_local_submits_task(self):
        daemon, *_ = _make_daemon([])
        daemon.scheduler.submit.return_value = TaskHandle("t", 99, "t.json", "t.log")

        handle = daemon.run_local(JOB_ID, SERVER, "bob@example.org")

        assert handle.pid == 99
        task = daemon.scheduler.submit.call_args.args[0]
        assert task.job_id == JOB_ID
        assert task.server_url == SERVER
        assert task.recipient == "bob@example.org"

    @pytest.mark.asyncio
    async def test_run_remote_dispatches_task(self):
        daemon, *_ = _make_daemon([])

        await daemon.run_remote("login", JOB_ID, SERVER, "bob@example.org")

        target, task = daemon.dispatcher.dispatch.call_args.args
        assert target == "login"
        assert task.recipient == "bob@example.org"


class TestReport:
    """Tests for report formatting."""

    def test_report_fields(self):
        task = _task()
        body = format_report(
            task,
            JobStatus.SUCCEEDED,
            {"status": "Succeeded"},
            finished_at=datetime(2024, 5, 2, 8, 15, 0),
        )

        assert f"Job id:       {JOB_ID}" in body
        assert f"Server:       {SERVER}" in body
        assert "Status:       Succeeded" in body
        assert "Reported at:  2024-05-02T08:15:00" in body
        assert "Requested by: alice@laptop" in body
        assert '"status": "Succeeded"' in body

    def test_subject(self):
        assert format_subject(_task(), JobStatus.FAILED) == f"[flowhut] Workflow {JOB_ID} Failed"

    def test_task_json_roundtrip_preserves_reference(self):
        task = _task()
        restored = NotificationTask.model_validate_json(task.model_dump_json())

        assert restored == task
        assert restored.reference.job_id == JOB_ID
        assert restored.reference.server_url == SERVER


class TestLocalScheduler:
    """Tests for detached local workers."""

    def test_submit_spawns_detached_worker(self, tmp_path: Path, monkeypatch):
        popen = MagicMock(return_value=MagicMock(pid=4242))
        monkeypatch.setattr("flowhut.notify.scheduler.subprocess.Popen", popen)
        config_path = tmp_path / "flowhut.yaml"
        scheduler = LocalScheduler(tmp_path / "tasks", config_path=config_path, python="/usr/bin/python3")

        handle = scheduler.submit(_task())

        assert handle.pid == 4242
        assert handle.task_id == "abc123def456"
        task_file = tmp_path / "tasks" / "abc123def456.json"
        assert handle.task_file == str(task_file)
        assert json.loads(task_file.read_text())["job_id"] == JOB_ID

        command = popen.call_args.args[0]
        assert command == [
            "/usr/bin/python3", "-m", "flowhut",
            "--config", str(config_path.resolve()),
            "worker", "--task-file", str(task_file),
        ]
        kwargs = popen.call_args.kwargs
        assert kwargs["stdin"] == subprocess.DEVNULL
        assert kwargs["start_new_session"] is True

    def test_spawn_failure(self, tmp_path: Path, monkeypatch):
        popen = MagicMock(side_effect=OSError("no such interpreter"))
        monkeypatch.setattr("flowhut.notify.scheduler.subprocess.Popen", popen)

        with pytest.raises(WorkerSpawnError):
            LocalScheduler(tmp_path / "tasks").submit(_task())

    def test_cancel_sends_sigterm(self, monkeypatch):
        kill = MagicMock()
        monkeypatch.setattr("flowhut.notify.scheduler.os.kill", kill)

        assert LocalScheduler(Path("/tmp")).cancel(TaskHandle("t", 4242, "t.json", "t.log")) is True
        kill.assert_called_once_with(4242, signal.SIGTERM)

    def test_cancel_exited_worker(self, monkeypatch):
        monkeypatch.setattr(
            "flowhut.notify.scheduler.os.kill", MagicMock(side_effect=ProcessLookupError)
        )

        assert LocalScheduler(Path("/tmp")).cancel(TaskHandle("t", 4242, "t.json", "t.log")) is False


def _make_ssh(installed: str = "", launch_output: str = "31337\n", launch_exit: int = 0):
    ssh = MagicMock(spec=SSHClient)
    commands = []

    def run_command(command, timeout=30):
        commands.append(command)
        if command.startswith("command -v"):
            return (installed, "", 0 if installed else 1)
        return (launch_output, "", launch_exit)

    ssh.run_command.side_effect = run_command
    return ssh, commands


def _make_dispatcher(ssh) -> RemoteDispatcher:
    config = FlowHutConfig(
        remote_hosts=[
            RemoteHostConfig(
                name="login",
                ssh=SSHConfig(host="login.example.org", user="alice"),
                python="/opt/python3.12/bin/python3",
                install_dir="flowhut-remote",
            )
        ]
    )
    return RemoteDispatcher(config, client_factory=lambda host: ssh)


class TestRemoteDispatcher:
    """Tests for SSH dispatch of workers."""

    @pytest.mark.asyncio
    async def test_uploads_package_when_missing(self):
        ssh, commands = _make_ssh()

        handle = await _make_dispatcher(ssh).dispatch("login", _task())

        assert handle.pid == 31337
        assert handle.host == "login.example.org"
        assert handle.task_file == "flowhut-remote/tasks/abc123def456.json"
        ssh.upload.assert_awaited_once_with(PACKAGE_DIR, "flowhut-remote/lib/flowhut")

        remote_path, content = ssh.write_file.call_args.args
        assert remote_path == "flowhut-remote/tasks/abc123def456.json"
        assert json.loads(content)["recipient"] == "alice@example.org"

        launch = commands[-1]
        assert launch.startswith("nohup env PYTHONPATH=flowhut-remote/lib")
        assert "/opt/python3.12/bin/python3 -m flowhut worker --task-file" in launch
        assert launch.endswith("& echo $!")

    @pytest.mark.asyncio
    async def test_repeat_upload_replaces_previous_copy(self):
        ssh, commands = _make_ssh()
        commands_before_upload = []
        ssh.upload.side_effect = lambda local, remote: commands_before_upload.append(list(commands))
        dispatcher = _make_dispatcher(ssh)

        await dispatcher.dispatch("login", _task(task_id="first"))
        await dispatcher.dispatch("login", _task(task_id="second"))

        assert [c.args[1] for c in ssh.upload.await_args_list] == [
            "flowhut-remote/lib/flowhut",
            "flowhut-remote/lib/flowhut",
        ]
        for seen in commands_before_upload:
            assert seen[-1] == "rm -rf flowhut-remote/lib/flowhut"

    @pytest.mark.asyncio
    async def test_uses_installed_tool(self):
        ssh, commands = _make_ssh(installed="/usr/local/bin/flowhut\n")

        await _make_dispatcher(ssh).dispatch("login", _task())

        ssh.upload.assert_not_awaited()
        assert commands[-1].startswith("nohup /usr/local/bin/flowhut worker --task-file")

    def test_unconfigured_host_uses_defaults(self):
        dispatcher = _make_dispatcher(MagicMock(spec=SSHClient))

        host = dispatcher.host_config("other.example.org")

        assert host.name == "other.example.org"
        assert host.ssh.host == "other.example.org"

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        ssh, _ = _make_ssh()
        ssh.__aenter__.side_effect = OSError("Connection refused")

        with pytest.raises(RemoteDispatchError):
            await _make_dispatcher(ssh).dispatch("login", _task())

    @pytest.mark.asyncio
    async def test_launch_without_pid(self):
        ssh, _ = _make_ssh(launch_output="nohup: cannot run command\n")

        with pytest.raises(RemoteDispatchError):
            await _make_dispatcher(ssh).dispatch("login", _task())

    @pytest.mark.asyncio
    async def test_launch_nonzero_exit(self):
        ssh, _ = _make_ssh(launch_output="", launch_exit=127)

        with pytest.raises(RemoteDispatchError):
            await _make_dispatcher(ssh).dispatch("login", _task())


class TestSMTPMailer:
    """Tests for SMTP delivery."""

    def test_send(self, monkeypatch):
        smtp = MagicMock()
        smtp.__enter__.return_value = smtp
        smtp_cls = MagicMock(return_value=smtp)
        monkeypatch.setattr("flowhut.notify.mailer.smtplib.SMTP", smtp_cls)
        config = SMTPConfig(
            host="smtp.example.org",
            port=587,
            starttls=True,
            sender="flowhut@example.org",
            username="alice",
            password="secret",
        )

        SMTPMailer(config).send("bob@example.org", "done", "all good")

        smtp_cls.assert_called_once_with("smtp.example.org", 587, timeout=30.0)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("alice", "secret")
        message = smtp.send_message.call_args.args[0]
        assert message["From"] == "flowhut@example.org"
        assert message["To"] == "bob@example.org"
        assert message["Subject"] == "done"
        assert message.get_content().strip() == "all good"

    def test_relay_unreachable(self, monkeypatch):
        monkeypatch.setattr(
            "flowhut.notify.mailer.smtplib.SMTP",
            MagicMock(side_effect=ConnectionRefusedError("refused")),
        )

        with pytest.raises(DeliveryError):
            SMTPMailer(SMTPConfig()).send("bob@example.org", "done", "body")
