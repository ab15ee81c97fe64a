"""Dispatch of notification workers to other hosts over SSH."""

import logging
import shlex
from pathlib import Path
from typing import Callable

import asyncssh

from flowhut.config_schema import FlowHutConfig, RemoteHostConfig, SSHConfig
from flowhut.errors import RemoteDispatchError
from flowhut.notify.models import NotificationTask, RemoteTaskHandle
from flowhut.ssh.client import SSHClient

logger = logging.getLogger(__name__)

# Root of the installed package, uploaded when the remote host lacks flowhut
PACKAGE_DIR = Path(__file__).resolve().parent.parent


def default_client_factory(host: RemoteHostConfig) -> SSHClient:
    return SSHClient(
        host=host.ssh.host,
        user=host.ssh.user,
        key_path=host.ssh.key_path_resolved,
        port=host.ssh.port,
        cert_path=host.ssh.cert_path_resolved,
        known_hosts=host.ssh.known_hosts_resolved,
    )


class RemoteDispatcher:
    """Starts notification workers on remote hosts.

    The job parameters travel as a JSON task file uploaded over SFTP; the
    remote shell only starts ``flowhut worker --task-file <path>``. Once the
    worker is running the initiator has no further control over it.
    """

    def __init__(
        self,
        config: FlowHutConfig,
        client_factory: Callable[[RemoteHostConfig], SSHClient] = default_client_factory,
    ) -> None:
        self.config = config
        self.client_factory = client_factory

    def host_config(self, target_host: str) -> RemoteHostConfig:
        """Look up a configured host by name, or build one for a bare hostname."""
        configured = self.config.get_remote_host(target_host)
        if configured is not None:
            return configured
        return RemoteHostConfig(name=target_host, ssh=SSHConfig(host=target_host))

    async def copy_tool(self, ssh: SSHClient, host: RemoteHostConfig) -> str:
        """Make flowhut runnable on the host and return the launcher command."""
        stdout, _, exit_code = await ssh.run_command("command -v flowhut")
        installed = stdout.strip()
        if exit_code == 0 and installed:
            logger.info(f"Using installed flowhut on {host.name}: {installed}")
            return shlex.quote(installed)

        lib_dir = f"{host.install_dir}/lib"
        target = f"{lib_dir}/flowhut"
        logger.info(f"Uploading flowhut to {host.name}:{target}")
        # put() nests into an existing directory instead of replacing it
        await ssh.run_command(f"rm -rf {shlex.quote(target)}")
        await ssh.upload(PACKAGE_DIR, target)
        return f'env PYTHONPATH={shlex.quote(lib_dir)}:"$PYTHONPATH" {shlex.quote(host.python)} -m flowhut'

    async def invoke(
        self,
        ssh: SSHClient,
        host: RemoteHostConfig,
        launcher: str,
        task: NotificationTask,
    ) -> int:
        """Upload the task message and start a detached worker; return its pid."""
        task_file = f"{host.install_dir}/tasks/{task.task_id}.json"
        log_file = f"{host.install_dir}/tasks/{task.task_id}.log"
        await ssh.write_file(task_file, task.model_dump_json(indent=2))

        command = (
            f"nohup {launcher} worker --task-file {shlex.quote(task_file)} "
            f"> {shlex.quote(log_file)} 2>&1 < /dev/null & echo $!"
        )
        stdout, stderr, exit_code = await ssh.run_command(command)
        if exit_code != 0:
            raise RemoteDispatchError(
                f"Worker launch on {host.name} exited with {exit_code}: {stderr.strip()}"
            )
        try:
            return int(stdout.strip().splitlines()[-1])
        except (IndexError, ValueError) as e:
            raise RemoteDispatchError(
                f"Worker launch on {host.name} returned no pid: {stdout!r}"
            ) from e

    async def dispatch(self, target_host: str, task: NotificationTask) -> RemoteTaskHandle:
        """Start a worker for ``task`` on ``target_host`` without waiting for it.

        Raises:
            RemoteDispatchError: Connecting, uploading or launching failed.
        """
        host = self.host_config(target_host)
        ssh = self.client_factory(host)
        try:
            async with ssh:
                launcher = await self.copy_tool(ssh, host)
                pid = await self.invoke(ssh, host, launcher, task)
        except RemoteDispatchError:
            raise
        except (asyncssh.Error, OSError, RuntimeError) as e:
            raise RemoteDispatchError(f"Cannot dispatch to {target_host}: {e}") from e

        logger.info(f"Started worker {pid} on {host.name} for job {task.job_id}")
        return RemoteTaskHandle(
            task_id=task.task_id,
            host=host.ssh.host,
            pid=pid,
            task_file=f"{host.install_dir}/tasks/{task.task_id}.json",
        )
