"""Async SSH client used to dispatch notification workers to other hosts."""

import asyncio
import logging
from pathlib import Path

import asyncssh

logger = logging.getLogger(__name__)


class SSHClient:
    """Manages one SSH connection for commands and SFTP transfers."""

    def __init__(
        self,
        host: str,
        user: str | None,
        key_path: Path,
        port: int = 22,
        cert_path: Path | None = None,
        known_hosts: Path | None = None,
    ) -> None:
        self.host = host
        self.user = user
        self.key_path = key_path
        self.port = port
        self.cert_path = cert_path
        self.known_hosts = known_hosts
        self._connection: asyncssh.SSHClientConnection | None = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """Check if the connection is active."""
        return self._connection is not None and not self._connection.is_closed()

    async def connect(self, timeout: int = 15) -> None:
        """Establish SSH connection.

        Args:
            timeout: Connection timeout in seconds (default 15).
        """
        async with self._lock:
            if self.is_connected:
                return

            logger.info(f"Connecting to {self.user or ''}@{self.host}:{self.port}")

            if self.cert_path is not None:
                client_keys = [(str(self.key_path), str(self.cert_path))]
            else:
                client_keys = [str(self.key_path)]

            try:
                self._connection = await asyncio.wait_for(
                    asyncssh.connect(
                        host=self.host,
                        port=self.port,
                        username=self.user,
                        client_keys=client_keys,
                        # None disables host key validation
                        known_hosts=self.known_hosts,
                        password=None,
                        preferred_auth=["publickey"],
                    ),
                    timeout=timeout,
                )
                logger.info(f"Connected to {self.host}")
            except asyncio.TimeoutError:
                logger.error(f"SSH connection timed out after {timeout}s")
                raise RuntimeError(f"SSH connection timed out after {timeout}s")
            except (asyncssh.Error, OSError) as e:
                logger.error(f"SSH connection failed: {e}")
                raise

    async def disconnect(self) -> None:
        """Close the SSH connection."""
        async with self._lock:
            if self._connection is not None:
                self._connection.close()
                await self._connection.wait_closed()
                self._connection = None
                logger.info(f"Disconnected from {self.host}")

    async def _ensure_connection(self) -> asyncssh.SSHClientConnection:
        if not self.is_connected:
            await self.connect()
        if self._connection is None:
            raise RuntimeError("Failed to establish SSH connection")
        return self._connection

    async def run_command(self, command: str, timeout: int = 30) -> tuple[str, str, int]:
        """Run a shell command and return ``(stdout, stderr, exit_code)``.

        A non-zero exit code is returned, not raised.
        """
        connection = await self._ensure_connection()

        try:
            result = await asyncio.wait_for(
                connection.run(command, check=False),
                timeout=timeout,
            )
            return (
                str(result.stdout or ""),
                str(result.stderr or ""),
                result.exit_status or 0,
            )
        except asyncio.TimeoutError:
            logger.error(f"Command timed out after {timeout}s: {command[:50]}...")
            raise RuntimeError(f"Command timed out after {timeout}s")
        except asyncssh.Error as e:
            logger.error(f"Command execution failed: {e}")
            self._connection = None
            raise

    @staticmethod
    async def _make_parent(sftp: asyncssh.SFTPClient, remote_path: str) -> None:
        parent = remote_path.rsplit("/", 1)[0] if "/" in remote_path else ""
        if parent:
            await sftp.makedirs(parent, exist_ok=True)

    async def upload(self, local_path: Path, remote_path: str) -> None:
        """Copy a local file or directory tree to the remote host over SFTP.

        Relative remote paths are relative to the remote home directory.
        """
        connection = await self._ensure_connection()
        async with connection.start_sftp_client() as sftp:
            await self._make_parent(sftp, remote_path)
            await sftp.put(str(local_path), remote_path, recurse=local_path.is_dir())
        logger.debug(f"Uploaded {local_path} to {self.host}:{remote_path}")

    async def write_file(self, remote_path: str, content: str) -> None:
        """Write text content to a remote file over SFTP."""
        connection = await self._ensure_connection()
        async with connection.start_sftp_client() as sftp:
            await self._make_parent(sftp, remote_path)
            async with sftp.open(remote_path, "w") as f:
                await f.write(content)
        logger.debug(f"Wrote {len(content)} bytes to {self.host}:{remote_path}")

    async def __aenter__(self) -> "SSHClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.disconnect()
