"""SSH connectivity for remote workers."""

from flowhut.ssh.client import SSHClient

__all__ = ["SSHClient"]
