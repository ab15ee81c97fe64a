"""Pydantic models for YAML configuration schema."""

from pathlib import Path

from pydantic import BaseModel, Field


class SSHConfig(BaseModel):
    """SSH connection configuration."""

    host: str = Field(description="Hostname of the remote machine")
    port: int = Field(default=22, description="SSH port")
    user: str | None = Field(
        default=None,
        description="SSH username (None for the local user name)",
    )
    key_path: Path = Field(
        default=Path("~/.ssh/id_rsa"),
        description="Path to SSH private key",
    )
    cert_path: Path | None = Field(
        default=None,
        description="Path to SSH certificate (for certificate-based auth)",
    )
    known_hosts: Path | None = Field(
        default=None,
        description="Path to known_hosts file (None to disable host key checking)",
    )

    @property
    def key_path_resolved(self) -> Path:
        """Return the resolved SSH key path with ~ expansion."""
        return self.key_path.expanduser()

    @property
    def cert_path_resolved(self) -> Path | None:
        """Return the resolved certificate path with ~ expansion."""
        return self.cert_path.expanduser() if self.cert_path else None

    @property
    def known_hosts_resolved(self) -> Path | None:
        """Return the resolved known_hosts path with ~ expansion."""
        return self.known_hosts.expanduser() if self.known_hosts else None


class RemoteHostConfig(BaseModel):
    """A host that can run notification workers."""

    name: str = Field(description="Unique identifier for this host")
    ssh: SSHConfig = Field(description="SSH connection settings")
    python: str = Field(
        default="python3",
        description="Python interpreter used when flowhut is not installed on the host",
    )
    install_dir: str = Field(
        default=".cache/flowhut/remote",
        description="Directory (relative to the remote home) for the uploaded tool and task files",
    )


class SMTPConfig(BaseModel):
    """Outgoing mail settings for notifications."""

    host: str = Field(default="localhost", description="SMTP server hostname")
    port: int = Field(default=25, description="SMTP server port")
    sender: str | None = Field(
        default=None,
        description="From address (None for flowhut@<local fqdn>)",
    )
    starttls: bool = Field(default=False, description="Upgrade the connection with STARTTLS")
    username: str | None = Field(default=None, description="SMTP login user")
    password: str | None = Field(default=None, description="SMTP login password")
    timeout: float = Field(default=30.0, gt=0, description="SMTP socket timeout in seconds")


class GlobalSettings(BaseModel):
    """Global application settings."""

    server_url: str = Field(
        default="http://localhost:8000",
        description="Workflow server used when a job is not in the ledger",
    )
    poll_interval: int = Field(
        default=10,
        ge=1,
        description="Interval in seconds between job status polls",
    )
    request_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Read timeout in seconds for workflow server requests",
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Connect timeout in seconds for workflow server requests",
    )
    state_dir: Path = Field(
        default=Path("~/.flowhut"),
        description="Directory holding the ledger, job cache and task spool",
    )
    default_recipient: str | None = Field(
        default=None,
        description="Notification recipient used when none is given",
    )

    @property
    def state_dir_resolved(self) -> Path:
        """Return the resolved state directory with ~ expansion."""
        return self.state_dir.expanduser()


class FlowHutConfig(BaseModel):
    """Root configuration model for flowhut.yaml."""

    settings: GlobalSettings = Field(
        default_factory=GlobalSettings,
        description="Global application settings",
    )
    smtp: SMTPConfig = Field(
        default_factory=SMTPConfig,
        description="Mail settings for notifications",
    )
    remote_hosts: list[RemoteHostConfig] = Field(
        default_factory=list,
        description="Hosts that can run notification workers over SSH",
    )

    def get_remote_host(self, name: str) -> RemoteHostConfig | None:
        """Get a remote host by name."""
        for host in self.remote_hosts:
            if host.name == name:
                return host
        return None
