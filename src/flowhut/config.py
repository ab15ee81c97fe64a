"""Configuration management - supports YAML config and environment fallback."""

import logging
from pathlib import Path

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from flowhut.config_schema import FlowHutConfig, GlobalSettings, SMTPConfig

logger = logging.getLogger(__name__)

# Default config file locations (in priority order)
DEFAULT_CONFIG_PATHS = [
    Path("./flowhut.yaml"),
    Path("./flowhut.yml"),
    Path("~/.config/flowhut/flowhut.yaml"),
]


class EnvSettings(BaseSettings):
    """Settings loaded from FLOWHUT_* environment variables or a .env file.

    Used when no YAML config is found.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLOWHUT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    server_url: str = Field(
        default="http://localhost:8000",
        description="Default workflow server URL",
    )
    poll_interval: int = Field(
        default=10,
        ge=1,
        description="Interval in seconds between job status polls",
    )
    state_dir: Path = Field(
        default=Path("~/.flowhut"),
        description="Directory holding the ledger and job cache",
    )
    default_recipient: str | None = Field(
        default=None,
        description="Default notification recipient",
    )
    smtp_host: str = Field(default="localhost", description="SMTP server hostname")
    smtp_port: int = Field(default=25, description="SMTP server port")


def find_config_file(config_path: Path | None = None) -> Path | None:
    """Find the configuration file.

    Args:
        config_path: Explicit path to config file. If provided, must exist.

    Returns:
        Path to config file, or None if not found.

    Raises:
        FileNotFoundError: If explicit config_path is provided but doesn't exist.
    """
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return config_path

    for path in DEFAULT_CONFIG_PATHS:
        path = path.expanduser()
        if path.exists():
            return path

    return None


def load_yaml_config(config_path: Path) -> FlowHutConfig:
    """Load and validate YAML configuration.

    Raises:
        ValidationError: If the YAML doesn't match the schema.
        yaml.YAMLError: If the YAML is malformed.
    """
    logger.info(f"Loading configuration from {config_path}")

    with open(config_path) as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}

    return FlowHutConfig.model_validate(raw_config)


def load_env_config() -> FlowHutConfig:
    """Build configuration from FLOWHUT_* environment variables."""
    env = EnvSettings()

    settings = GlobalSettings(
        server_url=env.server_url,
        poll_interval=env.poll_interval,
        state_dir=env.state_dir,
        default_recipient=env.default_recipient,
    )
    smtp = SMTPConfig(host=env.smtp_host, port=env.smtp_port)

    return FlowHutConfig(settings=settings, smtp=smtp)


def load_config(config_path: Path | None = None) -> FlowHutConfig:
    """Load application configuration.

    Priority:
    1. Explicit config_path argument
    2. ./flowhut.yaml, ./flowhut.yml, ~/.config/flowhut/flowhut.yaml
    3. FLOWHUT_* environment variables / .env file

    Raises:
        FileNotFoundError: If explicit config_path doesn't exist.
        ValidationError: If config is invalid.
    """
    yaml_path = find_config_file(config_path)

    if yaml_path is not None:
        return load_yaml_config(yaml_path)

    logger.debug("No YAML configuration found, using environment settings")
    return load_env_config()
