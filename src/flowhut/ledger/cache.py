"""Directory-per-job cache for submitted artifacts and fetched metadata."""

import json
import logging
import re
import shutil
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


class JobCache:
    """Manages per-job cache folders.

    Storage layout:
        <base_dir>/
          <server-host-label>/
            <job-id>/
              <copied workflow files>
              metadata.json
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir

    @staticmethod
    def server_label(server_url: str) -> str:
        """Return a directory-safe label for a server URL (host, plus port when set)."""
        parts = urlsplit(server_url if "://" in server_url else f"//{server_url}")
        label = parts.hostname or server_url
        if parts.port:
            label = f"{label}_{parts.port}"
        return re.sub(r"[^A-Za-z0-9._-]", "_", label)

    def job_dir(self, server_url: str, job_id: str) -> Path:
        return self.base_dir / self.server_label(server_url) / job_id

    def store_files(self, server_url: str, job_id: str, files: list[Path]) -> Path:
        """Copy submitted files into the job folder."""
        target = self.job_dir(server_url, job_id)
        target.mkdir(parents=True, exist_ok=True)
        for path in files:
            shutil.copy2(path, target / path.name)
        logger.debug(f"Copied {len(files)} files to {target}")
        return target

    def store_metadata(self, server_url: str, job_id: str, metadata: dict[str, Any]) -> Path:
        """Write fetched metadata next to the submitted files."""
        target = self.job_dir(server_url, job_id)
        target.mkdir(parents=True, exist_ok=True)
        path = target / "metadata.json"
        temp_path = target / "metadata.json.tmp"
        with open(temp_path, "w") as f:
            json.dump(metadata, f, indent=2)
        temp_path.rename(path)
        return path
