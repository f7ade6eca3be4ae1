"""Filesystem store for CSV upload logs.

Each ingestion attempt writes one plain-text log named
tracking_upload_YYYY-MM-DD_HH-MM-SS.log (with a _n suffix when two
uploads land in the same second). Reads only accept bare *.log names
that resolve inside the log directory.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from src.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

LOG_PREFIX = "tracking_upload_"
LOG_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+\.log$")


@dataclass
class UploadLogInfo:
    """Listing entry for one upload log."""

    name: str
    size: int
    modified_at: str


class UploadLogStore:
    """Read and write upload logs in a single directory."""

    def __init__(self, log_dir: str | Path) -> None:
        self.log_dir = Path(log_dir)

    def new_log_name(self, now: datetime | None = None) -> str:
        """Reserve a log file name for an upload starting now.

        The name is claimed by creating an empty file exclusively, so two
        uploads in the same second never share a log.
        """
        stamp = (now or datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")
        self.log_dir.mkdir(parents=True, exist_ok=True)
        name = f"{LOG_PREFIX}{stamp}.log"
        n = 1
        while True:
            try:
                with open(self.log_dir / name, "x", encoding="utf-8"):
                    return name
            except FileExistsError:
                name = f"{LOG_PREFIX}{stamp}_{n}.log"
                n += 1

    def _resolve(self, name: str) -> Path:
        if not name or not LOG_NAME_PATTERN.match(name) or name.startswith("."):
            raise ValidationError(f"Invalid log name '{name}'")
        base = self.log_dir.resolve()
        path = (base / name).resolve()
        if path.parent != base:
            raise ValidationError(f"Invalid log name '{name}'")
        return path

    def write(self, name: str, content: str) -> Path:
        """Write a log file, replacing any file of the same name."""
        path = self._resolve(name)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.debug("Wrote upload log %s (%d bytes)", name, len(content))
        return path

    def list_logs(self) -> list[UploadLogInfo]:
        """List upload logs newest first. Other *.log files in the directory are skipped."""
        if not self.log_dir.is_dir():
            return []
        infos = []
        for path in self.log_dir.glob(f"{LOG_PREFIX}*.log"):
            if not path.is_file():
                continue
            stat = path.stat()
            infos.append(
                UploadLogInfo(
                    name=path.name,
                    size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime).isoformat(timespec="seconds"),
                )
            )
        infos.sort(key=lambda info: (info.modified_at, info.name), reverse=True)
        return infos

    def read(self, name: str) -> str:
        """Return a log's text.

        Raises:
            ValidationError: The name is not a bare *.log file name.
            NotFoundError: No such log.
        """
        path = self._resolve(name)
        if not path.is_file():
            raise NotFoundError("Upload log", name)
        return path.read_text(encoding="utf-8")
