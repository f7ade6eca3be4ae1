"""Daemon management: start, stop, status.

Wraps uvicorn.run() programmatically with PID file management
for clean start/stop/status lifecycle.
"""

import json
import logging
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PID_FILE = "~/.trackpool/daemon.pid"

_PROCESS_MARKERS = ("trackpool", "uvicorn", "src.api.main")


class JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(
    level: str = "info",
    log_format: str = "text",
    log_file: str | None = None,
) -> None:
    """Configure root logging for the CLI and daemon.

    Args:
        level: Level name (debug, info, warning, error).
        log_format: "text" or "json".
        log_file: Optional file to log to instead of stderr.
    """
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)

    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s:%(name)s:%(message)s"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )


def write_pid_file(pid_file: str, pid: int) -> None:
    """Write the current process PID to a file.

    Args:
        pid_file: Path to PID file. Parent dirs created if needed.
        pid: Process ID to write.
    """
    path = Path(pid_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(str(pid))


def read_pid_file(pid_file: str) -> int | None:
    """Read PID from a file.

    Returns:
        The PID as int, or None if file doesn't exist or is invalid.
    """
    path = Path(pid_file).expanduser()
    if not path.exists():
        return None
    try:
        return int(path.read_text().strip())
    except (ValueError, OSError):
        return None


def remove_pid_file(pid_file: str) -> None:
    """Remove the PID file. No-op if it doesn't exist."""
    Path(pid_file).expanduser().unlink(missing_ok=True)


def is_pid_alive(pid: int) -> bool:
    """Check if a TrackPool daemon with the given PID is running.

    Uses os.kill(pid, 0) for existence check, then verifies the process
    command line names trackpool or uvicorn so a reused PID from an
    unrelated process is not mistaken for the daemon.
    """
    try:
        os.kill(pid, 0)
    except (OSError, ProcessLookupError):
        return False

    try:
        result = subprocess.run(
            ["ps", "-p", str(pid), "-o", "command="],
            capture_output=True, text=True, timeout=2,
        )
    except (OSError, subprocess.SubprocessError):
        # No ps available; existence check only
        return True
    cmdline = result.stdout.strip().lower()
    return any(marker in cmdline for marker in _PROCESS_MARKERS)


def start_daemon(
    host: str = "127.0.0.1",
    port: int = 8000,
    pid_file: str = DEFAULT_PID_FILE,
    log_level: str = "info",
    workers: int = 1,
) -> None:
    """Start the TrackPool daemon using uvicorn.

    Args:
        host: Bind address.
        port: Bind port.
        pid_file: Path to write PID file.
        log_level: Logging level for uvicorn.
        workers: Uvicorn worker processes. Claims are safe across workers.
    """
    import uvicorn

    existing_pid = read_pid_file(pid_file)
    if existing_pid is not None:
        if is_pid_alive(existing_pid):
            logger.error(
                "Daemon already running (PID %d). Use 'trackpool daemon stop' first.",
                existing_pid,
            )
            sys.exit(1)
        logger.warning("Removing stale PID file (PID %d no longer running)", existing_pid)
        remove_pid_file(pid_file)

    write_pid_file(pid_file, os.getpid())
    logger.info("Daemon starting on %s:%d (PID %d)", host, port, os.getpid())

    try:
        uvicorn.run(
            "src.api.main:app",
            host=host,
            port=port,
            workers=workers,
            log_level=log_level,
            lifespan="on",
        )
    finally:
        remove_pid_file(pid_file)


def stop_daemon(pid_file: str = DEFAULT_PID_FILE) -> bool:
    """Stop the TrackPool daemon by sending SIGTERM.

    Returns:
        True if signal was sent successfully, False if daemon not running.
    """
    pid = read_pid_file(pid_file)
    if pid is None:
        logger.info("No PID file found; daemon may not be running")
        return False

    if not is_pid_alive(pid):
        logger.warning("PID %d not running, cleaning up stale PID file", pid)
        remove_pid_file(pid_file)
        return False

    logger.info("Sending SIGTERM to daemon (PID %d)", pid)
    os.kill(pid, signal.SIGTERM)

    # Wait up to 10s for exit before removing the PID file
    for _ in range(20):
        time.sleep(0.5)
        try:
            os.kill(pid, 0)
        except (OSError, ProcessLookupError):
            break

    remove_pid_file(pid_file)
    return True


def daemon_status(
    pid_file: str = DEFAULT_PID_FILE,
    base_url: str = "http://127.0.0.1:8000",
) -> dict:
    """Check daemon status.

    Returns:
        Dict with pid, alive, healthy keys.
    """
    pid = read_pid_file(pid_file)
    alive = pid is not None and is_pid_alive(pid)

    result = {"pid": pid, "alive": alive, "healthy": False}

    if alive:
        import httpx

        try:
            resp = httpx.get(f"{base_url}/health", timeout=5.0)
            result["healthy"] = resp.status_code == 200
        except httpx.HTTPError as exc:
            logger.debug("Daemon health probe failed: %s", exc)

    return result
