"""Client factory for selecting HTTP or in-process backend.

The factory pattern ensures CLI commands never import concrete
implementations directly. The --standalone flag selects the backend.
"""

from src.cli.config import TrackPoolConfig


def daemon_base_url(config: TrackPoolConfig | None) -> str:
    """HTTP base URL of the configured daemon."""
    if config and config.daemon:
        return f"http://{config.daemon.host}:{config.daemon.port}"
    return "http://127.0.0.1:8000"


def get_client(
    standalone: bool = False,
    base_url: str | None = None,
    config: TrackPoolConfig | None = None,
):
    """Create the appropriate TrackPoolClient implementation.

    Args:
        standalone: If True, returns InProcessRunner (works on the local database).
                    If False, returns HttpClient (talks to daemon over HTTP).
        base_url: Custom daemon URL for HTTP mode. Defaults to http://127.0.0.1:8000.
        config: Loaded config for resolving daemon URL and other settings.

    Returns:
        A TrackPoolClient implementation (HttpClient or InProcessRunner).
    """
    if standalone:
        from src.cli.runner import InProcessRunner
        return InProcessRunner(config=config)
    from src.cli.http_client import HttpClient
    return HttpClient(base_url=base_url or daemon_base_url(config))
