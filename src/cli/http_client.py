"""HTTP client implementation of TrackPoolClient.

Thin wrapper around httpx that talks to the TrackPool daemon API.
All methods map to existing REST endpoints. Error responses raise
TrackPoolClientError, never typer.Exit, so the client is reusable
for scripts, tests, and non-CLI consumers.
"""

import logging
import os
from pathlib import Path

import httpx

from src.cli.protocol import (
    AssignOutcome,
    HealthStatus,
    ImportSummary,
    PoolCounts,
    ReportOutcome,
    TrackingPage,
    TrackingRow,
    TrackPoolClientError,
    UploadLogEntry,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class HttpClient:
    """TrackPoolClient implementation that talks to the daemon over HTTP."""

    def __init__(self, base_url: str = "http://127.0.0.1:8000", transport=None):
        """Initialize with daemon base URL.

        Args:
            base_url: The daemon's HTTP base URL.
            transport: Optional httpx transport, used by tests.
        """
        self._base_url = base_url
        self._transport = transport
        self._client = None
        self._api_key = os.environ.get("TRACKPOOL_API_KEY", "").strip()

    async def __aenter__(self):
        """Open httpx async client."""
        headers = {}
        if self._api_key:
            headers["X-API-Key"] = self._api_key
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=30.0,
            headers=headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Close httpx async client."""
        if self._client:
            await self._client.aclose()

    def _raise_for_status(self, resp) -> None:
        """Raise TrackPoolClientError on non-2xx responses.

        Domain errors carry ``message`` and ``error_code``; framework
        errors carry ``detail``.

        Raises:
            TrackPoolClientError: On non-2xx status codes.
        """
        if resp.status_code < 400:
            return
        error_code = None
        try:
            body = resp.json()
            error_code = body.get("error_code")
            message = body.get("message") or body.get("detail") or resp.text
        except (ValueError, AttributeError):
            message = resp.text
        raise TrackPoolClientError(
            message=str(message),
            status_code=resp.status_code,
            error_code=error_code,
        )

    async def pool_summary(self) -> list[PoolCounts]:
        resp = await self._client.get(f"{API_PREFIX}/trackings/summary")
        self._raise_for_status(resp)
        return [PoolCounts.from_api(item) for item in resp.json()]

    async def list_entries(
        self,
        tracking_class: str,
        search: str | None = None,
        order_by: str = "id",
        order: str = "desc",
        limit: int = 20,
        offset: int = 0,
    ) -> TrackingPage:
        """List a pool via GET /api/v1/trackings/{class}."""
        params = {"order_by": order_by, "order": order, "limit": limit, "offset": offset}
        if search:
            params["search"] = search
        resp = await self._client.get(
            f"{API_PREFIX}/trackings/{tracking_class}", params=params
        )
        self._raise_for_status(resp)
        data = resp.json()
        return TrackingPage(
            rows=[TrackingRow.from_api(e) for e in data.get("entries", [])],
            total=data.get("total", 0),
            limit=data.get("limit", limit),
            offset=data.get("offset", offset),
        )

    async def bulk_action(self, tracking_class: str, action: str, ids: list[int]) -> int:
        resp = await self._client.post(
            f"{API_PREFIX}/trackings/{tracking_class}/bulk",
            json={"action": action, "ids": ids},
        )
        self._raise_for_status(resp)
        return resp.json().get("affected", 0)

    async def import_file(self, file_path: str, uploaded_by: str) -> ImportSummary:
        """Upload via POST /api/v1/trackings/upload (multipart)."""
        path = Path(file_path)
        with open(path, "rb") as f:
            resp = await self._client.post(
                f"{API_PREFIX}/trackings/upload",
                files={"file": (path.name, f, "text/csv")},
                data={"uploaded_by": uploaded_by},
            )
        self._raise_for_status(resp)
        return ImportSummary.from_api(resp.json())

    async def assign(self, order_id: str) -> AssignOutcome:
        resp = await self._client.post(f"{API_PREFIX}/orders/{order_id}/assign")
        self._raise_for_status(resp)
        return AssignOutcome.from_api(resp.json())

    async def status_changed(
        self, order_id: str, to_status: str, from_status: str | None = None
    ) -> AssignOutcome:
        resp = await self._client.post(
            f"{API_PREFIX}/orders/{order_id}/events/status-changed",
            json={"from_status": from_status, "to_status": to_status},
        )
        self._raise_for_status(resp)
        return AssignOutcome.from_api(resp.json())

    async def list_upload_logs(self) -> list[UploadLogEntry]:
        resp = await self._client.get(f"{API_PREFIX}/upload-logs")
        self._raise_for_status(resp)
        return [
            UploadLogEntry(
                name=item["name"],
                size=item.get("size", 0),
                modified_at=item.get("modified_at", ""),
            )
            for item in resp.json()
        ]

    async def read_upload_log(self, name: str) -> str:
        resp = await self._client.get(f"{API_PREFIX}/upload-logs/{name}")
        self._raise_for_status(resp)
        return resp.text

    async def generate_gst_report(
        self, file_path: str, output_path: str | None = None
    ) -> ReportOutcome:
        """Generate via POST /api/v1/reports/gst, then download if asked."""
        path = Path(file_path)
        with open(path, "rb") as f:
            resp = await self._client.post(
                f"{API_PREFIX}/reports/gst",
                files={"file": (path.name, f)},
            )
        self._raise_for_status(resp)
        data = resp.json()
        outcome = ReportOutcome(
            report_id=data["report_id"],
            rows_written=data.get("rows_written", 0),
            skipped=data.get("skipped", 0),
        )
        if output_path:
            resp = await self._client.get(f"{API_PREFIX}/reports/gst/{outcome.report_id}")
            self._raise_for_status(resp)
            target = Path(output_path).expanduser()
            target.write_bytes(resp.content)
            outcome.saved_to = str(target)
        return outcome

    async def health(self) -> HealthStatus:
        """Check health via GET /health.

        Returns:
            HealthStatus; unreachable daemons report healthy=False.
        """
        try:
            resp = await self._client.get("/health")
            if resp.status_code == 200:
                data = resp.json()
                return HealthStatus(
                    healthy=data.get("status") == "healthy",
                    version=data.get("version", "unknown"),
                    uptime_seconds=data.get("uptime_seconds", 0),
                    available=data.get("available", {}),
                )
            logger.debug("Health check returned HTTP %s", resp.status_code)
        except (httpx.TransportError, OSError) as exc:
            logger.debug("Daemon unreachable: %s", exc)
        except Exception as exc:
            logger.warning("Health check failed unexpectedly: %s", exc, exc_info=True)
        return HealthStatus(healthy=False, version="unknown", uptime_seconds=0)
