"""API routes for the tracking pools.

Summary, paged listing, CSV upload and operator bulk actions. All
endpoints use the /api/v1/trackings prefix.
"""

import logging
from pathlib import PurePath

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from src.api.dependencies import (
    get_audit_service,
    get_import_service,
    get_pool_store,
    get_settings,
)
from src.api.schemas import (
    BulkActionEnum,
    BulkActionRequest,
    BulkActionResponse,
    ImportResultResponse,
    PoolSummaryResponse,
    RowOutcomeResponse,
    TrackingEntryResponse,
    TrackingListResponse,
)
from src.cli.config import TrackPoolConfig
from src.db.connection import get_db
from src.db.models import TrackingClass
from src.errors import ValidationError
from src.services.audit_service import AuditService
from src.services.csv_ingestion import TrackingImportService
from src.services.tracking_pool import DEFAULT_PAGE_SIZE, TrackingPoolStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trackings", tags=["trackings"])

_UPLOAD_CHUNK_BYTES = 64 * 1024


def _parse_class(tracking_class: str) -> TrackingClass:
    try:
        return TrackingClass(tracking_class.upper())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown pool '{tracking_class}'") from None


@router.get("/summary", response_model=list[PoolSummaryResponse])
def pool_summary(store: TrackingPoolStore = Depends(get_pool_store)) -> list[PoolSummaryResponse]:
    """Entry counts per pool."""
    return [
        PoolSummaryResponse(
            tracking_class=s.tracking_class.value,
            total=s.total,
            available=s.available,
            bound=s.bound,
            withdrawn=s.withdrawn,
        )
        for s in store.pool_summary()
    ]


@router.post("/upload", response_model=ImportResultResponse)
async def upload_trackings(
    file: UploadFile = File(...),
    uploaded_by: str = Form(..., min_length=1, max_length=100),
    settings: TrackPoolConfig = Depends(get_settings),
    service: TrackingImportService = Depends(get_import_service),
) -> ImportResultResponse:
    """Import a CSV of tracking numbers.

    Rows are validated individually; rejected rows are reported, not
    fatal. A failure during processing rolls back the whole upload.
    The import itself runs in the threadpool.
    """
    file_name = PurePath(file.filename or "upload.csv").name
    if not file_name.lower().endswith(".csv"):
        raise ValidationError.from_code(
            "E-2004", extension=PurePath(file_name).suffix or "(none)", expected=".csv"
        )

    limit = settings.storage.max_upload_bytes
    chunks: list[bytes] = []
    size = 0
    while chunk := await file.read(_UPLOAD_CHUNK_BYTES):
        size += len(chunk)
        if size > limit:
            raise HTTPException(
                status_code=413,
                detail=ValidationError.from_code("E-2005", size=size, max_size=limit).args[0],
            )
        chunks.append(chunk)

    result = await run_in_threadpool(service.import_csv, b"".join(chunks), file_name, uploaded_by)
    return ImportResultResponse(
        batch_id=result.batch_id,
        file_name=result.file_name,
        log_file=result.log_file,
        total_lines=result.total_lines,
        eg_inserted=result.eg_inserted,
        cg_inserted=result.cg_inserted,
        duplicates=result.duplicates,
        invalid=result.invalid,
        rows=[
            RowOutcomeResponse(
                line=row.line,
                value=row.value,
                verdict=row.verdict.value,
                tracking_class=row.tracking_class.value if row.tracking_class else None,
                code=row.code,
                reason=row.reason,
            )
            for row in result.rows
        ],
    )


@router.get("/{tracking_class}", response_model=TrackingListResponse)
def list_trackings(
    tracking_class: str,
    search: str | None = None,
    order_by: str = "id",
    order: str = "desc",
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store: TrackingPoolStore = Depends(get_pool_store),
) -> TrackingListResponse:
    """List one pool with search, sorting and paging."""
    page = store.list_entries(
        _parse_class(tracking_class),
        search=search,
        order_by=order_by,
        order=order,
        limit=limit,
        offset=offset,
    )
    return TrackingListResponse(
        entries=[TrackingEntryResponse.model_validate(e) for e in page.entries],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.post("/{tracking_class}/bulk", response_model=BulkActionResponse)
def bulk_action(
    tracking_class: str,
    body: BulkActionRequest,
    db: Session = Depends(get_db),
    store: TrackingPoolStore = Depends(get_pool_store),
    audit: AuditService = Depends(get_audit_service),
) -> BulkActionResponse:
    """Delete, withdraw or restore unbound entries. Bound entries are skipped."""
    pool = _parse_class(tracking_class)
    if body.action == BulkActionEnum.delete:
        affected = store.delete_entries(pool, body.ids)
    else:
        affected = store.set_accessibility(
            pool, body.ids, accessible=body.action == BulkActionEnum.make_accessible
        )
    audit.log_pool_admin(body.action.value, pool, body.ids, affected)
    db.commit()
    logger.info(
        "Bulk %s on %s pool: %d of %d entries", body.action.value, pool.value, affected, len(body.ids)
    )
    return BulkActionResponse(action=body.action, requested=len(body.ids), affected=affected)
