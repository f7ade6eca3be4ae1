"""FastAPI routes for GST reports."""

import os
import shutil
import tempfile
from pathlib import PurePath

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse

from src.api.dependencies import get_gst_service
from src.api.schemas import GSTReportResponse
from src.errors import ValidationError
from src.services.gst_report import SUPPORTED_EXTENSIONS, GSTReportService

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("/gst", response_model=GSTReportResponse)
def generate_gst_report(
    file: UploadFile = File(...),
    service: GSTReportService = Depends(get_gst_service),
) -> GSTReportResponse:
    """Build a GST report from a CSV or XLSX list of article numbers."""
    suffix = PurePath(file.filename or "").suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise ValidationError.from_code(
            "E-2004", extension=suffix or "(none)", expected=" or ".join(SUPPORTED_EXTENSIONS)
        )

    fd, tmp_name = tempfile.mkstemp(suffix=suffix, prefix="gst_upload_")
    try:
        with os.fdopen(fd, "wb") as out:
            shutil.copyfileobj(file.file, out)
        report = service.generate(tmp_name)
    finally:
        os.unlink(tmp_name)

    return GSTReportResponse(
        report_id=report.report_id,
        rows_written=report.rows_written,
        skipped=report.skipped,
    )


@router.get("/gst/{report_id}", response_class=FileResponse)
def download_gst_report(
    report_id: str,
    service: GSTReportService = Depends(get_gst_service),
) -> FileResponse:
    path = service.report_path(report_id)
    return FileResponse(path, media_type="text/csv", filename=path.name)
