"""FastAPI routes for browsing upload logs."""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from src.api.dependencies import get_log_store
from src.api.schemas import UploadLogResponse
from src.services.upload_logs import UploadLogStore

router = APIRouter(prefix="/upload-logs", tags=["upload-logs"])


@router.get("", response_model=list[UploadLogResponse])
def list_upload_logs(store: UploadLogStore = Depends(get_log_store)) -> list[UploadLogResponse]:
    """List upload logs, newest first."""
    return [
        UploadLogResponse(name=info.name, size=info.size, modified_at=info.modified_at)
        for info in store.list_logs()
    ]


@router.get("/{name}", response_class=PlainTextResponse)
def read_upload_log(name: str, store: UploadLogStore = Depends(get_log_store)) -> PlainTextResponse:
    """Return one log as plain text.

    Names that could escape the log directory are rejected with 400.
    """
    return PlainTextResponse(store.read(name))
