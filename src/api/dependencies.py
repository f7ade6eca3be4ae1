"""FastAPI dependency providers for configuration and services."""

import os
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from src.cli.config import TrackPoolConfig, get_config
from src.db.connection import get_db
from src.services.assignment_engine import TrackingAssignmentEngine
from src.services.audit_service import AuditService
from src.services.csv_ingestion import TrackingImportService
from src.services.gst_report import GSTReportService
from src.services.order_events import OrderEventHandler
from src.services.order_source import SqlOrderDataSource
from src.services.status_sync import TrackingStatusSync
from src.services.tracking_pool import TrackingPoolStore
from src.services.upload_logs import UploadLogStore


@lru_cache(maxsize=1)
def _load_settings() -> TrackPoolConfig:
    return get_config(os.environ.get("TRACKPOOL_CONFIG_PATH") or None)


def get_settings() -> TrackPoolConfig:
    """Process-wide configuration, loaded once."""
    return _load_settings()


def get_pool_store(db: Session = Depends(get_db)) -> TrackingPoolStore:
    return TrackingPoolStore(db)


def get_log_store(settings: TrackPoolConfig = Depends(get_settings)) -> UploadLogStore:
    return UploadLogStore(settings.storage.resolved_log_dir())


def get_audit_service(
    db: Session = Depends(get_db),
    settings: TrackPoolConfig = Depends(get_settings),
) -> AuditService:
    return AuditService(db, event_log_dir=settings.storage.resolved_log_dir())


def get_import_service(
    db: Session = Depends(get_db),
    log_store: UploadLogStore = Depends(get_log_store),
    audit: AuditService = Depends(get_audit_service),
) -> TrackingImportService:
    return TrackingImportService(db, log_store, audit)


def get_engine(
    db: Session = Depends(get_db),
    settings: TrackPoolConfig = Depends(get_settings),
    audit: AuditService = Depends(get_audit_service),
) -> TrackingAssignmentEngine:
    return TrackingAssignmentEngine(
        db,
        SqlOrderDataSource(db),
        audit=audit,
        weight_threshold_grams=settings.assignment.weight_threshold_grams,
        weight_policy=settings.assignment.weight_policy,
        tracking_url_template=settings.assignment.tracking_url_template,
    )


def get_status_sync(
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
) -> TrackingStatusSync:
    return TrackingStatusSync(db, SqlOrderDataSource(db), audit=audit)


def get_event_handler(
    db: Session = Depends(get_db),
    settings: TrackPoolConfig = Depends(get_settings),
    engine: TrackingAssignmentEngine = Depends(get_engine),
    sync: TrackingStatusSync = Depends(get_status_sync),
) -> OrderEventHandler:
    return OrderEventHandler(
        SqlOrderDataSource(db),
        engine,
        sync,
        ready_status=settings.assignment.ready_status,
    )


def get_gst_service(
    db: Session = Depends(get_db),
    settings: TrackPoolConfig = Depends(get_settings),
) -> GSTReportService:
    return GSTReportService(SqlOrderDataSource(db), settings.storage.resolved_report_dir())
