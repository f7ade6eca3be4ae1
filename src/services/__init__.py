"""Service layer for TrackPool.

Provides the tracking pool store, CSV ingestion, assignment, status
sync, order event handling, upload logs, GST reports and audit logging.
"""

from src.services.assignment_engine import (
    AssignmentResult,
    OrderTracking,
    TrackingAssignmentEngine,
    WeightPolicy,
)
from src.services.audit_service import AuditService, EventType, LogLevel
from src.services.csv_ingestion import ImportResult, TrackingImportService
from src.services.gst_report import GSTReportService
from src.services.order_events import OrderEventHandler, OrderEventOutcome
from src.services.order_source import OrderDataSource, SqlOrderDataSource
from src.services.status_sync import TrackingStatusSync
from src.services.tracking_pool import TrackingPoolStore
from src.services.upload_logs import UploadLogStore

__all__ = [
    "TrackingPoolStore",
    "TrackingImportService",
    "ImportResult",
    "TrackingAssignmentEngine",
    "AssignmentResult",
    "OrderTracking",
    "WeightPolicy",
    "TrackingStatusSync",
    "OrderEventHandler",
    "OrderEventOutcome",
    "OrderDataSource",
    "SqlOrderDataSource",
    "UploadLogStore",
    "GSTReportService",
    "AuditService",
    "LogLevel",
    "EventType",
]
