"""Database module for TrackPool state management and persistence."""

from src.db.connection import (
    SessionLocal,
    engine,
    get_db,
    get_db_context,
    init_db,
)
from src.db.models import (
    POOL_MODELS,
    Accessibility,
    AuditLog,
    CGTrackingEntry,
    EGTrackingEntry,
    EventType,
    LogLevel,
    TrackingClass,
    UploadBatch,
    UploadStatus,
    pool_model,
)

__all__ = [
    # Models
    "EGTrackingEntry",
    "CGTrackingEntry",
    "UploadBatch",
    "AuditLog",
    "POOL_MODELS",
    "pool_model",
    # Enums
    "TrackingClass",
    "Accessibility",
    "UploadStatus",
    "LogLevel",
    "EventType",
    # Connection
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "init_db",
]
