"""Error handling framework for TrackPool.

This package provides:
- Error code registry with E-XXXX format codes
- Error formatting and grouping utilities
- Typed domain exceptions mapped to HTTP statuses by the API

Error categories:
- E-1xxx: Uploaded data errors
- E-2xxx: Validation errors
- E-3xxx: Tracking pool errors
- E-4xxx: System/internal errors
"""

from src.errors.registry import (
    ErrorCategory,
    ErrorCode,
    ERROR_REGISTRY,
    get_error,
    get_errors_by_category,
)
from src.errors.formatter import (
    TrackPoolError,
    format_error,
    format_error_summary,
    group_errors,
)
from src.errors.domain import (
    ClaimContentionError,
    ConflictError,
    DomainError,
    IngestionAbortedError,
    NoAvailableTrackingNumberError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Formatter
    "TrackPoolError",
    "format_error",
    "group_errors",
    "format_error_summary",
    # Domain
    "DomainError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "NoAvailableTrackingNumberError",
    "ClaimContentionError",
    "IngestionAbortedError",
]
