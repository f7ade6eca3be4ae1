"""Error code registry with E-XXXX format codes.

This module defines the error code system for TrackPool, organizing errors
into categories:
- E-1xxx: Uploaded data errors
- E-2xxx: Validation errors
- E-3xxx: Tracking pool errors
- E-4xxx: System/internal errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    DATA = "data"  # E-1xxx: Uploaded data errors
    VALIDATION = "validation"  # E-2xxx: Validation errors
    POOL = "pool"  # E-3xxx: Tracking pool errors
    SYSTEM = "system"  # E-4xxx: System/internal errors


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str  # E-XXXX format
    category: ErrorCategory
    title: str  # Short title for display
    message_template: str  # Message with {placeholders}
    remediation: str  # Action user should take
    is_retryable: bool = False  # Can be retried without user action


# Error registry - all defined error codes
ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Data errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.DATA,
        title="Empty Tracking Number",
        message_template="Empty tracking number",
        remediation="Remove blank rows or fill in the tracking number and upload again.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.DATA,
        title="Empty File",
        message_template="No rows found in '{file_name}'.",
        remediation="Check that the file contains one tracking number per row.",
    ),
    "E-1003": ErrorCode(
        code="E-1003",
        category=ErrorCategory.DATA,
        title="Missing Column",
        message_template="Required column '{column}' not found in the header row.",
        remediation="Add the column header to the first row of the file and retry.",
    ),
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Invalid Tracking Number Format",
        message_template="Invalid format (should be like EG123456IN or CG123456IN)",
        remediation="Tracking numbers are two capital letters, digits, then 'IN'. Correct and retry.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Duplicate Tracking Number",
        message_template="Duplicate (already exists in database)",
        remediation="No action needed. The existing entry was kept.",
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.VALIDATION,
        title="Unknown Tracking Prefix",
        message_template="Unknown prefix (not EG or CG)",
        remediation="Only EG (light parcel) and CG (heavy parcel) numbers can be pooled.",
    ),
    "E-2004": ErrorCode(
        code="E-2004",
        category=ErrorCategory.VALIDATION,
        title="Unsupported File Type",
        message_template="Unsupported file type '{extension}'. Expected {expected}.",
        remediation="Save the file in a supported format and upload again.",
    ),
    "E-2005": ErrorCode(
        code="E-2005",
        category=ErrorCategory.VALIDATION,
        title="File Too Large",
        message_template="Upload is {size} bytes, larger than the {max_size} byte limit.",
        remediation="Split the file into smaller uploads.",
    ),
    # Pool errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.POOL,
        title="Tracking Pool Exhausted",
        message_template="No available {tracking_class} tracking numbers for order {order_id}.",
        remediation="Import more {tracking_class} tracking numbers, then assign the order again.",
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.POOL,
        title="Claim Contention",
        message_template="Could not claim a {tracking_class} tracking number after {attempts} attempts.",
        remediation="Other orders are claiming from the same pool. Retry the assignment.",
        is_retryable=True,
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.POOL,
        title="Tracking Number In Use",
        message_template="Tracking number {tracking_id} is already bound to order {other_order_id}.",
        remediation="Use a tracking number that is not assigned to another order.",
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Ingestion Aborted",
        message_template="Upload rolled back: {reason}",
        remediation="No tracking numbers were saved. Check the upload log, fix the cause, and upload again.",
        is_retryable=True,
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.SYSTEM,
        title="File System Error",
        message_template="Could not {operation} file: {path}",
        remediation="Check disk space and permissions. Retry the operation.",
        is_retryable=True,
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category."""
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
