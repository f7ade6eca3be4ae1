"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the TrackPool REST API:
tracking pools, uploads, order assignment and events, upload logs and
GST reports.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BulkActionEnum(str, Enum):
    """Operator bulk actions on pool entries."""

    delete = "delete"
    make_accessible = "make_accessible"
    make_inaccessible = "make_inaccessible"


# Pool schemas


class TrackingEntryResponse(BaseModel):
    """Response schema for a pool entry."""

    id: int
    tracking_id: str
    current_status: str | None = None
    datetime: str | None = Field(None, validation_alias="assigned_at")
    upload_userid: str
    order_id: str | None = None
    modified_at: str | None = None
    is_accessable: str

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class TrackingListResponse(BaseModel):
    """One page of a pool listing."""

    entries: list[TrackingEntryResponse]
    total: int
    limit: int
    offset: int


class PoolSummaryResponse(BaseModel):
    """Entry counts for one pool."""

    tracking_class: str
    total: int
    available: int
    bound: int
    withdrawn: int


class BulkActionRequest(BaseModel):
    """Request schema for a bulk action on pool entries."""

    action: BulkActionEnum
    ids: list[int] = Field(..., min_length=1)


class BulkActionResponse(BaseModel):
    """Result of a bulk action."""

    action: BulkActionEnum
    requested: int
    affected: int


# Upload schemas


class RowOutcomeResponse(BaseModel):
    """Classification of one uploaded row."""

    line: int
    value: str
    verdict: str
    tracking_class: str | None = None
    code: str | None = None
    reason: str | None = None


class ImportResultResponse(BaseModel):
    """Counts and per-row outcomes of an upload."""

    batch_id: str
    file_name: str
    log_file: str | None = None
    total_lines: int
    eg_inserted: int
    cg_inserted: int
    duplicates: int
    invalid: int
    rows: list[RowOutcomeResponse] = []


class UploadLogResponse(BaseModel):
    """Listing entry for an upload log."""

    name: str
    size: int
    modified_at: str


# Order schemas


class AssignmentResponse(BaseModel):
    """Outcome of an assignment request."""

    order_id: str
    assigned: bool
    tracking_id: str | None = None
    tracking_class: str | None = None
    weight_grams: float | None = None
    assigned_at: str | None = None


class OrderTrackingResponse(BaseModel):
    """Tracking number bound to an order."""

    order_id: str
    tracking_number: str | None = None
    tracking_class: str | None = None
    tracking_url: str | None = None
    current_status: str | None = None


class ManualTrackingRequest(BaseModel):
    """Request schema for recording an operator-entered tracking number."""

    tracking_number: str = Field(..., min_length=1, max_length=50)


class OrderCreatedEvent(BaseModel):
    """Host notification that an order was created."""

    status: str | None = None


class OrderStatusChangedEvent(BaseModel):
    """Host notification of an order status transition."""

    from_status: str | None = None
    to_status: str = Field(..., min_length=1)


class OrderEventResponse(BaseModel):
    """What handling an order event did."""

    order_id: str
    assigned: bool
    tracking_id: str | None = None
    tracking_class: str | None = None
    status_synced: bool = False
    exhausted_class: str | None = None
    error: str | None = None


# Report schemas


class GSTReportResponse(BaseModel):
    """A generated GST report."""

    report_id: str
    rows_written: int
    skipped: int
