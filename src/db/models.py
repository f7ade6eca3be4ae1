"""SQLAlchemy ORM models for the TrackPool state database.

This module defines the tracking inventory pools (one table per weight
class), upload batch bookkeeping, the audit trail, and the reference
order/product tables backing the built-in order data source. Uses
SQLAlchemy 2.0 style with Mapped and mapped_column.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


# Enums matching the database schema constraints


class TrackingClass(str, Enum):
    """Weight class of a tracking pool.

    EG holds numbers for light parcels (at or under the weight threshold),
    CG for heavy parcels or parcels whose weight cannot be determined.
    The value doubles as the two-letter tracking number prefix.
    """

    EG = "EG"
    CG = "CG"

    @classmethod
    def from_tracking_id(cls, tracking_id: str | None) -> Optional["TrackingClass"]:
        """Infer the pool class from a tracking number prefix.

        Args:
            tracking_id: Tracking number such as 'EG123456789IN'.

        Returns:
            The matching TrackingClass, or None for any other prefix.
        """
        if not tracking_id:
            return None
        prefix = tracking_id[:2]
        for member in cls:
            if member.value == prefix:
                return member
        return None


class Accessibility(str, Enum):
    """Values of the is_accessable flag. Yes means eligible for claiming."""

    yes = "Yes"
    no = "No"


class UploadStatus(str, Enum):
    """Outcome of an ingestion batch."""

    committed = "committed"
    rolled_back = "rolled_back"


class LogLevel(str, Enum):
    """Severity levels for audit log entries."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class EventType(str, Enum):
    """Categories of events logged in the audit trail."""

    upload = "upload"
    assignment = "assignment"
    status_change = "status_change"
    pool_admin = "pool_admin"
    error = "error"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Tracking pools


class TrackingEntryMixin:
    """Columns shared by both tracking pool tables.

    Attributes:
        id: Auto-increment primary key; claim order follows it (FIFO by import)
        tracking_id: India Post tracking number, unique within the table
        current_status: Mirror of the bound order's status, null until claimed
        assigned_at: ISO8601 timestamp of the claim (column "datetime")
        upload_userid: Operator who imported the entry
        order_id: Bound order, null while the entry is in the pool
        modified_at: ISO8601 timestamp written at claim time only
        is_accessable: 'Yes' when eligible for claiming, 'No' once claimed
            or withdrawn by an operator
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tracking_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_status: Mapped[str | None] = mapped_column(String(100), nullable=True)
    assigned_at: Mapped[str | None] = mapped_column("datetime", String(50), nullable=True)
    upload_userid: Mapped[str] = mapped_column(String(100), nullable=False)
    order_id: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True)
    modified_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_accessable: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default=Accessibility.yes.value,
        server_default=Accessibility.yes.value,
    )

    @property
    def is_available(self) -> bool:
        """True when the entry can be claimed."""
        return self.order_id is None and self.is_accessable == Accessibility.yes.value

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__}(id={self.id!r}, tracking_id={self.tracking_id!r}, "
            f"order_id={self.order_id!r}, is_accessable={self.is_accessable!r})>"
        )


class EGTrackingEntry(TrackingEntryMixin, Base):
    """Tracking pool entry for light parcels."""

    __tablename__ = "eg_india_post_tracking"
    tracking_class = TrackingClass.EG

    __table_args__ = (Index("idx_eg_tracking_available", "is_accessable", "order_id"),)


class CGTrackingEntry(TrackingEntryMixin, Base):
    """Tracking pool entry for heavy or unweighable parcels."""

    __tablename__ = "cg_india_post_tracking"
    tracking_class = TrackingClass.CG

    __table_args__ = (Index("idx_cg_tracking_available", "is_accessable", "order_id"),)


TrackingEntry = EGTrackingEntry | CGTrackingEntry

POOL_MODELS: dict[TrackingClass, type[EGTrackingEntry] | type[CGTrackingEntry]] = {
    TrackingClass.EG: EGTrackingEntry,
    TrackingClass.CG: CGTrackingEntry,
}


def pool_model(tracking_class: TrackingClass) -> type[EGTrackingEntry] | type[CGTrackingEntry]:
    """Return the ORM model backing a tracking pool."""
    return POOL_MODELS[TrackingClass(tracking_class)]


# Ingestion and audit


class UploadBatch(Base):
    """One CSV ingestion attempt.

    Attributes:
        id: UUID primary key
        file_name: Original name of the uploaded file
        uploaded_by: Operator identity
        status: committed, or rolled_back when the batch aborted
        total_lines: Physical CSV rows read
        eg_inserted: Rows added to the EG pool
        cg_inserted: Rows added to the CG pool
        duplicates: Rows skipped because the number already existed
        invalid: Rows skipped as empty, malformed, or of unknown prefix
        log_file: Name of the upload log written for this batch
        error_message: Underlying error when the batch rolled back
        started_at: ISO8601 timestamp when processing began
        completed_at: ISO8601 timestamp when processing finished
    """

    __tablename__ = "upload_batches"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UploadStatus.committed.value
    )
    total_lines: Mapped[int] = mapped_column(default=0, nullable=False)
    eg_inserted: Mapped[int] = mapped_column(default=0, nullable=False)
    cg_inserted: Mapped[int] = mapped_column(default=0, nullable=False)
    duplicates: Mapped[int] = mapped_column(default=0, nullable=False)
    invalid: Mapped[int] = mapped_column(default=0, nullable=False)
    log_file: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    completed_at: Mapped[str | None] = mapped_column(String(50), nullable=True)

    audit_logs: Mapped[list["AuditLog"]] = relationship(
        "AuditLog", back_populates="batch", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_upload_batches_started_at", "started_at"),)

    def __repr__(self) -> str:
        return f"<UploadBatch(id={self.id!r}, file_name={self.file_name!r}, status={self.status!r})>"


class AuditLog(Base):
    """Append-only audit entry for uploads, assignments, and status changes.

    Attributes:
        id: UUID primary key
        batch_id: Upload batch, for ingestion events
        order_id: Order the event concerns, if any
        tracking_id: Tracking number the event concerns, if any
        timestamp: ISO8601 timestamp of event
        level: Log severity (INFO, WARNING, ERROR)
        event_type: Category of event
        message: Human-readable event description
        details: JSON blob with structured event data
    """

    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    batch_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("upload_batches.id", ondelete="CASCADE"), nullable=True
    )
    order_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tracking_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    timestamp: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    level: Mapped[str] = mapped_column(String(10), nullable=False)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)

    batch: Mapped[Optional["UploadBatch"]] = relationship(
        "UploadBatch", back_populates="audit_logs"
    )

    __table_args__ = (
        Index("idx_audit_logs_order_id", "order_id"),
        Index("idx_audit_logs_tracking_id", "tracking_id"),
        Index("idx_audit_logs_timestamp", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id!r}, level={self.level!r}, type={self.event_type!r})>"


# Reference order catalog


class Order(Base):
    """Order record for the built-in order data source.

    Host platforms with their own catalog plug in through
    OrderDataSource instead of populating this table.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    shipping_state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    shipping_postcode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    total: Mapped[float | None] = mapped_column(Float, nullable=True)

    line_items: Mapped[list["OrderLineItem"]] = relationship(
        "OrderLineItem", back_populates="order", cascade="all, delete-orphan"
    )
    meta: Mapped[list["OrderMeta"]] = relationship(
        "OrderMeta", back_populates="order", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id!r}, status={self.status!r})>"


class Product(Base):
    """Catalog product. Weight is free text in grams, as the store keeps it."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    weight: Mapped[str | None] = mapped_column(String(50), nullable=True)
    hsn_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    gst_rate: Mapped[float | None] = mapped_column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"<Product(id={self.id!r}, weight={self.weight!r})>"


class OrderLineItem(Base):
    """A product line on an order."""

    __tablename__ = "order_line_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    line_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    order: Mapped["Order"] = relationship("Order", back_populates="line_items")

    __table_args__ = (Index("idx_order_line_items_order_id", "order_id"),)


class OrderMeta(Base):
    """Key/value metadata attached to an order."""

    __tablename__ = "order_meta"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    meta_key: Mapped[str] = mapped_column(String(255), nullable=False)
    meta_value: Mapped[str | None] = mapped_column(Text, nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="meta")

    __table_args__ = (
        UniqueConstraint("order_id", "meta_key", name="uq_order_meta_key"),
        Index("idx_order_meta_key_value", "meta_key", "meta_value"),
    )
