"""Tracking number assignment engine.

Weighs an order, picks its pool (EG at or under the weight threshold,
CG above it or when the weight is unknown), claims the next available
number and binds it to the order. The order's stored tracking number is
authoritative: an order that already has one is never assigned again.

Example:
    engine = TrackingAssignmentEngine(db, SqlOrderDataSource(db))
    result = engine.assign_tracking("1042")
    if result is not None:
        print(result.tracking_class, result.tracking_id)
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.db.models import EventType, LogLevel, TrackingClass
from src.errors import (
    ConflictError,
    NoAvailableTrackingNumberError,
    NotFoundError,
    TrackPoolError,
    ValidationError,
)
from src.services.audit_service import AuditService, format_weight
from src.services.csv_ingestion import TRACKING_ID_PATTERN
from src.services.order_source import TRACKING_META_KEY, OrderDataSource, OrderRecord
from src.services.tracking_pool import TrackingPoolStore

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT_THRESHOLD_GRAMS = 1000.0
DEFAULT_TRACKING_URL_TEMPLATE = "https://www.aftership.com/track?t={tracking_number}&c=india-post"


class WeightPolicy(str, Enum):
    """How line items without a usable weight affect the order weight.

    known_items_only: sum the items that have a weight; the order weight
        is unknown only when no item has one.
    require_all_items: any item without a weight makes the order weight
        unknown.
    """

    known_items_only = "known_items_only"
    require_all_items = "require_all_items"


@dataclass
class AssignmentResult:
    """A successful claim."""

    order_id: str
    tracking_id: str
    tracking_class: TrackingClass
    weight_grams: float | None
    assigned_at: str | None


@dataclass
class OrderTracking:
    """Tracking number bound to an order, with its public tracking URL."""

    order_id: str
    tracking_number: str | None
    tracking_class: TrackingClass | None
    tracking_url: str | None
    current_status: str | None = None


def compute_order_weight(
    source: OrderDataSource,
    order: OrderRecord,
    policy: WeightPolicy = WeightPolicy.known_items_only,
) -> float | None:
    """Total order weight in grams, or None when it cannot be determined.

    Items whose product is unknown or whose weight is empty or
    non-numeric contribute nothing.
    """
    total = 0.0
    found = False
    for item in source.get_order_line_items(order):
        weight = None
        if item.product_id:
            weight = source.get_product_weight_grams(item.product_id)
        if weight is None:
            if policy == WeightPolicy.require_all_items:
                return None
            continue
        quantity = item.quantity if item.quantity is not None else 1
        total += weight * quantity
        found = True
    return total if found else None


def classify_weight(
    weight_grams: float | None,
    threshold_grams: float = DEFAULT_WEIGHT_THRESHOLD_GRAMS,
) -> TrackingClass:
    """EG when the weight is known and at or under the threshold, else CG."""
    if weight_grams is not None and weight_grams <= threshold_grams:
        return TrackingClass.EG
    return TrackingClass.CG


class TrackingAssignmentEngine:
    """Assigns pool tracking numbers to orders.

    assign_tracking() and record_manual_tracking() commit on success.

    Attributes:
        db: Session shared with the order data source.
        source: Order/product lookups.
        weight_threshold_grams: Heaviest order that still gets an EG number.
        weight_policy: Treatment of items with no usable weight.
    """

    def __init__(
        self,
        db: Session,
        source: OrderDataSource,
        audit: AuditService | None = None,
        weight_threshold_grams: float = DEFAULT_WEIGHT_THRESHOLD_GRAMS,
        weight_policy: WeightPolicy = WeightPolicy.known_items_only,
        tracking_url_template: str = DEFAULT_TRACKING_URL_TEMPLATE,
    ) -> None:
        self.db = db
        self.source = source
        self.audit = audit or AuditService(db)
        self.store = TrackingPoolStore(db)
        self.weight_threshold_grams = weight_threshold_grams
        self.weight_policy = WeightPolicy(weight_policy)
        self.tracking_url_template = tracking_url_template

    def assign_tracking(self, order_id: str) -> AssignmentResult | None:
        """Claim and bind a tracking number for an order.

        Args:
            order_id: Order to assign.

        Returns:
            AssignmentResult, or None when the order is unknown, already
            has a tracking number, or a concurrent call bound it first.

        Raises:
            NoAvailableTrackingNumberError: The order's pool is empty.
            ClaimContentionError: Concurrent claims won every attempt.
        """
        order = self.source.get_order(order_id)
        if order is None:
            logger.debug("assign_tracking: order %s not found", order_id)
            return None

        if self.source.get_order_meta(order, TRACKING_META_KEY):
            logger.debug("assign_tracking: order %s already has a tracking number", order_id)
            return None

        weight = compute_order_weight(self.source, order, self.weight_policy)
        tracking_class = classify_weight(weight, self.weight_threshold_grams)
        status = self.source.get_order_status(order)

        try:
            entry = self.store.claim_next(tracking_class, order.id, status)
        except ConflictError as e:
            self.db.rollback()
            logger.info("assign_tracking: order %s already bound (%s)", order.id, e)
            return None
        except IntegrityError:
            self.db.rollback()
            logger.info("assign_tracking: order %s bound by a concurrent request", order.id)
            return None

        if entry is None:
            self.db.rollback()
            error = NoAvailableTrackingNumberError(tracking_class, order.id)
            logger.error("Order %s: %s", order.id, error)
            self.audit.log_assignment_error(
                order.id,
                str(error),
                error_code=error.code,
                details={
                    "tracking_class": tracking_class.value,
                    "weight": format_weight(weight),
                },
            )
            self.db.commit()
            raise error

        try:
            self.source.set_order_meta(order, TRACKING_META_KEY, entry.tracking_id)
            self.audit.log_assignment(order.id, tracking_class, entry.tracking_id, weight)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("assign_tracking: order %s bound by a concurrent request", order.id)
            return None

        logger.info(
            "Order #%s assigned %s tracking number %s. Weight: %s",
            order.id, tracking_class.value, entry.tracking_id, format_weight(weight),
        )
        return AssignmentResult(
            order_id=order.id,
            tracking_id=entry.tracking_id,
            tracking_class=tracking_class,
            weight_grams=weight,
            assigned_at=entry.assigned_at,
        )

    def tracking_url(self, tracking_number: str) -> str:
        return self.tracking_url_template.format(tracking_number=tracking_number)

    def get_order_tracking(self, order_id: str) -> OrderTracking:
        """Return an order's tracking number and public tracking URL.

        Raises:
            NotFoundError: Unknown order.
        """
        order = self.source.get_order(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)

        tracking_number = self.source.get_order_meta(order, TRACKING_META_KEY) or None
        if not tracking_number:
            return OrderTracking(
                order_id=order.id, tracking_number=None, tracking_class=None, tracking_url=None
            )

        tracking_class = TrackingClass.from_tracking_id(tracking_number)
        entry = self.store.find_entry(tracking_number, tracking_class) if tracking_class else None
        return OrderTracking(
            order_id=order.id,
            tracking_number=tracking_number,
            tracking_class=tracking_class,
            tracking_url=self.tracking_url(tracking_number),
            current_status=entry.current_status if entry is not None else None,
        )

    def record_manual_tracking(self, order_id: str, tracking_number: str) -> OrderTracking:
        """Store an operator-entered tracking number on an order.

        If the number is an unbound pool entry, that entry is bound to the
        order in the same transaction so it is never claimed again.

        Raises:
            NotFoundError: Unknown order.
            ValidationError: Malformed tracking number.
            ConflictError: The order already has a tracking number, or the
                number is bound to another order.
        """
        order = self.source.get_order(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)

        tracking_number = (tracking_number or "").strip()
        if not tracking_number:
            raise ValidationError.from_code("E-1001")
        if not TRACKING_ID_PATTERN.match(tracking_number):
            raise ValidationError.from_code("E-2001")

        current = self.source.get_order_meta(order, TRACKING_META_KEY)
        if current:
            raise ConflictError(f"Order {order.id} already has tracking number {current}")

        entry = self.store.find_entry(tracking_number)
        if entry is not None and entry.order_id and entry.order_id != order.id:
            raise ConflictError(
                TrackPoolError.from_code(
                    "E-3003", tracking_id=tracking_number, other_order_id=entry.order_id
                ).message,
                code="E-3003",
            )
        other = self.source.find_order_by_meta(TRACKING_META_KEY, tracking_number)
        if other is not None and other.id != order.id:
            raise ConflictError(
                TrackPoolError.from_code(
                    "E-3003", tracking_id=tracking_number, other_order_id=other.id
                ).message,
                code="E-3003",
            )

        if entry is not None and entry.order_id is None:
            self.store.bind_entry(
                entry.tracking_class,
                tracking_number,
                order.id,
                self.source.get_order_status(order),
            )
        self.source.set_order_meta(order, TRACKING_META_KEY, tracking_number)
        self.audit.log(
            LogLevel.INFO,
            EventType.assignment,
            f"Order #{order.id} manual tracking number {tracking_number}",
            details={"manual": True},
            order_id=order.id,
            tracking_id=tracking_number,
        )
        self.db.commit()
        logger.info("Order #%s manual tracking number %s recorded", order.id, tracking_number)
        return self.get_order_tracking(order.id)
