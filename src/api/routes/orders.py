"""FastAPI routes for order tracking.

Assignment, manual entry, lookup and the host's order event hooks.
"""

import logging

from fastapi import APIRouter, Depends

from src.api.dependencies import get_engine, get_event_handler
from src.api.schemas import (
    AssignmentResponse,
    ManualTrackingRequest,
    OrderCreatedEvent,
    OrderEventResponse,
    OrderStatusChangedEvent,
    OrderTrackingResponse,
)
from src.services.assignment_engine import OrderTracking, TrackingAssignmentEngine
from src.services.order_events import OrderEventHandler, OrderEventOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _tracking_response(tracking: OrderTracking) -> OrderTrackingResponse:
    return OrderTrackingResponse(
        order_id=tracking.order_id,
        tracking_number=tracking.tracking_number,
        tracking_class=tracking.tracking_class.value if tracking.tracking_class else None,
        tracking_url=tracking.tracking_url,
        current_status=tracking.current_status,
    )


def _event_response(outcome: OrderEventOutcome) -> OrderEventResponse:
    assignment = outcome.assignment
    return OrderEventResponse(
        order_id=outcome.order_id,
        assigned=assignment is not None,
        tracking_id=assignment.tracking_id if assignment else None,
        tracking_class=assignment.tracking_class.value if assignment else None,
        status_synced=outcome.status_synced,
        exhausted_class=outcome.exhausted_class,
        error=outcome.error,
    )


@router.post("/{order_id}/assign", response_model=AssignmentResponse)
def assign_tracking(
    order_id: str,
    engine: TrackingAssignmentEngine = Depends(get_engine),
) -> AssignmentResponse:
    """Claim a tracking number for an order.

    ``assigned`` is false when the order is unknown or already has a
    number. An exhausted pool answers 409 with error code E-3001.
    """
    result = engine.assign_tracking(order_id)
    if result is None:
        return AssignmentResponse(order_id=order_id, assigned=False)
    return AssignmentResponse(
        order_id=order_id,
        assigned=True,
        tracking_id=result.tracking_id,
        tracking_class=result.tracking_class.value,
        weight_grams=result.weight_grams,
        assigned_at=result.assigned_at,
    )


@router.get("/{order_id}/tracking", response_model=OrderTrackingResponse)
def get_order_tracking(
    order_id: str,
    engine: TrackingAssignmentEngine = Depends(get_engine),
) -> OrderTrackingResponse:
    return _tracking_response(engine.get_order_tracking(order_id))


@router.put("/{order_id}/tracking", response_model=OrderTrackingResponse)
def set_order_tracking(
    order_id: str,
    body: ManualTrackingRequest,
    engine: TrackingAssignmentEngine = Depends(get_engine),
) -> OrderTrackingResponse:
    """Record an operator-entered tracking number."""
    return _tracking_response(engine.record_manual_tracking(order_id, body.tracking_number))


@router.post("/{order_id}/events/created", response_model=OrderEventResponse)
def order_created(
    order_id: str,
    body: OrderCreatedEvent,
    handler: OrderEventHandler = Depends(get_event_handler),
) -> OrderEventResponse:
    """Order-created hook. Pool exhaustion is reported in the body, not as an error."""
    return _event_response(handler.on_order_created(order_id, status=body.status))


@router.post("/{order_id}/events/status-changed", response_model=OrderEventResponse)
def order_status_changed(
    order_id: str,
    body: OrderStatusChangedEvent,
    handler: OrderEventHandler = Depends(get_event_handler),
) -> OrderEventResponse:
    outcome = handler.on_order_status_changed(order_id, body.from_status, body.to_status)
    if outcome.exhausted_class:
        logger.warning("Order %s left without tracking: %s", order_id, outcome.error)
    return _event_response(outcome)
