"""Entry points for host order events.

Order creation and status changes both funnel here. Reaching the ready
status triggers assignment; every status change is then synced onto the
bound tracking entry. Events may be delivered more than once: repeat
deliveries hit the engine's "already assigned" early exit.

Pool exhaustion is absorbed and reported in the outcome; the engine has
already logged and audited it.
"""

import logging
from dataclasses import dataclass

from src.errors import NoAvailableTrackingNumberError
from src.services.assignment_engine import AssignmentResult, TrackingAssignmentEngine
from src.services.order_source import OrderDataSource
from src.services.status_sync import TrackingStatusSync

logger = logging.getLogger(__name__)

DEFAULT_READY_STATUS = "process-to-ship"


@dataclass
class OrderEventOutcome:
    """What handling one event did."""

    order_id: str
    assignment: AssignmentResult | None = None
    status_synced: bool = False
    exhausted_class: str | None = None
    error: str | None = None


class OrderEventHandler:
    """Dispatches order events to assignment and status sync."""

    def __init__(
        self,
        source: OrderDataSource,
        engine: TrackingAssignmentEngine,
        sync: TrackingStatusSync,
        ready_status: str = DEFAULT_READY_STATUS,
    ) -> None:
        self.source = source
        self.engine = engine
        self.sync = sync
        self.ready_status = ready_status

    def _assign(self, outcome: OrderEventOutcome) -> None:
        try:
            outcome.assignment = self.engine.assign_tracking(outcome.order_id)
        except NoAvailableTrackingNumberError as e:
            outcome.exhausted_class = e.tracking_class
            outcome.error = str(e)

    def on_order_created(self, order_id: str, status: str | None = None) -> OrderEventOutcome:
        """Handle a new order; assign if it was created already ready to ship."""
        outcome = OrderEventOutcome(order_id=str(order_id) if order_id else "")
        if not order_id:
            return outcome

        if status is None:
            order = self.source.get_order(order_id)
            if order is None:
                return outcome
            status = self.source.get_order_status(order)

        if status == self.ready_status:
            self._assign(outcome)
        return outcome

    def on_order_status_changed(
        self,
        order_id: str,
        from_status: str | None,
        to_status: str,
    ) -> OrderEventOutcome:
        """Handle a status transition: assign on ready, then sync."""
        outcome = OrderEventOutcome(order_id=str(order_id) if order_id else "")
        if not order_id or not to_status:
            return outcome

        logger.debug("Order %s status %s -> %s", order_id, from_status, to_status)
        if to_status == self.ready_status:
            self._assign(outcome)
        outcome.status_synced = self.sync.sync_status(order_id, to_status)
        return outcome
