"""Mirror order status changes onto the bound pool entry.

Only current_status is written. Anything that cannot be resolved (no
order, no tracking number, an unpooled prefix, an entry missing from
its pool) is a silent no-op. Last write wins.
"""

import logging

from sqlalchemy.orm import Session

from src.db.models import TrackingClass
from src.services.audit_service import AuditService
from src.services.order_source import TRACKING_META_KEY, OrderDataSource
from src.services.tracking_pool import TrackingPoolStore

logger = logging.getLogger(__name__)


class TrackingStatusSync:
    """Propagates order lifecycle status into the tracking pools."""

    def __init__(
        self,
        db: Session,
        source: OrderDataSource,
        audit: AuditService | None = None,
    ) -> None:
        self.db = db
        self.source = source
        self.audit = audit or AuditService(db)
        self.store = TrackingPoolStore(db)

    def sync_status(self, order_id: str, new_status: str) -> bool:
        """Copy an order's new status onto its tracking entry.

        Returns:
            True when an entry was updated and committed.
        """
        if not order_id or not new_status:
            return False

        order = self.source.get_order(order_id)
        if order is None:
            return False

        tracking_id = self.source.get_order_meta(order, TRACKING_META_KEY)
        if not tracking_id:
            return False

        tracking_class = TrackingClass.from_tracking_id(tracking_id)
        if tracking_class is None:
            logger.debug("sync_status: %s is not a pooled tracking number", tracking_id)
            return False

        if not self.store.update_status(tracking_class, tracking_id, new_status):
            logger.debug(
                "sync_status: %s not found in %s pool", tracking_id, tracking_class.value
            )
            return False

        self.audit.log_status_change(order.id, tracking_class, tracking_id, new_status)
        self.db.commit()
        logger.info(
            "%s tracking number %s status updated to: %s",
            tracking_class.value, tracking_id, new_status,
        )
        return True
