"""Tracking number pool store.

Owns the two per-class inventory tables. Writes here do NOT commit:
the assignment engine commits a claim together with the order binding,
and ingestion commits a whole upload at once.

The claim is a compare-and-set. A candidate is selected (row-locked on
dialects that support FOR UPDATE), then taken with a conditional UPDATE
that only matches while the row is still unbound and accessible and no
row in the pool is bound to the same order. A zero row count means a
concurrent claim won; the next candidate is tried.

Example:
    store = TrackingPoolStore(db)
    entry = store.claim_next(TrackingClass.EG, order_id="1042", order_status="process-to-ship")
    if entry is None:
        ...  # pool exhausted
"""

import logging
from dataclasses import dataclass

from sqlalchemy import and_, case, delete, exists, func, insert, select, update
from sqlalchemy.orm import Session, aliased

from src.db.models import (
    POOL_MODELS,
    Accessibility,
    TrackingClass,
    TrackingEntry,
    pool_model,
    utc_now_iso,
)
from src.errors import ClaimContentionError, ConflictError, ValidationError

logger = logging.getLogger(__name__)

CLAIM_MAX_ATTEMPTS = 5

DEFAULT_PAGE_SIZE = 20

# Sort keys accepted by list_entries, mapped to model attributes
SORTABLE_COLUMNS = {
    "id": "id",
    "tracking_id": "tracking_id",
    "current_status": "current_status",
    "datetime": "assigned_at",
    "upload_userid": "upload_userid",
    "order_id": "order_id",
    "modified_at": "modified_at",
    "is_accessable": "is_accessable",
}


@dataclass
class PoolSummary:
    """Entry counts for one pool."""

    tracking_class: TrackingClass
    total: int = 0
    available: int = 0
    bound: int = 0
    withdrawn: int = 0


@dataclass
class EntryPage:
    """One page of list_entries() results."""

    entries: list[TrackingEntry]
    total: int
    limit: int
    offset: int


class TrackingPoolStore:
    """Repository over the EG and CG tracking pools."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # Claiming

    def claim_next(
        self,
        tracking_class: TrackingClass,
        order_id: str,
        order_status: str | None,
    ) -> TrackingEntry | None:
        """Atomically bind the lowest-id available entry to an order.

        Args:
            tracking_class: Pool to claim from.
            order_id: Order receiving the number.
            order_status: Order's status, mirrored into current_status.

        Returns:
            The claimed entry, or None when the pool has no available entry.

        Raises:
            ConflictError: The pool already holds an entry bound to this order.
            ClaimContentionError: Every attempt lost to a concurrent claim.
        """
        model = pool_model(tracking_class)
        already_bound = aliased(model)

        for attempt in range(1, CLAIM_MAX_ATTEMPTS + 1):
            candidate_id = self.db.execute(
                select(model.id)
                .where(
                    model.order_id.is_(None),
                    model.is_accessable == Accessibility.yes.value,
                )
                .order_by(model.id.asc())
                .limit(1)
                .with_for_update()
            ).scalar_one_or_none()

            if candidate_id is None:
                return None

            now = utc_now_iso()
            result = self.db.execute(
                update(model)
                .where(
                    model.id == candidate_id,
                    model.order_id.is_(None),
                    model.is_accessable == Accessibility.yes.value,
                    ~exists(
                        select(already_bound.id).where(already_bound.order_id == order_id)
                    ),
                )
                .values(
                    {
                        model.order_id: order_id,
                        model.current_status: order_status,
                        model.assigned_at: now,
                        model.modified_at: now,
                        model.is_accessable: Accessibility.no.value,
                    }
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 1:
                return self.db.execute(
                    select(model)
                    .where(model.id == candidate_id)
                    .execution_options(populate_existing=True)
                ).scalar_one()

            existing = self.find_by_order(order_id, tracking_class)
            if existing is not None:
                raise ConflictError(
                    f"Order {order_id} already holds {tracking_class.value} "
                    f"tracking number {existing.tracking_id}"
                )

            logger.debug(
                "Claim attempt %d for order %s lost %s entry %s to a concurrent claim",
                attempt, order_id, tracking_class.value, candidate_id,
            )

        raise ClaimContentionError(tracking_class, CLAIM_MAX_ATTEMPTS)

    def bind_entry(
        self,
        tracking_class: TrackingClass,
        tracking_id: str,
        order_id: str,
        order_status: str | None,
    ) -> TrackingEntry:
        """Bind a specific unbound entry to an order.

        Used when an operator hands out a pooled number by hand, so the
        same number cannot also be claimed automatically. Withdrawn entries
        are bound too.

        Raises:
            ConflictError: The entry is bound already, or the pool holds
                another entry bound to this order.
        """
        model = pool_model(tracking_class)
        already_bound = aliased(model)

        now = utc_now_iso()
        result = self.db.execute(
            update(model)
            .where(
                model.tracking_id == tracking_id,
                model.order_id.is_(None),
                ~exists(select(already_bound.id).where(already_bound.order_id == order_id)),
            )
            .values(
                {
                    model.order_id: order_id,
                    model.current_status: order_status,
                    model.assigned_at: now,
                    model.modified_at: now,
                    model.is_accessable: Accessibility.no.value,
                }
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(
                f"{tracking_class.value} tracking number {tracking_id} could not be "
                f"bound to order {order_id}",
                code="E-3003",
            )

        return self.db.execute(
            select(model)
            .where(model.tracking_id == tracking_id)
            .execution_options(populate_existing=True)
        ).scalar_one()

    # Lookups

    def exists_anywhere(self, tracking_id: str) -> bool:
        """Return True if the tracking number is in either pool."""
        for model in POOL_MODELS.values():
            found = self.db.execute(
                select(exists().where(model.tracking_id == tracking_id))
            ).scalar()
            if found:
                return True
        return False

    def find_entry(
        self,
        tracking_id: str,
        tracking_class: TrackingClass | None = None,
    ) -> TrackingEntry | None:
        """Find an entry by tracking number, in one pool or both."""
        classes = [tracking_class] if tracking_class else list(POOL_MODELS)
        for cls in classes:
            model = pool_model(cls)
            entry = self.db.execute(
                select(model).where(model.tracking_id == tracking_id)
            ).scalar_one_or_none()
            if entry is not None:
                return entry
        return None

    def find_by_order(
        self,
        order_id: str,
        tracking_class: TrackingClass | None = None,
    ) -> TrackingEntry | None:
        """Find the entry bound to an order, in one pool or both."""
        classes = [tracking_class] if tracking_class else list(POOL_MODELS)
        for cls in classes:
            model = pool_model(cls)
            entry = self.db.execute(
                select(model).where(model.order_id == order_id)
            ).scalar_one_or_none()
            if entry is not None:
                return entry
        return None

    # Writes

    def insert_batch(
        self,
        tracking_class: TrackingClass,
        tracking_ids: list[str],
        uploaded_by: str,
    ) -> int:
        """Insert new available entries.

        Args:
            tracking_class: Destination pool.
            tracking_ids: Already validated, unique tracking numbers.
            uploaded_by: Operator identity recorded on each row.

        Returns:
            Number of rows inserted.
        """
        if not tracking_ids:
            return 0
        model = pool_model(tracking_class)
        self.db.execute(
            insert(model),
            [
                {
                    "tracking_id": tracking_id,
                    "current_status": None,
                    "upload_userid": uploaded_by,
                    "order_id": None,
                    "is_accessable": Accessibility.yes.value,
                }
                for tracking_id in tracking_ids
            ],
        )
        return len(tracking_ids)

    def update_status(
        self,
        tracking_class: TrackingClass,
        tracking_id: str,
        status: str,
    ) -> bool:
        """Overwrite current_status only. Returns False if the entry is absent."""
        model = pool_model(tracking_class)
        result = self.db.execute(
            update(model)
            .where(model.tracking_id == tracking_id)
            .values({model.current_status: status})
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    def set_accessibility(
        self,
        tracking_class: TrackingClass,
        entry_ids: list[int],
        accessible: bool,
    ) -> int:
        """Withdraw or restore unbound entries. Bound entries are left alone.

        Returns:
            Number of entries changed.
        """
        if not entry_ids:
            return 0
        model = pool_model(tracking_class)
        value = Accessibility.yes.value if accessible else Accessibility.no.value
        result = self.db.execute(
            update(model)
            .where(model.id.in_(entry_ids), model.order_id.is_(None))
            .values({model.is_accessable: value})
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def delete_entries(self, tracking_class: TrackingClass, entry_ids: list[int]) -> int:
        """Delete unbound entries. Bound entries are never deleted.

        Returns:
            Number of entries deleted.
        """
        if not entry_ids:
            return 0
        model = pool_model(tracking_class)
        result = self.db.execute(
            delete(model)
            .where(model.id.in_(entry_ids), model.order_id.is_(None))
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    # Reporting

    def pool_summary(self) -> list[PoolSummary]:
        """Count total, available, bound and withdrawn entries per pool."""
        summaries = []
        for tracking_class, model in POOL_MODELS.items():
            total, bound, available = self.db.execute(
                select(
                    func.count(model.id),
                    func.count(model.order_id),
                    func.coalesce(
                        func.sum(
                            case(
                                (
                                    and_(
                                        model.order_id.is_(None),
                                        model.is_accessable == Accessibility.yes.value,
                                    ),
                                    1,
                                ),
                                else_=0,
                            )
                        ),
                        0,
                    ),
                )
            ).one()
            summaries.append(
                PoolSummary(
                    tracking_class=tracking_class,
                    total=total,
                    available=available,
                    bound=bound,
                    withdrawn=total - bound - available,
                )
            )
        return summaries

    def list_entries(
        self,
        tracking_class: TrackingClass,
        search: str | None = None,
        order_by: str = "id",
        order: str = "desc",
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> EntryPage:
        """List one pool with substring search, sorting and paging.

        Raises:
            ValidationError: Unknown sort column, direction, or bad paging values.
        """
        if order_by not in SORTABLE_COLUMNS:
            raise ValidationError(
                f"Cannot sort by '{order_by}'. Choose one of: {', '.join(SORTABLE_COLUMNS)}"
            )
        direction = order.lower()
        if direction not in ("asc", "desc"):
            raise ValidationError(f"Sort order must be 'asc' or 'desc', got '{order}'")
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")

        model = pool_model(tracking_class)
        conditions = []
        if search:
            conditions.append(model.tracking_id.contains(search, autoescape=True))

        total = self.db.execute(
            select(func.count(model.id)).where(*conditions)
        ).scalar_one()

        column = getattr(model, SORTABLE_COLUMNS[order_by])
        sort = column.asc() if direction == "asc" else column.desc()
        entries = list(
            self.db.execute(
                select(model)
                .where(*conditions)
                .order_by(sort, model.id.desc())
                .limit(limit)
                .offset(offset)
            ).scalars()
        )
        return EntryPage(entries=entries, total=total, limit=limit, offset=offset)
