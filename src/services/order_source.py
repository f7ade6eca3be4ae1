"""Order and product lookups consumed by the tracking services.

The assignment engine, status sync and GST report never touch a host
catalog directly; they go through OrderDataSource. SqlOrderDataSource
is the built-in implementation over the local orders / products /
order_line_items / order_meta tables.

Example:
    source = SqlOrderDataSource(db)
    order = source.get_order("1042")
    if order is not None:
        items = source.get_order_line_items(order)
"""

import logging
import math
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db.models import Order, OrderLineItem, OrderMeta, Product

logger = logging.getLogger(__name__)

# Order meta key holding the bound tracking number
TRACKING_META_KEY = "_indiapost_tracking_number"


@dataclass
class OrderRecord:
    """Snapshot of an order as seen by the tracking services."""

    id: str
    status: str
    created_at: str | None = None
    shipping_state: str | None = None
    shipping_postcode: str | None = None
    total: float | None = None


@dataclass
class LineItem:
    """One product line on an order. Quantity defaults to 1."""

    product_id: str | None
    quantity: int = 1
    line_total: float = 0.0


@dataclass
class ProductRecord:
    """Catalog product fields used for weighing and tax reporting."""

    id: str
    name: str = ""
    weight: str | None = None
    hsn_code: str | None = None
    gst_rate: float | None = None


def parse_weight(raw: object) -> float | None:
    """Parse a free-text product weight in grams.

    Returns None for empty, non-numeric, or non-finite values.

    Example:
        >>> parse_weight(" 250 ")
        250.0
        >>> parse_weight("approx 1kg") is None
        True
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if not math.isfinite(value):
        return None
    return value


@runtime_checkable
class OrderDataSource(Protocol):
    """Read/write access to the host order and product catalog."""

    def get_order(self, order_id: str) -> OrderRecord | None: ...

    def get_order_status(self, order: OrderRecord) -> str: ...

    def get_order_line_items(self, order: OrderRecord) -> list[LineItem]: ...

    def get_product(self, product_id: str) -> ProductRecord | None: ...

    def get_product_weight_grams(self, product_id: str) -> float | None: ...

    def get_order_meta(self, order: OrderRecord, key: str) -> str | None: ...

    def set_order_meta(self, order: OrderRecord, key: str, value: str) -> None: ...

    def find_order_by_meta(self, key: str, value: str) -> OrderRecord | None: ...


def _to_record(order: Order) -> OrderRecord:
    return OrderRecord(
        id=order.id,
        status=order.status,
        created_at=order.created_at,
        shipping_state=order.shipping_state,
        shipping_postcode=order.shipping_postcode,
        total=order.total,
    )


class SqlOrderDataSource:
    """OrderDataSource backed by the local reference tables.

    set_order_meta() does NOT commit; it shares the caller's transaction
    so a tracking claim and its order binding commit together.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_order(self, order_id: str) -> OrderRecord | None:
        if not order_id:
            return None
        order = self.db.get(Order, str(order_id))
        return _to_record(order) if order is not None else None

    def get_order_status(self, order: OrderRecord) -> str:
        row = self.db.get(Order, order.id)
        return row.status if row is not None else order.status

    def get_order_line_items(self, order: OrderRecord) -> list[LineItem]:
        rows = self.db.execute(
            select(OrderLineItem)
            .where(OrderLineItem.order_id == order.id)
            .order_by(OrderLineItem.id)
        ).scalars()
        return [
            LineItem(
                product_id=row.product_id,
                quantity=row.quantity if row.quantity is not None else 1,
                line_total=row.line_total or 0.0,
            )
            for row in rows
        ]

    def get_product(self, product_id: str) -> ProductRecord | None:
        if not product_id:
            return None
        product = self.db.get(Product, str(product_id))
        if product is None:
            return None
        return ProductRecord(
            id=product.id,
            name=product.name,
            weight=product.weight,
            hsn_code=product.hsn_code,
            gst_rate=product.gst_rate,
        )

    def get_product_weight_grams(self, product_id: str) -> float | None:
        product = self.get_product(product_id)
        if product is None:
            return None
        return parse_weight(product.weight)

    def get_order_meta(self, order: OrderRecord, key: str) -> str | None:
        return self.db.execute(
            select(OrderMeta.meta_value).where(
                OrderMeta.order_id == order.id, OrderMeta.meta_key == key
            )
        ).scalar_one_or_none()

    def set_order_meta(self, order: OrderRecord, key: str, value: str) -> None:
        meta = self.db.execute(
            select(OrderMeta).where(
                OrderMeta.order_id == order.id, OrderMeta.meta_key == key
            )
        ).scalar_one_or_none()
        if meta is None:
            self.db.add(OrderMeta(order_id=order.id, meta_key=key, meta_value=value))
        else:
            meta.meta_value = value
        self.db.flush()

    def find_order_by_meta(self, key: str, value: str) -> OrderRecord | None:
        if not value:
            return None
        order = self.db.execute(
            select(Order)
            .join(OrderMeta, OrderMeta.order_id == Order.id)
            .where(OrderMeta.meta_key == key, OrderMeta.meta_value == value)
            .order_by(Order.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return _to_record(order) if order is not None else None
