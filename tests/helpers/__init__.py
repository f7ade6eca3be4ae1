"""Test helper utilities for seeding orders and pools."""

from tests.helpers.orders import add_entries, add_order, add_product

__all__ = [
    "add_entries",
    "add_order",
    "add_product",
]
