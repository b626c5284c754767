"""Selectors for the order kernel (read side)."""

from order_kernel.selectors.catalog_selector import CatalogSelector
from order_kernel.selectors.movement_selector import MovementSelector
from order_kernel.selectors.order_selector import OrderSelector

__all__ = [
    "CatalogSelector",
    "MovementSelector",
    "OrderSelector",
]
