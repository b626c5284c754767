"""Services for the order kernel (write side)."""

from order_kernel.services.movement_recorder import OutboundMovementRecorder
from order_kernel.services.order_code_service import OrderCodeService
from order_kernel.services.order_lifecycle_service import OrderLifecycleService
from order_kernel.services.stock_ledger import SqlStockLedger

__all__ = [
    "OrderCodeService",
    "OrderLifecycleService",
    "OutboundMovementRecorder",
    "SqlStockLedger",
]
