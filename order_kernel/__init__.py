"""
Order Kernel

Point-order lifecycle and inventory-consistency engine:
- Table-driven order state machine (create, confirm, ship, deliver, receive)
- All-or-nothing shipments with row-locked stock debits
- Append-only outbound movement trail
- Monotonic payment accumulation
"""

__version__ = "0.1.0"
