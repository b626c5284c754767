"""
Pure domain layer.

Value types, the order workflow table, quantity and payment arithmetic,
and the StockLedger contract.  No ORM, no database and no direct clock
access: time arrives through an injected ``Clock``.
"""
