# Overview: Pure stock arithmetic for items and transactions; no database work.

"""
Stock ledger helpers.

These functions never touch the session. They are the single place where
the signed delta of a transaction type is defined, so both the direct
recording path and the lifecycle processing path agree on it.
"""

from __future__ import annotations

from ..models import InventoryItem, InventoryTransaction, TransactionType


def available_stock(item: InventoryItem) -> int:
    """current_stock - reserved_stock (not clamped)."""
    return (item.current_stock or 0) - (item.reserved_stock or 0)


def available_stock_at(item: InventoryItem, location_id: int | None) -> int:
    """Available stock at a location; an item only holds stock where it is stored."""
    if location_id is None or item.location_id != location_id:
        return 0
    return available_stock(item)


def stock_impact(tx: InventoryTransaction, item: InventoryItem) -> int:
    """
    Signed delta a transaction applies to item.current_stock.

    TRANSFER returns the source-side leg (-quantity) when a source location
    is present; the relocation to the destination is applied separately
    (see transfer_legs and lifecycle_service.apply_stock_mutation).
    """
    try:
        tx_type = TransactionType(tx.transaction_type)
    except ValueError:
        return 0
    quantity = tx.quantity

    if tx_type is TransactionType.RECEIPT:
        return quantity
    if tx_type is TransactionType.ISSUE:
        return -quantity
    if tx_type is TransactionType.TRANSFER:
        return -quantity if tx.source_location_id is not None else quantity
    if tx_type is TransactionType.ADJUSTMENT:
        return quantity
    if tx_type is TransactionType.CYCLE_COUNT:
        return quantity - (item.current_stock or 0)
    if tx_type is TransactionType.RETURN:
        return quantity
    return 0


def transfer_legs(tx: InventoryTransaction) -> tuple[int, int]:
    """(source_delta, destination_delta) for a transfer; they always net to zero."""
    return -tx.quantity, tx.quantity


def projected_stock(item: InventoryItem, tx: InventoryTransaction) -> int:
    return (item.current_stock or 0) + stock_impact(tx, item)
