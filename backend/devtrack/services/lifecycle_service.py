# Overview: Service-layer operations for the transaction lifecycle; encapsulates business logic and database work.

"""
DeviceTrack Transaction Lifecycle Service

================================================================================
PURPOSE: Drive inventory transactions through their status state machine
================================================================================

STATE MACHINE:
    PENDING -> APPROVED -> PROCESSING -> COMPLETED
       |          |            |
       v          v            v
    CANCELLED  CANCELLED     FAILED -> PENDING (retry)

    PENDING:    Recorded, validated, does NOT affect stock
    APPROVED:   Reviewed (optionally against the approver's monetary limit)
    PROCESSING: Stock mutation in progress
    COMPLETED:  Stock written back; immutable except for notes
    CANCELLED:  Terminal, never touched stock
    FAILED:     Re-validation failed while processing; may be retried

ENTRY MODES:
- Workflow path: transaction_service.record_transaction(workflow="pending")
  stores PENDING; process() is the only place its delta reaches the item.
- Direct path: transaction_service.record_transaction(workflow="direct")
  validates, applies the delta and stores COMPLETED in one commit.

Both paths apply stock through apply_stock_mutation(), so the signed delta
always comes from stock_ledger.stock_impact().

CONCURRENCY:
Item writes are committed through concurrency.commit_or_conflict(); a
concurrent change to the same item surfaces as ConcurrencyConflict and the
whole step rolls back (the transaction keeps its previous status).
================================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import func

from ..errors import ConcurrencyConflict, NotFoundError, RuleViolation, ViolationKind
from ..extensions import db
from ..models import InventoryItem, InventoryTransaction, TransactionStatus, TransactionType
from ..rules import RulesConfig, current_rules
from ..time_utils import day_stamp, utcnow
from ..validation import ValidationError
from .concurrency import commit_or_conflict, lock_for_update, run_with_retry
from .stock_ledger import available_stock_at, stock_impact, transfer_legs
from .transaction_rules import (
    build_request,
    validate_approval_limit,
    validate_counted_quantity,
    validate_modification,
    validate_request,
    validate_state_transition,
)


S = TransactionStatus


def append_note(existing: Optional[str], line: str) -> str:
    return f"{existing or ''}\n\n{line}".strip()


def generate_transaction_number(
    tx_type: TransactionType,
    *,
    now: Optional[datetime] = None,
    rules: RulesConfig | None = None,
) -> str:
    """
    Next candidate number: {PREFIX}-{yyyyMMdd}-{seq:04d}.

    seq continues the highest number already stored for the same prefix and
    UTC day, starting at 0001. The unique constraint on transaction_number
    is what serializes concurrent allocators.
    """
    rules = rules or current_rules()
    prefix = rules.prefix_for(TransactionType(tx_type))
    stem = f"{prefix}-{day_stamp(now)}-"

    number = InventoryTransaction.transaction_number
    # Longer suffixes are higher sequences once past 9999
    last = (
        db.session.query(number)
        .filter(number.like(f"{stem}%"))
        .order_by(func.length(number).desc(), number.desc())
        .limit(1)
        .scalar()
    )

    seq = 1
    if last:
        try:
            seq = int(last.rsplit("-", 1)[1]) + 1
        except ValueError:
            seq = 1
    return f"{stem}{seq:04d}"


def get_transaction(transaction_id: int) -> InventoryTransaction:
    tx = db.session.get(InventoryTransaction, transaction_id)
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return tx


def _get_for_update(transaction_id: int) -> InventoryTransaction:
    tx = lock_for_update(InventoryTransaction.query.filter_by(id=transaction_id)).first()
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return tx


def _get_item_for_update(item_id: int) -> InventoryItem:
    item = lock_for_update(InventoryItem.query.filter_by(id=item_id)).first()
    if item is None:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return item


def apply_stock_mutation(
    tx: InventoryTransaction,
    item: InventoryItem,
    actor: Optional[str],
    *,
    now: Optional[datetime] = None,
) -> None:
    """
    Write a transaction's delta back to the item counters.

    TRANSFER applies both legs (source -q, destination +q, net zero) and
    relocates the item to the destination. RECEIPT with a unit cost
    refreshes standard_cost_cents.
    """
    now = now or utcnow()
    tx_type = TransactionType(tx.transaction_type)

    item.current_stock = (item.current_stock or 0) + stock_impact(tx, item)

    if tx_type is TransactionType.TRANSFER:
        _, destination_delta = transfer_legs(tx)
        item.location_id = tx.destination_location_id
        item.current_stock += destination_delta

    if tx_type is TransactionType.RECEIPT and tx.unit_cost_cents is not None:
        item.standard_cost_cents = tx.unit_cost_cents

    if item.current_stock < 0:
        raise RuleViolation(
            ViolationKind.WOULD_GO_NEGATIVE,
            f"Transaction {tx.transaction_number} would leave item {item.part_number} with negative stock",
        )

    item.last_movement = now
    item.updated_by = actor


def _revalidate_sufficiency(tx: InventoryTransaction, item: InventoryItem) -> None:
    """Outbound quantities and counted totals are re-checked against the item as it is now."""
    tx_type = TransactionType(tx.transaction_type)
    available = available_stock_at(item, tx.source_location_id)

    if tx_type in (TransactionType.ISSUE, TransactionType.TRANSFER) and available < tx.quantity:
        raise RuleViolation(
            ViolationKind.INSUFFICIENT_STOCK,
            f"Insufficient stock. Available: {available}, Requested: {tx.quantity}",
        )
    if tx_type is TransactionType.ADJUSTMENT and tx.quantity < 0 and available < abs(tx.quantity):
        raise RuleViolation(
            ViolationKind.WOULD_GO_NEGATIVE,
            f"Cannot adjust below zero stock. Available: {available}, Adjustment: {tx.quantity}",
        )
    if tx_type is TransactionType.CYCLE_COUNT:
        validate_counted_quantity(item, tx.quantity)


def approve(
    transaction_id: int,
    actor: str,
    *,
    role: Optional[str] = None,
) -> InventoryTransaction:
    """
    PENDING -> APPROVED.

    When role is given the transaction value is checked against that role's
    approval limit first.

    Raises:
        NotFoundError, RuleViolation(InvalidStateTransition | ExceedsApprovalLimit | UnknownRole)
    """
    tx = _get_for_update(transaction_id)
    validate_state_transition(tx.status, S.APPROVED)
    if role is not None:
        validate_approval_limit(tx, role)

    tx.status = S.APPROVED
    tx.approved_by = actor
    tx.approved_at = utcnow()
    db.session.commit()

    current_app.logger.info("Transaction %s approved by %s", tx.transaction_number, actor)
    return tx


def process(transaction_id: int, actor: str) -> InventoryTransaction:
    """
    APPROVED -> PROCESSING -> COMPLETED, writing the stock delta to the item.

    If stock re-validation fails the transaction is committed as FAILED
    (reason appended to notes) and the RuleViolation is re-raised.

    Raises:
        NotFoundError, RuleViolation, ConcurrencyConflict
    """
    tx = _get_for_update(transaction_id)
    validate_state_transition(tx.status, S.PROCESSING)
    tx.status = S.PROCESSING

    item = _get_item_for_update(tx.inventory_item_id)
    now = utcnow()
    try:
        _revalidate_sufficiency(tx, item)
        apply_stock_mutation(tx, item, actor, now=now)
    except RuleViolation as exc:
        db.session.rollback()
        tx = get_transaction(transaction_id)
        tx.status = S.FAILED
        tx.processed_by = actor
        tx.processed_at = now
        tx.notes = append_note(tx.notes, f"Failed: {exc.message}")
        db.session.commit()
        current_app.logger.warning("Transaction %s failed: %s", tx.transaction_number, exc.message)
        raise

    validate_state_transition(tx.status, S.COMPLETED)
    tx.status = S.COMPLETED
    tx.processed_by = actor
    tx.processed_at = now
    commit_or_conflict()

    current_app.logger.info("Transaction %s processed by %s", tx.transaction_number, actor)
    return tx


def cancel(transaction_id: int, reason: Optional[str], actor: str) -> InventoryTransaction:
    """
    Cancel a transaction that has not been completed.

    Raises:
        RuleViolation(InvalidStateTransition): COMPLETED, CANCELLED, or any
            status the transition table does not allow to cancel
    """
    tx = _get_for_update(transaction_id)
    if tx.status in (S.COMPLETED, S.CANCELLED):
        raise RuleViolation(
            ViolationKind.INVALID_STATE_TRANSITION,
            f"Cannot cancel transaction {tx.transaction_number}: status is '{tx.status.value}'",
        )
    validate_state_transition(tx.status, S.CANCELLED)

    tx.status = S.CANCELLED
    tx.notes = append_note(tx.notes, f"Cancelled: {(reason or '').strip()}")
    db.session.commit()

    current_app.logger.info("Transaction %s cancelled by %s", tx.transaction_number, actor)
    return tx


def retry(transaction_id: int, actor: str) -> InventoryTransaction:
    """FAILED -> PENDING; the transaction must be approved again."""
    tx = _get_for_update(transaction_id)
    validate_state_transition(tx.status, S.PENDING)

    tx.status = S.PENDING
    tx.approved_by = None
    tx.approved_at = None
    tx.processed_by = None
    tx.processed_at = None
    tx.notes = append_note(tx.notes, f"Retry requested by {actor}")
    db.session.commit()
    return tx


MODIFIABLE_FIELDS = {
    "quantity",
    "unit_cost_cents",
    "source_location_id",
    "destination_location_id",
    "reference_number",
    "reference_type",
    "adjustment_reason",
    "notes",
}

# Editing any of these on an APPROVED transaction sends it back to PENDING
APPROVAL_FIELDS = {"quantity", "unit_cost_cents", "source_location_id", "destination_location_id"}


def modify(transaction_id: int, changes: dict, actor: str) -> InventoryTransaction:
    """
    Edit a transaction that has not started processing.

    The edited transaction is re-validated as a fresh request. An APPROVED
    transaction whose quantity, unit cost or locations change loses its
    approval and returns to PENDING.

    Raises:
        RuleViolation(TransactionLocked): COMPLETED, PROCESSING or CANCELLED
    """
    tx = _get_for_update(transaction_id)
    validate_modification(tx)

    unknown = set(changes) - MODIFIABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be modified: {', '.join(sorted(unknown))}")

    merged = {field: changes.get(field, getattr(tx, field)) for field in MODIFIABLE_FIELDS}
    merged["inventory_item_id"] = tx.inventory_item_id
    validate_request(build_request(tx.transaction_type, **merged))

    reapprove = tx.status is S.APPROVED and any(
        field in APPROVAL_FIELDS and value != getattr(tx, field) for field, value in changes.items()
    )

    for key, value in changes.items():
        setattr(tx, key, value)
    if reapprove:
        tx.status = S.PENDING
        tx.approved_by = None
        tx.approved_at = None
        tx.notes = append_note(tx.notes, f"Approval withdrawn: modified by {actor}")
    db.session.commit()

    current_app.logger.info("Transaction %s modified by %s", tx.transaction_number, actor)
    return tx


def bulk_process(transaction_ids: Iterable[int], actor: str) -> list[InventoryTransaction]:
    """
    Process transactions one at a time, stopping at the first failure.

    Earlier successes stay committed; the batch is not atomic.

    Raises:
        RuleViolation naming the transaction that failed
    """
    processed: list[InventoryTransaction] = []
    for transaction_id in transaction_ids:
        try:
            processed.append(run_with_retry(lambda: process(transaction_id, actor)))
        except ConcurrencyConflict:
            raise
        except RuleViolation as exc:
            current_app.logger.warning(
                "Bulk processing stopped at transaction %s after %d successes", transaction_id, len(processed)
            )
            raise exc.prefixed(f"Transaction {transaction_id}") from exc
    return processed


def transactions_by_status(
    status: TransactionStatus | str,
    *,
    item_id: int | None = None,
    limit: int = 200,
) -> list[InventoryTransaction]:
    """
    Transactions in one lifecycle status, newest first.

    USAGE EXAMPLES:
    - Approval queue: transactions_by_status("PENDING")
    - Ready to process: transactions_by_status("APPROVED")
    - Needs attention: transactions_by_status("FAILED")
    """
    q = InventoryTransaction.query.filter_by(status=TransactionStatus(status))
    if item_id is not None:
        q = q.filter_by(inventory_item_id=item_id)
    q = q.order_by(InventoryTransaction.initiated_at.desc(), InventoryTransaction.id.desc())
    return q.limit(limit).all()
