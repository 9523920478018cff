# Overview: Service-layer operations for recording and querying inventory transactions.

"""
Recording entry point for every transaction type.

record_transaction() validates the request, allocates the transaction
number, and then either:
- "direct":  applies the stock delta now and stores the row COMPLETED, or
- "pending": stores the row PENDING without touching stock (the lifecycle
             service applies it when the transaction is processed).
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import or_

from ..errors import ConcurrencyConflict, NotFoundError, RuleViolation
from ..extensions import db
from ..models import InventoryItem, InventoryTransaction, TransactionStatus, TransactionType
from ..rules import current_rules
from ..time_utils import utcnow
from ..validation import ValidationError
from .concurrency import check_precondition, commit_or_conflict
from .lifecycle_service import apply_stock_mutation, generate_transaction_number
from .transaction_rules import (
    AdjustmentRequest,
    CycleCountRequest,
    IssueRequest,
    ReceiptRequest,
    ReturnRequest,
    TransactionRequest,
    TransferRequest,
    validate_batch,
    validate_request,
)


WORKFLOW_DIRECT = "direct"
WORKFLOW_PENDING = "pending"
WORKFLOWS = {WORKFLOW_DIRECT, WORKFLOW_PENDING}


def record_transaction(
    request: TransactionRequest,
    actor: str,
    *,
    workflow: str = WORKFLOW_DIRECT,
    if_match: Optional[str] = None,
    adjustment_ceiling: Optional[int] = None,
    now: Optional[datetime] = None,
) -> InventoryTransaction:
    """
    Validate and store a transaction.

    Args:
        request: Typed request (ReceiptRequest, IssueRequest, ...)
        actor: Identifier of the user recording it
        workflow: "direct" (COMPLETED immediately) or "pending"
        if_match: Optional item ETag; a stale tag rejects the write
        adjustment_ceiling: Positive adjustment cap override (bulk path)
        now: Clock override, used for the number and timestamps

    Raises:
        RuleViolation / NotFoundError: validation failed, nothing written
        ConcurrencyConflict: the item changed underneath the write
    """
    if workflow not in WORKFLOWS:
        raise ValidationError(f"Unknown workflow '{workflow}'. Must be one of: {', '.join(sorted(WORKFLOWS))}")

    now = now or utcnow()

    item = db.session.get(InventoryItem, request.inventory_item_id)
    if item is None:
        raise NotFoundError(f"Inventory item {request.inventory_item_id} not found")
    check_precondition(if_match, item)

    validate_request(request, adjustment_ceiling=adjustment_ceiling)

    tx = InventoryTransaction(
        transaction_number=generate_transaction_number(request.transaction_type, now=now),
        transaction_type=request.transaction_type,
        status=TransactionStatus.PENDING,
        inventory_item_id=request.inventory_item_id,
        source_location_id=request.source_location_id,
        destination_location_id=request.destination_location_id,
        quantity=request.quantity,
        unit_cost_cents=request.unit_cost_cents,
        reference_number=request.reference_number,
        reference_type=request.reference_type,
        adjustment_reason=request.adjustment_reason,
        notes=request.notes,
        initiated_by=actor,
        initiated_at=now,
    )
    db.session.add(tx)

    if workflow == WORKFLOW_DIRECT:
        try:
            apply_stock_mutation(tx, item, actor, now=now)
        except RuleViolation:
            db.session.rollback()
            raise
        tx.status = TransactionStatus.COMPLETED
        tx.processed_by = actor
        tx.processed_at = now

    commit_or_conflict()

    current_app.logger.info(
        "Recorded %s %s (%s) for item %s by %s",
        tx.transaction_type.value, tx.transaction_number, tx.status.value, item.part_number, actor,
    )
    return tx


def record_receipt(actor: str, **fields) -> InventoryTransaction:
    workflow = fields.pop("workflow", WORKFLOW_DIRECT)
    return record_transaction(ReceiptRequest(**fields), actor, workflow=workflow)


def record_issue(actor: str, **fields) -> InventoryTransaction:
    workflow = fields.pop("workflow", WORKFLOW_DIRECT)
    return record_transaction(IssueRequest(**fields), actor, workflow=workflow)


def record_transfer(actor: str, **fields) -> InventoryTransaction:
    workflow = fields.pop("workflow", WORKFLOW_DIRECT)
    return record_transaction(TransferRequest(**fields), actor, workflow=workflow)


def record_adjustment(actor: str, **fields) -> InventoryTransaction:
    workflow = fields.pop("workflow", WORKFLOW_DIRECT)
    return record_transaction(AdjustmentRequest(**fields), actor, workflow=workflow)


def record_cycle_count(actor: str, **fields) -> InventoryTransaction:
    workflow = fields.pop("workflow", WORKFLOW_DIRECT)
    return record_transaction(CycleCountRequest(**fields), actor, workflow=workflow)


def record_return(actor: str, **fields) -> InventoryTransaction:
    workflow = fields.pop("workflow", WORKFLOW_DIRECT)
    return record_transaction(ReturnRequest(**fields), actor, workflow=workflow)


def bulk_record(requests: Iterable[TransactionRequest], actor: str) -> list[InventoryTransaction]:
    """
    Record a batch on the direct path, one commit per transaction.

    The batch is validated up front (size, duplicates, quantities, and each
    request under the bulk adjustment ceiling). Recording stops at the first
    failure; earlier transactions stay committed.
    """
    requests = list(requests)
    rules = current_rules()
    validate_batch(requests, validate_each=True, rules=rules)

    recorded: list[InventoryTransaction] = []
    for index, request in enumerate(requests):
        try:
            recorded.append(
                record_transaction(request, actor, adjustment_ceiling=rules.bulk_adjustment_ceiling)
            )
        except ConcurrencyConflict:
            raise
        except RuleViolation as exc:
            raise exc.prefixed(f"Batch entry {index + 1}") from exc
    return recorded


def get_by_number(transaction_number: str) -> InventoryTransaction:
    tx = InventoryTransaction.query.filter_by(transaction_number=transaction_number).first()
    if tx is None:
        raise NotFoundError(f"Transaction '{transaction_number}' not found")
    return tx


def list_transactions(
    *,
    status: TransactionStatus | str | None = None,
    tx_type: TransactionType | str | None = None,
    item_id: int | None = None,
    location_id: int | None = None,
    limit: int = 200,
) -> list[InventoryTransaction]:
    q = InventoryTransaction.query
    if status is not None:
        q = q.filter_by(status=TransactionStatus(status))
    if tx_type is not None:
        q = q.filter_by(transaction_type=TransactionType(tx_type))
    if item_id is not None:
        q = q.filter_by(inventory_item_id=item_id)
    if location_id is not None:
        q = q.filter(
            or_(
                InventoryTransaction.source_location_id == location_id,
                InventoryTransaction.destination_location_id == location_id,
            )
        )
    q = q.order_by(InventoryTransaction.initiated_at.desc(), InventoryTransaction.id.desc())
    return q.limit(limit).all()


def pending_transactions() -> list[InventoryTransaction]:
    return (
        InventoryTransaction.query.filter_by(status=TransactionStatus.PENDING)
        .order_by(InventoryTransaction.initiated_at.asc(), InventoryTransaction.id.asc())
        .all()
    )


def transaction_summary(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict:
    """Counts per status plus total and average value (cents) over initiated_at in [start, end]."""
    q = InventoryTransaction.query
    if start is not None:
        q = q.filter(InventoryTransaction.initiated_at >= start)
    if end is not None:
        q = q.filter(InventoryTransaction.initiated_at <= end)
    rows = q.all()

    by_status = {status.value: 0 for status in TransactionStatus}
    by_type = {tx_type.value: 0 for tx_type in TransactionType}
    total_value = 0
    for tx in rows:
        by_status[tx.status.value] += 1
        by_type[tx.transaction_type.value] += 1
        total_value += abs(tx.total_cost_cents)

    return {
        "total_transactions": len(rows),
        "by_status": by_status,
        "by_type": by_type,
        "total_value_cents": total_value,
        "average_value_cents": round(total_value / len(rows)) if rows else 0,
    }
