# Overview: Service-layer validation for proposed inventory transactions; read-only database work.

"""
DeviceTrack Transaction Rules

================================================================================
PURPOSE: Gatekeeper that validates a proposed transaction before it is
allowed to mutate stock
================================================================================

Every validate_* function only reads (items, locations) and raises on the
first violation; nothing here writes to the session, so an aborted
validation leaves no partial state.

PER-TYPE RULES:
    RECEIPT      0 < qty <= max_receipt_quantity, item, destination exists
                 and can receive
    ISSUE        qty > 0, item, source exists, available stock at source
    TRANSFER     qty > 0, source != destination, item, both locations,
                 available stock at source, destination can receive
    ADJUSTMENT   reason required, qty != 0, item, location, negative
                 adjustments limited by available stock, "unreasonable"
                 guard against current stock and a positive ceiling
    CYCLE_COUNT  counted qty >= 0, item, location holds the item
    RETURN       qty > 0, item, destination exists and can receive

Adjustments and cycle counts carry their location in source_location_id.

STATE MACHINE (see TRANSITIONS):
    PENDING    -> APPROVED, CANCELLED
    APPROVED   -> PROCESSING, CANCELLED
    PROCESSING -> COMPLETED, FAILED
    FAILED     -> PENDING (retry)
    COMPLETED, CANCELLED are terminal
================================================================================
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import ClassVar, Iterable, Optional

from ..errors import NotFoundError, RuleViolation, ViolationKind
from ..extensions import db
from ..models import (
    InventoryItem,
    InventoryTransaction,
    Location,
    TransactionStatus,
    TransactionType,
)
from ..rules import RulesConfig, current_rules
from .stock_ledger import available_stock_at


S = TransactionStatus

TRANSITIONS: dict[TransactionStatus, frozenset] = {
    S.PENDING: frozenset({S.APPROVED, S.CANCELLED}),
    S.APPROVED: frozenset({S.PROCESSING, S.CANCELLED}),
    S.PROCESSING: frozenset({S.COMPLETED, S.FAILED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.FAILED: frozenset({S.PENDING}),
}

LOCKED_STATUSES = frozenset({S.COMPLETED, S.PROCESSING, S.CANCELLED})


@dataclass
class TransactionRequest:
    inventory_item_id: int
    quantity: int
    source_location_id: Optional[int] = None
    destination_location_id: Optional[int] = None
    unit_cost_cents: Optional[int] = None
    reference_number: Optional[str] = None
    reference_type: Optional[str] = None
    adjustment_reason: Optional[str] = None
    notes: Optional[str] = None

    transaction_type: ClassVar[TransactionType]


@dataclass
class ReceiptRequest(TransactionRequest):
    transaction_type: ClassVar[TransactionType] = TransactionType.RECEIPT


@dataclass
class IssueRequest(TransactionRequest):
    transaction_type: ClassVar[TransactionType] = TransactionType.ISSUE


@dataclass
class TransferRequest(TransactionRequest):
    transaction_type: ClassVar[TransactionType] = TransactionType.TRANSFER


@dataclass
class AdjustmentRequest(TransactionRequest):
    transaction_type: ClassVar[TransactionType] = TransactionType.ADJUSTMENT


@dataclass
class CycleCountRequest(TransactionRequest):
    transaction_type: ClassVar[TransactionType] = TransactionType.CYCLE_COUNT


@dataclass
class ReturnRequest(TransactionRequest):
    transaction_type: ClassVar[TransactionType] = TransactionType.RETURN


REQUEST_TYPES: dict[TransactionType, type] = {
    cls.transaction_type: cls
    for cls in (ReceiptRequest, IssueRequest, TransferRequest, AdjustmentRequest, CycleCountRequest, ReturnRequest)
}


def build_request(tx_type: TransactionType | str, **fields) -> TransactionRequest:
    """Instantiate the request class for a transaction type."""
    if not isinstance(tx_type, TransactionType):
        tx_type = TransactionType(str(tx_type).strip().upper())
    return REQUEST_TYPES[tx_type](**fields)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def _require_item(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return item


def _require_location(location_id: Optional[int], label: str = "Location") -> Location:
    location = db.session.get(Location, location_id) if location_id is not None else None
    if location is None:
        raise NotFoundError(f"{label} {location_id} not found")
    return location


def _require_receivable(location: Location, rules: RulesConfig, label: str = "Location") -> None:
    if location.location_type not in rules.receivable_location_types:
        raise RuleViolation(
            ViolationKind.LOCATION_CANNOT_RECEIVE,
            f"{label} type '{location.location_type.value}' cannot receive inventory items",
        )


def _require_positive(quantity: int, noun: str) -> None:
    if quantity is None or quantity <= 0:
        raise RuleViolation(ViolationKind.INVALID_QUANTITY, f"{noun} quantity must be greater than zero")


# ---------------------------------------------------------------------------
# Per-type validation
# ---------------------------------------------------------------------------

def validate_receipt(req: TransactionRequest, *, rules: RulesConfig | None = None) -> None:
    rules = rules or current_rules()
    _require_positive(req.quantity, "Receipt")
    if req.quantity > rules.max_receipt_quantity:
        raise RuleViolation(
            ViolationKind.QUANTITY_EXCEEDS_LIMIT,
            f"Receipt quantity exceeds reasonable limits ({rules.max_receipt_quantity})",
        )
    _require_item(req.inventory_item_id)
    destination = _require_location(req.destination_location_id, "Destination location")
    _require_receivable(destination, rules)


def validate_issue(req: TransactionRequest, *, rules: RulesConfig | None = None) -> None:
    _require_positive(req.quantity, "Issue")
    item = _require_item(req.inventory_item_id)
    _require_location(req.source_location_id, "Source location")

    available = available_stock_at(item, req.source_location_id)
    if available < req.quantity:
        raise RuleViolation(
            ViolationKind.INSUFFICIENT_STOCK,
            f"Insufficient stock. Available: {available}, Requested: {req.quantity}",
        )


def validate_transfer(req: TransactionRequest, *, rules: RulesConfig | None = None) -> None:
    rules = rules or current_rules()
    _require_positive(req.quantity, "Transfer")
    if req.source_location_id == req.destination_location_id:
        raise RuleViolation(ViolationKind.SAME_LOCATION, "Source and destination locations cannot be the same")

    item = _require_item(req.inventory_item_id)
    _require_location(req.source_location_id, "Source location")
    destination = _require_location(req.destination_location_id, "Destination location")

    available = available_stock_at(item, req.source_location_id)
    if available < req.quantity:
        raise RuleViolation(
            ViolationKind.INSUFFICIENT_STOCK,
            f"Insufficient stock at source location. Available: {available}, Requested: {req.quantity}",
        )
    _require_receivable(destination, rules, "Destination location")


def validate_adjustment(
    req: TransactionRequest,
    *,
    ceiling: int | None = None,
    rules: RulesConfig | None = None,
) -> None:
    """
    Validate a signed stock adjustment at req.source_location_id.

    ceiling caps positive adjustments; it defaults to
    rules.adjustment_ceiling (the bulk path passes bulk_adjustment_ceiling).
    """
    rules = rules or current_rules()
    ceiling = rules.adjustment_ceiling if ceiling is None else ceiling

    if not req.adjustment_reason or not req.adjustment_reason.strip():
        raise RuleViolation(ViolationKind.REASON_REQUIRED, "Adjustment reason is required")
    if not req.quantity:
        raise RuleViolation(ViolationKind.INVALID_QUANTITY, "Adjustment quantity cannot be zero")

    item = _require_item(req.inventory_item_id)
    _require_location(req.source_location_id)

    if req.quantity < 0:
        available = available_stock_at(item, req.source_location_id)
        if available < abs(req.quantity):
            raise RuleViolation(
                ViolationKind.WOULD_GO_NEGATIVE,
                f"Cannot adjust below zero stock. Available: {available}, Adjustment: {req.quantity}",
            )

    current = item.current_stock or 0
    if current > 0 and abs(req.quantity) > current * 2:
        raise RuleViolation(
            ViolationKind.UNREASONABLE_ADJUSTMENT,
            "Adjustment quantity seems unreasonably large compared to current stock",
        )

    if req.quantity > ceiling:
        raise RuleViolation(
            ViolationKind.UNREASONABLE_ADJUSTMENT,
            f"Adjustment quantity exceeds the limit of {ceiling} units",
        )


def validate_counted_quantity(item, counted: int) -> None:
    reserved = item.reserved_stock or 0
    if counted < reserved:
        raise RuleViolation(
            ViolationKind.INVALID_STOCK_LEVEL,
            f"Counted quantity ({counted}) cannot be below reserved stock ({reserved})",
        )


def validate_cycle_count(req: TransactionRequest, *, rules: RulesConfig | None = None) -> None:
    """req.quantity is the counted total, not a delta."""
    if req.quantity is None or req.quantity < 0:
        raise RuleViolation(ViolationKind.INVALID_QUANTITY, "Counted quantity cannot be negative")
    item = _require_item(req.inventory_item_id)
    _require_location(req.source_location_id)
    if item.location_id != req.source_location_id:
        raise RuleViolation(
            ViolationKind.ITEM_NOT_AT_LOCATION,
            f"Item {item.part_number} is not stored at location {req.source_location_id}",
        )
    validate_counted_quantity(item, req.quantity)


def validate_return(req: TransactionRequest, *, rules: RulesConfig | None = None) -> None:
    rules = rules or current_rules()
    _require_positive(req.quantity, "Return")
    _require_item(req.inventory_item_id)
    destination = _require_location(req.destination_location_id, "Destination location")
    _require_receivable(destination, rules)


def validate_request(
    req: TransactionRequest,
    *,
    adjustment_ceiling: int | None = None,
    rules: RulesConfig | None = None,
) -> None:
    """Dispatch to the validator for req.transaction_type."""
    rules = rules or current_rules()
    tx_type = req.transaction_type

    if tx_type is TransactionType.RECEIPT:
        validate_receipt(req, rules=rules)
    elif tx_type is TransactionType.ISSUE:
        validate_issue(req, rules=rules)
    elif tx_type is TransactionType.TRANSFER:
        validate_transfer(req, rules=rules)
    elif tx_type is TransactionType.ADJUSTMENT:
        validate_adjustment(req, ceiling=adjustment_ceiling, rules=rules)
    elif tx_type is TransactionType.CYCLE_COUNT:
        validate_cycle_count(req, rules=rules)
    elif tx_type is TransactionType.RETURN:
        validate_return(req, rules=rules)
    else:
        raise ValueError(f"Unsupported transaction type: {tx_type}")


def validate_batch(
    requests: Iterable[TransactionRequest],
    *,
    validate_each: bool = False,
    rules: RulesConfig | None = None,
) -> None:
    """
    Batch-level checks, reported together.

    - at most max_batch_size requests
    - no two requests on the same (item, source, destination)
    - every quantity positive

    With validate_each=True every request is also validated on its own,
    using the bulk adjustment ceiling.
    """
    rules = rules or current_rules()
    requests = list(requests)
    problems: list[tuple[ViolationKind, str]] = []

    if len(requests) > rules.max_batch_size:
        problems.append((
            ViolationKind.BATCH_TOO_LARGE,
            f"Batch size cannot exceed {rules.max_batch_size} transactions",
        ))

    keys = Counter(
        (r.inventory_item_id, r.source_location_id, r.destination_location_id) for r in requests
    )
    if any(count > 1 for count in keys.values()):
        problems.append((
            ViolationKind.DUPLICATE_IN_BATCH,
            "Multiple transactions for the same item and location combination",
        ))

    if any(r.quantity is None or r.quantity <= 0 for r in requests):
        problems.append((ViolationKind.INVALID_QUANTITY, "All transactions must have positive quantity"))

    if problems:
        raise RuleViolation(problems[0][0], "; ".join(message for _, message in problems))

    if validate_each:
        for req in requests:
            validate_request(req, adjustment_ceiling=rules.bulk_adjustment_ceiling, rules=rules)


# ---------------------------------------------------------------------------
# Approval and lifecycle rules
# ---------------------------------------------------------------------------

def validate_approval_limit(
    tx: InventoryTransaction,
    role: Optional[str],
    *,
    rules: RulesConfig | None = None,
) -> None:
    """
    Compare the transaction value against the acting role's ceiling.

    Value is unit_cost_cents * |quantity| (missing cost counts as 0).
    """
    rules = rules or current_rules()
    role_key = (role or "").strip().upper()
    limit = rules.approval_limits_cents.get(role_key)
    if limit is None:
        raise RuleViolation(ViolationKind.UNKNOWN_ROLE, f"Unknown user role: {role}")

    value = (tx.unit_cost_cents or 0) * abs(tx.quantity)
    if value > limit:
        raise RuleViolation(
            ViolationKind.EXCEEDS_APPROVAL_LIMIT,
            f"Transaction value (${value / 100:,.2f}) exceeds approval limit for {role_key} (${limit / 100:,.2f})",
        )


def can_transition(current: TransactionStatus, new: TransactionStatus) -> bool:
    return TransactionStatus(new) in TRANSITIONS.get(TransactionStatus(current), frozenset())


def validate_state_transition(current: TransactionStatus, new: TransactionStatus) -> None:
    if not can_transition(current, new):
        raise RuleViolation(
            ViolationKind.INVALID_STATE_TRANSITION,
            f"Invalid state transition from {TransactionStatus(current).value} to {TransactionStatus(new).value}",
        )


def validate_modification(tx: InventoryTransaction) -> None:
    if tx.status in LOCKED_STATUSES:
        raise RuleViolation(
            ViolationKind.TRANSACTION_LOCKED,
            f"Transaction in status '{tx.status.value}' cannot be modified",
        )
