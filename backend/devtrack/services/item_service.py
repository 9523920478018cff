# Overview: Service-layer operations for inventory items; encapsulates business logic and database work.

"""
Inventory item master data and direct stock maintenance.

Items are never hard-deleted: deactivate_item() flips is_active, and only
when no PENDING/APPROVED/PROCESSING transaction references the item.

Every write that a client may race on (update, deactivate, direct stock
change, scan stamp) accepts an optional If-Match tag and commits through
commit_or_conflict(), so both the ETag precondition and the version column
guard it.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import func

from ..errors import NotFoundError, RuleViolation, ViolationKind
from ..extensions import db
from ..models import (
    InventoryItem,
    InventoryTransaction,
    Location,
    Supplier,
    TransactionStatus,
    TransactionType,
)
from ..rules import current_rules
from ..time_utils import utcnow, window_start
from ..validation import ValidationError, enforce_rules_item
from . import barcode_service
from .concurrency import check_precondition, commit_or_conflict


ACTIVE_TRANSACTION_STATUSES = (
    TransactionStatus.PENDING,
    TransactionStatus.APPROVED,
    TransactionStatus.PROCESSING,
)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_item(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return item


def get_item_by_barcode(barcode: str) -> InventoryItem:
    item = InventoryItem.query.filter_by(barcode=barcode).first()
    if item is None:
        raise NotFoundError(f"Inventory item not found for barcode '{barcode}'")
    return item


def get_item_by_part_number(part_number: str) -> InventoryItem:
    item = InventoryItem.query.filter_by(part_number=part_number).first()
    if item is None:
        raise NotFoundError(f"Inventory item not found for part number '{part_number}'")
    return item


def items_at_location(location_id: int, *, include_inactive: bool = False) -> list[InventoryItem]:
    q = InventoryItem.query.filter_by(location_id=location_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(InventoryItem.part_number.asc()).all()


def list_items(*, search: str | None = None, include_inactive: bool = False, limit: int = 200) -> list[InventoryItem]:
    q = InventoryItem.query
    if not include_inactive:
        q = q.filter_by(is_active=True)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            InventoryItem.part_number.ilike(pattern)
            | InventoryItem.description.ilike(pattern)
            | InventoryItem.barcode.ilike(pattern)
        )
    return q.order_by(InventoryItem.part_number.asc()).limit(limit).all()


# ---------------------------------------------------------------------------
# Item rules
# ---------------------------------------------------------------------------

def validate_barcode_unique(barcode: str, *, exclude_item_id: int | None = None) -> None:
    barcode_service.validate_format(barcode)
    q = InventoryItem.query.filter(InventoryItem.barcode == barcode)
    if exclude_item_id is not None:
        q = q.filter(InventoryItem.id != exclude_item_id)
    if q.first() is not None:
        raise RuleViolation(ViolationKind.DUPLICATE_BARCODE, f"Barcode '{barcode}' is already in use")


def validate_part_number_unique(part_number: str | None, *, exclude_item_id: int | None = None) -> None:
    if part_number is None or not part_number.strip():
        raise RuleViolation(ViolationKind.INVALID_PART_NUMBER, "Part number cannot be empty")
    q = InventoryItem.query.filter(InventoryItem.part_number == part_number)
    if exclude_item_id is not None:
        q = q.filter(InventoryItem.id != exclude_item_id)
    if q.first() is not None:
        raise RuleViolation(ViolationKind.DUPLICATE_PART_NUMBER, f"Part number '{part_number}' already exists")


def validate_stock_bounds(minimum_stock: int, maximum_stock: int) -> None:
    # maximum_stock == 0 means no maximum is configured
    if maximum_stock and minimum_stock > maximum_stock:
        raise RuleViolation(
            ViolationKind.INVALID_STOCK_BOUNDS,
            f"Minimum stock ({minimum_stock}) cannot exceed maximum stock ({maximum_stock})",
        )


def validate_stock_level(item: InventoryItem, new_level: int) -> None:
    if new_level < 0:
        raise RuleViolation(ViolationKind.INVALID_STOCK_LEVEL, "Stock level cannot be negative")
    if new_level < (item.reserved_stock or 0):
        raise RuleViolation(
            ViolationKind.INVALID_STOCK_LEVEL,
            f"Stock level ({new_level}) cannot drop below reserved stock ({item.reserved_stock})",
        )
    if item.maximum_stock and new_level > item.maximum_stock:
        raise RuleViolation(
            ViolationKind.EXCEEDS_MAXIMUM_STOCK,
            f"Stock level ({new_level}) exceeds maximum allowed ({item.maximum_stock})",
        )


def validate_item_deactivation(item_id: int) -> None:
    active = (
        InventoryTransaction.query
        .filter(InventoryTransaction.inventory_item_id == item_id)
        .filter(InventoryTransaction.status.in_(ACTIVE_TRANSACTION_STATUSES))
        .first()
    )
    if active is not None:
        raise RuleViolation(
            ViolationKind.HAS_ACTIVE_TRANSACTIONS,
            "Cannot deactivate an item with pending, approved or processing transactions",
        )


def _require_location(location_id) -> None:
    if location_id is None or db.session.get(Location, location_id) is None:
        raise NotFoundError(f"Location {location_id} not found")


def _require_supplier(supplier_id) -> None:
    if supplier_id is not None and db.session.get(Supplier, supplier_id) is None:
        raise NotFoundError(f"Supplier {supplier_id} not found")


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def create_item(fields: dict, actor: str | None = None) -> InventoryItem:
    """
    Create an item from a validated field dict.

    Raises:
        RuleViolation: DuplicatePartNumber, DuplicateBarcode, InvalidBarcodeFormat,
            InvalidStockBounds
        NotFoundError: unknown location or supplier
    """
    enforce_rules_item(fields)
    validate_part_number_unique(fields.get("part_number"))
    validate_barcode_unique(fields.get("barcode"))
    _require_location(fields.get("location_id"))
    _require_supplier(fields.get("supplier_id"))
    validate_stock_bounds(fields.get("minimum_stock") or 0, fields.get("maximum_stock") or 0)

    item = InventoryItem(**fields)
    item.is_active = True
    item.created_by = actor
    db.session.add(item)
    db.session.commit()

    current_app.logger.info("Created item %s (%s)", item.part_number, item.id)
    return item


# Stock and location only change through transactions or update_stock().
UPDATABLE_ITEM_FIELDS = {
    "part_number", "barcode", "description", "category", "unit_of_measure",
    "minimum_stock", "maximum_stock", "standard_cost_cents", "selling_price_cents",
    "supplier_id", "notes",
}


def update_item(
    item_id: int,
    changes: dict,
    actor: str | None = None,
    *,
    if_match: str | None = None,
) -> InventoryItem:
    item = get_item(item_id)
    check_precondition(if_match, item)

    locked = set(changes) - UPDATABLE_ITEM_FIELDS
    if locked:
        raise ValidationError(
            f"Field not allowed: {', '.join(sorted(locked))} (use a transaction to move or count stock)"
        )

    enforce_rules_item(changes)
    if "part_number" in changes and changes["part_number"] != item.part_number:
        validate_part_number_unique(changes["part_number"], exclude_item_id=item.id)
    if "barcode" in changes and changes["barcode"] != item.barcode:
        validate_barcode_unique(changes["barcode"], exclude_item_id=item.id)
    if "supplier_id" in changes:
        _require_supplier(changes["supplier_id"])
    validate_stock_bounds(
        changes.get("minimum_stock", item.minimum_stock) or 0,
        changes.get("maximum_stock", item.maximum_stock) or 0,
    )

    for key, value in changes.items():
        setattr(item, key, value)
    item.updated_by = actor
    commit_or_conflict()
    return item


def deactivate_item(item_id: int, actor: str | None = None, *, if_match: str | None = None) -> InventoryItem:
    item = get_item(item_id)
    check_precondition(if_match, item)
    validate_item_deactivation(item.id)

    item.is_active = False
    item.updated_by = actor
    commit_or_conflict()

    current_app.logger.info("Deactivated item %s by %s", item.part_number, actor)
    return item


def update_stock(
    item_id: int,
    change: int,
    reason: str | None,
    actor: str | None = None,
    *,
    if_match: str | None = None,
) -> InventoryItem:
    """
    Direct counter change outside the transaction workflow.

    Raises:
        RuleViolation: ReasonRequired, InvalidStockLevel, ExceedsMaximumStock
        ConcurrencyConflict: stale If-Match or concurrent write
    """
    if not reason or not reason.strip():
        raise RuleViolation(ViolationKind.REASON_REQUIRED, "A reason is required for stock changes")

    item = get_item(item_id)
    check_precondition(if_match, item)

    new_level = (item.current_stock or 0) + change
    validate_stock_level(item, new_level)

    item.current_stock = new_level
    item.last_movement = utcnow()
    item.updated_by = actor
    commit_or_conflict()

    current_app.logger.info(
        "Stock for %s changed by %+d to %d (%s) by %s", item.part_number, change, new_level, reason, actor
    )
    return item


def record_barcode_scan(barcode: str, actor: str | None = None, *, confidence: int = 100) -> InventoryItem:
    barcode_service.validate_scanning_quality(confidence, len(barcode or ""))
    item = get_item_by_barcode(barcode)

    item.last_movement = utcnow()
    item.updated_by = actor
    commit_or_conflict()
    return item


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def low_stock_items(*, threshold: int | None = None) -> list[InventoryItem]:
    """
    Active items at or below their reorder level.

    threshold=None compares against each item's minimum_stock; an explicit
    threshold applies the same cut-off to every item.
    """
    q = InventoryItem.query.filter_by(is_active=True)
    if threshold is None:
        q = q.filter(InventoryItem.current_stock <= InventoryItem.minimum_stock)
    else:
        q = q.filter(InventoryItem.current_stock <= threshold)
    return q.order_by(InventoryItem.current_stock.asc(), InventoryItem.part_number.asc()).all()


def calculate_reorder_point(item_id: int, *, now: Optional[datetime] = None) -> int:
    """
    ceil(average daily usage * lead time days * safety factor).

    Usage is the quantity of COMPLETED ISSUE transactions processed inside
    the reorder window, divided by the window length in days. Lead time
    comes from the item's supplier, falling back to the configured default.

    Raises:
        RuleViolation(InsufficientHistory): no qualifying issues in the window
    """
    rules = current_rules()
    item = get_item(item_id)
    since = window_start(rules.reorder_window_days, now=now)

    total_issued = (
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity), 0))
        .filter(
            InventoryTransaction.inventory_item_id == item.id,
            InventoryTransaction.transaction_type == TransactionType.ISSUE,
            InventoryTransaction.status == TransactionStatus.COMPLETED,
            InventoryTransaction.processed_at >= since,
        )
        .scalar()
    )
    if not total_issued:
        raise RuleViolation(
            ViolationKind.INSUFFICIENT_HISTORY,
            "Insufficient transaction history to calculate reorder point",
        )

    average_daily_usage = total_issued / rules.reorder_window_days
    lead_time = rules.default_lead_time_days
    if item.supplier is not None and item.supplier.lead_time_days is not None:
        lead_time = item.supplier.lead_time_days

    return math.ceil(average_daily_usage * lead_time * rules.reorder_safety_factor)


def inventory_valuation() -> dict:
    items = InventoryItem.query.filter_by(is_active=True).all()
    total_value = sum((i.current_stock or 0) * (i.standard_cost_cents or 0) for i in items)
    return {
        "total_value_cents": total_value,
        "total_items": len(items),
        "average_value_cents": round(total_value / len(items)) if items else 0,
    }
