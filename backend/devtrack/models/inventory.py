from __future__ import annotations

import enum

from ..extensions import db
from devtrack.time_utils import to_utc_z, utcnow


class TransactionType(str, enum.Enum):
    RECEIPT = "RECEIPT"
    ISSUE = "ISSUE"
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"
    CYCLE_COUNT = "CYCLE_COUNT"
    RETURN = "RETURN"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class InventoryItem(db.Model):
    """
    Tracked inventory item with live stock counters.

    Stock is stored as counters (current_stock, reserved_stock) and mutated
    in place by transactions; it is not derived by replaying history.

    CONCURRENCY:
    version_id is the SQLAlchemy version_id_col. Every UPDATE is issued as
    "... WHERE id = ? AND version_id = ?", so a concurrent writer that already
    bumped the row makes the flush fail with StaleDataError instead of
    silently overwriting (see services/concurrency.py).

    updated_at is stamped in Python (not by the server) so the ETag computed
    from it is available right after commit without a refresh round trip.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_location_active", "location_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    part_number = db.Column(db.String(50), nullable=False, unique=True)
    barcode = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(50), nullable=True)
    unit_of_measure = db.Column(db.String(20), nullable=False, default="Each")

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)
    minimum_stock = db.Column(db.Integer, nullable=False, default=0)
    # 0 means "no maximum configured"
    maximum_stock = db.Column(db.Integer, nullable=False, default=0)

    # Authoritative storage in cents
    standard_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_movement = db.Column(db.DateTime, nullable=True)

    created_by = db.Column(db.String(100), nullable=True)
    updated_by = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow)

    location = db.relationship("Location", foreign_keys=[location_id])
    supplier = db.relationship("Supplier", foreign_keys=[supplier_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} part_number={self.part_number!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "part_number": self.part_number,
            "barcode": self.barcode,
            "description": self.description,
            "category": self.category,
            "unit_of_measure": self.unit_of_measure,
            "current_stock": self.current_stock,
            "reserved_stock": self.reserved_stock,
            "available_stock": self.current_stock - self.reserved_stock,
            "minimum_stock": self.minimum_stock,
            "maximum_stock": self.maximum_stock,
            "standard_cost_cents": self.standard_cost_cents,
            "selling_price_cents": self.selling_price_cents,
            "location_id": self.location_id,
            "supplier_id": self.supplier_id,
            "is_active": self.is_active,
            "last_movement": to_utc_z(self.last_movement),
            "notes": self.notes,
            "version_id": self.version_id,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    One recorded stock movement.

    quantity is signed for ADJUSTMENT, the counted total for CYCLE_COUNT,
    and positive for every other type. Rows are mutated through the
    lifecycle (services/lifecycle_service.py); once COMPLETED only the
    notes field may still change.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_inventory_transactions_item_status", "inventory_item_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    transaction_number = db.Column(db.String(32), nullable=False, unique=True)
    transaction_type = db.Column(
        db.Enum(TransactionType, native_enum=False, length=32),
        nullable=False,
        index=True,
    )
    status = db.Column(
        db.Enum(TransactionStatus, native_enum=False, length=16),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True,
    )

    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    source_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    destination_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    reference_number = db.Column(db.String(50), nullable=True)
    reference_type = db.Column(db.String(50), nullable=True)
    adjustment_reason = db.Column(db.String(200), nullable=True)

    initiated_by = db.Column(db.String(100), nullable=True)
    initiated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    approved_by = db.Column(db.String(100), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    processed_by = db.Column(db.String(100), nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow)

    item = db.relationship("InventoryItem", foreign_keys=[inventory_item_id])
    source_location = db.relationship("Location", foreign_keys=[source_location_id])
    destination_location = db.relationship("Location", foreign_keys=[destination_location_id])

    @property
    def total_cost_cents(self) -> int:
        return (self.unit_cost_cents or 0) * self.quantity

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction id={self.id} number={self.transaction_number!r} "
            f"type={self.transaction_type} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "transaction_type": self.transaction_type.value if self.transaction_type else None,
            "status": self.status.value if self.status else None,
            "inventory_item_id": self.inventory_item_id,
            "source_location_id": self.source_location_id,
            "destination_location_id": self.destination_location_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "reference_number": self.reference_number,
            "reference_type": self.reference_type,
            "adjustment_reason": self.adjustment_reason,
            "initiated_by": self.initiated_by,
            "initiated_at": to_utc_z(self.initiated_at),
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "processed_by": self.processed_by,
            "processed_at": to_utc_z(self.processed_at),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
