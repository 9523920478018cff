from __future__ import annotations

import enum

from ..extensions import db
from devtrack.time_utils import to_utc_z, utcnow


class LocationType(str, enum.Enum):
    WAREHOUSE = "WAREHOUSE"
    PRODUCTION_FLOOR = "PRODUCTION_FLOOR"
    CUSTOMER_SITE = "CUSTOMER_SITE"
    SUPPLIER_LOCATION = "SUPPLIER_LOCATION"
    TRANSIT = "TRANSIT"
    QUARANTINE = "QUARANTINE"
    OTHER = "OTHER"


class Location(db.Model):
    """
    Storage location node.

    Locations form a tree through parent_location_id. The parent row holds
    no list of children; children are discovered by query. Tree integrity
    (no cycles, depth, parent/child type compatibility) is enforced by
    services/location_service.py, never by the model.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.Index("ix_locations_parent_code", "parent_location_id", "code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(20), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(200), nullable=True)

    location_type = db.Column(
        db.Enum(LocationType, native_enum=False, length=32),
        nullable=False,
        default=LocationType.WAREHOUSE,
    )
    parent_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    max_capacity = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(100), nullable=True)
    updated_by = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Location id={self.id} code={self.code!r} type={self.location_type}>"

    def display_name(self) -> str:
        return f"{self.code} ({self.name})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "location_type": self.location_type.value if self.location_type else None,
            "parent_location_id": self.parent_location_id,
            "max_capacity": self.max_capacity,
            "is_active": self.is_active,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
