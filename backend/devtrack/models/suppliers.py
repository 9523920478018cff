from __future__ import annotations

from ..extensions import db
from devtrack.time_utils import to_utc_z, utcnow


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(20), nullable=False, unique=True)
    company_name = db.Column(db.String(200), nullable=False)
    contact_email = db.Column(db.String(100), nullable=True)

    # Used by the reorder point calculation; None falls back to the configured default
    lead_time_days = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "company_name": self.company_name,
            "contact_email": self.contact_email,
            "lead_time_days": self.lead_time_days,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
