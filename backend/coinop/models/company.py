from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CompanyProfile(db.Model):
    """Operator company details printed on collection tickets and reports (single row)."""
    __tablename__ = "company_profiles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    tax_id = db.Column(db.String(32), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    logo = db.Column(db.Text, nullable=True)
    vat_percentage = db.Column(db.Float, nullable=False, default=21.0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "tax_id": self.tax_id,
            "phone": self.phone,
            "email": self.email,
            "has_logo": bool(self.logo),
            "vat_percentage": self.vat_percentage,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
