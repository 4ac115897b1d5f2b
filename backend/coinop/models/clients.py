from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Client(db.Model):
    """
    A venue (bar, arcade, shop) where machines are installed.

    machine_count is maintained by the install/transfer/storage flows and
    never goes below zero.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.CheckConstraint("machine_count >= 0", name="ck_clients_machine_count_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    business_type = db.Column(db.String(64), nullable=True)
    owner = db.Column(db.String(200), nullable=True)

    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    province = db.Column(db.String(120), nullable=True)
    postal_code = db.Column(db.String(16), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    tax_id = db.Column(db.String(32), nullable=True)

    # Opening hours as "HH:MM" strings
    morning_open_time = db.Column(db.String(5), nullable=True)
    morning_close_time = db.Column(db.String(5), nullable=True)
    evening_open_time = db.Column(db.String(5), nullable=True)
    evening_close_time = db.Column(db.String(5), nullable=True)
    closing_day = db.Column(db.String(16), nullable=True)

    machine_count = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "business_type": self.business_type,
            "owner": self.owner,
            "address": self.address,
            "city": self.city,
            "province": self.province,
            "postal_code": self.postal_code,
            "phone": self.phone,
            "email": self.email,
            "tax_id": self.tax_id,
            "morning_open_time": self.morning_open_time,
            "morning_close_time": self.morning_close_time,
            "evening_open_time": self.evening_open_time,
            "evening_close_time": self.evening_close_time,
            "closing_day": self.closing_day,
            "machine_count": self.machine_count,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
