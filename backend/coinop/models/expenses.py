from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


def _new_expense_id() -> str:
    return str(uuid.uuid4())


class Expense(db.Model):
    """Operating cost, optionally attributed to a machine and/or a client."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_expenses_amount_nonneg"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_expense_id)
    machine_id = db.Column(db.String(36), db.ForeignKey("machines.id"), nullable=True, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    amount = db.Column(db.Float, nullable=False)
    expense_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    expense_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. repair, fuel, spare_parts
    description = db.Column(db.Text, nullable=False)
    receipt_image = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "machine_id": self.machine_id,
            "client_id": self.client_id,
            "amount": self.amount,
            "expense_date": to_utc_z(self.expense_date),
            "expense_type": self.expense_type,
            "description": self.description,
            "has_receipt_image": bool(self.receipt_image),
            "created_at": to_utc_z(self.created_at),
        }
