from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


COLLECTION_METHOD_CASH = "cash"
COLLECTION_METHOD_TRANSFER = "transfer"
COLLECTION_METHOD_CARD = "card"

COLLECTION_METHODS = (COLLECTION_METHOD_CASH, COLLECTION_METHOD_TRANSFER, COLLECTION_METHOD_CARD)


def _new_collection_id() -> str:
    return str(uuid.uuid4())


class Collection(db.Model):
    """
    A completed revenue collection for one machine.

    previous_counter/current_counter/difference are copied from the linked
    collection observation; amount is the revenue computed from difference
    and the distribution percentage actually applied.
    """
    __tablename__ = "collections"
    __table_args__ = (
        db.Index("ix_collections_client_collected", "client_id", "collected_at"),
        db.CheckConstraint("amount >= 0", name="ck_collections_amount_nonneg"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_collection_id)
    machine_id = db.Column(db.String(36), db.ForeignKey("machines.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    observation_id = db.Column(
        db.Integer, db.ForeignKey("counter_observations.id"), nullable=False, unique=True
    )

    collected_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    previous_counter = db.Column(db.Integer, nullable=False)
    current_counter = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)
    distribution_percentage = db.Column(db.Float, nullable=False)
    amount = db.Column(db.Float, nullable=False)

    collection_method = db.Column(db.String(16), nullable=False, default=COLLECTION_METHOD_CASH)
    staff_member = db.Column(db.String(120), nullable=False, index=True)
    signature_data = db.Column(db.Text, nullable=True)
    ticket_number = db.Column(db.String(64), nullable=True)
    invoice_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(120), nullable=True)

    machine = db.relationship("Machine", backref=db.backref("collections", lazy="dynamic"))
    client = db.relationship("Client", backref=db.backref("collections", lazy="dynamic"))
    observation = db.relationship(
        "CollectionObservation", backref=db.backref("collection", uselist=False)
    )

    def to_dict(self, include_signature: bool = False) -> dict:
        data = {
            "id": self.id,
            "machine_id": self.machine_id,
            "client_id": self.client_id,
            "observation_id": self.observation_id,
            "collected_at": to_utc_z(self.collected_at),
            "previous_counter": self.previous_counter,
            "current_counter": self.current_counter,
            "difference": self.difference,
            "distribution_percentage": self.distribution_percentage,
            "amount": self.amount,
            "collection_method": self.collection_method,
            "staff_member": self.staff_member,
            "has_signature": bool(self.signature_data),
            "ticket_number": self.ticket_number,
            "invoice_number": self.invoice_number,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }
        if include_signature:
            data["signature_data"] = self.signature_data
        return data
