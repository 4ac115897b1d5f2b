from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


# Machine status constants
MACHINE_STATUS_WAREHOUSE = "warehouse"
MACHINE_STATUS_INSTALLED = "installed"
MACHINE_STATUS_REPAIR = "repair"

MACHINE_STATUSES = (MACHINE_STATUS_WAREHOUSE, MACHINE_STATUS_INSTALLED, MACHINE_STATUS_REPAIR)


def _new_machine_id() -> str:
    return str(uuid.uuid4())


class Machine(db.Model):
    """
    One physical coin-operated unit.

    current_counter is owned by the counter ledger: it always equals the
    new_counter of the latest observation recorded for the machine, or
    initial_counter when none exists yet.
    """
    __tablename__ = "machines"
    __table_args__ = (
        db.CheckConstraint("current_counter >= 0", name="ck_machines_current_counter_nonneg"),
        db.CheckConstraint("initial_counter >= 0", name="ck_machines_initial_counter_nonneg"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_machine_id)
    serial_number = db.Column(db.String(64), nullable=False, unique=True, index=True)
    machine_type = db.Column(db.String(64), nullable=False)
    model = db.Column(db.String(120), nullable=True)
    brand = db.Column(db.String(120), nullable=True)
    cost = db.Column(db.Float, nullable=True)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)
    supplier = db.Column(db.String(200), nullable=True)
    warranty_months = db.Column(db.Integer, nullable=True)
    description = db.Column(db.Text, nullable=True)

    # Physical dimensions (cm)
    width = db.Column(db.Float, nullable=True)
    height = db.Column(db.Float, nullable=True)
    depth = db.Column(db.Float, nullable=True)

    has_manual = db.Column(db.Boolean, nullable=False, default=False)
    has_warranty_doc = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(16), nullable=False, default=MACHINE_STATUS_WAREHOUSE, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)

    current_counter = db.Column(db.Integer, nullable=False, default=0)
    initial_counter = db.Column(db.Integer, nullable=False, default=0)
    split_percentage = db.Column(db.Float, nullable=False, default=50.0)

    # Responsible person, technician, location, etc. for the current installation
    installation_data = db.Column(db.JSON, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    client = db.relationship("Client", backref=db.backref("machines", lazy=True))
    history = db.relationship(
        "MachineHistoryEntry",
        back_populates="machine",
        order_by="MachineHistoryEntry.id",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Machine id={self.id} serial={self.serial_number!r} counter={self.current_counter}>"

    def to_dict(self, include_history: bool = False) -> dict:
        data = {
            "id": self.id,
            "serial_number": self.serial_number,
            "machine_type": self.machine_type,
            "model": self.model,
            "brand": self.brand,
            "cost": self.cost,
            "purchase_date": to_utc_z(self.purchase_date),
            "supplier": self.supplier,
            "warranty_months": self.warranty_months,
            "description": self.description,
            "width": self.width,
            "height": self.height,
            "depth": self.depth,
            "has_manual": self.has_manual,
            "has_warranty_doc": self.has_warranty_doc,
            "status": self.status,
            "client_id": self.client_id,
            "current_counter": self.current_counter,
            "initial_counter": self.initial_counter,
            "split_percentage": self.split_percentage,
            "installation_data": self.installation_data,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_history:
            data["history"] = [entry.to_dict() for entry in self.history]
        return data


class MachineHistoryEntry(db.Model):
    """Human-readable timeline of a machine (created, installed, collection...)."""
    __tablename__ = "machine_history"
    __table_args__ = (
        db.Index("ix_machine_history_machine_occurred", "machine_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    machine_id = db.Column(db.String(36), db.ForeignKey("machines.id"), nullable=False, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    action = db.Column(db.String(32), nullable=False)
    details = db.Column(db.Text, nullable=True)

    machine = db.relationship("Machine", back_populates="history")

    def to_dict(self) -> dict:
        return {
            "date": to_utc_z(self.occurred_at),
            "action": self.action,
            "details": self.details,
        }
