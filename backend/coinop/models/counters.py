from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


"""
Counter observation invariants (authoritative)

- Append-only: rows are inserted by the counter ledger and never updated or deleted.
- difference = max(0, new_counter - previous_counter); never negative.
- previous_counter is the machine's current_counter at the moment of recording.
- occurred_at is business time (defaults to now); created_at is system time (DB default).
- source is the discriminator; each source kind carries only its own extra columns.
"""

SOURCE_INSTALLATION = "installation"
SOURCE_COLLECTION = "collection"
SOURCE_MAINTENANCE = "maintenance"
SOURCE_TRANSFER = "transfer"
SOURCE_MANUAL = "manual"


class CounterObservation(db.Model):
    __tablename__ = "counter_observations"
    __table_args__ = (
        db.Index("ix_counter_obs_machine_occurred", "machine_id", "occurred_at"),
        db.CheckConstraint("difference >= 0", name="ck_counter_obs_difference_nonneg"),
        db.CheckConstraint("new_counter >= 0", name="ck_counter_obs_new_counter_nonneg"),
        {"sqlite_autoincrement": True},
    )

    # Extra columns a source kind accepts on top of the common ones
    DETAIL_FIELDS = frozenset()

    id = db.Column(db.Integer, primary_key=True)
    machine_id = db.Column(db.String(36), db.ForeignKey("machines.id"), nullable=False, index=True)
    source = db.Column(db.String(16), nullable=False, index=True)

    previous_counter = db.Column(db.Integer, nullable=False)
    new_counter = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)

    note = db.Column(db.String(255), nullable=True)
    actor = db.Column(db.String(120), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    machine = db.relationship("Machine", backref=db.backref("observations", lazy="dynamic"))

    __mapper_args__ = {"polymorphic_on": source}

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} machine={self.machine_id} "
            f"{self.previous_counter}->{self.new_counter} diff={self.difference}>"
        )

    def details(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "machine_id": self.machine_id,
            "source": self.source,
            "previous_counter": self.previous_counter,
            "new_counter": self.new_counter,
            "difference": self.difference,
            "note": self.note,
            "actor": self.actor,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "details": self.details(),
        }


class InstallationObservation(CounterObservation):
    """Counter read when the machine is installed at a venue."""
    DETAIL_FIELDS = frozenset({"client_id"})

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)

    __mapper_args__ = {"polymorphic_identity": SOURCE_INSTALLATION}

    def details(self) -> dict:
        return {"client_id": self.client_id}


class CollectionObservation(CounterObservation):
    """Counter read during a cash pickup; linked 1-1 to its Collection."""

    __mapper_args__ = {"polymorphic_identity": SOURCE_COLLECTION}

    def details(self) -> dict:
        collection = self.collection
        return {"collection_id": collection.id if collection is not None else None}


class MaintenanceObservation(CounterObservation):
    __mapper_args__ = {"polymorphic_identity": SOURCE_MAINTENANCE}


class TransferObservation(CounterObservation):
    """Counter read when the machine moves between venues."""
    DETAIL_FIELDS = frozenset({"from_client_id", "to_client_id"})

    from_client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    to_client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)

    __mapper_args__ = {"polymorphic_identity": SOURCE_TRANSFER}

    def details(self) -> dict:
        return {"from_client_id": self.from_client_id, "to_client_id": self.to_client_id}


class ManualObservation(CounterObservation):
    """Operator correction (device reset, miscount)."""
    __mapper_args__ = {"polymorphic_identity": SOURCE_MANUAL}


OBSERVATION_TYPES = {
    SOURCE_INSTALLATION: InstallationObservation,
    SOURCE_COLLECTION: CollectionObservation,
    SOURCE_MAINTENANCE: MaintenanceObservation,
    SOURCE_TRANSFER: TransferObservation,
    SOURCE_MANUAL: ManualObservation,
}

OBSERVATION_SOURCES = tuple(OBSERVATION_TYPES)
