# backend/coinop/services/client_service.py
"""
Client (venue) service.

machine_count is owned by the machine lifecycle flows; it is not writable here.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import Client, Collection, Expense, InstallationObservation, Machine, TransferObservation

logger = logging.getLogger(__name__)

CLIENT_MUTABLE_FIELDS = {
    "name", "business_type", "owner", "address", "city", "province", "postal_code",
    "phone", "email", "tax_id", "morning_open_time", "morning_close_time",
    "evening_open_time", "evening_close_time", "closing_day", "notes",
}


class ClientError(Exception):
    """Raised when client operations fail."""
    pass


def apply_client_patch(c: Client, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CLIENT_MUTABLE_FIELDS:
            continue
        setattr(c, k, v)


def list_clients(search: str | None = None) -> list[Client]:
    query = db.session.query(Client)
    if search:
        query = query.filter(Client.name.ilike(f"%{search.strip()}%"))
    return query.order_by(Client.name.asc()).all()


def get_client(client_id: int) -> Client | None:
    return db.session.query(Client).filter_by(id=client_id).first()


def create_client(*, patch: dict) -> Client:
    if not (patch.get("name") or "").strip():
        raise ClientError("Client name is required")

    client = Client(machine_count=0)
    apply_client_patch(client, patch)
    db.session.add(client)
    db.session.commit()

    logger.info("Created client %s (%s)", client.id, client.name)
    return client


def update_client(*, client_id: int, patch: dict) -> Client | None:
    """Returns None if the client does not exist."""
    client = get_client(client_id)
    if client is None:
        return None

    apply_client_patch(client, patch)
    db.session.commit()
    return client


def delete_client(*, client_id: int) -> bool:
    """
    Delete a client with no machines assigned.

    Returns:
        True if deleted, False if not found

    Raises:
        ClientError: If machines are still installed at the client, or
            collections, observations or expenses reference it
    """
    client = get_client(client_id)
    if client is None:
        return False

    assigned = db.session.query(Machine.id).filter(Machine.client_id == client_id).count()
    if assigned:
        raise ClientError(f"Client has {assigned} machine(s) assigned; return them to storage first")

    referenced = (
        db.session.query(Collection.id).filter(Collection.client_id == client_id).first()
        or db.session.query(InstallationObservation.id).filter(InstallationObservation.client_id == client_id).first()
        or db.session.query(TransferObservation.id).filter(
            (TransferObservation.from_client_id == client_id) | (TransferObservation.to_client_id == client_id)
        ).first()
        or db.session.query(Expense.id).filter(Expense.client_id == client_id).first()
    )
    if referenced:
        raise ClientError("Client has collection, counter or expense history and cannot be deleted")

    db.session.delete(client)
    db.session.commit()
    logger.info("Deleted client %s", client_id)
    return True
