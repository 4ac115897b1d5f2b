# backend/coinop/services/machine_service.py
"""
Machine lifecycle service.

WHY: Installation, transfer and repair are the moments a technician reads the
machine's counter. Each flow changes the machine status/assignment and records
that reading through the counter ledger, in one transaction.

LIFECYCLE:
1. warehouse: Registered, in storage (current_counter = initial_counter)
2. installed: Placed at a client venue (installation observation)
3. installed at another client: Moved by transfer (transfer observation)
4. repair: Pulled for maintenance (maintenance observation when the counter is read)
5. warehouse: Back in storage, client unassigned
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..models import Client, Machine, MachineHistoryEntry, CounterObservation, Collection, Expense
from ..models.machines import (
    MACHINE_STATUS_WAREHOUSE,
    MACHINE_STATUS_INSTALLED,
    MACHINE_STATUS_REPAIR,
    MACHINE_STATUSES,
)
from ..models.counters import SOURCE_INSTALLATION, SOURCE_MAINTENANCE, SOURCE_TRANSFER
from ..time_utils import utcnow, to_utc_z
from ..validation import ConflictError
from .concurrency import lock_for_update, run_with_retry
from .counter_service import CounterLedger, clip_note


logger = logging.getLogger(__name__)

# Descriptive fields; counters move only through the ledger
MACHINE_MUTABLE_FIELDS = {
    "serial_number", "machine_type", "model", "brand", "cost", "purchase_date",
    "supplier", "warranty_months", "description", "width", "height", "depth",
    "has_manual", "has_warranty_doc", "split_percentage",
}

INSTALLATION_FIELDS = (
    "responsible_name",
    "responsible_id",
    "accepted_terms",
    "accepted_responsibility",
    "location",
    "observations",
    "technician",
)


class MachineError(Exception):
    """Raised when machine lifecycle operations fail."""
    pass


class ClientNotFound(MachineError, LookupError):
    pass


def _add_history(ledger: CounterLedger, machine: Machine, action: str, details: str, occurred_at: datetime | None = None) -> None:
    ledger.session.add(MachineHistoryEntry(
        machine_id=machine.id,
        occurred_at=occurred_at or utcnow(),
        action=action,
        details=details,
    ))


def _get_client(ledger: CounterLedger, client_id: int, *, for_update: bool = False) -> Client:
    query = ledger.session.query(Client).filter_by(id=client_id)
    if for_update:
        query = lock_for_update(query)
    client = query.first()
    if client is None:
        raise ClientNotFound(f"Client {client_id} not found")
    return client


def _installation_data(data: dict, *, counter: int, installed_at: datetime) -> dict:
    payload = {k: data.get(k) for k in INSTALLATION_FIELDS}
    if not payload.get("technician"):
        raise MachineError("technician is required")
    if not payload.get("responsible_name"):
        raise MachineError("responsible_name is required")
    payload["installation_counter"] = counter
    payload["installation_date"] = to_utc_z(installed_at)
    payload["acceptance_date"] = to_utc_z(utcnow())
    return payload


def list_machines(ledger: CounterLedger, *, status: str | None = None, client_id: int | None = None) -> list[Machine]:
    if status is not None and status not in MACHINE_STATUSES:
        raise MachineError(f"Invalid machine status: {status}")

    query = ledger.session.query(Machine)
    if status is not None:
        query = query.filter(Machine.status == status)
    if client_id is not None:
        query = query.filter(Machine.client_id == client_id)
    return query.order_by(Machine.serial_number.asc()).all()


def register_machine(ledger: CounterLedger, patch: dict) -> Machine:
    """
    Register a new machine in storage.

    Args:
        patch: Validated machine fields (serial_number and machine_type required);
            split_percentage falls back to ledger.default_split_percentage

    Returns:
        Machine: status "warehouse", current_counter seeded from initial_counter

    Raises:
        ConflictError: If the serial number is already registered
    """
    with ledger.transaction() as session:
        serial = patch.get("serial_number")
        if session.query(Machine).filter_by(serial_number=serial).first():
            raise ConflictError(f"Serial number already registered: {serial}")

        initial_counter = patch.get("initial_counter") or 0
        split = patch.get("split_percentage")
        machine = Machine(
            status=MACHINE_STATUS_WAREHOUSE,
            initial_counter=initial_counter,
            current_counter=initial_counter,
            split_percentage=ledger.default_split_percentage if split is None else split,
        )
        for k, v in patch.items():
            if k in MACHINE_MUTABLE_FIELDS and k != "split_percentage":
                setattr(machine, k, v)

        session.add(machine)
        session.flush()
        _add_history(ledger, machine, "created", "Machine registered in storage")

    logger.info("Registered machine %s (serial %s)", machine.id, serial)
    return machine


def update_machine(ledger: CounterLedger, machine_id: str, patch: dict) -> Machine:
    with ledger.transaction() as session:
        machine = ledger.get_machine(machine_id, for_update=True)

        serial = patch.get("serial_number")
        if serial and serial != machine.serial_number:
            if session.query(Machine).filter_by(serial_number=serial).first():
                raise ConflictError(f"Serial number already registered: {serial}")

        changed = []
        for k, v in patch.items():
            if k not in MACHINE_MUTABLE_FIELDS:
                continue
            setattr(machine, k, v)
            changed.append(k)

        if changed:
            _add_history(ledger, machine, "updated", f"Updated: {', '.join(sorted(changed))}")

    return machine


def delete_machine(ledger: CounterLedger, machine_id: str) -> None:
    """
    Delete a machine that has no counter history.

    Raises:
        MachineNotFound: Unknown machine
        MachineError: Observations, collections or expenses still reference it
    """
    with ledger.transaction() as session:
        machine = ledger.get_machine(machine_id, for_update=True)

        referenced = (
            session.query(CounterObservation.id).filter_by(machine_id=machine_id).first()
            or session.query(Collection.id).filter_by(machine_id=machine_id).first()
            or session.query(Expense.id).filter_by(machine_id=machine_id).first()
        )
        if referenced:
            raise MachineError("Machine has counter or expense history and cannot be deleted")
        if machine.status == MACHINE_STATUS_INSTALLED:
            raise MachineError("Installed machines must be returned to storage before deletion")

        session.query(MachineHistoryEntry).filter_by(machine_id=machine_id).delete()
        session.delete(machine)

    logger.info("Deleted machine %s", machine_id)


def install_machine(
    ledger: CounterLedger,
    machine_id: str,
    client_id: int,
    installation: dict,
    counter: Optional[int] = None,
    installed_at: Optional[datetime] = None,
    actor: Optional[str] = None,
) -> Machine:
    """
    Install a machine from storage at a client venue.

    Args:
        installation: responsible_name, responsible_id, technician, location, observations, ...
        counter: Counter read on site (defaults to the machine's current counter)
        installed_at: Business time of the installation (defaults to now)

    Raises:
        MachineNotFound, ClientNotFound, MachineError
    """
    def _op():
        with ledger.transaction():
            machine = ledger.get_machine(machine_id, for_update=True)
            if machine.status != MACHINE_STATUS_WAREHOUSE:
                raise MachineError(f"Cannot install machine in {machine.status} status")
            client = _get_client(ledger, client_id, for_update=True)

            reading = machine.current_counter if counter is None else counter
            when = installed_at or utcnow()
            data = _installation_data(installation, counter=reading, installed_at=when)

            machine.status = MACHINE_STATUS_INSTALLED
            machine.client_id = client.id
            machine.installation_data = data
            client.machine_count += 1

            ledger.record_observation(
                machine.id,
                reading,
                SOURCE_INSTALLATION,
                note=clip_note(f"Installed at {client.name}"),
                actor=actor or data["technician"],
                timestamp=when,
                client_id=client.id,
            )
            _add_history(
                ledger, machine, "installed",
                f"Installed at {client.name} by {data['technician']}. "
                f"Responsible: {data['responsible_name']} ({data.get('responsible_id') or '-'})",
            )
        return machine

    return run_with_retry(_op, session=ledger.session)


def transfer_machine(
    ledger: CounterLedger,
    machine_id: str,
    to_client_id: int,
    transfer: dict,
    counter: int,
    transferred_at: Optional[datetime] = None,
    actor: Optional[str] = None,
) -> Machine:
    """
    Move an installed machine to another client, reading its counter on the way.

    The source client's machine_count is decremented (never below zero) and the
    destination's incremented in the same transaction as the transfer observation.
    """
    def _op():
        with ledger.transaction():
            machine = ledger.get_machine(machine_id, for_update=True)
            if machine.status != MACHINE_STATUS_INSTALLED or machine.client_id is None:
                raise MachineError("Only installed machines can be transferred")
            if machine.client_id == to_client_id:
                raise MachineError("Machine is already installed at this client")

            from_client = _get_client(ledger, machine.client_id, for_update=True)
            to_client = _get_client(ledger, to_client_id, for_update=True)

            when = transferred_at or utcnow()
            data = _installation_data(transfer, counter=counter, installed_at=when)

            machine.client_id = to_client.id
            machine.installation_data = {**(machine.installation_data or {}), **data}
            from_client.machine_count = max(0, from_client.machine_count - 1)
            to_client.machine_count += 1

            ledger.record_observation(
                machine.id,
                counter,
                SOURCE_TRANSFER,
                note=clip_note(f"Transferred from {from_client.name} to {to_client.name}"),
                actor=actor or data["technician"],
                timestamp=when,
                from_client_id=from_client.id,
                to_client_id=to_client.id,
            )
            _add_history(
                ledger, machine, "transferred",
                f"Transferred from {from_client.name} to {to_client.name} by {data['technician']}. "
                f"Observations: {data.get('observations') or '-'}",
            )
        return machine

    return run_with_retry(_op, session=ledger.session)


def send_to_repair(
    ledger: CounterLedger,
    machine_id: str,
    counter: Optional[int] = None,
    note: Optional[str] = None,
    actor: Optional[str] = None,
) -> Machine:
    """Pull a machine for repair; a counter read during the visit is recorded as maintenance."""
    def _op():
        with ledger.transaction():
            machine = ledger.get_machine(machine_id, for_update=True)
            if machine.status == MACHINE_STATUS_REPAIR:
                raise MachineError("Machine is already in repair")

            machine.status = MACHINE_STATUS_REPAIR
            if counter is not None:
                ledger.record_observation(machine.id, counter, SOURCE_MAINTENANCE, note=note, actor=actor)
            _add_history(ledger, machine, "repair", note or "Sent to repair")
        return machine

    return run_with_retry(_op, session=ledger.session)


def return_to_storage(ledger: CounterLedger, machine_id: str, note: Optional[str] = None) -> Machine:
    """Back to the warehouse; unassigns the client if any."""
    def _op():
        with ledger.transaction():
            machine = ledger.get_machine(machine_id, for_update=True)
            if machine.status == MACHINE_STATUS_WAREHOUSE:
                raise MachineError("Machine is already in storage")

            if machine.client_id is not None:
                client = _get_client(ledger, machine.client_id, for_update=True)
                client.machine_count = max(0, client.machine_count - 1)
                machine.client_id = None
                machine.installation_data = None

            machine.status = MACHINE_STATUS_WAREHOUSE
            _add_history(ledger, machine, "stored", note or "Returned to storage")
        return machine

    return run_with_retry(_op, session=ledger.session)
