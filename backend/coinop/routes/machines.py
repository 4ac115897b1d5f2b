# backend/coinop/routes/machines.py
"""
Machine inventory and lifecycle routes.

Counter readings taken during install/transfer/repair are recorded through
the counter ledger by the machine service; these routes only parse input
and map errors to status codes.
"""
from flask import Blueprint, request, current_app

from ..extensions import db, get_ledger
from ..models import Machine
from ..services import machine_service
from ..services.machine_service import MachineError, ClientNotFound, MACHINE_MUTABLE_FIELDS
from ..services.counter_service import CounterLedgerError, MachineNotFound, PersistenceError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    validate_counter,
    coerce_int,
    coerce_datetime,
    enforce_rules_machine,
    ValidationError,
    ConflictError,
)

MACHINE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=MACHINE_MUTABLE_FIELDS | {"initial_counter"},
    required_on_create={"serial_number", "machine_type"},
)

MACHINE_UPDATE_POLICY = ModelValidationPolicy(writable_fields=set(MACHINE_MUTABLE_FIELDS))

machines_bp = Blueprint("machines", __name__, url_prefix="/api/machines")


def _lifecycle_call(fn, *args, **kwargs):
    """Run a lifecycle flow and map its errors to a JSON response."""
    try:
        machine = fn(*args, **kwargs)
        return machine.to_dict(include_history=True), 200
    except (MachineNotFound, ClientNotFound) as e:
        db.session.rollback()
        return {"error": str(e)}, 404
    except PersistenceError:
        db.session.rollback()
        current_app.logger.exception("Machine lifecycle operation failed")
        return {"error": "Storage failure, nothing was recorded"}, 500
    except (MachineError, CounterLedgerError, ValidationError) as e:
        db.session.rollback()
        return {"error": str(e)}, 400


def _optional_counter(data: dict):
    if data.get("counter") is None:
        return None
    return validate_counter("counter", data["counter"])


@machines_bp.get("")
def list_machines_route():
    """
    List machines.

    Query params:
    - status: warehouse | installed | repair (optional)
    - client_id: int (optional)
    """
    status = request.args.get("status")
    client_id = request.args.get("client_id", type=int)

    try:
        machines = machine_service.list_machines(get_ledger(), status=status, client_id=client_id)
    except MachineError as e:
        return {"error": str(e)}, 400

    return {"items": [m.to_dict() for m in machines], "count": len(machines)}


@machines_bp.post("")
def create_machine_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Machine, payload=payload, policy=MACHINE_CREATE_POLICY, partial=False)
        enforce_rules_machine(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        machine = machine_service.register_machine(get_ledger(), patch)
    except ConflictError as e:
        db.session.rollback()
        return {"error": str(e)}, 409
    except PersistenceError:
        db.session.rollback()
        current_app.logger.exception("Machine registration failed")
        return {"error": "Storage failure, nothing was recorded"}, 500

    return machine.to_dict(include_history=True), 201


@machines_bp.get("/<machine_id>")
def get_machine_route(machine_id: str):
    try:
        machine = get_ledger().get_machine(machine_id)
    except MachineNotFound as e:
        return {"error": str(e)}, 404
    return machine.to_dict(include_history=True)


@machines_bp.put("/<machine_id>")
def update_machine_route(machine_id: str):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Machine, payload=payload, policy=MACHINE_UPDATE_POLICY, partial=True)
        enforce_rules_machine(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        machine = machine_service.update_machine(get_ledger(), machine_id, patch)
    except MachineNotFound as e:
        db.session.rollback()
        return {"error": str(e)}, 404
    except ConflictError as e:
        db.session.rollback()
        return {"error": str(e)}, 409
    except PersistenceError:
        db.session.rollback()
        current_app.logger.exception("Machine update failed")
        return {"error": "Storage failure, nothing was recorded"}, 500

    return machine.to_dict()


@machines_bp.delete("/<machine_id>")
def delete_machine_route(machine_id: str):
    try:
        machine_service.delete_machine(get_ledger(), machine_id)
    except MachineNotFound as e:
        db.session.rollback()
        return {"error": str(e)}, 404
    except MachineError as e:
        db.session.rollback()
        return {"error": str(e)}, 409
    except PersistenceError:
        db.session.rollback()
        current_app.logger.exception("Machine delete failed")
        return {"error": "Storage failure, nothing was deleted"}, 500

    return {"ok": True}, 200


@machines_bp.post("/<machine_id>/install")
def install_machine_route(machine_id: str):
    """
    Install a machine from storage at a client.

    Request body:
    {
        "client_id": int,              // required
        "technician": str,             // required
        "responsible_name": str,       // required
        "responsible_id": str,
        "location": str,
        "observations": str,
        "accepted_terms": bool,
        "accepted_responsibility": bool,
        "counter": int,                // defaults to the current counter
        "installed_at": ISO-8601
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        if data.get("client_id") is None:
            raise ValidationError("client_id is required")
        client_id = coerce_int("client_id", data["client_id"])
        counter = _optional_counter(data)
        installed_at = coerce_datetime("installed_at", data["installed_at"]) if data.get("installed_at") else None
    except ValidationError as e:
        return {"error": str(e)}, 400

    return _lifecycle_call(
        machine_service.install_machine,
        get_ledger(),
        machine_id,
        client_id,
        data,
        counter=counter,
        installed_at=installed_at,
        actor=data.get("actor"),
    )


@machines_bp.post("/<machine_id>/transfer")
def transfer_machine_route(machine_id: str):
    """
    Move an installed machine to another client.

    Request body: to_client_id and counter (required) plus the same
    responsible/technician fields as install.
    """
    data = request.get_json(silent=True) or {}

    try:
        if data.get("to_client_id") is None:
            raise ValidationError("to_client_id is required")
        to_client_id = coerce_int("to_client_id", data["to_client_id"])
        counter = validate_counter("counter", data.get("counter"))
        transferred_at = (
            coerce_datetime("transferred_at", data["transferred_at"]) if data.get("transferred_at") else None
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return _lifecycle_call(
        machine_service.transfer_machine,
        get_ledger(),
        machine_id,
        to_client_id,
        data,
        counter=counter,
        transferred_at=transferred_at,
        actor=data.get("actor"),
    )


@machines_bp.post("/<machine_id>/repair")
def repair_machine_route(machine_id: str):
    """Send to repair; body: counter (optional), note, actor."""
    data = request.get_json(silent=True) or {}

    try:
        counter = _optional_counter(data)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return _lifecycle_call(
        machine_service.send_to_repair,
        get_ledger(),
        machine_id,
        counter=counter,
        note=data.get("note"),
        actor=data.get("actor"),
    )


@machines_bp.post("/<machine_id>/store")
def store_machine_route(machine_id: str):
    data = request.get_json(silent=True) or {}
    return _lifecycle_call(
        machine_service.return_to_storage,
        get_ledger(),
        machine_id,
        note=data.get("note"),
    )
