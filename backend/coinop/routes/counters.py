# backend/coinop/routes/counters.py
"""
Counter ledger routes.

Reads and manual readings go straight to the CounterLedger opened by the app
factory. Collection, installation and transfer readings are recorded through
their own flows (collections / machines routes).
"""
from flask import Blueprint, request, current_app

from ..extensions import db, get_ledger
from ..models.counters import OBSERVATION_SOURCES
from ..services.counter_service import (
    CounterLedgerError,
    MachineNotFound,
    PersistenceError,
    compute_revenue,
)
from ..validation import (
    validate_counter,
    validate_percentage,
    coerce_int,
    coerce_datetime,
    ValidationError,
)

counters_bp = Blueprint("counters", __name__, url_prefix="/api/counters")


@counters_bp.get("")
def all_counters_route():
    """Map of machine id -> current counter."""
    return {"counters": get_ledger().all_counters()}


@counters_bp.get("/<machine_id>")
def latest_counter_route(machine_id: str):
    try:
        counter = get_ledger().latest_counter(machine_id)
    except MachineNotFound as e:
        return {"error": str(e)}, 404
    return {"machine_id": machine_id, "current_counter": counter}


@counters_bp.get("/<machine_id>/history")
def counter_history_route(machine_id: str):
    """Observations for the machine, newest first."""
    try:
        observations = get_ledger().history_for(machine_id)
    except MachineNotFound as e:
        return {"error": str(e)}, 404
    return {
        "machine_id": machine_id,
        "items": [o.to_dict() for o in observations],
        "count": len(observations),
    }


@counters_bp.post("/<machine_id>")
def record_counter_route(machine_id: str):
    """
    Record a counter reading.

    Request body:
    {
        "counter": int,          // required, >= 0
        "source": str,           // default "manual"
        "note": str,
        "actor": str,
        "occurred_at": ISO-8601
    }

    Returns:
        201: Observation recorded (with current_counter)
        400: Invalid counter/source
        404: Machine not found
        500: Storage failure (nothing recorded)
    """
    data = request.get_json(silent=True) or {}
    source = data.get("source") or "manual"

    try:
        counter = validate_counter("counter", data.get("counter"))
        occurred_at = coerce_datetime("occurred_at", data["occurred_at"]) if data.get("occurred_at") else None
        if source not in OBSERVATION_SOURCES:
            raise ValidationError(f"source must be one of: {', '.join(OBSERVATION_SOURCES)}")
    except ValidationError as e:
        return {"error": str(e)}, 400

    ledger = get_ledger()
    try:
        observation = ledger.record_observation(
            machine_id,
            counter,
            source,
            note=data.get("note"),
            actor=data.get("actor"),
            timestamp=occurred_at,
        )
    except MachineNotFound as e:
        db.session.rollback()
        return {"error": str(e)}, 404
    except PersistenceError:
        db.session.rollback()
        current_app.logger.exception("Counter update failed for machine %s", machine_id)
        return {"error": "Storage failure, nothing was recorded"}, 500
    except CounterLedgerError as e:
        db.session.rollback()
        return {"error": str(e)}, 400

    result = observation.to_dict()
    result["current_counter"] = observation.machine.current_counter
    return result, 201


@counters_bp.get("/revenue")
def revenue_route():
    """
    Revenue for a counter difference.

    Query params:
    - difference: int (required)
    - split_percentage: float in [0, 100] (default: the ledger's configured split)
    """
    try:
        raw = request.args.get("difference")
        if raw is None:
            raise ValidationError("difference is required")
        difference = coerce_int("difference", raw)
        if difference < 0:
            raise ValidationError("difference must be >= 0")
        raw_pct = request.args.get("split_percentage")
        if raw_pct is None:
            pct = get_ledger().default_split_percentage
        else:
            pct = validate_percentage("split_percentage", raw_pct)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {
        "difference": difference,
        "split_percentage": pct,
        "revenue": compute_revenue(difference, pct),
        "currency": current_app.config.get("CURRENCY"),
    }
