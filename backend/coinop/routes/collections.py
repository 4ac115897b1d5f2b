# backend/coinop/routes/collections.py
"""
Revenue collection routes.

A collection records a collection observation in the counter ledger and
the computed amount in one transaction (see collection_service).
"""
from flask import Blueprint, request, current_app

from ..extensions import db, get_ledger
from ..services import collection_service
from ..services.collection_service import CollectionError
from ..services.counter_service import CounterLedgerError, MachineNotFound, PersistenceError
from ..validation import (
    validate_counter,
    validate_percentage,
    coerce_int,
    coerce_float,
    coerce_datetime,
    ValidationError,
)

collections_bp = Blueprint("collections", __name__, url_prefix="/api/collections")


def _common_fields(data: dict) -> dict:
    """Fields shared by single and route collections, validated."""
    if data.get("client_id") is None:
        raise ValidationError("client_id is required")
    fields = {
        "client_id": coerce_int("client_id", data["client_id"]),
        "staff_member": data.get("staff_member"),
        "signature_data": data.get("signature_data"),
        "collection_method": data.get("collection_method") or "cash",
        "ticket_number": data.get("ticket_number"),
        "invoice_number": data.get("invoice_number"),
        "notes": data.get("notes"),
        "created_by": data.get("created_by"),
        "collected_at": None,
        "distribution_percentage": None,
    }
    if data.get("collected_at"):
        fields["collected_at"] = coerce_datetime("collected_at", data["collected_at"])
    if data.get("distribution_percentage") is not None:
        fields["distribution_percentage"] = validate_percentage(
            "distribution_percentage", data["distribution_percentage"]
        )
    return fields


def _filters_from_args() -> dict:
    args = request.args
    filters = {}
    if args.get("start"):
        filters["start"] = coerce_datetime("start", args["start"])
    if args.get("end"):
        filters["end"] = coerce_datetime("end", args["end"], end_of_day=True)
    if args.get("client_id"):
        filters["client_id"] = coerce_int("client_id", args["client_id"])
    if args.get("machine_id"):
        filters["machine_id"] = args["machine_id"]
    if args.get("min_amount"):
        filters["min_amount"] = coerce_float("min_amount", args["min_amount"])
    if args.get("max_amount"):
        filters["max_amount"] = coerce_float("max_amount", args["max_amount"])
    if args.get("staff_member"):
        filters["staff_member"] = args["staff_member"]
    return filters


@collections_bp.get("")
def list_collections_route():
    """
    List collections, newest first.

    Query params: start, end (ISO-8601, inclusive), client_id, machine_id,
    min_amount, max_amount, staff_member (substring match).
    """
    try:
        filters = _filters_from_args()
    except ValidationError as e:
        return {"error": str(e)}, 400

    collections = collection_service.list_collections(get_ledger(), **filters)
    return {
        "items": [c.to_dict() for c in collections],
        "count": len(collections),
        "total_amount": collection_service.calculate_total(collections),
    }


@collections_bp.get("/summary")
def collections_summary_route():
    """Totals grouped by period (day, week, month, year; default month)."""
    period = request.args.get("period", "month")
    try:
        filters = _filters_from_args()
        buckets = collection_service.summarize_collections(get_ledger(), period, **filters)
    except (ValidationError, CollectionError) as e:
        return {"error": str(e)}, 400

    return {"period": period, "items": buckets}


@collections_bp.get("/<collection_id>")
def get_collection_route(collection_id: str):
    collection = collection_service.get_collection(get_ledger(), collection_id)
    if collection is None:
        return {"error": "Collection not found"}, 404
    return collection.to_dict(include_signature=True)


@collections_bp.post("")
def create_collection_route():
    """
    Record a collection for one machine.

    Request body:
    {
        "machine_id": str,                // required
        "client_id": int,                 // required
        "counter": int,                   // required, counter read at the machine
        "staff_member": str,              // required
        "signature_data": str,            // required
        "distribution_percentage": float, // defaults to the machine's split
        "collection_method": "cash" | "transfer" | "card",
        "collected_at": ISO-8601,
        "ticket_number": str,
        "invoice_number": str,
        "notes": str
    }

    Returns:
        201: Collection recorded
        400: Invalid input / machine not installed at client
        404: Machine not found
        500: Storage failure (nothing recorded)
    """
    data = request.get_json(silent=True) or {}

    try:
        if not data.get("machine_id"):
            raise ValidationError("machine_id is required")
        counter = validate_counter("counter", data.get("counter"))
        fields = _common_fields(data)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        collection = collection_service.record_collection(
            get_ledger(),
            machine_id=data["machine_id"],
            new_counter=counter,
            **fields,
        )
    except MachineNotFound as e:
        db.session.rollback()
        return {"error": str(e)}, 404
    except PersistenceError:
        db.session.rollback()
        current_app.logger.exception("Collection failed for machine %s", data["machine_id"])
        return {"error": "Storage failure, nothing was recorded"}, 500
    except (CollectionError, CounterLedgerError) as e:
        db.session.rollback()
        return {"error": str(e)}, 400

    return collection.to_dict(), 201


@collections_bp.post("/route")
def create_route_collection_route():
    """
    Collect several machines of one client in a single visit (all or nothing).

    Request body: the common collection fields plus
    "readings": [{"machine_id": str, "counter": int}, ...]
    """
    data = request.get_json(silent=True) or {}

    try:
        raw_readings = data.get("readings")
        if not isinstance(raw_readings, list) or not raw_readings:
            raise ValidationError("readings must be a non-empty list")
        readings = {}
        for item in raw_readings:
            if not isinstance(item, dict) or not item.get("machine_id"):
                raise ValidationError("each reading needs a machine_id")
            if item["machine_id"] in readings:
                raise ValidationError(f"Duplicate reading for machine {item['machine_id']}")
            readings[item["machine_id"]] = validate_counter("counter", item.get("counter"))
        fields = _common_fields(data)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        collections = collection_service.record_route_collection(get_ledger(), readings=readings, **fields)
    except MachineNotFound as e:
        db.session.rollback()
        return {"error": str(e)}, 404
    except PersistenceError:
        db.session.rollback()
        current_app.logger.exception("Route collection failed for client %s", fields["client_id"])
        return {"error": "Storage failure, nothing was recorded"}, 500
    except (CollectionError, CounterLedgerError) as e:
        db.session.rollback()
        return {"error": str(e)}, 400

    return {
        "items": [c.to_dict() for c in collections],
        "count": len(collections),
        "total_amount": collection_service.calculate_total(collections),
    }, 201
