# backend/coinop/routes/clients.py
"""
Client (venue) routes.
"""
from flask import Blueprint, request

from ..extensions import db
from ..models import Client
from ..services import client_service
from ..services.client_service import ClientError, CLIENT_MUTABLE_FIELDS
from ..validation import ModelValidationPolicy, validate_payload, ValidationError

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields=set(CLIENT_MUTABLE_FIELDS),
    required_on_create={"name"},
)

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
def list_clients_route():
    """Query params: search (name substring, optional)."""
    clients = client_service.list_clients(search=request.args.get("search"))
    return {"items": [c.to_dict() for c in clients], "count": len(clients)}


@clients_bp.post("")
def create_client_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=False)
        client = client_service.create_client(patch=patch)
    except (ValidationError, ClientError) as e:
        db.session.rollback()
        return {"error": str(e)}, 400

    return client.to_dict(), 201


@clients_bp.get("/<int:client_id>")
def get_client_route(client_id: int):
    client = client_service.get_client(client_id)
    if client is None:
        return {"error": "Client not found"}, 404

    data = client.to_dict()
    data["machines"] = [m.to_dict() for m in client.machines]
    return data


@clients_bp.put("/<int:client_id>")
def update_client_route(client_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=True)
    except ValidationError as e:
        return {"error": str(e)}, 400

    client = client_service.update_client(client_id=client_id, patch=patch)
    if client is None:
        return {"error": "Client not found"}, 404
    return client.to_dict()


@clients_bp.delete("/<int:client_id>")
def delete_client_route(client_id: int):
    try:
        deleted = client_service.delete_client(client_id=client_id)
    except ClientError as e:
        db.session.rollback()
        return {"error": str(e)}, 409

    if not deleted:
        return {"error": "Client not found"}, 404
    return {"ok": True}, 200
