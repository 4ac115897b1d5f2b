# backend/coinop/routes/expenses.py
"""
Expense routes.
"""
from flask import Blueprint, request

from ..extensions import db
from ..models import Expense
from ..services import expense_service
from ..services.expense_service import ExpenseError, EXPENSE_MUTABLE_FIELDS
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_expense,
    coerce_int,
    coerce_datetime,
    ValidationError,
)

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields=set(EXPENSE_MUTABLE_FIELDS),
    required_on_create={"amount", "expense_type", "description"},
)

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
def list_expenses_route():
    """
    Query params: start, end (ISO-8601), machine_id, client_id, expense_type.
    """
    args = request.args
    try:
        expenses = expense_service.list_expenses(
            start=coerce_datetime("start", args["start"]) if args.get("start") else None,
            end=coerce_datetime("end", args["end"], end_of_day=True) if args.get("end") else None,
            machine_id=args.get("machine_id"),
            client_id=coerce_int("client_id", args["client_id"]) if args.get("client_id") else None,
            expense_type=args.get("expense_type"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {
        "items": [e.to_dict() for e in expenses],
        "count": len(expenses),
        "total_amount": expense_service.calculate_total(expenses),
    }


@expenses_bp.post("")
def create_expense_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
        enforce_rules_expense(patch)
        expense = expense_service.create_expense(patch=patch)
    except (ValidationError, ExpenseError) as e:
        db.session.rollback()
        return {"error": str(e)}, 400

    return expense.to_dict(), 201


@expenses_bp.delete("/<expense_id>")
def delete_expense_route(expense_id: str):
    if not expense_service.delete_expense(expense_id=expense_id):
        return {"error": "Expense not found"}, 404
    return {"ok": True}, 200
