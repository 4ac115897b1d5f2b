# backend/coinop/services/expense_service.py
"""
Expense service.

Expenses may be attributed to a machine, a client, both or neither
(general operating costs).
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import Client, Expense, Machine
from ..time_utils import utcnow

EXPENSE_MUTABLE_FIELDS = {
    "machine_id", "client_id", "amount", "expense_date", "expense_type", "description", "receipt_image",
}


class ExpenseError(Exception):
    """Raised when expense operations fail."""
    pass


def create_expense(*, patch: dict) -> Expense:
    machine_id = patch.get("machine_id")
    if machine_id and db.session.query(Machine.id).filter_by(id=machine_id).first() is None:
        raise ExpenseError(f"Machine {machine_id} not found")

    client_id = patch.get("client_id")
    if client_id and db.session.query(Client.id).filter_by(id=client_id).first() is None:
        raise ExpenseError(f"Client {client_id} not found")

    expense = Expense(expense_date=patch.get("expense_date") or utcnow())
    for k, v in patch.items():
        if k in EXPENSE_MUTABLE_FIELDS and v is not None:
            setattr(expense, k, v)

    db.session.add(expense)
    db.session.commit()
    return expense


def list_expenses(
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    machine_id: Optional[str] = None,
    client_id: Optional[int] = None,
    expense_type: Optional[str] = None,
) -> list[Expense]:
    query = db.session.query(Expense)
    if start is not None:
        query = query.filter(Expense.expense_date >= start)
    if end is not None:
        query = query.filter(Expense.expense_date <= end)
    if machine_id is not None:
        query = query.filter(Expense.machine_id == machine_id)
    if client_id is not None:
        query = query.filter(Expense.client_id == client_id)
    if expense_type:
        query = query.filter(Expense.expense_type == expense_type)
    return query.order_by(Expense.expense_date.desc()).all()


def delete_expense(*, expense_id: str) -> bool:
    expense = db.session.query(Expense).filter_by(id=expense_id).first()
    if expense is None:
        return False
    db.session.delete(expense)
    db.session.commit()
    return True


def calculate_total(expenses: list[Expense]) -> float:
    return sum(e.amount or 0.0 for e in expenses)
