# backend/coinop/services/collection_service.py
"""
Revenue collection service.

WHY: A collection is the visit where a technician reads a machine's counter,
takes the cash and settles the venue's share. Each collection produces exactly
one collection observation in the counter ledger and one amount computation;
both are stored in the same transaction as the Collection record.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Iterable, Optional

from .. import time_utils
from ..models import Collection, MachineHistoryEntry
from ..models.machines import MACHINE_STATUS_INSTALLED
from ..models.revenue import COLLECTION_METHODS, COLLECTION_METHOD_CASH
from ..models.counters import SOURCE_COLLECTION
from .concurrency import run_with_retry
from .counter_service import CounterLedger, clip_note, compute_revenue


logger = logging.getLogger(__name__)

SUMMARY_PERIODS = time_utils.PERIODS


class CollectionError(Exception):
    """Raised when collection operations fail."""
    pass


def _check_common(staff_member: str | None, signature_data: str | None, collection_method: str,
                  distribution_percentage: float | None) -> None:
    if not staff_member or not staff_member.strip():
        raise CollectionError("staff_member is required")
    if not signature_data:
        raise CollectionError("A signature is required to complete the collection")
    if collection_method not in COLLECTION_METHODS:
        raise CollectionError(f"Invalid collection method: {collection_method}")
    if distribution_percentage is not None and not 0 <= distribution_percentage <= 100:
        raise CollectionError("distribution_percentage must be between 0 and 100")


def _record_one(
    ledger: CounterLedger,
    *,
    machine_id: str,
    client_id: int,
    new_counter: int,
    staff_member: str,
    signature_data: str,
    collected_at: Optional[datetime],
    distribution_percentage: Optional[float],
    collection_method: str,
    ticket_number: Optional[str],
    invoice_number: Optional[str],
    notes: Optional[str],
    created_by: Optional[str],
) -> Collection:
    machine = ledger.get_machine(machine_id, for_update=True)
    if machine.status != MACHINE_STATUS_INSTALLED or machine.client_id != client_id:
        raise CollectionError(f"Machine {machine_id} is not installed at client {client_id}")

    pct = machine.split_percentage if distribution_percentage is None else distribution_percentage

    observation = ledger.record_observation(
        machine.id,
        new_counter,
        SOURCE_COLLECTION,
        note=clip_note(notes),
        actor=staff_member,
        timestamp=collected_at,
    )
    amount = compute_revenue(observation.difference, pct)

    collection = Collection(
        machine_id=machine.id,
        client_id=client_id,
        observation_id=observation.id,
        collected_at=observation.occurred_at,
        previous_counter=observation.previous_counter,
        current_counter=observation.new_counter,
        difference=observation.difference,
        distribution_percentage=pct,
        amount=amount,
        collection_method=collection_method,
        staff_member=staff_member.strip(),
        signature_data=signature_data,
        ticket_number=ticket_number,
        invoice_number=invoice_number,
        notes=notes,
        created_by=created_by,
    )
    ledger.session.add(collection)
    ledger.session.add(MachineHistoryEntry(
        machine_id=machine.id,
        occurred_at=observation.occurred_at,
        action="collection",
        details=f"Collection of {amount:.2f} recorded",
    ))
    ledger.session.flush()
    return collection


def record_collection(
    ledger: CounterLedger,
    *,
    machine_id: str,
    client_id: int,
    new_counter: int,
    staff_member: str,
    signature_data: str,
    collected_at: Optional[datetime] = None,
    distribution_percentage: Optional[float] = None,
    collection_method: str = COLLECTION_METHOD_CASH,
    ticket_number: Optional[str] = None,
    invoice_number: Optional[str] = None,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
) -> Collection:
    """
    Record a collection for one machine.

    Args:
        new_counter: Counter read at the machine
        distribution_percentage: Share applied to the counter difference
            (defaults to the machine's split_percentage)

    Returns:
        Collection: With amount = compute_revenue(difference, percentage)

    Raises:
        CollectionError: Validation or machine not installed at client
        MachineNotFound, InvalidCounterValue, PersistenceError: From the ledger
    """
    _check_common(staff_member, signature_data, collection_method, distribution_percentage)

    def _op():
        with ledger.transaction():
            return _record_one(
                ledger,
                machine_id=machine_id,
                client_id=client_id,
                new_counter=new_counter,
                staff_member=staff_member,
                signature_data=signature_data,
                collected_at=collected_at,
                distribution_percentage=distribution_percentage,
                collection_method=collection_method,
                ticket_number=ticket_number,
                invoice_number=invoice_number,
                notes=notes,
                created_by=created_by,
            )

    collection = run_with_retry(_op, session=ledger.session)
    logger.info(
        "Collection %s recorded for machine %s: %s units, amount %.2f",
        collection.id, machine_id, collection.difference, collection.amount,
    )
    return collection


def record_route_collection(
    ledger: CounterLedger,
    *,
    client_id: int,
    readings: dict[str, int],
    staff_member: str,
    signature_data: str,
    collected_at: Optional[datetime] = None,
    distribution_percentage: Optional[float] = None,
    collection_method: str = COLLECTION_METHOD_CASH,
    ticket_number: Optional[str] = None,
    invoice_number: Optional[str] = None,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
) -> list[Collection]:
    """
    Collect several machines of one client in a single visit.

    All-or-nothing: if any machine fails, no collection or counter change is kept.
    """
    if not readings:
        raise CollectionError("At least one machine reading is required")
    _check_common(staff_member, signature_data, collection_method, distribution_percentage)

    def _op():
        with ledger.transaction():
            return [
                _record_one(
                    ledger,
                    machine_id=machine_id,
                    client_id=client_id,
                    new_counter=counter,
                    staff_member=staff_member,
                    signature_data=signature_data,
                    collected_at=collected_at,
                    distribution_percentage=distribution_percentage,
                    collection_method=collection_method,
                    ticket_number=ticket_number,
                    invoice_number=invoice_number,
                    notes=notes,
                    created_by=created_by,
                )
                for machine_id, counter in readings.items()
            ]

    collections = run_with_retry(_op, session=ledger.session)
    logger.info("Route collection for client %s: %d machines", client_id, len(collections))
    return collections


def get_collection(ledger: CounterLedger, collection_id: str) -> Collection | None:
    return ledger.session.query(Collection).filter_by(id=collection_id).first()


def _filtered_query(
    ledger: CounterLedger,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    client_id: Optional[int] = None,
    machine_id: Optional[str] = None,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    staff_member: Optional[str] = None,
):
    q = ledger.session.query(Collection)
    # Date range is inclusive on both ends
    if start is not None:
        q = q.filter(Collection.collected_at >= start)
    if end is not None:
        q = q.filter(Collection.collected_at <= end)
    if client_id is not None:
        q = q.filter(Collection.client_id == client_id)
    if machine_id is not None:
        q = q.filter(Collection.machine_id == machine_id)
    if min_amount is not None:
        q = q.filter(Collection.amount >= min_amount)
    if max_amount is not None:
        q = q.filter(Collection.amount <= max_amount)
    if staff_member:
        q = q.filter(Collection.staff_member.ilike(f"%{staff_member}%"))
    return q


def list_collections(ledger: CounterLedger, **filters) -> list[Collection]:
    """Collections matching the filters, newest first."""
    return (
        _filtered_query(ledger, **filters)
        .order_by(Collection.collected_at.desc(), Collection.created_at.desc())
        .all()
    )


def period_key(dt: datetime, period: str) -> str:
    try:
        return time_utils.period_key(dt, period)
    except ValueError as e:
        raise CollectionError(str(e)) from e


def calculate_total(collections: Iterable[Collection]) -> float:
    return sum(c.amount or 0.0 for c in collections)


def summarize_collections(ledger: CounterLedger, period: str = "month", **filters) -> list[dict]:
    """Totals per period bucket, oldest bucket first."""
    if period not in SUMMARY_PERIODS:
        raise CollectionError(f"Invalid period: {period} (expected one of {', '.join(SUMMARY_PERIODS)})")

    rows = _filtered_query(ledger, **filters).order_by(Collection.collected_at.asc()).all()

    buckets: "OrderedDict[str, dict]" = OrderedDict()
    for c in rows:
        key = period_key(c.collected_at, period)
        bucket = buckets.setdefault(key, {"period": key, "count": 0, "total_amount": 0.0, "total_difference": 0})
        bucket["count"] += 1
        bucket["total_amount"] += c.amount
        bucket["total_difference"] += c.difference

    return list(buckets.values())
