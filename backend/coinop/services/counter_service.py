# Overview: Counter ledger; owns machine counter readings and the revenue they imply.

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models import Machine, MachineHistoryEntry, CounterObservation
from ..models.counters import OBSERVATION_TYPES, OBSERVATION_SOURCES
from ..time_utils import utcnow
from .concurrency import TRANSACTION_DEPTH_KEY, lock_for_update

"""
Counter ledger invariants (authoritative)

- machine.current_counter == new_counter of the latest recorded observation
  (or initial_counter before any observation exists).
- Every observation stores difference = max(0, new - previous); a backward
  reading still moves current_counter but never produces negative revenue.
- Reading the previous counter, updating the machine and appending the
  observation happen in one transaction scope: all of it commits or none of it.
- Observations are append-only; nothing here updates or deletes them.
"""

logger = logging.getLogger(__name__)

DEFAULT_SPLIT_PERCENTAGE = 50
NOTE_MAX_LENGTH = CounterObservation.note.type.length


class CounterLedgerError(Exception):
    """Raised when counter ledger operations fail."""


class MachineNotFound(CounterLedgerError, LookupError):
    def __init__(self, machine_id):
        super().__init__(f"Machine {machine_id} not found")
        self.machine_id = machine_id


class InvalidSource(CounterLedgerError, ValueError):
    def __init__(self, source):
        super().__init__(
            f"Invalid counter source: {source!r} (expected one of {', '.join(OBSERVATION_SOURCES)})"
        )
        self.source = source


class InvalidCounterValue(CounterLedgerError, ValueError):
    """Counter readings are non-negative integers."""


class InvalidObservationDetails(CounterLedgerError, ValueError):
    """A field the source kind does not carry, or a note/actor that does not fit its column."""


class PersistenceError(CounterLedgerError):
    """Storage failure inside a ledger transaction; nothing was applied."""


def calculate_counter_difference(previous: int, current: int) -> int:
    return max(0, current - previous)


def clip_note(text: Optional[str]) -> Optional[str]:
    """Shorten text to fit an observation note, marking the cut with an ellipsis."""
    if text is None or len(text) <= NOTE_MAX_LENGTH:
        return text
    return text[: NOTE_MAX_LENGTH - 3] + "..."


def compute_revenue(difference: int, split_percentage: float = DEFAULT_SPLIT_PERCENTAGE) -> float:
    """
    Money represented by a counter movement, one currency unit per count.

    split_percentage is applied as given. Keeping it within 0-100 is the
    caller's job; this function does not pick operator or venue side.
    """
    return difference * (split_percentage / 100)


def _normalize_timestamp(timestamp: Optional[datetime]) -> datetime:
    if timestamp is None:
        return utcnow()
    if timestamp.tzinfo is not None:
        return timestamp.astimezone(timezone.utc).replace(tzinfo=None)
    return timestamp


class CounterLedger:
    """
    Single source of truth for machine counters.

    Built around an explicitly supplied SQLAlchemy session (the app factory
    passes the scoped ``db.session``; scripts and tests may pass their own).
    default_split_percentage is what machines get when registered without a
    split; the app factory takes it from DEFAULT_SPLIT_PERCENTAGE in config.
    """

    def __init__(self, session, default_split_percentage: float = DEFAULT_SPLIT_PERCENTAGE):
        if not 0 <= default_split_percentage <= 100:
            raise ValueError(f"Default split percentage must be between 0 and 100, got {default_split_percentage!r}")
        self.session = session
        self.default_split_percentage = default_split_percentage

    def close(self) -> None:
        """Release the session's connection; the ledger stays usable afterwards."""
        remove = getattr(self.session, "remove", None)
        if remove is not None:
            remove()
        else:
            self.session.close()

    @property
    def in_transaction(self) -> bool:
        return self.session.info.get(TRANSACTION_DEPTH_KEY, 0) > 0

    @contextmanager
    def transaction(self) -> Iterator:
        """
        Commit-or-rollback scope around ledger writes.

        Scopes nest: inner scopes join the outermost one, which alone commits
        or rolls back. Storage errors surface as PersistenceError.
        """
        info = self.session.info
        depth = info.get(TRANSACTION_DEPTH_KEY, 0)
        info[TRANSACTION_DEPTH_KEY] = depth + 1
        try:
            yield self.session
            if depth == 0:
                self.session.commit()
        except SQLAlchemyError as exc:
            if depth:
                raise
            self.session.rollback()
            raise PersistenceError(f"Counter ledger write failed: {exc}") from exc
        except Exception:
            if depth == 0:
                self.session.rollback()
            raise
        finally:
            info[TRANSACTION_DEPTH_KEY] = depth

    def get_machine(self, machine_id: str, *, for_update: bool = False) -> Machine:
        query = self.session.query(Machine).filter_by(id=machine_id)
        if for_update:
            query = lock_for_update(query)
        machine = query.first()
        if machine is None:
            raise MachineNotFound(machine_id)
        return machine

    def record_observation(
        self,
        machine_id: str,
        new_counter: int,
        source: str,
        note: Optional[str] = None,
        actor: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        **details,
    ) -> CounterObservation:
        """
        Record a counter reading and advance the machine's current counter.

        Args:
            machine_id: Machine whose counter was read
            new_counter: Reading, non-negative integer
            source: installation, collection, maintenance, transfer or manual
            note: Optional free text
            actor: Optional user/technician identifier
            timestamp: Business time of the reading (defaults to now)
            **details: Fields specific to the source kind (e.g. to_client_id for transfer)

        Returns:
            CounterObservation: The appended observation (subclass per source).
            observation.machine.current_counter is the updated counter.

        Raises:
            MachineNotFound, InvalidSource, InvalidCounterValue,
            InvalidObservationDetails, PersistenceError
        """
        observation_cls = OBSERVATION_TYPES.get(source)
        if observation_cls is None:
            raise InvalidSource(source)

        if isinstance(new_counter, bool) or not isinstance(new_counter, int):
            raise InvalidCounterValue(f"Counter must be an integer, got {new_counter!r}")
        if new_counter < 0:
            raise InvalidCounterValue(f"Counter cannot be negative: {new_counter}")

        unknown = set(details) - observation_cls.DETAIL_FIELDS
        if unknown:
            raise InvalidObservationDetails(
                f"{source} observations do not accept: {', '.join(sorted(unknown))}"
            )
        for key, value in (("note", note), ("actor", actor)):
            limit = getattr(CounterObservation, key).type.length
            if value is not None and (not isinstance(value, str) or len(value) > limit):
                raise InvalidObservationDetails(f"{key} must be text of at most {limit} characters")

        occurred_at = _normalize_timestamp(timestamp)

        with self.transaction():
            machine = self.get_machine(machine_id, for_update=True)
            previous = machine.current_counter

            observation = observation_cls(
                machine_id=machine.id,
                previous_counter=previous,
                new_counter=new_counter,
                difference=calculate_counter_difference(previous, new_counter),
                note=note,
                actor=actor,
                occurred_at=occurred_at,
                **details,
            )
            machine.current_counter = new_counter

            self.session.add(observation)
            self.session.add(MachineHistoryEntry(
                machine_id=machine.id,
                occurred_at=occurred_at,
                action="counter_update",
                details=f"Counter updated to {new_counter} via {source}" + (f": {note}" if note else ""),
            ))
            self.session.flush()

        if new_counter < previous:
            logger.warning(
                "Counter for machine %s went backwards (%s -> %s, source=%s); difference clamped to 0",
                machine_id, previous, new_counter, source,
            )
        logger.info(
            "Counter updated for machine %s: %s -> %s (source=%s)",
            machine_id, previous, new_counter, source,
        )
        return observation

    def latest_counter(self, machine_id: str) -> int:
        return self.get_machine(machine_id).current_counter

    def history_for(self, machine_id: str) -> list[CounterObservation]:
        """Observations for one machine, newest first."""
        self.get_machine(machine_id)
        return (
            self.session.query(CounterObservation)
            .filter(CounterObservation.machine_id == machine_id)
            .order_by(CounterObservation.occurred_at.desc(), CounterObservation.id.desc())
            .all()
        )

    def all_counters(self) -> dict[str, int]:
        rows = self.session.query(Machine.id, Machine.current_counter).all()
        return {machine_id: counter for machine_id, counter in rows}
