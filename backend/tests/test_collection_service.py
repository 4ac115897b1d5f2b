# Overview: Pytest coverage for revenue collections recorded through the counter ledger.

from datetime import datetime

import pytest

from coinop.extensions import db
from coinop.models import Collection, CollectionObservation, CounterObservation, MachineHistoryEntry
from coinop.services import collection_service, machine_service
from coinop.services.collection_service import CollectionError
from coinop.services.counter_service import MachineNotFound

from conftest import INSTALLATION, make_machine


SIGNATURE = "data:image/png;base64,iVBORw0KGgo="


def _collect(ledger, machine, venue, counter, **kwargs):
    params = {
        "machine_id": machine.id,
        "client_id": venue.id,
        "new_counter": counter,
        "staff_member": "Ana",
        "signature_data": SIGNATURE,
    }
    params.update(kwargs)
    return collection_service.record_collection(ledger, **params)


@pytest.fixture
def second_machine(ledger, db_session, venue_a):
    machine = make_machine(db_session, serial="SN-200", initial_counter=1000, split_percentage=40.0)
    return machine_service.install_machine(ledger, machine.id, venue_a.id, INSTALLATION)


class TestRecordCollection:

    def test_amount_uses_machine_split(self, ledger, installed_machine, venue_a):
        collection = _collect(ledger, installed_machine, venue_a, 300)

        assert collection.previous_counter == 100
        assert collection.current_counter == 300
        assert collection.difference == 200
        assert collection.distribution_percentage == 50
        assert collection.amount == 100.0
        assert ledger.latest_counter(installed_machine.id) == 300

    def test_collection_linked_to_its_observation(self, ledger, installed_machine, venue_a):
        collection = _collect(ledger, installed_machine, venue_a, 300)

        obs = collection.observation
        assert isinstance(obs, CollectionObservation)
        assert obs.collection.id == collection.id
        assert obs.details() == {"collection_id": collection.id}
        assert obs.actor == "Ana"
        assert ledger.history_for(installed_machine.id)[0].id == obs.id

        actions = [
            e.action
            for e in db.session.query(MachineHistoryEntry)
            .filter_by(machine_id=installed_machine.id)
            .order_by(MachineHistoryEntry.id)
        ]
        assert actions[-1] == "collection"

    def test_distribution_percentage_override(self, ledger, installed_machine, venue_a):
        collection = _collect(ledger, installed_machine, venue_a, 1100, distribution_percentage=40)
        assert collection.amount == 400.0

        collection = _collect(ledger, installed_machine, venue_a, 2100, distribution_percentage=60)
        assert collection.amount == 600.0

    def test_backward_reading_collects_nothing(self, ledger, installed_machine, venue_a):
        collection = _collect(ledger, installed_machine, venue_a, 90)

        assert collection.difference == 0
        assert collection.amount == 0
        assert ledger.latest_counter(installed_machine.id) == 90

    @pytest.mark.parametrize("overrides", [
        {"staff_member": ""},
        {"signature_data": None},
        {"collection_method": "bitcoin"},
        {"distribution_percentage": 120},
    ])
    def test_invalid_input_changes_nothing(self, ledger, installed_machine, venue_a, overrides):
        with pytest.raises(CollectionError):
            _collect(ledger, installed_machine, venue_a, 300, **overrides)

        assert ledger.latest_counter(installed_machine.id) == 100
        assert db.session.query(Collection).count() == 0

    def test_machine_must_be_installed_at_client(self, ledger, installed_machine, venue_b):
        with pytest.raises(CollectionError):
            _collect(ledger, installed_machine, venue_b, 300)
        assert ledger.latest_counter(installed_machine.id) == 100

    def test_machine_in_storage_refused(self, ledger, machine, venue_a):
        with pytest.raises(CollectionError):
            _collect(ledger, machine, venue_a, 300)

    def test_failure_after_reading_rolls_back_observation(self, ledger, installed_machine, venue_a, monkeypatch):
        observations_before = db.session.query(CounterObservation).count()

        def boom(difference, pct):
            raise RuntimeError("revenue computation failed")

        monkeypatch.setattr(collection_service, "compute_revenue", boom)

        with pytest.raises(RuntimeError):
            _collect(ledger, installed_machine, venue_a, 300)

        db.session.expire_all()
        assert ledger.latest_counter(installed_machine.id) == 100
        assert db.session.query(CounterObservation).count() == observations_before
        assert db.session.query(Collection).count() == 0


class TestRouteCollection:

    def test_collects_every_machine(self, ledger, installed_machine, second_machine, venue_a):
        collections = collection_service.record_route_collection(
            ledger,
            client_id=venue_a.id,
            readings={installed_machine.id: 300, second_machine.id: 1500},
            staff_member="Ana",
            signature_data=SIGNATURE,
        )

        amounts = {c.machine_id: c.amount for c in collections}
        assert amounts == {installed_machine.id: 100.0, second_machine.id: 200.0}
        assert collection_service.calculate_total(collections) == 300.0

    def test_all_or_nothing(self, ledger, installed_machine, second_machine, venue_a):
        with pytest.raises(MachineNotFound):
            collection_service.record_route_collection(
                ledger,
                client_id=venue_a.id,
                readings={installed_machine.id: 300, "missing": 10, second_machine.id: 1500},
                staff_member="Ana",
                signature_data=SIGNATURE,
            )

        db.session.expire_all()
        assert ledger.latest_counter(installed_machine.id) == 100
        assert ledger.latest_counter(second_machine.id) == 1000
        assert db.session.query(Collection).count() == 0

    def test_requires_readings(self, ledger, venue_a, db_session):
        with pytest.raises(CollectionError):
            collection_service.record_route_collection(
                ledger, client_id=venue_a.id, readings={}, staff_member="Ana", signature_data=SIGNATURE,
            )


class TestListAndSummary:

    @pytest.fixture
    def history(self, ledger, installed_machine, venue_a):
        return [
            _collect(ledger, installed_machine, venue_a, 150, collected_at=datetime(2026, 1, 5, 10, 0)),
            _collect(ledger, installed_machine, venue_a, 200, collected_at=datetime(2026, 1, 20, 10, 0),
                     staff_member="Pedro"),
            _collect(ledger, installed_machine, venue_a, 260, collected_at=datetime(2026, 2, 3, 10, 0)),
        ]

    def test_list_newest_first(self, ledger, history):
        items = collection_service.list_collections(ledger)
        assert [c.id for c in items] == [c.id for c in reversed(history)]

    def test_list_filters(self, ledger, history, installed_machine, venue_b):
        in_range = collection_service.list_collections(
            ledger, start=datetime(2026, 1, 10), end=datetime(2026, 1, 31, 23, 59, 59),
        )
        assert [c.id for c in in_range] == [history[1].id]

        assert [c.id for c in collection_service.list_collections(ledger, staff_member="ped")] == [history[1].id]
        assert len(collection_service.list_collections(ledger, min_amount=26)) == 1
        assert len(collection_service.list_collections(ledger, max_amount=25)) == 2
        assert len(collection_service.list_collections(ledger, machine_id=installed_machine.id)) == 3
        assert collection_service.list_collections(ledger, client_id=venue_b.id) == []

    def test_summary_by_month(self, ledger, history):
        buckets = collection_service.summarize_collections(ledger, "month")
        assert buckets == [
            {"period": "2026-01", "count": 2, "total_amount": 50.0, "total_difference": 100},
            {"period": "2026-02", "count": 1, "total_amount": 30.0, "total_difference": 60},
        ]

    def test_summary_by_week_and_year(self, ledger, history):
        weeks = [b["period"] for b in collection_service.summarize_collections(ledger, "week")]
        assert weeks == ["2026-W02", "2026-W04", "2026-W06"]

        [year] = collection_service.summarize_collections(ledger, "year")
        assert year["period"] == "2026"
        assert year["total_amount"] == 80.0

    def test_summary_invalid_period(self, ledger, db_session):
        with pytest.raises(CollectionError):
            collection_service.summarize_collections(ledger, "decade")

    def test_period_key(self):
        dt = datetime(2026, 3, 9, 8, 30)
        assert collection_service.period_key(dt, "day") == "2026-03-09"
        assert collection_service.period_key(dt, "month") == "2026-03"
        assert collection_service.period_key(dt, "week") == "2026-W11"
