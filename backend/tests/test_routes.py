# Overview: Pytest coverage for the JSON API (status codes, payload validation, error mapping).

"""
HTTP route tests.

Verifies:
- Counter reads/writes go through the ledger and map its errors to 400/404/500
- Machine lifecycle endpoints record their counter readings
- Collections compute the amount server-side
- Input validation returns 400 before anything is written
"""

import pytest
from sqlalchemy.exc import OperationalError

from coinop.extensions import db
from coinop.models import Collection, CounterObservation, Machine

from conftest import INSTALLATION


SIGNATURE = "data:image/png;base64,iVBORw0KGgo="


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_version(self, client, db_session):
        resp = client.get("/version")
        assert resp.status_code == 200
        assert resp.json["currency"] == "EUR"


class TestCounterRoutes:

    def test_record_and_read(self, client, machine):
        resp = client.post(f"/api/counters/{machine.id}", json={"counter": 150, "source": "manual", "note": "reset"})
        assert resp.status_code == 201
        assert resp.json["previous_counter"] == 100
        assert resp.json["difference"] == 50
        assert resp.json["current_counter"] == 150

        resp = client.get(f"/api/counters/{machine.id}")
        assert resp.json == {"machine_id": machine.id, "current_counter": 150}

        resp = client.get(f"/api/counters/{machine.id}/history")
        assert resp.json["count"] == 1
        assert resp.json["items"][0]["source"] == "manual"

    def test_all_counters(self, client, machine, fresh_machine):
        resp = client.get("/api/counters")
        assert resp.json["counters"] == {machine.id: 100, fresh_machine.id: 0}

    def test_unknown_machine_is_404(self, client, db_session):
        assert client.get("/api/counters/nope").status_code == 404
        assert client.get("/api/counters/nope/history").status_code == 404
        assert client.post("/api/counters/nope", json={"counter": 10}).status_code == 404
        assert db.session.query(CounterObservation).count() == 0

    @pytest.mark.parametrize("payload", [
        {},
        {"counter": -5},
        {"counter": 1.5},
        {"counter": 10, "source": "refill"},
        {"counter": 10, "occurred_at": "yesterday"},
    ])
    def test_invalid_input_is_400(self, client, machine, payload):
        resp = client.post(f"/api/counters/{machine.id}", json=payload)
        assert resp.status_code == 400
        assert "error" in resp.json

    def test_storage_failure_is_500(self, client, machine, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db.session, "flush", boom)
        resp = client.post(f"/api/counters/{machine.id}", json={"counter": 150})
        monkeypatch.undo()

        assert resp.status_code == 500
        db.session.expire_all()
        assert client.get(f"/api/counters/{machine.id}").json["current_counter"] == 100

    def test_revenue(self, client, db_session):
        resp = client.get("/api/counters/revenue?difference=1000&split_percentage=40")
        assert resp.status_code == 200
        assert resp.json["revenue"] == 400.0

        assert client.get("/api/counters/revenue?difference=50").json["revenue"] == 25.0
        assert client.get("/api/counters/revenue?difference=50&split_percentage=150").status_code == 400
        assert client.get("/api/counters/revenue").status_code == 400

    @pytest.mark.parametrize("pct", ["nan", "inf", "-inf"])
    def test_revenue_rejects_non_finite_split(self, client, db_session, pct):
        resp = client.get(f"/api/counters/revenue?difference=100&split_percentage={pct}")
        assert resp.status_code == 400

    def test_note_longer_than_column_is_400(self, client, machine):
        resp = client.post(f"/api/counters/{machine.id}", json={"counter": 150, "note": "n" * 256})
        assert resp.status_code == 400
        assert client.get(f"/api/counters/{machine.id}").json["current_counter"] == 100


class TestMachineRoutes:

    def test_create_and_get(self, client, db_session):
        resp = client.post("/api/machines", json={
            "serial_number": "SN-9", "machine_type": "claw", "initial_counter": 500, "split_percentage": 45,
        })
        assert resp.status_code == 201
        machine_id = resp.json["id"]
        assert resp.json["current_counter"] == 500
        assert resp.json["status"] == "warehouse"

        resp = client.get(f"/api/machines/{machine_id}")
        assert resp.status_code == 200
        assert resp.json["history"][0]["action"] == "created"

    def test_create_validation(self, client, db_session):
        assert client.post("/api/machines", json={"serial_number": "SN-9"}).status_code == 400
        assert client.post("/api/machines", json={
            "serial_number": "SN-9", "machine_type": "claw", "current_counter": 5,
        }).status_code == 400
        assert client.post("/api/machines", json={
            "serial_number": "SN-9", "machine_type": "claw", "split_percentage": 101,
        }).status_code == 400

    @pytest.mark.parametrize("pct", ["nan", "NaN", "inf"])
    def test_create_rejects_non_finite_split(self, client, db_session, pct):
        resp = client.post("/api/machines", json={
            "serial_number": "SN-9", "machine_type": "claw", "split_percentage": pct,
        })
        assert resp.status_code == 400
        assert db.session.query(Machine).count() == 0

    def test_create_defaults_split_from_config(self, client, app, db_session):
        resp = client.post("/api/machines", json={"serial_number": "SN-9", "machine_type": "claw"})
        assert resp.json["split_percentage"] == app.config["DEFAULT_SPLIT_PERCENTAGE"]

    def test_duplicate_serial_is_409(self, client, machine):
        resp = client.post("/api/machines", json={"serial_number": "SN-100", "machine_type": "claw"})
        assert resp.status_code == 409

    def test_lifecycle(self, client, machine, venue_a, venue_b):
        resp = client.post(f"/api/machines/{machine.id}/install", json={
            "client_id": venue_a.id, "counter": 120, **INSTALLATION,
        })
        assert resp.status_code == 200
        assert resp.json["status"] == "installed"
        assert resp.json["current_counter"] == 120

        resp = client.post(f"/api/machines/{machine.id}/transfer", json={
            "to_client_id": venue_b.id, "counter": 300, **INSTALLATION,
        })
        assert resp.status_code == 200
        assert resp.json["client_id"] == venue_b.id

        resp = client.post(f"/api/machines/{machine.id}/repair", json={"counter": 310, "note": "Display"})
        assert resp.status_code == 200
        assert resp.json["status"] == "repair"

        resp = client.post(f"/api/machines/{machine.id}/store")
        assert resp.status_code == 200
        assert resp.json["status"] == "warehouse"

        history = client.get(f"/api/counters/{machine.id}/history").json["items"]
        assert [h["source"] for h in history] == ["maintenance", "transfer", "installation"]
        assert [h["difference"] for h in history] == [10, 180, 20]

    def test_install_errors(self, client, machine, venue_a):
        assert client.post(f"/api/machines/{machine.id}/install", json={**INSTALLATION}).status_code == 400
        assert client.post(f"/api/machines/{machine.id}/install", json={
            "client_id": 999, **INSTALLATION,
        }).status_code == 404
        assert client.post("/api/machines/nope/install", json={
            "client_id": venue_a.id, **INSTALLATION,
        }).status_code == 404
        assert client.post(f"/api/machines/{machine.id}/install", json={
            "client_id": venue_a.id, "technician": "Luis",
        }).status_code == 400

    def test_delete_refused_with_history(self, client, installed_machine):
        client.post(f"/api/machines/{installed_machine.id}/store")
        resp = client.delete(f"/api/machines/{installed_machine.id}")
        assert resp.status_code == 409

    def test_delete_refused_with_expenses(self, client, fresh_machine):
        resp = client.post("/api/expenses", json={
            "amount": 30, "expense_type": "repair", "description": "Coin mech", "machine_id": fresh_machine.id,
        })
        assert resp.status_code == 201

        assert client.delete(f"/api/machines/{fresh_machine.id}").status_code == 409
        assert client.get(f"/api/machines/{fresh_machine.id}").status_code == 200


class TestCollectionRoutes:

    def test_create_collection(self, client, installed_machine, venue_a):
        resp = client.post("/api/collections", json={
            "machine_id": installed_machine.id,
            "client_id": venue_a.id,
            "counter": 300,
            "staff_member": "Ana",
            "signature_data": SIGNATURE,
            "distribution_percentage": 40,
        })
        assert resp.status_code == 201
        assert resp.json["difference"] == 200
        assert resp.json["amount"] == 80.0
        assert resp.json["has_signature"] is True

        resp = client.get(f"/api/collections/{resp.json['id']}")
        assert resp.json["signature_data"] == SIGNATURE

        listing = client.get(f"/api/collections?client_id={venue_a.id}").json
        assert listing["count"] == 1
        assert listing["total_amount"] == 80.0

    def test_collection_requires_signature(self, client, installed_machine, venue_a):
        resp = client.post("/api/collections", json={
            "machine_id": installed_machine.id, "client_id": venue_a.id, "counter": 300, "staff_member": "Ana",
        })
        assert resp.status_code == 400
        assert db.session.query(Collection).count() == 0

    def test_route_collection(self, client, installed_machine, venue_a):
        resp = client.post("/api/collections/route", json={
            "client_id": venue_a.id,
            "staff_member": "Ana",
            "signature_data": SIGNATURE,
            "readings": [{"machine_id": installed_machine.id, "counter": 160}],
        })
        assert resp.status_code == 201
        assert resp.json["total_amount"] == 30.0

    def test_route_collection_duplicate_machine(self, client, installed_machine, venue_a):
        resp = client.post("/api/collections/route", json={
            "client_id": venue_a.id,
            "staff_member": "Ana",
            "signature_data": SIGNATURE,
            "readings": [
                {"machine_id": installed_machine.id, "counter": 160},
                {"machine_id": installed_machine.id, "counter": 170},
            ],
        })
        assert resp.status_code == 400

    def test_summary(self, client, installed_machine, venue_a):
        client.post("/api/collections", json={
            "machine_id": installed_machine.id, "client_id": venue_a.id, "counter": 300,
            "staff_member": "Ana", "signature_data": SIGNATURE, "collected_at": "2026-05-04T09:00:00Z",
        })
        resp = client.get("/api/collections/summary?period=month")
        assert resp.status_code == 200
        assert resp.json["items"] == [
            {"period": "2026-05", "count": 1, "total_amount": 100.0, "total_difference": 200},
        ]
        assert client.get("/api/collections/summary?period=decade").status_code == 400

    def test_date_only_end_covers_whole_day(self, client, installed_machine, venue_a):
        client.post("/api/collections", json={
            "machine_id": installed_machine.id, "client_id": venue_a.id, "counter": 300,
            "staff_member": "Ana", "signature_data": SIGNATURE, "collected_at": "2026-05-04T18:30:00Z",
        })
        assert client.get("/api/collections?start=2026-05-04&end=2026-05-04").json["count"] == 1
        assert client.get("/api/collections?end=2026-05-03").json["count"] == 0
        assert client.get("/api/collections?end=yesterday").status_code == 400


class TestClientExpenseCompanyRoutes:

    def test_client_crud(self, client, db_session):
        resp = client.post("/api/clients", json={"name": "Bar Sol", "machine_count": 3})
        assert resp.status_code == 400

        resp = client.post("/api/clients", json={"name": "Bar Sol", "city": "Sevilla"})
        assert resp.status_code == 201
        client_id = resp.json["id"]

        assert client.put(f"/api/clients/{client_id}", json={"phone": "600"}).json["phone"] == "600"
        assert client.get(f"/api/clients/{client_id}").json["machines"] == []
        assert client.delete(f"/api/clients/{client_id}").status_code == 200
        assert client.get(f"/api/clients/{client_id}").status_code == 404

    def test_client_with_machines_not_deleted(self, client, installed_machine, venue_a):
        assert client.delete(f"/api/clients/{venue_a.id}").status_code == 409

    def test_expenses(self, client, db_session):
        resp = client.post("/api/expenses", json={"amount": "12,50", "expense_type": "fuel", "description": "Route"})
        assert resp.status_code == 201
        assert resp.json["amount"] == 12.5

        assert client.post("/api/expenses", json={
            "amount": -1, "expense_type": "fuel", "description": "x",
        }).status_code == 400
        assert client.get("/api/expenses").json["total_amount"] == 12.5

    def test_company(self, client, db_session):
        assert client.get("/api/company").status_code == 200
        resp = client.put("/api/company", json={"name": "Recreativos Levante", "vat_percentage": 10})
        assert resp.status_code == 200
        assert resp.json["vat_percentage"] == 10.0
        assert client.put("/api/company", json={"vat_percentage": 150}).status_code == 400
