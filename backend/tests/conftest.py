"""
Pytest fixtures for coin-op ledger backend tests.

Provides the application over in-memory SQLite, a fresh database per test,
the app's counter ledger, and venue/machine fixtures.
"""

import pytest
from coinop import create_app
from coinop.config import TestConfig
from coinop.extensions import db
from coinop.models import Client, Machine


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def ledger(app, db_session):
    """The counter ledger opened by the app factory."""
    return app.extensions["counter_ledger"]


@pytest.fixture(scope='function')
def venue_a(db_session):
    """Create venue A (a bar)."""
    venue = Client(name="Bar Central", business_type="bar", city="Valencia", machine_count=0)
    db_session.add(venue)
    db_session.commit()
    return venue


@pytest.fixture(scope='function')
def venue_b(db_session):
    """Create venue B (an arcade)."""
    venue = Client(name="Arcade Norte", business_type="arcade", city="Madrid", machine_count=0)
    db_session.add(venue)
    db_session.commit()
    return venue


def make_machine(db_session, *, serial: str, initial_counter: int = 0, split_percentage: float = 50.0) -> Machine:
    """Helper to create a machine in storage with counters seeded from initial_counter."""
    machine = Machine(
        serial_number=serial,
        machine_type="claw",
        brand="Elaut",
        initial_counter=initial_counter,
        current_counter=initial_counter,
        split_percentage=split_percentage,
    )
    db_session.add(machine)
    db_session.commit()
    return machine


@pytest.fixture(scope='function')
def machine(db_session):
    """Machine in storage with initial_counter = 100."""
    return make_machine(db_session, serial="SN-100", initial_counter=100)


@pytest.fixture(scope='function')
def fresh_machine(db_session):
    """Machine in storage with initial_counter = 0."""
    return make_machine(db_session, serial="SN-000", initial_counter=0)


INSTALLATION = {
    "technician": "Luis",
    "responsible_name": "Marta Gil",
    "responsible_id": "12345678Z",
    "location": "Next to the entrance",
    "accepted_terms": True,
    "accepted_responsibility": True,
}


@pytest.fixture(scope='function')
def installed_machine(ledger, machine, venue_a):
    """Machine (counter 100) installed at venue A with the counter unchanged."""
    from coinop.services import machine_service

    return machine_service.install_machine(ledger, machine.id, venue_a.id, INSTALLATION)
