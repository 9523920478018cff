"""
Pytest fixtures for DeviceTrack backend tests.

Provides the application on an in-memory database, per-test table cleanup,
a test client, and location/supplier/item fixtures.
"""

import pytest

from devtrack import create_app
from devtrack.extensions import db
from devtrack.models import InventoryItem, Location, LocationType, Supplier


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

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
def actor_headers():
    """Headers the upstream gateway forwards for an authenticated manager."""
    return {'X-User-Id': 'tester', 'X-User-Role': 'MANAGER'}


def make_location(session, code, location_type=LocationType.WAREHOUSE, parent=None, **extra):
    fields = {"name": f"Location {code}", "is_active": True}
    fields.update(extra)
    location = Location(
        code=code,
        location_type=location_type,
        parent_location_id=parent.id if parent is not None else None,
        **fields,
    )
    session.add(location)
    session.commit()
    return location


def make_item(session, location, part_number="PN-001", barcode="4006381333931", **extra):
    fields = {
        "description": f"Item {part_number}",
        "current_stock": 100,
        "reserved_stock": 0,
        "minimum_stock": 10,
        "maximum_stock": 0,
        "standard_cost_cents": 500,
        "is_active": True,
    }
    fields.update(extra)
    item = InventoryItem(
        part_number=part_number,
        barcode=barcode,
        location_id=location.id,
        **fields,
    )
    session.add(item)
    session.commit()
    return item


@pytest.fixture(scope='function')
def warehouse(db_session):
    """Receivable root location."""
    return make_location(db_session, "WH-01")


@pytest.fixture(scope='function')
def second_warehouse(db_session):
    return make_location(db_session, "WH-02")


@pytest.fixture(scope='function')
def quarantine(db_session):
    """Location type that cannot receive inventory."""
    return make_location(db_session, "QA-01", LocationType.QUARANTINE)


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(code="SUP-01", company_name="Acme Components", lead_time_days=14, is_active=True)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def item(db_session, warehouse):
    """Item with 100 on hand at WH-01, nothing reserved, no maximum."""
    return make_item(db_session, warehouse)
