"""Shared pytest fixtures: a throwaway SQLite store per test and trip builders."""

import copy
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from tripstore.core.config import Settings
from tripstore.db.dal import Database
from tripstore.db.migrate import CURRENT_SCHEMA_VERSION
from tripstore.db.schema import init_db
from tripstore.db.serialization import dumps
from tripstore.services.unified_data import UnifiedDataService

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

_BASE_TRIP = {
    "schemaVersion": CURRENT_SCHEMA_VERSION,
    "title": "Patagonia",
    "description": "",
    "startDate": "2024-01-01",
    "endDate": "2024-01-20",
    "createdAt": "2024-01-01T00:00:00.000Z",
    "updatedAt": "2024-01-01T00:00:00.000Z",
    "travelData": {
        "locations": [
            {
                "id": "loc1",
                "name": "Santiago",
                "coordinates": [-33.4, -70.6],
                "costTrackingLinks": [],
            },
            {
                "id": "loc2",
                "name": "Puerto Natales",
                "coordinates": [-51.7, -72.5],
                "accommodationIds": ["acc1"],
                "costTrackingLinks": [],
            },
        ],
        "routes": [
            {
                "id": "route1",
                "type": "bus",
                "from": "Santiago",
                "to": "Puerto Natales",
                "costTrackingLinks": [],
                "subRoutes": [
                    {
                        "id": "seg1",
                        "type": "plane",
                        "from": "Santiago",
                        "to": "Punta Arenas",
                        "costTrackingLinks": [],
                    },
                    {
                        "id": "seg2",
                        "type": "bus",
                        "from": "Punta Arenas",
                        "to": "Puerto Natales",
                        "costTrackingLinks": [],
                    },
                ],
            }
        ],
    },
    "accommodations": [
        {
            "id": "acc1",
            "name": "Hostel Nomade",
            "locationId": "loc2",
            "costTrackingLinks": [],
        }
    ],
    "costData": {
        "overallBudget": 3000,
        "currency": "EUR",
        "countryBudgets": [],
        "expenses": [
            {
                "id": "e1",
                "date": "2024-01-02T00:00:00.000Z",
                "amount": 120.0,
                "currency": "EUR",
                "category": "Transport",
                "description": "Flight to Punta Arenas",
            },
            {
                "id": "e2",
                "date": "2024-01-05T00:00:00.000Z",
                "amount": 300.0,
                "currency": "EUR",
                "category": "Accommodation",
                "description": "Hostel",
            },
        ],
    },
}


def build_trip(trip_id="tripA", **overrides):
    doc = copy.deepcopy(_BASE_TRIP)
    doc["id"] = trip_id
    doc.update(copy.deepcopy(overrides))
    return doc


@pytest.fixture
def make_trip():
    """Factory for raw trip documents at the current schema version."""
    return build_trip


@pytest.fixture
def settings(tmp_path):
    s = Settings(data_dir=tmp_path, db_filename="trips.sqlite3")
    s.init_post_load()
    return s


@pytest.fixture
def db(settings):
    init_db(settings.db_path)
    return Database(settings.db_path)


@pytest.fixture
def store(db, settings):
    return UnifiedDataService(db, settings, clock=lambda: FIXED_NOW)


@pytest.fixture
def put_raw(db):
    """Write a raw document straight into the blob store, bypassing migration."""

    def _put(doc, body=None):
        db.insert_document(doc["id"], body if body is not None else dumps(doc), doc.get("schemaVersion", 0))
        return doc

    return _put


@pytest.fixture
def client(settings):
    from tripstore.main import create_app

    return TestClient(create_app(settings))
