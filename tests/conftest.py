from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from fastapi.testclient import TestClient

from ambutrack import config
from ambutrack.api import create_app
from ambutrack.lifecycle import RequestLifecycle
from ambutrack.routing import RouteEstimator
from ambutrack.simulator import LocationSimulator
from ambutrack.store import DispatchStore


def make_driver(driver_id="d1", lat=28.61, lng=77.20, **overrides):
    data = {
        "driver_id": driver_id,
        "driver_name": "Test Driver",
        "driver_email": f"{driver_id}@example.com",
        "phone": "+91 9000000001",
        "lat": lat,
        "lng": lng,
        "type": "government",
    }
    data.update(overrides)
    return data


def make_patient(lat=28.58, lng=77.21, **overrides):
    data = {
        "patient_name": "A",
        "patient_phone": "123",
        "emergency": "chest pain",
        "lat": lat,
        "lng": lng,
    }
    data.update(overrides)
    return data


@pytest.fixture()
def store():
    return DispatchStore()


@pytest.fixture()
def seeded_store():
    store = DispatchStore()
    store.load_seed_data(str(config.AMBULANCE_SEED_FILE), str(config.HOSPITAL_SEED_FILE))
    return store


@pytest.fixture()
def lifecycle(store):
    return RequestLifecycle(store)


@pytest.fixture()
def estimator():
    return RouteEstimator(use_road_routing=False)


@pytest.fixture()
def simulator():
    return LocationSimulator(steps=3, step_delay=0.0, waypoint_tick=0.0, jitter_tick=0.01)


@pytest.fixture()
def client(store, estimator, simulator):
    app = create_app(store=store, estimator=estimator, simulator=simulator, seed=False)
    with TestClient(app) as test_client:
        yield test_client
