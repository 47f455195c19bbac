from __future__ import annotations

import pytest

from ambutrack.errors import ValidationError
from ambutrack.models import AmbulanceStatus, OwnershipType, RequestStatus
from ambutrack.store import DispatchStore

from conftest import make_driver, make_patient


def hospital(**overrides):
    data = {
        "name": "City Hospital",
        "address": "Main Road",
        "phone": "+91 11-0000-0000",
        "lat": 28.60,
        "lng": 77.21,
        "rating": 4.2,
        "specialties": ["Cardiology", "Emergency"],
        "type": "private",
    }
    data.update(overrides)
    return data


# Ambulances -----------------------------------------------------------------

def test_upsert_creates_available_ambulance(store):
    ambulance = store.upsert_ambulance(make_driver())

    assert ambulance.id == 1
    assert ambulance.status == AmbulanceStatus.AVAILABLE
    assert ambulance.type == OwnershipType.GOVERNMENT
    assert ambulance.location == (28.61, 77.20)


def test_upsert_same_driver_merges_into_one_record(store):
    first = store.upsert_ambulance(make_driver())
    second = store.upsert_ambulance({"driver_id": "d1", "phone": "+91 9999999999"})

    assert len(store.list_ambulances()) == 1
    assert second.id == first.id
    assert second.phone == "+91 9999999999"
    assert second.driver_name == first.driver_name
    assert second.last_updated >= first.last_updated


def test_new_ambulance_requires_all_fields(store):
    with pytest.raises(ValidationError, match="lat"):
        store.upsert_ambulance({k: v for k, v in make_driver().items() if k != "lat"})


@pytest.mark.parametrize(
    "overrides",
    [
        {"driver_id": "  "},
        {"lat": "28.6"},
        {"lng": True},
        {"type": "military"},
        {"status": "sleeping"},
        {"colour": "red"},
    ],
)
def test_upsert_rejects_bad_input(store, overrides):
    with pytest.raises(ValidationError):
        store.upsert_ambulance(make_driver(**overrides))
    assert store.list_ambulances() == []


def test_location_update(store):
    store.upsert_ambulance(make_driver())
    moved = store.update_ambulance_location("d1", 28.62, 77.22)

    assert moved.location == (28.62, 77.22)
    assert store.get_ambulance_by_driver_id("d1").location == (28.62, 77.22)


def test_unknown_driver_returns_none_and_creates_nothing(store):
    assert store.get_ambulance_by_driver_id("ghost") is None
    assert store.update_ambulance_location("ghost", 28.6, 77.2) is None
    assert store.update_ambulance_status("ghost", "offline") is None
    assert store.list_ambulances() == []


def test_status_is_a_closed_set(store):
    store.upsert_ambulance(make_driver())

    assert store.update_ambulance_status("d1", "OFFLINE").status == AmbulanceStatus.OFFLINE
    with pytest.raises(ValidationError, match="available, busy, offline"):
        store.update_ambulance_status("d1", "on-break")


def test_returned_records_are_copies(store):
    ambulance = store.upsert_ambulance(make_driver())
    ambulance.lat = 0.0

    assert store.get_ambulance_by_driver_id("d1").lat == 28.61


# Requests -------------------------------------------------------------------

def test_create_request_is_pending(store):
    request = store.create_request(make_patient())

    assert request.id == 1
    assert request.status == RequestStatus.PENDING
    assert request.driver_id is None
    assert request.location == (28.58, 77.21)


def test_request_ids_increase(store):
    ids = [store.create_request(make_patient()).id for _ in range(3)]
    assert ids == [1, 2, 3]


def test_request_without_location(store):
    request = store.create_request(make_patient(lat=None, lng=None))
    assert request.location is None


@pytest.mark.parametrize("field", ["patient_name", "patient_phone", "emergency"])
def test_request_requires_text_fields(store, field):
    with pytest.raises(ValidationError, match=field):
        store.create_request(make_patient(**{field: " "}))
    assert store.list_requests() == []


def test_request_cannot_start_accepted(store):
    with pytest.raises(ValidationError):
        store.create_request(make_patient(status="accepted"))


def test_update_request_status_merges_driver(store):
    request = store.create_request(make_patient())
    updated = store.update_request_status(request.id, "accepted", "d1")

    assert updated.status == RequestStatus.ACCEPTED
    assert updated.driver_id == "d1"
    assert store.update_request_status(999, "accepted") is None


def test_list_requests_by_status(store):
    first = store.create_request(make_patient())
    store.create_request(make_patient())
    store.update_request_status(first.id, "cancelled")

    assert [r.id for r in store.list_requests("pending")] == [2]
    assert [r.id for r in store.list_requests("cancelled")] == [1]
    assert len(store.list_requests()) == 2


# Hospitals ------------------------------------------------------------------

def test_create_hospital(store):
    created = store.create_hospital(hospital())

    assert created.id == 1
    assert created.specialties == ("Cardiology", "Emergency")
    assert store.get_hospital(1) == created


@pytest.mark.parametrize(
    "overrides",
    [
        {"rating": 5.5},
        {"rating": "4"},
        {"specialties": "Cardiology"},
        {"type": "charity"},
        {"name": ""},
    ],
)
def test_create_hospital_rejects_bad_input(store, overrides):
    with pytest.raises(ValidationError):
        store.create_hospital(hospital(**overrides))


def test_specialty_search_is_case_insensitive_substring(store):
    store.create_hospital(hospital(name="Heart Centre", specialties=["Cardiology"]))
    store.create_hospital(hospital(name="Bone Clinic", specialties=["Orthopedic"]))

    assert [h.name for h in store.search_hospitals_by_specialty("cardio")] == ["Heart Centre"]
    assert [h.name for h in store.search_hospitals_by_specialty("CARDIOLOGY")] == ["Heart Centre"]
    assert store.search_hospitals_by_specialty("neuro") == []


@pytest.mark.parametrize("specialty", ["", "   ", None])
def test_blank_specialty_returns_all(store, specialty):
    store.create_hospital(hospital(name="One"))
    store.create_hospital(hospital(name="Two"))

    assert len(store.search_hospitals_by_specialty(specialty)) == 2


# Seed data and change feed --------------------------------------------------

def test_seed_data(seeded_store):
    assert len(seeded_store.list_ambulances()) == 3
    assert len(seeded_store.list_hospitals()) == 25
    assert seeded_store.get_ambulance_by_driver_id("driver003").status == AmbulanceStatus.OFFLINE
    assert len(seeded_store.search_hospitals_by_specialty("cardio")) == 23


def test_seed_data_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        DispatchStore().load_seed_data(str(tmp_path / "none.csv"), str(tmp_path / "none.csv"))


def test_seed_data_bad_row(tmp_path):
    ambulances = tmp_path / "ambulances.csv"
    ambulances.write_text("driver_id,driver_name\nd1,Someone\n")
    hospitals = tmp_path / "hospitals.csv"
    hospitals.write_text("name\n")

    with pytest.raises(ValueError, match="Invalid ambulance data"):
        DispatchStore().load_seed_data(str(ambulances), str(hospitals))


def test_mutations_are_published(store):
    events = []
    store.feed.subscribe("ambulances", events.append)

    store.upsert_ambulance(make_driver())
    store.update_ambulance_location("d1", 28.62, 77.21)
    store.create_request(make_patient())

    assert [e["action"] for e in events] == ["created", "location"]
    assert events[0]["data"]["driver_id"] == "d1"
    assert events[0]["data"]["status"] == "available"
