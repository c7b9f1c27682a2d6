import httpx
import pytest

from app.models.all_models import AmbulanceStatus, AmbulanceType, HospitalStatus, UserRole
from app.services.locator import (
    bounding_box, find_nearby_hospitals, haversine_m, merge_results, nearest_ambulances, nearest_hospitals,
)
from app.services.maps import MapsClient, MapsError

from conftest import make_ambulance, make_hospital, make_user

LAT, LNG = -15.78, 35.0


def _place(name):
    return {"source": "google", "name": name, "location": {"lat": LAT, "lng": LNG}}


def test_haversine_known_distance():
    # one degree of latitude
    assert haversine_m(0, 0, 1, 0) == pytest.approx(111195, rel=1e-3)
    assert haversine_m(LAT, LNG, LAT, LNG) == 0


def test_bounding_box_contains_radius():
    min_lat, max_lat, min_lng, max_lng = bounding_box(LAT, LNG, 1000)
    assert min_lat < LAT < max_lat
    assert haversine_m(LAT, LNG, max_lat, LNG) == pytest.approx(1000, rel=1e-3)
    assert min_lng < LNG < max_lng


def test_nearest_ambulances_orders_and_filters(db):
    driver = make_user(db, UserRole.DRIVER)
    far = make_ambulance(db, driver=driver, lat=LAT + 0.05, lng=LNG)
    near = make_ambulance(db, driver=driver, lat=LAT + 0.001, lng=LNG)
    make_ambulance(db, driver=driver, status=AmbulanceStatus.BUSY, lat=LAT, lng=LNG)
    make_ambulance(db, driver=driver, lat=LAT + 1, lng=LNG)

    found = nearest_ambulances(db, LAT, LNG, max_distance=10000, limit=5)

    assert [a.id for a, _ in found] == [near.id, far.id]
    assert found[0][1] < found[1][1]


def test_nearest_ambulances_type_filter(db):
    make_ambulance(db, type=AmbulanceType.ADVANCED, lat=LAT, lng=LNG)
    basic = make_ambulance(db, type=AmbulanceType.BASIC, lat=LAT, lng=LNG)

    found = nearest_ambulances(db, LAT, LNG, ambulance_type=AmbulanceType.BASIC)
    assert [a.id for a, _ in found] == [basic.id]


def test_nearest_hospitals_skips_inactive(db):
    active = make_hospital(db, lat=LAT, lng=LNG)
    make_hospital(db, lat=LAT, lng=LNG, status=HospitalStatus.INACTIVE)

    assert [h.id for h, _ in nearest_hospitals(db, LAT, LNG)] == [active.id]


def test_merge_dedupes_by_name_internal_first():
    internal = [{"name": "Queen Elizabeth"}]
    external = [{"name": "queen elizabeth "}, {"name": "Mwaiwathu"}, {"name": "Mwaiwathu"}]

    merged = merge_results(internal, external, limit=5)
    assert [m["name"] for m in merged] == ["Queen Elizabeth", "Mwaiwathu"]
    assert merge_results(internal, external, limit=1) == internal


def test_short_internal_results_are_topped_up(db, services):
    stored = [make_hospital(db, name=f"Stored {i}", lat=LAT + i * 0.001, lng=LNG) for i in range(3)]
    services.maps.places = [_place("Stored 1"), _place("Outside A"), _place("Outside B"), _place("Outside C")]

    result = find_nearby_hospitals(db, services.maps, LAT, LNG, radius=5000, limit=5)

    assert result.source == "combined"
    assert result.error is None
    assert len(result.items) == 5
    assert result.items[:3] == stored
    assert [item["name"] for item in result.items[3:]] == ["Outside A", "Outside B"]
    assert services.maps.calls[-1] == ("nearby", {"lat": LAT, "lng": LNG}, 5000)


def test_full_internal_results_skip_provider(db, services):
    for _ in range(2):
        make_hospital(db, lat=LAT, lng=LNG)

    result = find_nearby_hospitals(db, services.maps, LAT, LNG, limit=2)

    assert result.source == "database"
    assert services.maps.calls == []


def test_provider_failure_falls_back_to_stored(db, services):
    hospital = make_hospital(db, lat=LAT, lng=LNG)
    services.maps.fail = True

    result = find_nearby_hospitals(db, services.maps, LAT, LNG, limit=5)

    assert result.source == "database"
    assert result.items == [hospital]
    assert result.error == "maps unavailable"


# ================================
# MAPS CLIENT
# ================================

def _maps(handler):
    return MapsClient("test-key", http=httpx.Client(transport=httpx.MockTransport(handler)))


def test_maps_client_normalizes_places():
    def handler(request):
        assert request.url.params["type"] == "hospital"
        assert request.url.params["key"] == "test-key"
        return httpx.Response(200, json={"status": "OK", "results": [{
            "name": "Zomba Central",
            "vicinity": "Old Town",
            "geometry": {"location": {"lat": -15.38, "lng": 35.33}},
            "rating": 4.2,
            "user_ratings_total": 31,
            "place_id": "abc",
        }]})

    places = _maps(handler).nearby_hospitals({"lat": -15.38, "lng": 35.33}, 2000)

    assert places == [{
        "source": "google",
        "name": "Zomba Central",
        "address": {"street": "Old Town", "city": "", "state": "", "zip_code": "", "country": ""},
        "location": {"lat": -15.38, "lng": 35.33},
        "phone": "",
        "rating": {"average": 4.2, "count": 31},
        "google_place_id": "abc",
    }]


def test_maps_client_route_errors():
    client = _maps(lambda request: httpx.Response(200, json={"status": "NOT_FOUND"}))
    with pytest.raises(MapsError):
        client.calculate_route({"lat": 0, "lng": 0}, {"lat": 1, "lng": 1})

    with pytest.raises(MapsError):
        MapsClient("").calculate_route({"lat": 0, "lng": 0}, {"lat": 1, "lng": 1})
