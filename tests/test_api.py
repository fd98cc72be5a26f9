import pytest
from fastapi.testclient import TestClient

from awardroute.config import settings
from awardroute.dependencies import get_orchestrator, get_reference_store, get_reliability_repository
from awardroute.exceptions import UpstreamError
from awardroute.main import app
from awardroute.services.itinerary_orchestrator import ItineraryOrchestrator
from awardroute.services.reliability_service import ReliabilityRepository

BUILD_BODY = {
    "origin": "JFK",
    "destination": "LHR",
    "maxStop": 4,
    "startDate": "2025-06-01",
    "endDate": "2025-06-02",
    "apiKey": "key",
}


@pytest.fixture
def provider(fake_client_cls, availability):
    return fake_client_cls(responses=availability)


@pytest.fixture
def api(store, provider, cache, rule):
    store.rules = [rule("BA", min_count=2), rule("AA", min_count=1, exemption="Y")]
    repository = ReliabilityRepository()
    orchestrator = ItineraryOrchestrator(client=provider, cache=cache, repository=repository)

    app.dependency_overrides[get_reference_store] = lambda: store
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_reliability_repository] = lambda: repository
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(api):
    resp = api.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_full_path(api):
    resp = api.post("/api/routes/full-path", json={"origin": "jfk", "destination": "LHR", "maxStop": 4})

    assert resp.status_code == 200
    body = resp.json()
    assert body["queryParamsArr"] == ["BOS/JFK-BOS/DUB/YYZ", "DUB/JFK/YYZ-LHR"]
    direct = [r for r in body["routes"] if r["caseType"] == "case1" and r["h1"] is None]
    assert direct == [{
        "O": None, "A": "JFK", "h1": None, "h2": None, "B": "LHR", "D": None,
        "all1": [], "all2": ["OW"], "all3": [],
        "cumulativeDistance": 3451, "caseType": "case1",
    }]


def test_full_path_unknown_airport(api):
    resp = api.post("/api/routes/full-path", json={"origin": "JFK", "destination": "XXX"})
    assert resp.status_code == 404


def test_full_path_no_route(api):
    resp = api.post("/api/routes/full-path", json={"origin": "JFK", "destination": "CDG", "maxStop": 0})
    assert resp.status_code == 404


@pytest.mark.parametrize("body", [
    {"origin": "JF", "destination": "LHR"},
    {"origin": "JFK", "destination": "LHR/12"},
    {"destination": "LHR"},
])
def test_full_path_bad_request(api, body):
    assert api.post("/api/routes/full-path", json=body).status_code == 422


def test_build(api, provider):
    resp = api.post("/api/itineraries/build", json=BUILD_BODY)

    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert body["page"] == 1 and body["pageSize"] == 10
    assert [item["route"] for item in body["itineraries"]] == ["JFK-LHR", "JFK-DUB-LHR"]
    assert sorted(f["flight_number"] for f in body["flights"].values()) == ["AA200", "BA1", "BA830"]
    assert body["totalSeatsAeroHttpRequests"] == 2
    assert body["minRateLimitRemaining"] == 900
    assert body["filterMetadata"]["airports"]["connections"] == ["DUB"]
    assert body["cached"] is False

    again = api.post("/api/itineraries/build", json=BUILD_BODY).json()
    assert again["cached"] is True
    assert again["total"] == 2
    assert len(provider.calls) == 2


def test_build_projection_query(api):
    resp = api.post("/api/itineraries/build?stops=1&sortBy=duration&pageSize=1", json=BUILD_BODY)

    body = resp.json()
    assert body["total"] == 1
    assert [item["route"] for item in body["itineraries"]] == ["JFK-DUB-LHR"]
    assert body["pageSize"] == 1


def test_build_page_out_of_range(api):
    body = api.post("/api/itineraries/build?page=3&pageSize=1", json=BUILD_BODY).json()
    assert body["itineraries"] == [] and body["flights"] == {}
    assert body["total"] == 2


def test_build_rejects_bad_sort(api):
    assert api.post("/api/itineraries/build?sortBy=price", json=BUILD_BODY).status_code == 422


def test_build_rejects_inverted_dates(api):
    body = {**BUILD_BODY, "startDate": "2025-06-03"}
    assert api.post("/api/itineraries/build", json=body).status_code == 422


def test_build_without_api_key(api, monkeypatch):
    monkeypatch.setattr(settings, "availability_api_key", "")
    body = {k: v for k, v in BUILD_BODY.items() if k != "apiKey"}

    resp = api.post("/api/itineraries/build", json=body)

    assert resp.status_code == 400


def test_build_rate_limited(api, provider):
    limited = UpstreamError("Rate limit exceeded", status_code=429, retry_after=30)
    provider.errors = {"BOS/JFK-BOS/DUB/YYZ": limited, "DUB/JFK/YYZ-LHR": limited}

    resp = api.post("/api/itineraries/build", json=BUILD_BODY)

    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "30"


def test_build_provider_down(api, provider):
    provider.errors = {"DUB/JFK/YYZ-LHR": UpstreamError("down", status_code=503)}

    body = api.post("/api/itineraries/build", json=BUILD_BODY).json()

    # The interior query alone cannot complete any itinerary.
    assert body["total"] == 0


def test_filter_metadata(api):
    resp = api.post("/api/itineraries/filter-metadata", json=BUILD_BODY)

    assert resp.status_code == 200
    meta = resp.json()["filterMetadata"]
    assert meta["stops"] == [0, 1]
    assert meta["airlines"] == ["AA", "BA"]


def test_reliability_table(api):
    resp = api.get("/api/reliability")

    assert resp.status_code == 200
    assert [r["code"] for r in resp.json()] == ["AA", "BA"]
    assert resp.json()[1]["min_count"] == 2
