"""
HTTP surface: auth, validation, batch and NDJSON responses.
"""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from cadastre import repository
from cadastre.repository import GeoStoreError, RegionCount
from conftest import FakeEnricher
from core import db
from main import app
from registry import service as registry_service
from search import service as search_service

API_KEY = "test-master-key"
HEADERS = {"X-API-Key": API_KEY}
SQUARE = [[2.0, 48.0], [2.1, 48.0], [2.1, 48.1], [2.0, 48.1]]


@pytest.fixture
def enricher():
    return FakeEnricher()


@pytest.fixture
def client(monkeypatch, enricher):
    monkeypatch.setenv("MASTER_API_KEY", API_KEY)
    monkeypatch.delenv("API_KEYS", raising=False)
    app.dependency_overrides[registry_service.enricher] = lambda: enricher
    # No `with`: the lifespan (DB pool, registry) is not started.
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def store(monkeypatch, make_row):
    rows = [make_row(siren="123456789"), make_row(siren="", denomination="SCI DU PARC")]
    count = AsyncMock(return_value=RegionCount(unique_owners=2, total_rows=2))
    fetch = AsyncMock(return_value=rows)
    monkeypatch.setattr(repository, "count_unique_owners_in", count)
    monkeypatch.setattr(repository, "rows_in", fetch)
    return count, fetch


def test_root_and_docs_are_public(client):
    response = client.get("/")

    assert response.status_code == 200
    assert "POST /search/geo" in response.json()["endpoints"]


def test_health_reports_database_state(client, monkeypatch):
    monkeypatch.setattr(db, "ping", AsyncMock(return_value=True))
    assert client.get("/health").json() == {"status": "healthy", "database": "connected"}

    monkeypatch.setattr(db, "ping", AsyncMock(return_value=False))
    response = client.get("/health")
    assert response.status_code == 503
    assert response.json()["database"] == "disconnected"


def test_missing_api_key_is_401(client):
    response = client.post("/search/geo", json={"polygon": SQUARE})

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "MISSING_API_KEY"


def test_wrong_api_key_is_403(client):
    response = client.post("/search/geo", json={"polygon": SQUARE}, headers={"X-API-Key": "nope"})

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "INVALID_API_KEY"


def test_extra_api_keys_are_accepted(client, monkeypatch, store):
    monkeypatch.setenv("API_KEYS", "partner-a, partner-b")

    response = client.post("/search/geo", json={"polygon": SQUARE}, headers={"X-API-Key": "partner-b"})

    assert response.status_code == 200


@pytest.mark.parametrize(
    "body",
    [
        {"polygon": SQUARE[:2]},
        {"polygon": [[2.0 + i / 1000, 48.0] for i in range(101)]},
        {"polygon": [[2.0, 48.0], [2.1, 48.0], ["x", 48.1]]},
        {"polygon": SQUARE, "limit": 0},
    ],
)
def test_invalid_polygon_bodies_are_422(client, store, body):
    count, _ = store

    response = client.post("/search/geo", json=body, headers=HEADERS)

    assert response.status_code == 422
    count.assert_not_awaited()


def test_batch_polygon_search(client, store, enricher):
    response = client.post("/search/geo", json={"polygon": SQUARE, "limit": 10}, headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["etat"] == "done"
    assert body["total_proprietaires"] == 2
    assert body["total_dans_zone"] == 2
    assert body["limites_appliquees"] == {"max_resultats": 10, "max_enrichissement": 100}
    assert [o["proprietaire"]["denomination"] for o in body["proprietaires"]] == ["", "SCI DU PARC"]
    assert "cle" not in body["proprietaires"][0]
    assert enricher.calls == ["123456789"]


def test_store_fault_is_reported_in_body(client, store):
    count, _ = store
    count.side_effect = GeoStoreError("OSError: connection refused")

    response = client.post("/search/geo", json={"polygon": SQUARE}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["etat"] == "error"
    assert response.json()["proprietaires"] == []


def test_streaming_polygon_search_is_ndjson(client, store):
    response = client.post("/search/geo", json={"polygon": SQUARE, "stream": True}, headers=HEADERS)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    lines = [json.loads(line) for line in response.text.splitlines() if line]
    assert [line["type"] for line in lines] == ["start", "proprietaire", "proprietaire", "summary", "complete"]
    assert lines[1]["index"] == 1
    assert lines[1]["total"] == 2
    assert lines[3]["total_lots"] == 2


def test_streaming_store_fault_ends_with_error_line(client, store):
    count, _ = store
    count.side_effect = GeoStoreError("OSError: connection refused")

    response = client.post("/search/geo", json={"polygon": SQUARE, "stream": True}, headers=HEADERS)

    lines = [json.loads(line) for line in response.text.splitlines() if line]
    assert [line["type"] for line in lines] == ["start", "summary", "error"]
    assert lines[-1]["code"] == "GEO_STORE_ERROR"


def test_radius_search(client, store):
    response = client.post(
        "/search/geo/radius",
        json={"longitude": 2.35, "latitude": 48.85, "radius_meters": 300},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json()["etat"] == "done"
    assert response.json()["limites_appliquees"]["max_resultats"] == 1000


def test_radius_over_maximum_is_422(client, store):
    count, _ = store

    response = client.post(
        "/search/geo/radius",
        json={"longitude": 2.35, "latitude": 48.85, "radius_meters": 50001},
        headers=HEADERS,
    )

    assert response.status_code == 422
    count.assert_not_awaited()


def test_request_bounds_follow_geo_settings(client, store, monkeypatch):
    monkeypatch.setenv("GEO_MAX_POLYGON_POINTS", "150")
    monkeypatch.setenv("GEO_MAX_RADIUS_METERS", "80000")
    monkeypatch.setenv("GEO_MAX_RESULTS", "20000")
    ring = [[2.0 + i / 1000, 48.0 + (i % 2) / 1000] for i in range(120)]

    polygon = client.post("/search/geo", json={"polygon": ring, "limit": 15000}, headers=HEADERS)
    radius = client.post(
        "/search/geo/radius",
        json={"longitude": 2.35, "latitude": 48.85, "radius_meters": 60000},
        headers=HEADERS,
    )

    assert polygon.status_code == 200
    assert polygon.json()["limites_appliquees"]["max_resultats"] == 15000
    assert radius.status_code == 200

    monkeypatch.setenv("GEO_MAX_POLYGON_POINTS", "4")
    response = client.post("/search/geo", json={"polygon": SQUARE + [[2.05, 48.15]]}, headers=HEADERS)

    assert response.status_code == 422


def test_geo_stats_unavailable_is_503(client, monkeypatch):
    monkeypatch.setattr(repository, "geo_stats", AsyncMock(side_effect=GeoStoreError("down")))

    response = client.get("/search/geo/stats", headers=HEADERS)

    assert response.status_code == 503


def test_invalid_siren_is_400(client):
    response = client.get("/search/siren", params={"siren": "12AB"}, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_SIREN"


def test_departments(client, monkeypatch):
    monkeypatch.setattr(search_service, "list_departments", AsyncMock(return_value=["13", "75"]))

    response = client.get("/departments", headers=HEADERS)

    assert response.json() == {"departements": ["13", "75"], "total": 2}
