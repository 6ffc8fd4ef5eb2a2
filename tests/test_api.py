"""
API tests via FastAPI TestClient (orchestrator collaborators faked, temp database).

  a) POST /businesses -> 201; unknown tier -> 400; empty name -> 422
  b) POST /cfp/{id}/run -> run result; unknown id -> 404; active run -> 409
  c) Idempotency-Key header -> second call is cached
  d) GET /businesses/{id} and /fingerprints after a run
  e) POST /cfp/batch
"""

import os
import sys

import pytest
from fastapi.testclient import TestClient

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

from backend.main import app
from backend.services import cfp_service
from fakes import make_orchestrator


@pytest.fixture
def client(cfp_db, monkeypatch):
    monkeypatch.setenv("CFP_SCHEDULER_INTERVAL", "3600")
    orchestrator = make_orchestrator()
    cfp_service.set_orchestrator(orchestrator)
    with TestClient(app) as test_client:
        test_client.orchestrator = orchestrator
        yield test_client
    cfp_service.set_orchestrator(None)


def _create(client, **overrides):
    body = {
        "name": "Acme Dental",
        "url": "https://acmedental.example.com",
        "category": "Dental",
        "city": "San Jose",
        "state": "CA",
    }
    body.update(overrides)
    return client.post("/businesses", json=body)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_business(client):
    resp = _create(client, tier="Pro")
    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "pending"
    assert data["tier"] == "pro"
    assert data["latest_fingerprint"] is None


def test_create_business_validation(client):
    assert _create(client, tier="platinum").status_code == 400
    assert _create(client, name="").status_code == 422


def test_run_and_read_back(client):
    business_id = _create(client).json()["id"]

    resp = client.post(f"/cfp/{business_id}/run", json={"publish": True})
    assert resp.status_code == 200
    run = resp.json()
    assert run["success"] is True
    assert run["status"] == "published"
    assert run["publish"]["qid"] == "Q1001"

    business = client.get(f"/businesses/{business_id}").json()
    assert business["wikidata_qid"] == "Q1001"
    assert business["latest_fingerprint"]["visibility_score"] == run["fingerprint"]["visibility_score"]
    assert "llm_results" not in business["latest_fingerprint"]

    history = client.get(f"/businesses/{business_id}/fingerprints").json()
    assert len(history["fingerprints"]) == 1
    assert history["trend"]["trend"] == "stable"


def test_run_without_body_defers_to_tier(client):
    business_id = _create(client).json()["id"]
    run = client.post(f"/cfp/{business_id}/run").json()
    assert run["status"] == "fingerprinted"
    assert run["notability"] is None


def test_unknown_business(client):
    resp = client.post("/cfp/9999/run", json={})
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "BUSINESS_NOT_FOUND"
    assert client.get("/businesses/9999").status_code == 404
    assert client.get("/businesses/9999/fingerprints").status_code == 404


def test_active_run_conflict(client):
    business_id = _create(client).json()["id"]
    client.orchestrator._active.add(business_id)
    try:
        resp = client.post(f"/cfp/{business_id}/run", json={"publish": False})
    finally:
        client.orchestrator._active.discard(business_id)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "RUN_IN_PROGRESS"


def test_idempotency_header(client):
    business_id = _create(client).json()["id"]
    headers = {"Idempotency-Key": "run-once"}
    first = client.post(f"/cfp/{business_id}/run", json={"publish": False}, headers=headers).json()
    second = client.post(f"/cfp/{business_id}/run", json={"publish": False}, headers=headers).json()
    assert first["cached"] is False
    assert second["cached"] is True
    assert len(client.orchestrator.crawler.calls) == 1


def test_batch(client):
    a = _create(client).json()["id"]
    b = _create(client, name="Bright Smiles Dental").json()["id"]
    resp = client.post("/cfp/batch", json={"business_ids": [a, b]})
    assert resp.status_code == 200
    data = resp.json()
    assert data["processed"] == 2
    assert data["succeeded"] == 2
