"""
Tests for SQLite persistence (fresh database per test via CFP_DB_PATH).

  a) businesses: create / get / update, crawl_data stored as JSON, unknown fields rejected
  b) crawl jobs: running -> completed / failed
  c) fingerprints: append-only history, newest first
  d) due businesses: next_crawl_at in the past, catch-missed for never / stale crawls
  e) init_db is safe to run twice
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)


def _fingerprint(business_id, score, ts):
    return {
        "business_id": business_id,
        "visibility_score": score,
        "mention_rate": 50.0,
        "sentiment_score": 0.7,
        "accuracy_score": 0.8,
        "avg_rank_position": 2.0,
        "llm_results": [{"model": "m1", "prompt_type": "factual", "mentioned": True}],
        "competitive_leaderboard": {"target": {"name": "Acme Dental"}, "competitors": []},
        "generated_at": ts,
    }


def test_business_crud(cfp_db):
    business_id = cfp_db.create_business("Acme Dental", url="https://acmedental.example.com",
                                         category="Dental", city="San Jose", state="CA", tier="pro")
    business = cfp_db.get_business(business_id)
    assert business["name"] == "Acme Dental"
    assert business["status"] == "pending"
    assert business["tier"] == "pro"
    assert business["country"] == "US"
    assert business["crawl_data"] is None

    cfp_db.update_business(business_id, status="crawled", crawl_data={"phone": "(408) 555-0100"})
    business = cfp_db.get_business(business_id)
    assert business["status"] == "crawled"
    assert business["crawl_data"] == {"phone": "(408) 555-0100"}
    assert cfp_db.get_business(9999) is None


def test_business_validation(cfp_db):
    with pytest.raises(ValueError):
        cfp_db.create_business("   ")
    business_id = cfp_db.create_business("Acme Dental")
    with pytest.raises(ValueError):
        cfp_db.update_business(business_id, id=5)


def test_list_businesses_by_status(cfp_db):
    a = cfp_db.create_business("Acme Dental")
    b = cfp_db.create_business("Bright Smiles Dental")
    cfp_db.update_business(b, status="published")
    assert [r["id"] for r in cfp_db.list_businesses()] == [b, a]
    assert [r["id"] for r in cfp_db.list_businesses(status="published")] == [b]


def test_crawl_jobs(cfp_db):
    business_id = cfp_db.create_business("Acme Dental")
    job_id = cfp_db.create_crawl_job(business_id, "initial_crawl")
    assert cfp_db.get_crawl_job(job_id)["status"] == "running"
    cfp_db.update_crawl_job(job_id, "failed", "timeout")
    job = cfp_db.get_crawl_job(job_id)
    assert job["status"] == "failed"
    assert job["error_message"] == "timeout"
    assert job["completed_at"]
    assert len(cfp_db.list_crawl_jobs(business_id)) == 1


def test_fingerprint_history_newest_first(cfp_db):
    business_id = cfp_db.create_business("Acme Dental")
    cfp_db.insert_fingerprint(_fingerprint(business_id, 40, "2026-01-01T00:00:00+00:00"))
    cfp_db.insert_fingerprint(_fingerprint(business_id, 65, "2026-02-01T00:00:00+00:00"))

    history = cfp_db.list_fingerprints(business_id)
    assert [h["visibility_score"] for h in history] == [65, 40]
    assert history[0]["business_name"] == "Acme Dental"
    assert history[0]["llm_results"][0]["model"] == "m1"
    assert history[0]["competitive_leaderboard"]["target"]["name"] == "Acme Dental"
    assert history[0]["generated_at"] == "2026-02-01T00:00:00+00:00"
    assert cfp_db.get_latest_fingerprint(business_id)["visibility_score"] == 65
    assert cfp_db.get_latest_fingerprint(9999) is None


def test_due_businesses(cfp_db):
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    never = cfp_db.create_business("Never Crawled")
    due = cfp_db.create_business("Due Now")
    later = cfp_db.create_business("Not Yet")
    stale = cfp_db.create_business("Stale")
    cfp_db.update_business(due, last_crawled_at=(now - timedelta(days=8)).isoformat(),
                           next_crawl_at=(now - timedelta(days=1)).isoformat())
    cfp_db.update_business(later, last_crawled_at=(now - timedelta(days=2)).isoformat(),
                           next_crawl_at=(now + timedelta(days=5)).isoformat())
    cfp_db.update_business(stale, last_crawled_at=(now - timedelta(days=45)).isoformat())

    caught = [b["id"] for b in cfp_db.list_due_businesses(now=now, catch_missed=True)]
    assert caught == [never, due, stale]
    strict = [b["id"] for b in cfp_db.list_due_businesses(now=now, catch_missed=False)]
    assert strict == [due]


def test_wikidata_entities(cfp_db):
    business_id = cfp_db.create_business("Acme Dental")
    cfp_db.insert_wikidata_entity(business_id, "Q1001", {"labels": {}}, "test", {"is_notable": True})
    rows = cfp_db.list_wikidata_entities(business_id)
    assert rows[0]["qid"] == "Q1001"
    assert rows[0]["notability"] == {"is_notable": True}


def test_init_db_is_idempotent(cfp_db):
    cfp_db.init_db()
    business_id = cfp_db.create_business("Acme Dental")
    cfp_db.update_business(business_id, notability_summary="No public references found")
    assert cfp_db.get_business(business_id)["notability_summary"] == "No public references found"
