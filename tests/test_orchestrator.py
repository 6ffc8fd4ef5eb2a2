"""
Tests for the CFP orchestrator with every network collaborator faked.

  a) notable business + publish -> published, QID stored, entity row written
  b) second forced run reuses the QID via the update path (no duplicate item)
  c) not notable -> fingerprinted, notability summary recorded, nothing published
  d) crawl failure -> error, crawl job failed, no fingerprint stored
  e) a second trigger while a run is active -> RunInProgressError
  f) repeated trigger inside the TTL -> cached result, no second crawl;
     a publish request is never answered by a fingerprint-only result
  g) dry run -> nothing submitted, status back to fingerprinted
  h) publish rejected / publisher misconfigured -> error state
  i) tier decides auto-publish and next crawl date
  j) batch: one bad id never stops the others
"""

import os
import sys
import time
import threading

import pytest

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

from cfp.config import CFPConfig
from cfp.errors import BusinessNotFoundError, RunInProgressError
from cfp.publisher import WikidataPublisher
from fakes import FakeCrawler, WikiSessionFactory, make_orchestrator

MODELS = ["test/model-a", "test/model-b"]


def _business(cfp_db, tier="free", name="Acme Dental"):
    return cfp_db.create_business(
        name, url="https://acmedental.example.com", category="Dental",
        city="San Jose", state="CA", tier=tier,
    )


def test_publish_flow(cfp_db):
    business_id = _business(cfp_db)
    orchestrator = make_orchestrator()

    result = orchestrator.run(business_id, publish=True)

    assert result.success is True
    assert result.status == "published"
    assert result.publish["qid"] == "Q1001"
    assert result.notability["is_notable"] is True
    assert result.entity["label"] == "Acme Dental"
    assert result.fingerprint["visibility_score"] > 0
    assert result.completed_at

    business = cfp_db.get_business(business_id)
    assert business["status"] == "published"
    assert business["wikidata_qid"] == "Q1001"
    assert business["wikidata_published_at"]
    assert business["crawl_data"]["phone"] == "(408) 555-0100"
    assert business["last_crawled_at"]
    assert len(cfp_db.list_fingerprints(business_id)) == 1
    assert cfp_db.list_wikidata_entities(business_id)[0]["qid"] == "Q1001"
    jobs = cfp_db.list_crawl_jobs(business_id)
    assert jobs[0]["status"] == "completed"
    assert jobs[0]["job_type"] == "initial_crawl"


def test_second_run_updates_existing_item(cfp_db):
    business_id = _business(cfp_db)
    orchestrator = make_orchestrator()
    orchestrator.run(business_id, publish=True)

    second = orchestrator.run(business_id, publish=True, force=True)

    assert second.status == "published"
    assert second.publish["qid"] == "Q1001"
    assert len(orchestrator.wiki_factory.wiki["items"]) == 1
    edits = [
        r for s in orchestrator.wiki_factory.sessions for r in s.requests
        if r.get("action") == "wbeditentity"
    ]
    assert edits[-1]["id"] == "Q1001"
    assert cfp_db.list_crawl_jobs(business_id)[0]["job_type"] == "recrawl"
    assert len(cfp_db.list_fingerprints(business_id)) == 2


def test_not_notable_stays_fingerprinted(cfp_db):
    business_id = _business(cfp_db)
    orchestrator = make_orchestrator(hits=())

    result = orchestrator.run(business_id, publish=True)

    assert result.success is True
    assert result.status == "fingerprinted"
    assert result.publish is None
    assert result.notability["is_notable"] is False
    business = cfp_db.get_business(business_id)
    assert business["status"] == "fingerprinted"
    assert business["wikidata_qid"] is None
    assert business["notability_summary"] == "No public references found"
    assert orchestrator.wiki_factory.sessions == []


def test_crawl_failure(cfp_db):
    business_id = _business(cfp_db)
    orchestrator = make_orchestrator(crawler=FakeCrawler(error="https://acmedental.example.com returned HTTP 500"))

    result = orchestrator.run(business_id, publish=True)

    assert result.success is False
    assert result.status == "error"
    assert result.error_code == "CRAWL_FAILED"
    assert "HTTP 500" in result.error
    business = cfp_db.get_business(business_id)
    assert business["status"] == "error"
    assert "HTTP 500" in business["error_message"]
    assert cfp_db.list_fingerprints(business_id) == []
    assert cfp_db.list_crawl_jobs(business_id)[0]["status"] == "failed"


def test_failed_run_is_not_cached(cfp_db):
    business_id = _business(cfp_db)
    crawler = FakeCrawler(error="unreachable")
    orchestrator = make_orchestrator(crawler=crawler)
    orchestrator.run(business_id)
    orchestrator.run(business_id)
    assert len(crawler.calls) == 2


def test_unknown_business(cfp_db):
    with pytest.raises(BusinessNotFoundError):
        make_orchestrator().run(424242)


def test_concurrent_run_rejected(cfp_db):
    business_id = _business(cfp_db)
    gate = threading.Event()
    orchestrator = make_orchestrator(crawler=FakeCrawler(gate=gate))
    outcome = {}

    def _first():
        outcome["result"] = orchestrator.run(business_id, publish=False)

    thread = threading.Thread(target=_first)
    thread.start()
    try:
        deadline = time.time() + 5
        while not orchestrator.is_running(business_id) and time.time() < deadline:
            time.sleep(0.01)
        assert orchestrator.is_running(business_id)
        with pytest.raises(RunInProgressError) as exc:
            orchestrator.run(business_id, publish=False, caller="someone-else")
        assert exc.value.status == 409
    finally:
        gate.set()
        thread.join(timeout=10)

    assert outcome["result"].success is True
    assert not orchestrator.is_running(business_id)


def test_duplicate_trigger_returns_cached(cfp_db):
    business_id = _business(cfp_db)
    crawler = FakeCrawler()
    orchestrator = make_orchestrator(crawler=crawler)

    first = orchestrator.run(business_id, publish=False, caller=1)
    second = orchestrator.run(business_id, publish=False, caller=1)

    assert first.cached is False
    assert second.cached is True
    assert second.fingerprint == first.fingerprint
    assert len(crawler.calls) == 1

    orchestrator.run(business_id, publish=False, caller=1, force=True)
    assert len(crawler.calls) == 2


def test_explicit_idempotency_key(cfp_db):
    business_id = _business(cfp_db)
    crawler = FakeCrawler()
    orchestrator = make_orchestrator(crawler=crawler)
    orchestrator.run(business_id, publish=False, caller=1, idempotency_key="abc")
    orchestrator.run(business_id, publish=False, caller=2, idempotency_key="abc")
    assert len(crawler.calls) == 1


def test_publish_request_after_fingerprint_only_run(cfp_db):
    business_id = _business(cfp_db, tier="free")
    crawler = FakeCrawler()
    orchestrator = make_orchestrator(crawler=crawler)

    first = orchestrator.run(business_id, publish=False)
    second = orchestrator.run(business_id, publish=True)

    assert first.status == "fingerprinted"
    assert second.cached is False
    assert second.status == "published"
    assert second.publish["qid"] == "Q1001"
    assert len(crawler.calls) == 2

    # Tier default (free: no auto-publish) shares the fingerprint-only entry
    third = orchestrator.run(business_id)
    assert third.cached is True
    assert third.status == "fingerprinted"


def test_dry_run_publishes_nothing(cfp_db):
    business_id = _business(cfp_db)
    config = CFPConfig(models=MODELS, dry_run=True)
    orchestrator = make_orchestrator(config=config)

    result = orchestrator.run(business_id, publish=True)

    assert result.success is True
    assert result.status == "fingerprinted"
    assert result.publish["dry_run"] is True
    assert "wbeditentity" not in orchestrator.wiki_factory.actions()
    assert cfp_db.get_business(business_id)["wikidata_qid"] is None
    assert cfp_db.list_wikidata_entities(business_id) == []


def test_publish_rejected(cfp_db):
    business_id = _business(cfp_db)
    factory = WikiSessionFactory(edit_error={"code": "failed-save", "info": "Edit conflict"})
    orchestrator = make_orchestrator(wiki_factory=factory)

    result = orchestrator.run(business_id, publish=True)

    assert result.success is False
    assert result.status == "error"
    assert result.error_code == "WIKIDATA_PUBLISH_FAILED"
    assert "failed-save" in cfp_db.get_business(business_id)["error_message"]
    # Fingerprint was stored before the publish step failed
    assert len(cfp_db.list_fingerprints(business_id)) == 1


def test_publisher_not_configured(cfp_db, monkeypatch):
    monkeypatch.delenv("WIKIDATA_BOT_USERNAME", raising=False)
    monkeypatch.delenv("WIKIDATA_BOT_PASSWORD", raising=False)
    business_id = _business(cfp_db)
    publisher = WikidataPublisher(session_factory=WikiSessionFactory())
    orchestrator = make_orchestrator(publisher=publisher)

    result = orchestrator.run(business_id, publish=True)

    assert result.status == "error"
    assert result.error_code == "WIKIDATA_NOT_CONFIGURED"


def test_tier_controls_publish_and_schedule(cfp_db):
    free_id = _business(cfp_db, tier="free")
    pro_id = _business(cfp_db, tier="pro", name="Bright Smiles Dental")
    orchestrator = make_orchestrator()

    free = orchestrator.run(free_id)
    pro = orchestrator.run(pro_id)

    assert free.status == "fingerprinted"
    assert free.notability is None
    assert cfp_db.get_business(free_id)["next_crawl_at"] is None

    assert pro.status == "published"
    assert cfp_db.get_business(pro_id)["next_crawl_at"]


def test_batch_isolates_failures(cfp_db):
    a = _business(cfp_db, tier="pro")
    b = _business(cfp_db, tier="pro", name="Bright Smiles Dental")
    orchestrator = make_orchestrator(config=CFPConfig(models=MODELS, batch_size=2))

    summary = orchestrator.process_batch([a, 999, b])

    assert summary["processed"] == 3
    assert summary["succeeded"] == 2
    assert summary["failed"] == 1
    assert [r["business_id"] for r in summary["results"]] == [a, 999, b]
    assert summary["results"][1]["error_code"] == "BUSINESS_NOT_FOUND"


def test_batch_picks_due_auto_crawl_businesses(cfp_db):
    pro_id = _business(cfp_db, tier="pro")
    _business(cfp_db, tier="free", name="Manual Only Dental")
    orchestrator = make_orchestrator()

    summary = orchestrator.process_batch()

    assert summary["processed"] == 1
    assert summary["results"][0]["business_id"] == pro_id

    # Scheduled for next week now, so nothing is due
    assert orchestrator.process_batch()["processed"] == 0


def test_trend(cfp_db):
    business_id = _business(cfp_db)
    orchestrator = make_orchestrator()
    orchestrator.run(business_id, publish=False)
    trend = orchestrator.get_trend(business_id)
    assert trend["trend"] == "stable"
    assert trend["current"] is not None
