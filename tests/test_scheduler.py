"""
Tests for the scheduler worker.

  a) poll interval from CFP_SCHEDULER_INTERVAL, default one hour
  b) one tick processes every due, auto-crawl business
  c) start / stop leave no running thread
"""

import os
import sys

import pytest

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

from backend.services import cfp_service, job_worker
from fakes import make_orchestrator


def test_poll_interval(monkeypatch):
    monkeypatch.delenv("CFP_SCHEDULER_INTERVAL", raising=False)
    assert job_worker.get_poll_interval() == job_worker.DEFAULT_POLL_INTERVAL
    monkeypatch.setenv("CFP_SCHEDULER_INTERVAL", "30")
    assert job_worker.get_poll_interval() == 30.0
    monkeypatch.setenv("CFP_SCHEDULER_INTERVAL", "-1")
    with pytest.raises(ValueError):
        job_worker.get_poll_interval()


def test_scheduled_batch(cfp_db):
    pro_id = cfp_db.create_business("Acme Dental", url="https://acmedental.example.com", tier="pro")
    cfp_db.create_business("Manual Dental", url="https://manual.example.com", tier="free")
    cfp_service.set_orchestrator(make_orchestrator())
    try:
        summary = job_worker.run_scheduled_batch()
    finally:
        cfp_service.set_orchestrator(None)
    assert summary["processed"] == 1
    assert summary["results"][0]["business_id"] == pro_id


def test_start_and_stop(monkeypatch):
    monkeypatch.setenv("CFP_SCHEDULER_INTERVAL", "3600")
    job_worker.start_worker()
    thread = job_worker._worker_thread
    assert thread.is_alive()
    job_worker.stop_worker()
    assert not thread.is_alive()
