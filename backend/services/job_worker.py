"""
Scheduler worker — runs in a daemon thread.

Every CFP_SCHEDULER_INTERVAL seconds, runs the businesses whose scheduled
crawl is due through the orchestrator's batch processor.
For production, replace with Celery beat + Redis.
"""

import os
import logging
import threading

from backend.services.cfp_service import get_orchestrator

logger = logging.getLogger(__name__)

_worker_thread: threading.Thread | None = None
_stop_event = threading.Event()

DEFAULT_POLL_INTERVAL = 3600  # seconds


def get_poll_interval() -> float:
    raw = os.getenv("CFP_SCHEDULER_INTERVAL")
    if not raw:
        return DEFAULT_POLL_INTERVAL
    value = float(raw)
    if value <= 0:
        raise ValueError("CFP_SCHEDULER_INTERVAL must be > 0")
    return value


def run_scheduled_batch() -> dict:
    """One scheduler tick: process every due business."""
    summary = get_orchestrator().process_batch()
    if summary["processed"]:
        logger.info(
            "Scheduled batch: %d processed, %d succeeded, %d failed",
            summary["processed"], summary["succeeded"], summary["failed"],
        )
    return summary


def _worker_loop(interval: float) -> None:
    logger.info("Scheduler worker started (interval=%ss)", interval)
    while not _stop_event.wait(timeout=interval):
        try:
            run_scheduled_batch()
        except Exception:
            logger.exception("Scheduler loop error")
    logger.info("Scheduler worker stopped")


def start_worker() -> None:
    global _worker_thread
    if _worker_thread and _worker_thread.is_alive():
        return
    interval = get_poll_interval()
    _stop_event.clear()
    _worker_thread = threading.Thread(target=_worker_loop, args=(interval,), daemon=True, name="cfp-scheduler")
    _worker_thread.start()


def stop_worker() -> None:
    _stop_event.set()
    if _worker_thread:
        _worker_thread.join(timeout=5)
