"""
CFP orchestrator: Crawl -> Fingerprint -> Publish state machine.

    pending -> crawling -> crawled -> analyzing -> fingerprinted
            -> publishing -> published
    any non-terminal state -> error

One entry point (run) serves manual triggers, the HTTP API and the
scheduler. At most one run per business is active at a time; duplicate
triggers inside the idempotency TTL get the cached result.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from . import db
from .automation import calculate_next_crawl_date, get_automation_config, should_auto_crawl
from .config import CFPConfig
from .crawler import HttpCrawler
from .entity_builder import build_entity, entity_summary, validate_entity
from .errors import (
    BusinessNotFoundError,
    CFPError,
    RETRY_CONFIGS,
    RunInProgressError,
    WikidataError,
    sanitize_for_logging,
    with_retry,
)
from .fingerprint import FingerprintEngine
from .idempotency import IdempotencyStore, generate_idempotency_key
from .llm_client import LLMClient
from .models import (
    BusinessContext,
    CrawlResult,
    STATUS_ANALYZING,
    STATUS_CRAWLED,
    STATUS_CRAWLING,
    STATUS_ERROR,
    STATUS_FINGERPRINTED,
    STATUS_PUBLISHED,
    STATUS_PUBLISHING,
    utc_now_iso,
)
from .notability import NotabilityChecker
from .publisher import WikidataPublisher
from .scoring import compute_trend

logger = logging.getLogger(__name__)

RUN_OPERATION = "cfp_run"
MAX_ERROR_MESSAGE = 200


@dataclass
class CFPRunResult:
    business_id: int
    status: str
    success: bool
    fingerprint: Optional[Dict[str, Any]] = None
    notability: Optional[Dict[str, Any]] = None
    publish: Optional[Dict[str, Any]] = None
    entity: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    cached: bool = False
    started_at: str = field(default_factory=utc_now_iso)
    completed_at: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "business_id": self.business_id,
            "status": self.status,
            "success": self.success,
            "fingerprint": self.fingerprint,
            "notability": self.notability,
            "publish": self.publish,
            "entity": self.entity,
            "error": self.error,
            "error_code": self.error_code,
            "cached": self.cached,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


def _trim(message: Any) -> str:
    text = sanitize_for_logging(message)
    return text if len(text) <= MAX_ERROR_MESSAGE else text[: MAX_ERROR_MESSAGE - 3] + "..."


class CFPOrchestrator:
    """
    Owns run lifecycle, the single-run guard and the idempotency store.

    Collaborators are injectable; defaults are built from config and env.
    """

    def __init__(
        self,
        config: Optional[CFPConfig] = None,
        crawler=None,
        fingerprint_engine: Optional[FingerprintEngine] = None,
        notability_checker: Optional[NotabilityChecker] = None,
        publisher: Optional[WikidataPublisher] = None,
        idempotency_store: Optional[IdempotencyStore] = None,
        llm_client: Optional[LLMClient] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.config = config or CFPConfig()
        llm = llm_client or LLMClient()
        self.crawler = crawler or HttpCrawler()
        self.fingerprint_engine = fingerprint_engine or FingerprintEngine(
            llm_client=llm,
            models=self.config.models,
            model_weights=self.config.model_weights,
            query_timeout=self.config.query_timeout,
        )
        self.notability_checker = notability_checker or NotabilityChecker(llm_client=llm)
        self.publisher = publisher or WikidataPublisher()
        self.idempotency_store = idempotency_store or IdempotencyStore()
        self._clock = clock
        self._active: set = set()
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def run(
        self,
        business_id: int,
        publish: Optional[bool] = None,
        force: bool = False,
        caller: Any = "system",
        idempotency_key: Optional[str] = None,
    ) -> CFPRunResult:
        """
        Run the full pipeline for one business.

        Args:
            business_id: Business to process.
            publish: True/False forces the publish step on/off; None defers
                     to the tier's auto_publish.
            force: Skip the idempotency cache and the fingerprint reuse window.
            caller: Identity used in the derived idempotency key.
            idempotency_key: Explicit key (e.g. from an Idempotency-Key header).

        Raises:
            BusinessNotFoundError: Unknown business id.
            RunInProgressError: A run for this business is already active.
        """
        business = db.get_business(business_id)
        if not business:
            raise BusinessNotFoundError(f"Business {business_id} not found")

        should_publish = publish if publish is not None else get_automation_config(business.get("tier")).auto_publish
        # Fingerprint-only and publish runs never share a cache entry
        operation = f"{RUN_OPERATION}:{'publish' if should_publish else 'fingerprint'}"
        key = generate_idempotency_key(operation, business_id, idempotency_key or caller)
        if not force:
            cached = self.idempotency_store.get(key)
            if cached is not None:
                logger.info("Business %s: returning cached run result", business_id)
                return replace(cached, cached=True)

        with self._lock:
            if business_id in self._active:
                raise RunInProgressError(
                    f"A CFP run is already in progress for business {business_id}",
                    details={"business_id": business_id},
                )
            self._active.add(business_id)

        try:
            result = self._execute(business, should_publish=should_publish, force=force)
        finally:
            with self._lock:
                self._active.discard(business_id)

        result.completed_at = utc_now_iso()
        if result.success:
            self.idempotency_store.set(key, result)
        return result

    def process_batch(self, business_ids: Optional[List[int]] = None, caller: Any = "scheduler") -> Dict:
        """
        Run several businesses on a bounded worker pool.

        With no ids, picks the businesses that are due and whose tier
        crawls automatically. One failure never stops the batch.
        """
        if business_ids is None:
            due = db.list_due_businesses(now=self._clock(), catch_missed=self.config.catch_missed)
            business_ids = [b["id"] for b in due if should_auto_crawl(b)]
        business_ids = list(dict.fromkeys(business_ids))
        if not business_ids:
            return {"processed": 0, "succeeded": 0, "failed": 0, "results": []}

        logger.info("Processing batch of %d businesses (workers=%d)", len(business_ids), self.config.batch_size)
        results: Dict[int, Dict] = {}
        with ThreadPoolExecutor(max_workers=self.config.batch_size, thread_name_prefix="cfp-batch") as pool:
            futures = {pool.submit(self.run, bid, None, False, caller): bid for bid in business_ids}
            for fut in as_completed(futures):
                bid = futures[fut]
                try:
                    results[bid] = fut.result().to_dict()
                except CFPError as e:
                    logger.warning("Batch run for business %s rejected: %s", bid, e.message)
                    results[bid] = {"business_id": bid, "success": False, "error": e.message, "error_code": e.code}
                except Exception as e:
                    logger.exception("Batch run for business %s crashed", bid)
                    results[bid] = {"business_id": bid, "success": False, "error": _trim(e), "error_code": "INTERNAL_ERROR"}

        ordered = [results[bid] for bid in business_ids]
        succeeded = sum(1 for r in ordered if r.get("success"))
        return {
            "processed": len(ordered),
            "succeeded": succeeded,
            "failed": len(ordered) - succeeded,
            "results": ordered,
        }

    def get_trend(self, business_id: int) -> Dict:
        return compute_trend(db.list_fingerprints(business_id, limit=2))

    def is_running(self, business_id: int) -> bool:
        with self._lock:
            return business_id in self._active

    def close(self) -> None:
        self.idempotency_store.clear()

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _execute(self, business: Dict, should_publish: bool, force: bool) -> CFPRunResult:
        business_id = business["id"]
        status = business.get("status") or "pending"
        result = CFPRunResult(business_id=business_id, status=status, success=False)

        try:
            # --- Crawl ---
            status = self._transition(business_id, status, STATUS_CRAWLING, error_message=None)
            job_type = "recrawl" if business.get("last_crawled_at") else "initial_crawl"
            job_id = self._db(db.create_crawl_job, business_id, job_type)
            try:
                crawl = self.crawler.crawl(business.get("url"), job_id)
            except CFPError as e:
                crawl = CrawlResult(success=False, error=e.message)
            if not crawl.success:
                self._db(db.update_crawl_job, job_id, "failed", _trim(crawl.error or "crawl failed"))
                return self._fail(result, status, crawl.error or "Crawl failed", "CRAWL_FAILED")
            self._db(db.update_crawl_job, job_id, "completed")
            status = self._transition(
                business_id, status, STATUS_CRAWLED,
                crawl_data=crawl.data, last_crawled_at=utc_now_iso(),
            )

            # --- Fingerprint ---
            status = self._transition(business_id, status, STATUS_ANALYZING)
            ctx = BusinessContext.from_row(db.get_business(business_id))
            previous = db.get_latest_fingerprint(business_id)
            analysis = self.fingerprint_engine.run_fingerprint(ctx, force=force, previous=previous)
            if previous and previous.get("generated_at") == analysis.generated_at:
                logger.info("Business %s: fingerprint reused, not stored again", business_id)
            else:
                self._db(db.insert_fingerprint, analysis.to_dict())
            result.fingerprint = analysis.to_dict()
            status = self._transition(business_id, status, STATUS_FINGERPRINTED)

            # --- Publish ---
            automation = get_automation_config(business.get("tier"))
            if should_publish:
                status = self._publish(result, ctx, business, status)
            else:
                logger.info("Business %s: publish step skipped", business_id)

            if status != STATUS_ERROR:
                result.success = True
                self._schedule_next(business_id, automation.crawl_frequency)
            result.status = status
            return result
        except CFPError as e:
            return self._fail(result, status, e.message, e.code)
        except Exception as e:
            logger.exception("Business %s: unexpected failure in state %s", business_id, status)
            self._fail(result, status, str(e), "INTERNAL_ERROR")
            raise

    def _publish(self, result: CFPRunResult, ctx: BusinessContext, business: Dict, status: str) -> str:
        business_id = ctx.business_id
        status = self._transition(business_id, status, STATUS_PUBLISHING)

        assessment = self.notability_checker.check_notability(ctx.name, ctx.location)
        result.notability = assessment.to_dict()
        if not assessment.is_notable:
            logger.info("Business %s not notable: %s", business_id, assessment.summary)
            return self._transition(
                business_id, status, STATUS_FINGERPRINTED,
                notability_summary=assessment.summary,
            )

        entity = build_entity(
            ctx,
            notability=assessment,
            max_properties=self.config.max_properties,
            max_qids=self.config.max_qids,
        )
        result.entity = entity_summary(entity)
        if not validate_entity(entity):
            self._fail(result, status, "Built entity is missing an English label or description", "INVALID_ENTITY")
            return STATUS_ERROR

        existing_qid = business.get("wikidata_qid")
        try:
            if existing_qid:
                published = self.publisher.update_entity(
                    existing_qid, entity, target=self.config.target,
                    dry_run=self.config.dry_run, preserve_terms=True,
                )
            else:
                published = self.publisher.publish_entity(
                    entity, target=self.config.target,
                    dry_run=self.config.dry_run, location=ctx.location,
                )
        except WikidataError as e:
            self._fail(result, status, e.message, e.code)
            return STATUS_ERROR

        result.publish = published.to_dict()
        if not published.success:
            self._fail(result, status, published.error or "Publish failed", "WIKIDATA_PUBLISH_FAILED")
            return STATUS_ERROR

        if published.dry_run:
            logger.info("Business %s: dry run publish (existing qid=%s)", business_id, published.qid)
            return self._transition(
                business_id, status, STATUS_FINGERPRINTED,
                notability_summary=assessment.summary,
            )

        self._db(
            db.insert_wikidata_entity, business_id, published.qid, entity,
            published.published_to, assessment.to_dict(),
        )
        return self._transition(
            business_id, status, STATUS_PUBLISHED,
            wikidata_qid=published.qid,
            wikidata_published_at=utc_now_iso(),
            notability_summary=assessment.summary,
        )

    # -------------------------------------------------------------------------
    # State helpers
    # -------------------------------------------------------------------------

    def _transition(self, business_id: int, from_status: str, to_status: str, **fields: Any) -> str:
        self._db(db.update_business, business_id, status=to_status, **fields)
        logger.info("Business %s: %s -> %s", business_id, from_status, to_status)
        return to_status

    def _fail(self, result: CFPRunResult, from_status: str, message: Any, code: Optional[str]) -> CFPRunResult:
        trimmed = _trim(message)
        try:
            self._transition(result.business_id, from_status, STATUS_ERROR, error_message=trimmed)
        except Exception:
            logger.exception("Business %s: could not record error state", result.business_id)
        result.status = STATUS_ERROR
        result.success = False
        result.error = trimmed
        result.error_code = code
        logger.warning("Business %s failed (%s): %s", result.business_id, code, trimmed)
        return result

    def _schedule_next(self, business_id: int, frequency: str) -> None:
        next_at = calculate_next_crawl_date(frequency, self._clock())
        self._db(db.update_business, business_id, next_crawl_at=next_at.isoformat() if next_at else None)

    @staticmethod
    def _db(fn: Callable, *args: Any, **kwargs: Any) -> Any:
        return with_retry(lambda: fn(*args, **kwargs), RETRY_CONFIGS["database"], operation=fn.__name__)
