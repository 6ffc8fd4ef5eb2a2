"""
CFP Engine - Crawl -> Fingerprint -> Publish

Measures how often AI assistants mention a business and publishes a
knowledge-base entity for businesses that pass a notability gate.

Architecture:
    errors: Error taxonomy, retry helper, log sanitizer
    config: CFPConfig from env / .env
    models: Value objects passed between stages
    llm_client: One prompt -> one model via OpenRouter (OpenAI SDK)
    prompts: Category prompt templates and industry mapping
    response_analyzer: Mention / sentiment / rank / competitor extraction
    result_filter: Validation boundary for raw fan-out results
    scoring: 0-100 visibility score, aggregation, trend
    fingerprint: Concurrent fan-out engine and competitive leaderboard
    search: SerpAPI web search
    notability: Search + LLM judge notability verdict
    entity_builder: Business -> Wikibase entity document
    publisher: MediaWiki Action API client (login, dedup, wbeditentity)
    crawler: requests + regex website extraction
    db: SQLite persistence (businesses, crawl_jobs, fingerprints, entities)
    idempotency: LRU + TTL store for duplicate triggers
    automation: Tier -> crawl frequency / auto publish
    orchestrator: CFP state machine, single-run guard, batches
"""

from .errors import (
    CFPError,
    CrawlerError,
    LLMError,
    NotabilityError,
    WikidataError,
    RunInProgressError,
    BusinessNotFoundError,
    RETRY_CONFIGS,
    with_retry,
    sanitize_for_logging,
)
from .config import CFPConfig, load_env
from .models import (
    BusinessContext,
    Location,
    LLMResult,
    FingerprintAnalysis,
    Reference,
    NotabilityAssessment,
    PublishResult,
    CrawlResult,
)
from .llm_client import LLMClient
from .scoring import calculate_visibility_score, compute_trend
from .fingerprint import FingerprintEngine, build_competitive_leaderboard
from .notability import NotabilityChecker
from .entity_builder import build_entity, validate_entity, entity_to_api_payload
from .publisher import WikidataPublisher
from .crawler import HttpCrawler
from .idempotency import IdempotencyStore, generate_idempotency_key
from .automation import get_automation_config, calculate_next_crawl_date, should_auto_crawl
from .orchestrator import CFPOrchestrator, CFPRunResult

__all__ = [
    # Errors
    "CFPError",
    "CrawlerError",
    "LLMError",
    "NotabilityError",
    "WikidataError",
    "RunInProgressError",
    "BusinessNotFoundError",
    "RETRY_CONFIGS",
    "with_retry",
    "sanitize_for_logging",
    # Config
    "CFPConfig",
    "load_env",
    # Models
    "BusinessContext",
    "Location",
    "LLMResult",
    "FingerprintAnalysis",
    "Reference",
    "NotabilityAssessment",
    "PublishResult",
    "CrawlResult",
    # Fingerprint
    "LLMClient",
    "calculate_visibility_score",
    "compute_trend",
    "FingerprintEngine",
    "build_competitive_leaderboard",
    # Publish
    "NotabilityChecker",
    "build_entity",
    "validate_entity",
    "entity_to_api_payload",
    "WikidataPublisher",
    # Collaborators
    "HttpCrawler",
    "IdempotencyStore",
    "generate_idempotency_key",
    # Automation
    "get_automation_config",
    "calculate_next_crawl_date",
    "should_auto_crawl",
    # Orchestration
    "CFPOrchestrator",
    "CFPRunResult",
]
