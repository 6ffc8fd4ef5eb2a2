"""
Error taxonomy and retry helpers for the CFP pipeline.

Every pipeline failure is a CFPError subclass carrying a stable code, an
HTTP-style status, and optional structured details. The HTTP layer maps
`status` straight onto responses; the orchestrator records `str(error)` on
the business row.
"""

import re
import time
import sqlite3
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CFPError(Exception):
    """Base class for all pipeline errors."""

    default_code = "CFP_ERROR"
    default_status = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status = status or self.default_status
        self.details = details or {}
        self.retryable = retryable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "status": self.status,
            "details": self.details,
        }


class CrawlerError(CFPError):
    """Upstream crawl failure."""

    default_code = "CRAWL_FAILED"
    default_status = 502


class LLMError(CFPError):
    """Model query failure, including rate limits."""

    default_code = "LLM_QUERY_FAILED"
    default_status = 502


class NotabilityError(CFPError):
    """Search or judge failure during notability checking."""

    default_code = "NOTABILITY_CHECK_FAILED"
    default_status = 502


class WikidataError(CFPError):
    """Remote knowledge-base failure (auth, network, invalid entity)."""

    default_code = "WIKIDATA_PUBLISH_FAILED"
    default_status = 502


class RunInProgressError(CFPError):
    """A CFP run is already active for this business."""

    default_code = "RUN_IN_PROGRESS"
    default_status = 409


class BusinessNotFoundError(CFPError):
    default_code = "BUSINESS_NOT_FOUND"
    default_status = 404


# =============================================================================
# RETRY
# =============================================================================

@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int
    base_delay: float      # seconds
    backoff_factor: float
    max_delay: float       # seconds

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry following `attempt` (1-based)."""
        return min(self.base_delay * (self.backoff_factor ** (attempt - 1)), self.max_delay)


RETRY_CONFIGS: Dict[str, RetryConfig] = {
    "crawler": RetryConfig(max_attempts=3, base_delay=2.0, backoff_factor=2.0, max_delay=10.0),
    "llm": RetryConfig(max_attempts=3, base_delay=1.0, backoff_factor=2.0, max_delay=5.0),
    "database": RetryConfig(max_attempts=3, base_delay=0.5, backoff_factor=1.5, max_delay=2.0),
}


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, CFPError):
        return exc.retryable
    # Locked database / busy timeout
    return isinstance(exc, sqlite3.OperationalError)


def with_retry(
    fn: Callable[[], T],
    config: RetryConfig,
    operation: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call `fn` until it succeeds or attempts run out.

    Only retryable errors (CFPError.retryable, sqlite OperationalError) are
    retried; anything else propagates on the first failure.

    Args:
        fn: Zero-argument callable.
        config: One of RETRY_CONFIGS (or a custom RetryConfig).
        operation: Name used in log lines.
        sleep: Injected for tests.

    Returns:
        Whatever `fn` returns.

    Raises:
        The last exception raised by `fn`.
    """
    attempt = 1
    while True:
        try:
            return fn()
        except Exception as exc:
            if attempt >= config.max_attempts or not _is_retryable(exc):
                raise
            wait = config.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                operation, attempt, config.max_attempts,
                sanitize_for_logging(str(exc)), wait,
            )
            sleep(wait)
            attempt += 1


# =============================================================================
# LOG SANITIZING
# =============================================================================

_SECRET_PATTERNS = [
    (re.compile(r"(?i)bearer\s+[A-Za-z0-9\-._~+/]+=*"), "Bearer [REDACTED]"),
    (re.compile(r"(?i)(api[_-]?key|apikey|access[_-]?token|token|lgtoken|csrftoken)([\"']?\s*[=:]\s*[\"']?)[^\s&\"',}]+"), r"\1\2[REDACTED]"),
    (re.compile(r"(?i)(password|lgpassword|passwd|secret)([\"']?\s*[=:]\s*[\"']?)[^\s&\"',}]+"), r"\1\2[REDACTED]"),
    (re.compile(r"sk-[A-Za-z0-9\-_]{10,}"), "[REDACTED]"),
]


def sanitize_for_logging(text: Any) -> str:
    """Redact bearer tokens, API keys, passwords and wiki tokens from a log string."""
    out = str(text)
    for pattern, repl in _SECRET_PATTERNS:
        out = pattern.sub(repl, out)
    return out
