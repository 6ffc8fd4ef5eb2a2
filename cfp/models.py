"""
Value objects passed between CFP stages.

All of these are created once and handed on by value; only the orchestrator
owns mutable run state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

PROMPT_TYPES = ("factual", "opinion", "recommendation")
SENTIMENTS = ("positive", "neutral", "negative")

# Business lifecycle states
STATUS_PENDING = "pending"
STATUS_CRAWLING = "crawling"
STATUS_CRAWLED = "crawled"
STATUS_ANALYZING = "analyzing"
STATUS_FINGERPRINTED = "fingerprinted"
STATUS_PUBLISHING = "publishing"
STATUS_PUBLISHED = "published"
STATUS_ERROR = "error"

ACTIVE_STATUSES = (STATUS_CRAWLING, STATUS_ANALYZING, STATUS_PUBLISHING)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# BUSINESS INPUT
# =============================================================================

@dataclass(frozen=True)
class Location:
    city: str = ""
    state: str = ""
    country: str = "US"

    def to_dict(self) -> Dict:
        return {"city": self.city, "state": self.state, "country": self.country}


@dataclass(frozen=True)
class BusinessContext:
    """Snapshot of a business for one pipeline run. Never mutated."""
    business_id: int
    name: str
    url: Optional[str] = None
    category: Optional[str] = None
    location: Optional[Location] = None
    crawl_data: Optional[Dict[str, Any]] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BusinessContext":
        """Build from a cfp.db business dict."""
        location = None
        if row.get("city") or row.get("state"):
            location = Location(
                city=row.get("city") or "",
                state=row.get("state") or "",
                country=row.get("country") or "US",
            )
        return cls(
            business_id=int(row["id"]),
            name=row["name"],
            url=row.get("url"),
            category=row.get("category"),
            location=location,
            crawl_data=row.get("crawl_data"),
        )


# =============================================================================
# FINGERPRINT
# =============================================================================

@dataclass
class LLMResponse:
    """Raw answer from one model."""
    content: str
    tokens_used: int
    model: str


@dataclass
class LLMResult:
    """One (model x prompt type) query after analysis."""
    model: str
    prompt_type: str
    mentioned: bool = False
    sentiment: Optional[str] = None
    rank_position: Optional[int] = None
    accuracy: Optional[float] = None
    raw_response: str = ""
    tokens_used: int = 0
    competitor_mentions: List[str] = field(default_factory=list)
    prompt: str = ""
    processing_time_ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        out = {
            "model": self.model,
            "prompt_type": self.prompt_type,
            "mentioned": self.mentioned,
            "sentiment": self.sentiment,
            "rank_position": self.rank_position,
            "accuracy": self.accuracy,
            "raw_response": self.raw_response,
            "tokens_used": self.tokens_used,
            "competitor_mentions": list(self.competitor_mentions),
            "prompt": self.prompt,
            "processing_time_ms": self.processing_time_ms,
        }
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class FingerprintAnalysis:
    """Aggregate visibility measurement for one run. A new run makes a new one."""
    business_id: int
    business_name: str
    visibility_score: int                 # 0-100
    mention_rate: float                   # 0-100
    sentiment_score: float                # 0-1
    accuracy_score: float                 # 0-1
    avg_rank_position: Optional[float]
    llm_results: List[LLMResult]
    competitive_leaderboard: Optional[Dict[str, Any]] = None
    generated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict:
        return {
            "business_id": self.business_id,
            "business_name": self.business_name,
            "visibility_score": self.visibility_score,
            "mention_rate": self.mention_rate,
            "sentiment_score": self.sentiment_score,
            "accuracy_score": self.accuracy_score,
            "avg_rank_position": self.avg_rank_position,
            "llm_results": [r.to_dict() for r in self.llm_results],
            "competitive_leaderboard": self.competitive_leaderboard,
            "generated_at": self.generated_at,
        }


# =============================================================================
# NOTABILITY
# =============================================================================

@dataclass
class Reference:
    url: str
    title: str
    snippet: str = ""
    source: str = ""
    is_serious: bool = False
    is_publicly_available: bool = False
    is_independent: bool = False
    source_type: str = "other"
    trust_score: int = 0

    @property
    def qualifies(self) -> bool:
        """Serious, independent and public: counts toward notability."""
        return (
            self.is_serious
            and self.is_independent
            and self.is_publicly_available
            and self.source_type != "company"
        )

    def to_dict(self) -> Dict:
        return {
            "url": self.url,
            "title": self.title,
            "snippet": self.snippet,
            "source": self.source,
            "is_serious": self.is_serious,
            "is_publicly_available": self.is_publicly_available,
            "is_independent": self.is_independent,
            "source_type": self.source_type,
            "trust_score": self.trust_score,
        }


@dataclass
class NotabilityAssessment:
    is_notable: bool
    confidence: float
    serious_reference_count: int
    references: List[Reference]
    summary: str
    recommendations: List[str] = field(default_factory=list)
    top_references: List[Reference] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "is_notable": self.is_notable,
            "confidence": self.confidence,
            "serious_reference_count": self.serious_reference_count,
            "references": [r.to_dict() for r in self.references],
            "summary": self.summary,
            "recommendations": list(self.recommendations),
            "top_references": [r.to_dict() for r in self.top_references],
        }


# =============================================================================
# PUBLISH
# =============================================================================

@dataclass
class PublishResult:
    success: bool
    qid: Optional[str] = None
    entity_id: Optional[str] = None
    published_to: str = "test"
    error: Optional[str] = None
    dry_run: bool = False

    def to_dict(self) -> Dict:
        return {
            "success": self.success,
            "qid": self.qid,
            "entity_id": self.entity_id,
            "published_to": self.published_to,
            "error": self.error,
            "dry_run": self.dry_run,
        }


@dataclass
class CrawlResult:
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
