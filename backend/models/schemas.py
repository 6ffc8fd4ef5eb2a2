"""
Pydantic schemas for the CFP API.
"""

from typing import Optional, List, Any, Dict
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Businesses
# ---------------------------------------------------------------------------

class BusinessCreateRequest(BaseModel):
    """Request body for POST /businesses."""

    name: str = Field(..., min_length=1)
    url: Optional[str] = None
    category: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: str = "US"
    tier: str = "free"


class BusinessResponse(BaseModel):
    id: int
    name: str
    url: Optional[str] = None
    category: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    tier: str
    status: str
    wikidata_qid: Optional[str] = None
    wikidata_published_at: Optional[str] = None
    last_crawled_at: Optional[str] = None
    next_crawl_at: Optional[str] = None
    error_message: Optional[str] = None
    notability_summary: Optional[str] = None
    created_at: str
    latest_fingerprint: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------

class FingerprintSummary(BaseModel):
    id: int
    visibility_score: int
    mention_rate: Optional[float] = None
    sentiment_score: Optional[float] = None
    accuracy_score: Optional[float] = None
    avg_rank_position: Optional[float] = None
    competitive_leaderboard: Optional[Dict[str, Any]] = None
    created_at: str


class TrendInfo(BaseModel):
    trend: str
    delta: Optional[int] = None
    current: Optional[int] = None
    previous: Optional[int] = None


class FingerprintHistoryResponse(BaseModel):
    business_id: int
    fingerprints: List[FingerprintSummary] = []
    trend: TrendInfo


# ---------------------------------------------------------------------------
# CFP runs
# ---------------------------------------------------------------------------

class CFPRunRequest(BaseModel):
    """Request body for POST /cfp/{business_id}/run."""

    publish: Optional[bool] = None
    force: bool = False


class CFPRunResponse(BaseModel):
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
    started_at: str
    completed_at: Optional[str] = None


class CFPBatchRequest(BaseModel):
    """Request body for POST /cfp/batch. No ids = every due business."""

    business_ids: Optional[List[int]] = None


class CFPBatchResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int
    results: List[Dict[str, Any]] = []
