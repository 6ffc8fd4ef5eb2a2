"""
Business routes:

POST /businesses                      — register a business
GET  /businesses/{id}                 — status, QID and latest fingerprint
GET  /businesses/{id}/fingerprints    — history (newest first) + trend
"""

from fastapi import APIRouter, HTTPException, Query

from backend.models.schemas import (
    BusinessCreateRequest,
    BusinessResponse,
    FingerprintHistoryResponse,
    FingerprintSummary,
    TrendInfo,
)
from cfp import db
from cfp.automation import TIER_AUTOMATION
from cfp.scoring import compute_trend

router = APIRouter(prefix="/businesses", tags=["businesses"])


def _to_response(business: dict) -> BusinessResponse:
    latest = db.get_latest_fingerprint(business["id"])
    if latest:
        latest = {k: v for k, v in latest.items() if k != "llm_results"}
    return BusinessResponse(
        id=business["id"],
        name=business["name"],
        url=business.get("url"),
        category=business.get("category"),
        city=business.get("city"),
        state=business.get("state"),
        country=business.get("country"),
        tier=business.get("tier") or "free",
        status=business["status"],
        wikidata_qid=business.get("wikidata_qid"),
        wikidata_published_at=business.get("wikidata_published_at"),
        last_crawled_at=business.get("last_crawled_at"),
        next_crawl_at=business.get("next_crawl_at"),
        error_message=business.get("error_message"),
        notability_summary=business.get("notability_summary"),
        created_at=business["created_at"],
        latest_fingerprint=latest,
    )


@router.post("", response_model=BusinessResponse, status_code=201)
def create_business(body: BusinessCreateRequest):
    tier = body.tier.strip().lower()
    if tier not in TIER_AUTOMATION:
        raise HTTPException(status_code=400, detail=f"Unknown tier: {body.tier}")
    try:
        business_id = db.create_business(
            name=body.name,
            url=body.url.strip() if body.url else None,
            category=body.category,
            city=body.city,
            state=body.state,
            country=body.country,
            tier=tier,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(db.get_business(business_id))


@router.get("/{business_id}", response_model=BusinessResponse)
def get_business(business_id: int):
    business = db.get_business(business_id)
    if not business:
        raise HTTPException(status_code=404, detail="Business not found")
    return _to_response(business)


@router.get("/{business_id}/fingerprints", response_model=FingerprintHistoryResponse)
def get_fingerprints(business_id: int, limit: int = Query(20, ge=1, le=200)):
    if not db.get_business(business_id):
        raise HTTPException(status_code=404, detail="Business not found")
    history = db.list_fingerprints(business_id, limit=limit)
    return FingerprintHistoryResponse(
        business_id=business_id,
        fingerprints=[
            FingerprintSummary(
                id=row["id"],
                visibility_score=row["visibility_score"],
                mention_rate=row.get("mention_rate"),
                sentiment_score=row.get("sentiment_score"),
                accuracy_score=row.get("accuracy_score"),
                avg_rank_position=row.get("avg_rank_position"),
                competitive_leaderboard=row.get("competitive_leaderboard"),
                created_at=row["created_at"],
            )
            for row in history
        ],
        trend=TrendInfo(**compute_trend(history[:2])),
    )
