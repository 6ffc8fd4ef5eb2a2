"""
CFP run routes:

POST /cfp/{business_id}/run  — synchronous pipeline run (409 if one is active)
POST /cfp/batch              — run several businesses (or every due one)
"""

import logging
from fastapi import APIRouter, Header, HTTPException, Request

from backend.models.schemas import CFPBatchRequest, CFPBatchResponse, CFPRunRequest, CFPRunResponse
from backend.services.cfp_service import get_orchestrator
from cfp.errors import CFPError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cfp", tags=["cfp"])


@router.post("/batch", response_model=CFPBatchResponse)
def run_batch(body: CFPBatchRequest, request: Request):
    user_id = getattr(request.state, "user_id", 1)
    summary = get_orchestrator().process_batch(body.business_ids, caller=user_id)
    return CFPBatchResponse(**summary)


@router.post("/{business_id}/run", response_model=CFPRunResponse)
def run_cfp(
    business_id: int,
    request: Request,
    body: CFPRunRequest | None = None,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    """
    Crawl, fingerprint and (optionally) publish one business.

    publish: true/false overrides the tier's auto-publish setting.
    force: bypass the idempotency cache and fingerprint reuse window.
    """
    body = body or CFPRunRequest()
    user_id = getattr(request.state, "user_id", 1)
    try:
        result = get_orchestrator().run(
            business_id,
            publish=body.publish,
            force=body.force,
            caller=user_id,
            idempotency_key=idempotency_key,
        )
    except CFPError as e:
        raise HTTPException(status_code=e.status, detail=e.to_dict())
    except Exception as e:
        logger.exception("CFP run failed for business %s: %s", business_id, e)
        raise HTTPException(status_code=500, detail="Internal server error")
    return CFPRunResponse(**result.to_dict())
