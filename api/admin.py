"""Admin API — access control, quota, knowledge base and feedback triage.

Every route requires a session token with ``role=admin``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import Field

from api.deps import get_services
from errors import GenerationError, ReportNotFound
from models.auth import MembershipRequest, TokenClaims
from models.base import CamelModel, normalize_identity
from models.feedback import FeedbackReport, ReportStats, ReportStatus, StatusUpdateRequest
from models.quota import QuotaConfig, UpdateLimitRequest, UserStats
from services.container import Services
from ta_backend.auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class SearchRequest(CamelModel):
    query: str
    k: int = Field(default=3, ge=1, le=20)


# ── Whitelist ────────────────────────────────────────────────


@router.get("/whitelist")
async def list_whitelist(services: Services = Depends(get_services)):
    emails = await services.credentials.get_whitelist()
    return {"emails": emails, "count": len(emails)}


@router.post("/whitelist")
async def add_to_whitelist(
    req: MembershipRequest,
    services: Services = Depends(get_services),
):
    added = await services.credentials.add_to_whitelist(req.email)
    return {"email": req.email, "added": added}


@router.delete("/whitelist/{email}")
async def remove_from_whitelist(
    email: str,
    services: Services = Depends(get_services),
):
    email = normalize_identity(email)
    removed = await services.credentials.remove_from_whitelist(email)
    if not removed:
        raise HTTPException(status_code=404, detail="Email not in whitelist")
    return {"email": email, "removed": True}


# ── Admins ───────────────────────────────────────────────────


@router.get("/admins")
async def list_admins(services: Services = Depends(get_services)):
    admins = await services.credentials.get_admins()
    return {"emails": admins, "count": len(admins)}


@router.post("/admins")
async def add_admin(
    req: MembershipRequest,
    services: Services = Depends(get_services),
):
    added = await services.credentials.add_admin(req.email)
    return {"email": req.email, "added": added}


@router.delete("/admins/{email}")
async def remove_admin(
    email: str,
    admin: TokenClaims = Depends(require_admin),
    services: Services = Depends(get_services),
):
    email = normalize_identity(email)
    if email == admin.email:
        raise HTTPException(status_code=400, detail="Admins cannot revoke their own rights")
    removed = await services.credentials.remove_admin(email)
    if not removed:
        raise HTTPException(status_code=404, detail="Email is not an admin")
    return {"email": email, "removed": True}


# ── Quota ────────────────────────────────────────────────────


@router.get("/quota/config", response_model=QuotaConfig)
async def get_quota_config(services: Services = Depends(get_services)):
    return await services.quota.get_config()


@router.put("/quota/limit", response_model=QuotaConfig)
async def update_quota_limit(
    req: UpdateLimitRequest,
    admin: TokenClaims = Depends(require_admin),
    services: Services = Depends(get_services),
):
    try:
        await services.quota.set_daily_limit(req.limit)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    logger.info("Daily limit set to %d by %s", req.limit, admin.email)
    return await services.quota.get_config()


@router.get("/quota/{email}", response_model=UserStats)
async def get_user_quota(
    email: str,
    days: int = Query(default=7, ge=1, le=30),
    services: Services = Depends(get_services),
):
    return await services.quota.get_user_stats(normalize_identity(email), days)


# ── Knowledge base ───────────────────────────────────────────


@router.get("/knowledge")
async def knowledge_info(services: Services = Depends(get_services)):
    info = await services.rag.collection_info()
    if info is None:
        return {"exists": False, "name": services.rag.collection_name}
    return {"exists": True, **info.model_dump()}


@router.post("/knowledge/search")
async def knowledge_search(
    req: SearchRequest,
    services: Services = Depends(get_services),
):
    """Inspect what retrieval returns for a query, without calling the chat model."""
    try:
        results = await services.rag.search_similar_texts(req.query, req.k)
    except GenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return {"query": req.query, "results": results}


# ── Feedback ─────────────────────────────────────────────────


@router.get("/feedback", response_model=list[FeedbackReport])
async def list_feedback(
    limit: int = Query(default=50, ge=1, le=1000),
    status: ReportStatus | None = None,
    services: Services = Depends(get_services),
):
    return await services.feedback.get_reports(limit=limit, status=status)


@router.get("/feedback/stats", response_model=ReportStats)
async def feedback_stats(services: Services = Depends(get_services)):
    return await services.feedback.get_report_stats()


@router.put("/feedback/{report_id}/status", response_model=FeedbackReport)
async def update_feedback_status(
    report_id: str,
    req: StatusUpdateRequest,
    admin: TokenClaims = Depends(require_admin),
    services: Services = Depends(get_services),
):
    try:
        return await services.feedback.update_report_status(report_id, req.status, admin.email)
    except ReportNotFound:
        raise HTTPException(status_code=404, detail="Report not found")
