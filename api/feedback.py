"""Student feedback API — report a conversation where the tutor was misused."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_services
from models.auth import TokenClaims
from models.feedback import FeedbackRequest, FeedbackSubmitted
from services.container import Services
from ta_backend.auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["feedback"])


@router.post("/feedback", response_model=FeedbackSubmitted)
async def submit_feedback(
    req: FeedbackRequest,
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """File a report.

    The excerpt comes from ``history`` when the client sends one, otherwise
    from the caller's stored conversation.
    """
    history = req.history
    if history is None and req.conversation_id:
        session = await services.conversations.get_for(req.conversation_id, user.email)
        if session is not None:
            history = [t.model_dump(mode="json") for t in session.turns]

    try:
        return await services.feedback.submit_feedback(
            user.email, req.category, req.description, history,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
