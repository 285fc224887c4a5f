"""Tutoring chat API.

Endpoints:
- ``POST /api/chat/query``                     — ask the tutor (quota-limited)
- ``POST /api/chat/clear``                     — reset a conversation's history
- ``GET  /api/chat/history/{conversation_id}`` — stored turns plus a summary
- ``GET  /api/chat/usage``                     — today's allowance and recent usage

Query pipeline order: validation → content filter → quota gate → RAG →
persist history → count the query.  Filtered prompts and failed generations
do not consume quota.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_services
from config.prompts.tutor import CONTENT_FILTER_MESSAGE
from errors import GenerationError, QuotaExceeded
from models.auth import TokenClaims
from models.conversation import (
    ClearRequest,
    FilteredResponse,
    HistoryResponse,
    QueryRequest,
    QueryResponse,
)
from services.container import Services
from services.content_filter import contains_inappropriate_content
from services.conversation_store import ConversationSession
from ta_backend.auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


async def _load_session(
    services: Services, conversation_id: str | None, identity: str,
) -> ConversationSession:
    """The caller's session for *conversation_id*, or a fresh one.

    Unknown, expired and foreign ids all start a new conversation under a new
    id, so a client can never write into another identity's session.
    """
    if conversation_id:
        session = await services.conversations.get_for(conversation_id, identity)
        if session is not None:
            return session
    return services.conversations.new_session(identity)


@router.post("/query", response_model=QueryResponse | FilteredResponse)
async def query(
    req: QueryRequest,
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    prompt = req.prompt.strip()
    if not prompt:
        raise HTTPException(status_code=400, detail="Prompt is required")
    max_chars = services.settings.max_prompt_chars
    if len(prompt) > max_chars:
        raise HTTPException(
            status_code=400,
            detail=f"Prompt too long (maximum {max_chars} characters)",
        )

    if contains_inappropriate_content(prompt):
        logger.warning("Inappropriate content detected for %s", user.email)
        return FilteredResponse(message=CONTENT_FILTER_MESSAGE)

    try:
        await services.quota.ensure_allowed(user.email)
    except QuotaExceeded as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    session = await _load_session(services, req.conversation_id, user.email)

    try:
        result = await services.rag.send_message(prompt, session.turns)
    except GenerationError as exc:
        logger.error(
            "Query failed for %s at stage %s: %s", user.email, exc.stage, exc,
        )
        raise HTTPException(
            status_code=502,
            detail="Failed to generate a response. Please try again.",
        )

    session.replace_turns(result.updated_history, services.settings.conversation_max_turns)
    await services.conversations.save(session)
    await services.quota.record_query(user.email)

    return QueryResponse(
        response=result.response,
        conversation_id=session.conversation_id,
        context_used=result.context_used,
        context_chunks=result.context_chunks,
        quota=await services.quota.check_limit(user.email),
    )


@router.post("/clear")
async def clear(
    req: ClearRequest,
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    session = await services.conversations.get_for(req.conversation_id, user.email)
    if session is not None:
        session.clear()
        await services.conversations.save(session)
        logger.info("Cleared conversation %s for %s", req.conversation_id, user.email)
    return {"message": "Chat history cleared", "conversationId": req.conversation_id}


@router.get("/history/{conversation_id}", response_model=HistoryResponse)
async def history(
    conversation_id: str,
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    session = await services.conversations.get_for(conversation_id, user.email)
    if session is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return HistoryResponse(
        conversation_id=conversation_id,
        turns=session.turns,
        summary=services.rag.summarize_history(session.turns),
    )


@router.get("/usage")
async def usage(
    user: TokenClaims = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    status = await services.quota.check_limit(user.email)
    stats = await services.quota.get_user_stats(user.email)
    return {
        "quota": status.model_dump(by_alias=True),
        "stats": stats.model_dump(by_alias=True),
    }
