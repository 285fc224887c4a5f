"""Conversation models — normalized turns and chat request/response bodies.

History arrives from clients in several shapes (plain strings, ``{content}``,
``{parts: [{text}]}``, ``{text}``).  It is normalized exactly once, at the
API boundary, into :class:`Turn`; everything downstream consumes only that.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field

from models.base import CamelModel
from models.quota import QuotaStatus


class TurnRole(str, Enum):
    USER = "user"
    MODEL = "model"


class Turn(CamelModel):
    """A single conversation turn."""

    role: TurnRole
    text: str


_MODEL_ROLES = {"model", "assistant", "bot"}


def _extract_text(message: dict[str, Any]) -> str:
    if message.get("content"):
        return str(message["content"])
    parts = message.get("parts")
    if isinstance(parts, list):
        texts = []
        for part in parts:
            if isinstance(part, dict):
                texts.append(str(part.get("text", "")))
            else:
                texts.append(str(part))
        return " ".join(t for t in texts if t)
    for key in ("text", "message"):
        if message.get(key):
            return str(message[key])
    return ""


def normalize_turn(raw: Any, index: int = 0) -> Turn | None:
    """Normalize one client-supplied history entry.

    Bare strings carry no role, so they alternate user/model by position.
    Returns ``None`` for entries with no text.
    """
    if isinstance(raw, Turn):
        return raw if raw.text.strip() else None
    if isinstance(raw, str):
        role = TurnRole.USER if index % 2 == 0 else TurnRole.MODEL
        text = raw
    elif isinstance(raw, dict):
        raw_role = str(raw.get("role", "user")).lower()
        role = TurnRole.MODEL if raw_role in _MODEL_ROLES else TurnRole.USER
        text = _extract_text(raw)
    else:
        return None
    text = text.strip()
    if not text:
        return None
    return Turn(role=role, text=text)


def normalize_history(raw_history: Any) -> list[Turn]:
    """Normalize a client-supplied history list, dropping empty entries."""
    if not isinstance(raw_history, list):
        return []
    turns: list[Turn] = []
    for i, raw in enumerate(raw_history):
        turn = normalize_turn(raw, i)
        if turn is not None:
            turns.append(turn)
    return turns


# ── Pipeline result ───────────────────────────────────────────


class ChatResult(CamelModel):
    """Outcome of one retrieval-augmented chat turn."""

    response: str
    updated_history: list[Turn]
    context_used: bool = False
    context_chunks: int = 0


class HistorySummary(CamelModel):
    message_count: int = 0
    user_messages: int = 0
    model_messages: int = 0
    total_characters: int = 0


# ── API bodies ────────────────────────────────────────────────


class QueryRequest(CamelModel):
    """POST /api/chat/query — request body."""

    prompt: str
    conversation_id: str | None = None


class QueryResponse(CamelModel):
    """POST /api/chat/query — response body."""

    response: str
    conversation_id: str
    context_used: bool = False
    context_chunks: int = 0
    quota: QuotaStatus | None = None


class FilteredResponse(CamelModel):
    message: str
    filtered: bool = True


class ClearRequest(CamelModel):
    conversation_id: str


class HistoryResponse(CamelModel):
    conversation_id: str
    turns: list[Turn] = Field(default_factory=list)
    summary: HistorySummary = Field(default_factory=HistorySummary)
