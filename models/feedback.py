"""Feedback models — misuse reports filed by students and triaged by admins."""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from models.base import CamelModel
from models.conversation import Turn


class ReportStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FeedbackReport(CamelModel):
    id: str
    timestamp: str  # ISO-8601 UTC
    email: str
    category: str
    description: str
    conversation_excerpt: list[Turn] = Field(default_factory=list)
    status: ReportStatus = ReportStatus.PENDING
    priority: Priority = Priority.LOW
    updated_at: str | None = None
    updated_by: str | None = None


class FeedbackRequest(CamelModel):
    """POST /api/feedback — request body.

    ``history`` is accepted in any client shape and normalized server-side;
    when omitted the caller's stored conversation is used.
    """

    category: str
    description: str
    conversation_id: str | None = None
    history: list | None = None


class FeedbackSubmitted(CamelModel):
    success: bool = True
    report_id: str
    message: str


class StatusUpdateRequest(CamelModel):
    status: ReportStatus


class ReportStats(CamelModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict)
    recent: int = 0
