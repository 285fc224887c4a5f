"""Quota models — daily allowance status and per-user usage statistics."""

from __future__ import annotations

from pydantic import Field

from models.base import CamelModel


class QuotaStatus(CamelModel):
    """Result of a read-only quota check.

    ``unlimited`` is set for admins; ``error`` is set when the store could
    not be read and the check failed open.
    """

    allowed: bool
    unlimited: bool = False
    remaining: int | None = None
    used: int | None = None
    limit: int | None = None
    error: bool = False


class DailyCount(CamelModel):
    date: str
    count: int


class UserStats(CamelModel):
    email: str
    today: int = 0
    recent_days: list[DailyCount] = Field(default_factory=list)
    total_recent: int = 0
    is_admin: bool = False


class QuotaConfig(CamelModel):
    daily_query_limit: int
    retention_days: int


class UpdateLimitRequest(CamelModel):
    """PUT /api/admin/quota/limit — request body."""

    limit: int = Field(ge=1)
