"""Per-identity daily query quota.

Counters live under ``quota:{email}:{YYYY-MM-DD}`` (UTC day).  A new day
simply reads as zero, so rollover needs no job.  Each write re-sets a 30-day
TTL, which doubles as the retention policy for usage history.

The two public operations deliberately fail in opposite directions:

- ``check_limit`` fails **open**: if the store is unreachable the query is
  allowed, so an outage of the counter does not lock every student out.
- ``record_query`` fails **silently**: the answer has already been
  generated, bookkeeping must not turn it into an error.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from errors import QuotaExceeded
from models.quota import DailyCount, QuotaConfig, QuotaStatus, UserStats
from services.credential_store import CredentialStore
from services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

_KEY_PREFIX = "quota:"
# Admin override of the configured limit, shared by all workers
_LIMIT_KEY = "quota_config:daily_limit"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuotaService:
    """Daily counter with admin exemption."""

    def __init__(
        self,
        kv: KeyValueStore,
        credentials: CredentialStore,
        daily_limit: int = 15,
        retention_days: int = 30,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._kv = kv
        self._credentials = credentials
        self._daily_limit = daily_limit
        self._retention_days = retention_days
        self._now = now

    async def get_daily_limit(self) -> int:
        value = await self._kv.get(_LIMIT_KEY)
        return int(value) if value is not None else self._daily_limit

    def day_key(self, when: datetime | None = None) -> str:
        when = when or self._now()
        return when.astimezone(timezone.utc).strftime("%Y-%m-%d")

    def _key(self, identity: str, day: str) -> str:
        return f"{_KEY_PREFIX}{identity}:{day}"

    async def _count(self, identity: str, day: str) -> int:
        value = await self._kv.get(self._key(identity, day))
        return int(value) if value is not None else 0

    # ── Core operations ──────────────────────────────────────

    async def check_limit(self, identity: str) -> QuotaStatus:
        """Read-only check of today's allowance."""
        try:
            if await self._credentials.is_admin(identity):
                return QuotaStatus(allowed=True, unlimited=True)
            limit = await self.get_daily_limit()
            used = await self._count(identity, self.day_key())
        except Exception:
            logger.exception("Failed to check query limit for %s; allowing", identity)
            return QuotaStatus(allowed=True, error=True)

        return QuotaStatus(
            allowed=used < limit,
            remaining=max(0, limit - used),
            used=used,
            limit=limit,
        )

    async def record_query(self, identity: str) -> int | None:
        """Count one accepted query; returns the new count (None for admins/failures)."""
        try:
            if await self._credentials.is_admin(identity):
                logger.info("Query recorded for admin %s (not counted)", identity)
                return None
            count = await self._kv.incr_with_ttl(
                self._key(identity, self.day_key()),
                self._retention_days * 86400,
            )
        except Exception:
            logger.exception("Failed to record query for %s", identity)
            return None

        logger.info("Query recorded for %s (daily count %d)", identity, count)
        return count

    # ── Stats & admin ────────────────────────────────────────

    async def get_user_stats(self, identity: str, days: int = 7) -> UserStats:
        """Today's count plus the last *days* days, newest first."""
        now = self._now()
        recent: list[DailyCount] = []
        for offset in range(days):
            day = self.day_key(now - timedelta(days=offset))
            recent.append(DailyCount(date=day, count=await self._count(identity, day)))
        return UserStats(
            email=identity,
            today=recent[0].count if recent else 0,
            recent_days=recent,
            total_recent=sum(d.count for d in recent),
            is_admin=await self._credentials.is_admin(identity),
        )

    async def set_daily_limit(self, limit: int) -> int:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValueError("Daily limit must be a positive integer")
        await self._kv.set(_LIMIT_KEY, str(limit))
        logger.info("Daily query limit updated to %d", limit)
        return limit

    async def get_config(self) -> QuotaConfig:
        return QuotaConfig(
            daily_query_limit=await self.get_daily_limit(),
            retention_days=self._retention_days,
        )

    async def ensure_allowed(self, identity: str) -> QuotaStatus:
        """Gate for the query endpoint.

        Raises:
            QuotaExceeded: the identity has no queries left today.
        """
        status = await self.check_limit(identity)
        if not status.allowed:
            logger.warning(
                "Daily limit reached for %s (%s/%s)", identity, status.used, status.limit,
            )
            raise QuotaExceeded(identity, status.limit or 0, status.used or 0)
        return status
