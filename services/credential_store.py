"""Credential store — whitelist, admin set and pending verification codes.

A thin, typed facade over :class:`KeyValueStore` so the verification flow and
the quota tracker never deal in raw keys.
"""

from __future__ import annotations

import logging
import math

from models.auth import VerificationCode
from services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

WHITELIST_KEY = "whitelisted_emails"
ADMIN_KEY = "admin_emails"
_CODE_KEY_PREFIX = "verify_code:"

# Abandoned codes are reclaimed by the store an hour after they become
# unusable; the explicit ``expires_at`` check stays authoritative.
_CODE_TTL_GRACE_SECONDS = 3600


class CredentialStore:
    """Whitelist / admin membership and hashed one-time codes."""

    def __init__(self, kv: KeyValueStore, cascade_admin_removal: bool = True) -> None:
        self._kv = kv
        self._cascade_admin_removal = cascade_admin_removal

    # ── Whitelist ────────────────────────────────────────────

    async def add_to_whitelist(self, identity: str) -> bool:
        added = await self._kv.sadd(WHITELIST_KEY, identity)
        if added:
            logger.info("Added %s to the whitelist", identity)
        return added

    async def remove_from_whitelist(self, identity: str) -> bool:
        """Remove *identity*; also revokes admin rights when cascading."""
        removed = await self._kv.srem(WHITELIST_KEY, identity)
        if removed:
            logger.info("Removed %s from the whitelist", identity)
        if self._cascade_admin_removal and await self._kv.srem(ADMIN_KEY, identity):
            logger.info("Revoked admin rights of %s (removed from whitelist)", identity)
        return removed

    async def is_whitelisted(self, identity: str) -> bool:
        return await self._kv.sismember(WHITELIST_KEY, identity)

    async def get_whitelist(self) -> list[str]:
        members = await self._kv.smembers(WHITELIST_KEY)
        if not members:
            logger.debug("Whitelist is empty")
        return sorted(members)

    async def whitelist_size(self) -> int:
        return await self._kv.scard(WHITELIST_KEY)

    # ── Admins ───────────────────────────────────────────────

    async def add_admin(self, identity: str) -> bool:
        """Grant admin rights; the identity is whitelisted as well."""
        await self._kv.sadd(WHITELIST_KEY, identity)
        added = await self._kv.sadd(ADMIN_KEY, identity)
        if added:
            logger.info("Granted admin rights to %s", identity)
        return added

    async def remove_admin(self, identity: str) -> bool:
        removed = await self._kv.srem(ADMIN_KEY, identity)
        if removed:
            logger.info("Revoked admin rights of %s", identity)
        return removed

    async def is_admin(self, identity: str) -> bool:
        return await self._kv.sismember(ADMIN_KEY, identity)

    async def get_admins(self) -> list[str]:
        return sorted(await self._kv.smembers(ADMIN_KEY))

    async def seed(self, whitelist: list[str], admins: list[str]) -> None:
        """Idempotently apply configured seeds."""
        for identity in whitelist:
            await self._kv.sadd(WHITELIST_KEY, identity)
        for identity in admins:
            await self.add_admin(identity)
        if whitelist or admins:
            logger.info(
                "Seeded credential store: %d whitelisted, %d admins",
                len(whitelist), len(admins),
            )

    # ── Verification codes ───────────────────────────────────

    def _code_key(self, identity: str) -> str:
        return f"{_CODE_KEY_PREFIX}{identity}"

    async def put_code(self, record: VerificationCode, now: float) -> None:
        """Store *record*, replacing any earlier code for the same identity."""
        ttl = max(1, math.ceil(record.expires_at - now)) + _CODE_TTL_GRACE_SECONDS
        await self._kv.set(
            self._code_key(record.identity), record.model_dump_json(), ex=ttl,
        )

    async def get_code(self, identity: str) -> VerificationCode | None:
        data = await self._kv.get(self._code_key(identity))
        if data is None:
            return None
        return VerificationCode.model_validate_json(data)

    async def delete_code(self, identity: str) -> None:
        await self._kv.delete(self._code_key(identity))
