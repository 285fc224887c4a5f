"""Per-conversation chat history kept on the server.

Clients only hold a ``conversationId``; the turns live here.  Each session is
owned by the identity that created it, and :meth:`ConversationStore.get_for`
hides sessions owned by anyone else.  Sessions idle for longer than the TTL
(24 h by default, the lifetime of a session token) disappear.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Callable

from pydantic import BaseModel, Field

from models.conversation import Turn, TurnRole
from services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class ConversationSession(BaseModel):
    conversation_id: str
    identity: str
    turns: list[Turn] = Field(default_factory=list)
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    def replace_turns(self, turns: list[Turn], max_turns: int | None = None) -> None:
        """Adopt the history returned by the chat pipeline.

        Turns are stored verbatim.  When a cap is given only the newest
        *max_turns* are kept and the older ones are dropped whole.
        """
        kept = turns[-max_turns:] if max_turns else turns
        dropped = len(turns) - len(kept)
        if dropped:
            logger.info(
                "Conversation %s over %d turns; dropped %d oldest",
                self.conversation_id, max_turns, dropped,
            )
        self.turns = [t.model_copy() for t in kept]

    def clear(self) -> None:
        self.turns = []

    def recent_turns(self, n: int = 10) -> list[Turn]:
        return self.turns[-n:]

    @property
    def user_turn_count(self) -> int:
        return sum(1 for t in self.turns if t.role == TurnRole.USER)


class ConversationStore(ABC):
    """Storage backend for :class:`ConversationSession` objects.

    ``save`` stamps ``updated_at`` with the store clock, so idle time is
    always measured from the last write.
    """

    def __init__(self, ttl_seconds: int = 86400, clock: Callable[[], float] = time.time) -> None:
        self._ttl = ttl_seconds
        self._clock = clock

    def new_session(self, identity: str, conversation_id: str | None = None) -> ConversationSession:
        now = self._clock()
        return ConversationSession(
            conversation_id=conversation_id or generate_conversation_id(),
            identity=identity,
            created_at=now,
            updated_at=now,
        )

    @abstractmethod
    async def get(self, conversation_id: str) -> ConversationSession | None:
        """Return the session, or None if it never existed or has expired."""

    @abstractmethod
    async def save(self, session: ConversationSession) -> None: ...

    @abstractmethod
    async def delete(self, conversation_id: str) -> None: ...

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Drop expired sessions; returns how many were removed."""

    async def get_for(self, conversation_id: str, identity: str) -> ConversationSession | None:
        """Like :meth:`get`, but None unless *identity* owns the session."""
        session = await self.get(conversation_id)
        if session is None:
            return None
        if session.identity != identity:
            logger.warning(
                "Conversation %s requested by %s but owned by another identity",
                conversation_id, identity,
            )
            return None
        return session

    async def close(self) -> None:
        return None


class InMemoryConversationStore(ConversationStore):
    """Process-local sessions; copies go in and out so callers never alias."""

    def __init__(self, ttl_seconds: int = 86400, clock: Callable[[], float] = time.time) -> None:
        super().__init__(ttl_seconds, clock)
        self._sessions: dict[str, ConversationSession] = {}

    def _expired(self, session: ConversationSession, now: float) -> bool:
        return now - session.updated_at > self._ttl

    async def get(self, conversation_id: str) -> ConversationSession | None:
        session = self._sessions.get(conversation_id)
        if session is None:
            return None
        if self._expired(session, self._clock()):
            del self._sessions[conversation_id]
            logger.debug("Conversation %s expired", conversation_id)
            return None
        return session.model_copy(deep=True)

    async def save(self, session: ConversationSession) -> None:
        session.updated_at = self._clock()
        self._sessions[session.conversation_id] = session.model_copy(deep=True)

    async def delete(self, conversation_id: str) -> None:
        self._sessions.pop(conversation_id, None)

    async def cleanup_expired(self) -> int:
        now = self._clock()
        stale = [cid for cid, s in self._sessions.items() if self._expired(s, now)]
        for cid in stale:
            del self._sessions[cid]
        if stale:
            logger.info("Removed %d expired conversations", len(stale))
        return len(stale)

    @property
    def size(self) -> int:
        """Stored sessions, expired ones included until they are cleaned up."""
        return len(self._sessions)


class RedisConversationStore(ConversationStore):
    """Sessions as JSON strings in the shared key-value store.

    Every save resets the key TTL, so Redis expires idle sessions itself.
    """

    KEY_PREFIX = "conv:"

    def __init__(
        self,
        kv: KeyValueStore,
        ttl_seconds: int = 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(ttl_seconds, clock)
        self._kv = kv

    def _key(self, conversation_id: str) -> str:
        return f"{self.KEY_PREFIX}{conversation_id}"

    async def get(self, conversation_id: str) -> ConversationSession | None:
        raw = await self._kv.get(self._key(conversation_id))
        if raw is None:
            return None
        try:
            return ConversationSession.model_validate_json(raw)
        except ValueError:
            logger.warning("Discarding unreadable conversation %s", conversation_id)
            await self._kv.delete(self._key(conversation_id))
            return None

    async def save(self, session: ConversationSession) -> None:
        session.updated_at = self._clock()
        await self._kv.set(
            self._key(session.conversation_id), session.model_dump_json(), ex=self._ttl,
        )

    async def delete(self, conversation_id: str) -> None:
        await self._kv.delete(self._key(conversation_id))

    async def cleanup_expired(self) -> int:
        # Key TTLs do the work.
        return 0


def create_conversation_store(
    store_type: str,
    kv: KeyValueStore,
    ttl_seconds: int = 86400,
) -> ConversationStore:
    if store_type == "redis":
        logger.info("Conversations stored in Redis (TTL=%ds)", ttl_seconds)
        return RedisConversationStore(kv, ttl_seconds=ttl_seconds)
    logger.info("Conversations stored in memory (TTL=%ds)", ttl_seconds)
    return InMemoryConversationStore(ttl_seconds=ttl_seconds)


def generate_conversation_id() -> str:
    return f"conv-{uuid.uuid4().hex[:12]}"


async def periodic_cleanup(store: ConversationStore, interval_seconds: int = 300) -> None:
    """Sweep expired sessions forever; run as a task from the app lifespan."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await store.cleanup_expired()
        except Exception:
            logger.exception("Conversation cleanup failed")
