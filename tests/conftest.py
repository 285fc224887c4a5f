"""Shared pytest fixtures.

Provides:
- ``clock``: controllable time source shared by stores and services
- ``kv`` / ``credentials``: fresh in-memory stores per test
- ``email_service``: records outgoing mail instead of sending it
- ``auth_service``: fast bcrypt rounds, fixed secret
- ``rag_engine``: in-memory vectors with deterministic fake providers
- ``services`` / ``client``: full app wiring for HTTP tests
"""

from __future__ import annotations

import re

import pytest
from httpx import ASGITransport, AsyncClient

from config.llm_config import EmbeddingConfig, LLMConfig
from config.settings import Settings
from models.auth import Role
from models.conversation import Turn
from services.auth_service import AuthService
from services.container import Services
from services.conversation_store import InMemoryConversationStore
from services.credential_store import CredentialStore
from services.email_service import LoggingEmailService
from services.embedding_service import EmbeddingService
from services.feedback_service import FeedbackService
from services.kv_store import InMemoryKeyValueStore
from services.llm_service import LLMService
from services.quota_service import QuotaService
from services.vector_store import InMemoryVectorStore
from ta_backend.rag_engine import RAGEngine

TEST_DIM = 64
TEST_SECRET = "unit-test-secret-0123456789abcdef0123"


class FakeClock:
    """Manually advanced unix-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEmbeddingService(EmbeddingService):
    """Bag-of-words vectors over a growing vocabulary.

    Each new word gets its own dimension, so texts with different words never
    collide and identical texts always score 1.0 against each other.
    """

    def __init__(self, dimension: int = TEST_DIM) -> None:
        super().__init__(EmbeddingConfig(model="fake/embedding", dimension=dimension))
        self.calls: list[list[str]] = []
        self.fail_on_call: int | None = None
        self._vocab: dict[str, int] = {}

    def vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimension
        for word in re.findall(r"\w+", text.lower()):
            index = self._vocab.setdefault(word, len(self._vocab) % self.dimension)
            vec[index] += 1.0
        if not any(vec):
            vec[0] = 1.0
        return vec

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_on_call is not None and len(self.calls) >= self.fail_on_call:
            raise RuntimeError("embedding provider unavailable")
        return [self.vector(t) for t in texts]


class FakeLLMService(LLMService):
    def __init__(self) -> None:
        super().__init__(LLMConfig(model="fake/chat", temperature=0.5, max_tokens=1024))
        self.calls: list[dict] = []
        self.fail = False
        self.reply = "Let's think about it step by step."

    async def chat(
        self,
        history: list[Turn],
        prompt: str,
        system: str = "",
        overrides: LLMConfig | None = None,
    ) -> str:
        self.calls.append({"history": list(history), "prompt": prompt, "system": system})
        if self.fail:
            raise RuntimeError("chat provider unavailable")
        return self.reply


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv(clock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def credentials(kv) -> CredentialStore:
    return CredentialStore(kv)


@pytest.fixture
def email_service() -> LoggingEmailService:
    return LoggingEmailService(subject="Your ICS TA Bot Verification Code")


@pytest.fixture
def auth_service(credentials, email_service, clock) -> AuthService:
    return AuthService(
        credentials,
        email_service,
        jwt_secret=TEST_SECRET,
        bcrypt_rounds=4,
        clock=clock,
    )


@pytest.fixture
def fake_embeddings() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def fake_llm() -> FakeLLMService:
    return FakeLLMService()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def rag_engine(vector_store, fake_embeddings, fake_llm) -> RAGEngine:
    return RAGEngine(
        vector_store=vector_store,
        embeddings=fake_embeddings,
        llm=fake_llm,
        collection_name="test-collection",
        batch_delay=0,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        daily_query_limit=3,
        jwt_secret=TEST_SECRET,
        bcrypt_rounds=4,
        store_type="memory",
        vector_store_type="memory",
    )


@pytest.fixture
def services(
    settings, kv, credentials, email_service, auth_service, vector_store, rag_engine, clock,
) -> Services:
    return Services(
        settings=settings,
        kv=kv,
        credentials=credentials,
        email=email_service,
        auth=auth_service,
        quota=QuotaService(kv, credentials, daily_limit=settings.daily_query_limit),
        conversations=InMemoryConversationStore(clock=clock),
        vector_store=vector_store,
        rag=rag_engine,
        feedback=FeedbackService(kv, credentials, email_service),
    )


@pytest.fixture
async def client(services):
    from main import app

    app.state.services = services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    del app.state.services


@pytest.fixture
def user_token(services) -> str:
    return services.auth.issue_token("student@uni.edu", Role.USER)


@pytest.fixture
def admin_token(services) -> str:
    return services.auth.issue_token("prof@uni.edu", Role.ADMIN)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
