"""Service wiring — builds every store and service from :class:`Settings`.

The FastAPI lifespan builds one :class:`Services` and places it on
``app.state``; routers reach it through ``api.deps``.  Scripts build their
own with :func:`build_services`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from config.settings import Settings
from services.auth_service import AuthService
from services.concurrency import ProviderLimiter
from services.conversation_store import ConversationStore, create_conversation_store
from services.credential_store import CredentialStore
from services.email_service import EmailService, LoggingEmailService, SMTPEmailService
from services.embedding_service import EmbeddingService
from services.feedback_service import FeedbackService
from services.kv_store import KeyValueStore, create_kv_store
from services.llm_service import LLMService
from services.quota_service import QuotaService
from services.vector_store import VectorStore, create_vector_store
from ta_backend.rag_engine import RAGEngine

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    kv: KeyValueStore
    credentials: CredentialStore
    email: EmailService
    auth: AuthService
    quota: QuotaService
    conversations: ConversationStore
    vector_store: VectorStore
    rag: RAGEngine
    feedback: FeedbackService

    async def start(self) -> None:
        """Open connections and apply configured seeds."""
        if not await self.kv.ping():
            logger.warning("Key-value store not reachable at startup")
        await self.vector_store.initialize()
        await self.credentials.seed(
            self.settings.seed_whitelist_list, self.settings.seed_admins_list,
        )

    async def close(self) -> None:
        await self.conversations.close()
        await self.vector_store.close()
        await self.kv.close()


def build_email_service(settings: Settings) -> EmailService:
    if settings.smtp_user and settings.smtp_password:
        return SMTPEmailService(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.email_from,
            use_ssl=settings.smtp_use_ssl,
            subject=settings.email_subject,
            code_ttl_minutes=settings.code_ttl_minutes,
        )
    logger.warning("SMTP credentials not configured; emails will only be logged")
    return LoggingEmailService(
        subject=settings.email_subject, code_ttl_minutes=settings.code_ttl_minutes,
    )


def build_rag_engine(settings: Settings, vector_store: VectorStore) -> RAGEngine:
    limiter = ProviderLimiter(
        max_concurrent=settings.max_concurrent_llm, timeout=settings.provider_timeout,
    )
    return RAGEngine(
        vector_store=vector_store,
        embeddings=EmbeddingService(settings.get_embedding_config(), limiter=limiter),
        llm=LLMService(settings.get_default_llm_config(), limiter=limiter),
        collection_name=settings.collection_name,
        top_k=settings.retrieval_top_k,
        batch_size=settings.ingest_batch_size,
        batch_delay=settings.ingest_batch_delay,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )


def build_services(settings: Settings) -> Services:
    kv = create_kv_store(settings.store_type, settings.redis_url)
    credentials = CredentialStore(kv, cascade_admin_removal=settings.cascade_admin_removal)
    email = build_email_service(settings)
    vector_store = create_vector_store(settings.vector_store_type, settings.pg_uri)

    return Services(
        settings=settings,
        kv=kv,
        credentials=credentials,
        email=email,
        auth=AuthService(
            credentials,
            email,
            jwt_secret=settings.jwt_secret,
            jwt_algorithm=settings.jwt_algorithm,
            token_ttl_seconds=settings.token_ttl_hours * 3600,
            code_ttl_seconds=settings.code_ttl_minutes * 60,
            bcrypt_rounds=settings.bcrypt_rounds,
        ),
        quota=QuotaService(
            kv,
            credentials,
            daily_limit=settings.daily_query_limit,
            retention_days=settings.quota_retention_days,
        ),
        conversations=create_conversation_store(
            settings.store_type, kv, settings.conversation_ttl,
        ),
        vector_store=vector_store,
        rag=build_rag_engine(settings, vector_store),
        feedback=FeedbackService(
            kv, credentials, email, max_reports=settings.feedback_max_reports,
        ),
    )
