"""FastAPI entry point for the ICS TA Bot service."""

import asyncio
import logging
from contextlib import asynccontextmanager

import litellm
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.admin import router as admin_router
from api.auth import router as auth_router
from api.chat import router as chat_router
from api.feedback import router as feedback_router
from api.health import router as health_router
from config.settings import get_settings
from services.concurrency import ConcurrencyLimitMiddleware
from services.container import build_services
from services.conversation_store import periodic_cleanup
from services.middleware import RequestIdFilter, RequestIdMiddleware

logger = logging.getLogger(__name__)

settings = get_settings()

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(RequestIdFilter())


configure_logging(settings.log_level)

# ── Global LiteLLM settings ──────────────────────────────────
litellm.request_timeout = settings.provider_timeout


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle — start/stop shared resources."""
    services = build_services(settings)
    await services.start()
    app.state.services = services

    cleanup_task = asyncio.create_task(
        periodic_cleanup(services.conversations, interval_seconds=300)
    )
    logger.info(
        "ICS TA Bot started (store=%s, vectors=%s, model=%s)",
        settings.store_type, settings.vector_store_type, settings.chat_model,
    )

    yield

    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    await services.close()
    logger.info("ICS TA Bot stopped")


app = FastAPI(
    title="ICS TA Bot",
    description="Retrieval-augmented teaching assistant for introductory computer science",
    version="1.0.0",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ─────────────────────────
# Order matters: CORS → RequestId → ConcurrencyLimit → route handler
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(ConcurrencyLimitMiddleware, max_concurrent=settings.max_concurrent_queries)

# ── Register routers ────────────────────────────────────────
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(chat_router)
app.include_router(feedback_router)
app.include_router(admin_router)


if __name__ == "__main__":
    if settings.debug:
        # Development: single worker with reload
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            reload=True,
        )
    else:
        # Production: prefer gunicorn main:app -c deploy/gunicorn.conf.py
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            workers=4,
            timeout_keep_alive=120,
        )
