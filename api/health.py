"""Liveness / readiness endpoint."""

from fastapi import APIRouter, Depends

from api.deps import get_services
from services.container import Services

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(services: Services = Depends(get_services)):
    store_ok = await services.kv.ping()
    return {
        "status": "healthy" if store_ok else "degraded",
        "store": "ok" if store_ok else "unreachable",
        "model": services.settings.chat_model,
        "collection": services.rag.collection_name,
    }
