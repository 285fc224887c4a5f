"""Embedding provider wrapper powered by LiteLLM.

Ingestion and querying must embed with the same model, otherwise similarity
search compares vectors from unrelated spaces.  Both paths therefore share
one :class:`EmbeddingService` instance, and every returned vector is checked
against the configured dimension.
"""

from __future__ import annotations

import logging
from typing import Any

import litellm

from config.llm_config import EmbeddingConfig
from services.concurrency import ProviderLimiter

logger = logging.getLogger(__name__)


def _vector_of(item: Any) -> list[float]:
    if isinstance(item, dict):
        return list(item["embedding"])
    return list(item.embedding)


class EmbeddingService:
    """Batch text → vector embedding via ``litellm.aembedding``."""

    def __init__(self, config: EmbeddingConfig, limiter: ProviderLimiter | None = None) -> None:
        self._config = config
        self._limiter = limiter or ProviderLimiter()

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def dimension(self) -> int:
        return self._config.dimension

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in one provider call, preserving order."""
        if not texts:
            return []
        resp = await self._limiter.call(
            litellm.aembedding,
            input=texts,
            **self._config.to_litellm_kwargs(),
        )
        vectors = [_vector_of(item) for item in resp.data]
        if len(vectors) != len(texts):
            raise ValueError(
                f"Embedding provider returned {len(vectors)} vectors for {len(texts)} texts"
            )
        for vec in vectors:
            if len(vec) != self.dimension:
                raise ValueError(
                    f"Embedding dimension {len(vec)} does not match configured "
                    f"{self.dimension} for model {self.model}"
                )
        logger.debug("Embedded %d texts with %s", len(texts), self.model)
        return vectors

    async def embed_one(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]
