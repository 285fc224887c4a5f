"""Retrieval-augmented tutoring engine.

Two pipelines share one embedding model and one vector collection:

- **Ingestion** (operator-driven): directory → text → chunks → embeddings →
  points in the collection.  Not transactional; batches already upserted
  stay when a later batch fails.
- **Query** (per student message): embed the prompt, retrieve the top-K
  chunks, wrap them in a background-context block, and ask the chat model
  with the prior turns as history.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Any

from config.prompts.tutor import (
    CONTEXT_BLOCK_TEMPLATE,
    CONTEXT_SEPARATOR,
    TUTOR_SYSTEM_PROMPT,
)
from errors import GenerationError, IngestionError
from models.conversation import ChatResult, HistorySummary, Turn, TurnRole
from models.document import CollectionInfo, DocumentChunk, SearchHit, VectorPoint
from services.document_processor import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_OVERLAP_CHARS,
    process_directory,
)
from services.embedding_service import EmbeddingService
from services.llm_service import LLMService
from services.vector_store import COSINE, VectorStore

logger = logging.getLogger(__name__)


class RAGEngine:
    """Owns one vector collection plus the embedding and chat services."""

    def __init__(
        self,
        vector_store: VectorStore,
        embeddings: EmbeddingService,
        llm: LLMService,
        collection_name: str = "icslearningtechv2",
        top_k: int = 3,
        batch_size: int = 10,
        batch_delay: float = 0.1,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_OVERLAP_CHARS,
        system_prompt: str = TUTOR_SYSTEM_PROMPT,
    ) -> None:
        self._store = vector_store
        self._embeddings = embeddings
        self._llm = llm
        self._collection = collection_name
        self._top_k = top_k
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._system_prompt = system_prompt

    @property
    def collection_name(self) -> str:
        return self._collection

    async def ensure_collection(self) -> bool:
        return await self._store.ensure_collection(
            self._collection, self._embeddings.dimension, COSINE,
        )

    # ── Ingestion ────────────────────────────────────────────

    async def upsert_documents(self, chunks: list[DocumentChunk]) -> dict[str, Any]:
        """Embed and upsert *chunks* in batches.

        Raises:
            ValueError: *chunks* is empty.
            IngestionError: an embedding or upsert call failed.  Batches
                committed before the failure are kept.
        """
        if not chunks:
            raise ValueError("No documents provided for upsert")

        try:
            await self.ensure_collection()
        except Exception as exc:
            raise IngestionError(f"Failed to prepare collection {self._collection}: {exc}") from exc

        total = 0
        for start in range(0, len(chunks), self._batch_size):
            batch = chunks[start:start + self._batch_size]
            try:
                vectors = await self._embeddings.embed([c.text for c in batch])
                points = [
                    VectorPoint(id=str(uuid.uuid4()), vector=vector, payload=chunk.payload())
                    for chunk, vector in zip(batch, vectors)
                ]
                await self._store.upsert(self._collection, points)
            except Exception as exc:
                logger.error(
                    "Failed to upsert batch starting at %d (%d committed): %s",
                    start, total, exc,
                )
                raise IngestionError(
                    f"Batch at offset {start} failed after {total} documents: {exc}"
                ) from exc

            total += len(points)
            logger.debug("Upserted batch %d-%d", start, start + len(batch) - 1)
            if start + self._batch_size < len(chunks):
                await asyncio.sleep(self._batch_delay)

        logger.info("Successfully upserted %d documents into %s", total, self._collection)
        return {"status": "success", "count": total}

    async def upsert_from_directory(self, root: str | Path, recursive: bool = True) -> dict[str, Any]:
        """Ingest every supported file under *root*."""
        chunks = await asyncio.to_thread(
            process_directory, root, recursive, self._chunk_size, self._chunk_overlap,
        )
        if not chunks:
            logger.warning("No documents found to upsert in %s", root)
            return {"status": "success", "count": 0}
        logger.info("Found %d chunks to upsert from %s", len(chunks), root)
        return await self.upsert_documents(chunks)

    async def upsert_texts(self, texts: list[str]) -> dict[str, Any]:
        """Ingest raw strings without chunking."""
        chunks = [
            DocumentChunk(text=t, metadata={"source": "direct_input"})
            for t in texts if t and t.strip()
        ]
        return await self.upsert_documents(chunks)

    async def collection_info(self) -> CollectionInfo | None:
        return await self._store.collection_info(self._collection)

    async def delete_collection(self) -> bool:
        return await self._store.delete_collection(self._collection)

    # ── Retrieval ────────────────────────────────────────────

    async def _retrieve(self, query: str, k: int) -> list[SearchHit]:
        try:
            vector = await self._embeddings.embed_one(query)
        except Exception as exc:
            raise GenerationError("embedding", str(exc)) from exc
        try:
            return await self._store.search(self._collection, vector, k)
        except Exception as exc:
            raise GenerationError("retrieval", str(exc)) from exc

    async def search_similar_texts(self, query: str, k: int | None = None) -> list[dict[str, Any]]:
        """Top-*k* chunks for *query* with their scores, best first."""
        hits = await self._retrieve(query, self._top_k if k is None else k)
        return [
            {
                "text": hit.text,
                "score": hit.score,
                "metadata": {
                    "fileName": hit.payload.get("fileName"),
                    "fileType": hit.payload.get("fileType"),
                    "chunkIndex": hit.payload.get("chunkIndex"),
                },
            }
            for hit in hits
        ]

    @staticmethod
    def build_augmented_prompt(prompt: str, contexts: list[str]) -> str:
        """Wrap retrieved material in a delimited background-context block."""
        if not contexts:
            return prompt
        return CONTEXT_BLOCK_TEMPLATE.format(
            context=CONTEXT_SEPARATOR.join(contexts),
            prompt=prompt,
        )

    # ── Query ────────────────────────────────────────────────

    async def send_message(self, prompt: str, history: list[Turn] | None = None) -> ChatResult:
        """Answer *prompt* given the prior turns.

        The stored history receives the student's original prompt, never the
        context-augmented one.

        Raises:
            GenerationError: embedding, retrieval or chat call failed.
        """
        history = list(history or [])
        started = time.monotonic()

        hits = await self._retrieve(prompt, self._top_k)
        contexts = [hit.text.strip() for hit in hits if hit.text.strip()]
        augmented = self.build_augmented_prompt(prompt, contexts)

        try:
            response = await self._llm.chat(history, augmented, system=self._system_prompt)
        except Exception as exc:
            logger.error(
                "Chat generation failed (prompt_len=%d, history_len=%d): %s",
                len(prompt), len(history), exc,
            )
            raise GenerationError("chat", str(exc)) from exc

        updated = history + [
            Turn(role=TurnRole.USER, text=prompt),
            Turn(role=TurnRole.MODEL, text=response),
        ]
        logger.info(
            "Response generated: prompt_len=%d response_len=%d history_len=%d "
            "context_chunks=%d latency_ms=%d",
            len(prompt), len(response), len(updated), len(contexts),
            int((time.monotonic() - started) * 1000),
        )
        return ChatResult(
            response=response,
            updated_history=updated,
            context_used=bool(contexts),
            context_chunks=len(contexts),
        )

    @staticmethod
    def summarize_history(history: list[Turn]) -> HistorySummary:
        return HistorySummary(
            message_count=len(history),
            user_messages=sum(1 for t in history if t.role == TurnRole.USER),
            model_messages=sum(1 for t in history if t.role == TurnRole.MODEL),
            total_characters=sum(len(t.text) for t in history),
        )
