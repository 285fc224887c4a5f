"""Vector index — collections of embedded document chunks.

Provides an abstract interface with two implementations:

- ``InMemoryVectorStore``: numpy cosine similarity, for tests and
  single-process development.
- ``PgVectorStore``: PostgreSQL + pgvector through an asyncpg pool, for
  deployments.  Uses the ``<=>`` cosine-distance operator.

Only the cosine metric is supported; a collection's dimension is fixed when
it is created and every upserted / queried vector must match it.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import numpy as np

from models.document import CollectionInfo, SearchHit, VectorPoint

logger = logging.getLogger(__name__)

COSINE = "cosine"


class VectorStore(ABC):
    """Abstract vector index — implement for different backends."""

    @abstractmethod
    async def ensure_collection(self, name: str, dimension: int, distance: str = COSINE) -> bool:
        """Create *name* if absent.  Returns True if it was created.

        Raises:
            ValueError: the collection exists with a different dimension or
                metric, or the metric is unsupported.
        """
        ...

    @abstractmethod
    async def upsert(self, name: str, points: list[VectorPoint]) -> int: ...

    @abstractmethod
    async def search(self, name: str, vector: list[float], k: int = 3) -> list[SearchHit]:
        """Return the *k* most similar points, best first."""
        ...

    @abstractmethod
    async def collection_info(self, name: str) -> CollectionInfo | None: ...

    @abstractmethod
    async def delete_collection(self, name: str) -> bool: ...

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None


def _check_distance(distance: str) -> None:
    if distance.lower() != COSINE:
        raise ValueError(f"Unsupported distance metric: {distance}")


# ── In-Memory Implementation ────────────────────────────────


@dataclass
class _Collection:
    dimension: int
    ids: list[str] = field(default_factory=list)
    vectors: list[np.ndarray] = field(default_factory=list)
    payloads: list[dict] = field(default_factory=list)


class InMemoryVectorStore(VectorStore):
    """Brute-force cosine search over numpy arrays."""

    def __init__(self) -> None:
        self._collections: dict[str, _Collection] = {}

    async def ensure_collection(self, name: str, dimension: int, distance: str = COSINE) -> bool:
        _check_distance(distance)
        existing = self._collections.get(name)
        if existing is not None:
            if existing.dimension != dimension:
                raise ValueError(
                    f"Collection {name} has dimension {existing.dimension}, expected {dimension}"
                )
            return False
        self._collections[name] = _Collection(dimension=dimension)
        logger.info("Created collection %s (dim=%d, cosine)", name, dimension)
        return True

    def _get(self, name: str) -> _Collection:
        coll = self._collections.get(name)
        if coll is None:
            raise KeyError(f"Collection not found: {name}")
        return coll

    async def upsert(self, name: str, points: list[VectorPoint]) -> int:
        coll = self._get(name)
        index = {pid: i for i, pid in enumerate(coll.ids)}
        for point in points:
            if len(point.vector) != coll.dimension:
                raise ValueError(
                    f"Vector dimension {len(point.vector)} does not match collection "
                    f"{name} ({coll.dimension})"
                )
            vec = np.asarray(point.vector, dtype=np.float64)
            if point.id in index:
                i = index[point.id]
                coll.vectors[i] = vec
                coll.payloads[i] = dict(point.payload)
            else:
                index[point.id] = len(coll.ids)
                coll.ids.append(point.id)
                coll.vectors.append(vec)
                coll.payloads.append(dict(point.payload))
        return len(points)

    async def search(self, name: str, vector: list[float], k: int = 3) -> list[SearchHit]:
        coll = self._get(name)
        if len(vector) != coll.dimension:
            raise ValueError(
                f"Query dimension {len(vector)} does not match collection {name} ({coll.dimension})"
            )
        if not coll.ids or k <= 0:
            return []

        matrix = np.vstack(coll.vectors)
        query = np.asarray(vector, dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)

        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:k]
        return [
            SearchHit(id=coll.ids[i], score=float(scores[i]), payload=dict(coll.payloads[i]))
            for i in order
        ]

    async def collection_info(self, name: str) -> CollectionInfo | None:
        coll = self._collections.get(name)
        if coll is None:
            return None
        return CollectionInfo(
            name=name, dimension=coll.dimension, distance=COSINE, points_count=len(coll.ids),
        )

    async def delete_collection(self, name: str) -> bool:
        removed = self._collections.pop(name, None) is not None
        if removed:
            logger.info("Deleted collection: %s", name)
        return removed


# ── PostgreSQL / pgvector Implementation ─────────────────────


def _vector_literal(vector: list[float]) -> str:
    return "[" + ",".join(repr(float(x)) for x in vector) + "]"


class PgVectorStore(VectorStore):
    """pgvector-backed index using an asyncpg connection pool.

    Vectors are passed as text literals and cast with ``::vector`` so no
    codec registration is needed.
    """

    def __init__(self, pg_uri: str, min_size: int = 2, max_size: int = 10) -> None:
        self._pg_uri = pg_uri
        self._min_size = min_size
        self._max_size = max_size
        self._pool = None  # asyncpg.Pool

    async def initialize(self) -> None:
        """Create the connection pool and the bookkeeping tables (called once at startup)."""
        if self._pool is not None:
            return
        import asyncpg

        self._pool = await asyncpg.create_pool(
            dsn=self._pg_uri,
            min_size=self._min_size,
            max_size=self._max_size,
            max_inactive_connection_lifetime=300,
        )
        async with self._pool.acquire() as conn:
            await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
            await conn.execute(
                "CREATE TABLE IF NOT EXISTS rag_collections ("
                " name TEXT PRIMARY KEY,"
                " dimension INTEGER NOT NULL,"
                " distance TEXT NOT NULL)"
            )
            await conn.execute(
                "CREATE TABLE IF NOT EXISTS rag_points ("
                " collection TEXT NOT NULL REFERENCES rag_collections(name) ON DELETE CASCADE,"
                " id UUID NOT NULL,"
                " embedding vector NOT NULL,"
                " payload JSONB NOT NULL DEFAULT '{}'::jsonb,"
                " PRIMARY KEY (collection, id))"
            )
        logger.info(
            "pgvector store pool created (min=%d, max=%d)", self._min_size, self._max_size,
        )

    def _require_pool(self):
        if self._pool is None:
            raise RuntimeError("PgVectorStore not initialized, call initialize() first")
        return self._pool

    async def _dimension(self, conn, name: str) -> int | None:
        return await conn.fetchval(
            "SELECT dimension FROM rag_collections WHERE name = $1", name,
        )

    async def ensure_collection(self, name: str, dimension: int, distance: str = COSINE) -> bool:
        _check_distance(distance)
        pool = self._require_pool()
        async with pool.acquire() as conn:
            existing = await self._dimension(conn, name)
            if existing is not None:
                if existing != dimension:
                    raise ValueError(
                        f"Collection {name} has dimension {existing}, expected {dimension}"
                    )
                logger.info("Collection %s already exists", name)
                return False
            await conn.execute(
                "INSERT INTO rag_collections (name, dimension, distance) VALUES ($1, $2, $3)"
                " ON CONFLICT (name) DO NOTHING",
                name, dimension, COSINE,
            )
        logger.info("Created collection %s (dim=%d, cosine)", name, dimension)
        return True

    async def upsert(self, name: str, points: list[VectorPoint]) -> int:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            dimension = await self._dimension(conn, name)
            if dimension is None:
                raise KeyError(f"Collection not found: {name}")
            for point in points:
                if len(point.vector) != dimension:
                    raise ValueError(
                        f"Vector dimension {len(point.vector)} does not match collection "
                        f"{name} ({dimension})"
                    )
            rows = [
                (name, p.id, _vector_literal(p.vector), json.dumps(p.payload))
                for p in points
            ]
            async with conn.transaction():
                await conn.executemany(
                    "INSERT INTO rag_points (collection, id, embedding, payload)"
                    " VALUES ($1, $2::uuid, $3::vector, $4::jsonb)"
                    " ON CONFLICT (collection, id) DO UPDATE"
                    " SET embedding = EXCLUDED.embedding, payload = EXCLUDED.payload",
                    rows,
                )
        return len(points)

    async def search(self, name: str, vector: list[float], k: int = 3) -> list[SearchHit]:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            dimension = await self._dimension(conn, name)
            if dimension is None:
                raise KeyError(f"Collection not found: {name}")
            if len(vector) != dimension:
                raise ValueError(
                    f"Query dimension {len(vector)} does not match collection {name} ({dimension})"
                )
            rows = await conn.fetch(
                "SELECT id::text AS id, payload::text AS payload,"
                " 1 - (embedding <=> $2::vector) AS score"
                " FROM rag_points WHERE collection = $1"
                " ORDER BY embedding <=> $2::vector LIMIT $3",
                name, _vector_literal(vector), k,
            )
        return [
            SearchHit(id=r["id"], score=float(r["score"]), payload=json.loads(r["payload"]))
            for r in rows
        ]

    async def collection_info(self, name: str) -> CollectionInfo | None:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT c.dimension, c.distance, COUNT(p.id) AS points"
                " FROM rag_collections c LEFT JOIN rag_points p ON p.collection = c.name"
                " WHERE c.name = $1 GROUP BY c.dimension, c.distance",
                name,
            )
        if row is None:
            return None
        return CollectionInfo(
            name=name,
            dimension=row["dimension"],
            distance=row["distance"],
            points_count=row["points"],
        )

    async def delete_collection(self, name: str) -> bool:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            result = await conn.execute("DELETE FROM rag_collections WHERE name = $1", name)
        removed = result.endswith(" 1")
        if removed:
            logger.info("Deleted collection: %s", name)
        return removed

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("pgvector store pool closed")


def create_vector_store(store_type: str, pg_uri: str = "") -> VectorStore:
    if store_type == "pgvector":
        return PgVectorStore(pg_uri)
    return InMemoryVectorStore()
