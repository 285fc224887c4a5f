"""Document models — ingested chunks, vector points and search hits."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ChunkMetadata(BaseModel):
    file_name: str
    file_path: str
    chunk_index: int
    total_chunks: int
    file_type: str

    def to_payload(self) -> dict[str, Any]:
        """Payload keys as stored alongside each vector."""
        return {
            "fileName": self.file_name,
            "filePath": self.file_path,
            "chunkIndex": self.chunk_index,
            "totalChunks": self.total_chunks,
            "fileType": self.file_type,
        }


class DocumentChunk(BaseModel):
    """A chunk of text awaiting embedding.

    ``metadata`` is a :class:`ChunkMetadata` for file-derived chunks and a
    free-form dict for directly ingested text.
    """

    text: str
    metadata: ChunkMetadata | dict[str, Any] = Field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        meta = (
            self.metadata.to_payload()
            if isinstance(self.metadata, ChunkMetadata)
            else dict(self.metadata)
        )
        return {"text": self.text, **meta}


class VectorPoint(BaseModel):
    id: str
    vector: list[float]
    payload: dict[str, Any] = Field(default_factory=dict)


class SearchHit(BaseModel):
    """A point returned from similarity search, best first."""

    id: str
    score: float
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        return str(self.payload.get("text", ""))


class CollectionInfo(BaseModel):
    name: str
    dimension: int
    distance: str
    points_count: int
