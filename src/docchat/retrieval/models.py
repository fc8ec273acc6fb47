"""Domain models for chunks, vector-store entries and search hits."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChunkMetadata(BaseModel):
    """Positional metadata attached to every chunk.

    Attributes
    ----------
    document_id:
        Identifier of the owning document.
    chunk_index:
        Ordinal position of the chunk within the document (0-based).
    start_char / end_char:
        Offsets of the chunk in the cleaned document text.
    document_name:
        Original file name, used to label sources in prompts.
    section:
        Label of the section the chunk starts in (only when the chunker
        runs with ``include_metadata``).
    """

    model_config = ConfigDict(extra="allow")

    document_id: str
    chunk_index: int
    start_char: int
    end_char: int
    document_name: str
    section: str | None = None


class TextChunk(BaseModel):
    """A bounded slice of a document's text — the unit of retrieval."""

    id: str
    content: str
    metadata: ChunkMetadata
    embedding: list[float] | None = None

    @property
    def document_id(self) -> str:
        return self.metadata.document_id

    def with_embedding(self, embedding: list[float]) -> TextChunk:
        """Return a copy of this chunk carrying *embedding*."""
        return self.model_copy(update={"embedding": list(embedding)})

    def without_embedding(self) -> TextChunk:
        return self.model_copy(update={"embedding": None})


class VectorStoreEntry(BaseModel):
    """One embedded chunk held by a vector store."""

    id: str
    document_id: str
    content: str
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_chunk(cls, chunk: TextChunk) -> VectorStoreEntry:
        if chunk.embedding is None:
            raise ValueError(f"Chunk {chunk.id} has no embedding")
        return cls(
            id=chunk.id,
            document_id=chunk.metadata.document_id,
            content=chunk.content,
            embedding=chunk.embedding,
            metadata=chunk.metadata.model_dump(exclude_none=True),
        )

    def to_chunk(self) -> TextChunk:
        """Rebuild the (embedding-less) :class:`TextChunk` for this entry."""
        meta = {"document_id": self.document_id, "document_name": "unknown", **self.metadata}
        meta.setdefault("chunk_index", 0)
        meta.setdefault("start_char", 0)
        meta.setdefault("end_char", len(self.content))
        return TextChunk(id=self.id, content=self.content, metadata=ChunkMetadata(**meta))


class SearchHit(BaseModel):
    """A stored entry together with its similarity to the query."""

    entry: VectorStoreEntry
    score: float

    def __str__(self) -> str:  # noqa: D105
        return f"[{self.entry.id} {self.score:.3f}] {self.entry.content[:120]}…"


class StoreSnapshot(BaseModel):
    """Serialisable image of a whole vector store (export / import payload)."""

    version: int = 1
    dimension: int | None = None
    entries: list[VectorStoreEntry] = Field(default_factory=list)
