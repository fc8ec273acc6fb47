"""Records exchanged between the pipeline and its callers."""

from __future__ import annotations

import asyncio
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from docchat.errors import ExtractionCause
from docchat.ingestion.extractor import FileType
from docchat.retrieval.models import TextChunk


class DocumentStatus(str, Enum):
    """Pipeline status of a document: ``processing → ready | error``."""

    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class DocumentRecord(BaseModel):
    """An uploaded document handed to the pipeline for ingestion.

    Exactly one of ``file_path`` / ``content`` supplies the bytes.
    """

    id: str
    original_name: str
    file_type: FileType
    file_size: int = Field(ge=0)
    file_path: Path | None = None
    content: bytes | None = Field(default=None, repr=False)

    @model_validator(mode="after")
    def _check_source(self) -> DocumentRecord:
        if (self.file_path is None) == (self.content is None):
            raise ValueError("exactly one of file_path or content must be provided")
        return self

    async def read_bytes(self) -> bytes:
        if self.content is not None:
            return self.content
        assert self.file_path is not None
        return await asyncio.to_thread(self.file_path.read_bytes)


class StoredChunk(BaseModel):
    """A chunk row as persisted by the chunk repository.

    ``metadata`` and ``embedding`` are JSON strings; an un-embedded chunk is
    stored with ``"[]"``.
    """

    id: str
    document_id: str
    document_name: str
    chunk_index: int
    content: str
    metadata: str = "{}"
    embedding: str = "[]"


class IngestionReport(BaseModel):
    """Outcome of one :meth:`RAGPipeline.process_document` run."""

    document_id: str
    status: DocumentStatus
    chunk_count: int = 0
    embedded_count: int = 0
    used_fallback: bool = False
    extraction_cause: ExtractionCause | None = None
    error: str | None = None
    processing_time: float = 0.0


class QueryResult(BaseModel):
    """Answer to one question.

    Attributes
    ----------
    answer:
        Natural-language answer.
    sources:
        Chunks the answer was built from, most relevant first (without
        embeddings).
    confidence:
        Heuristic score in ``[0, 1]``; see
        :func:`~docchat.generation.answer.estimate_confidence`.
    processing_time:
        Wall-clock milliseconds spent answering.
    """

    answer: str
    sources: list[TextChunk] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    processing_time: float = 0.0


class PipelineStats(BaseModel):
    total_documents: int
    total_chunks: int
    average_chunks_per_document: float
    total_embeddings: int
