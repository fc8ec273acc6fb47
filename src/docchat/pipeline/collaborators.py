"""Contracts for the collaborators the pipeline drives, plus in-memory versions.

The pipeline does not own document records or chunk persistence.  It only
needs somewhere to report status transitions and somewhere to read back /
write chunk rows.  The in-memory implementations below back the HTTP app
and the test-suite; a database-backed application supplies its own.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol, runtime_checkable

from docchat.pipeline.models import DocumentRecord, DocumentStatus, StoredChunk
from docchat.retrieval.models import ChunkMetadata, TextChunk

logger = logging.getLogger(__name__)


@runtime_checkable
class DocumentStatusStore(Protocol):
    """Receives the status transitions of documents under ingestion."""

    async def set_status(self, document_id: str, status: DocumentStatus) -> None: ...

    async def get_status(self, document_id: str) -> DocumentStatus | None: ...

    async def count(self) -> int: ...


@runtime_checkable
class ChunkRepository(Protocol):
    """Opaque persistence for chunk rows."""

    async def load_all(self) -> list[StoredChunk]: ...

    async def save(self, chunks: list[StoredChunk]) -> None: ...

    async def delete_by_document(self, document_id: str) -> int: ...

    async def count(self) -> int: ...


# ── Row conversion ─────────────────────────────────────────────────────


def to_stored_chunk(chunk: TextChunk) -> StoredChunk:
    """Serialise *chunk* into a persistence row."""
    return StoredChunk(
        id=chunk.id,
        document_id=chunk.metadata.document_id,
        document_name=chunk.metadata.document_name,
        chunk_index=chunk.metadata.chunk_index,
        content=chunk.content,
        metadata=chunk.metadata.model_dump_json(exclude_none=True),
        embedding=json.dumps(chunk.embedding or []),
    )


def from_stored_chunk(row: StoredChunk) -> TextChunk:
    """Rebuild a :class:`TextChunk` from a persistence row.

    Raises ``ValueError`` when the JSON columns are malformed.
    """
    meta = json.loads(row.metadata or "{}")
    embedding = json.loads(row.embedding or "[]")
    if not isinstance(meta, dict):
        raise ValueError(f"metadata of chunk {row.id} is not an object")
    if not isinstance(embedding, list):
        raise ValueError(f"embedding of chunk {row.id} is not an array")

    meta.setdefault("chunk_index", row.chunk_index)
    meta.setdefault("start_char", 0)
    meta.setdefault("end_char", len(row.content))
    meta["document_id"] = row.document_id
    meta["document_name"] = row.document_name
    return TextChunk(
        id=row.id,
        content=row.content,
        metadata=ChunkMetadata(**meta),
        embedding=[float(x) for x in embedding] or None,
    )


# ── In-memory implementations ─────────────────────────────────────────


class InMemoryDocumentRegistry:
    """Keeps document records and their statuses in a dict."""

    def __init__(self) -> None:
        self._records: dict[str, DocumentRecord] = {}
        self._statuses: dict[str, DocumentStatus] = {}

    def register(self, record: DocumentRecord) -> None:
        self._records[record.id] = record

    def get(self, document_id: str) -> DocumentRecord | None:
        return self._records.get(document_id)

    def remove(self, document_id: str) -> None:
        self._records.pop(document_id, None)
        self._statuses.pop(document_id, None)

    async def set_status(self, document_id: str, status: DocumentStatus) -> None:
        previous = self._statuses.get(document_id)
        self._statuses[document_id] = status
        logger.info("Document %s: %s -> %s", document_id,
                    previous.value if previous else "new", status.value)

    async def get_status(self, document_id: str) -> DocumentStatus | None:
        return self._statuses.get(document_id)

    async def count(self) -> int:
        return len(set(self._records) | set(self._statuses))


class InMemoryChunkRepository:
    """Keeps chunk rows in insertion order."""

    def __init__(self, rows: list[StoredChunk] | None = None) -> None:
        self._rows: dict[str, StoredChunk] = {row.id: row for row in rows or []}

    async def load_all(self) -> list[StoredChunk]:
        return list(self._rows.values())

    async def save(self, chunks: list[StoredChunk]) -> None:
        for row in chunks:
            self._rows[row.id] = row

    async def delete_by_document(self, document_id: str) -> int:
        doomed = [key for key, row in self._rows.items() if row.document_id == document_id]
        for key in doomed:
            del self._rows[key]
        return len(doomed)

    async def count(self) -> int:
        return len(self._rows)
