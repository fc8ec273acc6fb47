"""In-process implementation of the vector-store abstraction.

Entries live in a plain ``dict`` keyed by chunk id.  Writers never mutate
the published mapping: every mutation copies it, applies the change and
publishes the new mapping with a single reference assignment while
holding a lock.  Readers grab the current reference once and work on that
snapshot, so a search running next to an insert or delete never observes
a half-applied change.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from pydantic import ValidationError

from docchat.errors import DimensionMismatchError, StoreSerializationError
from docchat.retrieval.base import VectorStoreBase
from docchat.retrieval.models import SearchHit, StoreSnapshot, TextChunk, VectorStoreEntry
from docchat.retrieval.similarity import cosine_similarity

logger = logging.getLogger(__name__)


class InMemoryVectorStore(VectorStoreBase):
    """Cosine-similarity vector store held entirely in memory.

    Parameters
    ----------
    collection_name:
        Logical name, only used in log messages.
    """

    def __init__(self, collection_name: str = "documents") -> None:
        super().__init__(collection_name)
        self._entries: dict[str, VectorStoreEntry] = {}
        self._dimension: int | None = None
        self._lock = threading.Lock()

    @property
    def dimension(self) -> int | None:
        """Vector length shared by every entry (``None`` while empty)."""
        return self._dimension

    # -- writes ---------------------------------------------------------------

    def add_entries(self, chunks: Iterable[TextChunk]) -> int:
        new_entries: list[VectorStoreEntry] = []
        for chunk in chunks:
            if not chunk.embedding:
                logger.warning("Chunk %s has no embedding, skipping", chunk.id)
                continue
            new_entries.append(VectorStoreEntry.from_chunk(chunk))

        if not new_entries:
            return 0

        with self._lock:
            dimension = self._dimension if self._entries else None
            for entry in new_entries:
                if dimension is None:
                    dimension = len(entry.embedding)
                elif len(entry.embedding) != dimension:
                    raise DimensionMismatchError(expected=dimension, actual=len(entry.embedding))

            updated = dict(self._entries)
            for entry in new_entries:
                updated[entry.id] = entry
            self._entries = updated
            self._dimension = dimension

        logger.debug("Added %d entries to %r (total=%d)", len(new_entries), self.collection_name, len(updated))
        return len(new_entries)

    def delete_by_document_id(self, document_id: str) -> int:
        with self._lock:
            kept = {k: e for k, e in self._entries.items() if e.document_id != document_id}
            removed = len(self._entries) - len(kept)
            self._publish(kept)
        if removed:
            logger.info("Deleted %d entries of document %s", removed, document_id)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._publish({})

    def import_(self, payload: str) -> None:
        try:
            snapshot = StoreSnapshot.model_validate_json(payload)
        except ValidationError as exc:
            raise StoreSerializationError(f"Invalid vector store snapshot: {exc}") from exc

        dimension: int | None = None
        entries: dict[str, VectorStoreEntry] = {}
        for entry in snapshot.entries:
            if dimension is None:
                dimension = len(entry.embedding)
            elif len(entry.embedding) != dimension:
                raise DimensionMismatchError(expected=dimension, actual=len(entry.embedding))
            entries[entry.id] = entry

        with self._lock:
            self._entries = entries
            self._dimension = dimension
        logger.info("Imported %d entries into %r", len(entries), self.collection_name)

    def _publish(self, entries: dict[str, VectorStoreEntry]) -> None:
        # Caller holds the lock.
        self._entries = entries
        if not entries:
            self._dimension = None

    # -- reads ----------------------------------------------------------------

    def search(
        self,
        query_embedding: list[float],
        *,
        limit: int = 5,
        document_id: str | None = None,
        similarity_threshold: float = 0.5,
    ) -> list[SearchHit]:
        entries = self._entries
        dimension = self._dimension
        if not entries or limit <= 0:
            return []
        if dimension is not None and len(query_embedding) != dimension:
            raise DimensionMismatchError(expected=dimension, actual=len(query_embedding))

        scored: list[SearchHit] = []
        for entry in entries.values():
            if document_id is not None and entry.document_id != document_id:
                continue
            score = cosine_similarity(query_embedding, entry.embedding)
            if score < similarity_threshold:
                continue
            scored.append(SearchHit(entry=entry, score=score))

        # sorted() is stable: equal scores keep insertion order.
        scored = sorted(scored, key=lambda hit: hit.score, reverse=True)
        return scored[:limit]

    def get_by_document_id(self, document_id: str) -> list[VectorStoreEntry]:
        return [e for e in self._entries.values() if e.document_id == document_id]

    def get_all(self) -> list[VectorStoreEntry]:
        return list(self._entries.values())

    def count(self) -> int:
        return len(self._entries)

    def export(self) -> str:
        entries = self._entries
        snapshot = StoreSnapshot(
            dimension=self._dimension if entries else None,
            entries=list(entries.values()),
        )
        return snapshot.model_dump_json(indent=2)
