"""Semantic retriever — embed a question and search the vector store.

This module is the retrieval entry point used by the pipeline
orchestrator.  It is decoupled from any particular store backend so that
evaluation scripts and tests can use it directly.

Usage::

    from docchat.retrieval.retriever import SemanticRetriever

    retriever = SemanticRetriever(store, embedder)
    hits = await retriever.search("What does the contract say about fees?", k=5)
    for hit in hits:
        print(hit.entry.metadata["document_name"], hit.score)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from docchat.config import settings
from docchat.retrieval.base import VectorStoreBase
from docchat.retrieval.models import SearchHit

if TYPE_CHECKING:
    from docchat.ingestion.embedder import Embedder

logger = logging.getLogger(__name__)


class SemanticRetriever:
    """High-level retriever that wraps any :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        A concrete vector-store backend.
    embedder:
        Embedder used for queries; it must use the same model as the one
        that produced the stored vectors.
    default_k:
        Default number of results returned by :meth:`search`.
    score_threshold:
        Minimum cosine similarity; results below this are discarded.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: Embedder,
        *,
        default_k: int = settings.max_sources,
        score_threshold: float = settings.similarity_threshold,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.default_k = default_k
        self.score_threshold = score_threshold

    @property
    def store(self) -> VectorStoreBase:
        return self._store

    async def search(
        self,
        query: str,
        *,
        k: int | None = None,
        document_id: str | None = None,
    ) -> list[SearchHit]:
        """Embed *query* and return the best matching entries.

        Parameters
        ----------
        query:
            Natural-language question.
        k:
            Number of results (defaults to ``self.default_k``).
        document_id:
            Restrict the search to one document.

        Returns
        -------
        list[SearchHit]
            Ranked hits, most similar first.
        """
        embedding = await self._embedder.embed_query(query)
        return self.search_by_embedding(embedding, k=k, document_id=document_id)

    def search_by_embedding(
        self,
        embedding: list[float],
        *,
        k: int | None = None,
        document_id: str | None = None,
    ) -> list[SearchHit]:
        """Same as :meth:`search` but accepts a pre-computed embedding."""
        k = k or self.default_k
        hits = self._store.search(
            embedding,
            limit=k,
            document_id=document_id,
            similarity_threshold=self.score_threshold,
        )
        logger.info("Retrieved %d hits (k=%d, document=%s)", len(hits), k, document_id or "*")
        return hits
