"""Batched embedding of text chunks and queries."""

from __future__ import annotations

import asyncio
import logging
import numbers
from collections.abc import Sequence
from typing import Any

from langchain_core.embeddings import Embeddings

from docchat.config import settings
from docchat.errors import DimensionMismatchError, EmbeddingBatchError, EmbeddingError
from docchat.retrieval.models import TextChunk

logger = logging.getLogger(__name__)


def get_embedding_function(
    model_name: str | None = None,
    api_key: str | None = None,
) -> Embeddings:
    """Return the configured Hugging Face feature-extraction endpoint."""
    from langchain_huggingface import HuggingFaceEndpointEmbeddings

    return HuggingFaceEndpointEmbeddings(
        model=model_name or settings.embedding_model,
        task="feature-extraction",
        huggingfacehub_api_token=api_key or settings.huggingface_api_key,
    )


class Embedder:
    """Attach embeddings to chunks, one provider call per batch.

    Batches run sequentially with a pause in between to stay under the
    provider's rate limits.  A failed batch never aborts the job: its
    chunks are returned without an embedding.  A vector whose length differs
    from the one the model produced before raises
    :class:`~docchat.errors.DimensionMismatchError` instead.

    Parameters
    ----------
    embeddings:
        LangChain embedding implementation.  Defaults to
        :func:`get_embedding_function`.
    model_name:
        Name of the model behind *embeddings*; fixed for the lifetime of
        the instance so that every vector it produces is comparable.
    batch_size:
        Number of chunks per provider call.
    batch_delay:
        Seconds awaited between two batches.
    """

    def __init__(
        self,
        embeddings: Embeddings | None = None,
        *,
        model_name: str = settings.embedding_model,
        batch_size: int = settings.embedding_batch_size,
        batch_delay: float = settings.embedding_batch_delay,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._embeddings = embeddings if embeddings is not None else get_embedding_function(model_name)
        self.model_name = model_name
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._dimension: int | None = None

    @property
    def dimension(self) -> int | None:
        """Vector length produced by the model (``None`` until the first success)."""
        return self._dimension

    async def embed_chunks(self, chunks: Sequence[TextChunk]) -> list[TextChunk]:
        """Return *chunks* in the same order, embedded where possible.

        Raises
        ------
        DimensionMismatchError
            When the provider changes its vector length between batches.
        """
        processed: list[TextChunk] = []
        failed_batches = 0

        for start in range(0, len(chunks), self.batch_size):
            if start > 0 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

            batch = list(chunks[start : start + self.batch_size])
            try:
                vectors = await self._embed_batch(batch, start)
            except EmbeddingBatchError as exc:
                failed_batches += 1
                logger.warning("Embedding batch %d-%d failed, keeping chunks without vectors: %s",
                               start, start + len(batch), exc)
                processed.extend(batch)
                continue

            processed.extend(chunk.with_embedding(vec) for chunk, vec in zip(batch, vectors))
            logger.debug("  embedded %d / %d", len(processed), len(chunks))

        if chunks:
            logger.info("Embedded %d chunks with model=%s (%d failed batches)",
                        len(chunks), self.model_name, failed_batches)
        return processed

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single query string.

        Raises
        ------
        EmbeddingError
            When the provider fails or returns something that is not a vector.
        """
        try:
            raw = await self._embeddings.aembed_query(text)
        except Exception as exc:
            raise EmbeddingError(f"Query embedding failed: {exc}") from exc
        vector = _as_vector(raw)
        if vector is None:
            raise EmbeddingError(f"Provider returned an invalid query embedding: {type(raw).__name__}")
        return vector

    async def _embed_batch(self, batch: list[TextChunk], start: int) -> list[list[float]]:
        texts = [chunk.content for chunk in batch]
        try:
            raw = await self._embeddings.aembed_documents(texts)
        except Exception as exc:
            raise EmbeddingBatchError(str(exc), batch_start=start, batch_size=len(batch)) from exc

        if not isinstance(raw, list) or len(raw) != len(batch):
            raise EmbeddingBatchError(
                f"expected {len(batch)} vectors, got {len(raw) if isinstance(raw, list) else type(raw).__name__}",
                batch_start=start,
                batch_size=len(batch),
            )

        vectors: list[list[float]] = []
        for item in raw:
            vector = _as_vector(item)
            if vector is None:
                raise EmbeddingBatchError("provider returned a non-numeric vector",
                                          batch_start=start, batch_size=len(batch))
            if self._dimension is not None and len(vector) != self._dimension:
                raise DimensionMismatchError(expected=self._dimension, actual=len(vector))
            expected = len(vectors[0]) if vectors else len(vector)
            if len(vector) != expected:
                raise EmbeddingBatchError(
                    f"vector length {len(vector)} differs from {expected}",
                    batch_start=start,
                    batch_size=len(batch),
                )
            vectors.append(vector)

        if self._dimension is None and vectors:
            self._dimension = len(vectors[0])
        return vectors


def _as_vector(value: Any) -> list[float] | None:
    """Return *value* as a non-empty list of floats, or ``None`` if it is not one."""
    if not isinstance(value, (list, tuple)) or not value:
        return None
    if not all(isinstance(x, numbers.Real) and not isinstance(x, bool) for x in value):
        return None
    return [float(x) for x in value]
