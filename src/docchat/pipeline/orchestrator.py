"""RAG pipeline orchestrator.

Sequences ingestion (extract → chunk → embed → store → persist) and
question answering (embed → search → build context → generate).  The
orchestrator owns its embedder, vector store, retriever and answer
generator; every one of them can be injected, which is how the tests run
without network access.

Usage::

    pipeline = RAGPipeline()
    await pipeline.initialize()
    await pipeline.process_document(record)
    result = await pipeline.query("What is the refund policy?", document_id=record.id)
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from docchat.config import Settings, settings as default_settings
from docchat.errors import (
    DimensionMismatchError,
    ExtractionCause,
    ExtractionError,
    InitializationError,
    QueryError,
)
from docchat.generation.answer import AnswerGenerator, estimate_confidence
from docchat.generation.prompts import NO_RELEVANT_INFORMATION_ANSWER
from docchat.ingestion.chunker import TextChunker
from docchat.ingestion.embedder import Embedder, get_embedding_function
from docchat.ingestion.extractor import TextExtractor, build_fallback_text
from docchat.pipeline.collaborators import (
    ChunkRepository,
    DocumentStatusStore,
    InMemoryChunkRepository,
    InMemoryDocumentRegistry,
    from_stored_chunk,
    to_stored_chunk,
)
from docchat.pipeline.locks import DocumentLocks
from docchat.pipeline.models import (
    DocumentRecord,
    DocumentStatus,
    IngestionReport,
    PipelineStats,
    QueryResult,
)
from docchat.retrieval.base import VectorStoreBase
from docchat.retrieval.memory_store import InMemoryVectorStore
from docchat.retrieval.models import TextChunk
from docchat.retrieval.retriever import SemanticRetriever

logger = logging.getLogger(__name__)


class RAGPipeline:
    """Retrieval-augmented question answering over uploaded documents.

    Parameters
    ----------
    config:
        Settings; defaults to the process-wide :data:`docchat.config.settings`.
    store:
        Vector store; defaults to a fresh :class:`InMemoryVectorStore`.
    embedder / generator:
        Providers.  When omitted they are built in :meth:`initialize`, which
        requires the matching API credentials.
    chunk_repository / documents:
        External collaborators for chunk rows and document statuses.
    extractor / chunker:
        Override the text extractor and chunker.
    """

    def __init__(
        self,
        config: Settings | None = None,
        *,
        store: VectorStoreBase | None = None,
        embedder: Embedder | None = None,
        generator: AnswerGenerator | None = None,
        chunk_repository: ChunkRepository | None = None,
        documents: DocumentStatusStore | None = None,
        extractor: TextExtractor | None = None,
        chunker: TextChunker | None = None,
    ) -> None:
        self.config = config or default_settings
        self.store = store if store is not None else InMemoryVectorStore()
        self.chunk_repository = chunk_repository if chunk_repository is not None else InMemoryChunkRepository()
        self.documents = documents if documents is not None else InMemoryDocumentRegistry()
        self.extractor = extractor or TextExtractor()
        self.chunker = chunker or TextChunker(self.config.processing_options())
        self._embedder = embedder
        self._generator = generator
        self._retriever: SemanticRetriever | None = None
        self._initialized = False
        self._locks = DocumentLocks()

    # -- lifecycle ------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Build missing providers and rehydrate the store from persisted chunks.

        Raises
        ------
        InitializationError
            When a provider's credentials are missing or the persisted
            chunks cannot be read.
        """
        cfg = self.config
        if self._embedder is None:
            if not cfg.huggingface_api_key:
                raise InitializationError("HUGGINGFACE_API_KEY is not configured")
            self._embedder = Embedder(
                get_embedding_function(cfg.embedding_model, cfg.huggingface_api_key),
                model_name=cfg.embedding_model,
                batch_size=cfg.embedding_batch_size,
                batch_delay=cfg.embedding_batch_delay,
            )
        if self._generator is None:
            if not cfg.openai_api_key and not cfg.llm_base_url:
                raise InitializationError("OPENAI_API_KEY (or LLM_BASE_URL) is not configured")
            self._generator = AnswerGenerator(
                max_context_length=cfg.max_context_length,
                temperature=cfg.llm_temperature,
                max_tokens=cfg.llm_max_tokens,
            )

        self._retriever = SemanticRetriever(
            self.store,
            self._embedder,
            default_k=cfg.max_sources,
            score_threshold=cfg.similarity_threshold,
        )

        try:
            restored = await self._rehydrate()
        except DimensionMismatchError:
            raise
        except Exception as exc:
            logger.exception("Error initializing RAG system")
            raise InitializationError(f"Failed to initialize RAG system: {exc}") from exc

        self._initialized = True
        logger.info("RAG system initialized (%d entries restored)", restored)

    async def _rehydrate(self) -> int:
        rows = await self.chunk_repository.load_all()
        logger.info("Found %d existing chunks in repository", len(rows))

        chunks: list[TextChunk] = []
        for row in rows:
            try:
                chunks.append(from_stored_chunk(row))
            except (ValueError, TypeError) as exc:
                logger.warning("Skipping unreadable chunk row %s: %s", row.id, exc)
        return self.store.add_entries(chunks)

    def save_snapshot(self, path: str | Path) -> None:
        """Write the vector store to *path* (shutdown snapshot)."""
        self.store.save(path)
        logger.info("Saved %d vector entries to %s", self.store.count(), path)

    def load_snapshot(self, path: str | Path) -> None:
        """Replace the vector store with the snapshot at *path* (startup)."""
        self.store.load(path)
        logger.info("Loaded %d vector entries from %s", self.store.count(), path)

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise InitializationError("RAG pipeline is not initialized; call initialize() first")

    @property
    def embedder(self) -> Embedder:
        self._require_initialized()
        assert self._embedder is not None
        return self._embedder

    @property
    def generator(self) -> AnswerGenerator:
        self._require_initialized()
        assert self._generator is not None
        return self._generator

    @property
    def retriever(self) -> SemanticRetriever:
        self._require_initialized()
        assert self._retriever is not None
        return self._retriever

    # -- ingestion ------------------------------------------------------------

    async def process_document(self, document: DocumentRecord) -> IngestionReport:
        """Ingest *document* and report the outcome.

        The document moves to ``processing`` and ends in ``ready`` or
        ``error``.  Failures are captured in the report and the status;
        only :class:`DimensionMismatchError` is re-raised.  Runs for the
        same document id, and deletes of it, are serialised.
        """
        self._require_initialized()
        async with self._locks.hold(document.id):
            return await self._process(document)

    async def _process(self, document: DocumentRecord) -> IngestionReport:
        started = time.perf_counter()
        report = IngestionReport(document_id=document.id, status=DocumentStatus.PROCESSING)
        await self.documents.set_status(document.id, DocumentStatus.PROCESSING)
        logger.info("Starting document processing for %s", document.original_name)

        try:
            await self._forget(document.id)
            data = await document.read_bytes()
            text = await self._extract(document, data, report)

            chunks = self.chunker.chunk(text, document.id, document.original_name)
            logger.info("Created %d chunks from %s", len(chunks), document.original_name)
            if not chunks:
                raise ValueError("no text could be produced for the document")

            embedded = await self.embedder.embed_chunks(chunks)
            report.chunk_count = len(embedded)
            report.embedded_count = sum(1 for chunk in embedded if chunk.embedding)

            self.store.add_entries(embedded)
            await self.chunk_repository.save([to_stored_chunk(chunk) for chunk in embedded])
        except DimensionMismatchError:
            await self.documents.set_status(document.id, DocumentStatus.ERROR)
            raise
        except Exception as exc:
            logger.exception("Error processing document %s", document.id)
            await self.documents.set_status(document.id, DocumentStatus.ERROR)
            report.status = DocumentStatus.ERROR
            report.error = f"Failed to process document: {exc}"
            report.processing_time = (time.perf_counter() - started) * 1000
            return report

        await self.documents.set_status(document.id, DocumentStatus.READY)
        report.status = DocumentStatus.READY
        report.processing_time = (time.perf_counter() - started) * 1000
        logger.info("Document processing completed in %.0fms (%d/%d chunks embedded)",
                    report.processing_time, report.embedded_count, report.chunk_count)
        return report

    async def _extract(self, document: DocumentRecord, data: bytes, report: IngestionReport) -> str:
        """Extract text, substituting fallback text when extraction fails."""
        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(self.extractor.extract, data, document.file_type),
                timeout=self.config.extraction_timeout,
            )
        except asyncio.TimeoutError:
            cause = ExtractionCause.TIMEOUT
            logger.warning("Text extraction of %s timed out after %.1fs",
                           document.original_name, self.config.extraction_timeout)
        except ExtractionError as exc:
            cause = exc.cause
            logger.warning("Text extraction of %s failed (%s): %s", document.original_name, cause.value, exc)
        else:
            logger.info("Extracted %d characters from %s", len(text), document.original_name)
            return text

        report.used_fallback = True
        report.extraction_cause = cause
        return build_fallback_text(document.original_name, document.file_size or len(data),
                                   document.file_type, cause)

    async def delete_document(self, document_id: str) -> int:
        """Remove every vector and persisted chunk of *document_id*.

        Waits for an ingestion of the same document that is already running,
        so nothing it publishes outlives the delete.
        """
        async with self._locks.hold(document_id):
            removed = await self._forget(document_id)
        logger.info("Deleted document %s (%d vector entries)", document_id, removed)
        return removed

    async def _forget(self, document_id: str) -> int:
        removed = self.store.delete_by_document_id(document_id)
        await self.chunk_repository.delete_by_document(document_id)
        return removed

    # -- querying -------------------------------------------------------------

    async def query(
        self,
        question: str,
        document_id: str | None = None,
        *,
        max_sources: int | None = None,
        include_context: bool = True,
    ) -> QueryResult:
        """Answer *question* from the stored chunks.

        Parameters
        ----------
        question:
            Natural-language question.
        document_id:
            Restrict retrieval to one document.
        max_sources:
            Maximum number of chunks retrieved (defaults to ``config.max_sources``).
        include_context:
            Send the retrieved excerpts to the model.

        Raises
        ------
        QueryError
            For any failure while answering; ``exc.user_message`` is safe to
            show to end users.
        """
        self._require_initialized()
        started = time.perf_counter()
        limit = max_sources or self.config.max_sources
        logger.info("Processing query: %.200s", question)

        try:
            hits = await self.retriever.search(question, k=limit, document_id=document_id)
            sources = [hit.entry.to_chunk() for hit in hits]

            if not hits:
                answer = NO_RELEVANT_INFORMATION_ANSWER
            else:
                context = self.generator.build_context(hits) if include_context else ""
                answer = await self.generator.generate(question, context)
        except (DimensionMismatchError, QueryError):
            raise
        except Exception as exc:
            logger.exception("Error processing query")
            raise QueryError(f"Failed to process query: {exc}") from exc

        elapsed = (time.perf_counter() - started) * 1000
        logger.info("Query processed in %.0fms with %d sources", elapsed, len(sources))
        return QueryResult(
            answer=answer,
            sources=sources,
            confidence=estimate_confidence(sources),
            processing_time=elapsed,
        )

    # -- statistics -----------------------------------------------------------

    async def get_stats(self) -> PipelineStats:
        total_documents = await self.documents.count()
        total_chunks = await self.chunk_repository.count()
        return PipelineStats(
            total_documents=total_documents,
            total_chunks=total_chunks,
            average_chunks_per_document=total_chunks / total_documents if total_documents else 0.0,
            total_embeddings=self.store.count(),
        )
