"""
Pipeline — orchestration of ingestion and question answering.

Public API
----------
- :class:`RAGPipeline` — initialise, ingest documents, answer questions.
- :class:`IngestionQueue` — background ingestion with correlation ids.
- :class:`DocumentRecord`, :class:`IngestionReport`, :class:`QueryResult`,
  :class:`PipelineStats` — records exchanged with callers.
"""

from docchat.pipeline.collaborators import (
    ChunkRepository,
    DocumentStatusStore,
    InMemoryChunkRepository,
    InMemoryDocumentRegistry,
)
from docchat.pipeline.models import (
    DocumentRecord,
    DocumentStatus,
    IngestionReport,
    PipelineStats,
    QueryResult,
    StoredChunk,
)
from docchat.pipeline.orchestrator import RAGPipeline
from docchat.pipeline.queue import IngestionQueue, IngestionTask, TaskState

__all__ = [
    "ChunkRepository",
    "DocumentRecord",
    "DocumentStatus",
    "DocumentStatusStore",
    "InMemoryChunkRepository",
    "InMemoryDocumentRegistry",
    "IngestionQueue",
    "IngestionReport",
    "IngestionTask",
    "PipelineStats",
    "QueryResult",
    "RAGPipeline",
    "StoredChunk",
    "TaskState",
]
