"""
Retrieval — vector storage, similarity search and the semantic retriever.

This module wraps the vector store behind a clean interface so that
the pipeline never needs to know which backend holds the vectors.

Public surface
--------------
- :class:`SemanticRetriever` — embed a question and search the store.
- :class:`VectorStoreBase` — abstract backend.
- :class:`InMemoryVectorStore` — default cosine-similarity backend.
- :class:`TextChunk`, :class:`ChunkMetadata`, :class:`VectorStoreEntry`,
  :class:`SearchHit`, :class:`StoreSnapshot` — data models.
- :func:`cosine_similarity` — the similarity measure used by the store.
"""

from docchat.retrieval.base import VectorStoreBase
from docchat.retrieval.memory_store import InMemoryVectorStore
from docchat.retrieval.models import (
    ChunkMetadata,
    SearchHit,
    StoreSnapshot,
    TextChunk,
    VectorStoreEntry,
)
from docchat.retrieval.retriever import SemanticRetriever
from docchat.retrieval.similarity import cosine_similarity

__all__ = [
    "ChunkMetadata",
    "InMemoryVectorStore",
    "SearchHit",
    "SemanticRetriever",
    "StoreSnapshot",
    "TextChunk",
    "VectorStoreBase",
    "VectorStoreEntry",
    "cosine_similarity",
]
