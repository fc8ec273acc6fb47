"""
Ingestion — text extraction, chunking, and embedding.

This module is responsible for the ETL-like path that converts uploaded
documents (PDF, DOCX) into embedded chunks ready for the vector store.
"""

from docchat.ingestion.chunker import ProcessingOptions, TextChunker
from docchat.ingestion.embedder import Embedder, get_embedding_function
from docchat.ingestion.extractor import FileType, TextExtractor, build_fallback_text, clean_text

__all__ = [
    "Embedder",
    "FileType",
    "ProcessingOptions",
    "TextChunker",
    "TextExtractor",
    "build_fallback_text",
    "clean_text",
    "get_embedding_function",
]
