"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import io
import zipfile
from xml.sax.saxutils import escape

import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.language_models import FakeListChatModel

from docchat.config import Settings
from docchat.generation.answer import AnswerGenerator
from docchat.ingestion.embedder import Embedder
from docchat.pipeline.collaborators import InMemoryChunkRepository, InMemoryDocumentRegistry
from docchat.pipeline.orchestrator import RAGPipeline
from docchat.retrieval.memory_store import InMemoryVectorStore

VOCABULARY = ("refund", "policy", "shipping", "warranty", "invoice")


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fakes ───────────────────────────────────────────────────────────────


class KeywordEmbeddings(Embeddings):
    """Deterministic embeddings: one dimension per vocabulary word, valued by its count."""

    def __init__(self, vocabulary: tuple[str, ...] = VOCABULARY) -> None:
        self.vocabulary = vocabulary
        self.document_calls: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        lowered = text.lower()
        return [float(lowered.count(word)) for word in self.vocabulary]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.document_calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._vector(text)

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        return self.embed_documents(texts)

    async def aembed_query(self, text: str) -> list[float]:
        return self.embed_query(text)


def make_docx(*paragraphs: str) -> bytes:
    """Build a minimal DOCX container holding *paragraphs*."""
    body = "".join(f"<w:p><w:r><w:t>{escape(p)}</w:t></w:r></w:p>" for p in paragraphs)
    document_xml = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        f"<w:body>{body}</w:body></w:document>"
    )
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("word/document.xml", document_xml)
    return buf.getvalue()


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        huggingface_api_key="",
        openai_api_key="",
        llm_base_url="",
        chunk_size=200,
        chunk_overlap=20,
        embedding_batch_delay=0.0,
        extraction_timeout=5.0,
        similarity_threshold=0.5,
        max_sources=5,
        vector_snapshot_path="",
    )


@pytest.fixture()
def keyword_embeddings() -> KeywordEmbeddings:
    return KeywordEmbeddings()


@pytest.fixture()
def embedder(keyword_embeddings: KeywordEmbeddings) -> Embedder:
    return Embedder(keyword_embeddings, model_name="keyword-test", batch_size=10, batch_delay=0.0)


@pytest.fixture()
def fake_llm() -> FakeListChatModel:
    return FakeListChatModel(responses=["Refunds are accepted within 30 days."])


@pytest.fixture()
def pipeline(
    test_settings: Settings,
    embedder: Embedder,
    fake_llm: FakeListChatModel,
) -> RAGPipeline:
    """An uninitialised pipeline wired to in-memory collaborators and fakes."""
    return RAGPipeline(
        test_settings,
        store=InMemoryVectorStore(),
        embedder=embedder,
        generator=AnswerGenerator(fake_llm, max_context_length=test_settings.max_context_length),
        chunk_repository=InMemoryChunkRepository(),
        documents=InMemoryDocumentRegistry(),
    )


@pytest.fixture()
def docx_factory():
    return make_docx
