"""Unit tests for prompts, context assembly, confidence and answer generation."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.language_models import FakeListChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from docchat.errors import SAFE_QUERY_ERROR_MESSAGE, QueryError
from docchat.generation.answer import AnswerGenerator, estimate_confidence
from docchat.generation.llm import get_llm
from docchat.generation.prompts import (
    NO_CONTEXT_PLACEHOLDER,
    build_answer_prompt,
    build_context,
    format_source,
)
from docchat.retrieval.models import ChunkMetadata, SearchHit, TextChunk, VectorStoreEntry


def _hit(i: int, content: str, name: str = "guide.pdf") -> SearchHit:
    entry = VectorStoreEntry(
        id=f"d-{i}",
        document_id="d",
        content=content,
        embedding=[1.0],
        metadata={"document_name": name},
    )
    return SearchHit(entry=entry, score=0.9)


def _chunks(*sizes: int) -> list[TextChunk]:
    return [
        TextChunk(
            id=f"d-{i}",
            content="x" * size,
            metadata=ChunkMetadata(document_id="d", chunk_index=i, start_char=0, end_char=size, document_name="d"),
        )
        for i, size in enumerate(sizes)
    ]


# ── Prompts ─────────────────────────────────────────────────────────────


class TestPrompts:
    def test_build_answer_prompt_returns_two_messages(self) -> None:
        """The prompt is a system message followed by a human message."""
        msgs = build_answer_prompt("What is the fee?", "Source 1 (from a.pdf): The fee is $5.")
        assert len(msgs) == 2
        assert isinstance(msgs[0], SystemMessage)
        assert isinstance(msgs[1], HumanMessage)

    def test_build_answer_prompt_includes_context_and_question(self) -> None:
        """Context goes in the system message, the question in the human one."""
        msgs = build_answer_prompt("What is the fee?", "The fee is $5.")
        assert "The fee is $5." in msgs[0].content
        assert msgs[1].content == "What is the fee?"

    def test_empty_context_uses_placeholder(self) -> None:
        """An empty context is replaced by the placeholder text."""
        msgs = build_answer_prompt("Anything?", "")
        assert NO_CONTEXT_PLACEHOLDER in msgs[0].content

    def test_format_source(self) -> None:
        """A source block is numbered and names its document."""
        assert format_source(2, "a.pdf", "body") == "Source 2 (from a.pdf): body"


class TestBuildContext:
    def test_blocks_in_ranking_order(self) -> None:
        """Source blocks follow the ranking and are separated by blank lines."""
        context = build_context([_hit(0, "first"), _hit(1, "second", "b.docx")], 4000)
        assert context == "Source 1 (from guide.pdf): first\n\nSource 2 (from b.docx): second"

    def test_truncated_to_max_length(self) -> None:
        """The context is cut at max_length characters."""
        context = build_context([_hit(i, "y" * 300) for i in range(5)], 500)
        assert len(context) == 500
        assert context.startswith("Source 1 (from guide.pdf): ")

    def test_missing_document_name(self) -> None:
        """Entries without a document name are attributed to "unknown"."""
        entry = VectorStoreEntry(id="e", document_id="d", content="c", embedding=[1.0])
        assert build_context([SearchHit(entry=entry, score=1.0)], 100) == "Source 1 (from unknown): c"

    def test_no_hits(self) -> None:
        """No hits give an empty context."""
        assert build_context([], 100) == ""


# ── Confidence ──────────────────────────────────────────────────────────


class TestConfidence:
    def test_no_sources(self) -> None:
        """No sources means zero confidence."""
        assert estimate_confidence([]) == 0.0

    def test_single_short_source(self) -> None:
        """One short source earns only the base score."""
        assert estimate_confidence(_chunks(100)) == pytest.approx(0.2)

    def test_several_sources_get_diversity_bonus(self) -> None:
        """More than one source adds the diversity bonus."""
        assert estimate_confidence(_chunks(100, 100)) == pytest.approx(0.5)

    def test_long_context_bonus(self) -> None:
        """A long combined context adds the length bonus."""
        assert estimate_confidence(_chunks(600, 600)) == pytest.approx(0.6)

    def test_capped_at_one(self) -> None:
        """Confidence never exceeds 1.0."""
        assert estimate_confidence(_chunks(*[500] * 10)) == pytest.approx(1.0)


# ── AnswerGenerator ─────────────────────────────────────────────────────


class TestAnswerGenerator:
    @pytest.mark.asyncio
    async def test_returns_model_text(self) -> None:
        """The model's answer is returned stripped."""
        generator = AnswerGenerator(FakeListChatModel(responses=["  The fee is $5.  "]))
        assert await generator.generate("What is the fee?", "The fee is $5.") == "The fee is $5."

    @pytest.mark.asyncio
    async def test_sends_question_and_context(self) -> None:
        """The chat model receives the question and the context."""
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=MagicMock(content="ok"))
        await AnswerGenerator(llm).generate("Q?", "CTX")
        messages = llm.ainvoke.await_args.args[0]
        assert "CTX" in messages[0].content
        assert messages[1].content == "Q?"

    @pytest.mark.asyncio
    async def test_provider_failure_becomes_query_error(self) -> None:
        """A provider error becomes QueryError with the safe user message."""
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=RuntimeError("provider down"))
        with pytest.raises(QueryError) as excinfo:
            await AnswerGenerator(llm).generate("Q?", "CTX")
        assert "provider down" in str(excinfo.value)
        assert excinfo.value.user_message == SAFE_QUERY_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_empty_response_is_an_error(self) -> None:
        """A blank answer is treated as a failure."""
        with pytest.raises(QueryError):
            await AnswerGenerator(FakeListChatModel(responses=["   "])).generate("Q?", "CTX")

    @pytest.mark.asyncio
    async def test_non_text_response_is_an_error(self) -> None:
        """A non-text answer is treated as a failure."""
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=MagicMock(content=[{"type": "image"}]))
        with pytest.raises(QueryError):
            await AnswerGenerator(llm).generate("Q?", "CTX")

    def test_build_context_uses_max_length(self) -> None:
        """The generator applies its own max_context_length."""
        generator = AnswerGenerator(FakeListChatModel(responses=["x"]), max_context_length=50)
        assert len(generator.build_context([_hit(0, "z" * 200)])) == 50

    def test_default_llm_is_created_lazily(self) -> None:
        """Without an injected model get_llm() is called on first use only."""
        fake = FakeListChatModel(responses=["x"])
        with patch("docchat.generation.answer.get_llm", return_value=fake) as factory:
            generator = AnswerGenerator(temperature=0.3, max_tokens=50)
            factory.assert_not_called()
            assert generator.llm is fake
        factory.assert_called_once_with(temperature=0.3, max_tokens=50)


# ── get_llm ─────────────────────────────────────────────────────────────


class TestGetLLM:
    def test_openai_cloud(self) -> None:
        """Without a base URL the OpenAI key is passed and retries are disabled."""
        with patch("docchat.generation.llm.settings") as s, patch("docchat.generation.llm.ChatOpenAI") as chat:
            s.llm_model_name = "gpt-4o-mini"
            s.llm_base_url = ""
            s.openai_api_key = "sk-test"
            get_llm(temperature=0.1, max_tokens=1000)
        kwargs = chat.call_args.kwargs
        assert kwargs["api_key"] == "sk-test"
        assert "base_url" not in kwargs
        assert kwargs["max_retries"] == 0

    def test_compatible_endpoint_without_key(self) -> None:
        """A compatible endpoint gets its base URL and a placeholder key."""
        with patch("docchat.generation.llm.settings") as s, patch("docchat.generation.llm.ChatOpenAI") as chat:
            s.llm_model_name = "meta-llama/llama-3-8b"
            s.llm_base_url = "https://openrouter.ai/api/v1"
            s.openai_api_key = ""
            get_llm()
        kwargs = chat.call_args.kwargs
        assert kwargs["base_url"] == "https://openrouter.ai/api/v1"
        assert kwargs["api_key"] == "EMPTY"
