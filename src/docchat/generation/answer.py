"""Answer generation over retrieved chunks."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from docchat.config import settings
from docchat.errors import QueryError
from docchat.generation.llm import get_llm
from docchat.generation.prompts import build_answer_prompt, build_context

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

    from docchat.retrieval.models import SearchHit, TextChunk

logger = logging.getLogger(__name__)

# Confidence heuristic tunables.  The score summarises retrieval strength;
# it is not a calibrated probability.
CONFIDENCE_PER_SOURCE = 0.2
CONFIDENCE_BASE_CAP = 0.8
LENGTH_BONUS = 0.1
LENGTH_BONUS_MIN_CHARS = 1000
DIVERSITY_BONUS = 0.1


def estimate_confidence(chunks: Sequence[TextChunk]) -> float:
    """Heuristic confidence in ``[0, 1]`` for an answer built from *chunks*.

    More sources and more retrieved text raise the score; no sources give
    ``0.0``.
    """
    if not chunks:
        return 0.0
    base = min(len(chunks) * CONFIDENCE_PER_SOURCE, CONFIDENCE_BASE_CAP)
    total_chars = sum(len(chunk.content) for chunk in chunks)
    length_bonus = LENGTH_BONUS if total_chars > LENGTH_BONUS_MIN_CHARS else 0.0
    diversity_bonus = DIVERSITY_BONUS if len(chunks) > 1 else 0.0
    return max(0.0, min(base + length_bonus + diversity_bonus, 1.0))


class AnswerGenerator:
    """Turn a question plus retrieved context into a natural-language answer.

    Parameters
    ----------
    llm:
        LangChain chat model.  Defaults to :func:`~docchat.generation.llm.get_llm`
        configured with *temperature* and *max_tokens*, created on first use.
    max_context_length:
        Upper bound, in characters, of the assembled context.
    temperature / max_tokens:
        Completion parameters for the default model.
    """

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        *,
        max_context_length: int = settings.max_context_length,
        temperature: float = settings.llm_temperature,
        max_tokens: int = settings.llm_max_tokens,
    ) -> None:
        self._llm = llm
        self.max_context_length = max_context_length
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = get_llm(temperature=self.temperature, max_tokens=self.max_tokens)
        return self._llm

    def build_context(self, hits: Sequence[SearchHit]) -> str:
        return build_context(hits, self.max_context_length)

    async def generate(self, question: str, context: str) -> str:
        """Issue one chat completion and return its text.

        Raises
        ------
        QueryError
            When the provider call fails or the response carries no text.
        """
        messages = build_answer_prompt(question, context)
        try:
            response = await self.llm.ainvoke(messages)
        except Exception as exc:
            logger.exception("Chat completion failed")
            raise QueryError(f"Chat completion failed: {exc}") from exc

        content = getattr(response, "content", None)
        if not isinstance(content, str) or not content.strip():
            raise QueryError(f"Chat completion returned no text ({type(content).__name__})")
        return content.strip()
