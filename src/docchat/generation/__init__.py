"""
Generation — prompt assembly and answer synthesis with a hosted LLM.

Public API
----------
- :class:`AnswerGenerator` — context building and one chat completion per question.
- :func:`estimate_confidence` — heuristic confidence score for an answer.
- :func:`get_llm` — configured LangChain chat model.
"""

from docchat.generation.answer import AnswerGenerator, estimate_confidence
from docchat.generation.llm import get_llm
from docchat.generation.prompts import NO_RELEVANT_INFORMATION_ANSWER, build_answer_prompt, build_context

__all__ = [
    "NO_RELEVANT_INFORMATION_ANSWER",
    "AnswerGenerator",
    "build_answer_prompt",
    "build_context",
    "estimate_confidence",
    "get_llm",
]
