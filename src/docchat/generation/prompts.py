"""Prompt templates and context assembly for answer generation.

Keeping prompts in one place makes them easy to audit, version, and A/B
test.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from docchat.retrieval.models import SearchHit

#: Returned without calling the LLM when retrieval finds nothing relevant.
NO_RELEVANT_INFORMATION_ANSWER = (
    "I couldn't find any relevant information in the uploaded documents to answer this question."
)

ANSWER_SYSTEM = """\
You are a helpful AI assistant that answers questions based on the provided document context.

Your task:
1. Answer the user's question based ONLY on the provided context.
2. If the context doesn't contain the answer, say "I don't have enough information in the provided documents to answer this question."
3. Be concise and accurate.
4. Cite the relevant parts of the context that support your answer.
5. Do not make up information or use external knowledge.

Context:
{context}

Instructions:
- Provide a clear, direct answer.
- Include specific quotes or references from the context when helpful.
- If multiple sources are relevant, synthesize the information.
- Keep your response focused on the question.
"""

NO_CONTEXT_PLACEHOLDER = "(no document excerpts were provided)"


def format_source(index: int, document_name: str, content: str) -> str:
    """Render one labelled context block."""
    return f"Source {index} (from {document_name}): {content}"


def build_context(hits: Sequence[SearchHit], max_length: int) -> str:
    """Concatenate ranked hits into one context string of at most *max_length* characters.

    Blocks are added in ranking order and the assembled string is truncated
    as a whole, so the most relevant sources survive intact.
    """
    blocks: list[str] = []
    length = 0
    for i, hit in enumerate(hits, 1):
        name = hit.entry.metadata.get("document_name", "unknown")
        block = format_source(i, name, hit.entry.content)
        blocks.append(block)
        length += len(block) + 2
        if length >= max_length:
            break
    return "\n\n".join(blocks)[:max_length]


def build_answer_prompt(question: str, context: str) -> list[BaseMessage]:
    """Assemble the system/user message pair for one answer.

    Parameters
    ----------
    question:
        The user question, sent verbatim as the user message.
    context:
        Assembled document excerpts (may be empty).

    Returns
    -------
    list[BaseMessage]
        A list of LangChain message objects ready for ``.ainvoke()``.
    """
    return [
        SystemMessage(content=ANSWER_SYSTEM.format(context=context or NO_CONTEXT_PLACEHOLDER)),
        HumanMessage(content=question),
    ]
