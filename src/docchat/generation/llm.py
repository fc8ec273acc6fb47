"""LLM initialisation — single place to swap chat-completion providers.

Supports two modes:

1. **OpenAI cloud** (default) — set ``OPENAI_API_KEY``.
2. **OpenAI-compatible endpoint** — set ``LLM_BASE_URL`` (OpenRouter, a
   vLLM server, …).  These expose ``/v1/chat/completions``, so
   ``ChatOpenAI`` works unchanged.
"""

from __future__ import annotations

import logging

from langchain_openai import ChatOpenAI

from docchat.config import settings

logger = logging.getLogger(__name__)


def get_llm(
    temperature: float = settings.llm_temperature,
    max_tokens: int = settings.llm_max_tokens,
) -> ChatOpenAI:
    """Return the configured chat model.

    When ``settings.llm_base_url`` is set the client is pointed at that
    endpoint instead of the OpenAI cloud API.  A dummy API key
    (``"EMPTY"``) is used when none is configured because self-hosted
    endpoints often do not require authentication.
    """
    kwargs: dict = {
        "model": settings.llm_model_name,
        "temperature": temperature,
        "max_tokens": max_tokens,
        # At most one attempt per call; retry policy belongs to the caller.
        "max_retries": 0,
    }

    if settings.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", settings.llm_base_url)
        kwargs["base_url"] = settings.llm_base_url
        kwargs["api_key"] = settings.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = settings.openai_api_key

    return ChatOpenAI(**kwargs)
