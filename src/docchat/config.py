"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

if TYPE_CHECKING:
    from docchat.ingestion.chunker import ProcessingOptions


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Embedding
    huggingface_api_key: str = Field(default="", description="Hugging Face Inference API token")
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_batch_size: int = Field(default=10, gt=0)
    embedding_batch_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Seconds to wait between embedding batches (rate limiting).",
    )

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI (or OpenAI-compatible) API key")
    llm_model_name: str = Field(default="gpt-4o-mini", description="Chat model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for the chat-completion API. Leave empty to use OpenAI cloud. "
            "Any OpenAI-compatible endpoint works, e.g. 'https://openrouter.ai/api/v1'."
        ),
    )
    llm_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=1000, gt=0)

    # Chunking
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)

    # Retrieval / generation
    similarity_threshold: float = 0.5
    max_sources: int = Field(default=5, gt=0)
    max_context_length: int = Field(default=4000, gt=0)

    # Ingestion
    extraction_timeout: float = Field(default=10.0, gt=0.0)
    ingestion_workers: int = Field(default=2, gt=0)
    ingestion_task_history: int = Field(default=1000, gt=0, description="Finished ingestion tasks kept for status lookups.")
    vector_snapshot_path: str = Field(
        default="",
        description="JSON snapshot of the vector store loaded at startup / written at shutdown. Empty disables it.",
    )

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @model_validator(mode="after")
    def _check_overlap(self) -> Settings:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )
        return self

    def processing_options(self, include_metadata: bool = True) -> ProcessingOptions:
        """Return the chunker options described by these settings."""
        from docchat.ingestion.chunker import ProcessingOptions

        return ProcessingOptions(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            include_metadata=include_metadata,
        )


# Singleton: import `settings` wherever needed.
settings = Settings()
