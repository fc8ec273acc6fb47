"""Structure-aware, line-granular text chunking.

Text is cleaned, split into sections (headings or paragraphs) and then
accumulated line by line into size-bounded chunks with a sliding-window
overlap.  Every chunk is an exact slice of the cleaned text, so
``start_char`` / ``end_char`` can be used to locate it again.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass

from pydantic import BaseModel, Field, model_validator

from docchat.ingestion.extractor import clean_text
from docchat.retrieval.models import ChunkMetadata, TextChunk

logger = logging.getLogger(__name__)

SECTION_LABEL_LENGTH = 50

_LINE = re.compile(r"[^\n]+")
_WORD = re.compile(r"\S+")
_HEADING = re.compile(
    r"^(?:"
    r"#{1,6}\s+\S.*"  # markdown heading
    r"|[A-Z][A-Z0-9 &/,.'()\-]{2,79}"  # FULLY UPPER-CASE line
    r"|[A-Z][a-z]+[^.!?]{0,78}:"  # Title-style label:
    r")$"
)


class ProcessingOptions(BaseModel):
    """Chunking parameters.

    Attributes
    ----------
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Maximum number of characters shared by consecutive chunks.
    include_metadata:
        Attach a ``section`` label to every chunk.
    """

    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    include_metadata: bool = True

    @model_validator(mode="after")
    def _check_overlap(self) -> ProcessingOptions:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )
        return self


@dataclass(frozen=True)
class _Unit:
    """A line (or word-bounded piece of an over-long line) of cleaned text."""

    start: int
    end: int
    section: str


class TextChunker:
    """Split document text into overlapping :class:`TextChunk` objects.

    Parameters
    ----------
    options:
        Default options used when :meth:`chunk` is called without any.
    """

    def __init__(self, options: ProcessingOptions | None = None) -> None:
        self.options = options or ProcessingOptions()

    def chunk(
        self,
        text: str,
        document_id: str,
        document_name: str,
        options: ProcessingOptions | None = None,
    ) -> list[TextChunk]:
        """Chunk *text* belonging to *document_id*.

        A line longer than ``chunk_size`` is split at whitespace; a single
        word longer than ``chunk_size`` becomes a chunk of its own.  Empty
        input yields no chunks.
        """
        opts = options or self.options
        cleaned = clean_text(text, drop_blank_lines=False)
        if not cleaned:
            return []

        chunks: list[TextChunk] = []
        buf_start = buf_end = -1
        section = ""

        for unit in self._units(cleaned, opts.chunk_size):
            if buf_start < 0:
                buf_start, buf_end, section = unit.start, unit.end, unit.section
            elif unit.end - buf_start <= opts.chunk_size:
                buf_end = unit.end
            else:
                chunks.append(
                    self._make_chunk(cleaned, buf_start, buf_end, len(chunks), section,
                                     document_id, document_name, opts)
                )
                buf_start = self._overlap_start(cleaned, buf_start, buf_end, unit, opts)
                buf_end = unit.end
                section = unit.section

        if buf_start >= 0:
            chunks.append(
                self._make_chunk(cleaned, buf_start, buf_end, len(chunks), section,
                                 document_id, document_name, opts)
            )

        logger.debug("Chunked %d characters of %s into %d chunks", len(cleaned), document_name, len(chunks))
        return chunks

    # -- internals ------------------------------------------------------------

    def _units(self, cleaned: str, chunk_size: int) -> Iterator[_Unit]:
        lines = [(m.start(), m.end()) for m in _LINE.finditer(cleaned)]
        has_headings = any(_HEADING.match(cleaned[s:e]) for s, e in lines)

        label = ""
        prev_end: int | None = None
        for start, end in lines:
            line = cleaned[start:end]
            if prev_end is None:
                new_section = True
            elif has_headings:
                new_section = bool(_HEADING.match(line))
            else:
                new_section = "\n\n" in cleaned[prev_end:start]
            if new_section:
                label = line.lstrip("#").strip()[:SECTION_LABEL_LENGTH]
            yield from self._split_line(cleaned, start, end, label, chunk_size)
            prev_end = end

    @staticmethod
    def _split_line(cleaned: str, start: int, end: int, label: str, chunk_size: int) -> Iterator[_Unit]:
        if end - start <= chunk_size:
            yield _Unit(start, end, label)
            return

        piece_start = piece_end = -1
        for match in _WORD.finditer(cleaned, start, end):
            if piece_start < 0:
                piece_start, piece_end = match.start(), match.end()
            elif match.end() - piece_start <= chunk_size:
                piece_end = match.end()
            else:
                yield _Unit(piece_start, piece_end, label)
                piece_start, piece_end = match.start(), match.end()
        if piece_start >= 0:
            yield _Unit(piece_start, piece_end, label)

    @staticmethod
    def _overlap_start(
        cleaned: str, buf_start: int, buf_end: int, unit: _Unit, opts: ProcessingOptions
    ) -> int:
        """Where the next chunk begins: the tail of the closed chunk, or *unit* itself."""
        if opts.chunk_overlap == 0:
            return unit.start
        seed = max(buf_start, buf_end - opts.chunk_overlap, unit.end - opts.chunk_size)
        while seed < unit.start and cleaned[seed].isspace():
            seed += 1
        return min(seed, unit.start)

    @staticmethod
    def _make_chunk(
        cleaned: str,
        start: int,
        end: int,
        chunk_index: int,
        section: str,
        document_id: str,
        document_name: str,
        opts: ProcessingOptions,
    ) -> TextChunk:
        return TextChunk(
            id=f"{document_id}-{chunk_index}",
            content=cleaned[start:end],
            metadata=ChunkMetadata(
                document_id=document_id,
                chunk_index=chunk_index,
                start_char=start,
                end_char=end,
                document_name=document_name,
                section=section if opts.include_metadata else None,
            ),
        )
