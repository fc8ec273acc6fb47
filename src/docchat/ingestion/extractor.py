"""Text extraction from uploaded PDF and DOCX documents.

Thin wrappers around ``pypdf`` and ``docx2txt`` working on in-memory
bytes.  Every format-specific failure is converted into an
:class:`~docchat.errors.ExtractionError` carrying a probable cause, so the
orchestrator can substitute :func:`build_fallback_text` and keep the
ingestion going.
"""

from __future__ import annotations

import io
import logging
import re
import zipfile
from enum import Enum

import docx2txt
from pypdf import PdfReader
from pypdf.errors import DependencyError, FileNotDecryptedError, PdfReadError

from docchat.errors import ExtractionCause, ExtractionError

logger = logging.getLogger(__name__)


class FileType(str, Enum):
    PDF = "pdf"
    DOCX = "docx"

    @classmethod
    def from_filename(cls, filename: str) -> FileType:
        """Infer the file type from an extension; raises ``ValueError`` when unsupported."""
        suffix = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        return cls(suffix)


_LIGATURES = {
    "ﬀ": "ff",
    "ﬁ": "fi",
    "ﬂ": "fl",
    "ﬃ": "ffi",
    "ﬄ": "ffl",
}
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_HORIZONTAL_SPACE = re.compile(r"[^\S\n]{2,}")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def clean_text(text: str, *, drop_blank_lines: bool = True) -> str:
    """Normalise extracted text.

    Repairs PDF ligatures, converts line endings to ``\\n``, strips control
    characters, collapses runs of two or more horizontal whitespace
    characters to one space and 3+ newlines to 2, and trims every line.
    Blank lines are dropped unless *drop_blank_lines* is false, in which
    case single blank lines survive as paragraph separators.
    """
    for ligature, replacement in _LIGATURES.items():
        text = text.replace(ligature, replacement)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS.sub("", text)
    text = _HORIZONTAL_SPACE.sub(" ", text)
    lines = [line.strip() for line in text.split("\n")]
    if drop_blank_lines:
        return "\n".join(line for line in lines if line).strip()
    return _EXCESS_NEWLINES.sub("\n\n", "\n".join(lines)).strip()


class TextExtractor:
    """Convert raw document bytes into cleaned plain text."""

    def extract(self, data: bytes, file_type: FileType | str) -> str:
        """Extract text from *data*.

        Raises
        ------
        ExtractionError
            When the document is unreadable, encrypted, or yields no text.
        """
        try:
            kind = FileType(file_type)
        except ValueError as exc:
            raise ExtractionError(
                f"Unsupported file type: {file_type!r}", cause=ExtractionCause.UNSUPPORTED
            ) from exc

        if kind is FileType.PDF:
            raw = self.extract_pdf(data)
        else:
            raw = self.extract_docx(data)

        text = clean_text(raw)
        if not text:
            raise ExtractionError(
                f"No text extracted from {kind.value.upper()}", cause=ExtractionCause.IMAGE_ONLY
            )
        return text

    def extract_pdf(self, data: bytes) -> str:
        """Concatenate the text layer of every page, one page per line block."""
        try:
            reader = PdfReader(io.BytesIO(data))
            if reader.is_encrypted and not reader.decrypt(""):
                raise ExtractionError("PDF is password-protected", cause=ExtractionCause.ENCRYPTED)
            pages = [page.extract_text() or "" for page in reader.pages]
        except ExtractionError:
            raise
        except (FileNotDecryptedError, DependencyError) as exc:
            raise ExtractionError(f"PDF is encrypted: {exc}", cause=ExtractionCause.ENCRYPTED) from exc
        except PdfReadError as exc:
            raise ExtractionError(f"PDF could not be parsed: {exc}", cause=ExtractionCause.CORRUPTED) from exc
        except Exception as exc:
            raise ExtractionError(f"PDF extraction failed: {exc}", cause=_guess_cause(exc)) from exc

        text = "\n".join(pages)
        if not text.strip():
            raise ExtractionError("No text extracted from PDF", cause=ExtractionCause.IMAGE_ONLY)
        logger.debug("Extracted %d characters from %d PDF pages", len(text), len(pages))
        return text

    def extract_docx(self, data: bytes) -> str:
        """Return the raw text of the DOCX zip/XML container."""
        try:
            text = docx2txt.process(io.BytesIO(data))
        except (zipfile.BadZipFile, KeyError) as exc:
            raise ExtractionError(f"DOCX could not be opened: {exc}", cause=ExtractionCause.CORRUPTED) from exc
        except Exception as exc:
            raise ExtractionError(f"DOCX extraction failed: {exc}", cause=_guess_cause(exc)) from exc

        if not text or not text.strip():
            raise ExtractionError("No text extracted from DOCX", cause=ExtractionCause.IMAGE_ONLY)
        return text


def _guess_cause(exc: BaseException) -> ExtractionCause:
    message = str(exc).lower()
    if "timeout" in message or "timed out" in message:
        return ExtractionCause.TIMEOUT
    if "password" in message or "encrypt" in message:
        return ExtractionCause.ENCRYPTED
    return ExtractionCause.UNKNOWN


_CAUSE_EXPLANATIONS: dict[ExtractionCause, tuple[str, ...]] = {
    ExtractionCause.TIMEOUT: (
        "Processing the document took too long and timed out.",
        "This usually means a very large or complex file, often with many images.",
    ),
    ExtractionCause.ENCRYPTED: (
        "The document is password-protected or encrypted.",
        "Remove the protection and upload it again to make its text searchable.",
    ),
    ExtractionCause.IMAGE_ONLY: (
        "The document contains no extractable text.",
        "This is common for scanned documents or files made only of images.",
        "Running OCR software before uploading will make the text searchable.",
    ),
    ExtractionCause.CORRUPTED: (
        "The file structure could not be read.",
        "The file may be corrupted or use an unsupported feature.",
    ),
    ExtractionCause.UNSUPPORTED: ("The file format is not supported for text extraction.",),
    ExtractionCause.UNKNOWN: (
        "Text extraction failed for an unknown reason.",
        "Complex formatting or embedded objects may be preventing extraction.",
    ),
}


def build_fallback_text(
    document_name: str,
    file_size: int,
    file_type: FileType | str,
    cause: ExtractionCause = ExtractionCause.UNKNOWN,
) -> str:
    """Describe a document whose text could not be extracted.

    The result is deterministic for a given input and is itself valid
    pipeline input, so a failed extraction never blocks ingestion.
    """
    kind = file_type.value if isinstance(file_type, FileType) else str(file_type)
    size_kb = file_size / 1024
    size_mb = file_size / (1024 * 1024)
    lines = [
        f"Document: {document_name}",
        "",
        "This document was uploaded and stored, but its text could not be extracted automatically.",
        "",
        "DOCUMENT INFORMATION:",
        f"- File name: {document_name}",
        f"- File size: {size_kb:.2f} KB ({size_mb:.2f} MB)",
        f"- Document type: {kind.upper()}",
        "",
        "WHY TEXT EXTRACTION FAILED:",
        *(f"- {reason}" for reason in _CAUSE_EXPLANATIONS[cause]),
        "",
        "WHAT YOU CAN DO:",
        "- Questions about this document can only be answered from the information above.",
        "- For best results upload a text-based PDF or Word document.",
    ]
    return "\n".join(lines)
