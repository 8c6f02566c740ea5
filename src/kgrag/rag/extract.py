"""Text extraction for supported document types."""

from __future__ import annotations

import logging
from pathlib import Path

from kgrag.rag.errors import ExtractionError, UnsupportedTypeError

logger = logging.getLogger(__name__)


SUPPORTED_TEXT_EXTENSIONS = frozenset({
    ".md", ".markdown", ".txt", ".json", ".ts", ".tsx", ".js", ".jsx",
    ".py", ".java", ".kt", ".kts", ".go", ".rs", ".rb", ".php", ".swift",
    ".scala", ".c", ".h", ".hpp", ".hh", ".cpp", ".cc", ".cxx", ".cs",
    ".m", ".mm", ".sh", ".bash", ".zsh", ".ps1", ".psm1", ".csh", ".sql",
    ".yml", ".yaml", ".toml", ".ini", ".cfg", ".conf", ".log",
})

SUPPORTED_BINARY_EXTENSIONS = frozenset({".pdf", ".docx"})

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def get_extension(path: Path | str) -> str:
    return Path(path).suffix.lower()


def is_supported(path: Path | str) -> bool:
    """Whether the file's extension is on the allow-list."""
    ext = get_extension(path)
    return ext in SUPPORTED_TEXT_EXTENSIONS or ext in SUPPORTED_BINARY_EXTENSIONS


def mime_type_for(path: Path | str) -> str:
    return MIME_TYPES.get(get_extension(path), "text/plain")


def extract_text(path: Path) -> str:
    """Extract raw text from a supported file.

    Raises:
        UnsupportedTypeError: extension not on the allow-list.
        ExtractionError: the file could not be read or parsed.
    """
    ext = get_extension(path)
    if not is_supported(path):
        raise UnsupportedTypeError(f"Unsupported file extension: {ext or path.name}")

    try:
        if ext in SUPPORTED_TEXT_EXTENSIONS:
            return path.read_text(encoding="utf-8", errors="replace")
        if ext == ".pdf":
            return _extract_pdf(path)
        return _extract_docx(path)
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(f"Failed to extract text from {path.name}: {e}") from e


def _extract_pdf(path: Path) -> str:
    from pypdf import PdfReader

    reader = PdfReader(path)
    pages = []
    for page in reader.pages:
        text = page.extract_text() or ""
        if text.strip():
            pages.append(text)
    return "\n".join(pages)


def _extract_docx(path: Path) -> str:
    from docx import Document

    doc = Document(str(path))
    return "\n".join(p.text for p in doc.paragraphs)
