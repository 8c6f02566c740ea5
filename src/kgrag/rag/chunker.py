"""Boundary-aware fixed-window chunking for document text.

Windows of chunk_size characters prefer to end at the last newline, then the
last space, before falling back to a hard cut. Consecutive windows overlap by
up to `overlap` characters.
"""

from __future__ import annotations

from collections.abc import Iterator


DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 100


def normalize_text(raw: str) -> str:
    """Normalize line endings and strip surrounding whitespace."""
    return raw.replace("\r\n", "\n").strip()


def iter_windows(text: str, chunk_size: int, overlap: int) -> Iterator[tuple[int, int]]:
    """Yield (start, end) spans of each window, before trimming.

    Every iteration moves start forward, so the walk always terminates.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")

    length = len(text)
    start = 0
    while start < length:
        end = start + chunk_size
        if end > length:
            end = length
        else:
            # Break at the last newline or space inside the window
            newline = text.rfind("\n", start + 1, end + 1)
            if newline > start:
                end = newline
            else:
                space = text.rfind(" ", start + 1, end + 1)
                if space > start:
                    end = space

        yield start, end

        if end >= length:
            break

        next_start = end - overlap
        if next_start <= start or next_start <= end - chunk_size:
            next_start = end
        start = next_start


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[str]:
    """Split text into ordered, non-empty, trimmed chunks."""
    chunks = []
    for start, end in iter_windows(text, chunk_size, overlap):
        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)
    return chunks
