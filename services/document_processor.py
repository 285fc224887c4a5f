"""Course-material text extraction and chunking.

Walks a directory of lecture notes, extracts plain text per file type and
splits it into overlapping, sentence-aligned chunks ready for embedding.

Supported: Markdown, PDF, HTML, plain text.  Everything here is synchronous;
async callers run it through ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from errors import IngestionError
from models.document import ChunkMetadata, DocumentChunk

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_OVERLAP_CHARS = 100

SUPPORTED_EXTENSIONS = frozenset({".md", ".markdown", ".pdf", ".html", ".htm", ".txt"})

_SENTENCE_BOUNDARY = re.compile(r"[.!?]+")


# ── Chunking ────────────────────────────────────────────────


def chunk_text(
    text: str,
    max_chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap_chars: int = DEFAULT_OVERLAP_CHARS,
) -> list[str]:
    """Split *text* into sentence-aligned chunks of roughly *max_chunk_size*.

    Sentences are accumulated greedily.  When the next sentence would push
    the chunk past the limit, the chunk is closed and the next one starts
    with the last ``overlap_chars // 10`` words of the closed chunk.  The
    overlap is therefore counted in words, not characters.

    A sentence longer than the limit is never split, so such a chunk can
    exceed *max_chunk_size*.  Input without any sentence text comes back
    whole as a single chunk.
    """
    sentences = [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]
    overlap_words = overlap_chars // 10

    chunks: list[str] = []
    current = ""
    for sentence in sentences:
        if current and len(current) + len(sentence) > max_chunk_size:
            chunks.append(current.strip())
            tail = current.split(" ")[-overlap_words:] if overlap_words > 0 else []
            current = " ".join(tail + [sentence]).strip()
        else:
            current = f"{current} {sentence}" if current else sentence

    if current.strip():
        chunks.append(current.strip())

    return chunks if chunks else [text]


# ── Text extraction ─────────────────────────────────────────


def _markdown_to_text(path: Path) -> str:
    import markdown
    from bs4 import BeautifulSoup

    html = markdown.markdown(path.read_text(encoding="utf-8"))
    return BeautifulSoup(html, "html.parser").get_text()


def _html_to_text(path: Path) -> str:
    from bs4 import BeautifulSoup

    soup = BeautifulSoup(path.read_text(encoding="utf-8"), "html.parser")
    root = soup.body or soup
    return root.get_text()


def _pdf_to_text(path: Path) -> str:
    import fitz  # PyMuPDF

    with fitz.open(str(path)) as pdf:
        return "\n".join(page.get_text() for page in pdf)


def _plain_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


_EXTRACTORS = {
    ".md": _markdown_to_text,
    ".markdown": _markdown_to_text,
    ".pdf": _pdf_to_text,
    ".html": _html_to_text,
    ".htm": _html_to_text,
    ".txt": _plain_text,
}


def extract_text(path: str | Path) -> str:
    """Extract plain text from a supported file.

    Raises:
        ValueError: unsupported extension.
    """
    path = Path(path)
    ext = path.suffix.lower()
    extractor = _EXTRACTORS.get(ext)
    if extractor is None:
        raise ValueError(f"Unsupported file type for text extraction: {ext}")
    return extractor(path)


# ── Files & directories ─────────────────────────────────────


def process_file(
    path: str | Path,
    max_chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap_chars: int = DEFAULT_OVERLAP_CHARS,
) -> list[DocumentChunk]:
    """Extract and chunk one file, tagging each chunk with its origin.

    Unsupported extensions are skipped.  A file that fails to read or parse
    is logged and contributes no chunks.
    """
    path = Path(path)
    ext = path.suffix.lower()
    logger.info("Processing file: %s", path.name)

    if ext not in SUPPORTED_EXTENSIONS:
        logger.warning("Unsupported file type: %s for file %s", ext, path.name)
        return []

    try:
        text = extract_text(path)
    except Exception:
        logger.exception("Failed to process %s file: %s", ext, path)
        return []

    if not text.strip():
        logger.info("No text extracted from %s", path.name)
        return []

    pieces = chunk_text(text, max_chunk_size, overlap_chars)
    return [
        DocumentChunk(
            text=piece,
            metadata=ChunkMetadata(
                file_name=path.name,
                file_path=str(path),
                chunk_index=i,
                total_chunks=len(pieces),
                file_type=ext,
            ),
        )
        for i, piece in enumerate(pieces)
    ]


def process_directory(
    root: str | Path,
    recursive: bool = True,
    max_chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap_chars: int = DEFAULT_OVERLAP_CHARS,
) -> list[DocumentChunk]:
    """Collect chunks from every supported file under *root*.

    Entries are visited depth-first in name order so repeated runs produce
    chunks in the same sequence.

    Raises:
        IngestionError: *root* does not exist or is not a directory.
    """
    root = Path(root)
    if not root.is_dir():
        raise IngestionError(f"Directory not found: {root}")

    chunks: list[DocumentChunk] = []
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            if recursive:
                chunks.extend(
                    process_directory(entry, recursive, max_chunk_size, overlap_chars)
                )
        elif entry.is_file():
            chunks.extend(process_file(entry, max_chunk_size, overlap_chars))

    logger.info("Processed directory %s: %d chunks", root, len(chunks))
    return chunks
