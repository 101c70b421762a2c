"""Page-aware chunker.

Groups consecutive pages into chunks that fit a provider's prompt budget.
A page is never split: one oversized page becomes one oversized chunk.
Chunk text is the pages' text joined with newlines, untouched otherwise.
"""

from __future__ import annotations

import structlog

from vinotheque.modules.extraction.schemas import PageBlock, TextChunk

logger = structlog.get_logger()

DEFAULT_MAX_CHARS = 8000
DEFAULT_MIN_CHUNK = 1500

# A short trailing chunk may push its predecessor this far past max_chars
TAIL_MERGE_SLACK = 1.2


def chunk_by_pages(
    pages: list[PageBlock],
    max_chars: int = DEFAULT_MAX_CHARS,
    min_chunk: int = DEFAULT_MIN_CHUNK,
) -> list[TextChunk]:
    """Greedily pack pages into chunks of roughly ``max_chars`` characters.

    A chunk is only closed when adding the next page would exceed
    ``max_chars`` AND the chunk already holds ``min_chunk`` characters.
    A short trailing chunk is folded into the previous one when the result
    stays within ``max_chars * 1.2``.
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")

    chunks: list[TextChunk] = []
    acc = ""
    start: int | None = None
    end: int | None = None

    for page in pages:
        if start is None:
            acc, start, end = page.text, page.page, page.page
            continue

        candidate = f"{acc}\n{page.text}"
        if len(candidate) > max_chars and len(acc) >= min_chunk:
            _emit(chunks, acc, start, end)
            acc, start, end = page.text, page.page, page.page
        else:
            acc, end = candidate, page.page

    if start is not None:
        _emit(chunks, acc, start, end)

    if len(chunks) >= 2:
        prev, last = chunks[-2], chunks[-1]
        if (
            len(last.text) < min_chunk
            and len(prev.text) + len(last.text) <= max_chars * TAIL_MERGE_SLACK
        ):
            chunks[-2:] = [
                TextChunk(
                    page_start=prev.page_start,
                    page_end=last.page_end,
                    text=f"{prev.text}\n{last.text}",
                )
            ]

    logger.debug(
        "Chunker: pages packed",
        pages=len(pages),
        chunks=len(chunks),
        max_chars=max_chars,
    )
    return chunks


def _emit(chunks: list[TextChunk], text: str, start: int, end: int | None) -> None:
    # Blank accumulations carry nothing worth sending to a provider
    if not text.strip():
        return
    chunks.append(TextChunk(page_start=start, page_end=end if end is not None else start, text=text))
