"""
Sliding-Window Chunker
-----------------------
Normalises loaded fragments into one text and cuts it into fixed-size
windows with a fixed overlap.

Window layout (size S, overlap O, stride S - O):

    [0, S)  [S-O, 2S-O)  [2(S-O), 3S-2O) ...

The last window is the first one that reaches the end of the text, so it
may be shorter than S but never empty, and no window is fully contained in
the one before it.  Stripping the first O units from every window after the
first and concatenating reconstructs the normalised text exactly.

Windows are measured in characters by default.  ``unit="token"`` measures
them in cl100k_base BPE tokens instead (the tokenizer used by
text-embedding-3-* and the GPT-4 family).
"""
from __future__ import annotations

from functools import lru_cache
from typing import Iterable, Sequence

import tiktoken
from loguru import logger

from docqa.schemas import RawFragment, TextChunk

# ── Constants ─────────────────────────────────────────────────────────────────

CHUNK_SIZE = 500
CHUNK_OVERLAP = 200
FRAGMENT_SEPARATOR = "\n"
UNITS = {"char", "token"}


@lru_cache(maxsize=1)
def _encoder() -> tiktoken.Encoding:
    return tiktoken.get_encoding("cl100k_base")


def normalize_fragments(fragments: Iterable[RawFragment]) -> list[str]:
    """String content passes through; list content is joined by newline."""
    return [fragment.normalized() for fragment in fragments]


def join_fragments(fragments: Iterable[RawFragment]) -> str:
    """The single normalised text that the chunker windows over."""
    return FRAGMENT_SEPARATOR.join(normalize_fragments(fragments))


def window_bounds(length: int, size: int, overlap: int) -> list[tuple[int, int]]:
    """Return the [start, end) bounds of every window over a sequence of *length*."""
    if length <= 0:
        return []
    stride = size - overlap
    bounds: list[tuple[int, int]] = []
    start = 0
    while True:
        end = min(start + size, length)
        bounds.append((start, end))
        if end >= length:
            break
        start += stride
    return bounds


# ── Main Chunker ──────────────────────────────────────────────────────────────

class SlidingWindowChunker:
    """
    Deterministic fixed-size, fixed-overlap chunker.

    Usage:
        chunker = SlidingWindowChunker(chunk_size=500, chunk_overlap=200)
        chunks = chunker.split(fragments)
    """

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        unit: str = "char",
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0:
            raise ValueError(f"chunk_overlap must be >= 0, got {chunk_overlap}")
        if chunk_overlap >= chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be smaller than chunk_size ({chunk_size})"
            )
        if unit not in UNITS:
            raise ValueError(f"unit must be one of {sorted(UNITS)}, got {unit!r}")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.unit = unit

    @classmethod
    def from_config(cls, config: dict) -> "SlidingWindowChunker":
        cfg = config.get("chunking", {})
        return cls(
            chunk_size=cfg.get("chunk_size", CHUNK_SIZE),
            chunk_overlap=cfg.get("chunk_overlap", CHUNK_OVERLAP),
            unit=cfg.get("unit", "char"),
        )

    def windows(self, text: str) -> list[tuple[int, int, str]]:
        """Return ``(start, end, content)`` per window, offsets in ``self.unit``."""
        if self.unit == "token":
            tokens: Sequence[int] = _encoder().encode(text)
            return [
                (start, end, _encoder().decode(list(tokens[start:end])))
                for start, end in window_bounds(len(tokens), self.chunk_size, self.chunk_overlap)
            ]
        return [
            (start, end, text[start:end])
            for start, end in window_bounds(len(text), self.chunk_size, self.chunk_overlap)
        ]

    def split_text(self, text: str) -> list[str]:
        """Cut *text* into overlapping windows."""
        return [content for _, _, content in self.windows(text)]

    def split(self, fragments: Iterable[RawFragment]) -> list[TextChunk]:
        """
        Normalise the fragments, join them and window the result.

        Returns:
            TextChunks in document order, each carrying its position.
        """
        fragments = list(fragments)
        text = join_fragments(fragments)

        chunks = [
            TextChunk(
                content=content,
                chunk_index=i,
                metadata={
                    "chunk_index": i,
                    "loc": {"start": start, "length": end - start},
                    "unit": self.unit,
                },
            )
            for i, (start, end, content) in enumerate(self.windows(text))
        ]

        logger.debug(
            f"[Chunker] {len(fragments)} fragment(s) | {len(text)} chars | "
            f"size={self.chunk_size} overlap={self.chunk_overlap} unit={self.unit} "
            f"-> {len(chunks)} chunk(s)"
        )
        return chunks
