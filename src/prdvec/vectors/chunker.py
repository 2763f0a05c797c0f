"""Boundary-aware text chunking for the vector index.

Splits prose and source code into bounded, overlapping chunks. Each chunk
ends at the most natural boundary available inside its size window and the
next chunk starts a little before it, snapped back to a boundary so that the
seam does not fall mid-sentence.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from prdvec.vectors.schema import CHUNK_OVERLAP, MAX_CHUNK_SIZE


# How far back from the overlap point a chunk start may be moved.
LOOKBACK = 100

PARAGRAPH_BREAKS = ("\n\n",)
SENTENCE_ENDINGS = (". ", ".\n", "! ", "!\n", "? ", "?\n")
LINE_BREAKS = ("\n",)
WORD_BREAKS = (" ",)
BLOCK_ENDINGS = ("}\n",)

DEFAULT_KEYWORDS = ("fn", "def", "class", "pub", "impl", "func")

_C_FAMILY = ("class", "public", "private", "protected", "interface", "struct")
_JS_FAMILY = ("function", "class", "export", "const")

LANGUAGE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "py": ("def", "class", "async def"),
    "rs": ("fn", "pub", "impl", "mod", "struct", "enum", "trait"),
    "go": ("func", "type"),
    "js": _JS_FAMILY,
    "jsx": _JS_FAMILY,
    "ts": _JS_FAMILY + ("interface", "type"),
    "tsx": _JS_FAMILY + ("interface", "type"),
    "vue": _JS_FAMILY,
    "svelte": _JS_FAMILY,
    "java": _C_FAMILY,
    "kt": ("fun", "class", "object", "interface"),
    "scala": ("def", "class", "object", "trait"),
    "cs": _C_FAMILY + ("namespace",),
    "c": ("struct", "static", "void", "int"),
    "h": ("struct", "typedef"),
    "cpp": _C_FAMILY + ("namespace", "void"),
    "hpp": _C_FAMILY + ("namespace",),
    "rb": ("def", "class", "module"),
    "php": ("function", "class", "public", "private"),
    "swift": ("func", "class", "struct", "extension", "protocol"),
}


@dataclass
class Chunk:
    """A contiguous slice of a content unit with positional metadata."""
    index: int
    text: str
    start_char: int
    end_char: int
    line_start: int | None = None
    line_end: int | None = None


def keywords_for_extension(file_extension: str) -> tuple[str, ...]:
    """Declaration keywords that usually begin a top-level block."""
    ext = file_extension.lstrip(".").lower()
    return LANGUAGE_KEYWORDS.get(ext, DEFAULT_KEYWORDS)


def _last_boundary(window: str, patterns: tuple[str, ...]) -> int | None:
    """Offset just past the last occurrence of any pattern, or None."""
    best = None
    for pattern in patterns:
        pos = window.rfind(pattern)
        if pos != -1:
            offset = pos + len(pattern)
            if best is None or offset > best:
                best = offset
    return best


def _last_line_start(window: str, keywords: tuple[str, ...]) -> int | None:
    """Offset of the last line that begins with one of the keywords."""
    best = None
    for keyword in keywords:
        pos = window.rfind(f"\n{keyword} ")
        if pos != -1 and (best is None or pos + 1 > best):
            best = pos + 1
    return best


def _make_chunk(text: str, index: int, start: int, end: int) -> Chunk:
    body = text[start:end]
    line_start = text.count("\n", 0, start) + 1
    # A trailing newline closes the last line rather than opening a new one.
    inner = body[:-1] if body.endswith("\n") else body
    return Chunk(
        index=index,
        text=body,
        start_char=start,
        end_char=end,
        line_start=line_start,
        line_end=line_start + inner.count("\n"),
    )


class TextChunker:
    """Splits text and code into overlapping chunks of at most ``max_size`` characters."""

    def __init__(self, max_size: int = MAX_CHUNK_SIZE, overlap: int = CHUNK_OVERLAP):
        if max_size < 1:
            raise ValueError("max_size must be positive")
        if overlap < 0 or overlap >= max_size:
            raise ValueError("overlap must be between 0 and max_size - 1")
        self.max_size = max_size
        self.overlap = overlap

    def chunk(self, text: str) -> list[Chunk]:
        """Chunk prose, preferring paragraph, sentence, line, then word boundaries."""
        return self._split(text, self._find_text_end, self._find_text_start)

    def chunk_code(self, text: str, file_extension: str = "") -> list[Chunk]:
        """Chunk source code, preferring block ends and declaration starts."""
        keywords = keywords_for_extension(file_extension)
        return self._split(
            text,
            lambda t, start, floor: self._find_code_end(t, start, floor, keywords),
            lambda t, position: self._find_code_start(t, position, keywords),
        )

    def _split(
        self,
        text: str,
        find_end: Callable[[str, int, int], int],
        find_start: Callable[[str, int], int],
    ) -> list[Chunk]:
        if not text:
            return []
        if len(text) <= self.max_size:
            return [_make_chunk(text, 0, 0, len(text))]

        chunks: list[Chunk] = []
        start = 0
        prev_end = 0
        while True:
            end = find_end(text, start, prev_end)
            chunks.append(_make_chunk(text, len(chunks), start, end))
            if end >= len(text):
                break

            next_start = find_start(text, max(end - self.overlap, 0))
            if next_start <= start:
                next_start = start + 1
            start = next_start
            prev_end = end

        return chunks

    def _window(self, text: str, start: int, floor: int) -> tuple[int, int]:
        """Bounds of the region searched for a chunk end.

        Ends are only taken past ``floor`` (the previous chunk's end) so every
        chunk reaches further into the text than the one before it.
        """
        ideal_end = min(start + self.max_size, len(text))
        return max(start, floor), ideal_end

    def _find_text_end(self, text: str, start: int, floor: int) -> int:
        lo, ideal_end = self._window(text, start, floor)
        if ideal_end >= len(text):
            return len(text)

        window = text[lo:ideal_end]
        for patterns in (PARAGRAPH_BREAKS, SENTENCE_ENDINGS, LINE_BREAKS, WORD_BREAKS):
            offset = _last_boundary(window, patterns)
            if offset is not None:
                return lo + offset
        return ideal_end

    def _find_code_end(
        self, text: str, start: int, floor: int, keywords: tuple[str, ...]
    ) -> int:
        lo, ideal_end = self._window(text, start, floor)
        if ideal_end >= len(text):
            return len(text)

        window = text[lo:ideal_end]

        offset = _last_boundary(window, BLOCK_ENDINGS)
        if offset is not None and lo + offset - start >= self.max_size // 2:
            return lo + offset

        offset = _last_boundary(window, PARAGRAPH_BREAKS)
        if offset is not None:
            return lo + offset

        offset = _last_line_start(window, keywords)
        if offset is not None:
            return lo + offset

        offset = _last_boundary(window, LINE_BREAKS)
        if offset is not None:
            return lo + offset
        return ideal_end

    def _find_text_start(self, text: str, position: int) -> int:
        if position <= 0:
            return 0
        lo = max(position - LOOKBACK, 0)
        window = text[lo:position]
        for patterns in (PARAGRAPH_BREAKS, SENTENCE_ENDINGS, LINE_BREAKS, WORD_BREAKS):
            offset = _last_boundary(window, patterns)
            if offset is not None:
                return lo + offset
        return position

    def _find_code_start(self, text: str, position: int, keywords: tuple[str, ...]) -> int:
        if position <= 0:
            return 0
        lo = max(position - LOOKBACK, 0)
        window = text[lo:position]

        offset = _last_line_start(window, keywords)
        if offset is not None:
            return lo + offset
        for patterns in (PARAGRAPH_BREAKS, LINE_BREAKS):
            offset = _last_boundary(window, patterns)
            if offset is not None:
                return lo + offset
        return position
