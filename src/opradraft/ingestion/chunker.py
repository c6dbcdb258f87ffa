"""Structure-aware chunker for ordinance text.

Splits full ordinance text into ordered, overlapping chunks aligned to legal
section boundaries when they can be detected, otherwise to paragraphs.

Section headers are tried in order (first pattern with any match wins):
    § 12-3. Title        section sign
    Section 5 - Title    "Section N"
    4. Title             bare enumeration

A section that fits in ``max_size`` becomes one chunk rendered as
``"{marker} {number} - {title}\\n\\n{body}"``. Longer sections are split at
paragraph boundaries; each continuation chunk starts with
``"{marker} {number} (continued)"`` and an overlap tail made of the previous
chunk's trailing whole sentences. Text before the first header is chunked by
paragraphs without section labels, so no input text is dropped.
"""

import bisect
import logging
import re
from dataclasses import dataclass

from opradraft.core.types import ChunkMetadata, TextChunk

logger = logging.getLogger(__name__)

MAX_CHUNK_SIZE = 1500
OVERLAP = 200
MAX_TITLE_LENGTH = 200

_NUMBER = r"(\d+(?:[.-]\d+)*[A-Za-z]?)"
_TITLE_SEP = r"\.?[ \t]*(?:[-–—:.][ \t]*)?"

SECTION_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("§", re.compile(r"^[ \t]*§{1,2}[ \t]*" + _NUMBER + _TITLE_SEP + r"(.*)$", re.MULTILINE)),
    ("Section", re.compile(r"^[ \t]*Section[ \t]+" + _NUMBER + _TITLE_SEP + r"(.*)$", re.MULTILINE | re.IGNORECASE)),
    ("§", re.compile(r"^[ \t]*(\d+)\.[ \t]+(\S.*)$", re.MULTILINE)),
)

PARAGRAPH_BREAK = re.compile(r"\r?\n[ \t\r]*\n\s*")
SENTENCE = re.compile(r"[^.!?]+[.!?]+")
SENTENCE_END = re.compile(r"[.!?]+(?=\s|$)")


@dataclass
class _Unit:
    """A paragraph (or sentence-bounded piece of one) with absolute offsets."""

    text: str
    start: int
    end: int


@dataclass
class _Section:
    marker: str
    number: str
    title: str
    start: int
    body: str
    body_start: int

    @property
    def header(self) -> str:
        label = f"{self.marker} {self.number}"
        return f"{label} - {self.title}" if self.title else label


def _overlap_tail(text: str, size: int) -> str:
    """Trailing whole sentences of ``text`` totaling at most ``size`` chars.

    Falls back to a raw trailing substring (cut at a word boundary) when no
    sentence boundary is detectable or the last sentence alone is too long.
    """
    if size <= 0 or not text:
        return ""

    tail = ""
    for sentence in reversed(SENTENCE.findall(text)):
        sentence = sentence.strip()
        candidate = f"{sentence} {tail}" if tail else sentence
        if len(candidate) > size:
            break
        tail = candidate
    if tail:
        return tail

    raw = text[-size:]
    space = raw.find(" ")
    if 0 <= space < len(raw) - 1 and len(text) > size:
        raw = raw[space + 1:]
    return raw.strip()


def _split_oversized(text: str, offset: int, max_size: int) -> list[_Unit]:
    """Cut a too-long paragraph at sentence ends (or whitespace) into pieces ≤ max_size."""
    boundaries = [m.end() for m in SENTENCE_END.finditer(text)]
    units: list[_Unit] = []
    cur = 0
    while cur < len(text):
        while cur < len(text) and text[cur].isspace():
            cur += 1
        if cur >= len(text):
            break

        limit = cur + max_size
        if limit >= len(text):
            cut = len(text)
        else:
            i = bisect.bisect_right(boundaries, limit) - 1
            if i >= 0 and boundaries[i] > cur:
                cut = boundaries[i]
            else:
                space = text.rfind(" ", cur + 1, limit)
                cut = space if space > cur else limit

        piece = text[cur:cut].rstrip()
        units.append(_Unit(piece, offset + cur, offset + cur + len(piece)))
        cur = cut
    return units


def _paragraph_units(text: str, offset: int, max_size: int) -> list[_Unit]:
    """Paragraphs of ``text`` (which starts at absolute ``offset``), none longer than max_size."""
    units: list[_Unit] = []

    def _add(segment: str, seg_start: int) -> None:
        stripped = segment.strip()
        if not stripped:
            return
        start = offset + seg_start + (len(segment) - len(segment.lstrip()))
        if len(stripped) > max_size:
            units.extend(_split_oversized(stripped, start, max_size))
        else:
            units.append(_Unit(stripped, start, start + len(stripped)))

    pos = 0
    for sep in PARAGRAPH_BREAK.finditer(text):
        _add(text[pos:sep.start()], pos)
        pos = sep.end()
    _add(text[pos:], pos)
    return units


class OrdinanceChunker:
    """Chunk ordinance text into TextChunks with section labels and offsets."""

    def __init__(self, max_size: int = MAX_CHUNK_SIZE, overlap: int = OVERLAP):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        if overlap < 0 or overlap >= max_size:
            raise ValueError("overlap must be in [0, max_size)")
        self.max_size = max_size
        self.overlap = overlap

    # -----------------------------------------------------------------------
    # Section detection
    # -----------------------------------------------------------------------

    def _extract_sections(self, text: str) -> tuple[list[_Section], int]:
        """Sections from the first pattern that matches, plus where the first one starts."""
        for marker, pattern in SECTION_PATTERNS:
            matches = list(pattern.finditer(text))
            if not matches:
                continue

            sections = []
            for i, m in enumerate(matches):
                end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
                number = m.group(1).rstrip(".-")
                title = m.group(2).strip()
                body_start = m.end()

                # Single-line sections: keep the first sentence as the title
                if len(title) > MAX_TITLE_LENGTH:
                    title_start = m.start(2) + (len(m.group(2)) - len(m.group(2).lstrip()))
                    ends = [e.end() for e in SENTENCE_END.finditer(title, 0, MAX_TITLE_LENGTH)]
                    cut = ends[0] if ends else (title.rfind(" ", 0, MAX_TITLE_LENGTH) + 1 or MAX_TITLE_LENGTH)
                    body_start = title_start + cut
                    title = title[:cut]

                sections.append(_Section(
                    marker=marker,
                    number=number,
                    title=title.strip().rstrip(".").strip(),
                    start=m.start() + (len(m.group(0)) - len(m.group(0).lstrip())),
                    body=text[body_start:end],
                    body_start=body_start,
                ))

            logger.debug("Detected %d sections using %r pattern", len(sections), pattern.pattern[:30])
            return sections, matches[0].start()

        return [], len(text)

    # -----------------------------------------------------------------------
    # Packing
    # -----------------------------------------------------------------------

    def _pack(
        self,
        units: list[_Unit],
        first_prefix: str,
        continuation: str,
        first_start: int | None,
    ) -> list[tuple[str, int, int]]:
        """Greedily pack units into (content, start, end) chunks with overlap tails."""
        chunks: list[tuple[str, int, int]] = []
        parts: list[_Unit] = []
        prefix = first_prefix
        start = first_start

        def _length() -> int:
            return len(prefix) + sum(len(p.text) for p in parts) + 2 * max(0, len(parts) - 1)

        def _close() -> None:
            body = "\n\n".join(p.text for p in parts)
            chunk_start = start if start is not None else parts[0].start
            chunks.append(((prefix + body).strip(), chunk_start, parts[-1].end))

        for unit in units:
            if parts and _length() + 2 + len(unit.text) > self.max_size:
                _close()
                prev_body = "\n\n".join(p.text for p in parts)
                prev_start, prev_end = chunks[-1][1], chunks[-1][2]
                tail = _overlap_tail(prev_body, self.overlap)
                prefix = continuation + (f"{tail}\n\n" if tail else "")
                start = max(prev_start, prev_end - len(tail)) if tail else None
                parts = []
            parts.append(unit)

        if parts:
            _close()
        return chunks

    def _chunk_section(self, section: _Section) -> list[tuple[str, int, int]]:
        header = section.header
        body = section.body.strip()
        rendered = f"{header}\n\n{body}" if body else header

        if len(rendered) <= self.max_size:
            end = section.body_start + len(section.body.rstrip()) if body else section.body_start
            return [(rendered, section.start, end)]

        units = _paragraph_units(section.body, section.body_start, self.max_size)
        if not units:
            return [(header, section.start, section.body_start)]
        continuation = f"{section.marker} {section.number} (continued)\n\n"
        return self._pack(units, f"{header}\n\n", continuation, section.start)

    def _chunk_plain(self, text: str, offset: int) -> list[tuple[str, int, int]]:
        units = _paragraph_units(text, offset, self.max_size)
        if not units:
            return []
        return self._pack(units, "", "", None)

    # -----------------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------------

    def chunk(self, full_text: str) -> list[TextChunk]:
        """Split ``full_text`` into ordered chunks indexed 0..n-1."""
        sections, first_start = self._extract_sections(full_text)

        chunks: list[TextChunk] = []

        def _emit(pieces: list[tuple[str, int, int]], number: str | None, title: str | None) -> None:
            for content, start, end in pieces:
                chunks.append(TextChunk(
                    text=content,
                    metadata=ChunkMetadata(
                        chunk_index=len(chunks),
                        start_char=start,
                        end_char=end,
                        section_number=number,
                        section_title=title,
                    ),
                ))

        # Preamble (or the whole text when no structure was found)
        _emit(self._chunk_plain(full_text[:first_start], 0), None, None)

        for section in sections:
            _emit(self._chunk_section(section), section.number, section.title or None)

        logger.info(
            "Chunked %d chars into %d chunks (%d sections)", len(full_text), len(chunks), len(sections),
        )
        return chunks


def chunk_ordinance(full_text: str, max_size: int = MAX_CHUNK_SIZE, overlap: int = OVERLAP) -> list[TextChunk]:
    """Convenience wrapper around OrdinanceChunker."""
    return OrdinanceChunker(max_size=max_size, overlap=overlap).chunk(full_text)
