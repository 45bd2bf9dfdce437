"""Recursive-boundary text chunking with overlapping windows.

Splits extracted document text into :class:`~kbrag.models.knowledge.ChunkRecord`
objects of at most ``chunk_size`` characters (default 1000) with up to
``overlap`` characters (default 200) shared between neighbours.

The splitter tries separators in priority order::

    "\\n\\n"  paragraph break
    "\\n"    line break
    ". ! ?" sentence-ending punctuation
    "; :"   clause punctuation
    " "     whitespace
    ""      hard character cut (always last)

It cuts the text at the first separator that occurs in it, keeping each
separator attached to the piece before it, then greedily merges adjacent
pieces into windows.  Any piece still larger than ``chunk_size`` is split
again with the lower-priority separators.  Because pieces are contiguous
spans of the source, every window is a contiguous span too, and its
start/end offsets are known exactly without searching the text again.
Consecutive windows overlap by the tail pieces of the previous window whose
combined length is at most ``overlap``.

Token counts are ``ceil(len / 4)`` estimates, not tokenizer output.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Sequence

import structlog

from kbrag.models.knowledge import ChunkPosition, ChunkRecord, estimate_token_count
from kbrag.utils.errors import EmptyInputError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ".", "!", "?", ";", ":", " ", "")

_Span = tuple[int, int]


class TextChunker:
    """Splits text into overlapping chunks honouring semantic boundaries.

    Parameters
    ----------
    chunk_size:
        Maximum characters per chunk before trimming.
    overlap:
        Maximum characters shared by consecutive chunks.  Must be smaller
        than *chunk_size*.
    separators:
        Boundary strings in priority order.  A trailing ``""`` (hard cut)
        is appended when missing.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        overlap: int = 200,
        separators: Sequence[str] | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError(
                f"overlap must be in [0, chunk_size), got {overlap} for chunk_size {chunk_size}"
            )
        self._chunk_size = chunk_size
        self._overlap = overlap
        seps = list(separators) if separators else list(DEFAULT_SEPARATORS)
        if seps[-1] != "":
            seps.append("")
        self._separators = seps

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split(self, text: str) -> list[ChunkRecord]:
        """Split *text* into ordered chunk records.

        Returns
        -------
        list[ChunkRecord]
            Chunks with ordinals ``0..n-1``, trimmed content, token estimates
            and pre-trim source offsets.

        Raises
        ------
        EmptyInputError
            If *text* is empty or whitespace only.
        """
        if not text or not text.strip():
            raise EmptyInputError("Text cannot be empty")

        spans = self._split_span(text, 0, len(text), self._separators)

        records: list[ChunkRecord] = []
        for start, end in spans:
            content = text[start:end].strip()
            if not content:
                continue
            records.append(
                ChunkRecord(
                    content=content,
                    chunk_index=len(records),
                    token_count=estimate_token_count(content),
                    position=ChunkPosition(start_index=start, end_index=end),
                )
            )

        logger.debug(
            "chunking_complete",
            num_chunks=len(records),
            chars=len(text),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return records

    def split_pages(self, pages: Sequence[tuple[str, int]]) -> list[ChunkRecord]:
        """Split multi-page text, keeping page attribution on every chunk.

        Each ``(page_text, page_number)`` pair is split independently;
        ordinals are then renumbered globally across pages and
        ``position.page`` is set.  Offsets stay relative to their page.
        Blank pages are skipped.

        Raises
        ------
        EmptyInputError
            If every page is blank.
        """
        records: list[ChunkRecord] = []
        for page_text, page_number in pages:
            if not page_text or not page_text.strip():
                logger.debug("blank_page_skipped", page=page_number)
                continue
            for record in self.split(page_text):
                records.append(
                    record.model_copy(
                        update={
                            "chunk_index": len(records),
                            "position": record.position.model_copy(update={"page": page_number}),
                        }
                    )
                )

        if not records:
            raise EmptyInputError("All pages are empty")
        return records

    # ------------------------------------------------------------------
    # Recursive splitting
    # ------------------------------------------------------------------

    def _split_span(self, text: str, start: int, end: int, separators: list[str]) -> list[_Span]:
        """Split ``text[start:end]`` into window spans using *separators*."""
        separator = ""
        remaining: list[str] = []
        for i, sep in enumerate(separators):
            if sep == "":
                break
            if text.find(sep, start, end) != -1:
                separator = sep
                remaining = separators[i + 1 :]
                break

        windows: list[_Span] = []
        fitting: list[_Span] = []
        for piece_start, piece_end in self._cut(text, start, end, separator):
            if piece_end - piece_start <= self._chunk_size:
                fitting.append((piece_start, piece_end))
                continue
            if fitting:
                windows.extend(self._merge(fitting))
                fitting = []
            windows.extend(self._split_span(text, piece_start, piece_end, remaining))

        if fitting:
            windows.extend(self._merge(fitting))
        return windows

    @staticmethod
    def _cut(text: str, start: int, end: int, separator: str) -> list[_Span]:
        """Cut at every *separator*, attaching it to the preceding piece."""
        if separator == "":
            return [(i, i + 1) for i in range(start, end)]

        pieces: list[_Span] = []
        pos = start
        while True:
            idx = text.find(separator, pos, end)
            if idx == -1:
                break
            cut = idx + len(separator)
            pieces.append((pos, cut))
            pos = cut
        if pos < end:
            pieces.append((pos, end))
        return pieces

    def _merge(self, pieces: list[_Span]) -> list[_Span]:
        """Greedily pack contiguous pieces into overlapping windows."""
        windows: list[_Span] = []
        current: deque[_Span] = deque()
        total = 0

        for piece_start, piece_end in pieces:
            length = piece_end - piece_start
            if current and total + length > self._chunk_size:
                windows.append((current[0][0], current[-1][1]))
                # Keep a tail of at most `overlap` chars that still leaves
                # room for the incoming piece.
                while current and (total > self._overlap or total + length > self._chunk_size):
                    head_start, head_end = current.popleft()
                    total -= head_end - head_start
            current.append((piece_start, piece_end))
            total += length

        if current:
            windows.append((current[0][0], current[-1][1]))
        return windows


def validate_chunk_sizes(
    chunks: Sequence[ChunkRecord],
    max_tokens: int = 2000,
) -> tuple[bool, list[ChunkRecord]]:
    """Report chunks whose token estimate exceeds *max_tokens*.

    Returns
    -------
    tuple[bool, list[ChunkRecord]]
        ``(valid, oversized)`` where *valid* is ``True`` when nothing is
        oversized.
    """
    oversized = [c for c in chunks if c.token_count > max_tokens]
    return not oversized, oversized
