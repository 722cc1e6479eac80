# src/recursa/chunker/sentence.py
"""Paragraph- and sentence-respecting chunker."""

from __future__ import annotations

import math
import re

import pysbd

from recursa.exceptions import EmptyDocumentError
from recursa.models import Chunk

# A blank line (possibly holding spaces or tabs) ends a paragraph
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n\s*")


class SentenceChunker:
    """Split text into contiguous chunks that never cut a sentence.

    Paragraphs (separated by blank lines) are the preferred unit: whole
    paragraphs are packed greedily up to the target size. Only a paragraph
    longer than the target is broken into its sentences, found with pySBD
    (Python Sentence Boundary Disambiguation). A sentence longer than the
    target is split on character limits, which is also the behaviour for
    every span when respect_sentences is False.

    Chunk spans tile the input exactly: no gaps, no overlap. Whitespace
    between paragraphs or sentences belongs to the preceding chunk.

    Example:
        chunker = SentenceChunker()
        chunks = chunker.split(document.text, target_chunk_count=8)
    """

    def __init__(self, language: str = "en") -> None:
        """Initialize the chunker.

        Args:
            language: Language code for sentence segmentation (default: "en").
                      Supports 22 languages including en, de, fr, es, etc.
        """
        self.language = language
        self.segmenter = pysbd.Segmenter(language=language, clean=False)

    def split(
        self,
        text: str,
        target_chunk_count: int,
        respect_sentences: bool = True,
        *,
        offset: int = 0,
        depth: int = 0,
        parent_index: int | None = None,
        start_index: int = 0,
        min_chunk_size: int = 1,
    ) -> list[Chunk]:
        """Split text into roughly target_chunk_count chunks.

        Args:
            text: Text to split.
            target_chunk_count: Desired number of chunks. The target size is
                ceil(len(text) / target_chunk_count) characters.
            respect_sentences: Keep paragraphs whole unless one alone exceeds
                the target size, and sentences whole unless one alone does.
            offset: Position of text within the document. Added to every span.
            depth: Recursion depth recorded on each chunk.
            parent_index: Index of the chunk being re-split, if any.
            start_index: Index given to the first chunk.
            min_chunk_size: Floor on the target size. A paragraph no longer
                than this is never split.

        Raises:
            EmptyDocumentError: If text is empty or whitespace only.
        """
        if not text or not text.strip():
            raise EmptyDocumentError("Cannot chunk an empty document")
        if target_chunk_count < 1:
            raise ValueError("target_chunk_count must be >= 1")

        target_size = max(1, min_chunk_size, math.ceil(len(text) / target_chunk_count))
        if respect_sentences:
            spans = self._pack(self._units(text, target_size), target_size, text)
        else:
            spans = _hard_split(text, 0, len(text), target_size)

        return [
            Chunk(
                index=start_index + i,
                text=text[start:end],
                char_span=(offset + start, offset + end),
                depth=depth,
                parent_index=parent_index,
            )
            for i, (start, end) in enumerate(spans)
        ]

    def paragraph_spans(self, text: str) -> list[tuple[int, int]]:
        """Return paragraph spans that tile text from 0 to len(text).

        Leading blank lines join the first paragraph and trailing ones the last.
        """
        starts = [0]
        for match in _PARAGRAPH_BREAK.finditer(text):
            if match.end() < len(text) and text[starts[-1] : match.start()].strip():
                starts.append(match.end())
        ends = starts[1:] + [len(text)]
        return list(zip(starts, ends, strict=True))

    def _units(self, text: str, target_size: int) -> list[tuple[int, int]]:
        """Paragraph spans, with sentence spans in place of oversized paragraphs."""
        units: list[tuple[int, int]] = []
        for start, end in self.paragraph_spans(text):
            if end - start <= target_size:
                units.append((start, end))
                continue
            units.extend(
                (start + s, start + e) for s, e in self.sentence_spans(text[start:end])
            )
        return units

    def sentence_spans(self, text: str) -> list[tuple[int, int]]:
        """Return sentence spans that tile text from 0 to len(text)."""
        starts: list[int] = []
        cursor = 0
        for segment in self.segmenter.segment(text):
            sentence = segment.strip()
            if not sentence:
                continue
            position = text.find(sentence, cursor)
            if position == -1:
                # Segmenter altered the text; stop and keep the rest as one span
                break
            starts.append(position)
            cursor = position + len(sentence)

        if not starts:
            return [(0, len(text))]
        starts[0] = 0
        ends = starts[1:] + [len(text)]
        return list(zip(starts, ends, strict=True))

    @staticmethod
    def _pack(
        sentences: list[tuple[int, int]],
        target_size: int,
        text: str,
    ) -> list[tuple[int, int]]:
        spans: list[tuple[int, int]] = []
        current_start: int | None = None
        current_end = 0
        for start, end in sentences:
            if end - start > target_size:
                if current_start is not None:
                    spans.append((current_start, current_end))
                    current_start = None
                spans.extend(_hard_split(text, start, end, target_size))
                continue
            if current_start is None:
                current_start, current_end = start, end
            elif end - current_start > target_size:
                spans.append((current_start, current_end))
                current_start, current_end = start, end
            else:
                current_end = end
        if current_start is not None:
            spans.append((current_start, current_end))
        return spans


def _hard_split(text: str, start: int, end: int, size: int) -> list[tuple[int, int]]:
    """Split [start, end) into pieces of at most size characters.

    Breaks after the last whitespace in the second half of a piece when
    there is one, so words stay intact where possible.
    """
    spans: list[tuple[int, int]] = []
    position = start
    while end - position > size:
        cut = position + size
        space = text.rfind(" ", position + size // 2, cut)
        if space != -1:
            cut = space + 1
        spans.append((position, cut))
        position = cut
    if position < end:
        spans.append((position, end))
    return spans
