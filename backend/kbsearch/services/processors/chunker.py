"""
Content Chunking Service

This module splits knowledge-base articles into overlapping, token-bounded
chunks for embedding and retrieval.

Chunking Strategy:
------------------
1. Split the text into paragraphs (blank-line separated)
2. Paragraphs over the piece budget are split into sentences
   (after . ! ? followed by whitespace, or after 。！？)
3. Sentences over the piece budget are hard-split into runs of words
4. Single words over the piece budget are sliced on character boundaries
5. The resulting units are greedily packed into chunks of at most
   CHUNK_SIZE_TOKENS tokens
6. Each chunk after the first starts with the trailing words of the
   previous chunk (at most CHUNK_OVERLAP_TOKENS tokens). When the next
   chunk continues a sliced word, the trailing characters are repeated
   instead.

The piece budget is CHUNK_SIZE_TOKENS - CHUNK_OVERLAP_TOKENS, which leaves
room for the overlap tail in front of every hard-split piece.

Configuration from settings:
- CHUNK_SIZE_TOKENS: 800 (default)
- CHUNK_OVERLAP_TOKENS: 100 (default)

The output depends only on the input text and the configuration, so
re-ingesting unchanged content reproduces the same chunk boundaries.
"""

import re
from typing import NamedTuple

import tiktoken

from kbsearch.core.config import settings
from kbsearch.core.logging import get_logger

logger = get_logger(__name__)

PARAGRAPH_SEPARATOR = "\n\n"

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
# Full-width terminators are not followed by a space in CJK text
_CJK_SENTENCE_SPLIT = re.compile(r"(?<=[。！？])")


class _Unit(NamedTuple):
    """A piece of text that is packed into chunks as a whole."""

    text: str
    # Separator placed before this unit when it joins a non-empty chunk.
    # Empty when the unit continues the previous one with no whitespace.
    separator: str


class TextChunker:
    """
    Token-aware text chunker with overlap between adjacent chunks.

    Features:
    ---------
    - Token-aware chunking (respects embedding model limits)
    - Context preservation (prefers paragraph and sentence boundaries)
    - Overlap between chunks for continuity
    - Deterministic output

    Usage:
    ------
    chunker = TextChunker()
    chunks = chunker.chunk(f"{item.title}\\n\\n{item.content}")

    for index, chunk_text in enumerate(chunks):
        ...
    """

    def __init__(
        self,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ):
        """
        Initialize the chunker with configuration.

        Args:
            chunk_size: Max tokens per chunk (default from settings)
            chunk_overlap: Max trailing tokens repeated into the next chunk
                           (default from settings, 0 disables overlap)

        Raises:
            ValueError: If chunk_size < 1, chunk_overlap < 0, or the
                overlap leaves no room for new text in a chunk
        """
        self.chunk_size = settings.CHUNK_SIZE_TOKENS if chunk_size is None else chunk_size
        self.chunk_overlap = settings.CHUNK_OVERLAP_TOKENS if chunk_overlap is None else chunk_overlap

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1 token")
        if self.chunk_overlap < 0:
            raise ValueError("chunk_overlap cannot be negative")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")

        # Units above this size are split further, so an overlap tail
        # still fits in front of them
        self.piece_budget = self.chunk_size - self.chunk_overlap

        # Initialize tokenizer (cl100k_base, good general purpose)
        try:
            self.tokenizer = tiktoken.get_encoding("cl100k_base")
        except Exception as e:
            # Fallback if the encoding can't be loaded (e.g. offline)
            logger.warning("tokenizer_unavailable", error=str(e))
            self.tokenizer = None

    def count_tokens(self, text: str) -> int:
        """
        Count tokens in text using tiktoken.

        Args:
            text: Text to count tokens in

        Returns:
            Number of tokens
        """
        if self.tokenizer:
            return len(self.tokenizer.encode(text))
        else:
            # Rough approximation: 1 token ≈ 4 characters
            return len(text) // 4

    def chunk(self, text: str) -> list[str]:
        """
        Split text into an ordered list of chunk texts.

        Args:
            text: Text to chunk

        Returns:
            Chunk texts in document order. Empty or whitespace-only input
            yields an empty list.
        """
        if not text or not text.strip():
            return []

        units = self._split_units(text)

        chunks: list[str] = []
        current = ""

        for unit in units:
            if not current:
                current = unit.text
                continue

            candidate = current + unit.separator + unit.text
            if self.count_tokens(candidate) <= self.chunk_size:
                current = candidate
                continue

            # Close the current chunk and carry its tail into the next one
            chunks.append(current)
            tail = self._overlap_tail(current, unit)
            joiner = " " if unit.separator else ""
            current = tail + joiner + unit.text if tail else unit.text

        if current:
            chunks.append(current)

        return chunks

    # ========================================
    # Splitting
    # ========================================

    def _split_units(self, text: str) -> list[_Unit]:
        """
        Break text into units that each fit within the piece budget.

        Args:
            text: Text to split

        Returns:
            Units in document order
        """
        units: list[_Unit] = []

        for paragraph in _PARAGRAPH_SPLIT.split(text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue

            if self.count_tokens(paragraph) <= self.piece_budget:
                units.append(_Unit(paragraph, PARAGRAPH_SEPARATOR))
                continue

            for position, sentence in enumerate(self._split_sentences(paragraph)):
                separator = PARAGRAPH_SEPARATOR if position == 0 else sentence.separator

                if self.count_tokens(sentence.text) <= self.piece_budget:
                    units.append(_Unit(sentence.text, separator))
                else:
                    pieces = self._split_words(sentence.text)
                    units.append(_Unit(pieces[0].text, separator))
                    units.extend(pieces[1:])

        return units

    def _split_sentences(self, paragraph: str) -> list[_Unit]:
        sentences: list[_Unit] = []

        for sentence in _SENTENCE_SPLIT.split(paragraph):
            separator = " "
            for part in _CJK_SENTENCE_SPLIT.split(sentence.strip()):
                if part:
                    sentences.append(_Unit(part, separator))
                    separator = ""

        return sentences

    def _split_words(self, sentence: str) -> list[_Unit]:
        """
        Hard-split an over-long sentence into runs of whole words.

        Args:
            sentence: Sentence exceeding the piece budget

        Returns:
            Word runs (and word slices) each within the piece budget
        """
        pieces: list[_Unit] = []
        run: list[str] = []

        for word in sentence.split():
            if self.count_tokens(word) > self.piece_budget:
                if run:
                    pieces.append(_Unit(" ".join(run), " "))
                    run = []
                slices = self._slice_word(word)
                pieces.append(_Unit(slices[0], " "))
                pieces.extend(_Unit(piece, "") for piece in slices[1:])
                continue

            if run and self.count_tokens(" ".join(run + [word])) > self.piece_budget:
                pieces.append(_Unit(" ".join(run), " "))
                run = []
            run.append(word)

        if run:
            pieces.append(_Unit(" ".join(run), " "))

        return pieces

    def _slice_word(self, word: str) -> list[str]:
        """
        Slice a single over-long word into budget-sized pieces.

        Cuts fall on character boundaries, never inside a multi-byte
        character, so CJK text and emoji survive intact.

        Args:
            word: Word exceeding the piece budget

        Returns:
            Consecutive slices that concatenate back to the word
        """
        slices: list[str] = []
        start = 0

        while start < len(word):
            # Longest slice within budget, at least one character
            low, high = start + 1, len(word)
            while low < high:
                middle = (low + high + 1) // 2
                if self.count_tokens(word[start:middle]) <= self.piece_budget:
                    low = middle
                else:
                    high = middle - 1

            slices.append(word[start:low])
            start = low

        return slices

    # ========================================
    # Overlap
    # ========================================

    def _overlap_tail(self, previous: str, next_unit: _Unit) -> str:
        """
        Pick the end of a closed chunk to repeat at the start of the next one.

        The tail is at most chunk_overlap tokens, and shrinks further so
        that tail + next_unit still fits within the chunk budget. Whole
        words are repeated, unless next_unit continues without whitespace
        (a sliced word or a CJK sentence), in which case trailing
        characters of the last word are.

        Args:
            previous: The chunk that was just closed
            next_unit: The first unit of the next chunk

        Returns:
            Tail text (possibly empty)
        """
        if self.chunk_overlap == 0:
            return ""

        if next_unit.separator:
            parts = previous.split()
            joiner = " "
        else:
            parts = list(previous.split()[-1])
            joiner = ""

        tail = ""
        for start in range(len(parts) - 1, -1, -1):
            candidate = joiner.join(parts[start:])
            if self.count_tokens(candidate) > self.chunk_overlap:
                break
            if self.count_tokens(candidate + joiner + next_unit.text) > self.chunk_size:
                break
            tail = candidate

        return tail


# ========================================
# Utility Functions
# ========================================

def chunk_text(
    text: str,
    chunk_size: int | None = None,
    chunk_overlap: int | None = None,
) -> list[str]:
    """
    Chunk text with a one-off TextChunker.

    Args:
        text: Text to chunk
        chunk_size: Max tokens per chunk (default from settings)
        chunk_overlap: Overlap tokens (default from settings)

    Returns:
        Ordered chunk texts
    """
    return TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap).chunk(text)
