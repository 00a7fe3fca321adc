"""Recursive text splitting with overlap for the RAG pipeline.

Text is split on the largest structural boundary that keeps every piece
within the size limit: paragraphs first, then sentences, then words and
finally raw character windows. Size is measured with a pluggable length
function so that limits can be expressed in model tokens.
"""
import re
from functools import lru_cache
from typing import Callable, List, Optional
import structlog
import tiktoken

from ragchain import config
from ragchain.errors import BlankInputError, ConfigurationError
from ragchain.rag.models import Document, TextSegment, SEGMENT_INDEX

logger = structlog.get_logger()

LengthFunction = Callable[[str], int]

PARAGRAPH, SENTENCE, WORD, CHARACTER = range(4)

PARAGRAPH_PATTERN = re.compile(r"\s*\n\s*\n\s*")
SENTENCE_PATTERN = re.compile(r"(?<=[.!?])\s+")

# Separator re-inserted between pieces merged at each level
JOINERS = {PARAGRAPH: "\n\n", SENTENCE: " ", WORD: " ", CHARACTER: ""}


@lru_cache(maxsize=None)
def _get_encoding(name: str):
    return tiktoken.get_encoding(name)


def token_length(text: str) -> int:
    """Count tokens in text with the configured tiktoken encoding."""
    return len(_get_encoding(config.TOKENIZER_ENCODING).encode(text))


class TextSplitter:
    """Recursive splitter producing overlapping, size-bounded segments."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        length_function: Optional[LengthFunction] = None,
    ):
        """Initialize the text splitter.

        Args:
            chunk_size: Maximum segment size in length units (default from config)
            chunk_overlap: Context shared by adjacent segments (default from config)
            length_function: Measures text size (default: tiktoken token count)

        Raises:
            ConfigurationError: If the size parameters are invalid
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = (
            config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        )
        self.length_function = length_function or token_length

        if self.chunk_size <= 0:
            raise ConfigurationError(
                f"Chunk size must be positive, got {self.chunk_size}"
            )
        if self.chunk_overlap < 0:
            raise ConfigurationError(
                f"Overlap must not be negative, got {self.chunk_overlap}"
            )
        if self.chunk_overlap >= self.chunk_size:
            raise ConfigurationError(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )

        logger.debug(
            "splitter_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def split(self, document: Document) -> List[TextSegment]:
        """Split a document into segments carrying its metadata.

        Args:
            document: Document to split

        Returns:
            Ordered list of TextSegment objects

        Raises:
            BlankInputError: If the document has no non-whitespace text
        """
        if not document.text or not document.text.strip():
            raise BlankInputError(
                "Document is blank", details={"metadata": dict(document.metadata)}
            )

        pieces = self.split_text(document.text)
        segments = []
        for index, piece in enumerate(pieces):
            metadata = dict(document.metadata)
            metadata[SEGMENT_INDEX] = str(index)
            segments.append(TextSegment(text=piece, metadata=metadata))

        logger.info("document_split", **self.get_segment_stats(segments))
        return segments

    def split_text(self, text: str) -> List[str]:
        """Split raw text into size-bounded pieces."""
        text = text.strip()
        if not text:
            return []
        return self._split(text, PARAGRAPH)

    def _fits(self, text: str) -> bool:
        return self.length_function(text) <= self.chunk_size

    def _separate(self, text: str, level: int) -> List[str]:
        if level == PARAGRAPH:
            parts = PARAGRAPH_PATTERN.split(text)
        elif level == SENTENCE:
            parts = SENTENCE_PATTERN.split(text)
        else:
            parts = text.split()
        return [part.strip() for part in parts if part.strip()]

    def _split(self, text: str, level: int, previous: Optional[str] = None) -> List[str]:
        """Split text at level; previous is the chunk emitted just before text."""
        if self._fits(text):
            return [text]
        if level == CHARACTER:
            return self._split_characters(text, previous)

        joiner = JOINERS[level]
        chunks: List[str] = []
        current = ""

        for part in self._separate(text, level):
            if not self._fits(part):
                # Too big on its own: flush and descend one level
                if current:
                    chunks.append(current)
                    current = ""
                chunks.extend(
                    self._split(part, level + 1, chunks[-1] if chunks else previous)
                )
                continue

            if not current:
                current = self._start_chunk(chunks, part, joiner, previous)
                continue

            candidate = current + joiner + part
            if self._fits(candidate):
                current = candidate
            else:
                chunks.append(current)
                current = self._start_chunk(chunks, part, joiner, previous)

        if current:
            chunks.append(current)
        return chunks

    def _split_characters(self, text: str, previous: Optional[str] = None) -> List[str]:
        chunks: List[str] = []
        start = 0
        while start < len(text):
            last = chunks[-1] if chunks else previous
            prefix = ""
            if last and self.chunk_overlap:
                tail = self._overlap_tail(last, by_words=False)
                if tail and self._fits(tail + text[start]):
                    prefix = tail
            end = self._window_end(text, start, prefix)
            chunks.append(prefix + text[start:end])
            start = end
        return chunks

    def _window_end(self, text: str, start: int, prefix: str) -> int:
        """Largest end where prefix + text[start:end] fits (at least start + 1).

        The bound is found by doubling the window and then bisecting, so each
        window costs a logarithmic number of measurements.
        """
        good = start + 1
        bad = None
        step = 1
        while good < len(text):
            end = min(good + step, len(text))
            if not self._fits(prefix + text[start:end]):
                bad = end
                break
            good = end
            step *= 2
        if bad is None:
            return good

        while bad - good > 1:
            middle = (good + bad) // 2
            if self._fits(prefix + text[start:middle]):
                good = middle
            else:
                bad = middle
        return good

    def _start_chunk(
        self, chunks: List[str], part: str, joiner: str, previous: Optional[str] = None
    ) -> str:
        """Begin a new chunk, seeded with the previous chunk's tail when it fits."""
        last = chunks[-1] if chunks else previous
        if not last or self.chunk_overlap == 0:
            return part
        tail = self._overlap_tail(last, by_words=bool(joiner))
        if tail:
            candidate = tail + joiner + part
            if self._fits(candidate):
                return candidate
        return part

    def _overlap_tail(self, previous: str, by_words: bool = True) -> str:
        """Longest suffix of previous (whole words if by_words) within the overlap."""
        if not by_words:
            shortest, longest = 0, len(previous)
            while shortest < longest:
                size = (shortest + longest + 1) // 2
                if self.length_function(previous[-size:]) <= self.chunk_overlap:
                    shortest = size
                else:
                    longest = size - 1
            return previous[-shortest:] if shortest else ""

        tail = ""
        for word in reversed(previous.split()):
            candidate = f"{word} {tail}" if tail else word
            if self.length_function(candidate) > self.chunk_overlap:
                break
            tail = candidate
        return tail

    def get_segment_stats(self, segments: List[TextSegment]) -> dict:
        """Get statistics about a set of segments.

        Args:
            segments: List of TextSegment objects

        Returns:
            Dictionary with segment statistics
        """
        if not segments:
            return {
                "segment_count": 0,
                "avg_segment_size": 0,
                "min_segment_size": 0,
                "max_segment_size": 0,
            }

        sizes = [self.length_function(s.text) for s in segments]

        return {
            "segment_count": len(segments),
            "avg_segment_size": sum(sizes) // len(segments),
            "min_segment_size": min(sizes),
            "max_segment_size": max(sizes),
            "overlap": self.chunk_overlap,
        }
