"""Text chunking.

Splits a document's extracted text into contiguous, non-overlapping chunks of
at most ``chunk_size`` characters. Chunk boundaries are purely positional;
they may fall inside a word or sentence.
"""

import logging
import re
from collections.abc import Iterator

from shared.models.document import Chunk

DEFAULT_CHUNK_SIZE = 1000  # characters per chunk


class ChunkStream:
    """Lazy, finite and restartable sequence of chunks.

    Every ``iter()`` re-scans the source text, so the stream can be consumed
    more than once (e.g. counted first, then embedded).
    """

    def __init__(self, text: str, document_id: str, user_id: str, pattern: re.Pattern | None, logger: logging.Logger):
        self._text = text
        self._document_id = document_id
        self._user_id = user_id
        self._pattern = pattern
        self._logger = logger

    def __iter__(self) -> Iterator[Chunk]:
        if not self._text or self._pattern is None:
            return
        index = 0
        for match in self._pattern.finditer(self._text):
            piece = match.group(0)
            # whitespace-only chunks carry nothing worth embedding
            if not piece.strip():
                continue
            yield Chunk(
                document_id=self._document_id,
                user_id=self._user_id,
                index=index,
                text=piece,
                start=match.start(),
                end=match.end(),
            )
            index += 1

    def texts(self) -> list[str]:
        return [chunk.text for chunk in self]

    def __len__(self) -> int:
        return sum(1 for _ in self)


class TextChunker:
    def __init__(self, logger: logging.Logger, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}.")
        self.logging = logger
        self.chunk_size = chunk_size
        self._pattern = re.compile(r"[\s\S]{1,%d}" % chunk_size)

    def split(self, text: str | None, document_id: str, user_id: str) -> ChunkStream:
        """Split ``text`` into a ChunkStream.

        Args:
            text (str | None): The full document text.
            document_id (str): Owning document, copied onto every chunk.
            user_id (str): Owning user, copied onto every chunk.

        Returns:
            ChunkStream: Chunks in source order. Empty for missing or empty text;
            this never raises on bad input.
        """
        if not text:
            self.logging.warning("Document %s (user=%s) has no text, nothing to chunk.", document_id, user_id)
            return ChunkStream("", document_id, user_id, None, self.logging)
        if not isinstance(text, str):
            self.logging.warning("Document %s (user=%s) text is %s, not str; skipping.", document_id, user_id, type(text).__name__)
            return ChunkStream("", document_id, user_id, None, self.logging)
        return ChunkStream(text, document_id, user_id, self._pattern, self.logging)
