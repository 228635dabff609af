"""Unit tests for TextChunker and ChunkStream."""

import logging

import pytest

from services.doc_ingestion.TextChunker import TextChunker


@pytest.fixture
def chunker():
    return TextChunker(logger=logging.getLogger("doc_chat.tests"), chunk_size=10)


class TestTextChunker:
    """Test suite for positional chunking."""

    def test_chunks_are_contiguous_and_bounded(self, chunker):
        """Chunks cover the text in order without overlap and never exceed the size."""
        text = "abcdefghij" * 3 + "xyz"
        chunks = list(chunker.split(text, document_id="d1", user_id="u1"))

        assert [c.text for c in chunks] == ["abcdefghij", "abcdefghij", "abcdefghij", "xyz"]
        assert all(len(c.text) <= 10 for c in chunks)
        assert "".join(c.text for c in chunks) == text
        for chunk in chunks:
            assert text[chunk.start:chunk.end] == chunk.text
        assert [c.index for c in chunks] == [0, 1, 2, 3]

    def test_short_text_yields_single_chunk(self, chunker):
        chunks = list(chunker.split("hello", document_id="d1", user_id="u1"))
        assert len(chunks) == 1
        assert chunks[0].text == "hello"
        assert chunks[0].document_id == "d1"
        assert chunks[0].user_id == "u1"

    def test_whitespace_only_chunks_are_dropped(self, chunker):
        """A window of pure whitespace is skipped and indices count kept chunks only."""
        text = "first part" + " " * 10 + "\n\n\t  \n  x"
        chunks = list(chunker.split(text, document_id="d1", user_id="u1"))

        assert [c.text for c in chunks] == ["first part", "\n\n\t  \n  x"]
        assert [c.index for c in chunks] == [0, 1]

    def test_newlines_are_kept_inside_chunks(self, chunker):
        chunks = list(chunker.split("line1\nline2\nline3", document_id="d1", user_id="u1"))
        assert chunks[0].text == "line1\nline"

    @pytest.mark.parametrize("text", ["", None, "     ", "\n\n\n"])
    def test_empty_or_blank_text_yields_no_chunks(self, chunker, text):
        assert list(chunker.split(text, document_id="d1", user_id="u1")) == []

    def test_non_string_text_yields_no_chunks(self, chunker):
        assert list(chunker.split(b"bytes", document_id="d1", user_id="u1")) == []

    def test_stream_is_restartable(self, chunker):
        """Iterating twice produces identical chunks."""
        stream = chunker.split("0123456789" * 5, document_id="d1", user_id="u1")

        first = [c.text for c in stream]
        second = [c.text for c in stream]

        assert first == second
        assert len(stream) == 5
        assert stream.texts() == first

    def test_default_size_is_thousand_characters(self):
        chunker = TextChunker(logger=logging.getLogger("doc_chat.tests"))
        chunks = list(chunker.split("a" * 2500, document_id="d1", user_id="u1"))
        assert [len(c.text) for c in chunks] == [1000, 1000, 500]

    def test_invalid_chunk_size_is_rejected(self):
        with pytest.raises(ValueError):
            TextChunker(logger=logging.getLogger("doc_chat.tests"), chunk_size=0)
