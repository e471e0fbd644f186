"""
Unit tests for the overlapping text chunker.
"""

import pytest

from studyflow.errors import ConfigError
from studyflow.processing import Chunker


def _assert_covers(text, chunks, max_chars, overlap):
    assert chunks[0].start_char == 0
    assert chunks[-1].end_char == len(text)
    for chunk in chunks:
        assert len(chunk.content) <= max_chars
        assert chunk.content == text[chunk.start_char : chunk.end_char]
    for prev, cur in zip(chunks, chunks[1:]):
        # No gap, and exactly `overlap` shared characters
        assert cur.start_char == prev.end_char - overlap


class TestChunker:
    """Tests for Chunker windowing."""

    @pytest.mark.parametrize(
        "length,max_chars,overlap",
        [(1, 10, 0), (10, 10, 3), (11, 10, 3), (250, 40, 7), (1000, 1200, 150), (3001, 1200, 150)],
    )
    def test_chunks_cover_text_without_gaps(self, length, max_chars, overlap):
        text = "".join(chr(ord("a") + i % 26) for i in range(length))
        chunks = Chunker(max_chars=max_chars, overlap=overlap).chunk_text(text, "doc.txt")

        _assert_covers(text, chunks, max_chars, overlap)

    def test_text_exactly_one_window_is_single_chunk(self):
        chunks = Chunker(max_chars=5, overlap=2).chunk_text("abcde")

        assert len(chunks) == 1
        assert chunks[0].content == "abcde"

    def test_empty_text_yields_nothing(self):
        assert Chunker(max_chars=5, overlap=2).chunk_text("") == []

    def test_metadata_carries_positions(self):
        chunks = Chunker(max_chars=4, overlap=1).chunk_text("abcdefghij", "notes.txt")

        assert chunks[1].metadata == {
            "file_name": "notes.txt",
            "chunk_index": 1,
            "start_char": 3,
            "end_char": 7,
        }

    @pytest.mark.parametrize("max_chars,overlap", [(10, 10), (10, 11), (0, 0), (10, -1)])
    def test_invalid_parameters_raise_config_error(self, max_chars, overlap):
        with pytest.raises(ConfigError):
            Chunker(max_chars=max_chars, overlap=overlap)


class TestChunkDocuments:
    """Tests for multi-document chunking."""

    def test_blank_documents_are_skipped(self):
        chunks, stats = Chunker(max_chars=10, overlap=2).chunk_documents(
            [("a.txt", "hello world!"), ("blank.txt", "   \n"), ("b.txt", "hi")]
        )

        assert stats.documents == 3
        assert stats.skipped_documents == 1
        assert stats.chunks == len(chunks) == 3
        assert [c.file_name for c in chunks] == ["a.txt", "a.txt", "b.txt"]
        assert stats.total_chars == sum(c.char_count for c in chunks)
