"""Tests for text extraction and sentence-aligned chunking."""

from __future__ import annotations

import re

import pytest

from errors import IngestionError
from services.document_processor import chunk_text, process_directory, process_file

# 99 characters: ten 9-letter words
SENTENCE = " ".join(["abcdefghi"] * 10)


def _sentences(text: str) -> list[str]:
    return [s.strip() for s in re.split(r"[.!?]+", text) if s.strip()]


class TestChunkText:
    def test_short_text_single_chunk(self):
        text = "Recursion is a function calling itself. It needs a base case!"
        assert chunk_text(text) == [
            "Recursion is a function calling itself It needs a base case"
        ]

    def test_no_sentence_text_returns_input(self):
        assert chunk_text("...") == ["..."]
        assert chunk_text("") == [""]

    def test_unpunctuated_text_is_one_sentence(self):
        assert chunk_text("just some words") == ["just some words"]

    def test_every_sentence_is_covered_in_order(self):
        sentences = [f"Sentence number {i} talks about loops and lists" for i in range(60)]
        text = ". ".join(sentences) + "."
        chunks = chunk_text(text, max_chunk_size=200, overlap_chars=50)
        assert len(chunks) > 1

        positions = []
        joined = " | ".join(chunks)
        for s in sentences:
            assert s in joined
            positions.append(joined.index(s))
        assert positions == sorted(positions)

    def test_chunk_size_bounded_by_limit_plus_overlap(self):
        text = ". ".join(f"Stack frame {i} holds local variables" for i in range(100)) + "."
        max_size, overlap = 300, 100
        chunks = chunk_text(text, max_chunk_size=max_size, overlap_chars=overlap)
        longest_sentence = max(len(s) for s in _sentences(text))
        for chunk in chunks:
            assert len(chunk) <= max_size + overlap + longest_sentence

    def test_overlap_counts_words(self):
        text = (SENTENCE + ".") * 11
        chunks = chunk_text(text, max_chunk_size=1000, overlap_chars=30)
        assert len(chunks) == 2
        # last 3 words of the first chunk seed the second
        assert chunks[1] == " ".join(["abcdefghi"] * 3) + " " + SENTENCE

    def test_zero_overlap(self):
        text = (SENTENCE + ".") * 11
        chunks = chunk_text(text, max_chunk_size=1000, overlap_chars=5)
        assert chunks[1] == SENTENCE

    def test_oversized_sentence_kept_whole(self):
        long_sentence = "x" * 1500
        chunks = chunk_text(f"Short one. {long_sentence}. Another short one.", max_chunk_size=1000)
        assert long_sentence in chunks[1]


class TestProcessFile:
    def test_scenario_2500_char_text_file(self, tmp_path):
        text = (SENTENCE + ".") * 25
        assert len(text) == 2500
        (tmp_path / "notes.txt").write_text(text, encoding="utf-8")

        chunks = process_directory(tmp_path)
        assert len(chunks) == 3
        assert [c.metadata.chunk_index for c in chunks] == [0, 1, 2]
        assert all(c.metadata.total_chunks == 3 for c in chunks)
        assert all(c.metadata.file_type == ".txt" for c in chunks)
        assert all(c.metadata.file_name == "notes.txt" for c in chunks)

    def test_payload_keys(self, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("Hello there.", encoding="utf-8")
        (chunk,) = process_file(path)
        assert chunk.payload() == {
            "text": "Hello there",
            "fileName": "a.txt",
            "filePath": str(path),
            "chunkIndex": 0,
            "totalChunks": 1,
            "fileType": ".txt",
        }

    def test_markdown_is_rendered_to_text(self, tmp_path):
        path = tmp_path / "week1.md"
        path.write_text("# Loops\n\nA **for** loop repeats a block.\n", encoding="utf-8")
        (chunk,) = process_file(path)
        assert "**" not in chunk.text
        assert "#" not in chunk.text
        assert "for loop repeats a block" in chunk.text
        assert chunk.metadata.file_type == ".md"

    def test_html_body_text(self, tmp_path):
        path = tmp_path / "page.HTML"
        path.write_text(
            "<html><head><title>T</title></head><body><p>Arrays are indexed from zero.</p></body></html>",
            encoding="utf-8",
        )
        (chunk,) = process_file(path)
        assert chunk.text == "Arrays are indexed from zero"
        assert chunk.metadata.file_type == ".html"

    def test_pdf(self, tmp_path):
        import fitz

        path = tmp_path / "slides.pdf"
        doc = fitz.open()
        page = doc.new_page()
        page.insert_text((72, 72), "Binary search halves the range.")
        doc.save(str(path))
        doc.close()

        chunks = process_file(path)
        assert len(chunks) == 1
        assert "Binary search halves the range" in chunks[0].text

    def test_unsupported_extension_skipped(self, tmp_path):
        path = tmp_path / "image.png"
        path.write_bytes(b"\x89PNG")
        assert process_file(path) == []

    def test_broken_file_yields_nothing(self, tmp_path):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"not a pdf")
        assert process_file(path) == []


class TestProcessDirectory:
    def test_missing_root(self, tmp_path):
        with pytest.raises(IngestionError):
            process_directory(tmp_path / "missing")

    def test_sorted_and_recursive(self, tmp_path):
        (tmp_path / "b.txt").write_text("Bee.", encoding="utf-8")
        (tmp_path / "a.txt").write_text("Ay.", encoding="utf-8")
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "c.txt").write_text("Sea.", encoding="utf-8")

        names = [c.metadata.file_name for c in process_directory(tmp_path)]
        assert names == ["a.txt", "b.txt", "c.txt"]

        names = [c.metadata.file_name for c in process_directory(tmp_path, recursive=False)]
        assert names == ["a.txt", "b.txt"]
