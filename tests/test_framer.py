"""Tests for LineFramer chunk handling."""

import pytest

from chatsync.stream.framer import LineFramer


def _frame(chunks: list[str]) -> tuple[list[str], str]:
    framer = LineFramer()
    lines: list[str] = []
    for chunk in chunks:
        lines.extend(framer.feed(chunk))
    return lines, framer.close()


class TestLineFramer:
    def test_single_chunk_multiple_lines(self):
        framer = LineFramer()
        assert framer.feed("a\nb\nc\n") == ["a", "b", "c"]
        assert framer.pending == ""

    def test_partial_line_is_buffered(self):
        framer = LineFramer()
        assert framer.feed("data: {\"x\"") == []
        assert framer.pending == "data: {\"x\""
        assert framer.feed(": 1}\n") == ['data: {"x": 1}']

    def test_carriage_return_stripped(self):
        framer = LineFramer()
        assert framer.feed("one\r\ntwo\r\n") == ["one", "two"]

    def test_cr_split_from_lf_across_chunks(self):
        """\\r at the end of one chunk, \\n at the start of the next."""
        lines, _ = _frame(["one\r", "\ntwo\n"])
        assert lines == ["one", "two"]

    def test_empty_chunks_are_harmless(self):
        lines, residual = _frame(["", "a", "", "\n", ""])
        assert lines == ["a"]
        assert residual == ""

    def test_blank_lines_preserved(self):
        framer = LineFramer()
        assert framer.feed("a\n\nb\n") == ["a", "", "b"]

    def test_residual_discarded_on_close(self):
        framer = LineFramer()
        framer.feed("complete\npartial")
        assert framer.close() == "partial"
        assert framer.pending == ""
        assert framer.feed("") == []

    def test_push_back_restores_lines_in_front(self):
        framer = LineFramer()
        lines = framer.feed("first\nsecond\ntail")
        framer.push_back(lines[1:])
        assert framer.pending == "second\ntail"
        assert framer.feed("\n") == ["second", "tail"]

    def test_push_back_empty_is_noop(self):
        framer = LineFramer()
        framer.feed("x")
        framer.push_back([])
        assert framer.pending == "x"

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 13, 64])
    def test_chunk_boundary_invariance(self, size):
        """Any chunking of the same text yields the same lines."""
        text = (
            ": keepalive\r\n"
            'data: {"choices":[{"delta":{"content":"Hi"}}]}\n'
            "\n"
            'data: {"choices":[{"delta":{"content":" there!"}}]}\r\n'
            "data: [DONE]\n"
            "trailing"
        )
        chunks = [text[i : i + size] for i in range(0, len(text), size)]
        lines, residual = _frame(chunks)
        expected = [line.rstrip("\r") for line in text.split("\n")[:-1]]
        assert lines == expected
        assert residual == "trailing"
