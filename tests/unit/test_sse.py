# -*- coding: utf-8 -*-

"""
Unit tests for the SSE parser.

Tests for:
- SSEEvent helpers
- parse_field() / parse_event_lines()
- SSEParser.next_event() grammar, sentinel, EOF handling, line limit
"""

import pytest

from zai.errors import SSELineTooLongError
from zai.sse import SSEEvent, SSEParser, parse_event_lines, parse_field


def _events(*chunks, **kwargs):
    """Parse chunks and collect (event, done) pairs up to end of input."""
    parser = SSEParser(list(chunks), **kwargs)
    results = []
    while True:
        event, done = parser.next_event()
        results.append((event, done))
        if done:
            return results


# ==================================================================================================
# SSEEvent
# ==================================================================================================


class TestSSEEvent:
    """Tests for SSEEvent helpers."""

    def test_is_done_trims_whitespace(self):
        """
        What it does: Checks sentinel detection with surrounding spaces.
        Purpose: "[DONE]" is matched after trimming.
        """
        assert SSEEvent(data="[DONE]").is_done() is True
        assert SSEEvent(data="  [DONE] ").is_done() is True
        assert SSEEvent(data="[DONE]x").is_done() is False

    def test_is_empty(self):
        assert SSEEvent().is_empty() is True
        assert SSEEvent(event="ping").is_empty() is False
        assert SSEEvent(data="x").is_empty() is False

    def test_json(self):
        assert SSEEvent(data='{"a": 1}').json() == {"a": 1}


# ==================================================================================================
# Line helpers
# ==================================================================================================


class TestParseField:
    """Tests for parse_field()."""

    def test_strips_one_leading_space(self):
        """
        What it does: Parses values with zero, one and two leading spaces.
        Purpose: At most one leading space is removed.
        """
        assert parse_field("data:x") == ("data", "x")
        assert parse_field("data: x") == ("data", "x")
        assert parse_field("data:  x") == ("data", " x")

    def test_splits_on_first_colon(self):
        assert parse_field('data: {"a": "b:c"}') == ("data", '{"a": "b:c"}')

    def test_comment(self):
        assert parse_field(": keep-alive") is None

    def test_field_without_colon(self):
        assert parse_field("data") == ("data", "")


class TestParseEventLines:
    """Tests for parse_event_lines()."""

    def test_all_fields(self):
        """
        What it does: Parses a block with every recognized field.
        Purpose: event, id, retry and data are all captured, raw keeps the lines.
        """
        lines = ["event: message", "id: 42", "retry: 3000", "data: hello", "foo: ignored"]

        event = parse_event_lines(lines)

        print(f"Event: {event}")
        assert event.event == "message"
        assert event.id == "42"
        assert event.retry == 3000
        assert event.data == "hello"
        assert event.raw == "\n".join(lines)

    def test_block_without_data_is_discarded(self):
        assert parse_event_lines(["event: ping", "id: 1"]) is None

    def test_invalid_retry_ignored(self):
        event = parse_event_lines(["retry: soon", "data: x"])
        assert event.retry is None


# ==================================================================================================
# Parser
# ==================================================================================================


class TestSSEParser:
    """Tests for SSEParser.next_event()."""

    def test_two_identical_events(self):
        """
        What it does: Feeds "data: X" twice.
        Purpose: Each blank-line-terminated block is its own event.
        """
        results = _events(b"data: X\n\ndata: X\n\n")

        assert [event.data for event, _ in results[:-1]] == ["X", "X"]
        assert results[-1] == (None, True)

    def test_multiline_data_joined(self):
        """
        What it does: Feeds two data lines in one event.
        Purpose: Data lines are joined with a newline.
        """
        results = _events(b"data: a\ndata: b\n\n")

        assert len(results) == 2
        assert results[0][0].data == "a\nb"
        assert results[0][1] is False

    def test_sentinel_returned_with_done(self):
        """
        What it does: Feeds an event followed by the sentinel.
        Purpose: The sentinel event comes back with done=True.
        """
        parser = SSEParser([b'data: {"c": 1}\n\n', b"data: [DONE]\n\n", b"data: after\n\n"])

        first, done = parser.next_event()
        assert (first.data, done) == ('{"c": 1}', False)

        sentinel, done = parser.next_event()
        assert sentinel.is_done()
        assert done is True

    def test_comments_and_blank_lines_skipped(self):
        """
        What it does: Surrounds an event with comments and extra blank lines.
        Purpose: Keep-alives never produce events.
        """
        results = _events(b": ping\n\n\n\n: another\ndata: x\n\n")

        assert len(results) == 2
        assert results[0][0].data == "x"

    def test_event_split_across_chunks(self):
        """
        What it does: Splits one event at arbitrary byte boundaries.
        Purpose: Line assembly is independent of network chunking.
        """
        results = _events(b"da", b"ta: hel", b"lo\n", b"\n")

        assert results[0][0].data == "hello"

    def test_multibyte_character_split_across_chunks(self):
        """
        What it does: Splits a UTF-8 character between two chunks.
        Purpose: Decoding happens per line, not per chunk.
        """
        encoded = "data: привет\n\n".encode("utf-8")

        results = _events(encoded[:7], encoded[7:])

        assert results[0][0].data == "привет"

    def test_crlf_line_endings(self):
        results = _events(b"event: update\r\ndata: x\r\n\r\n")

        assert results[0][0].event == "update"
        assert results[0][0].data == "x"

    def test_text_chunks_accepted(self):
        results = _events("data: from text\n\n")

        assert results[0][0].data == "from text"

    def test_trailing_event_without_terminator(self):
        """
        What it does: Ends input right after a data line.
        Purpose: A last event without its blank line is not lost.
        """
        results = _events(b"data: one\n\ndata: two")

        assert [event.data for event, _ in results[:-1]] == ["one", "two"]
        assert results[-1] == (None, True)

    def test_trailing_sentinel_without_terminator(self):
        results = _events(b"data: [DONE]\n")

        assert results[0][0].is_done()
        assert results[0][1] is True

    def test_empty_input(self):
        assert _events() == [(None, True)]

    def test_data_less_block_discarded(self):
        """
        What it does: Sends an event with only an event line before a real event.
        Purpose: Fields of a discarded block do not leak into the next event.
        """
        results = _events(b"event: ping\n\ndata: x\n\n")

        assert results[0][0].event == ""
        assert results[0][0].data == "x"

    def test_large_event(self):
        """
        What it does: Parses a 200 KiB single-line event.
        Purpose: Chat chunks far above 64 KiB are accepted.
        """
        payload = "x" * (200 * 1024)

        results = _events(f"data: {payload}\n\n".encode("utf-8"))

        assert len(results[0][0].data) == len(payload)

    def test_line_limit_enforced(self):
        """
        What it does: Sends a line above a 1 KiB limit.
        Purpose: Unbounded lines fail instead of exhausting memory.
        """
        parser = SSEParser([b"data: " + b"x" * 2048 + b"\n\n"], max_line_size=1024)

        with pytest.raises(SSELineTooLongError):
            parser.next_event()

    def test_line_limit_enforced_without_newline(self):
        parser = SSEParser([b"x" * 600, b"x" * 600], max_line_size=1024)

        with pytest.raises(SSELineTooLongError):
            parser.next_event()

    def test_reader_error_surfaces(self):
        """
        What it does: Makes the chunk iterator fail mid-stream.
        Purpose: Reader errors are not mistaken for end of input.
        """
        def chunks():
            yield b"data: ok\n\n"
            raise ConnectionResetError("peer reset")

        parser = SSEParser(chunks())

        event, done = parser.next_event()
        assert event.data == "ok"
        with pytest.raises(ConnectionResetError):
            parser.next_event()

    def test_iteration_stops_before_sentinel(self):
        parser = SSEParser([b"data: 1\n\ndata: 2\n\ndata: [DONE]\n\ndata: 3\n\n"])

        assert [event.data for event in parser] == ["1", "2"]
