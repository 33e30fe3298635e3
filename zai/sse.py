# -*- coding: utf-8 -*-

# Z.ai SDK Core
# Copyright (C) 2025 zai-sdk-core contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Server-Sent Events parser.

Groups lines from a byte stream into events:

    event: message
    id: 7
    data: {"delta": "Hel"}
    data: {"delta": "lo"}
    <blank line>

Lines starting with ":" are comments. Multiple data lines are joined with
"\\n". Events without any data line are discarded. An event whose data is
"[DONE]" ends the stream.
"""

import json
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional, Tuple, Union

from zai.config import SSE_DONE_SENTINEL, SSE_MAX_LINE_BYTES
from zai.errors import SSELineTooLongError


@dataclass
class SSEEvent:
    """
    One server-sent event.

    Attributes:
        event: Event type ("" when the server sent none)
        data: Data lines joined with "\\n"
        id: Last event id field
        retry: Reconnection hint in milliseconds, if sent
        raw: Original lines of the event
    """

    event: str = ""
    data: str = ""
    id: str = ""
    retry: Optional[int] = None
    raw: str = ""

    def is_empty(self) -> bool:
        return not self.data and not self.event and not self.id

    def is_done(self) -> bool:
        """True for the end-of-stream sentinel event."""
        return self.data.strip() == SSE_DONE_SENTINEL

    def json(self) -> Any:
        return json.loads(self.data)


def parse_field(line: str) -> Optional[Tuple[str, str]]:
    """
    Split an event line into field name and value.

    Returns:
        Tuple (name, value), or None for a comment line
    """
    if line.startswith(":"):
        return None
    name, _, value = line.partition(":")
    if value.startswith(" "):
        value = value[1:]
    return name, value


def parse_event_lines(lines: List[str]) -> Optional[SSEEvent]:
    """
    Build an event from the lines between two blank lines.

    Returns:
        SSEEvent, or None if the block has no data field
    """
    event = SSEEvent(raw="\n".join(lines))
    data_lines: List[str] = []
    has_data = False

    for line in lines:
        field = parse_field(line)
        if field is None:
            continue
        name, value = field
        if name == "data":
            data_lines.append(value)
            has_data = True
        elif name == "event":
            event.event = value
        elif name == "id":
            event.id = value
        elif name == "retry":
            if value.isdigit():
                event.retry = int(value)
        # Other fields are ignored

    if not has_data:
        return None
    event.data = "\n".join(data_lines)
    return event


class SSEParser:
    """
    Incremental SSE parser over an iterable of byte (or text) chunks.

    Not safe for concurrent use; the owning stream serializes access.

    Example:
        >>> parser = SSEParser([b"data: a\\n", b"data: b\\n\\n"])
        >>> parser.next_event()
        (SSEEvent(event='', data='a\\nb', id='', retry=None, raw='data: a\\ndata: b'), False)
    """

    def __init__(self, chunks: Iterable[Union[bytes, str]], max_line_size: int = SSE_MAX_LINE_BYTES):
        self._chunks = chunks
        self._max_line_size = max_line_size
        self._lines: Optional[Iterator[str]] = None

    def _iter_lines(self) -> Iterator[str]:
        buffer = bytearray()
        for chunk in self._chunks:
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            buffer.extend(chunk)

            while True:
                newline = buffer.find(b"\n")
                if newline < 0:
                    break
                line = bytes(buffer[:newline])
                del buffer[: newline + 1]
                if line.endswith(b"\r"):
                    line = line[:-1]
                if len(line) > self._max_line_size:
                    raise SSELineTooLongError(self._max_line_size)
                yield line.decode("utf-8", errors="replace")

            if len(buffer) > self._max_line_size:
                raise SSELineTooLongError(self._max_line_size)

        if buffer:
            line = bytes(buffer)
            if line.endswith(b"\r"):
                line = line[:-1]
            yield line.decode("utf-8", errors="replace")

    def next_event(self) -> Tuple[Optional[SSEEvent], bool]:
        """
        Read the next event.

        Returns:
            (event, False) for a regular event,
            (event, True) for the "[DONE]" sentinel event,
            (None, True) at end of input

        Raises:
            SSELineTooLongError: If a line exceeds the configured limit
            Exception: Whatever the underlying chunk iterator raises
        """
        if self._lines is None:
            self._lines = self._iter_lines()

        lines: List[str] = []
        for line in self._lines:
            if line:
                lines.append(line)
                continue
            event = parse_event_lines(lines)
            if event is not None:
                return event, event.is_done()
            lines = []

        # Input ended without a terminating blank line
        event = parse_event_lines(lines)
        if event is not None:
            return event, event.is_done()
        return None, True

    def __iter__(self) -> Iterator[SSEEvent]:
        """Yield events up to, not including, the sentinel."""
        while True:
            event, done = self.next_event()
            if done:
                return
            yield event
