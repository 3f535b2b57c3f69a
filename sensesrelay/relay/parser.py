"""Incremental parser for the relay's text event stream."""

import codecs
import logging
from typing import List

from ..models.events import StreamEvent, DEFAULT_EVENT_NAME

logger = logging.getLogger(__name__)

RECORD_TERMINATOR = "\n\n"


class StreamParser:
    """Turns arbitrarily chunked bytes into (event, data) records.

    Records are terminated by a blank line. Anything after the last
    terminator stays buffered until the next chunk arrives, so chunk
    boundaries never have to line up with records.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._pending_cr = False

    def feed(self, chunk: bytes) -> List[StreamEvent]:
        """Append a chunk and return every record it completed.

        Args:
            chunk: Raw bytes from the transport, any length

        Returns:
            Parsed events in arrival order (keep-alive records are dropped)
        """
        text = self._decoder.decode(chunk)
        self._buffer += self._normalize(text)

        events = []
        while True:
            index = self._buffer.find(RECORD_TERMINATOR)
            if index < 0:
                break
            block = self._buffer[:index]
            self._buffer = self._buffer[index + len(RECORD_TERMINATOR):]
            event = parse_block(block)
            if event is not None:
                events.append(event)
        return events

    def reset(self) -> None:
        """Drop any buffered partial record."""
        self._decoder.reset()
        self._buffer = ""
        self._pending_cr = False

    @property
    def buffered(self) -> str:
        return self._buffer

    def _normalize(self, text: str) -> str:
        # A "\r\n" pair may straddle two chunks.
        if self._pending_cr:
            text = "\r" + text
            self._pending_cr = False
        if text.endswith("\r"):
            text = text[:-1]
            self._pending_cr = True
        return text.replace("\r\n", "\n").replace("\r", "\n")


def parse_block(block: str):
    """Parse one record's lines into a StreamEvent, or None for keep-alives."""
    event_name = DEFAULT_EVENT_NAME
    data_lines = []

    for line in block.split("\n"):
        if line.startswith("event:"):
            event_name = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].strip())

    data = "\n".join(data_lines)
    if not data and event_name == DEFAULT_EVENT_NAME:
        logger.debug("Dropping keep-alive record")
        return None
    return StreamEvent(event=event_name, data=data)
