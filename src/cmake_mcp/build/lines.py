"""Reassembly of process output chunks into complete lines."""

from __future__ import annotations

import asyncio
import codecs
from collections.abc import AsyncIterable, AsyncIterator

# Output limits (security: prevent DoS)
READ_CHUNK_BYTES: int = 4096
MAX_OUTPUT_LINE: int = 10_000  # 10KB per line


class LineSplitter:
    """Accumulates text fragments and hands out terminated lines.

    LF and CRLF both terminate a line; the terminator is dropped. A CR at
    the very end of a fragment is kept in the buffer until the next fragment
    shows whether it starts a CRLF pair. Lines longer than ``max_length``
    are truncated, and an unterminated line never holds more than
    ``max_length + 1`` characters in memory.
    """

    def __init__(self, max_length: int = MAX_OUTPUT_LINE) -> None:
        self._buffer = ""
        self._max_length = max_length

    def feed(self, chunk: str) -> list[str]:
        """Add a fragment and return every line it completed."""
        self._buffer += chunk
        lines: list[str] = []
        while True:
            index = self._buffer.find("\n")
            if index < 0:
                break
            line = self._buffer[:index]
            self._buffer = self._buffer[index + 1 :]
            if line.endswith("\r"):
                line = line[:-1]
            lines.append(truncate_line(line, self._max_length))
        if len(self._buffer) > self._max_length + 1:
            # Remainder of an overlong line is dropped until its newline arrives
            self._buffer = self._buffer[: self._max_length + 1]
        return lines

    def flush(self) -> str | None:
        """Return the unterminated remainder at end of stream, if any."""
        if not self._buffer:
            return None
        line = self._buffer
        self._buffer = ""
        if line.endswith("\r"):
            line = line[:-1]
        return truncate_line(line, self._max_length)


async def split_lines(chunks: AsyncIterable[str]) -> AsyncIterator[str]:
    """Lazily turn a stream of text fragments into complete lines."""
    splitter = LineSplitter()
    async for chunk in chunks:
        for line in splitter.feed(chunk):
            yield line
    tail = splitter.flush()
    if tail is not None:
        yield tail


async def decode_chunks(
    stream: asyncio.StreamReader, encoding: str = "utf-8"
) -> AsyncIterator[str]:
    """Read raw blocks from a stream and decode them incrementally.

    Multibyte sequences split between two reads are held back by the
    decoder, so they never turn into replacement characters.
    """
    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    while True:
        data = await stream.read(READ_CHUNK_BYTES)
        if not data:
            break
        text = decoder.decode(data)
        if text:
            yield text
    tail = decoder.decode(b"", final=True)
    if tail:
        yield tail


def truncate_line(line: str, limit: int = MAX_OUTPUT_LINE) -> str:
    """Truncate long lines."""
    if len(line) > limit:
        return line[:limit] + "...[truncated]"
    return line
