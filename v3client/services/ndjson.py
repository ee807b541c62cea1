"""
Line-delimited JSON decoder for v3 streaming responses.

Buffers streamed text until newlines and skips malformed lines without
stopping the stream. Bytes are decoded incrementally, so a multi-byte
UTF-8 sequence split across network chunks is reassembled.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from typing import Any

logger = logging.getLogger(__name__)


class JSONLParser:
    """
    Parses streaming JSONL text.

    Accumulates partial chunks in a buffer, emits complete parsed lines
    as they become available.
    """

    def __init__(self, on_raw_line: Callable[[str], None] | None = None) -> None:
        self.buffer = ""
        self.on_raw_line = on_raw_line

    def feed(self, chunk: str) -> list[Any]:
        """
        Feed a text chunk (may be partial), return any complete parsed lines.

        Args:
            chunk: Decoded text from the stream

        Returns:
            Parsed JSON value for each complete non-empty line
        """
        self.buffer += chunk
        values = []
        while "\n" in self.buffer:
            line, self.buffer = self.buffer.split("\n", 1)
            values.extend(self._parse(line))
        return values

    def flush(self) -> list[Any]:
        """
        Parse whatever is left in the buffer as a final line.

        Call this after the stream ends to handle a body with no trailing
        newline.
        """
        line, self.buffer = self.buffer, ""
        return self._parse(line)

    def _parse(self, line: str) -> list[Any]:
        stripped = line.strip()
        if not stripped:
            return []
        if self.on_raw_line is not None:
            self.on_raw_line(stripped)
        try:
            return [json.loads(stripped)]
        except json.JSONDecodeError:
            logger.debug("JSONLParser: skipping malformed line: %r", stripped[:200])
            return []


async def parse_ndjson(
    chunks: AsyncIterable[bytes],
    on_raw_line: Callable[[str], None] | None = None,
) -> AsyncIterator[Any]:
    """
    Turn a byte stream into parsed JSON values, one per line.

    ``on_raw_line`` sees every non-empty line before it is parsed, valid or
    not.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    parser = JSONLParser(on_raw_line)

    async for chunk in chunks:
        for value in parser.feed(decoder.decode(chunk)):
            yield value

    for value in parser.feed(decoder.decode(b"", final=True)):
        yield value
    for value in parser.flush():
        yield value
