from __future__ import annotations

import logging
from typing import Iterable, Iterator, List


class LineSplitter:
    """
    Streaming splitter turning arbitrarily chunked text into protocol lines.
    Lines are stripped of surrounding whitespace and empty lines are dropped.
    The unterminated tail is held back until a newline or `flush()` arrives.
    """

    def __init__(self) -> None:
        self._tail = ""
        self._log = logging.getLogger(__name__)

    @property
    def pending(self) -> str:
        return self._tail

    def feed(self, chunk: str) -> List[str]:
        if not chunk:
            return []
        parts = (self._tail + chunk).split("\n")
        self._tail = parts.pop()
        return [line for line in (part.strip() for part in parts) if line]

    def flush(self) -> List[str]:
        tail, self._tail = self._tail.strip(), ""
        if tail:
            self._log.debug("Flushing unterminated line (%d chars)", len(tail))
            return [tail]
        return []

    def iter_lines(self, chunks: Iterable[str]) -> Iterator[str]:
        for chunk in chunks:
            yield from self.feed(chunk)
        yield from self.flush()

    def reset(self) -> None:
        self._tail = ""
