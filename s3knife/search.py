"""Literal substring search over streams of any size.

Content is scanned in fixed-size blocks. Before each refill the last
``len(pattern) - 1`` bytes of the current window are carried to the front, so a
match straddling a block boundary is still seen, and no match can be reported
twice (a match needs at least one byte that was not carried over).
"""

from __future__ import annotations

import gzip
from contextlib import closing
from dataclasses import dataclass
from typing import BinaryIO, Iterator

from s3knife.filesystem import File


BLOCK_SIZE = 4096
GZIP_SUFFIX = ".gz"


@dataclass(slots=True)
class Match:
    name: str
    line: bytes

    def render(self, *, with_filename: bool) -> bytes:
        if with_filename:
            return self.name.encode("utf-8", "surrogateescape") + b":" + self.line
        return self.line


def _line_around(window: bytes, start: int, end: int) -> tuple[int, int]:
    line_start = window.rfind(b"\n", 0, start) + 1
    line_end = window.find(b"\n", end)
    if line_end == -1:
        line_end = len(window)
    return line_start, line_end


class StreamSearcher:
    def __init__(
        self,
        pattern: bytes,
        *,
        ignore_case: bool = False,
        files_with_matches: bool = False,
        block_size: int = BLOCK_SIZE,
    ) -> None:
        if not pattern:
            raise ValueError("search pattern must not be empty")
        self.pattern = pattern.lower() if ignore_case else pattern
        self.ignore_case = ignore_case
        self.files_with_matches = files_with_matches
        # A window must hold the carried tail plus at least one fresh byte.
        self.block_size = max(block_size, 2 * len(pattern))

    def search_stream(self, stream: BinaryIO, name: str) -> Iterator[Match]:
        """Yield matches in ``stream``; stops at the first in keys-only mode."""
        overlap = len(self.pattern) - 1
        tail = b""
        while True:
            chunk = stream.read(self.block_size - len(tail))
            if not chunk:
                return
            window = tail + chunk
            haystack = window.lower() if self.ignore_case else window

            position = haystack.find(self.pattern)
            if position != -1 and self.files_with_matches:
                yield Match(name, b"")
                return

            last_line_end = -1
            while position != -1:
                line_start, line_end = _line_around(window, position, position + len(self.pattern))
                if line_end != last_line_end:
                    yield Match(name, window[line_start:line_end])
                    last_line_end = line_end
                position = haystack.find(self.pattern, position + 1)

            tail = window[len(window) - overlap:] if overlap else b""

    def search_file(self, file: File) -> Iterator[Match]:
        """Search one listed entry, gunzipping ``.gz`` names on the fly."""
        with closing(file.open()) as raw:
            name = str(file)
            if name.endswith(GZIP_SUFFIX):
                with gzip.GzipFile(fileobj=raw, mode="rb") as stream:
                    yield from self.search_stream(stream, name)
            else:
                yield from self.search_stream(raw, name)
