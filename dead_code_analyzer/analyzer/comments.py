"""Comment and string-literal awareness for line-oriented scanning.

SourceMask lexes a file once and answers two questions cheaply: is an
offset inside a comment or string, and what does the file look like with
all comments and string contents blanked out. Blanking keeps every offset
and newline in place, so regex matches on the masked text map 1:1 back to
the original source.
"""
import bisect
import re
from dataclasses import dataclass
from typing import List, Tuple

_NON_NEWLINE = re.compile(r"[^\n]")


@dataclass(frozen=True)
class Region:
    """Half-open [start, end) span of a comment or string body."""
    start: int
    end: int
    kind: str  # 'line_comment', 'block_comment', 'string'


def _skip_block_comment(content: str, start: int) -> int:
    """Return the index just past a (possibly nested) /* */ comment."""
    depth = 0
    i = start
    n = len(content)
    while i < n:
        if content.startswith("/*", i):
            depth += 1
            i += 2
        elif content.startswith("*/", i):
            depth -= 1
            i += 2
            if depth == 0:
                return i
        else:
            i += 1
    return n  # unterminated


def _skip_string(content: str, start: int) -> Tuple[int, int, int]:
    """Find the extent of the string literal whose opening quote is at start.

    Returns:
        (body_start, body_end, resume_index)
    """
    quote = content[start]
    raw = start > 0 and content[start - 1] in "rR" and (
        start < 2 or not (content[start - 2].isalnum() or content[start - 2] == "_")
    )
    n = len(content)

    if content.startswith(quote * 3, start):
        delimiter = quote * 3
        i = start + 3
        while i < n:
            if not raw and content[i] == "\\":
                i += 2
                continue
            if content.startswith(delimiter, i):
                return start + 3, i, i + 3
            i += 1
        return start + 3, n, n

    i = start + 1
    while i < n:
        ch = content[i]
        if ch == "\n":
            # Single-quoted literals cannot span lines; treat as unterminated.
            return start + 1, i, i
        if not raw and ch == "\\":
            i += 2
            continue
        if ch == quote:
            return start + 1, i, i + 1
        i += 1
    return start + 1, n, n


def find_regions(content: str) -> List[Region]:
    """Lex comment and string regions of a Dart source, in offset order."""
    regions: List[Region] = []
    i = 0
    n = len(content)
    while i < n:
        ch = content[i]
        if ch == "/" and i + 1 < n:
            nxt = content[i + 1]
            if nxt == "/":
                end = content.find("\n", i)
                end = n if end == -1 else end
                regions.append(Region(i, end, "line_comment"))
                i = end
                continue
            if nxt == "*":
                end = _skip_block_comment(content, i)
                regions.append(Region(i, end, "block_comment"))
                i = end
                continue
        if ch in ("'", '"'):
            body_start, body_end, resume = _skip_string(content, i)
            regions.append(Region(body_start, body_end, "string"))
            i = resume
            continue
        i += 1
    return regions


class SourceMask:
    """Lexed view of one source file."""

    def __init__(self, content: str):
        self.content = content
        self.lines = content.split("\n")
        self.regions = find_regions(content)
        self._starts = [region.start for region in self.regions]

        self.line_starts: List[int] = []
        offset = 0
        for line in self.lines:
            self.line_starts.append(offset)
            offset += len(line) + 1

        self.masked = self._build_mask()
        self.masked_lines = self.masked.split("\n")

    def _build_mask(self) -> str:
        pieces = []
        cursor = 0
        for region in self.regions:
            pieces.append(self.content[cursor:region.start])
            pieces.append(_NON_NEWLINE.sub(" ", self.content[region.start:region.end]))
            cursor = region.end
        pieces.append(self.content[cursor:])
        return "".join(pieces)

    def region_at(self, offset: int):
        """Return the region containing offset, or None."""
        index = bisect.bisect_right(self._starts, offset) - 1
        if index >= 0:
            region = self.regions[index]
            if region.start <= offset < region.end:
                return region
        return None

    def is_in_block_comment(self, offset: int) -> bool:
        region = self.region_at(offset)
        return region is not None and region.kind == "block_comment"

    def is_in_comment(self, offset: int) -> bool:
        region = self.region_at(offset)
        return region is not None and region.kind != "string"

    def is_in_string(self, offset: int) -> bool:
        region = self.region_at(offset)
        return region is not None and region.kind == "string"

    def is_masked(self, offset: int) -> bool:
        """True when offset lies inside any comment or string body."""
        return self.region_at(offset) is not None

    def offset_of(self, line_index: int, column: int = 0) -> int:
        return self.line_starts[line_index] + column

    def line_of(self, offset: int) -> int:
        """0-based line index containing offset."""
        return bisect.bisect_right(self.line_starts, offset) - 1
