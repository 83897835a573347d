from __future__ import annotations

import math
import re

from scriptbreakdown.core.config import (
    DEFAULT_CHARS_PER_PAGE,
    DEFAULT_MAX_CHARS_PER_CHUNK,
    DEFAULT_MIN_CHARS_PER_CHUNK,
)
from scriptbreakdown.core.errors import NoContentError
from scriptbreakdown.domain.models.breakdown import ScriptChunk

SCENE_HEADING_PATTERNS = (
    re.compile(r"^(INT|EXT|INT/EXT|I/E)\.?\s+", re.IGNORECASE),
    re.compile(r"^(\d+[A-Z]?)\s+(INT|EXT|INT/EXT|I/E)\.?\s+", re.IGNORECASE),
    re.compile(r"^SCENE\s+\d+", re.IGNORECASE),
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TRAILING_SPACE = re.compile(r"[ \t]+$", re.MULTILINE)
_EXCESS_NEWLINES = re.compile(r"\n{4,}")


def normalize_script_text(text: str) -> str:
    normalized = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    normalized = _CONTROL_CHARS.sub("", normalized)
    normalized = _TRAILING_SPACE.sub("", normalized)
    normalized = _EXCESS_NEWLINES.sub("\n\n\n", normalized)
    return normalized.strip()


def is_scene_heading(line: str) -> bool:
    stripped = line.strip()
    if not stripped:
        return False
    return any(pattern.match(stripped) for pattern in SCENE_HEADING_PATTERNS)


class ScriptChunker:
    """Split screenplay text into bounded chunks at scene boundaries.

    Chunks partition the normalized text: joining every chunk's ``text`` gives
    back the normalized input. Page ranges are estimates derived from a
    characters-per-page heuristic, calibrated against the real page count when
    one is known.
    """

    def __init__(
        self,
        *,
        min_chars: int = DEFAULT_MIN_CHARS_PER_CHUNK,
        max_chars: int = DEFAULT_MAX_CHARS_PER_CHUNK,
        chars_per_page: int = DEFAULT_CHARS_PER_PAGE,
    ) -> None:
        self.max_chars = max(1, int(max_chars))
        self.min_chars = max(0, min(int(min_chars), self.max_chars))
        self.chars_per_page = max(1, int(chars_per_page))

    def chunk(self, text: str, page_count: int | None = None) -> list[ScriptChunk]:
        normalized = normalize_script_text(text)
        if not normalized:
            raise NoContentError("no content")

        text_len = len(normalized)
        chars_per_page = self._resolve_chars_per_page(text_len, page_count)
        total_pages = self.estimate_total_pages(normalized, page_count=page_count)

        unit_starts, headings = self._scan_units(normalized)
        if text_len <= self.max_chars:
            windows = [(0, text_len)]
        else:
            windows = self._pack_units(unit_starts, headings, text_len)
            windows = self._rebalance_short_tail(windows, headings)

        chunks: list[ScriptChunk] = []
        for index, (start, end) in enumerate(windows):
            page_start = min(start // chars_per_page + 1, total_pages)
            page_end = min(max(page_start, math.ceil(end / chars_per_page)), total_pages)
            chunks.append(
                ScriptChunk(
                    index=index,
                    text=normalized[start:end],
                    page_start=page_start,
                    page_end=page_end,
                    start_offset=start,
                    end_offset=end,
                    scene_count=sum(1 for offset in headings if start <= offset < end),
                )
            )
        return chunks

    def estimate_total_pages(self, text: str, page_count: int | None = None) -> int:
        if page_count is not None and page_count > 0:
            return int(page_count)
        return max(1, math.ceil(len(text) / self.chars_per_page))

    def _resolve_chars_per_page(self, text_len: int, page_count: int | None) -> int:
        if page_count is not None and page_count > 0:
            return max(1, math.ceil(text_len / page_count))
        return self.chars_per_page

    @staticmethod
    def _scan_units(text: str) -> tuple[list[int], list[int]]:
        """Return unit start offsets and scene heading offsets.

        A unit starts at offset 0, at every scene heading line and at the first
        non-blank line after a blank line.
        """
        unit_starts: list[int] = []
        headings: list[int] = []
        offset = 0
        previous_blank = False
        for line_no, line in enumerate(text.split("\n")):
            blank = not line.strip()
            heading = is_scene_heading(line)
            if heading:
                headings.append(offset)
            if line_no == 0 or heading or (previous_blank and not blank):
                unit_starts.append(offset)
            previous_blank = blank
            offset += len(line) + 1
        return unit_starts, headings

    def _pack_units(self, unit_starts: list[int], headings: list[int], text_len: int) -> list[tuple[int, int]]:
        units = [
            (start, unit_starts[i + 1] if i + 1 < len(unit_starts) else text_len)
            for i, start in enumerate(unit_starts)
        ]
        heading_set = set(headings)
        windows: list[tuple[int, int]] = []
        first = 0
        i = 0
        while i < len(units):
            chunk_start = units[first][0]
            unit_end = units[i][1]
            if unit_end - chunk_start <= self.max_chars:
                i += 1
                continue
            if i == first:
                # A single unit larger than the budget is emitted whole.
                windows.append((chunk_start, unit_end))
                first = i = i + 1
                continue
            split = i
            for j in range(i, first, -1):
                boundary = units[j][0]
                if boundary in heading_set and boundary - chunk_start >= self.min_chars:
                    split = j
                    break
            short_prefix = units[i][0] - chunk_start < self.min_chars
            if split == i and short_prefix and units[i][1] - units[i][0] > self.max_chars:
                # Fold a short prefix into the oversized unit that follows it.
                windows.append((chunk_start, unit_end))
                first = i = i + 1
                continue
            windows.append((chunk_start, units[split][0]))
            first = split
            i = max(i, split)
        if first < len(units):
            windows.append((units[first][0], text_len))
        return windows

    def _rebalance_short_tail(self, windows: list[tuple[int, int]], headings: list[int]) -> list[tuple[int, int]]:
        """Move the last split back to an earlier heading when the tail is too short."""
        if len(windows) < 2:
            return windows
        tail_start, tail_end = windows[-1]
        prev_start, _ = windows[-2]
        if tail_end - tail_start >= self.min_chars:
            return windows
        for heading in reversed(headings):
            if heading >= tail_start or heading <= prev_start:
                continue
            if (
                heading - prev_start >= self.min_chars
                and tail_end - heading >= self.min_chars
                and tail_end - heading <= self.max_chars
            ):
                return windows[:-2] + [(prev_start, heading), (heading, tail_end)]
        return windows
