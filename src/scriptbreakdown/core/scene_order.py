from __future__ import annotations

import math
import re
from typing import Any, Callable, Iterable, TypeVar

T = TypeVar("T")

_SCENE_PREFIX = re.compile(r"^SCENE\s+", re.IGNORECASE)


def clean_scene_number(raw: Any) -> str:
    """Trim a raw scene number and drop a leading ``SCENE`` label."""
    if raw is None or isinstance(raw, bool):
        return ""
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    return _SCENE_PREFIX.sub("", str(raw).strip()).strip()


def normalize_scene_number(raw: Any, fallback: int) -> str:
    """Return the cleaned scene number, or ``str(fallback)`` when it is blank."""
    return clean_scene_number(raw) or str(fallback)


def coerce_page(raw: Any) -> float | None:
    """Coerce a raw page value to a positive finite number, else None."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        try:
            value = float(str(raw).strip())
        except ValueError:
            return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def adjust_chunk_local_page(page: Any, chunk_first_page: int) -> int | None:
    """Translate a page reported relative to a chunk into a global page.

    Pages below the chunk's first page are read as chunk-local (page 1 being
    the chunk's first page). Anything else is assumed to be global already.
    """
    value = coerce_page(page)
    if value is None:
        return None
    resolved = max(1, math.floor(value))
    if chunk_first_page <= 1:
        return resolved
    if resolved < chunk_first_page:
        return chunk_first_page - 1 + resolved
    return resolved


def dedupe_by_scene_number_and_set(
    items: Iterable[T],
    scene_number: Callable[[T], str | None],
    set_name: Callable[[T], str | None],
    *,
    exempt: Callable[[T], bool] | None = None,
) -> list[T]:
    """Keep the first item per case-insensitive (scene number, set name) key.

    Items without a scene number, or flagged by ``exempt``, always survive.
    """
    seen: set[tuple[str, str]] = set()
    kept: list[T] = []
    for item in items:
        number = (scene_number(item) or "").strip().upper()
        if not number or (exempt is not None and exempt(item)):
            kept.append(item)
            continue
        key = (number, (set_name(item) or "").strip().upper())
        if key in seen:
            continue
        seen.add(key)
        kept.append(item)
    return kept


def sort_by_script_page_order(items: Iterable[T], page: Callable[[T], float | int | None]) -> list[T]:
    """Stable sort by page; items without a page go last in their original order."""
    indexed = list(enumerate(items))

    def _key(entry: tuple[int, T]) -> tuple[int, float, int]:
        position, item = entry
        value = page(item)
        if value is None:
            return (1, 0.0, position)
        return (0, float(value), position)

    return [item for _, item in sorted(indexed, key=_key)]
