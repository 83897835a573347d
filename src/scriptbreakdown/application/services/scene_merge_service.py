from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from scriptbreakdown.core.errors import EmptyBreakdownError
from scriptbreakdown.core.scene_order import (
    adjust_chunk_local_page,
    clean_scene_number,
    coerce_page,
    dedupe_by_scene_number_and_set,
    normalize_scene_number,
    sort_by_script_page_order,
)
from scriptbreakdown.domain.models.breakdown import (
    MAX_PAGE_LENGTH_EIGHTHS,
    TIME_OF_DAY_VALUES,
    ChunkExtraction,
    NormalizedScene,
    Scene,
    SceneCandidate,
    ScriptChunk,
)

logger = logging.getLogger(__name__)


def normalize_int_ext(raw: Any) -> str:
    value = str(raw or "").strip().upper().replace(".", "")
    if "/" in value or value in {"BOTH", "IE"}:
        return "BOTH"
    if value == "EXT" or value.startswith("EXTERIOR"):
        return "EXT"
    return "INT"


def normalize_time_of_day(raw: Any) -> str:
    value = str(raw or "").strip().upper()
    for option in TIME_OF_DAY_VALUES:
        if option in value:
            return option
    return "DAY"


def normalize_page_length(raw: Any) -> int:
    value = coerce_page(raw)
    if value is None:
        return 1
    return max(1, min(math.floor(value + 0.5), MAX_PAGE_LENGTH_EIGHTHS))


def normalize_characters(raw: Any) -> list[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        return []
    names: list[str] = []
    for entry in raw:
        if entry is None:
            continue
        name = str(entry).strip().upper()
        if name:
            names.append(name)
    return names


def normalize_candidate(
    candidate: SceneCandidate,
    chunk: ScriptChunk,
    fallback_number: int,
) -> NormalizedScene | None:
    """Turn an untrusted candidate into a Scene, or None when it has no set name.

    ``fallback_number`` is used as the scene number when the candidate has
    none; the result is then flagged as synthetic.
    """
    set_name = str(candidate.set_name).strip() if candidate.set_name is not None else ""
    if not set_name:
        return None

    synthetic = not clean_scene_number(candidate.scene_number)
    scene_number = normalize_scene_number(candidate.scene_number, fallback_number)

    page_start = adjust_chunk_local_page(candidate.script_page_start, chunk.page_start)
    if page_start is None:
        page_start = max(1, chunk.page_start)
    page_end = adjust_chunk_local_page(candidate.script_page_end, chunk.page_start)
    if page_end is None or page_end < page_start:
        page_end = page_start

    scene = Scene(
        scene_number=scene_number,
        int_ext=normalize_int_ext(candidate.int_ext),
        set_name=set_name,
        time_of_day=normalize_time_of_day(candidate.time_of_day),
        page_length_eighths=normalize_page_length(candidate.page_length_eighths),
        synopsis=str(candidate.synopsis).strip() if candidate.synopsis is not None else "",
        characters=normalize_characters(candidate.characters),
        script_page_start=page_start,
        script_page_end=page_end,
    )
    return NormalizedScene(scene=scene, synthetic_number=synthetic, chunk_index=chunk.index)


class SceneMerger:
    """Normalize, deduplicate and order scene candidates from every chunk."""

    def normalize(self, extractions: Iterable[ChunkExtraction]) -> list[NormalizedScene]:
        accepted: list[NormalizedScene] = []
        dropped = 0
        for extraction in sorted(extractions, key=lambda item: item.chunk.index):
            for candidate in extraction.candidates:
                normalized = normalize_candidate(candidate, extraction.chunk, len(accepted) + 1)
                if normalized is None:
                    dropped += 1
                    continue
                accepted.append(normalized)
        if dropped:
            logger.info("Dropped %s scene candidates without a set name", dropped)
        return accepted

    def merge(self, extractions: Iterable[ChunkExtraction]) -> list[Scene]:
        normalized = self.normalize(extractions)
        deduped = dedupe_by_scene_number_and_set(
            normalized,
            lambda item: item.scene.scene_number,
            lambda item: item.scene.set_name,
            exempt=lambda item: item.synthetic_number,
        )
        if len(deduped) < len(normalized):
            logger.info("Removed %s duplicate scenes", len(normalized) - len(deduped))
        ordered = sort_by_script_page_order(deduped, lambda item: item.scene.script_page_start)
        if not ordered:
            raise EmptyBreakdownError("empty result")
        return [item.scene for item in ordered]
