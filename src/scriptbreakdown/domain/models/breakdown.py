from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

INT_EXT_VALUES = ("INT", "EXT", "BOTH")

# Matched in this order; "DAY" wins over anything listed after it.
TIME_OF_DAY_VALUES = (
    "DAY",
    "NIGHT",
    "DAWN",
    "DUSK",
    "MORNING",
    "AFTERNOON",
    "EVENING",
    "CONTINUOUS",
)

MAX_PAGE_LENGTH_EIGHTHS = 64


@dataclass(slots=True)
class ScriptChunk:
    index: int
    text: str
    page_start: int
    page_end: int
    start_offset: int
    end_offset: int
    scene_count: int = 0

    @property
    def ordinal(self) -> int:
        return self.index + 1


@dataclass(slots=True)
class SceneCandidate:
    """Unvalidated scene as returned by the extraction model for one chunk."""

    scene_number: Any = None
    int_ext: Any = None
    set_name: Any = None
    time_of_day: Any = None
    page_length_eighths: Any = None
    synopsis: Any = None
    characters: Any = None
    script_page_start: Any = None
    script_page_end: Any = None

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> SceneCandidate:
        return cls(
            scene_number=raw.get("scene_number"),
            int_ext=raw.get("int_ext"),
            set_name=raw.get("set_name"),
            time_of_day=raw.get("time_of_day"),
            page_length_eighths=raw.get("page_length_eighths"),
            synopsis=raw.get("synopsis"),
            characters=raw.get("characters"),
            script_page_start=raw.get("script_page_start"),
            script_page_end=raw.get("script_page_end"),
        )


@dataclass(slots=True)
class ChunkExtraction:
    chunk: ScriptChunk
    candidates: list[SceneCandidate] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class Scene:
    scene_number: str
    int_ext: str
    set_name: str
    time_of_day: str
    page_length_eighths: int
    synopsis: str
    characters: list[str]
    script_page_start: int
    script_page_end: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "scene_number": self.scene_number,
            "int_ext": self.int_ext,
            "set_name": self.set_name,
            "time_of_day": self.time_of_day,
            "page_length_eighths": self.page_length_eighths,
            "synopsis": self.synopsis,
            "characters": list(self.characters),
            "script_page_start": self.script_page_start,
            "script_page_end": self.script_page_end,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Scene:
        return cls(
            scene_number=str(data["scene_number"]),
            int_ext=str(data["int_ext"]),
            set_name=str(data["set_name"]),
            time_of_day=str(data["time_of_day"]),
            page_length_eighths=int(data["page_length_eighths"]),
            synopsis=str(data.get("synopsis") or ""),
            characters=[str(c) for c in data.get("characters") or []],
            script_page_start=int(data["script_page_start"]),
            script_page_end=int(data["script_page_end"]),
        )


@dataclass(slots=True)
class NormalizedScene:
    """A normalized scene plus the bookkeeping the merge passes need."""

    scene: Scene
    synthetic_number: bool
    chunk_index: int


@dataclass(slots=True)
class BreakdownResult:
    scenes: list[Scene]
    total_pages: int
    total_scenes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenes": [scene.to_dict() for scene in self.scenes],
            "total_pages": self.total_pages,
            "total_scenes": self.total_scenes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BreakdownResult:
        scenes = [Scene.from_dict(item) for item in data.get("scenes") or []]
        return cls(
            scenes=scenes,
            total_pages=int(data.get("total_pages") or 0),
            total_scenes=int(data.get("total_scenes") or len(scenes)),
        )
