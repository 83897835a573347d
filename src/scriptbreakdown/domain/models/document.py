from __future__ import annotations

from dataclasses import dataclass

BREAKDOWN_NOT_STARTED = "NOT_STARTED"


@dataclass(slots=True)
class ScriptDocument:
    id: str
    title: str
    source_uri: str | None
    text_content: str
    page_count: int | None
    char_count: int
    created_at: str
    updated_at: str
    breakdown_status: str = BREAKDOWN_NOT_STARTED
    breakdown_started_at: str | None = None
    breakdown_completed_at: str | None = None
    breakdown_result_json: str | None = None
    breakdown_error: str | None = None
