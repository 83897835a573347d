from __future__ import annotations

from dataclasses import dataclass
from typing import Any

JOB_PENDING = "PENDING"
JOB_IN_PROGRESS = "IN_PROGRESS"
JOB_COMPLETE = "COMPLETE"
JOB_FAILED = "FAILED"
JOB_CANCELLED = "CANCELLED"

ACTIVE_JOB_STATUSES = frozenset({JOB_PENDING, JOB_IN_PROGRESS})
TERMINAL_JOB_STATUSES = frozenset({JOB_COMPLETE, JOB_FAILED, JOB_CANCELLED})


@dataclass(slots=True)
class BreakdownJob:
    id: str
    document_id: str
    status: str
    created_at: str
    updated_at: str
    started_at: str | None = None
    finished_at: str | None = None
    detail: str | None = None
    progress: dict[str, Any] | None = None
    result: dict[str, Any] | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "status": self.status,
            "detail": self.detail,
            "progress": self.progress,
            "result": self.result,
            "error_message": self.error_message,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }
