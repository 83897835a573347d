from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from scriptbreakdown.domain.models.job import BreakdownJob
from scriptbreakdown.infrastructure.db.sqlite import get_connection


class BreakdownJobRepo:
    """Persistence for breakdown jobs.

    Every status transition is a conditional ``UPDATE`` and reports whether it
    matched a row, so callers can tell a lost race from a successful write.
    Transitions mirror the outcome onto the owning document in the same
    transaction.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert(self, job: BreakdownJob) -> None:
        """Insert a new job row.

        Raises ``sqlite3.IntegrityError`` when another PENDING or IN_PROGRESS job
        already exists for the same document.
        """
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO breakdown_jobs (
                    id,
                    document_id,
                    status,
                    detail,
                    progress_json,
                    result_json,
                    error_message,
                    created_at,
                    updated_at,
                    started_at,
                    finished_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job.id,
                    job.document_id,
                    job.status,
                    job.detail,
                    self._dump(job.progress),
                    self._dump(job.result),
                    job.error_message,
                    job.created_at,
                    job.updated_at,
                    job.started_at,
                    job.finished_at,
                ),
            )
            conn.commit()

    def get(self, job_id: str) -> BreakdownJob | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM breakdown_jobs WHERE id = ?", (job_id,)).fetchone()
        return self._to_model(row) if row else None

    def find_active(self, document_id: str) -> BreakdownJob | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT *
                FROM breakdown_jobs
                WHERE document_id = ?
                  AND status IN ('PENDING', 'IN_PROGRESS')
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                (document_id,),
            ).fetchone()
        return self._to_model(row) if row else None

    def latest_for_document(self, document_id: str) -> BreakdownJob | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT *
                FROM breakdown_jobs
                WHERE document_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (document_id,),
            ).fetchone()
        return self._to_model(row) if row else None

    def list(self, *, document_id: str | None = None, limit: int = 100) -> list[BreakdownJob]:
        safe_limit = max(1, min(int(limit), 10000))
        with get_connection(self.db_path) as conn:
            if document_id:
                rows = conn.execute(
                    """
                    SELECT *
                    FROM breakdown_jobs
                    WHERE document_id = ?
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                    """,
                    (document_id, safe_limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT *
                    FROM breakdown_jobs
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                    """,
                    (safe_limit,),
                ).fetchall()
        return [self._to_model(row) for row in rows]

    def mark_in_progress(self, job_id: str, *, document_id: str, started_at: str, detail: str) -> bool:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE breakdown_jobs
                SET status = 'IN_PROGRESS',
                    detail = ?,
                    started_at = COALESCE(started_at, ?),
                    updated_at = ?
                WHERE id = ?
                  AND status = 'PENDING'
                """,
                (detail, started_at, started_at, job_id),
            )
            updated = int(cursor.rowcount or 0) > 0
            if updated:
                conn.execute(
                    """
                    UPDATE documents
                    SET breakdown_status = 'IN_PROGRESS',
                        breakdown_started_at = ?,
                        breakdown_error = NULL,
                        updated_at = ?
                    WHERE id = ?
                    """,
                    (started_at, started_at, document_id),
                )
            conn.commit()
            return updated

    def update_progress(
        self,
        job_id: str,
        *,
        progress: dict[str, Any],
        detail: str,
        updated_at: str,
    ) -> bool:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE breakdown_jobs
                SET progress_json = ?,
                    detail = ?,
                    updated_at = ?
                WHERE id = ?
                  AND status = 'IN_PROGRESS'
                """,
                (self._dump(progress), detail, updated_at, job_id),
            )
            conn.commit()
            return int(cursor.rowcount or 0) > 0

    def mark_complete(
        self,
        job_id: str,
        *,
        document_id: str,
        result: dict[str, Any],
        detail: str,
        finished_at: str,
    ) -> bool:
        """Complete the job and attach its result to the document in one transaction."""
        result_json = self._dump(result)
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE breakdown_jobs
                SET status = 'COMPLETE',
                    detail = ?,
                    result_json = ?,
                    error_message = NULL,
                    updated_at = ?,
                    finished_at = ?
                WHERE id = ?
                  AND status = 'IN_PROGRESS'
                """,
                (detail, result_json, finished_at, finished_at, job_id),
            )
            completed = int(cursor.rowcount or 0) > 0
            if completed:
                conn.execute(
                    """
                    UPDATE documents
                    SET breakdown_status = 'COMPLETE',
                        breakdown_result_json = ?,
                        breakdown_completed_at = ?,
                        breakdown_error = NULL,
                        updated_at = ?
                    WHERE id = ?
                    """,
                    (result_json, finished_at, finished_at, document_id),
                )
            conn.commit()
            return completed

    def mark_failed(self, job_id: str, *, document_id: str, error: str, finished_at: str) -> bool:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE breakdown_jobs
                SET status = 'FAILED',
                    detail = ?,
                    error_message = ?,
                    updated_at = ?,
                    finished_at = ?
                WHERE id = ?
                  AND status = 'IN_PROGRESS'
                """,
                (f"Breakdown failed: {error}", error, finished_at, finished_at, job_id),
            )
            failed = int(cursor.rowcount or 0) > 0
            if failed:
                self._finish_document(conn, document_id, status="FAILED", error=error, finished_at=finished_at)
            conn.commit()
            return failed

    def mark_cancelled(self, job_id: str, *, document_id: str, reason: str, finished_at: str) -> bool:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE breakdown_jobs
                SET status = 'CANCELLED',
                    detail = ?,
                    error_message = ?,
                    updated_at = ?,
                    finished_at = ?
                WHERE id = ?
                  AND status IN ('PENDING', 'IN_PROGRESS')
                """,
                (f"Breakdown cancelled: {reason}", reason, finished_at, finished_at, job_id),
            )
            cancelled = int(cursor.rowcount or 0) > 0
            if cancelled:
                self._finish_document(conn, document_id, status="CANCELLED", error=reason, finished_at=finished_at)
            conn.commit()
            return cancelled

    def cancel_stale(
        self,
        document_id: str,
        *,
        started_before: str,
        reason: str,
        finished_at: str,
    ) -> list[str]:
        """Cancel active jobs for a document that started before the cutoff.

        Returns the ids of the jobs that were cancelled.
        """
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT id
                FROM breakdown_jobs
                WHERE document_id = ?
                  AND status IN ('PENDING', 'IN_PROGRESS')
                  AND COALESCE(started_at, created_at) < ?
                """,
                (document_id, started_before),
            ).fetchall()
            cancelled: list[str] = []
            for row in rows:
                cursor = conn.execute(
                    """
                    UPDATE breakdown_jobs
                    SET status = 'CANCELLED',
                        detail = ?,
                        error_message = ?,
                        updated_at = ?,
                        finished_at = ?
                    WHERE id = ?
                      AND status IN ('PENDING', 'IN_PROGRESS')
                    """,
                    (f"Breakdown cancelled: {reason}", reason, finished_at, finished_at, row["id"]),
                )
                if int(cursor.rowcount or 0) > 0:
                    cancelled.append(str(row["id"]))
            if cancelled:
                self._finish_document(conn, document_id, status="CANCELLED", error=reason, finished_at=finished_at)
            conn.commit()
        return cancelled

    @staticmethod
    def _finish_document(conn, document_id: str, *, status: str, error: str, finished_at: str) -> None:
        # A previously attached result stays in place.
        conn.execute(
            """
            UPDATE documents
            SET breakdown_status = ?,
                breakdown_error = ?,
                updated_at = ?
            WHERE id = ?
            """,
            (status, error, finished_at, document_id),
        )

    def delete_finished_before(self, cutoff: str) -> int:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                DELETE FROM breakdown_jobs
                WHERE status IN ('COMPLETE', 'FAILED', 'CANCELLED')
                  AND finished_at IS NOT NULL
                  AND finished_at < ?
                """,
                (cutoff,),
            )
            conn.commit()
            return int(cursor.rowcount or 0)

    @staticmethod
    def _dump(value: dict[str, Any] | None) -> str | None:
        if value is None:
            return None
        return json.dumps(value, ensure_ascii=True, sort_keys=True)

    @staticmethod
    def _parse_json_obj(raw: str | None) -> dict[str, Any] | None:
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return parsed if isinstance(parsed, dict) else None

    @classmethod
    def _to_model(cls, row) -> BreakdownJob:
        return BreakdownJob(
            id=row["id"],
            document_id=row["document_id"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            detail=row["detail"],
            progress=cls._parse_json_obj(row["progress_json"]),
            result=cls._parse_json_obj(row["result_json"]),
            error_message=row["error_message"],
        )
