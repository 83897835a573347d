from __future__ import annotations

from pathlib import Path

from scriptbreakdown.domain.models.document import ScriptDocument
from scriptbreakdown.infrastructure.db.sqlite import get_connection


class DocumentRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert(self, document: ScriptDocument) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO documents (
                    id,
                    title,
                    source_uri,
                    text_content,
                    page_count,
                    char_count,
                    breakdown_status,
                    breakdown_started_at,
                    breakdown_completed_at,
                    breakdown_result_json,
                    breakdown_error,
                    created_at,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.id,
                    document.title,
                    document.source_uri,
                    document.text_content,
                    document.page_count,
                    document.char_count,
                    document.breakdown_status,
                    document.breakdown_started_at,
                    document.breakdown_completed_at,
                    document.breakdown_result_json,
                    document.breakdown_error,
                    document.created_at,
                    document.updated_at,
                ),
            )
            conn.commit()

    def get_by_id(self, document_id: str) -> ScriptDocument | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE id = ?",
                (document_id,),
            ).fetchone()
        return self._to_model(row) if row else None

    def list(self, limit: int = 100) -> list[ScriptDocument]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM documents
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [self._to_model(row) for row in rows]

    @staticmethod
    def _to_model(row) -> ScriptDocument:
        return ScriptDocument(
            id=row["id"],
            title=row["title"],
            source_uri=row["source_uri"],
            text_content=row["text_content"] or "",
            page_count=row["page_count"],
            char_count=int(row["char_count"] or 0),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            breakdown_status=row["breakdown_status"],
            breakdown_started_at=row["breakdown_started_at"],
            breakdown_completed_at=row["breakdown_completed_at"],
            breakdown_result_json=row["breakdown_result_json"],
            breakdown_error=row["breakdown_error"],
        )
