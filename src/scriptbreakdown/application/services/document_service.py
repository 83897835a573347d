from __future__ import annotations

import json
import logging
from pathlib import Path

from scriptbreakdown.core.errors import DocumentNotFoundError
from scriptbreakdown.core.files import read_script_text
from scriptbreakdown.core.ids import new_uuid
from scriptbreakdown.core.time import now_utc_iso
from scriptbreakdown.domain.models.breakdown import BreakdownResult
from scriptbreakdown.domain.models.document import ScriptDocument
from scriptbreakdown.infrastructure.db.repos.document_repo import DocumentRepo
from scriptbreakdown.infrastructure.script.chunking import normalize_script_text

logger = logging.getLogger(__name__)


def detect_page_count(text: str) -> int | None:
    """Count pages from form feeds left behind by PDF text extraction."""
    body = (text or "").rstrip("\f \n\r\t")
    if "\f" not in body:
        return None
    return body.count("\f") + 1


class DocumentService:
    def __init__(self, document_repo: DocumentRepo) -> None:
        self.document_repo = document_repo

    def import_text(
        self,
        text: str,
        *,
        title: str,
        source_uri: str | None = None,
        page_count: int | None = None,
    ) -> ScriptDocument:
        resolved_pages = page_count if page_count and page_count > 0 else detect_page_count(text)
        now = now_utc_iso()
        document = ScriptDocument(
            id=new_uuid(),
            title=(title or "").strip() or "Untitled script",
            source_uri=source_uri,
            text_content=text or "",
            page_count=resolved_pages,
            char_count=len(normalize_script_text(text)),
            created_at=now,
            updated_at=now,
        )
        self.document_repo.insert(document)
        logger.info("Imported document %s (%s chars)", document.id, document.char_count)
        return document

    def import_file(
        self,
        file_path: Path,
        *,
        title: str | None = None,
        page_count: int | None = None,
    ) -> ScriptDocument:
        path = file_path.expanduser().resolve()
        if not path.exists() or not path.is_file():
            raise DocumentNotFoundError(f"File not found: {path}")
        return self.import_text(
            read_script_text(path),
            title=title or path.stem,
            source_uri=path.as_uri(),
            page_count=page_count,
        )

    def get(self, document_id: str) -> ScriptDocument:
        document = self.document_repo.get_by_id(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        return document

    def list(self, limit: int = 100) -> list[ScriptDocument]:
        return self.document_repo.list(limit=limit)

    def get_breakdown(self, document_id: str) -> BreakdownResult | None:
        document = self.get(document_id)
        if not document.breakdown_result_json:
            return None
        return BreakdownResult.from_dict(json.loads(document.breakdown_result_json))
