from pathlib import Path

import pytest

from scriptbreakdown.application.services.document_service import DocumentService, detect_page_count
from scriptbreakdown.core.errors import DocumentNotFoundError
from scriptbreakdown.infrastructure.db.repos.document_repo import DocumentRepo
from scriptbreakdown.infrastructure.db.sqlite import initialize_schema


def _service(tmp_path: Path) -> DocumentService:
    db_path = tmp_path / "breakdown.db"
    schema_path = (
        Path(__file__).resolve().parents[2]
        / "src"
        / "scriptbreakdown"
        / "infrastructure"
        / "db"
        / "schema.sql"
    )
    initialize_schema(db_path, schema_path)
    return DocumentService(DocumentRepo(db_path))


def test_detect_page_count_from_form_feeds() -> None:
    assert detect_page_count("page one\fpage two\fpage three") == 3
    assert detect_page_count("page one\fpage two\f\n") == 2
    assert detect_page_count("no breaks here") is None


def test_import_text_stores_document(tmp_path: Path) -> None:
    service = _service(tmp_path)

    document = service.import_text("INT. KITCHEN - DAY\r\n\r\nJohn waits.  ", title="  Pilot ")

    stored = service.get(document.id)
    assert stored.title == "Pilot"
    assert stored.text_content == "INT. KITCHEN - DAY\r\n\r\nJohn waits.  "
    assert stored.char_count == len("INT. KITCHEN - DAY\n\nJohn waits.")
    assert stored.page_count is None
    assert stored.breakdown_status == "NOT_STARTED"
    assert service.get_breakdown(document.id) is None


def test_import_text_prefers_explicit_page_count(tmp_path: Path) -> None:
    service = _service(tmp_path)

    detected = service.import_text("one\ftwo", title="A")
    explicit = service.import_text("one\ftwo", title="B", page_count=40)

    assert detected.page_count == 2
    assert explicit.page_count == 40


def test_import_file_reads_windows_encoded_script(tmp_path: Path) -> None:
    service = _service(tmp_path)
    source = tmp_path / "café_scene.txt"
    source.write_bytes("INT. CAFÉ - NIGHT\n\nRenée orders.".encode("cp1252"))

    document = service.import_file(source)

    assert document.title == "café_scene"
    assert document.text_content == "INT. CAFÉ - NIGHT\n\nRenée orders."
    assert document.source_uri == source.resolve().as_uri()


def test_import_file_missing_path_raises(tmp_path: Path) -> None:
    service = _service(tmp_path)

    with pytest.raises(DocumentNotFoundError):
        service.import_file(tmp_path / "missing.txt")


def test_get_unknown_document_raises(tmp_path: Path) -> None:
    service = _service(tmp_path)

    with pytest.raises(DocumentNotFoundError):
        service.get("nope")


def test_list_returns_newest_first(tmp_path: Path) -> None:
    service = _service(tmp_path)
    first = service.import_text("INT. A - DAY", title="First")
    second = service.import_text("INT. B - DAY", title="Second")

    listed = service.list(limit=10)

    assert {doc.id for doc in listed} == {first.id, second.id}
    assert len(service.list(limit=1)) == 1
