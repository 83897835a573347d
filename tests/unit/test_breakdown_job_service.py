import json
import re
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from scriptbreakdown.application.services.breakdown_job_service import BreakdownJobService
from scriptbreakdown.application.services.breakdown_service import BreakdownPipeline
from scriptbreakdown.application.services.document_service import DocumentService
from scriptbreakdown.core.errors import (
    DocumentNotFoundError,
    JobAlreadyRunningError,
    JobNotFoundError,
    NoContentError,
)
from scriptbreakdown.infrastructure.db.repos.document_repo import DocumentRepo
from scriptbreakdown.infrastructure.db.repos.job_repo import BreakdownJobRepo
from scriptbreakdown.infrastructure.db.sqlite import initialize_schema
from scriptbreakdown.infrastructure.llm.scene_extraction_adapter import SceneExtractionAdapter
from scriptbreakdown.infrastructure.script.chunking import ScriptChunker

_SECTION = re.compile(r"Section (\d+) of (\d+)")

SCRIPT = "\n\n".join(f"{n} INT. SET {n} - DAY\n\n" + ("a" * 230) for n in range(1, 11))


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class SectionChatClient:
    def __init__(self, empty: bool = False) -> None:
        self.empty = empty
        self.on_call = None

    def complete(self, messages, *, max_tokens, temperature) -> str:
        if self.on_call is not None:
            self.on_call()
        if self.empty:
            return '{"scenes": []}'
        section = int(_SECTION.search(messages[-1]["content"]).group(1))
        return json.dumps({"scenes": [{"scene_number": str(section), "set_name": f"SET {section}"}]})


class ExplodingPipeline:
    def run(self, text, **kwargs):
        raise RuntimeError("model exploded")


def _setup(tmp_path: Path, client=None, *, pipeline=None, clock=None, listener=None):
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

    document_repo = DocumentRepo(db_path)
    if pipeline is None and client is not None:
        pipeline = BreakdownPipeline(
            chunker=ScriptChunker(min_chars=200, max_chars=1000, chars_per_page=300),
            adapter=SceneExtractionAdapter(client),
        )
    service = BreakdownJobService(
        job_repo=BreakdownJobRepo(db_path),
        document_repo=document_repo,
        pipeline=pipeline,
        stale_job_timeout_seconds=600,
        clock=clock or FakeClock(),
        progress_listener=listener,
    )
    documents = DocumentService(document_repo)
    return service, documents


def test_start_and_run_completes_job_and_attaches_result(tmp_path: Path) -> None:
    updates: list[tuple[str, dict]] = []
    service, documents = _setup(tmp_path, SectionChatClient(), listener=lambda job_id, u: updates.append((job_id, u)))
    document = documents.import_text(SCRIPT, title="Pilot")

    handle = service.start(document.id)
    assert handle.job.status == "IN_PROGRESS"
    assert handle.job.started_at is not None
    assert documents.get(document.id).breakdown_status == "IN_PROGRESS"

    handle.task()

    job = service.get_job(handle.job.id)
    assert job.status == "COMPLETE"
    assert job.finished_at is not None
    assert job.error_message is None
    assert job.result["total_scenes"] == len(job.result["scenes"]) > 0
    assert job.progress["stage"] == "merge"

    stored = documents.get(document.id)
    assert stored.breakdown_status == "COMPLETE"
    assert stored.breakdown_completed_at == job.finished_at
    breakdown = documents.get_breakdown(document.id)
    assert breakdown is not None
    assert breakdown.to_dict() == job.result

    assert updates
    assert all(job_id == job.id for job_id, _ in updates)
    assert updates[0][1]["stage"] == "chunk"


def test_second_start_is_rejected_while_job_is_active(tmp_path: Path) -> None:
    service, documents = _setup(tmp_path, SectionChatClient())
    document = documents.import_text(SCRIPT, title="Pilot")

    first = service.start(document.id)
    with pytest.raises(JobAlreadyRunningError) as excinfo:
        service.start(document.id)

    assert excinfo.value.job_id == first.job.id
    assert len(service.list_jobs(document_id=document.id)) == 1


def test_concurrent_starts_create_exactly_one_job(tmp_path: Path) -> None:
    service, documents = _setup(tmp_path, SectionChatClient())
    document = documents.import_text(SCRIPT, title="Pilot")

    barrier = threading.Barrier(4)
    started: list[str] = []
    rejected: list[JobAlreadyRunningError] = []
    lock = threading.Lock()

    def _start() -> None:
        barrier.wait()
        try:
            handle = service.start(document.id)
        except JobAlreadyRunningError as exc:
            with lock:
                rejected.append(exc)
        else:
            with lock:
                started.append(handle.job.id)

    threads = [threading.Thread(target=_start) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert len(started) == 1
    assert len(rejected) == 3
    assert [job.id for job in service.list_jobs(document_id=document.id)] == started


def test_stale_job_is_cancelled_and_a_new_one_can_start(tmp_path: Path) -> None:
    clock = FakeClock()
    service, documents = _setup(tmp_path, SectionChatClient(), clock=clock)
    document = documents.import_text(SCRIPT, title="Pilot")
    stale = service.start(document.id)

    clock.advance(seconds=300)
    assert service.cancel_stale_jobs(document.id) == []
    with pytest.raises(JobAlreadyRunningError):
        service.start(document.id)

    clock.advance(seconds=301)
    fresh = service.start(document.id)

    old = service.get_job(stale.job.id)
    assert old.status == "CANCELLED"
    assert old.error_message == "no progress for over 600 seconds"
    assert fresh.job.id != stale.job.id
    assert fresh.job.status == "IN_PROGRESS"


def test_cancelled_job_is_not_resurrected_by_run(tmp_path: Path) -> None:
    service, documents = _setup(tmp_path, SectionChatClient())
    document = documents.import_text(SCRIPT, title="Pilot")
    handle = service.start(document.id)

    cancelled = service.cancel_job(handle.job.id)
    handle.task()

    assert cancelled.status == "CANCELLED"
    assert cancelled.error_message == "cancelled by request"
    job = service.get_job(handle.job.id)
    assert job.status == "CANCELLED"
    assert job.result is None
    stored = documents.get(document.id)
    assert stored.breakdown_status == "CANCELLED"
    assert stored.breakdown_result_json is None


def test_cancel_during_run_discards_the_result(tmp_path: Path) -> None:
    client = SectionChatClient()
    service, documents = _setup(tmp_path, client)
    document = documents.import_text(SCRIPT, title="Pilot")
    handle = service.start(document.id)
    client.on_call = lambda: service.cancel_job(handle.job.id)

    handle.task()

    job = service.get_job(handle.job.id)
    assert job.status == "CANCELLED"
    assert job.result is None
    assert documents.get(document.id).breakdown_result_json is None


def test_cancel_of_finished_job_is_a_no_op(tmp_path: Path) -> None:
    service, documents = _setup(tmp_path, SectionChatClient())
    document = documents.import_text(SCRIPT, title="Pilot")
    handle = service.start(document.id)
    handle.task()

    job = service.cancel_job(handle.job.id)

    assert job.status == "COMPLETE"
    assert documents.get(document.id).breakdown_status == "COMPLETE"


def test_empty_result_fails_the_job(tmp_path: Path) -> None:
    service, documents = _setup(tmp_path, SectionChatClient(empty=True))
    document = documents.import_text(SCRIPT, title="Pilot")
    handle = service.start(document.id)

    handle.task()

    job = service.get_job(handle.job.id)
    assert job.status == "FAILED"
    assert job.error_message == "empty result"
    stored = documents.get(document.id)
    assert stored.breakdown_status == "FAILED"
    assert stored.breakdown_error == "empty result"


def test_unexpected_pipeline_error_fails_the_job(tmp_path: Path) -> None:
    service, documents = _setup(tmp_path, pipeline=ExplodingPipeline())
    document = documents.import_text(SCRIPT, title="Pilot")
    handle = service.start(document.id)

    handle.task()

    job = service.get_job(handle.job.id)
    assert job.status == "FAILED"
    assert job.error_message == "model exploded"


def test_run_without_pipeline_fails_the_job(tmp_path: Path) -> None:
    service, documents = _setup(tmp_path)
    document = documents.import_text(SCRIPT, title="Pilot")
    assert not service.extraction_available
    handle = service.start(document.id)

    handle.task()

    assert service.get_job(handle.job.id).status == "FAILED"


def test_document_without_content_is_rejected_before_creating_a_job(tmp_path: Path) -> None:
    service, documents = _setup(tmp_path, SectionChatClient())
    document = documents.import_text("  \n\n  ", title="Blank")

    with pytest.raises(NoContentError):
        service.start(document.id)
    assert service.list_jobs(document_id=document.id) == []


def test_unknown_document_and_job_are_reported(tmp_path: Path) -> None:
    service, _ = _setup(tmp_path, SectionChatClient())

    with pytest.raises(DocumentNotFoundError):
        service.start("missing-document")
    with pytest.raises(JobNotFoundError):
        service.get_job("missing-job")
    with pytest.raises(JobNotFoundError):
        service.cancel_job("missing-job")


def test_a_new_job_can_start_after_completion(tmp_path: Path) -> None:
    service, documents = _setup(tmp_path, SectionChatClient())
    document = documents.import_text(SCRIPT, title="Pilot")
    service.start(document.id).task()

    again = service.start(document.id)

    assert service.latest_job_for_document(document.id).id == again.job.id
    assert len(service.list_jobs(document_id=document.id)) == 2


def test_cleanup_removes_old_finished_jobs_only(tmp_path: Path) -> None:
    clock = FakeClock()
    service, documents = _setup(tmp_path, SectionChatClient(), clock=clock)
    finished_doc = documents.import_text(SCRIPT, title="Done")
    active_doc = documents.import_text(SCRIPT, title="Running")
    service.start(finished_doc.id).task()
    service.start(active_doc.id)

    assert service.cleanup_finished_jobs(older_than_days=30) == 0

    clock.advance(days=31)
    assert service.cleanup_finished_jobs(older_than_days=30) == 1
    assert service.list_jobs(document_id=finished_doc.id) == []
    assert len(service.list_jobs(document_id=active_doc.id)) == 1


def _raise_locked(*args, **kwargs):
    raise sqlite3.OperationalError("database is locked")


def test_failed_completion_write_fails_job_and_document(tmp_path: Path, monkeypatch) -> None:
    service, documents = _setup(tmp_path, SectionChatClient())
    document = documents.import_text(SCRIPT, title="Pilot")
    handle = service.start(document.id)
    monkeypatch.setattr(service.job_repo, "mark_complete", _raise_locked)

    handle.task()

    job = service.get_job(handle.job.id)
    assert job.status == "FAILED"
    assert job.error_message == "database is locked"
    assert job.result is None
    stored = documents.get(document.id)
    assert stored.breakdown_status == "FAILED"
    assert stored.breakdown_error == "database is locked"
    assert stored.breakdown_result_json is None


def test_run_returns_normally_when_failure_cannot_be_recorded(tmp_path: Path, monkeypatch) -> None:
    service, documents = _setup(tmp_path, pipeline=ExplodingPipeline())
    document = documents.import_text(SCRIPT, title="Pilot")
    handle = service.start(document.id)
    monkeypatch.setattr(service.job_repo, "mark_failed", _raise_locked)

    handle.task()

    assert service.get_job(handle.job.id).status == "IN_PROGRESS"
    assert documents.get(document.id).breakdown_status == "IN_PROGRESS"


def test_run_returns_normally_when_job_lookup_fails(tmp_path: Path, monkeypatch) -> None:
    service, documents = _setup(tmp_path, SectionChatClient())
    document = documents.import_text(SCRIPT, title="Pilot")
    handle = service.start(document.id)
    monkeypatch.setattr(service.job_repo, "get", _raise_locked)

    handle.task()

    monkeypatch.undo()
    assert service.get_job(handle.job.id).status == "IN_PROGRESS"


def test_stale_cancellation_updates_the_document(tmp_path: Path) -> None:
    clock = FakeClock()
    service, documents = _setup(tmp_path, SectionChatClient(), clock=clock)
    document = documents.import_text(SCRIPT, title="Pilot")
    service.start(document.id)

    clock.advance(seconds=601)
    assert len(service.cancel_stale_jobs(document.id)) == 1

    stored = documents.get(document.id)
    assert stored.breakdown_status == "CANCELLED"
    assert stored.breakdown_error == "no progress for over 600 seconds"
