from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from scriptbreakdown.application.services.breakdown_service import BreakdownPipeline
from scriptbreakdown.core.config import AppPaths, BreakdownSettings, DEFAULT_STALE_JOB_TIMEOUT_SECONDS
from scriptbreakdown.core.errors import (
    DocumentNotFoundError,
    EmptyBreakdownError,
    JobAlreadyRunningError,
    JobNotFoundError,
    NoContentError,
)
from scriptbreakdown.core.ids import new_uuid
from scriptbreakdown.core.time import to_utc_iso, utc_now
from scriptbreakdown.domain.models.job import (
    JOB_IN_PROGRESS,
    JOB_PENDING,
    BreakdownJob,
)
from scriptbreakdown.infrastructure.db.repos.document_repo import DocumentRepo
from scriptbreakdown.infrastructure.db.repos.job_repo import BreakdownJobRepo
from scriptbreakdown.infrastructure.llm.chat_client import ChatClient, OpenAIChatClient
from scriptbreakdown.infrastructure.script.chunking import normalize_script_text

logger = logging.getLogger(__name__)

DEFAULT_JOB_RETENTION_DAYS = 30


@dataclass(slots=True)
class BreakdownJobHandle:
    job: BreakdownJob
    task: Callable[[], None]


class BreakdownJobService:
    """Own the lifecycle of breakdown jobs.

    At most one PENDING or IN_PROGRESS job exists per document. That rule is
    enforced by a partial unique index, and every terminal write only applies
    while the job is still IN_PROGRESS, so a cancelled job stays cancelled even
    if its run finishes later.
    """

    def __init__(
        self,
        *,
        job_repo: BreakdownJobRepo,
        document_repo: DocumentRepo,
        pipeline: BreakdownPipeline | None = None,
        stale_job_timeout_seconds: int = DEFAULT_STALE_JOB_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        progress_listener: Callable[[str, dict[str, object]], None] | None = None,
    ) -> None:
        self.job_repo = job_repo
        self.document_repo = document_repo
        self.pipeline = pipeline
        self.stale_job_timeout_seconds = max(1, int(stale_job_timeout_seconds))
        self._clock = clock
        self._progress_listener = progress_listener

    @property
    def extraction_available(self) -> bool:
        return self.pipeline is not None

    def start(self, document_id: str) -> BreakdownJobHandle:
        document = self.document_repo.get_by_id(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        if not normalize_script_text(document.text_content):
            raise NoContentError("no content")

        self.cancel_stale_jobs(document_id)
        active = self.job_repo.find_active(document_id)
        if active is not None:
            raise JobAlreadyRunningError(document_id, active.id)

        now = self._now_iso()
        job = BreakdownJob(
            id=new_uuid(),
            document_id=document_id,
            status=JOB_PENDING,
            created_at=now,
            updated_at=now,
            detail="Queued for breakdown.",
        )
        try:
            self.job_repo.insert(job)
        except sqlite3.IntegrityError as exc:
            winner = self.job_repo.find_active(document_id)
            raise JobAlreadyRunningError(document_id, winner.id if winner else None) from exc

        self.job_repo.mark_in_progress(
            job.id,
            document_id=document_id,
            started_at=now,
            detail="Starting breakdown.",
        )
        logger.info("Started breakdown job %s for document %s", job.id, document_id)

        stored = self.job_repo.get(job.id) or job
        return BreakdownJobHandle(job=stored, task=lambda: self.run(stored.id))

    def run(self, job_id: str) -> None:
        """Execute the pipeline for a started job and record the outcome.

        Never raises: any error, including a failed status write, is logged and
        recorded as a job failure when the job is still IN_PROGRESS.
        """
        try:
            self._execute(job_id)
        except Exception as exc:
            logger.exception("Breakdown job failed: %s", job_id)
            self._fail_safely(job_id, str(exc) or exc.__class__.__name__)

    def _execute(self, job_id: str) -> None:
        job = self.job_repo.get(job_id)
        if job is None:
            logger.warning("Breakdown job %s no longer exists", job_id)
            return
        if job.status != JOB_IN_PROGRESS:
            logger.info("Skipping breakdown job %s in status %s", job_id, job.status)
            return

        document = self.document_repo.get_by_id(job.document_id)
        if document is None:
            self._fail(job, f"Document not found: {job.document_id}")
            return
        if self.pipeline is None:
            self._fail(job, "No extraction model is configured.")
            return

        try:
            result = self.pipeline.run(
                document.text_content,
                page_count=document.page_count,
                progress_callback=lambda update: self._record_progress(job_id, update),
            )
        except EmptyBreakdownError as exc:
            logger.warning("Breakdown job %s produced no scenes", job_id)
            self._fail(job, str(exc))
            return

        completed = self.job_repo.mark_complete(
            job_id,
            document_id=job.document_id,
            result=result.to_dict(),
            detail=f"Complete: {result.total_scenes} scenes across {result.total_pages} pages.",
            finished_at=self._now_iso(),
        )
        if not completed:
            logger.info("Breakdown job %s finished after leaving IN_PROGRESS; result discarded", job_id)
            return
        logger.info("Breakdown job %s complete with %s scenes", job_id, result.total_scenes)

    def cancel_stale_jobs(self, document_id: str) -> list[str]:
        now = self._clock()
        cutoff = to_utc_iso(now - timedelta(seconds=self.stale_job_timeout_seconds))
        cancelled = self.job_repo.cancel_stale(
            document_id,
            started_before=cutoff,
            reason=f"no progress for over {self.stale_job_timeout_seconds} seconds",
            finished_at=to_utc_iso(now),
        )
        if cancelled:
            logger.warning("Cancelled %s stale breakdown job(s) for document %s", len(cancelled), document_id)
        return cancelled

    def cancel_job(self, job_id: str) -> BreakdownJob:
        job = self.get_job(job_id)
        if job.is_terminal:
            return job
        if self.job_repo.mark_cancelled(
            job_id,
            document_id=job.document_id,
            reason="cancelled by request",
            finished_at=self._now_iso(),
        ):
            logger.info("Cancelled breakdown job %s", job_id)
        return self.get_job(job_id)

    def get_job(self, job_id: str) -> BreakdownJob:
        job = self.job_repo.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Breakdown job not found: {job_id}")
        return job

    def latest_job_for_document(self, document_id: str) -> BreakdownJob | None:
        return self.job_repo.latest_for_document(document_id)

    def list_jobs(self, *, document_id: str | None = None, limit: int = 100) -> list[BreakdownJob]:
        return self.job_repo.list(document_id=document_id, limit=limit)

    def cleanup_finished_jobs(self, older_than_days: int = DEFAULT_JOB_RETENTION_DAYS) -> int:
        cutoff = to_utc_iso(self._clock() - timedelta(days=max(0, int(older_than_days))))
        removed = self.job_repo.delete_finished_before(cutoff)
        if removed:
            logger.info("Removed %s finished breakdown job(s)", removed)
        return removed

    def _record_progress(self, job_id: str, update: dict[str, object]) -> None:
        progress = {
            key: update[key]
            for key in ("stage", "chunks_total", "chunks_processed", "chunks_failed", "emitted_at")
            if key in update
        }
        self.job_repo.update_progress(
            job_id,
            progress=progress,
            detail=str(update.get("detail") or ""),
            updated_at=self._now_iso(),
        )
        if self._progress_listener is not None:
            self._progress_listener(job_id, update)

    def _fail(self, job: BreakdownJob, error: str) -> None:
        self.job_repo.mark_failed(
            job.id,
            document_id=job.document_id,
            error=error,
            finished_at=self._now_iso(),
        )

    def _fail_safely(self, job_id: str, error: str) -> None:
        try:
            job = self.job_repo.get(job_id)
            if job is not None:
                self._fail(job, error)
        except Exception:
            logger.exception("Could not record failure for breakdown job %s", job_id)

    def _now_iso(self) -> str:
        return to_utc_iso(self._clock())


def build_breakdown_job_service(
    paths: AppPaths,
    settings: BreakdownSettings,
    *,
    chat_client: ChatClient | None = None,
    progress_listener: Callable[[str, dict[str, object]], None] | None = None,
) -> BreakdownJobService:
    """Wire a job service for a project; no pipeline when no model is configured."""
    if chat_client is None and settings.llm_configured:
        chat_client = OpenAIChatClient.from_settings(settings)
    pipeline = BreakdownPipeline.from_settings(settings, chat_client) if chat_client is not None else None
    return BreakdownJobService(
        job_repo=BreakdownJobRepo(paths.db_path),
        document_repo=DocumentRepo(paths.db_path),
        pipeline=pipeline,
        stale_job_timeout_seconds=settings.stale_job_timeout_seconds,
        progress_listener=progress_listener,
    )
