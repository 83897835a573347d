from __future__ import annotations

from dataclasses import asdict, is_dataclass
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from scriptbreakdown.application.services.background_job_runner import BackgroundJobRunner
from scriptbreakdown.application.services.breakdown_job_service import build_breakdown_job_service
from scriptbreakdown.application.services.document_service import DocumentService
from scriptbreakdown.application.services.project_service import ProjectService
from scriptbreakdown.core.config import AppPaths, BreakdownSettings, load_settings
from scriptbreakdown.core.errors import (
    DocumentNotFoundError,
    JobAlreadyRunningError,
    JobNotFoundError,
    NoContentError,
)
from scriptbreakdown.domain.models.document import ScriptDocument
from scriptbreakdown.infrastructure.db.repos.document_repo import DocumentRepo
from scriptbreakdown.infrastructure.llm.chat_client import ChatClient


class DocumentCreateRequest(BaseModel):
    title: str
    text: str
    source_uri: str | None = None
    page_count: int | None = None


class BreakdownStartRequest(BaseModel):
    document_id: str


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def _document_summary(document: ScriptDocument) -> dict[str, Any]:
    payload = _jsonable(document)
    payload.pop("text_content", None)
    payload.pop("breakdown_result_json", None)
    return payload


def create_app(
    paths: AppPaths,
    *,
    settings: BreakdownSettings | None = None,
    chat_client: ChatClient | None = None,
) -> FastAPI:
    app = FastAPI(title="Script Breakdown", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    resolved_settings = settings or load_settings()
    project_service = ProjectService(paths)
    project_service.init_project()

    document_service = DocumentService(DocumentRepo(paths.db_path))
    job_service = build_breakdown_job_service(paths, resolved_settings, chat_client=chat_client)
    job_runner = BackgroundJobRunner()
    app.state.job_runner = job_runner
    app.state.job_service = job_service

    @app.on_event("shutdown")
    def _shutdown_job_runner() -> None:
        job_runner.shutdown()

    @app.post("/api/init")
    def api_init() -> dict[str, Any]:
        result = project_service.init_project()
        return {
            "ok": True,
            "db_path": str(result.db_path),
            "paths_created": [str(p) for p in result.paths_created],
        }

    @app.post("/api/documents")
    def api_create_document(req: DocumentCreateRequest) -> dict[str, Any]:
        document = document_service.import_text(
            req.text,
            title=req.title,
            source_uri=req.source_uri,
            page_count=req.page_count,
        )
        return {"ok": True, "document": _document_summary(document)}

    @app.get("/api/documents")
    def api_documents(limit: int = Query(default=100, ge=1, le=10000)) -> dict[str, Any]:
        documents = [_document_summary(d) for d in document_service.list(limit=limit)]
        return {"ok": True, "count": len(documents), "documents": documents}

    @app.get("/api/documents/{document_id}")
    def api_document_detail(document_id: str) -> dict[str, Any]:
        try:
            document = document_service.get(document_id)
            breakdown = document_service.get_breakdown(document_id)
        except DocumentNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {
            "ok": True,
            "document": _document_summary(document),
            "breakdown": breakdown.to_dict() if breakdown is not None else None,
        }

    @app.post("/api/breakdown/start")
    def api_breakdown_start(req: BreakdownStartRequest) -> dict[str, Any]:
        if not job_service.extraction_available:
            raise HTTPException(
                status_code=503,
                detail="No extraction model is configured. Set BREAKDOWN_LLM_API_KEY or OPENAI_API_KEY.",
            )
        try:
            handle = job_service.start(req.document_id)
        except DocumentNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except NoContentError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except JobAlreadyRunningError as exc:
            raise HTTPException(
                status_code=409,
                detail={"message": "already running", "job_id": exc.job_id},
            ) from exc
        job_runner.submit(handle.job.id, handle.task)
        return {"ok": True, "job_id": handle.job.id, "job": handle.job.to_dict()}

    @app.get("/api/breakdown/status")
    def api_breakdown_status(
        job_id: str | None = None,
        document_id: str | None = None,
    ) -> dict[str, Any]:
        if job_id:
            try:
                job = job_service.get_job(job_id)
            except JobNotFoundError as exc:
                raise HTTPException(status_code=404, detail=str(exc)) from exc
        elif document_id:
            job = job_service.latest_job_for_document(document_id)
            if job is None:
                raise HTTPException(status_code=404, detail=f"No breakdown jobs for document: {document_id}")
        else:
            raise HTTPException(status_code=400, detail="Provide job_id or document_id.")
        return {"ok": True, "job": job.to_dict()}

    @app.get("/api/breakdown/jobs")
    def api_breakdown_jobs(
        document_id: str | None = None,
        limit: int = Query(default=100, ge=1, le=10000),
    ) -> dict[str, Any]:
        jobs = [job.to_dict() for job in job_service.list_jobs(document_id=document_id, limit=limit)]
        return {"ok": True, "count": len(jobs), "jobs": jobs}

    @app.post("/api/breakdown/jobs/{job_id}/cancel")
    def api_breakdown_cancel(job_id: str) -> dict[str, Any]:
        try:
            job = job_service.cancel_job(job_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"ok": True, "job": job.to_dict()}

    return app
