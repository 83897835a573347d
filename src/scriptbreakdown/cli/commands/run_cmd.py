from __future__ import annotations

import argparse

from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from scriptbreakdown.application.services.background_job_runner import BackgroundJobRunner
from scriptbreakdown.application.services.breakdown_job_service import build_breakdown_job_service
from scriptbreakdown.cli.context import CLIContext, require_initialized_project
from scriptbreakdown.core.errors import ConfigurationError
from scriptbreakdown.domain.models.job import JOB_COMPLETE


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("run", help="Run a scene breakdown for an imported document")
    parser.add_argument("document_id")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    if not ctx.settings.llm_configured:
        raise ConfigurationError("No model API key configured. Set BREAKDOWN_LLM_API_KEY or OPENAI_API_KEY.")

    progress = Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total} sections"),
        TimeElapsedColumn(),
        console=ctx.console,
    )
    bar = progress.add_task(f"Breaking down document {args.document_id}...", total=None)

    def on_progress(job_id: str, update: dict[str, object]) -> None:
        total = update.get("chunks_total")
        progress.update(
            bar,
            total=int(total) if isinstance(total, int) else None,
            completed=int(update.get("chunks_processed") or 0),
            description=str(update.get("detail") or "Working..."),
        )

    service = build_breakdown_job_service(ctx.paths, ctx.settings, progress_listener=on_progress)
    handle = service.start(args.document_id)
    runner = BackgroundJobRunner(workers=1)

    with progress:
        runner.submit(handle.job.id, handle.task)
        try:
            while not runner.wait_idle(timeout=0.25):
                pass
        except KeyboardInterrupt:
            service.cancel_job(handle.job.id)
            ctx.console.print(f"[yellow]Cancelled[/yellow] job {handle.job.id}")
            return 130
        finally:
            runner.shutdown()

    job = service.get_job(handle.job.id)
    lines = [
        f"Job ID: {job.id}",
        f"Status: {job.status}",
        f"Detail: {job.detail or ''}",
    ]
    if job.error_message:
        lines.append(f"Error: {job.error_message}")
    progress_info = job.progress or {}
    if progress_info.get("chunks_failed"):
        lines.append(f"Sections failed: {progress_info['chunks_failed']}/{progress_info.get('chunks_total')}")
    ctx.console.print(Panel.fit("\n".join(lines), title="Breakdown Summary"))
    return 0 if job.status == JOB_COMPLETE else 1
