from __future__ import annotations

import argparse
import json

from rich.panel import Panel
from rich.table import Table

from scriptbreakdown.application.services.breakdown_job_service import (
    DEFAULT_JOB_RETENTION_DAYS,
    BreakdownJobService,
    build_breakdown_job_service,
)
from scriptbreakdown.cli.context import CLIContext, require_initialized_project


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("jobs", help="Inspect and manage breakdown jobs")
    jobs_subparsers = parser.add_subparsers(dest="jobs_command", required=True)

    list_jobs = jobs_subparsers.add_parser("list", help="List breakdown jobs")
    list_jobs.add_argument("--document-id")
    list_jobs.add_argument("--limit", type=int, default=50)
    list_jobs.set_defaults(handler=run_list)

    status = jobs_subparsers.add_parser("status", help="Show one job")
    status.add_argument("job_id")
    status.add_argument("--json", action="store_true", help="Print the raw job record")
    status.set_defaults(handler=run_status)

    sweep = jobs_subparsers.add_parser("sweep", help="Cancel stale jobs for a document")
    sweep.add_argument("document_id")
    sweep.set_defaults(handler=run_sweep)

    cancel = jobs_subparsers.add_parser("cancel", help="Cancel a pending or running job")
    cancel.add_argument("job_id")
    cancel.set_defaults(handler=run_cancel)

    cleanup = jobs_subparsers.add_parser("cleanup", help="Delete finished jobs older than N days")
    cleanup.add_argument("--days", type=int, default=DEFAULT_JOB_RETENTION_DAYS)
    cleanup.set_defaults(handler=run_cleanup)


def _build_service(ctx: CLIContext) -> BreakdownJobService:
    return build_breakdown_job_service(ctx.paths, ctx.settings)


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    jobs = _build_service(ctx).list_jobs(document_id=args.document_id, limit=args.limit)

    table = Table(title=f"Breakdown Jobs ({len(jobs)})")
    table.add_column("Job ID", overflow="fold")
    table.add_column("Document ID", overflow="fold")
    table.add_column("Status")
    table.add_column("Started At")
    table.add_column("Finished At")
    table.add_column("Detail", overflow="fold")

    for job in jobs:
        table.add_row(
            job.id,
            job.document_id,
            job.status,
            job.started_at or "",
            job.finished_at or "",
            job.detail or "",
        )

    ctx.console.print(table)
    return 0


def run_status(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    job = _build_service(ctx).get_job(args.job_id)
    if args.json:
        ctx.console.print_json(json.dumps(job.to_dict()))
        return 0

    progress = job.progress or {}
    lines = [
        f"Job ID: {job.id}",
        f"Document ID: {job.document_id}",
        f"Status: {job.status}",
        f"Detail: {job.detail or ''}",
        f"Sections: {progress.get('chunks_processed', 0)}/{progress.get('chunks_total', '?')} "
        f"({progress.get('chunks_failed', 0)} failed)",
        f"Started: {job.started_at or 'n/a'}",
        f"Finished: {job.finished_at or 'n/a'}",
    ]
    if job.error_message:
        lines.append(f"Error: {job.error_message}")
    if job.result:
        lines.append(f"Scenes: {job.result.get('total_scenes')}")
    ctx.console.print(Panel.fit("\n".join(lines), title="Breakdown Job"))
    return 0


def run_sweep(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    cancelled = _build_service(ctx).cancel_stale_jobs(args.document_id)
    if cancelled:
        for job_id in cancelled:
            ctx.console.print(f"[yellow]Cancelled stale job[/yellow] {job_id}")
    else:
        ctx.console.print("[green]No stale jobs found[/green]")
    return 0


def run_cancel(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    job = _build_service(ctx).cancel_job(args.job_id)
    ctx.console.print(f"Job {job.id} is {job.status}")
    return 0


def run_cleanup(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    removed = _build_service(ctx).cleanup_finished_jobs(older_than_days=args.days)
    ctx.console.print(f"[green]Removed[/green] {removed} finished job(s) older than {args.days} days")
    return 0
