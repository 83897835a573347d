from __future__ import annotations

import argparse

from rich.panel import Panel
from rich.table import Table

from scriptbreakdown.application.services.document_service import DocumentService
from scriptbreakdown.cli.context import CLIContext, require_initialized_project
from scriptbreakdown.infrastructure.db.repos.document_repo import DocumentRepo


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("documents", help="List and inspect imported scripts")
    documents_subparsers = parser.add_subparsers(dest="documents_command", required=True)

    list_docs = documents_subparsers.add_parser("list", help="List imported documents")
    list_docs.add_argument("--limit", type=int, default=50)
    list_docs.set_defaults(handler=run_list)

    show = documents_subparsers.add_parser("show", help="Show a document and its scene breakdown")
    show.add_argument("document_id")
    show.set_defaults(handler=run_show)


def _build_service(ctx: CLIContext) -> DocumentService:
    return DocumentService(DocumentRepo(ctx.paths.db_path))


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    documents = _build_service(ctx).list(limit=args.limit)

    table = Table(title=f"Documents ({len(documents)})")
    table.add_column("ID", overflow="fold")
    table.add_column("Title", overflow="fold")
    table.add_column("Chars")
    table.add_column("Pages")
    table.add_column("Breakdown")
    table.add_column("Created At")

    for document in documents:
        table.add_row(
            document.id,
            document.title,
            str(document.char_count),
            str(document.page_count) if document.page_count is not None else "",
            document.breakdown_status,
            document.created_at,
        )

    ctx.console.print(table)
    return 0


def run_show(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    service = _build_service(ctx)
    document = service.get(args.document_id)
    breakdown = service.get_breakdown(document.id)

    lines = [
        f"Document ID: {document.id}",
        f"Title: {document.title}",
        f"Breakdown status: {document.breakdown_status}",
    ]
    if document.breakdown_error:
        lines.append(f"Last error: {document.breakdown_error}")
    if breakdown is not None:
        lines.append(f"Scenes: {breakdown.total_scenes} across {breakdown.total_pages} pages")
    ctx.console.print(Panel.fit("\n".join(lines), title=document.title))

    if breakdown is None:
        return 0

    table = Table(title="Scenes")
    table.add_column("#")
    table.add_column("I/E")
    table.add_column("Set", overflow="fold")
    table.add_column("Time")
    table.add_column("Pages")
    table.add_column("Length")
    table.add_column("Characters", overflow="fold")

    for scene in breakdown.scenes:
        pages = (
            str(scene.script_page_start)
            if scene.script_page_start == scene.script_page_end
            else f"{scene.script_page_start}-{scene.script_page_end}"
        )
        table.add_row(
            scene.scene_number,
            scene.int_ext,
            scene.set_name,
            scene.time_of_day,
            pages,
            f"{scene.page_length_eighths}/8",
            ", ".join(scene.characters),
        )

    ctx.console.print(table)
    return 0
