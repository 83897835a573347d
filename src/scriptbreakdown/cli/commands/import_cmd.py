from __future__ import annotations

import argparse
from pathlib import Path

from rich.panel import Panel

from scriptbreakdown.application.services.document_service import DocumentService
from scriptbreakdown.cli.context import CLIContext, require_initialized_project
from scriptbreakdown.infrastructure.db.repos.document_repo import DocumentRepo


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("import", help="Import a plain-text screenplay")
    parser.add_argument("path", help="Path to a .txt or .fountain file")
    parser.add_argument("--title", help="Document title (default: file name)")
    parser.add_argument("--pages", type=int, help="Known page count, used to calibrate page estimates")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    require_initialized_project(ctx)
    service = DocumentService(DocumentRepo(ctx.paths.db_path))
    document = service.import_file(Path(args.path), title=args.title, page_count=args.pages)

    ctx.console.print(
        Panel.fit(
            "\n".join(
                [
                    f"Document ID: {document.id}",
                    f"Title: {document.title}",
                    f"Characters: {document.char_count}",
                    f"Pages: {document.page_count if document.page_count is not None else 'estimated'}",
                ]
            ),
            title="Import Summary",
        )
    )
    return 0
