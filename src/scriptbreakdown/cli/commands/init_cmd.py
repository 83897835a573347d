from __future__ import annotations

import argparse

from scriptbreakdown.application.services.project_service import ProjectService
from scriptbreakdown.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("init", help="Initialize breakdown project metadata and database")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    result = ProjectService(ctx.paths).init_project()

    if result.paths_created:
        for path in result.paths_created:
            ctx.console.print(f"[green]Created[/green] {path}")
    else:
        ctx.console.print("[yellow]Project paths already existed[/yellow]")

    ctx.console.print(f"[green]Database ready[/green] {result.db_path}")
    if not ctx.settings.llm_configured:
        ctx.console.print(
            "[yellow]No model API key found.[/yellow] Set BREAKDOWN_LLM_API_KEY or OPENAI_API_KEY before running breakdowns."
        )
    return 0
