from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console

from scriptbreakdown.application.services.project_service import ProjectService
from scriptbreakdown.core.config import AppPaths, BreakdownSettings
from scriptbreakdown.core.errors import ProjectNotInitializedError


@dataclass(slots=True)
class CLIContext:
    paths: AppPaths
    settings: BreakdownSettings
    console: Console


def require_initialized_project(ctx: CLIContext) -> None:
    project_service = ProjectService(ctx.paths)
    if not project_service.is_initialized():
        raise ProjectNotInitializedError(
            f"Project is not initialized. Run 'breakdown init' first in {ctx.paths.project_root}"
        )
    # Ensure latest schema objects exist even on older DBs.
    project_service.init_project()
