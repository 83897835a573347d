from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from scriptbreakdown.core.config import AppPaths
from scriptbreakdown.core.files import ensure_directory
from scriptbreakdown.infrastructure.db.sqlite import initialize_schema

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "infrastructure" / "db" / "schema.sql"


@dataclass(slots=True)
class InitResult:
    paths_created: list[Path]
    db_path: Path


class ProjectService:
    def __init__(self, paths: AppPaths) -> None:
        self.paths = paths

    def init_project(self) -> InitResult:
        paths_created: list[Path] = []
        if not self.paths.breakdown_dir.exists():
            paths_created.append(self.paths.breakdown_dir)
        ensure_directory(self.paths.breakdown_dir)

        initialize_schema(self.paths.db_path, SCHEMA_PATH)
        return InitResult(paths_created=paths_created, db_path=self.paths.db_path)

    def is_initialized(self) -> bool:
        return self.paths.db_path.exists()
