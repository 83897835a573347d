from pathlib import Path

from scriptbreakdown.cli.main import main


def _clear_env(monkeypatch) -> None:
    for name in ("BREAKDOWN_HOME", "BREAKDOWN_LLM_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def test_cli_init_import_and_list(tmp_path: Path, monkeypatch) -> None:
    _clear_env(monkeypatch)
    root = tmp_path / "proj"
    root.mkdir()
    script = tmp_path / "pilot.txt"
    script.write_text("INT. KITCHEN - DAY\n\nJohn makes coffee.\n", encoding="utf-8")

    assert main(["--project-root", str(root), "init"]) == 0
    assert (root / ".breakdown" / "breakdown.db").exists()
    assert main(["--project-root", str(root), "import", str(script), "--pages", "1"]) == 0
    assert main(["--project-root", str(root), "documents", "list"]) == 0
    assert main(["--project-root", str(root), "jobs", "list"]) == 0
    assert main(["--project-root", str(root), "jobs", "cleanup", "--days", "1"]) == 0


def test_cli_requires_initialized_project(tmp_path: Path, monkeypatch) -> None:
    _clear_env(monkeypatch)

    assert main(["--project-root", str(tmp_path), "documents", "list"]) == 1


def test_cli_reports_missing_records(tmp_path: Path, monkeypatch) -> None:
    _clear_env(monkeypatch)
    assert main(["--project-root", str(tmp_path), "init"]) == 0

    assert main(["--project-root", str(tmp_path), "documents", "show", "missing"]) == 1
    assert main(["--project-root", str(tmp_path), "jobs", "status", "missing"]) == 1
    assert main(["--project-root", str(tmp_path), "import", str(tmp_path / "missing.txt")]) == 1


def test_cli_run_without_model_fails(tmp_path: Path, monkeypatch) -> None:
    _clear_env(monkeypatch)
    script = tmp_path / "pilot.txt"
    script.write_text("INT. KITCHEN - DAY\n\nJohn makes coffee.\n", encoding="utf-8")
    assert main(["--project-root", str(tmp_path), "init"]) == 0

    assert main(["--project-root", str(tmp_path), "run", "some-document"]) == 1
