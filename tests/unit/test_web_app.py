import json
import re
import threading
from pathlib import Path

from fastapi.testclient import TestClient

from scriptbreakdown.core.config import AppPaths, BreakdownSettings
from scriptbreakdown.web.app import create_app

_SECTION = re.compile(r"Section (\d+) of (\d+)")

SCRIPT = "\n\n".join(f"{n} INT. SET {n} - DAY\n\n" + ("a" * 230) for n in range(1, 11))

SETTINGS = BreakdownSettings(min_chars_per_chunk=200, max_chars_per_chunk=1000, chars_per_page=300)


class SectionChatClient:
    def __init__(self, gate: threading.Event | None = None) -> None:
        self.gate = gate

    def complete(self, messages, *, max_tokens, temperature) -> str:
        if self.gate is not None:
            self.gate.wait(timeout=10)
        section = int(_SECTION.search(messages[-1]["content"]).group(1))
        return json.dumps({"scenes": [{"scene_number": str(section), "set_name": f"SET {section}"}]})


def _paths(tmp_path: Path) -> AppPaths:
    project_root = tmp_path / "proj"
    project_root.mkdir(parents=True, exist_ok=True)
    return AppPaths(
        project_root=project_root,
        breakdown_dir=project_root / ".breakdown",
        db_path=project_root / ".breakdown" / "breakdown.db",
    )


def test_web_app_end_to_end_smoke(tmp_path: Path) -> None:
    app = create_app(_paths(tmp_path), settings=SETTINGS, chat_client=SectionChatClient())
    client = TestClient(app)

    r = client.post("/api/init")
    assert r.status_code == 200
    assert r.json()["ok"] is True

    r = client.post("/api/documents", json={"title": "Pilot", "text": SCRIPT})
    assert r.status_code == 200
    document = r.json()["document"]
    assert "text_content" not in document
    document_id = document["id"]

    r = client.get("/api/documents?limit=10")
    assert r.status_code == 200
    assert r.json()["count"] == 1

    r = client.post("/api/breakdown/start", json={"document_id": document_id})
    assert r.status_code == 200
    job_id = r.json()["job_id"]
    assert r.json()["job"]["status"] == "IN_PROGRESS"

    assert app.state.job_runner.wait_idle(timeout=30)

    r = client.get(f"/api/breakdown/status?job_id={job_id}")
    assert r.status_code == 200
    job = r.json()["job"]
    assert job["status"] == "COMPLETE"
    assert job["result"]["total_scenes"] == len(job["result"]["scenes"]) > 0

    r = client.get(f"/api/breakdown/status?document_id={document_id}")
    assert r.status_code == 200
    assert r.json()["job"]["id"] == job_id

    r = client.get(f"/api/documents/{document_id}")
    assert r.status_code == 200
    payload = r.json()
    assert payload["document"]["breakdown_status"] == "COMPLETE"
    assert payload["breakdown"] == job["result"]

    r = client.get(f"/api/breakdown/jobs?document_id={document_id}")
    assert r.status_code == 200
    assert r.json()["count"] == 1


def test_start_conflict_and_cancel(tmp_path: Path) -> None:
    gate = threading.Event()
    app = create_app(_paths(tmp_path), settings=SETTINGS, chat_client=SectionChatClient(gate))
    client = TestClient(app)
    document_id = client.post("/api/documents", json={"title": "Pilot", "text": SCRIPT}).json()["document"]["id"]

    try:
        first = client.post("/api/breakdown/start", json={"document_id": document_id})
        assert first.status_code == 200
        job_id = first.json()["job_id"]

        second = client.post("/api/breakdown/start", json={"document_id": document_id})
        assert second.status_code == 409
        assert second.json()["detail"] == {"message": "already running", "job_id": job_id}

        r = client.post(f"/api/breakdown/jobs/{job_id}/cancel")
        assert r.status_code == 200
        assert r.json()["job"]["status"] == "CANCELLED"
    finally:
        gate.set()

    assert app.state.job_runner.wait_idle(timeout=30)
    r = client.get(f"/api/breakdown/status?job_id={job_id}")
    assert r.json()["job"]["status"] == "CANCELLED"

    r = client.post("/api/breakdown/start", json={"document_id": document_id})
    assert r.status_code == 200
    assert app.state.job_runner.wait_idle(timeout=30)


def test_start_error_responses(tmp_path: Path) -> None:
    app = create_app(_paths(tmp_path), settings=SETTINGS, chat_client=SectionChatClient())
    client = TestClient(app)
    blank_id = client.post("/api/documents", json={"title": "Blank", "text": "   "}).json()["document"]["id"]

    assert client.post("/api/breakdown/start", json={"document_id": "missing"}).status_code == 404
    assert client.post("/api/breakdown/start", json={"document_id": blank_id}).status_code == 400
    assert client.get("/api/breakdown/status").status_code == 400
    assert client.get("/api/breakdown/status?job_id=missing").status_code == 404
    assert client.get(f"/api/breakdown/status?document_id={blank_id}").status_code == 404
    assert client.get("/api/documents/missing").status_code == 404
    assert client.post("/api/breakdown/jobs/missing/cancel").status_code == 404


def test_start_without_model_is_unavailable(tmp_path: Path) -> None:
    app = create_app(_paths(tmp_path), settings=BreakdownSettings(llm_api_key=None))
    client = TestClient(app)
    document_id = client.post("/api/documents", json={"title": "Pilot", "text": SCRIPT}).json()["document"]["id"]

    r = client.post("/api/breakdown/start", json={"document_id": document_id})

    assert r.status_code == 503
