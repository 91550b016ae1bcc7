import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import SAMPLE_ROWS, FakeRenderer, write_cache

from rnb.main import app
from rnb.services.notebook import NotebookService, get_notebook_service


@pytest.fixture
def service(settings) -> NotebookService:
    return NotebookService(settings=settings, renderer=FakeRenderer())


@pytest.fixture
def client(service: NotebookService):
    app.dependency_overrides[get_notebook_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _events(client: TestClient) -> list:
    response = client.get("/rpc/events")
    assert response.status_code == 200
    return response.json()["events"]


def test_health_endpoints(client: TestClient) -> None:
    assert client.get("/").text == "ok"
    assert client.get("/healthz").status_code == 200


def test_refresh_chunk_output_replays_after_response(client: TestClient, source_doc: Path, populated_cache) -> None:
    response = client.post(
        "/rpc/refresh_chunk_output",
        json={"doc_path": str(source_doc), "doc_id": "doc-1", "request_id": "req-1"},
    )

    assert response.status_code == 200
    assert response.json() == {"doc_id": "doc-1", "request_id": "req-1", "chunk_ids": ["c1", "c2"]}

    events = _events(client)
    assert [event["type"] for event in events] == ["chunk-output", "chunk-output", "chunk-output-finished"]
    assert events[-1]["data"] == {"doc_id": "doc-1", "request_id": "req-1", "chunk_id": "", "type": 0}
    assert _events(client) == []


def test_refresh_without_cache_still_finishes(client: TestClient, source_doc: Path) -> None:
    response = client.post("/rpc/refresh_chunk_output", json={"doc_path": str(source_doc), "doc_id": "doc-1"})

    assert response.json()["chunk_ids"] == []
    assert [event["type"] for event in _events(client)] == ["chunk-output-finished"]


def test_create_notebook_from_cache_writes_archive(client: TestClient, source_doc: Path, populated_cache) -> None:
    response = client.post("/rpc/create_notebook_from_cache", json={"source_path": str(source_doc)})

    assert response.status_code == 200
    output = Path(response.json()["path"])
    assert output.name == "analysis.nb.html"
    text = output.read_text(encoding="utf-8")
    assert "<!-- rnb-cache-data-begin" in text
    assert "<!-- rnb-chunk-id" not in text


def test_create_notebook_without_cache_renders_source(client: TestClient, source_doc: Path, tmp_path: Path) -> None:
    target = tmp_path / "out" / "plain.nb.html"
    response = client.post(
        "/rpc/create_notebook_from_cache",
        json={"source_path": str(source_doc), "output_path": str(target)},
    )

    assert response.status_code == 200
    text = target.read_text(encoding="utf-8")
    assert "rnb-document-source" in text
    assert "rnb-cache-data-begin" not in text


def test_create_notebook_for_missing_source_is_404(client: TestClient, tmp_path: Path) -> None:
    response = client.post("/rpc/create_notebook_from_cache", json={"source_path": str(tmp_path / "nope.Rmd")})
    assert response.status_code == 404


def test_create_notebook_from_corrupt_console_log_is_422(
    client: TestClient, service: NotebookService, source_doc: Path
) -> None:
    write_cache(service.cache_for(source_doc).path, SAMPLE_ROWS, {"c1/000001.csv": b"0,\xff\n"})

    response = client.post("/rpc/create_notebook_from_cache", json={"source_path": str(source_doc)})

    assert response.status_code == 422
    assert not source_doc.with_name("analysis.nb.html").exists()


def test_extract_restores_source_and_cache(
    client: TestClient, service: NotebookService, source_doc: Path, populated_cache, tmp_path: Path
) -> None:
    archive = client.post("/rpc/create_notebook_from_cache", json={"source_path": str(source_doc)}).json()["path"]
    restored = tmp_path / "restored" / "analysis.Rmd"

    response = client.post(
        "/rpc/extract_rmd_from_notebook",
        json={"input_path": archive, "output_path": str(restored)},
    )

    assert response.status_code == 200
    assert restored.read_text(encoding="utf-8") == source_doc.read_text(encoding="utf-8")
    cache_dir = service.cache_for(restored).path
    assert Path(response.json()["path"]) == cache_dir
    assert (cache_dir / "c2" / "000001.png").read_bytes() == (populated_cache / "c2" / "000001.png").read_bytes()

    archive_mtime = Path(archive).stat().st_mtime
    os.utime(restored, (archive_mtime + 60, archive_mtime + 60))
    again = client.post("/rpc/extract_rmd_from_notebook", json={"input_path": archive, "output_path": str(restored)})
    assert again.status_code == 409


def test_extract_from_document_without_manifest_is_422(client: TestClient, source_doc: Path, tmp_path: Path) -> None:
    response = client.post(
        "/rpc/extract_rmd_from_notebook",
        json={"input_path": str(source_doc), "output_path": str(tmp_path / "x.Rmd")},
    )
    assert response.status_code == 422


def test_set_chunk_console_rejects_bad_options(client: TestClient) -> None:
    response = client.post(
        "/rpc/set_chunk_console",
        json={"doc_id": "doc-1", "chunk_id": "c1", "options": "r, echo='sometimes'"},
    )
    assert response.status_code == 400


def test_batch_chunk_with_eval_false_only_clears_output(
    client: TestClient, service: NotebookService, source_doc: Path, populated_cache
) -> None:
    response = client.post(
        "/rpc/set_chunk_console",
        json={
            "doc_id": "doc-1",
            "chunk_id": "c1",
            "exec_mode": 1,
            "options": "r c1, eval=FALSE",
            "doc_path": str(source_doc),
        },
    )

    assert response.status_code == 200
    assert response.json() == {"eval": False}
    assert not (populated_cache / "c1").exists()
    assert service.controller.context is None


def test_interactive_execution_records_console_output(
    client: TestClient, source_doc: Path, populated_cache
) -> None:
    response = client.post(
        "/rpc/set_chunk_console",
        json={"doc_id": "doc-1", "chunk_id": "c1", "options": "r c1", "doc_path": str(source_doc)},
    )
    assert response.status_code == 200
    assert not (populated_cache / "c1").exists()

    client.post("/rpc/console_activated", json={"console_id": "c1", "text": "y <- 2"})
    recorded = client.post("/rpc/console_output", json={"console_id": "c1", "kind": 1, "text": "[1] 2\n"})
    assert recorded.json() == {"recorded": True}
    client.post("/rpc/chunk_exec_completed", json={"doc_id": "doc-1", "chunk_id": "c1"})

    log = (populated_cache / "c1" / "000001.csv").read_text(encoding="utf-8")
    assert log.splitlines()[0] == "0,y <- 2"
    finished = _events(client)[-1]
    assert finished["data"] == {"doc_id": "doc-1", "request_id": "", "chunk_id": "c1", "type": 1}
