"""Tests for the FastAPI service mode."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from gamepipe.orchestrator import PipelineError, PipelineOrchestrator
from gamepipe.service import create_app
from tests._fixtures.module_builder import SAMPLE_SPEC, ModuleSetBuilder


class _FailingOrchestrator:
    def run_build(self, request):
        raise PipelineError("disk on fire")


@pytest.fixture
def client(modules: ModuleSetBuilder) -> TestClient:
    config = modules.config()
    app = create_app(lambda: PipelineOrchestrator(config))
    return TestClient(app)


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_build_endpoint_runs_pipeline(client: TestClient, modules: ModuleSetBuilder) -> None:
    modules.module("a")
    payload = {
        "spec": SAMPLE_SPEC,
        "manifests": modules.manifests(),
        "files": [
            {"path": item.path, "content": item.content, "module_id": item.module_id}
            for item in modules.files()
        ],
        "build_id": "svc-1",
        "export": False,
    }

    response = client.post("/builds", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["build_id"] == "svc-1"
    assert data["status"] == "PASS"
    assert data["report"]["steps"][-1]["id"] == "assembly.apply"


def test_build_endpoint_accepts_camel_case_module_ids(
    client: TestClient, modules: ModuleSetBuilder
) -> None:
    modules.module("a")
    payload = {
        "spec": SAMPLE_SPEC,
        "manifests": modules.manifests(),
        "files": [item.to_dict() for item in modules.files()],
        "build_id": "svc-camel",
        "export": False,
    }
    assert all("moduleId" in item for item in payload["files"])

    response = client.post("/builds", json=payload)

    assert response.status_code == 200
    assert response.json()["status"] == "PASS"


def test_scan_endpoint_reports_violations(client: TestClient) -> None:
    response = client.post(
        "/scan", json={"files": [{"path": "a.ts", "content": 'import fs from "fs";\n'}]}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is False
    assert data["violations"] == [
        {"file": "a.ts", "message": "Import prohibido: fs", "line": 1, "column": 1}
    ]


def test_graph_endpoint_reports_missing(client: TestClient, modules: ModuleSetBuilder) -> None:
    modules.module("shop", consumes={"state": ["economy.gold"]})

    response = client.post("/graph", json={"manifests": modules.manifests()})

    assert response.status_code == 200
    assert response.json()["graph"]["missing"] == [
        {"moduleId": "shop", "type": "state", "key": "economy.gold"}
    ]


def test_graph_endpoint_rejects_invalid_manifest(client: TestClient) -> None:
    response = client.post("/graph", json={"manifests": [{"module": {"id": "x"}}]})

    assert response.status_code == 400
    assert "module.entry es requerido" in response.json()["errors"]


def test_migrate_endpoint(client: TestClient) -> None:
    response = client.post(
        "/migrate",
        json={"spec": {"systems": {}}, "template_id": "idle-rpg-base", "from_version": "1.1", "to_version": "1.2"},
    )

    assert response.status_code == 200
    assert response.json()["spec"]["systems"]["inventory"] == {"enabled": False}


def test_migrate_endpoint_rejects_unknown_template(client: TestClient) -> None:
    response = client.post(
        "/migrate",
        json={"spec": {}, "template_id": "nope", "from_version": "1", "to_version": "2"},
    )

    assert response.status_code == 400


def test_pipeline_errors_map_to_500() -> None:
    app = create_app(lambda: _FailingOrchestrator())  # type: ignore[arg-type, return-value]
    client = TestClient(app)

    response = client.post("/builds", json={"spec": {}})

    assert response.status_code == 500
    assert response.json() == {"detail": "disk on fire", "error": "pipeline_error"}
