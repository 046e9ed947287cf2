import asyncio

import pytest
from conftest import OWNER, REPO, pull_detail
from fastapi.testclient import TestClient

from codegate.config import Settings
from codegate.dependencies import ServiceContainer, container_dependency
from codegate.main import app
from codegate.stores import build_stores

GITHUB_BLOB = {"token": "ghp_secret", "owner": OWNER, "repo": REPO}


@pytest.fixture
def container(github_http, engine_factory):
    return ServiceContainer(Settings(), build_stores(), github_http=github_http, ai_engine_factory=engine_factory())


@pytest.fixture
def client(container):
    app.dependency_overrides[container_dependency] = lambda: container
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def configured(client):
    response = client.put("/config/github", json=GITHUB_BLOB)
    assert response.status_code == 200
    return client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_config_round_trip_masks_secrets(client):
    saved = client.put("/config/ai", json={"provider": "groq", "api_key": "gsk_secret", "auto_merge": {"mode": "greater"}})
    read = client.get("/config/ai")

    assert saved.status_code == 200
    assert read.json()["api_key"] == "********"
    assert read.json()["provider"] == "groq"
    assert read.json()["auto_merge"]["mode"] == "at_least"


def test_invalid_config_is_rejected(client):
    response = client.put("/config/ai", json={"provider": "nope"})
    assert response.status_code == 422


def test_unknown_config_type(client):
    assert client.get("/config/slack").status_code == 404
    assert client.put("/config/slack", json={}).status_code == 404


def test_unsaved_config_is_not_found(client):
    assert client.get("/config/jira").status_code == 404


def test_pulls_require_github_configuration(client):
    response = client.get("/pulls")

    assert response.status_code == 409
    assert response.json()["error_kind"] == "configuration"


def test_list_pulls(configured):
    response = configured.get("/pulls")

    assert response.status_code == 200
    assert [pr["number"] for pr in response.json()] == [7]
    assert configured.get("/config/github").json()["token"] == "********"


def test_pipeline_run_and_history(configured, container):
    response = configured.post("/pulls/7/pipeline")

    assert response.status_code == 200
    payload = response.json()
    assert payload["record"]["decision"] == "disabled"
    assert payload["transitions"][0] == "idle"
    assert payload["stale"] is False
    assert container.orchestrator.active_pr == 7

    history = configured.get("/pulls/7/history").json()
    assert [entry["decision"] for entry in history] == ["disabled"]


def test_select_marks_other_runs_stale(configured):
    assert configured.post("/pulls/9/select").json() == {"active_pr": 9}

    payload = configured.post("/pulls/7/pipeline", params={"select": False}).json()

    assert payload["stale"] is True


def test_mergeability(configured):
    data = configured.get("/pulls/7/mergeability").json()
    assert data["state"] == "clean"
    assert data["behind_by"] == 2


def test_missing_pull_request_maps_to_404(configured):
    response = configured.get("/pulls/404/mergeability")
    assert response.status_code == 404
    assert response.json()["error_kind"] == "not_found"


def test_conflict_check_and_resolution(configured, fake_github):
    fake_github.pulls[7] = pull_detail(7, mergeable=False, mergeable_state="dirty")

    check = configured.post("/pulls/7/conflicts").json()
    assert check["has_conflicts"] is True
    assert sorted(check["pending"]) == ["README.md", "src/Calculator.java"]

    refused = configured.post(
        "/pulls/7/conflicts/resolve",
        json={"filename": "src/Calculator.java", "strategy": "ai_assisted", "content": "x"},
    )
    accepted = configured.post(
        "/pulls/7/conflicts/resolve",
        json={"filename": "src/Calculator.java", "strategy": "manual", "content": "merged by hand"},
    )

    assert refused.status_code == 409
    assert accepted.status_code == 200
    assert accepted.json()["resolution"]["status"] == "resolved"
    assert configured.post("/pulls/7/conflicts").json()["pending"] == ["README.md"]


def test_resolve_unknown_file(configured):
    response = configured.post("/pulls/7/conflicts/resolve", json={"filename": "nope.txt", "strategy": "ours"})
    assert response.status_code == 404


def test_saving_masked_blob_keeps_stored_secrets(configured, container):
    masked = configured.get("/config/github").json()
    masked["repo"] = "renamed"

    response = configured.put("/config/github", json=masked)

    assert response.status_code == 200
    assert response.json()["token"] == "********"
    stored = asyncio.run(container.stores.config.get("github"))
    assert stored["token"] == "ghp_secret"
    assert stored["repo"] == "renamed"


def test_mask_without_stored_secret_is_rejected(client):
    response = client.put("/config/github", json={"token": "********", "owner": OWNER, "repo": REPO})
    assert response.status_code == 422
