import httpx
import pytest
from fastapi.testclient import TestClient

from smartops.api import build_engine, create_app
from smartops.config import AppConfig
from smartops.retry import RetryScheduler

ENV_VARS = (
    "N8N_BASE_URL",
    "N8N_BASIC_AUTH_ACTIVE",
    "N8N_BASIC_AUTH_USER",
    "N8N_BASIC_AUTH_PASSWORD",
    "DROPBOX_APP_KEY",
    "DROPBOX_APP_SECRET",
    "DROPBOX_REFRESH_TOKEN",
    "MEDIA_LIBRARY_ROOT",
    "SMARTOPS_DB_PATH",
)


def _write_config(tmp_path, base_url: str = "https://n8n.example.com") -> AppConfig:
    path = tmp_path / "config.ini"
    path.write_text(
        "\n".join(
            [
                "[n8n]",
                f"base_url = {base_url}",
                "[media]",
                f"root = {tmp_path / 'media'}",
                "[store]",
                f"db_path = {tmp_path / 'api.db'}",
            ]
        ),
        encoding="utf-8",
    )
    return AppConfig(path)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _client(tmp_path, n8n, base_url: str = "https://n8n.example.com") -> TestClient:
    config = _write_config(tmp_path, base_url)
    http = httpx.AsyncClient(transport=httpx.MockTransport(n8n))
    engine = build_engine(http, config, retries=RetryScheduler())
    return TestClient(create_app(engine, config))


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"accepted": True})


def test_health(tmp_path):
    with _client(tmp_path, _ok) as client:
        assert client.get("/health").json() == {"status": "ok"}


def test_lists_all_builtin_nodes(tmp_path):
    with _client(tmp_path, _ok) as client:
        response = client.get("/automations")

    assert response.status_code == 200
    nodes = response.json()
    assert [node["code"] for node in nodes] == ["ACP", "ENS", "MDF", "ACO", "ATR", "PUB", "PTR"]
    acp = nodes[0]
    assert acp["endpoint_url"] == "https://n8n.example.com/workflow/acp"
    assert acp["connected"] is True


def test_unknown_node_is_404(tmp_path):
    with _client(tmp_path, _ok) as client:
        response = client.get("/automations/NOPE")
        run = client.post("/automations/run/NOPE")

    assert response.status_code == 404
    assert "NOPE" in response.json()["detail"]["message"]
    assert run.status_code == 404


def test_run_without_cascade_returns_execution(tmp_path):
    seen = []

    def n8n(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"accepted": True})

    with _client(tmp_path, n8n) as client:
        response = client.post("/automations/run/acp", json={"payload": {"brief": "q3"}, "cascade": False})
        body = response.json()
        execution = client.get(f"/executions/{body['execution']['id']}")
        details = client.get("/automations/ACP")

    assert response.status_code == 200
    assert seen == ["/workflow/acp"]
    assert body["automation"]["code"] == "ACP"
    assert body["execution"]["status"] == "success"
    assert body["execution"]["result"]["responseBody"] == {"accepted": True}
    assert body["cascade"] == []
    assert execution.status_code == 200
    assert execution.json()["automation_code"] == "ACP"
    assert len(details.json()["executions"]) == 1


def test_rejected_webhook_maps_to_bad_gateway(tmp_path):
    def n8n(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "workflow crashed"})

    with _client(tmp_path, n8n) as client:
        response = client.post("/automations/run/ACP", json={"cascade": False})
        node = client.get("/automations/ACP").json()

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["message"] == "n8n responded with status 500"
    assert detail["details"]["responseBody"] == {"message": "workflow crashed"}
    assert node["status"] == "warning"


def test_missing_base_url_is_service_unavailable(tmp_path):
    with _client(tmp_path, _ok, base_url="") as client:
        response = client.post("/automations/run/ACP")
        node = client.get("/automations/ACP").json()

    assert response.status_code == 503
    assert node["status"] == "monitoring"
    assert node["connected"] is False


def test_missing_execution_is_404(tmp_path):
    with _client(tmp_path, _ok) as client:
        assert client.get("/executions/4242").status_code == 404


def test_assets_start_empty(tmp_path):
    with _client(tmp_path, _ok) as client:
        response = client.get("/assets")

    assert response.status_code == 200
    assert response.json() == []
