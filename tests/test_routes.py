import pytest
from fastapi.testclient import TestClient

from conftest import FakeProvider, FakeRedis, make_factories
from prompt_optimizer import main
from prompt_optimizer.api.routes import get_optimizer_service
from prompt_optimizer.core.config import get_settings
from prompt_optimizer.db.redis_store import HistoryRepository, TemplateRepository
from prompt_optimizer.main import create_app
from prompt_optimizer.services.llm.dispatcher import ProviderDispatcher
from prompt_optimizer.services.llm.providers import ProviderStatusError
from prompt_optimizer.services.optimizer_service import OptimizerService


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider(name="gemini", reply="Optimized prompt: Write a CSV parser with tests.")


@pytest.fixture()
def client(settings, provider):
    app = create_app()
    fake_redis = FakeRedis()
    # Lifespan is not run (no `with`), so wire state by hand.
    app.state.history_repository = HistoryRepository(fake_redis, limit=settings.history_limit)
    app.state.template_repository = TemplateRepository(fake_redis)

    dispatcher = ProviderDispatcher(settings, factories=make_factories(provider))
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_optimizer_service] = lambda: OptimizerService(settings, dispatcher)
    return TestClient(app)


def test_home(client):
    assert client.get("/").json() == {"status": "Prompt optimizer is running"}


def test_providers(client):
    providers = client.get("/providers").json()["providers"]
    assert [p["id"] for p in providers] == ["gemini", "openai", "ollama"]
    assert providers[2]["model"] == "llama3.2"


def test_optimize_success_records_history(client, provider):
    r = client.post(
        "/optimize",
        json={
            "text": "parse csv",
            "preferences": {"api_key": "k", "full_code": True},
            "filenames": ["a.py", "a.py", "b.js"],
            "files": [{"name": "reader.py", "text": "import csv"}],
        },
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["ok"] is True
    assert body["text"] == "Write a CSV parser with tests."
    assert body["error"] is None
    assert body["stats"]["original_tokens"] == 3
    assert "a.py, b.js" in provider.prompts[0]
    assert "```python\nimport csv\n```" in provider.prompts[0]

    history = client.get("/history").json()["history"]
    assert len(history) == 1
    assert history[0]["original"] == "parse csv"
    assert history[0]["provider"] == "gemini"


def test_optimize_missing_key(client, provider):
    body = client.post("/optimize", json={"text": "parse csv"}).json()
    assert body["ok"] is False
    assert body["error"]["kind"] == "MissingCredential"
    assert provider.prompts == []
    assert client.get("/history").json()["history"] == []


def test_optimize_rate_limited(client, provider):
    provider.error = ProviderStatusError(429, "Resource has been exhausted")
    body = client.post("/optimize", json={"text": "x", "preferences": {"api_key": "k"}}).json()
    assert body["ok"] is False
    assert body["error"]["kind"] == "RateLimited"
    assert "exhausted" not in body["error"]["message"]


def test_optimize_with_preset(client, provider):
    body = client.post(
        "/optimize",
        json={"text": "explain", "preset": "docs", "preferences": {"provider": "ollama"}},
    ).json()
    assert body["ok"] is True
    assert body["provider"] == "ollama"
    assert "Always provide complete, runnable code" not in provider.prompts[0]


def test_optimize_unknown_preset(client):
    body = client.post("/optimize", json={"text": "x", "preset": "nope"}).json()
    assert body["ok"] is False
    assert body["error"]["kind"] == "InvalidArgument"


def test_optimize_rejects_unknown_provider(client):
    r = client.post("/optimize", json={"text": "x", "preferences": {"provider": "claude"}})
    assert r.status_code == 422


def test_check_provider(client, provider):
    body = client.post("/providers/openai/test", json={"openai_key": "sk-test"}).json()
    assert body == {"success": True}
    assert len(provider.prompts) == 1


def test_check_provider_missing_key(client):
    body = client.post("/providers/gemini/test", json={}).json()
    assert body["success"] is False
    assert body["error"]["kind"] == "MissingCredential"


def test_check_unknown_provider(client):
    assert client.post("/providers/claude/test", json={}).status_code == 400


def test_tokens(client):
    assert client.post("/tokens", json={"text": "fix my code"}).json() == {
        "tokens": 3,
        "formatted": "3",
        "cost": "<$0.001",
    }


def test_diff(client):
    body = client.post("/diff", json={"original": "fix my code", "optimized": "fix my code"}).json()
    assert body["similarity"] == 100
    assert body["stats"]["removed"] == 0
    assert body["lines"] == [{"kind": "unchanged", "text": "fix my code"}]
    assert body["tokens"]["savings"] == {"saved": 0, "percentage": 0, "is_reduction": False}


def test_history_delete(client):
    client.post("/optimize", json={"text": "a", "preferences": {"api_key": "k"}})
    entry_id = client.get("/history").json()["history"][0]["id"]

    assert client.delete(f"/history/{entry_id}").status_code == 200
    assert client.delete(f"/history/{entry_id}").status_code == 404

    client.post("/optimize", json={"text": "b", "preferences": {"api_key": "k"}})
    assert client.delete("/history").json() == {"cleared": True}
    assert client.get("/history").json()["history"] == []


def test_templates(client):
    created = client.post("/templates", json={"name": "Translate", "prompt": "Translate:"}).json()
    ids = [t["id"] for t in client.get("/templates").json()["templates"]]
    assert ids[0] == "debug"
    assert ids[-1] == created["id"]

    assert client.delete("/templates/debug").status_code == 404
    assert client.delete(f"/templates/{created['id']}").status_code == 200


def test_presets(client):
    presets = client.get("/presets").json()["presets"]
    assert [p["id"] for p in presets] == ["quick", "learning", "docs"]
    assert presets[2]["preferences"]["full_code"] is False


def test_run_serves_app(monkeypatch):
    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kw: calls.append((app, kw)))
    main.run(port=9000)
    assert calls == [(main.app, {"host": "127.0.0.1", "port": 9000, "log_level": "info"})]
