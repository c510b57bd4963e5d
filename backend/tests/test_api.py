"""HTTP tests for the analysis, settings and llm routers."""
import json

import httpx
import pytest
import pytest_asyncio

from codereview.database import get_db
from codereview.main import app
from codereview.models.analysis import AnalysisRecord, AnalysisResults
from codereview.services.orchestration import get_orchestration_service
from codereview.services.preferences import get_preference_store

from conftest import RejectAll


def parse_sse(body: str):
    events = []
    for block in body.replace("\r\n", "\n").split("\n\n"):
        name, data = None, None
        for line in block.splitlines():
            if line.startswith("event:"):
                name = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data = json.loads(line[len("data:"):].strip())
        if name:
            events.append((name, data))
    return events


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    # The exit event is bound to the first event loop that creates it
    from sse_starlette.sse import AppStatus
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest_asyncio.fixture
async def client(make_service, preference_store, session_factory):
    service = make_service(preferences=preference_store)

    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_orchestration_service] = lambda: service
    app.dependency_overrides[get_preference_store] = lambda: preference_store
    app.dependency_overrides[get_db] = override_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        ac.service = service
        yield ac
    await service.shutdown()
    app.dependency_overrides.clear()


@pytest.mark.asyncio
class TestAnalysisEndpoints:
    async def test_start_then_poll(self, client):
        response = await client.post("/api/analysis/start", json={
            "repository_path": "/repo",
            "selected_documents": ["security"],
            "analysis_type": "uncommitted",
        })
        assert response.status_code == 200
        analysis_id = response.json()["analysis_id"]

        await client.service.runner.wait_idle(timeout=5)
        status = (await client.get(f"/api/analysis/status/{analysis_id}")).json()

        assert status["status"] == "Complete"
        assert status["result"]["summary"]["critical"] == 1

    async def test_start_rejected(self, client, make_service):
        app.dependency_overrides[get_orchestration_service] = lambda: make_service(validator=RejectAll())
        response = await client.post("/api/analysis/start", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "No coding standards selected"}

    async def test_status_pseudo_states(self, client):
        not_started = (await client.get("/api/analysis/status")).json()
        assert not_started["status"] == "NotStarted"

        not_found = (await client.get("/api/analysis/status/unknown")).json()
        assert not_found["status"] == "NotFound"
        assert not_found["is_complete"] is True

    async def test_content(self, client):
        response = await client.post("/api/analysis/start", json={"selected_documents": ["security"]})
        analysis_id = response.json()["analysis_id"]
        await client.service.runner.wait_idle(timeout=5)

        content = (await client.get(f"/api/analysis/{analysis_id}/content")).json()
        assert content["analysis_id"] == analysis_id
        assert "SELECT * FROM users" in content["content"]
        assert content["is_file_content"] is False

        missing = await client.get("/api/analysis/unknown/content")
        assert missing.status_code == 404

    async def test_event_stream_of_finished_analysis(self, client):
        record = AnalysisRecord("done").complete(AnalysisResults("done"))
        await client.service.cache.store(record)

        response = await client.get("/api/analysis/done/events")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        assert [name for name, _ in events] == ["complete"]
        assert events[0][1]["status"] == "Complete"

    async def test_event_stream_of_unknown_analysis(self, client):
        response = await client.get("/api/analysis/ghost/events")
        events = parse_sse(response.text)
        assert events == [("error", events[0][1])]
        assert events[0][1]["status"] == "NotFound"


@pytest.mark.asyncio
class TestSettingsEndpoints:
    async def test_default_providers_are_created(self, client):
        providers = (await client.get("/api/settings/llm-providers")).json()
        names = [p["name"] for p in providers]
        assert sorted(names) == ["anthropic", "ollama", "openai", "openrouter"]
        ollama = next(p for p in providers if p["name"] == "ollama")
        assert ollama["is_configured"] is True

    async def test_update_masks_key_and_activates_one(self, client):
        providers = (await client.get("/api/settings/llm-providers")).json()
        openai = next(p for p in providers if p["name"] == "openai")
        ollama = next(p for p in providers if p["name"] == "ollama")

        await client.put(f"/api/settings/llm-providers/{ollama['id']}", json={"model": "qwen2.5-coder", "is_active": True})
        response = await client.put(f"/api/settings/llm-providers/{openai['id']}", json={
            "api_key": "sk-real", "model": "gpt-4o", "is_active": True,
        })
        assert response.json() == {"success": True}

        updated = (await client.get(f"/api/settings/llm-providers/{openai['id']}")).json()
        assert updated["api_key"] == "***"
        assert updated["is_active"] is True
        assert updated["is_configured"] is True
        assert (await client.get(f"/api/settings/llm-providers/{ollama['id']}")).json()["is_active"] is False

        # Sending the mask back keeps the stored key
        await client.put(f"/api/settings/llm-providers/{openai['id']}", json={
            "api_key": "***", "model": "gpt-4o-mini", "is_active": True,
        })
        active = (await client.get("/api/llm/active-provider")).json()
        assert active["provider"] == "openai"
        assert active["source"] == "database"
        assert active["configured"] is True
        assert active["model"] == "gpt-4o-mini"

    async def test_unknown_provider(self, client):
        assert (await client.get("/api/settings/llm-providers/999")).status_code == 404

    async def test_preferences_per_session(self, client):
        response = await client.put(
            "/api/settings/preferences",
            json={"repository_path": "/repo", "language": "Python"},
            headers={"X-Session-Id": "tab-1"},
        )
        assert response.json()["success"] is True

        mine = (await client.get("/api/settings/preferences", headers={"X-Session-Id": "tab-1"})).json()
        other = (await client.get("/api/settings/preferences", headers={"X-Session-Id": "tab-2"})).json()
        assert mine["repository_path"] == "/repo"
        assert mine["language"] == "Python"
        assert other["repository_path"] is None


@pytest.mark.asyncio
class TestLLMEndpoints:
    async def test_models(self, client):
        models = (await client.get("/api/llm/models", params={"provider": "openai"})).json()["models"]
        assert models
        assert all(m["provider"] == "openai" for m in models)

    async def test_model_info(self, client):
        info = await client.get("/api/llm/model-info/gpt-4o")
        assert info.status_code == 200
        assert info.json()["model_id"] == "gpt-4o"
        assert (await client.get("/api/llm/model-info/not/a-model")).status_code == 404

    async def test_health(self, client):
        assert (await client.get("/api/health")).json()["status"] == "healthy"
