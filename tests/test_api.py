"""HTTP API tests using FastAPI's TestClient."""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from config.settings import SurveyConfig
from indexer.catalog_store import CatalogStore
from indexer.models import Recommendation, Tool, UserProject
from pipelines.surveyor import BaseSurveyor, SurveyResult
from server.api import app, get_orchestrator
from server.orchestrator import SurveyOrchestrator
from sources.loader import SourceConfig


class CatalogSurveyor(BaseSurveyor):
    source_name = "catalog"

    async def survey(self) -> SurveyResult:
        result = SurveyResult()
        tool = Tool(name="Surveyed", url="https://example.com/surveyed", source="github",
                    description="semantic search engine", capabilities=["semantic search"])
        await self.store_tool(tool, result)
        return result


async def no_sleep(seconds):
    return None


@pytest.fixture
def orchestrator(tmp_path, stub_fetcher):
    config = SurveyConfig(database_path=str(tmp_path / "api.db"))
    store = CatalogStore(config.database_path)
    surveyor = CatalogSurveyor(store, stub_fetcher, SourceConfig(name="catalog", base_url="https://example.com"))
    orch = SurveyOrchestrator(config, store=store, surveyors={"catalog": surveyor},
                              fetcher=stub_fetcher, sleep=no_sleep)
    asyncio.run(orch.initialize())
    yield orch
    asyncio.run(orch.shutdown())


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(orchestrator):
    """One tool, one project and one pending recommendation."""
    store = orchestrator.store

    async def seed():
        tool_id = await store.insert_tool(Tool(
            name="AgentKit", url="https://github.com/acme/agentkit", source="github",
            category="Agent", description="Framework for autonomous agents",
            capabilities=["text generation"], popularity_score=60,
        ))
        capability_id = await store.insert_capability("text generation")
        await store.link_tool_capability(tool_id, capability_id)
        project_id = await store.insert_project(UserProject(name="svc", path="/svc", ai_needs=["automation"]))
        rec_id = await store.insert_recommendation(Recommendation(
            tool_id=tool_id, user_project_id=project_id, relevance_score=0.5, reason="May help.",
        ))
        return {"tool_id": tool_id, "project_id": project_id, "rec_id": rec_id}

    return asyncio.run(seed())


class TestCatalogEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "state": "idle"}

    def test_stats(self, client, seeded):
        data = client.get("/api/agents/stats").json()
        assert data["total_tools"] == 1
        assert data["tools_by_category"] == [{"category": "Agent", "count": 1}]

    def test_search_requires_query(self, client):
        response = client.get("/api/agents/search")
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

        assert client.get("/api/agents/search", params={"q": "  "}).status_code == 400

    def test_search_with_filters(self, client, seeded):
        results = client.get("/api/agents/search", params={"q": "agents"}).json()
        assert [tool["name"] for tool in results] == ["AgentKit"]

        filtered = client.get("/api/agents/search", params={"q": "agents", "source": "arxiv"}).json()
        assert filtered == []

        history = client.get("/api/agents/search-history").json()
        assert [entry["query"] for entry in history] == ["agents", "agents"]

    def test_category_listing(self, client, seeded):
        assert len(client.get("/api/agents/category/Agent").json()) == 1
        assert client.get("/api/agents/category/Vision").json() == []

    def test_tool_detail(self, client, seeded):
        data = client.get(f"/api/agents/tools/{seeded['tool_id']}").json()
        assert data["url"] == "https://github.com/acme/agentkit"
        assert data["capability_links"] == [{"name": "text generation", "proficiency_level": "intermediate"}]

    def test_unknown_tool(self, client):
        response = client.get("/api/agents/tools/999")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_tool_listing(self, client, seeded):
        tools = client.get("/api/agents/tools", params={"limit": 5}).json()
        assert [tool["name"] for tool in tools] == ["AgentKit"]


class TestProjectEndpoints:
    def test_analyze_project(self, client, tmp_path):
        project_dir = tmp_path / "webapp"
        project_dir.mkdir()
        (project_dir / "package.json").write_text(json.dumps({"dependencies": {"vue": "^3"}}))
        (project_dir / "README.md").write_text("Sentiment dashboard")

        response = client.post("/api/agents/projects/analyze", json={"path": str(project_dir)})

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "webapp"
        assert data["tech_stack"] == ["JavaScript/TypeScript", "Vue"]
        assert data["ai_needs"] == ["sentiment analysis", "frontend AI components"]
        assert len(client.get("/api/agents/projects").json()) == 1

    def test_analyze_missing_path(self, client, tmp_path):
        response = client.post("/api/agents/projects/analyze", json={"path": str(tmp_path / "nope")})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_project_path"

    def test_recommendations_for_unknown_project(self, client):
        response = client.get("/api/agents/recommendations/999")
        assert response.status_code == 404
        assert response.json()["error"] == "project_not_found"

    def test_profile_based_recommendations(self, client, seeded):
        tools = client.get("/api/agents/recommendations/0").json()
        assert [tool["name"] for tool in tools] == ["AgentKit"]

    def test_recommendation_status_update(self, client, seeded):
        response = client.put(f"/api/agents/recommendations/{seeded['rec_id']}/status",
                              json={"status": "accepted"})
        assert response.status_code == 200

        url = f"/api/agents/projects/{seeded['project_id']}/recommendations"
        assert client.get(url).json()[0]["status"] == "accepted"
        assert client.get(url, params={"status": "pending"}).json() == []

    def test_status_update_for_unknown_recommendation(self, client):
        response = client.put("/api/agents/recommendations/999/status", json={"status": "rejected"})
        assert response.status_code == 404

    def test_profile_round_trip(self, client):
        response = client.post("/api/agents/profile", json={
            "preferences": {"interests": ["agents"], "experience_level": "advanced"},
        })
        assert response.status_code == 200

        profile = client.get("/api/agents/profile").json()
        assert profile["interests"] == ["agents"]
        assert profile["experience_level"] == "advanced"

    def test_invalid_profile(self, client):
        response = client.post("/api/agents/profile", json={"preferences": {"experience_level": "guru"}})
        assert response.status_code == 422


class TestSurveyEndpoints:
    def test_full_survey(self, client):
        response = client.post("/api/agents/survey")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["summary"]["results"] == {"catalog": "success"}

        runs = client.get("/api/agents/survey-runs").json()
        assert runs[0]["source"] == "catalog"
        assert runs[0]["status"] == "success"

    def test_single_surveyor(self, client):
        body = client.post("/api/agents/survey", json={"source": "catalog"}).json()
        assert body["summary"]["source"] == "catalog"
        assert body["summary"]["stats"]["discovered"] == 1

    def test_unknown_surveyor(self, client):
        response = client.post("/api/agents/survey", json={"source": "myspace"})
        assert response.status_code == 404
        assert response.json() == {"error": "surveyor_not_found", "message": "Surveyor 'myspace' not found"}

    def test_scheduler_status(self, client):
        data = client.get("/api/agents/scheduler").json()
        assert data["state"] == "idle"
        assert data["surveyors"] == ["catalog"]

    def test_scheduler_rejects_bad_times(self, client):
        response = client.post("/api/agents/scheduler/start", json={"times": ["25:00"]})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_stop_when_idle(self, client):
        assert client.post("/api/agents/scheduler/stop").json()["state"] == "idle"

    def test_uninitialized_service(self):
        app.dependency_overrides.clear()
        response = TestClient(app).get("/health")
        assert response.status_code == 503
