"""
API tests through an httpx client on the ASGI app.

The pipeline dependency is overridden with the test pipeline (SQLite
database, scripted oracle), so the lifespan hook is never entered.
"""

import httpx
import pytest
import pytest_asyncio

from studyflow.api.dependencies import get_pipeline
from studyflow.api.main import app
from studyflow.errors import OracleRateLimited

ALICE = {"X-User-Id": "alice"}
MALLORY = {"X-User-Id": "mallory"}


@pytest_asyncio.fixture
async def client(pipeline):
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def project_id(client):
    response = await client.post("/projects", json={"title": "Networking"}, headers=ALICE)
    assert response.status_code == 201
    return response.json()["id"]


class TestHealth:
    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "studyflow"

    @pytest.mark.asyncio
    async def test_health_reports_database(self, client):
        body = (await client.get("/health")).json()

        assert body["components"]["database"] == "ok"
        assert body["retrieval"]["rerank_threshold"] == 10


class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_caller(self, client):
        response = await client.post("/projects", json={"title": "x"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_other_owner_forbidden(self, client, project_id):
        response = await client.get(f"/projects/{project_id}", headers=MALLORY)

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_unknown_project(self, client):
        response = await client.get("/projects/00000000-0000-0000-0000-000000000000", headers=ALICE)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_malformed_project_id(self, client):
        response = await client.get("/projects/not-a-uuid", headers=ALICE)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"


class TestFlow:
    @pytest.mark.asyncio
    async def test_ingest_plan_submit(self, client, project_id, sample_documents, oracle, plan_payload):
        ingest = await client.post(
            f"/projects/{project_id}/ingest", json={"documents": sample_documents}, headers=ALICE
        )
        assert ingest.status_code == 200
        assert ingest.json()["chunks_created"] == 2

        oracle.queue(plan_payload)
        plan = await client.post(f"/projects/{project_id}/plan", headers=ALICE)
        assert plan.status_code == 200
        body = plan.json()
        assert [s["status"] for s in body["roadmap"]] == ["available", "locked", "locked"]
        diagnostic_id = body["diagnostic_artifact_id"]

        artifact = (await client.get(f"/artifacts/{diagnostic_id}", headers=ALICE)).json()
        assert artifact["kind"] == "quiz"
        assert "correct_option_ids" not in str(artifact)

        answers = [{"block_id": "q1", "value": "a"}, {"block_id": "q2", "value": ["b", "c"]}]
        graded = await client.post(f"/artifacts/{diagnostic_id}/submit", json={"answers": answers}, headers=ALICE)
        assert graded.status_code == 200
        assert graded.json()["score"] == 100

        checkin = await client.post(
            f"/projects/{project_id}/checkin", json={"signals": {"hard_topics": ["osi"]}}, headers=ALICE
        )
        assert checkin.status_code == 200
        assert checkin.json()["roadmap"][0]["description"].startswith("[Review] ")

    @pytest.mark.asyncio
    async def test_plan_before_ingest_is_conflict(self, client, project_id):
        response = await client.post(f"/projects/{project_id}/plan", headers=ALICE)

        assert response.status_code == 409
        assert response.json()["error"] == "precondition_failed"

    @pytest.mark.asyncio
    async def test_act_note(self, client, project_id, sample_documents, oracle, method_pack_response):
        await client.post(f"/projects/{project_id}/ingest", json={"documents": sample_documents}, headers=ALICE)
        oracle.queue(method_pack_response)

        response = await client.post(
            f"/projects/{project_id}/act",
            json={"action_type": "explain_term", "target": {"term": "subnet mask"}},
            headers=ALICE,
        )

        assert response.status_code == 200
        assert response.json()["artifact_id"] is None
        assert (await client.get(f"/projects/{project_id}/artifacts", headers=ALICE)).json() == []

    @pytest.mark.asyncio
    async def test_rate_limit_surfaces(self, client, project_id, sample_documents, oracle):
        await client.post(f"/projects/{project_id}/ingest", json={"documents": sample_documents}, headers=ALICE)
        oracle.queue(OracleRateLimited("slow down"))

        response = await client.post(
            f"/projects/{project_id}/act", json={"action_type": "generate_slides"}, headers=ALICE
        )

        assert response.status_code == 429
        assert response.json()["error"] == "RATE_LIMITED"

    @pytest.mark.asyncio
    async def test_empty_documents_rejected(self, client, project_id):
        response = await client.post(f"/projects/{project_id}/ingest", json={"documents": []}, headers=ALICE)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_empty_answers_rejected(self, client, project_id):
        response = await client.post(
            "/artifacts/00000000-0000-0000-0000-000000000000/submit", json={"answers": []}, headers=ALICE
        )

        assert response.status_code == 422
