"""
Tests for the HTTP surface.
"""

import httpx
import pytest
import pytest_asyncio

from recruit.api import app, get_enricher
from recruit.db import get_session


@pytest_asyncio.fixture
async def client(session_maker):
    """API client bound to the test database, enrichment disabled."""
    async def override_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_enricher] = lambda: None

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


class TestMeta:
    """Health and index."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_root_lists_endpoints(self, client):
        response = await client.get("/")
        assert "process_candidate" in response.json()["endpoints"]


class TestCandidates:
    """Candidate endpoints."""

    @pytest.mark.asyncio
    async def test_create_then_merge(self, client):
        payload = {
            "email": "Jane@X.com",
            "linkedinUrl": "https://linkedin.com/in/jane",
            "skills": "Go, Kubernetes",
        }

        created = await client.post("/tenants/acme/candidates", json=payload)
        assert created.status_code == 200
        body = created.json()
        assert body["status"] == "created"
        assert body["is_new"] is True
        assert body["candidate"]["email"] == "jane@x.com"
        assert body["candidate"]["linkedin_url"] == "https://linkedin.com/in/jane"
        assert body["candidate"]["skills"] == ["Go", "Kubernetes"]
        assert body["scores"]["priority"] in {"High", "Medium", "Low"}

        merged = await client.post(
            "/tenants/acme/candidates",
            json={"email": "jane@x.com", "linkedin_url": "https://linkedin.com/in/jane", "skills": ["SQL"]},
        )
        body = merged.json()
        assert body["status"] == "updated"
        assert body["matched_by"] == "email_and_linkedin"
        assert body["candidate_id"] == created.json()["candidate_id"]
        assert body["candidate"]["skills"] == ["Go", "Kubernetes", "SQL"]

    @pytest.mark.asyncio
    async def test_batch(self, client):
        response = await client.post("/tenants/acme/candidates/batch", json={
            "candidates": [
                {"Full Name": "Jane Doe", "E-mail": "jane@x.com"},
                {"Full Name": "John Roe", "E-mail": "john@x.com"},
                {"Full Name": "Jane Doe", "E-mail": "JANE@x.com", "Location": "berlin"},
            ]
        })

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert (body["created"], body["updated"], body["failed"]) == (2, 1, 0)
        assert body["results"][2]["matched_by"] == "email"

    @pytest.mark.asyncio
    async def test_empty_batch_is_rejected(self, client):
        response = await client.post("/tenants/acme/candidates/batch", json={"candidates": []})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_and_get(self, client):
        created = (await client.post("/tenants/acme/candidates", json={"email": "jane@x.com"})).json()
        candidate_id = created["candidate_id"]

        updated = await client.put(f"/tenants/acme/candidates/{candidate_id}", json={"title": "lead engineer"})
        assert updated.status_code == 200
        assert updated.json()["matched_by"] == "candidate_id"

        fetched = await client.get(f"/tenants/acme/candidates/{candidate_id}")
        assert fetched.status_code == 200
        assert fetched.json()["title"] == "lead engineer"

    @pytest.mark.asyncio
    async def test_update_unknown_candidate(self, client):
        response = await client.put("/tenants/acme/candidates/999", json={"title": "x"})
        assert response.status_code == 404
        assert response.json()["error"] == "candidate_not_found"

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_read(self, client):
        created = (await client.post("/tenants/acme/candidates", json={"email": "jane@x.com"})).json()
        response = await client.get(f"/tenants/globex/candidates/{created['candidate_id']}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_rescore(self, client):
        created = (await client.post(
            "/tenants/acme/candidates", json={"email": "jane@x.com", "open_to_work": True}
        )).json()

        response = await client.post(f"/tenants/acme/candidates/{created['candidate_id']}/score")

        assert response.status_code == 200
        assert response.json()["scores"]["open_to_work_score"] == 10

    @pytest.mark.asyncio
    async def test_rescore_unknown_candidate(self, client):
        response = await client.post("/tenants/acme/candidates/404/score")
        assert response.status_code == 404
