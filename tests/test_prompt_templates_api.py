"""Tests for the prompt template routes."""

import httpx
import pytest

from storeagent.api.deps import get_template_store
from storeagent.domain.prompts.default_templates import get_default_template
from storeagent.domain.prompts.template_store import TemplateStore
from storeagent.main import app

BASE = "/api/v1/prompt-templates"
HEADERS = {"X-Company-Id": "c1"}


@pytest.fixture
def store(session_factory):
    return TemplateStore(session_factory)


@pytest.fixture
async def client(store):
    """Create a test API client bound to the test database."""
    app.dependency_overrides[get_template_store] = lambda: store

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


class TestPromptTemplateRoutes:
    """Test cases for /prompt-templates."""

    @pytest.mark.asyncio
    async def test_company_header_required(self, client):
        response = await client.get(f"{BASE}/system_personality")

        assert response.status_code == 400
        assert response.json()["detail"] == "X-Company-Id header is required"

    @pytest.mark.asyncio
    async def test_get_default(self, client):
        response = await client.get(f"{BASE}/system_personality", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "default"
        assert data["company_id"] is None
        assert data["content"] == get_default_template("system_personality")

    @pytest.mark.asyncio
    async def test_get_unknown_key(self, client):
        response = await client.get(f"{BASE}/no_such_key", headers=HEADERS)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_put_then_get(self, client, store):
        """Test an override replaces the default and reaches the store."""
        await store.resolve("c1", "system_personality")

        response = await client.put(
            f"{BASE}/system_personality",
            headers=HEADERS,
            json={"content": "أنتِ سارة من متجر الأزياء."},
        )
        assert response.status_code == 200
        assert response.json()["source"] == "company"

        response = await client.get(f"{BASE}/system_personality", headers=HEADERS)
        assert response.json()["content"] == "أنتِ سارة من متجر الأزياء."
        assert await store.resolve("c1", "system_personality") == "أنتِ سارة من متجر الأزياء."

        other = await client.get(f"{BASE}/system_personality", headers={"X-Company-Id": "c2"})
        assert other.json()["source"] == "default"

    @pytest.mark.asyncio
    async def test_put_rejects_empty_content(self, client):
        response = await client.put(f"{BASE}/system_personality", headers=HEADERS, json={"content": ""})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete(self, client):
        await client.put(f"{BASE}/system_personality", headers=HEADERS, json={"content": "override"})

        response = await client.delete(f"{BASE}/system_personality", headers=HEADERS)
        assert response.status_code == 204

        response = await client.get(f"{BASE}/system_personality", headers=HEADERS)
        assert response.json()["source"] == "default"

    @pytest.mark.asyncio
    async def test_delete_missing(self, client):
        response = await client.delete(f"{BASE}/system_personality", headers=HEADERS)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_cache_clear(self, client, store):
        await store.upsert_template("c1", "system_personality", "a")
        await store.upsert_template("c1", "system_first_interaction", "b")
        await store.upsert_template("c2", "system_personality", "c")
        await store.resolve("c1", "system_personality")
        await store.resolve("c1", "system_first_interaction")
        await store.resolve("c2", "system_personality")

        response = await client.post(f"{BASE}/cache/clear", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"cleared": 2}

    @pytest.mark.asyncio
    async def test_rules_config(self, client):
        response = await client.get(f"{BASE}/rules-config")

        assert response.status_code == 200
        data = response.json()
        assert data["responseLength"]["type"] == "radio"
        assert {o["value"] for o in data["dialect"]["options"]} >= {"egyptian"}

    @pytest.mark.asyncio
    async def test_validate_rules(self, client):
        response = await client.post(
            f"{BASE}/rules/validate",
            headers=HEADERS,
            json={"responseLength": "very_short", "rules": ["no_regreet"]},
        )

        data = response.json()
        assert data["valid"] is True
        assert data["compiled"].count("<rule>") == 1

    @pytest.mark.asyncio
    async def test_validate_rules_errors(self, client):
        response = await client.post(f"{BASE}/rules/validate", headers=HEADERS, json={"dialect": "martian"})

        data = response.json()
        assert data["valid"] is False
        assert data["compiled"] is None
        assert "martian" in data["errors"][0]


@pytest.mark.asyncio
async def test_health():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        response = await test_client.get("/health")

    assert response.json() == {"status": "healthy"}
