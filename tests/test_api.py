"""Tests for the /ai-synth endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from specsynth.api.app import app, status_for
from specsynth.api.routes.ai_synth import get_synth_service
from specsynth.errors import NoSourcesError, SynthesisAlreadyExistsError
from specsynth.llm.backoff import UpstreamError
from specsynth.llm.client import LLMConfigurationError, LLMRetriesExhaustedError
from specsynth.services.synthesis import AISynthService

from conftest import AUTHOR_IDS, StubGateway, synthesis_json


@pytest.fixture
def gateway():
    return StubGateway(response=synthesis_json())


@pytest.fixture
async def client(session_factory, seeded, gateway):
    async def override():
        async with session_factory() as session:
            yield AISynthService(session, gateway)

    app.dependency_overrides[get_synth_service] = override
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def acme(add_spec):
    return [
        await add_spec(user_id=AUTHOR_IDS[0], star_rating=4),
        await add_spec(user_id=AUTHOR_IDS[1], star_rating=5),
        await add_spec(user_id=AUTHOR_IDS[2], star_rating=3),
    ]


def test_status_mapping():
    assert status_for(SynthesisAlreadyExistsError("x")) == 409
    assert status_for(NoSourcesError("x")) == 404
    assert status_for(LLMConfigurationError("x")) == 500
    assert status_for(LLMRetriesExhaustedError(UpstreamError("api_error", "x"), 3)) == 502


@pytest.mark.asyncio
async def test_generate_and_read(client, acme):
    resp = await client.post("/ai-synth", json={"shopify_handle": "acme-snuff"})
    assert resp.status_code == 201
    data = resp.json()
    assert data["shopify_handle"] == "acme-snuff"
    assert data["specification"]["star_rating"] == 4
    assert data["confidence"] == 2
    assert len(data["sources"]) == 3

    resp = await client.get("/ai-synth/acme-snuff")
    assert resp.status_code == 200
    assert resp.json()["id"] == data["id"]


@pytest.mark.asyncio
async def test_generate_conflict(client, acme):
    assert (await client.post("/ai-synth", json={"shopify_handle": "acme-snuff"})).status_code == 201
    resp = await client.post("/ai-synth", json={"shopify_handle": "acme-snuff"})
    assert resp.status_code == 409
    assert "already exists" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_generate_without_sources(client):
    resp = await client.post("/ai-synth", json={"shopify_handle": "nobody-reviewed-this"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_generate_rejects_bad_body(client):
    resp = await client.post("/ai-synth", json={"shopify_handle": "acme-snuff", "confidence": 9})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_generate_upstream_failure(client, acme, gateway):
    gateway.error = LLMRetriesExhaustedError(UpstreamError("overloaded_error", "Overloaded", 529), 3)
    resp = await client.post("/ai-synth", json={"shopify_handle": "acme-snuff"})
    assert resp.status_code == 502
    assert (await client.get("/ai-synth/acme-snuff")).status_code == 404


@pytest.mark.asyncio
async def test_invalid_model_output(client, acme, gateway):
    gateway.response = "not json at all"
    resp = await client.post("/ai-synth", json={"shopify_handle": "acme-snuff"})
    assert resp.status_code == 502


@pytest.mark.asyncio
async def test_get_missing(client):
    assert (await client.get("/ai-synth/unknown")).status_code == 404


@pytest.mark.asyncio
async def test_refresh(client, acme, gateway):
    await client.post("/ai-synth", json={"shopify_handle": "acme-snuff"})
    gateway.response = synthesis_json(review="Refreshed.", confidence_level=3)

    resp = await client.put("/ai-synth/acme-snuff/refresh", json={"ai_model": "other-model"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["specification"]["review"] == "Refreshed."
    assert data["confidence"] == 3
    assert data["ai_model"] == "other-model"


@pytest.mark.asyncio
async def test_refresh_without_body(client, acme):
    await client.post("/ai-synth", json={"shopify_handle": "acme-snuff"})
    assert (await client.put("/ai-synth/acme-snuff/refresh")).status_code == 200


@pytest.mark.asyncio
async def test_refresh_missing(client, acme):
    assert (await client.put("/ai-synth/acme-snuff/refresh")).status_code == 404


@pytest.mark.asyncio
async def test_list(client, acme):
    await client.post("/ai-synth", json={"shopify_handle": "acme-snuff"})

    resp = await client.get("/ai-synth")
    assert resp.status_code == 200
    assert resp.json()["total"] == 1

    resp = await client.get("/ai-synth", params={"confidence": 1})
    assert resp.json() == {"syntheses": [], "total": 0}

    assert (await client.get("/ai-synth", params={"confidence": 5})).status_code == 422


@pytest.mark.asyncio
async def test_sources(client, acme):
    await client.post("/ai-synth", json={"shopify_handle": "acme-snuff"})
    resp = await client.get("/ai-synth/acme-snuff/sources")
    assert resp.status_code == 200
    links = resp.json()
    assert [link["specification_id"] for link in links] == acme
    assert links[0]["specification"]["user"]["id"] == AUTHOR_IDS[0]


@pytest.mark.asyncio
async def test_markdown(client, acme):
    await client.post("/ai-synth", json={"shopify_handle": "acme-snuff"})
    resp = await client.get("/ai-synth/acme-snuff/markdown")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/markdown")
    assert resp.text.startswith("# acme-snuff")
