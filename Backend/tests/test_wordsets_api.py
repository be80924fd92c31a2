import pytest
from httpx import ASGITransport, AsyncClient

from taboo.dependencies import get_llm_provider, get_repository
from taboo.main import app
from taboo.services.word_set_repository import FallbackPolicy, WordSetRepository
from taboo.storage.defaults import DefaultsTier

DEVICE_A = {"X-Device-ID": "device-a"}
DEVICE_B = {"X-Device-ID": "device-b"}


def _payload(name: str = "Musica", **extra) -> dict:
    return {
        "name": name,
        "description": "Strumenti e generi",
        "isCustom": True,
        "cards": [
            {"mainWord": "Chitarra", "tabooWords": ["Corde", "Suonare", "Strumento", "Musica", "Accordi"]},
            {"mainWord": "Jazz", "tabooWords": ["Swing", "Sassofono", "Improvvisazione", "Blues", "New Orleans"]},
        ],
        **extra,
    }


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_list_empty_store(client):
    response = await client.get("/wordsets")
    assert response.status_code == 200
    assert response.json() == []
    assert response.headers["X-Data-Source"] == "remote"


@pytest.mark.asyncio
async def test_create_word_set(client):
    response = await client.post("/wordsets", json=_payload(), headers=DEVICE_A)
    assert response.status_code == 200
    data = response.json()
    assert data["id"]
    assert data["createdAt"]
    assert data["creatorDeviceId"] == "device-a"
    assert data["isCustom"] is True
    assert [c["mainWord"] for c in data["cards"]] == ["Chitarra", "Jazz"]

    listed = (await client.get("/wordsets")).json()
    assert [ws["id"] for ws in listed] == [data["id"]]


@pytest.mark.asyncio
async def test_put_updates_and_replaces_cards(client):
    created = (await client.post("/wordsets", json=_payload(), headers=DEVICE_A)).json()

    response = await client.put(
        "/wordsets",
        json={
            **created,
            "name": "Musica Classica",
            "cards": [{"mainWord": "Violino", "tabooWords": ["Archetto", "Corde", "Orchestra", "Mento", "Stradivari"]}],
        },
        headers=DEVICE_A,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == created["id"]
    assert data["name"] == "Musica Classica"
    assert data["createdAt"] == created["createdAt"]
    assert [c["mainWord"] for c in data["cards"]] == ["Violino"]


@pytest.mark.asyncio
async def test_other_device_cannot_update(client):
    created = (await client.post("/wordsets", json=_payload(), headers=DEVICE_A)).json()

    response = await client.put("/wordsets", json={**created, "name": "Rubato"}, headers=DEVICE_B)

    assert response.status_code == 403
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_create_rejects_empty_name(client):
    response = await client.post("/wordsets", json=_payload(name=""), headers=DEVICE_A)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_rejects_card_without_taboo_words(client):
    payload = _payload()
    payload["cards"][0]["tabooWords"] = []
    response = await client.post("/wordsets", json=payload, headers=DEVICE_A)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_scenario_between_two_devices(client):
    created = (await client.post("/wordsets", json=_payload(), headers=DEVICE_A)).json()
    set_id = created["id"]

    response = await client.get(f"/wordsets/{set_id}/permissions", headers=DEVICE_B)
    assert response.json() == {"canDelete": False}
    response = await client.get(f"/wordsets/{set_id}/permissions", headers=DEVICE_A)
    assert response.json() == {"canDelete": True}

    response = await client.delete(f"/wordsets/{set_id}", headers=DEVICE_B)
    assert response.status_code == 403
    assert "error" in response.json()

    response = await client.delete(f"/wordsets/{set_id}", headers=DEVICE_A)
    assert response.status_code == 200
    assert response.json() == {"success": True}

    assert (await client.get("/wordsets")).json() == []


@pytest.mark.asyncio
async def test_delete_unknown_set(client):
    response = await client.delete("/wordsets/does-not-exist", headers=DEVICE_A)
    assert response.status_code == 404
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_missing_device_header_owns_nothing(client):
    created = (await client.post("/wordsets", json=_payload(), headers=DEVICE_A)).json()

    response = await client.get(f"/wordsets/{created['id']}/permissions")
    assert response.json() == {"canDelete": False}

    response = await client.delete(f"/wordsets/{created['id']}")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_preflight_returns_empty_204(client):
    response = await client.options(
        "/wordsets",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert response.status_code == 204
    assert response.content == b""
    assert "X-Device-ID" in response.headers["Access-Control-Allow-Headers"]
    assert "DELETE" in response.headers["Access-Control-Allow-Methods"]
    assert response.headers["Access-Control-Allow-Origin"] == "*"


@pytest.mark.asyncio
async def test_preflight_on_any_path(client):
    response = await client.options("/wordsets/some-id/permissions")
    assert response.status_code == 204


@pytest.mark.asyncio
async def test_generate_without_llm_uses_fallback_cards(client):
    response = await client.post("/wordsets/generate", json={"topic": "cibo", "count": 5})
    assert response.status_code == 200
    data = response.json()
    assert data["usedLlm"] is False
    assert len(data["cards"]) == 5
    assert all(len(card["tabooWords"]) == 5 for card in data["cards"])


@pytest.mark.asyncio
async def test_generate_rejects_bad_count(client):
    response = await client.post("/wordsets/generate", json={"count": 0})
    assert response.status_code == 422


# --- Degraded operation ---


@pytest.fixture
async def offline_client(offline_repository):
    app.dependency_overrides[get_repository] = lambda: offline_repository
    app.dependency_overrides[get_llm_provider] = lambda: None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_list_falls_back_to_defaults(offline_client):
    response = await offline_client.get("/wordsets")
    assert response.status_code == 200
    assert response.headers["X-Data-Source"] == "defaults"
    assert {ws["id"] for ws in response.json()} == {"default-base", "default-cucina"}


@pytest.mark.asyncio
async def test_offline_save_is_accepted(offline_client):
    response = await offline_client.post("/wordsets", json=_payload(), headers=DEVICE_A)
    assert response.status_code == 202
    data = response.json()
    assert data["pendingSync"] is True

    response = await offline_client.get("/wordsets")
    assert response.headers["X-Data-Source"] == "local_cache"
    assert [ws["id"] for ws in response.json()] == [data["id"]]


@pytest.mark.asyncio
async def test_offline_delete_is_refused(offline_client):
    created = (await offline_client.post("/wordsets", json=_payload(), headers=DEVICE_A)).json()

    response = await offline_client.delete(f"/wordsets/{created['id']}", headers=DEVICE_A)
    assert response.status_code == 503
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_save_with_offline_writes_disabled_returns_echo(unreachable_remote, local_tier):
    repository = WordSetRepository(
        [unreachable_remote, local_tier, DefaultsTier()],
        FallbackPolicy(offline_writes=False),
    )
    app.dependency_overrides[get_repository] = lambda: repository

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/wordsets", json=_payload(), headers=DEVICE_A)

    app.dependency_overrides.clear()
    assert response.status_code == 503
    data = response.json()
    assert data["error"]
    assert data["wordSet"]["name"] == "Musica"
    assert data["wordSet"]["id"]


@pytest.mark.asyncio
async def test_clients_cannot_create_built_in_sets(client):
    response = await client.post("/wordsets", json=_payload(isCustom=False), headers=DEVICE_A)

    assert response.status_code == 200
    data = response.json()
    assert data["isCustom"] is True
    assert data["creatorDeviceId"] == "device-a"

    response = await client.get(f"/wordsets/{data['id']}/permissions", headers=DEVICE_A)
    assert response.json() == {"canDelete": True}
    response = await client.delete(f"/wordsets/{data['id']}", headers=DEVICE_A)
    assert response.status_code == 200
