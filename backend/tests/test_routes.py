"""
EcoDex Backend - HTTP Route Tests
===================================

What:  The FastAPI surface through httpx AsyncClient + ASGITransport:
       status codes, error body shape, headers, and one full identify flow.
How:   The database dependency points at the in-memory SQLite test DB
       (see conftest.test_client); the oracle is swapped for a mock on the
       pipeline singleton.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ecodex.exceptions import (
    CircuitBreakerOpenError,
    OracleUnavailableError,
    PersistenceError,
)
from ecodex.services.discovery_pipeline import discovery_pipeline


@pytest.fixture
def mock_oracle(oracle_reply):
    oracle = MagicMock()
    oracle.describe_species = AsyncMock(return_value=oracle_reply())
    oracle.chat = AsyncMock(return_value="Jaguars are apex predators! 🐆")
    with patch.object(discovery_pipeline, "oracle", oracle):
        yield oracle


async def _create_user(test_client, email="field@example.org") -> str:
    response = await test_client.post("/api/users", json={"name": "Field Tester", "email": email})
    assert response.status_code == 201
    return response.json()["id"]


def _photo(make_image, width=1600, height=1200):
    return {"image": ("jaguar.png", make_image(width, height), "image/png")}


class TestIdentifyFlow:

    @pytest.mark.asyncio
    async def test_identify_then_browse(self, test_client, mock_oracle, make_image):
        user_id = await _create_user(test_client)
        headers = {"X-User-ID": user_id}

        response = await test_client.post(
            "/api/ecodex/identify",
            files=_photo(make_image),
            data={"latitude": "-3.1", "longitude": "-60.0", "address": "Manaus"},
            headers=headers,
        )
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["is_first_discovery"] is True
        assert body["xp_gained"] == 100
        assert body["new_level"] == 2
        assert body["entry"]["rarity"] == "rare"
        assert body["entry"]["location"]["address"] == "Manaus"
        assert "X-Request-ID" in response.headers
        entry_id = body["entry"]["id"]

        repeat = await test_client.post("/api/ecodex/identify", files=_photo(make_image), headers=headers)
        assert repeat.status_code == 201
        assert repeat.json()["is_first_discovery"] is False
        assert repeat.json()["total_xp"] == 150

        listing = await test_client.get("/api/ecodex/entries?limit=1", headers=headers)
        assert listing.status_code == 200
        assert listing.headers["X-Total-Count"] == "2"
        assert listing.json()["has_more"] is True

        detail = await test_client.get(f"/api/ecodex/entries/{entry_id}", headers=headers)
        assert detail.status_code == 200
        assert detail.json()["scientific_name"] == "Panthera onca"
        assert detail.headers["Cache-Control"] == "private, max-age=3600"

        me = await test_client.get("/api/users/me", headers=headers)
        assert me.json()["experience"] == 150
        assert me.json()["discovery_count"] == 2
        assert me.json()["discoveries"][0] == entry_id

        stats = await test_client.get("/api/ecodex/stats", headers=headers)
        assert stats.json()["by_rarity"] == {"rare": 2}

    @pytest.mark.asyncio
    async def test_entry_of_another_user_is_404(self, test_client, mock_oracle, make_image):
        owner = await _create_user(test_client, "owner@example.org")
        other = await _create_user(test_client, "other@example.org")

        created = await test_client.post(
            "/api/ecodex/identify", files=_photo(make_image), headers={"X-User-ID": owner},
        )
        entry_id = created.json()["entry"]["id"]

        response = await test_client.get(f"/api/ecodex/entries/{entry_id}", headers={"X-User-ID": other})
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestIdentifyErrors:

    @pytest.mark.asyncio
    async def test_missing_image_is_400(self, test_client, mock_oracle):
        user_id = await _create_user(test_client)
        response = await test_client.post(
            "/api/ecodex/identify", data={"address": "nowhere"}, headers={"X-User-ID": user_id},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "input_validation_error"
        assert response.json()["details"]["field"] == "image"

    @pytest.mark.asyncio
    async def test_oversized_upload_read_stops_past_limit(self, test_client, mock_oracle):
        user_id = await _create_user(test_client)
        huge = {"image": ("huge.png", b"\x89PNG" + b"\x00" * 100_000, "image/png")}

        with patch.object(discovery_pipeline, "max_file_size", 1024):
            response = await test_client.post(
                "/api/ecodex/identify", files=huge, headers={"X-User-ID": user_id},
            )

        assert response.status_code == 400
        assert response.json()["details"]["max_bytes"] == 1024
        assert response.json()["details"]["size_bytes"] == 1025
        mock_oracle.describe_species.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_user_header_is_400(self, test_client, mock_oracle, make_image):
        response = await test_client.post("/api/ecodex/identify", files=_photo(make_image))
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "X-User-ID"

    @pytest.mark.asyncio
    async def test_unknown_user_is_404(self, test_client, mock_oracle, make_image):
        response = await test_client.post(
            "/api/ecodex/identify", files=_photo(make_image), headers={"X-User-ID": str(uuid.uuid4())},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_corrupt_image_is_400(self, test_client, mock_oracle):
        user_id = await _create_user(test_client)
        response = await test_client.post(
            "/api/ecodex/identify",
            files={"image": ("broken.jpg", b"\xff\xd8 not really a jpeg", "image/jpeg")},
            headers={"X-User-ID": user_id},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "image_decode_error"
        mock_oracle.describe_species.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_reply_is_502_with_raw_text(self, test_client, mock_oracle, make_image):
        mock_oracle.describe_species.return_value = "A lovely fern, I believe."
        user_id = await _create_user(test_client)

        response = await test_client.post(
            "/api/ecodex/identify", files=_photo(make_image), headers={"X-User-ID": user_id},
        )
        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "malformed_oracle_response"
        assert body["details"]["raw_response"] == "A lovely fern, I believe."

    @pytest.mark.asyncio
    async def test_oracle_unavailable_is_503_with_retry_after(self, test_client, mock_oracle, make_image):
        mock_oracle.describe_species.side_effect = OracleUnavailableError(retry_after=30)
        user_id = await _create_user(test_client)

        response = await test_client.post(
            "/api/ecodex/identify", files=_photo(make_image), headers={"X-User-ID": user_id},
        )
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        assert response.json()["error"] == "oracle_unavailable"

    @pytest.mark.asyncio
    async def test_circuit_open_is_503(self, test_client, mock_oracle, make_image):
        mock_oracle.describe_species.side_effect = CircuitBreakerOpenError(recovery_time=42)
        user_id = await _create_user(test_client)

        response = await test_client.post(
            "/api/ecodex/identify", files=_photo(make_image), headers={"X-User-ID": user_id},
        )
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "42"
        assert response.json()["error"] == "oracle_circuit_open"

    @pytest.mark.asyncio
    async def test_persistence_error_reports_stage(self, test_client, mock_oracle, make_image):
        user_id = await _create_user(test_client)
        failing = AsyncMock(side_effect=PersistenceError(stage="entry_create", persisted=PersistenceError.NOTHING))

        with patch.object(discovery_pipeline.ledger, "record_discovery", failing):
            response = await test_client.post(
                "/api/ecodex/identify", files=_photo(make_image), headers={"X-User-ID": user_id},
            )

        assert response.status_code == 500
        assert response.json()["error"] == "persistence_error"
        assert response.json()["details"] == {"stage": "entry_create", "persisted": "nothing"}


class TestChatRoute:

    @pytest.mark.asyncio
    async def test_text_chat(self, test_client, mock_oracle):
        response = await test_client.post(
            "/api/ecodex/chat",
            data={"message": "Tell me about jaguars"},
            headers={"X-User-ID": str(uuid.uuid4())},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "response": "Jaguars are apex predators! 🐆"}

    @pytest.mark.asyncio
    async def test_empty_chat_is_400(self, test_client, mock_oracle):
        response = await test_client.post(
            "/api/ecodex/chat", data={"message": ""}, headers={"X-User-ID": str(uuid.uuid4())},
        )
        assert response.status_code == 400


class TestUsersRoute:

    @pytest.mark.asyncio
    async def test_duplicate_email_is_400(self, test_client):
        await _create_user(test_client, "dup@example.org")
        response = await test_client.post("/api/users", json={"name": "Again", "email": "dup@example.org"})
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "email"


class TestHealthRoute:

    @pytest.mark.asyncio
    async def test_health_reports_dependencies(self, test_client):
        with patch(
            "ecodex.routes.health.gemini_oracle.health_check",
            AsyncMock(return_value=True),
        ):
            response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["database"] == "connected"
        assert body["oracle"] in ("available", "circuit_open")
        assert body["status"] in ("healthy", "degraded")
