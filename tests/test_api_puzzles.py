"""Tests for signed ingestion, metadata and puzzle reads."""

import json

import pytest

from conftest import WEBHOOK_SECRET, signed_post
from friendle.shared.config import Settings
from friendle.shared.config import get_settings
from friendle.shared.signing import canonical_json
from friendle.shared.signing import sign_body
from friendle.web.api.app import api


def puzzle(game="quotele", date="2024-01-01", solution="1", **extra):
    record = {"game": game, "date": date, "solution_user_id": solution}
    record.update(extra)
    return record


class TestIngest:
    def test_stores_puzzle_and_latest_pointers(self, client, kv_store):
        response = signed_post(client, "/ingest", {"guild_id": "42", "puzzle": puzzle()})

        assert response.status_code == 200
        assert response.json() == {"ok": True, "stored": "guild:42:date:2024-01-01:game:quotele"}
        assert response.headers["x-request-id"]
        assert set(kv_store.keys()) == {
            "guild:42:date:2024-01-01:game:quotele",
            "guild:42:latest_date",
            "guild:42:latest_game:quotele",
        }

    def test_community_id_alias(self, client, kv_store):
        response = signed_post(client, "/ingest", {"community_id": "42", "puzzle": puzzle()})

        assert response.status_code == 200
        assert "guild:42:latest_date" in kv_store.keys()

    def test_latest_date_is_last_write(self, client):
        signed_post(client, "/ingest", {"guild_id": "42", "puzzle": puzzle(date="2024-01-02")})
        signed_post(client, "/ingest", {"guild_id": "42", "puzzle": puzzle(date="2024-01-01")})

        response = client.get("/puzzles", params={"guild_id": "42", "latest": "1"})

        assert response.json()["date"] == "2024-01-01"

    def test_missing_signature_is_401(self, client, kv_store):
        response = client.post("/ingest", json={"guild_id": "42", "puzzle": puzzle()})

        assert response.status_code == 401
        assert response.json()["type"] == "signature_error"
        assert kv_store.keys() == []

    def test_bad_signature_is_403(self, client, kv_store):
        response = signed_post(
            client, "/ingest", {"guild_id": "42", "puzzle": puzzle()}, secret="wrong"
        )

        assert response.status_code == 403
        assert kv_store.keys() == []

    def test_mutated_body_is_403(self, client, kv_store):
        body = canonical_json({"guild_id": "42", "puzzle": puzzle()})
        signature = sign_body(WEBHOOK_SECRET, body)

        response = client.post(
            "/ingest",
            content=body.replace(b"42", b"43"),
            headers={"X-Signature": signature, "Content-Type": "application/json"},
        )

        assert response.status_code == 403
        assert kv_store.keys() == []

    def test_invalid_json_is_400(self, client):
        body = b"{not json"

        response = client.post(
            "/ingest",
            content=body,
            headers={"X-Signature": sign_body(WEBHOOK_SECRET, body)},
        )

        assert response.status_code == 400

    @pytest.mark.parametrize(
        "payload",
        [
            {"puzzle": {"game": "quotele", "date": "2024-01-01"}},
            {"guild_id": "42"},
            {"guild_id": "42", "puzzle": {"game": "quotele"}},
            {"guild_id": "42", "puzzle": {"date": "2024-01-01"}},
        ],
    )
    def test_missing_fields_are_400_without_writes(self, client, kv_store, payload):
        response = signed_post(client, "/ingest", payload)

        assert response.status_code == 400
        assert kv_store.keys() == []

    def test_missing_server_secret_is_500(self, client):
        api.dependency_overrides[get_settings] = lambda: Settings(
            _env_file=None, webhook_secret=""
        )

        response = signed_post(client, "/ingest", {"guild_id": "42", "puzzle": puzzle()})

        assert response.status_code == 500
        assert response.json()["type"] == "configuration_error"


class TestMetadata:
    def test_stores_present_parts(self, client, kv_store):
        response = signed_post(
            client,
            "/metadata",
            {
                "guild_id": "42",
                "date": "2024-01-01",
                "names": {"1": "Alice"},
                "allowed_usernames": ["Alice", "", None, "Bob"],
            },
        )

        assert response.status_code == 200
        assert set(kv_store.keys()) == {
            "guild:42:date:2024-01-01:names",
            "guild:42:date:2024-01-01:allowed_usernames",
        }

    def test_missing_date_is_400(self, client):
        response = signed_post(client, "/metadata", {"guild_id": "42"})

        assert response.status_code == 400


class TestReadPuzzles:
    def test_unknown_date_returns_all_games_null(self, client):
        response = client.get("/puzzles", params={"guild_id": "42", "date": "2024-01-01"})

        assert response.status_code == 200
        assert response.json() == {
            "guild_id": "42",
            "date": "2024-01-01",
            "puzzles": {
                "friendle_daily": None,
                "quotele": None,
                "mediale": None,
                "statle": None,
            },
            "names": {},
            "metrics": {},
            "allowed_usernames": [],
        }

    def test_joins_names_and_daily_metrics(self, client):
        signed_post(
            client,
            "/ingest",
            {"guild_id": "42", "puzzle": puzzle(game="friendle_daily", clues={"top_word": "x"})},
        )
        signed_post(client, "/ingest", {"guild_id": "42", "puzzle": puzzle(solution="2")})
        signed_post(
            client,
            "/metadata",
            {
                "guild_id": "42",
                "date": "2024-01-01",
                "names": {"1": "Alice"},
                "metrics": {"1": {"messageCount": 4}},
                "allowed_usernames": ["Alice"],
            },
        )

        data = client.get("/puzzles", params={"guild_id": "42", "date": "2024-01-01"}).json()

        daily = data["puzzles"]["friendle_daily"]
        assert daily["solution_user_name"] == "Alice"
        assert daily["solution_metrics"] == {"messageCount": 4}
        assert data["puzzles"]["quotele"]["solution_user_name"] is None
        assert "solution_metrics" not in data["puzzles"]["quotele"]
        assert data["puzzles"]["mediale"] is None
        assert data["allowed_usernames"] == ["Alice"]

    def test_single_game(self, client):
        signed_post(client, "/ingest", {"guild_id": "42", "puzzle": puzzle(game="statle")})

        response = client.get(
            "/puzzles", params={"guild_id": "42", "date": "2024-01-01", "game": "statle"}
        )

        assert response.status_code == 200
        assert list(response.json()["puzzles"]) == ["statle"]

    def test_single_game_missing_is_404(self, client):
        response = client.get(
            "/puzzles", params={"guild_id": "42", "date": "2024-01-01", "game": "statle"}
        )

        assert response.status_code == 404
        assert response.json()["type"] == "not_found_error"

    def test_missing_guild_is_400(self, client):
        assert client.get("/puzzles", params={"date": "2024-01-01"}).status_code == 400

    def test_latest_with_nothing_stored_is_400(self, client):
        response = client.get("/puzzles", params={"guild_id": "42", "latest": "1"})

        assert response.status_code == 400
        assert json.loads(response.content)["detail"].startswith("Missing date")


class TestHealth:
    def test_health_reports_configuration(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "has_webhook_secret": True,
            "allowed_origin": "*",
            "version": "1.0.0",
        }

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"x-request-id": "abc-123"})

        assert response.headers["x-request-id"] == "abc-123"
