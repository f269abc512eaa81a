"""Tests for the Lambda request handler."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from click_tally import handler as handler_module
from click_tally.config import Settings
from click_tally.exceptions import StoreUnavailable
from click_tally.handler import CORS_HEADERS, handle_request, handler


def _event(body=None, method="POST"):
    return {"httpMethod": method, "body": json.dumps(body) if body is not None else None}


@pytest.fixture
def settings():
    return Settings(table_name="test-clicks")


class TestHandleRequest:
    """Tests for handle_request against the in-memory store."""

    async def test_records_click(self, memory_store, settings):
        response = await handle_request(_event({"userId": "user-001"}), memory_store, settings)

        assert response["statusCode"] == 200
        assert response["headers"] == CORS_HEADERS
        body = json.loads(response["body"])
        assert body["success"] is True
        assert body["message"] == "Click recorded"
        assert body["data"]["userId"] == "user-001"
        assert body["data"]["totalClicks"] == 1
        assert body["data"]["createDateTime"].endswith("Z")
        assert memory_store.closed

    async def test_totals_accumulate_across_requests(self, settings):
        from click_tally import MemoryStore

        store = MemoryStore()
        for expected in (1, 2, 3):
            response = await handle_request(_event({"userId": "u"}), store, settings)
            assert json.loads(response["body"])["data"]["totalClicks"] == expected

    async def test_social_media_type_is_logged(self, memory_store, settings, capsys):
        await handle_request(
            _event({"userId": "user-001", "socialMediaType": "instagram"}),
            memory_store,
            settings,
        )

        logs = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert any(entry.get("social_media_type") == "instagram" for entry in logs)

    async def test_missing_user_id_rejected(self, memory_store, settings):
        response = await handle_request(_event({}), memory_store, settings)

        assert response["statusCode"] == 400
        body = json.loads(response["body"])
        assert body["success"] is False
        assert "userId" in body["error"]
        assert len(memory_store) == 0

    async def test_missing_body_uses_default_subject(self, memory_store):
        settings = Settings(default_subject_id="testUser123")

        response = await handle_request(_event(None), memory_store, settings)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["data"]["userId"] == "testUser123"

    @pytest.mark.parametrize(
        "event",
        [
            {"httpMethod": "POST", "body": "{not json"},
            {"httpMethod": "POST", "body": "[1, 2]"},
            {"httpMethod": "POST", "body": "e30=", "isBase64Encoded": True},
            _event({"userId": "STAT#TOTAL"}),
            _event({"userId": 42}),
        ],
    )
    async def test_bad_requests(self, memory_store, settings, event):
        response = await handle_request(event, memory_store, settings)

        assert response["statusCode"] == 400
        assert response["headers"]["Access-Control-Allow-Origin"] == "*"

    async def test_store_failure_is_500(self, memory_store, settings):
        memory_store.put = AsyncMock(side_effect=StoreUnavailable("down", operation="put"))

        response = await handle_request(_event({"userId": "user-001"}), memory_store, settings)

        assert response["statusCode"] == 500
        body = json.loads(response["body"])
        assert body == {
            "success": False,
            "message": "Failed to record click",
            "error": "down [operation=put]",
        }

    async def test_options_preflight(self, memory_store, settings):
        response = await handle_request(_event(method="OPTIONS"), memory_store, settings)

        assert response == {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}
        assert len(memory_store) == 0


class TestLambdaHandler:
    """Tests for the synchronous Lambda entry point."""

    def test_uses_settings_store(self, memory_store, monkeypatch):
        monkeypatch.delenv("CLICK_TALLY_TIMEOUT", raising=False)
        with patch.object(Settings, "create_store", return_value=memory_store):
            response = handler(_event({"userId": "user-001"}), None)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["data"]["totalClicks"] == 1

    def test_invalid_configuration_is_500(self, monkeypatch):
        monkeypatch.setenv("CLICK_TALLY_TIMEOUT", "never")

        response = handler(_event({"userId": "user-001"}), None)

        assert response["statusCode"] == 500
        assert json.loads(response["body"])["success"] is False

    def test_against_moto(self, mock_dynamodb, monkeypatch):
        import asyncio

        from click_tally.store import DynamoStore

        async def create():
            async with DynamoStore("handler-clicks", region="us-east-1") as store:
                await store.create_table()

        asyncio.run(create())
        monkeypatch.setenv("DYNAMODB_TABLE", "handler-clicks")
        monkeypatch.setenv("AWS_REGION", "us-east-1")
        monkeypatch.delenv("CLICK_TALLY_TIMEOUT", raising=False)

        first = handler(_event({"userId": "user-001"}), None)
        second = handler(_event({"userId": "user-002"}), None)

        assert first["statusCode"] == 200
        assert json.loads(second["body"])["data"]["totalClicks"] == 2

    def test_logger_emits_json(self, capsys):
        handler_module.logger.info("hello", request_id="abc")

        entry = json.loads(capsys.readouterr().out)
        assert entry["level"] == "INFO"
        assert entry["message"] == "hello"
        assert entry["request_id"] == "abc"
