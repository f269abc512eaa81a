"""Pytest fixtures for click-tally tests."""

import asyncio
from collections.abc import Awaitable
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from moto import mock_aws

from click_tally import ClickTracker, MemoryStore
from click_tally.store import DynamoStore

TEST_TABLE_NAME = "test-clicks"


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    # Unset endpoint overrides to ensure moto intercepts requests
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
    monkeypatch.delenv("DYNAMODB_ENDPOINT", raising=False)


@pytest.fixture
def mock_dynamodb(aws_credentials):
    """Mock DynamoDB for tests."""
    with mock_aws(), _patch_aiobotocore_response():
        yield


def _patch_aiobotocore_response():
    """
    Patch aiobotocore to work with moto's sync responses.

    Moto returns botocore.awsrequest.AWSResponse which has sync content,
    but aiobotocore expects async content. This patch wraps the response
    handling to convert sync content to async.

    See: https://github.com/aio-libs/aiobotocore/discussions/1300
    """
    from aiobotocore import endpoint

    original_convert = endpoint.convert_to_response_dict

    async def patched_convert(http_response, operation_model):
        # If content is not awaitable (moto's sync response), wrap it
        if hasattr(http_response, "_content") and not isinstance(http_response._content, Awaitable):
            # Create a future that returns the content
            fut: asyncio.Future[bytes] = asyncio.Future()
            fut.set_result(http_response.content)
            http_response._content = fut
        return await original_convert(http_response, operation_model)

    return patch.object(endpoint, "convert_to_response_dict", patched_convert)


class StepClock:
    """Deterministic clock advancing by a fixed step on every reading."""

    def __init__(
        self,
        start: datetime = datetime(2025, 10, 2, 8, 0, 0, tzinfo=UTC),
        step: timedelta = timedelta(milliseconds=250),
    ) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current += self.step
        return now


@pytest.fixture
def clock():
    """Clock starting at 2025-10-02T08:00:00.000Z, 250ms per reading."""
    return StepClock()


@pytest.fixture
def memory_store():
    """Empty in-memory store."""
    return MemoryStore(TEST_TABLE_NAME)


@pytest.fixture
async def tracker(memory_store, clock):
    """ClickTracker over an in-memory store with a deterministic clock."""
    async with ClickTracker(memory_store, clock=clock) as tracker:
        yield tracker


@pytest.fixture
async def dynamo_store(mock_dynamodb):
    """DynamoStore with the table created in moto."""
    store = DynamoStore(TEST_TABLE_NAME, region="us-east-1")
    await store.create_table()
    yield store
    await store.close()


@pytest.fixture
async def dynamo_tracker(dynamo_store, clock):
    """ClickTracker over moto DynamoDB with a deterministic clock."""
    async with ClickTracker(dynamo_store, clock=clock) as tracker:
        yield tracker
