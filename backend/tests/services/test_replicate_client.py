"""
Tests for the Replicate wrapper with the replicate SDK mocked out.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from config import settings
from services.replicate_client import ReplicateClient


@pytest.fixture(autouse=True)
def reset_singleton():
    ReplicateClient._instance = None
    yield
    ReplicateClient._instance = None


@pytest.fixture
def sdk(monkeypatch):
    monkeypatch.setenv("REPLICATE_API_TOKEN", "")
    sdk_client = MagicMock()
    with patch("services.replicate_client.replicate.Client", return_value=sdk_client):
        yield sdk_client


def make_prediction(status="succeeded"):
    prediction = MagicMock()
    prediction.id = "pred-1"
    prediction.status = status
    prediction.async_wait = AsyncMock()
    prediction.async_cancel = AsyncMock()
    return prediction


def test_token_required(monkeypatch):
    monkeypatch.setattr(settings, "REPLICATE_API_TOKEN", "")
    monkeypatch.setattr(settings, "REPLICATE_API_KEY", "")

    with pytest.raises(ValueError):
        ReplicateClient()


def test_singleton(sdk):
    assert ReplicateClient(api_token="r8_test") is ReplicateClient()


@pytest.mark.asyncio
async def test_run_prediction_waits_for_terminal_state(sdk):
    prediction = make_prediction()
    sdk.predictions.async_create = AsyncMock(return_value=prediction)
    client = ReplicateClient(api_token="r8_test", timeout=60)

    result = await client.run_prediction_async("google/veo-3.1", {"prompt": "a fox"})

    assert result is prediction
    sdk.predictions.async_create.assert_awaited_once_with(model="google/veo-3.1", input={"prompt": "a fox"})
    prediction.async_wait.assert_awaited_once()
    prediction.async_cancel.assert_not_called()


@pytest.mark.asyncio
async def test_timeout_cancels_prediction(sdk):
    prediction = make_prediction(status="processing")

    async def never_finishes():
        await asyncio.sleep(10)

    prediction.async_wait = AsyncMock(side_effect=never_finishes)
    sdk.predictions.async_create = AsyncMock(return_value=prediction)
    client = ReplicateClient(api_token="r8_test")

    with pytest.raises(asyncio.TimeoutError):
        await client.run_prediction_async("google/veo-3.1", {"prompt": "a fox"}, timeout=0.01)

    prediction.async_cancel.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_model_returns_output(sdk):
    sdk.async_run = AsyncMock(return_value=["https://replicate.delivery/img.png"])

    output = await ReplicateClient(api_token="r8_test").run_model_async("acme/image", {"prompt": "fox"})

    assert output == ["https://replicate.delivery/img.png"]
