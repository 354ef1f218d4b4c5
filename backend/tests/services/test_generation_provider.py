"""
Tests for ReplicateGenerationProvider with a mocked ReplicateClient.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from pipeline.errors import ProviderError, ProviderTimeoutError
from pipeline.models import GenerationRequest
from services.generation_provider import ReplicateGenerationProvider


def prediction(status="succeeded", output="https://replicate.delivery/out.mp4", error=None):
    return SimpleNamespace(id="pred-123", status=status, output=output, error=error)


@pytest.fixture
def client():
    client = MagicMock()
    client.run_prediction_async = AsyncMock(return_value=prediction())
    return client


@pytest.fixture
def scene_request():
    return GenerationRequest(
        prompt="A fox in snow",
        target_duration=6,
        model_id="google/veo-3.1",
        continuity_image="https://bucket/frame.jpg",
    )


class TestGenerate:
    @pytest.mark.asyncio
    async def test_success_keeps_raw_output(self, client, scene_request):
        provider = ReplicateGenerationProvider(client=client, timeout=30)

        result = await provider.generate(scene_request)

        assert result.status == "succeeded"
        assert result.output == "https://replicate.delivery/out.mp4"
        assert result.provider_asset_id == "pred-123"

        model_id, model_input = client.run_prediction_async.call_args.args
        assert model_id == "google/veo-3.1"
        assert model_input["image"] == "https://bucket/frame.jpg"
        assert model_input["duration"] == 6
        assert client.run_prediction_async.call_args.kwargs == {"timeout": 30}

    @pytest.mark.asyncio
    async def test_failed_prediction_is_a_result(self, client, scene_request):
        client.run_prediction_async.return_value = prediction(status="failed", output=None, error="NSFW")

        result = await ReplicateGenerationProvider(client=client).generate(scene_request)

        assert result.status == "failed"
        assert result.error == "NSFW"
        assert result.provider_asset_id == "pred-123"

    @pytest.mark.asyncio
    async def test_canceled_prediction_without_error_text(self, client, scene_request):
        client.run_prediction_async.return_value = prediction(status="canceled", output=None)

        result = await ReplicateGenerationProvider(client=client).generate(scene_request)

        assert result.status == "failed"
        assert result.error == "prediction canceled"

    @pytest.mark.asyncio
    async def test_timeout(self, client, scene_request):
        client.run_prediction_async.side_effect = asyncio.TimeoutError()

        with pytest.raises(ProviderTimeoutError):
            await ReplicateGenerationProvider(client=client).generate(scene_request)

    @pytest.mark.asyncio
    async def test_http_error(self, client, scene_request):
        client.run_prediction_async.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(ProviderError) as exc_info:
            await ReplicateGenerationProvider(client=client).generate(scene_request)
        assert exc_info.value.details["model_id"] == "google/veo-3.1"
