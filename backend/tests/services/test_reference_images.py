"""
Tests for reference image generation.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from services.reference_images import ReferenceImageGenerator


@pytest.fixture
def client():
    client = MagicMock()
    client.run_model_async = AsyncMock(return_value=["https://replicate.delivery/ref.png"])
    return client


@pytest.mark.asyncio
async def test_one_image_per_element_capped_at_three(client):
    generator = ReferenceImageGenerator(client=client, model_id="acme/image")

    urls = await generator.generate(["fox", "bridge", "lantern", "moon"], {"style": "noir"}, aspect_ratio="9:16")

    assert urls == ["https://replicate.delivery/ref.png"] * 3
    assert client.run_model_async.await_count == 3
    model_id, params = client.run_model_async.call_args_list[0].args
    assert model_id == "acme/image"
    assert params["prompt"].startswith("Reference still of fox")
    assert params["prompt"].endswith("noir style")
    assert params["aspect_ratio"] == "9:16"


@pytest.mark.asyncio
async def test_failures_are_skipped(client):
    client.run_model_async.side_effect = [
        RuntimeError("model error"),
        {"foo": 1},
        "https://replicate.delivery/ok.png",
    ]

    urls = await ReferenceImageGenerator(client=client).generate(["a", "b", "c"], {})

    assert urls == ["https://replicate.delivery/ok.png"]


@pytest.mark.asyncio
async def test_no_elements(client):
    assert await ReferenceImageGenerator(client=client).generate(["", ""], {}) == []
    client.run_model_async.assert_not_called()
