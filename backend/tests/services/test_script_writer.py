"""
Tests for the Gemini script writer with a mocked genai client.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from config import settings
from pipeline.errors import ErrorCode, PipelineError
from pipeline.models import ScriptDraft
from services.script_writer import GeminiScriptWriter, create_script_writer

DRAFT = {
    "overall_prompt": "A fox explores a snowy city at night",
    "scenes": [
        {"scene_number": 1, "prompt": "Fox steps out of an alley", "duration": 8},
        {"scene_number": 2, "prompt": "Fox crosses a lit bridge", "duration": 8},
    ],
    "key_elements": ["red fox", "snowy bridge"],
}


@pytest.fixture
def genai_client():
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=SimpleNamespace(text=json.dumps(DRAFT)))
    with patch("services.script_writer.genai.Client", return_value=client):
        yield client


@pytest.mark.asyncio
async def test_write_returns_parsed_draft(genai_client):
    writer = GeminiScriptWriter(api_key="test-key", model="gemini-test")

    draft = await writer.write("A fox explores a snowy city", 16, {"style": "noir", "color_palette": "blue"})

    assert isinstance(draft, ScriptDraft)
    assert [scene.prompt for scene in draft.scenes] == ["Fox steps out of an alley", "Fox crosses a lit bridge"]
    assert draft.key_elements == ["red fox", "snowy bridge"]

    kwargs = genai_client.aio.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "gemini-test"
    assert "16-second video" in kwargs["contents"]
    assert "- Style: noir" in kwargs["contents"]
    assert "- Color Palette: blue" in kwargs["contents"]
    assert kwargs["config"].response_mime_type == "application/json"


@pytest.mark.asyncio
async def test_empty_response_raises(genai_client):
    genai_client.aio.models.generate_content.return_value = SimpleNamespace(text="")

    with pytest.raises(PipelineError) as exc_info:
        await GeminiScriptWriter(api_key="test-key").write("concept", 10, {})
    assert exc_info.value.code == ErrorCode.SCRIPT_GENERATION_FAILED


def test_missing_key(monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")

    with pytest.raises(ValueError):
        GeminiScriptWriter()
    assert create_script_writer() is None
