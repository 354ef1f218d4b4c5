"""
Gemini-backed script writer.

Expands a short concept into an ordered list of timed scenes.
"""

from typing import Dict, Optional

import structlog
from google import genai
from google.genai import types

from config import settings
from pipeline.errors import ErrorCode, PipelineError
from pipeline.models import ScriptDraft

logger = structlog.get_logger(__name__)


SCRIPT_PROMPT_TEMPLATE = """You are a video director writing a shot list for an AI video model.

Concept:
{concept}

Write a script for a {duration:g}-second video.
- Split it into sequential scenes; each scene between 4 and 8 seconds.
- Scene durations must add up to {duration:g} seconds.
- Each scene prompt describes one continuous shot: subject, action, setting, camera, lighting.
- Keep characters, props and setting consistent across scenes.
- List the recurring visual elements (characters, props, locations) in key_elements.
{style_lines}"""


class GeminiScriptWriter:
    """
    Script-writing service using Gemini structured output.

    Example:
        >>> writer = GeminiScriptWriter()
        >>> draft = await writer.write("A fox explores a snowy city", 24, {"style": "cinematic"})
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key or settings.GEMINI_API_KEY
        if not api_key:
            raise ValueError("GEMINI_API_KEY is required for the script writer")
        self.model = model or settings.SCRIPT_MODEL
        self.client = genai.Client(api_key=api_key)

    async def write(self, concept: str, duration: float, style_hints: Dict[str, str]) -> ScriptDraft:
        style_lines = "\n".join(f"- {key.replace('_', ' ').title()}: {value}" for key, value in style_hints.items())
        prompt = SCRIPT_PROMPT_TEMPLATE.format(
            concept=concept.strip(),
            duration=duration,
            style_lines=style_lines,
        )

        logger.info("gemini_request_started", model=self.model, duration=duration)

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=ScriptDraft,
            ),
        )

        if not response.text:
            raise PipelineError(
                ErrorCode.SCRIPT_GENERATION_FAILED,
                "Gemini returned an empty script",
                {"model": self.model},
            )

        draft = ScriptDraft.model_validate_json(response.text)
        logger.info(
            "gemini_script_received",
            scene_count=len(draft.scenes),
            key_elements=draft.key_elements,
        )
        return draft


def create_script_writer() -> Optional[GeminiScriptWriter]:
    """Build the script writer, or None when no Gemini key is configured."""
    if not settings.GEMINI_API_KEY:
        logger.warning("gemini_api_key_missing_script_writer_disabled")
        return None
    return GeminiScriptWriter()
