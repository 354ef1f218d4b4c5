"""
Reference image generation for the first scene of a run.

Before any real frame exists, a small image set rendered from the script's
key elements gives the video model something to anchor characters and props on.
"""

import asyncio
from typing import Dict, List, Optional

import structlog

from config import settings
from pipeline.errors import UnrecognizedOutputShape
from pipeline.output_normalizer import normalize_output
from services.replicate_client import ReplicateClient, get_replicate_client

logger = structlog.get_logger(__name__)

MAX_REFERENCE_IMAGES = 3


class ReferenceImageGenerator:
    """Renders one still per key element with a Replicate image model."""

    def __init__(self, client: Optional[ReplicateClient] = None, model_id: Optional[str] = None):
        self.client = client or get_replicate_client()
        self.model_id = model_id or settings.REFERENCE_IMAGE_MODEL

    async def generate(
        self,
        key_elements: List[str],
        style_hints: Dict[str, str],
        aspect_ratio: str = "16:9",
    ) -> List[str]:
        """
        Render reference images for up to three key elements.

        Failures of individual images are logged and skipped; an empty list
        means the first scene runs without references.
        """
        elements = [element for element in key_elements if element][:MAX_REFERENCE_IMAGES]
        if not elements:
            return []

        style = style_hints.get("style")
        prompts = [
            f"Reference still of {element}, clean studio lighting, neutral background"
            + (f", {style} style" if style else "")
            for element in elements
        ]

        results = await asyncio.gather(
            *[
                self.client.run_model_async(
                    self.model_id,
                    {"prompt": prompt, "aspect_ratio": aspect_ratio, "output_format": "png"},
                )
                for prompt in prompts
            ],
            return_exceptions=True,
        )

        urls = []
        for element, result in zip(elements, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("reference_image_failed", element=element, error=str(result))
                continue
            try:
                urls.append(normalize_output(result))
            except UnrecognizedOutputShape as e:
                logger.warning("reference_image_unrecognized", element=element, error=str(e))

        logger.info("reference_images_generated", requested=len(elements), generated=len(urls))
        return urls
