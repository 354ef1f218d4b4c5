"""
Replicate-backed generation provider.

Turns one GenerationRequest into one Replicate prediction and reports the
outcome as a ProviderResult. Output shape is left raw; normalization happens
in the pipeline.
"""

import asyncio
from typing import Optional, Protocol

import httpx
import structlog
from replicate.exceptions import ReplicateError

from pipeline.errors import ProviderError, ProviderTimeoutError
from pipeline.models import GenerationRequest, ProviderResult
from services.replicate_client import ReplicateClient, get_replicate_client
from services.video_model_params import build_model_input, get_model_capabilities

logger = structlog.get_logger(__name__)


class GenerationProvider(Protocol):
    async def generate(self, request: GenerationRequest) -> ProviderResult:
        ...


class ReplicateGenerationProvider:
    """
    Generation provider running scene requests as Replicate predictions.

    Example:
        >>> provider = ReplicateGenerationProvider()
        >>> result = await provider.generate(request)
        >>> result.status
        'succeeded'
    """

    def __init__(self, client: Optional[ReplicateClient] = None, timeout: Optional[float] = None):
        self.client = client or get_replicate_client()
        self.timeout = timeout
        self.logger = logger.bind(service="generation_provider")

    async def generate(self, request: GenerationRequest) -> ProviderResult:
        """
        Run one scene generation.

        Raises:
            ProviderTimeoutError: prediction did not finish before the deadline
            ProviderError: the API call itself failed
        """
        spec = get_model_capabilities(request.model_id)
        model_input = build_model_input(request, spec)

        self.logger.info(
            "provider_generation_started",
            model_id=request.model_id,
            has_continuity_image=bool(request.continuity_image),
            has_continuity_video=bool(request.continuity_video),
            reference_image_count=len(request.reference_images or []),
        )

        try:
            prediction = await self.client.run_prediction_async(
                request.model_id, model_input, timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"Prediction for {request.model_id} timed out"
            ) from e
        except (ReplicateError, httpx.HTTPError) as e:
            self.logger.error("provider_request_failed", model_id=request.model_id, error=str(e))
            raise ProviderError(
                f"Replicate request failed: {e}",
                details={"model_id": request.model_id},
            ) from e

        if prediction.status != "succeeded":
            self.logger.warning(
                "provider_generation_failed",
                prediction_id=prediction.id,
                status=prediction.status,
                error=prediction.error,
            )
            return ProviderResult(
                status="failed",
                output=prediction.output,
                provider_asset_id=prediction.id,
                error=str(prediction.error or f"prediction {prediction.status}"),
            )

        self.logger.info("provider_generation_succeeded", prediction_id=prediction.id)
        return ProviderResult(
            status="succeeded",
            output=prediction.output,
            provider_asset_id=prediction.id,
        )
