"""
Replicate API Wrapper

Wrapper around the Replicate client used for scene video generation and
reference image generation.

Key Features:
- Singleton pattern for client reuse
- Retry logic with exponential backoff on transient HTTP failures
- Prediction-based runs so the provider asset id is kept
- Deadline handling with best-effort cancellation
- Logging integration with structlog
"""

import os
import asyncio
import logging
from typing import Any, Optional

import replicate
from replicate.exceptions import ModelError, ReplicateError
from replicate.prediction import Prediction
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
import structlog
import httpx

from config import settings


logger = structlog.get_logger(__name__)


class ReplicateClient:
    """
    Wrapper for Replicate API interactions.

    Usage:
        client = get_replicate_client()
        prediction = await client.run_prediction_async(
            "google/veo-3.1",
            {"prompt": "a lighthouse at dusk", "duration": 8}
        )
        print(prediction.status, prediction.output)
    """

    _instance = None

    def __new__(cls, api_token: str = None, max_retries: int = None, timeout: int = None):
        """Singleton pattern to reuse client instance."""
        if cls._instance is None:
            cls._instance = super(ReplicateClient, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(
        self,
        api_token: str = None,
        max_retries: int = None,
        timeout: int = None,
    ):
        """
        Initialize Replicate client.

        Args:
            api_token: Replicate API token. If None, loads from settings
            max_retries: Maximum number of retry attempts (default: 3)
            timeout: Timeout in seconds for predictions (default: 600)
        """
        if self._initialized:
            return

        self.api_token = api_token or settings.REPLICATE_API_TOKEN or settings.REPLICATE_API_KEY
        if not self.api_token:
            raise ValueError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN "
                "environment variable or pass api_token parameter."
            )

        # Module-level replicate helpers read the token from the environment
        os.environ["REPLICATE_API_TOKEN"] = self.api_token

        self.max_retries = max_retries or settings.REPLICATE_MAX_RETRIES
        self.timeout = timeout or settings.REPLICATE_TIMEOUT

        self.logger = logger.bind(service="replicate_client")
        self.client = replicate.Client(api_token=self.api_token)

        self._initialized = True

        self.logger.info(
            "replicate_client_initialized",
            max_retries=self.max_retries,
            timeout=self.timeout,
        )

    async def run_model_async(
        self,
        model_id: str,
        input_params: dict,
    ) -> Any:
        """
        Run a model and return its output directly.

        Used where only the output matters (e.g. reference images).
        """
        self.logger.info(
            "running_model_async",
            model_id=model_id,
            input_params=input_params,
        )

        try:
            output = await self.client.async_run(
                model_id,
                input=input_params,
            )

            self.logger.info("model_async_run_success", model_id=model_id)
            return output

        except ModelError as e:
            self.logger.error(
                "model_async_prediction_failed",
                model_id=model_id,
                prediction_id=e.prediction.id if hasattr(e.prediction, "id") else None,
                error=str(e),
            )
            raise

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.NetworkError)),
        before_sleep=before_sleep_log(logger, logging.INFO),
    )
    async def create_prediction_async(self, model_id: str, input_params: dict) -> Prediction:
        """
        Create a prediction for an official model, retrying transient HTTP errors.
        """
        self.logger.info(
            "creating_prediction",
            model_id=model_id,
            input_keys=sorted(input_params.keys()),
        )

        try:
            prediction = await self.client.predictions.async_create(
                model=model_id,
                input=input_params,
            )
        except (httpx.HTTPStatusError, httpx.NetworkError) as e:
            self.logger.warning(
                "network_error_retrying",
                model_id=model_id,
                error=str(e),
            )
            raise

        self.logger.info(
            "prediction_created",
            prediction_id=prediction.id,
            status=prediction.status,
        )
        return prediction

    async def run_prediction_async(
        self,
        model_id: str,
        input_params: dict,
        timeout: Optional[float] = None,
    ) -> Prediction:
        """
        Create a prediction and wait for it to reach a terminal state.

        Args:
            model_id: Model identifier (e.g., "google/veo-3.1")
            input_params: Dictionary of input parameters
            timeout: Seconds to wait (uses instance timeout if None)

        Returns:
            Prediction in a terminal state (succeeded, failed or canceled)

        Raises:
            asyncio.TimeoutError: if the prediction does not finish in time
        """
        timeout = timeout or self.timeout
        prediction = await self.create_prediction_async(model_id, input_params)

        try:
            await asyncio.wait_for(prediction.async_wait(), timeout=timeout)
        except asyncio.TimeoutError:
            self.logger.error(
                "prediction_timeout",
                prediction_id=prediction.id,
                timeout=timeout,
            )
            await self.cancel_prediction_async(prediction)
            raise

        self.logger.info(
            "prediction_completed",
            prediction_id=prediction.id,
            status=prediction.status,
        )
        return prediction

    async def cancel_prediction_async(self, prediction: Prediction) -> None:
        """Cancel a running prediction; failures are logged only."""
        try:
            await prediction.async_cancel()
            self.logger.info("prediction_canceled", prediction_id=prediction.id)
        except (httpx.HTTPError, ReplicateError) as e:
            self.logger.warning(
                "cancel_failed",
                prediction_id=prediction.id,
                error=str(e),
            )


def get_replicate_client() -> ReplicateClient:
    """
    Get the singleton ReplicateClient instance.

    Returns:
        ReplicateClient instance
    """
    return ReplicateClient()
