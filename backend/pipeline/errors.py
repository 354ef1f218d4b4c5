"""
Error handling for the scene generation pipeline.

Provides structured error handling with:
- Categorized error codes for every failure kind the pipeline can hit
- User-friendly error messages
- Retry logic determination
- Detailed error context for debugging
"""

from enum import Enum
from typing import Optional, Dict, Any, List
import logging

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """
    Enumeration of all possible error codes in the pipeline.

    Organized by category:
    - Caller Errors: bad input or misuse of the pipeline
    - Pipeline Errors: failures in script, generation or stitching stages
    - External API Errors: third-party service failures
    - System Errors: storage and infrastructure issues
    """

    # Caller Errors (4xx)
    INVALID_INPUT = "INVALID_INPUT"
    CONTINUITY_CONFLICT = "CONTINUITY_CONFLICT"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
    SCENE_NOT_FOUND = "SCENE_NOT_FOUND"

    # Pipeline Errors (5xx)
    SCRIPT_FORMAT_ERROR = "SCRIPT_FORMAT_ERROR"
    SCRIPT_GENERATION_FAILED = "SCRIPT_GENERATION_FAILED"
    VIDEO_GENERATION_FAILED = "VIDEO_GENERATION_FAILED"
    UNRECOGNIZED_OUTPUT = "UNRECOGNIZED_OUTPUT"
    ALL_SCENES_FAILED = "ALL_SCENES_FAILED"
    STITCH_FAILED = "STITCH_FAILED"
    ASSET_DOWNLOAD_FAILED = "ASSET_DOWNLOAD_FAILED"

    # External API Errors
    SCRIPT_TIMEOUT = "SCRIPT_TIMEOUT"
    PROVIDER_TIMEOUT = "PROVIDER_TIMEOUT"
    REPLICATE_API_ERROR = "REPLICATE_API_ERROR"
    GEMINI_API_ERROR = "GEMINI_API_ERROR"
    API_RATE_LIMIT = "API_RATE_LIMIT"
    RUN_TIMEOUT = "RUN_TIMEOUT"

    # System Errors
    ARTIFACT_PERSIST_FAILED = "ARTIFACT_PERSIST_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    REDIS_CONNECTION_ERROR = "REDIS_CONNECTION_ERROR"


CLIENT_ERROR_CODES = [
    ErrorCode.INVALID_INPUT,
    ErrorCode.CONTINUITY_CONFLICT,
    ErrorCode.INVALID_STATUS_TRANSITION,
    ErrorCode.PROJECT_NOT_FOUND,
    ErrorCode.SCENE_NOT_FOUND,
]


class PipelineError(Exception):
    """
    Base exception for pipeline errors.

    Provides structured error information including:
    - Error code for categorization
    - Detailed message for logging
    - Context dictionary for debugging
    - User-friendly message for API responses

    Example:
        >>> raise PipelineError(
        ...     ErrorCode.STITCH_FAILED,
        ...     "No usable scene artifacts",
        ...     {"project_id": "abc"}
        ... )
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None
    ):
        """
        Initialize pipeline error.

        Args:
            code: Error code from ErrorCode enum
            message: Detailed error message for logging
            details: Additional context (scene numbers, ids, etc.)
            user_message: Optional override for user-friendly message
        """
        self.code = code
        self.message = message
        self.details = details or {}
        self._user_message = user_message
        super().__init__(self.message)

    @property
    def is_client_error(self) -> bool:
        return self.code in CLIENT_ERROR_CODES

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for API responses.

        Returns:
            Dictionary with error information
        """
        return {
            "error_code": self.code.value,
            "message": self.message,
            "details": self.details,
            "user_message": self.get_user_friendly_message()
        }

    def get_user_friendly_message(self) -> str:
        """
        Returns user-friendly error message.

        If a custom user message was provided, returns that.
        Otherwise, returns a predefined friendly message based on error code.
        """
        if self._user_message:
            return self._user_message

        friendly_messages = {
            # Caller Errors
            ErrorCode.INVALID_INPUT: "Please check your input and try again.",
            ErrorCode.CONTINUITY_CONFLICT: "Only one continuity source can be used per scene.",
            ErrorCode.INVALID_STATUS_TRANSITION: "The project cannot move to that state right now.",
            ErrorCode.PROJECT_NOT_FOUND: "Project not found.",
            ErrorCode.SCENE_NOT_FOUND: "Scene not found in this project.",

            # Pipeline Errors
            ErrorCode.SCRIPT_FORMAT_ERROR: "Could not read scenes from the provided script. Please check its format.",
            ErrorCode.SCRIPT_GENERATION_FAILED: "Failed to write a script for this concept. Please try again.",
            ErrorCode.VIDEO_GENERATION_FAILED: "Failed to generate a scene. Please try again or contact support.",
            ErrorCode.UNRECOGNIZED_OUTPUT: "The video service returned an unexpected result. Please try again.",
            ErrorCode.ALL_SCENES_FAILED: "Every scene failed to generate. Please try again.",
            ErrorCode.STITCH_FAILED: "Failed to assemble the final video. Your scenes are saved; please retry.",
            ErrorCode.ASSET_DOWNLOAD_FAILED: "Failed to download a generated asset. Please try again.",

            # External API Errors
            ErrorCode.SCRIPT_TIMEOUT: "Script writing took too long. Please try again.",
            ErrorCode.PROVIDER_TIMEOUT: "Video generation timed out. Please try again.",
            ErrorCode.REPLICATE_API_ERROR: "Video generation service temporarily unavailable. Please try again.",
            ErrorCode.GEMINI_API_ERROR: "AI service temporarily unavailable. Please try again in a moment.",
            ErrorCode.API_RATE_LIMIT: "Too many requests. Please wait a moment and try again.",
            ErrorCode.RUN_TIMEOUT: "Generation took too long and was stopped. Completed scenes were kept.",

            # System Errors
            ErrorCode.ARTIFACT_PERSIST_FAILED: "Failed to save a generated video. Please try again.",
            ErrorCode.STORAGE_ERROR: "Storage error occurred. Please try again or contact support.",
            ErrorCode.DATABASE_ERROR: "Database error occurred. Please try again or contact support.",
            ErrorCode.REDIS_CONNECTION_ERROR: "System temporarily unavailable. Please try again.",
        }

        return friendly_messages.get(
            self.code,
            "An error occurred. Please try again or contact support."
        )

    def log_error(self) -> None:
        """
        Log error with appropriate level and context.

        Client errors and retryable errors are warnings, everything else is an error.
        """
        log_data = {
            "error_code": self.code.value,
            "message": self.message,
            "details": self.details
        }

        if self.is_client_error:
            logger.warning(f"Client error: {log_data}")
        elif should_retry(self):
            logger.warning(f"Retryable error: {log_data}")
        else:
            logger.error(f"Pipeline error: {log_data}")

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


def should_retry(error: Exception) -> bool:
    """
    Determines if an error is transient and should be retried.

    Args:
        error: Exception to check

    Returns:
        True if error is transient and should be retried, False otherwise

    Example:
        >>> should_retry(PipelineError(ErrorCode.PROVIDER_TIMEOUT, "slow"))
        True
        >>> should_retry(PipelineError(ErrorCode.CONTINUITY_CONFLICT, "two hints"))
        False
    """
    transient_error_codes = [
        ErrorCode.SCRIPT_TIMEOUT,
        ErrorCode.PROVIDER_TIMEOUT,
        ErrorCode.REPLICATE_API_ERROR,
        ErrorCode.GEMINI_API_ERROR,
        ErrorCode.API_RATE_LIMIT,
        ErrorCode.REDIS_CONNECTION_ERROR,
        ErrorCode.DATABASE_ERROR,
        ErrorCode.STORAGE_ERROR,
        ErrorCode.ARTIFACT_PERSIST_FAILED,
        ErrorCode.ASSET_DOWNLOAD_FAILED,
    ]

    if isinstance(error, PipelineError):
        return error.code in transient_error_codes

    if isinstance(error, (TimeoutError, ConnectionError)):
        return True

    return False


def get_retry_delay(attempt: int, base_delay: float = 2.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay for retry attempts.

    Uses formula: min(base_delay * (2 ** attempt), max_delay)

    Example:
        >>> get_retry_delay(0)
        2.0
        >>> get_retry_delay(10)
        60.0
    """
    delay = base_delay * (2 ** attempt)
    return min(delay, max_delay)


class ValidationError(PipelineError):
    """Error for input validation failures."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        error_details = details or {}
        if field:
            error_details["field"] = field

        super().__init__(ErrorCode.INVALID_INPUT, message, error_details)


class ScriptFormatError(PipelineError):
    """Raised when text was classified as a script but no scenes could be extracted."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(ErrorCode.SCRIPT_FORMAT_ERROR, message, details)


class ScriptTimeoutError(PipelineError):
    """Raised when the script-writing service does not answer before its deadline."""

    def __init__(self, timeout_seconds: float):
        super().__init__(
            ErrorCode.SCRIPT_TIMEOUT,
            f"Script writer did not respond within {timeout_seconds}s",
            {"timeout_seconds": timeout_seconds}
        )


class ProviderError(PipelineError):
    """Raised when the generation provider reports a failed prediction."""

    def __init__(self, message: str, scene_number: Optional[int] = None, details: Optional[Dict] = None):
        error_details = details or {}
        if scene_number is not None:
            error_details["scene_number"] = scene_number
        super().__init__(ErrorCode.VIDEO_GENERATION_FAILED, message, error_details)


class ProviderTimeoutError(PipelineError):
    """Raised when a provider call exceeds its deadline."""

    def __init__(self, message: str, scene_number: Optional[int] = None):
        details = {"scene_number": scene_number} if scene_number is not None else {}
        super().__init__(ErrorCode.PROVIDER_TIMEOUT, message, details)


class UnrecognizedOutputShape(PipelineError):
    """Raised when provider output matches none of the known shapes."""

    def __init__(self, output: Any):
        super().__init__(
            ErrorCode.UNRECOGNIZED_OUTPUT,
            f"Unrecognized provider output shape: {type(output).__name__}",
            {"output_type": type(output).__name__, "output_preview": repr(output)[:200]}
        )


class ArtifactPersistError(PipelineError):
    """Raised when an artifact could not be written to durable storage."""

    def __init__(self, message: str, logical_path: Optional[str] = None):
        details = {"logical_path": logical_path} if logical_path else {}
        super().__init__(ErrorCode.ARTIFACT_PERSIST_FAILED, message, details)


class StitchError(PipelineError):
    """Raised when scene clips cannot be assembled into the final video."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(ErrorCode.STITCH_FAILED, message, details)


class AggregateSceneFailure(PipelineError):
    """Raised in parallel mode when every scene failed."""

    def __init__(self, failed_scenes: List[int], errors: List[str]):
        self.failed_scenes = failed_scenes
        self.errors = errors
        super().__init__(
            ErrorCode.ALL_SCENES_FAILED,
            f"All {len(failed_scenes)} scenes failed: {'; '.join(errors)}",
            {"failed_scenes": failed_scenes, "errors": errors}
        )


class ContinuityConflictError(PipelineError):
    """Raised when a generation request carries more than one continuity source."""

    def __init__(self, populated: List[str]):
        super().__init__(
            ErrorCode.CONTINUITY_CONFLICT,
            f"At most one of continuity_image, continuity_video, reference_images may be set; got {populated}",
            {"populated": populated}
        )


class InvalidStatusTransition(PipelineError):
    """Raised when a project status change is not allowed."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            ErrorCode.INVALID_STATUS_TRANSITION,
            f"Cannot move project from '{current}' to '{requested}'",
            {"current": current, "requested": requested}
        )


class ProjectNotFound(PipelineError):
    """Raised when a project id does not exist."""

    def __init__(self, project_id: str):
        super().__init__(
            ErrorCode.PROJECT_NOT_FOUND,
            f"Project {project_id} not found",
            {"project_id": project_id}
        )


class SceneNotFound(PipelineError):
    """Raised when a scene index is outside the project's resolved script."""

    def __init__(self, project_id: str, scene_index: int):
        super().__init__(
            ErrorCode.SCENE_NOT_FOUND,
            f"Scene {scene_index} not found in project {project_id}",
            {"project_id": project_id, "scene_index": scene_index}
        )


class RunTimeoutError(PipelineError):
    """Raised when a whole generation run exceeds its deadline."""

    def __init__(self, timeout_seconds: float):
        super().__init__(
            ErrorCode.RUN_TIMEOUT,
            f"Generation run exceeded {timeout_seconds}s",
            {"timeout_seconds": timeout_seconds}
        )
