"""
Tests for pipeline error types and retry helpers.
"""

import pytest

from pipeline.errors import (
    AggregateSceneFailure,
    ArtifactPersistError,
    ContinuityConflictError,
    ErrorCode,
    InvalidStatusTransition,
    PipelineError,
    ProjectNotFound,
    ProviderTimeoutError,
    RunTimeoutError,
    ScriptTimeoutError,
    StitchError,
    get_retry_delay,
    should_retry,
)


class TestPipelineError:
    """PipelineError structure and API payload."""

    def test_to_dict_has_code_message_details_and_user_message(self):
        error = PipelineError(ErrorCode.STITCH_FAILED, "ffmpeg exploded", {"project_id": "p1"})
        payload = error.to_dict()

        assert payload["error_code"] == "STITCH_FAILED"
        assert payload["message"] == "ffmpeg exploded"
        assert payload["details"] == {"project_id": "p1"}
        assert "scenes are saved" in payload["user_message"]

    def test_custom_user_message_wins(self):
        error = PipelineError(ErrorCode.STORAGE_ERROR, "boom", user_message="Try later")
        assert error.get_user_friendly_message() == "Try later"

    def test_str_includes_code(self):
        assert str(StitchError("no clips")) == "STITCH_FAILED: no clips"

    def test_client_errors(self):
        assert ProjectNotFound("p1").is_client_error
        assert InvalidStatusTransition("draft", "completed").is_client_error
        assert ContinuityConflictError(["continuity_image", "reference_images"]).is_client_error
        assert not StitchError("x").is_client_error


class TestSubclasses:
    def test_aggregate_failure_keeps_scene_numbers(self):
        error = AggregateSceneFailure([1, 2], ["timeout", "bad output"])
        assert error.failed_scenes == [1, 2]
        assert error.errors == ["timeout", "bad output"]
        assert error.code == ErrorCode.ALL_SCENES_FAILED
        assert "timeout; bad output" in error.message

    def test_timeouts_have_distinct_codes(self):
        assert ScriptTimeoutError(300).code == ErrorCode.SCRIPT_TIMEOUT
        assert ProviderTimeoutError("slow", scene_number=2).code == ErrorCode.PROVIDER_TIMEOUT
        assert RunTimeoutError(3600).code == ErrorCode.RUN_TIMEOUT

    def test_artifact_persist_error_records_path(self):
        error = ArtifactPersistError("denied", "projects/p1/scenes/scene-1.mp4")
        assert error.details == {"logical_path": "projects/p1/scenes/scene-1.mp4"}


class TestRetryHelpers:
    @pytest.mark.parametrize("error,expected", [
        (ProviderTimeoutError("slow"), True),
        (ScriptTimeoutError(10), True),
        (ArtifactPersistError("s3 down"), True),
        (ContinuityConflictError(["a", "b"]), False),
        (StitchError("bad clip"), False),
        (TimeoutError(), True),
        (ValueError("nope"), False),
    ])
    def test_should_retry(self, error, expected):
        assert should_retry(error) is expected

    def test_retry_delay_backs_off_and_caps(self):
        assert get_retry_delay(0) == 2.0
        assert get_retry_delay(1) == 4.0
        assert get_retry_delay(2) == 8.0
        assert get_retry_delay(10) == 60.0
