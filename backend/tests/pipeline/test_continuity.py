"""
Tests for continuity selection and request building.
"""

import dataclasses

import pytest

from pipeline.continuity import (
    EMPTY_STATE,
    ContinuityOptions,
    ContinuityState,
    advance,
    build_request,
    select_continuity,
)
from pipeline.errors import ContinuityConflictError
from pipeline.models import GenerationRequest, ProjectConfig, SceneArtifact, ScenePlan

FRAME = "https://bucket/frames/scene-1-last.jpg"
CLIP = "https://bucket/scenes/scene-1.mp4"
REFS = ["https://img/1.png", "https://img/2.png"]


def scene(number=2, extend_previous=False):
    return ScenePlan(scene_number=number, prompt="the chase continues", duration=6, extend_previous=extend_previous)


PRIOR = ContinuityState(last_frame_url=FRAME, last_clip_handle=CLIP)


class TestSelectContinuity:
    def test_extend_previous_wins_and_drops_reference_images(self):
        result = select_continuity(
            scene(extend_previous=True), PRIOR, ContinuityOptions(continuous=True), reference_images=REFS
        )
        assert result == {"continuity_video": CLIP}

    def test_extend_previous_without_clip_falls_through(self):
        state = ContinuityState(last_frame_url=FRAME)
        result = select_continuity(scene(extend_previous=True), state, ContinuityOptions(continuous=True))
        assert result == {"continuity_image": FRAME}

    def test_continuous_uses_last_frame(self):
        assert select_continuity(scene(), PRIOR, ContinuityOptions(continuous=True)) == {"continuity_image": FRAME}

    def test_use_reference_frame_uses_last_frame(self):
        result = select_continuity(scene(), PRIOR, ContinuityOptions(use_reference_frame=True))
        assert result == {"continuity_image": FRAME}

    def test_continuity_off_gives_nothing(self):
        assert select_continuity(scene(), PRIOR, ContinuityOptions()) == {}

    def test_explicit_reference_images_when_no_hint_wins(self):
        result = select_continuity(scene(), PRIOR, ContinuityOptions(), reference_images=REFS)
        assert result == {"reference_images": REFS}

    def test_seed_images_only_without_prior_frame(self):
        options = ContinuityOptions()
        assert select_continuity(scene(1), EMPTY_STATE, options, seed_images=REFS) == {"reference_images": REFS}
        assert select_continuity(scene(2), PRIOR, options, seed_images=REFS) == {}


class TestContinuityState:
    def test_advance_returns_new_state(self):
        artifact = SceneArtifact(
            scene_number=1, duration=6, video_url=CLIP, last_frame_url=FRAME, clip_handle="pred-1"
        )
        new_state = advance(EMPTY_STATE, artifact)

        assert new_state == ContinuityState(last_frame_url=FRAME, last_clip_handle="pred-1")
        assert EMPTY_STATE.last_frame_url is None

    def test_state_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            PRIOR.last_frame_url = "https://other"

    def test_advance_clears_frame_when_extraction_failed(self):
        artifact = SceneArtifact(scene_number=2, duration=6, video_url=CLIP, clip_handle=CLIP)
        assert advance(PRIOR, artifact).last_frame_url is None


class TestBuildRequest:
    def test_carries_project_style(self):
        config = ProjectConfig(style="noir", mood="tense", aspectRatio="9:16", seed=7)
        request = build_request(scene(), PRIOR, ContinuityOptions(continuous=True), config, "google/veo-3.1")

        assert request.prompt == "the chase continues"
        assert request.target_duration == 6
        assert request.aspect_ratio == "9:16"
        assert request.style == "noir"
        assert request.seed == 7
        assert request.continuity_image == FRAME
        assert request.continuity_video is None
        assert request.reference_images is None

    def test_fresh_request_never_inherits_previous_hints(self):
        config = ProjectConfig()
        first = build_request(scene(), PRIOR, ContinuityOptions(continuous=True), config, "m")
        second = build_request(scene(3), EMPTY_STATE, ContinuityOptions(continuous=True), config, "m")

        assert first.continuity_image == FRAME
        assert second.continuity_image is None


class TestGenerationRequestValidation:
    def test_two_continuity_sources_rejected(self):
        with pytest.raises(ContinuityConflictError):
            GenerationRequest(
                prompt="p", target_duration=4, model_id="m",
                continuity_image=FRAME, reference_images=REFS,
            )

    def test_single_source_accepted(self):
        request = GenerationRequest(prompt="p", target_duration=4, model_id="m", continuity_video=CLIP)
        assert request.continuity_video == CLIP


class TestProjectConfigFlags:
    @pytest.mark.parametrize("value", [True, "true", "TRUE", 1, "1", "yes"])
    def test_truthy_values(self, value):
        assert ProjectConfig(continuous=value).continuous is True

    @pytest.mark.parametrize("value", [False, "false", 0, None, "", "no"])
    def test_falsy_values(self, value):
        assert ProjectConfig(useReferenceFrame=value).use_reference_frame is False
