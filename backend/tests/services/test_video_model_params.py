"""
Tests for per-model input translation.
"""

import pytest

from pipeline.models import GenerationRequest
from services.video_model_params import (
    PROMPT_MAX_LENGTH,
    SORA_2_CAPABILITIES,
    VEO_31_CAPABILITIES,
    VideoModelCapabilities,
    build_model_input,
    fit_duration,
    get_model_capabilities,
)


def request(**overrides):
    fields = dict(prompt="A lighthouse at dusk", target_duration=8, model_id="google/veo-3.1")
    fields.update(overrides)
    return GenerationRequest(**fields)


class TestFitDuration:
    @pytest.mark.parametrize("requested,expected", [(8, 8), (12, 8), (5, 4), (7, 6), (3, 4)])
    def test_veo_snaps_to_allowed(self, requested, expected):
        assert fit_duration(requested, VEO_31_CAPABILITIES) == expected

    def test_continuous_range_only_clamps(self):
        spec = VideoModelCapabilities(model_id="x/y", display_name="XY", max_duration_seconds=10)
        assert fit_duration(7.5, spec) == 7.5
        assert fit_duration(15, spec) == 10


class TestBuildModelInput:
    def test_veo_basic_input(self):
        model_input = build_model_input(request(aspect_ratio="9:16", seed=3, negative_prompt="text"))

        assert model_input["prompt"] == "A lighthouse at dusk"
        assert model_input["duration"] == 8
        assert isinstance(model_input["duration"], int)
        assert model_input["aspect_ratio"] == "9:16"
        assert model_input["seed"] == 3
        assert model_input["negative_prompt"] == "text"
        assert model_input["resolution"] == "1080p"

    def test_style_appended_to_prompt(self):
        model_input = build_model_input(request(style="noir", mood="tense"))
        assert model_input["prompt"] == "A lighthouse at dusk. noir style, tense mood"

    def test_long_prompt_truncated_keeping_style(self):
        model_input = build_model_input(request(prompt="x" * 800, style="noir"))
        assert len(model_input["prompt"]) <= PROMPT_MAX_LENGTH
        assert model_input["prompt"].endswith("noir style")

    def test_continuity_image_uses_image_param(self):
        model_input = build_model_input(request(continuity_image="https://frame.jpg"))
        assert model_input["image"] == "https://frame.jpg"

    def test_reference_images_on_veo(self):
        model_input = build_model_input(request(reference_images=["https://a.png", "https://b.png"]))
        assert model_input["reference_images"] == ["https://a.png", "https://b.png"]
        assert "image" not in model_input

    def test_unsupported_extension_is_dropped(self):
        model_input = build_model_input(request(continuity_video="https://clip.mp4"))
        assert "https://clip.mp4" not in model_input.values()

    def test_sora_parameters(self):
        model_input = build_model_input(
            request(model_id="openai/sora-2", target_duration=10, aspect_ratio="9:16",
                    reference_images=["https://a.png"], seed=4),
            SORA_2_CAPABILITIES,
        )

        assert model_input["seconds"] == 8
        assert "duration" not in model_input
        assert model_input["aspect_ratio"] == "portrait"
        assert model_input["input_reference"] == "https://a.png"
        assert "seed" not in model_input

    def test_unsupported_ratio_falls_back(self):
        assert build_model_input(request(aspect_ratio="4:3"))["aspect_ratio"] == "16:9"


def test_unknown_model_gets_defaults():
    spec = get_model_capabilities("acme/video-1")
    assert spec.model_id == "acme/video-1"
    assert spec.max_duration_seconds == 10.0
    assert spec.image_param == "image"
