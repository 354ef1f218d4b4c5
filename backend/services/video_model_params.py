"""
Video model capabilities and input translation

Per-model capabilities for the Replicate video models the pipeline can target,
and translation of a GenerationRequest into each model's input dict.

Models differ in:
- which durations they accept (clamped and snapped here)
- how aspect ratio is expressed
- which parameter carries a first-frame image, a clip to extend, or a
  reference image set
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
import structlog

from pipeline.models import GenerationRequest

logger = structlog.get_logger(__name__)

PROMPT_MAX_LENGTH = 500


class VideoModelCapabilities(BaseModel):
    """Capabilities and constraints for a video generation model"""

    model_id: str
    display_name: str
    max_duration_seconds: float = Field(default=10.0)
    allowed_durations: Optional[List[float]] = Field(default=None, description="Discrete durations the model accepts")
    duration_param: str = Field(default="duration", description="Input key carrying the clip length")
    aspect_ratio_style: str = Field(default="ratio", description="'ratio' (16:9) or 'orientation' (landscape/portrait)")
    supported_aspect_ratios: List[str] = Field(default=["16:9", "9:16"])

    image_param: Optional[str] = Field(default="image", description="First-frame image input key")
    extension_param: Optional[str] = Field(default=None, description="Input key for a clip to extend")
    reference_images_param: Optional[str] = Field(default=None, description="Input key for a reference image set")

    supports_negative_prompt: bool = False
    supports_seed: bool = False
    extra_input: Dict[str, Any] = Field(default_factory=dict, description="Fixed inputs always sent")

    cost_per_second: float = Field(default=0.10, description="USD per second of video")


VEO_31_CAPABILITIES = VideoModelCapabilities(
    model_id="google/veo-3.1",
    display_name="Veo 3.1",
    max_duration_seconds=8.0,
    allowed_durations=[4.0, 6.0, 8.0],
    reference_images_param="reference_images",
    supports_negative_prompt=True,
    supports_seed=True,
    extra_input={"resolution": "1080p", "generate_audio": True},
    cost_per_second=0.20,
)

VEO_3_CAPABILITIES = VideoModelCapabilities(
    model_id="google/veo-3",
    display_name="Veo 3",
    max_duration_seconds=8.0,
    allowed_durations=[4.0, 6.0, 8.0],
    supports_negative_prompt=True,
    supports_seed=True,
    extra_input={"resolution": "1080p", "generate_audio": True},
    cost_per_second=0.20,
)

VEO_3_FAST_CAPABILITIES = VideoModelCapabilities(
    model_id="google/veo-3-fast",
    display_name="Veo 3 Fast",
    max_duration_seconds=8.0,
    allowed_durations=[4.0, 6.0, 8.0],
    supports_negative_prompt=True,
    supports_seed=True,
    extra_input={"enhance_prompt": True},
    cost_per_second=0.15,
)

SORA_2_CAPABILITIES = VideoModelCapabilities(
    model_id="openai/sora-2",
    display_name="Sora 2",
    max_duration_seconds=12.0,
    allowed_durations=[4.0, 8.0, 12.0],
    duration_param="seconds",
    aspect_ratio_style="orientation",
    image_param="input_reference",
    cost_per_second=0.10,
)

MODEL_CAPABILITIES: Dict[str, VideoModelCapabilities] = {
    spec.model_id: spec
    for spec in (VEO_31_CAPABILITIES, VEO_3_CAPABILITIES, VEO_3_FAST_CAPABILITIES, SORA_2_CAPABILITIES)
}


def get_model_capabilities(model_id: str) -> VideoModelCapabilities:
    """Look up a model's capabilities; unknown models get generic defaults."""
    spec = MODEL_CAPABILITIES.get(model_id)
    if spec is None:
        logger.info("video_model_unknown_using_defaults", model_id=model_id)
        spec = VideoModelCapabilities(model_id=model_id, display_name=model_id)
    return spec


def fit_duration(requested: float, spec: VideoModelCapabilities) -> float:
    """Clamp to the model maximum, then snap to the nearest allowed duration."""
    duration = min(requested, spec.max_duration_seconds)
    if spec.allowed_durations:
        duration = min(spec.allowed_durations, key=lambda allowed: (abs(allowed - duration), allowed))
    return duration


def _aspect_ratio(value: str, spec: VideoModelCapabilities) -> str:
    if spec.aspect_ratio_style == "orientation":
        try:
            width, height = (float(part) for part in value.split(":"))
        except ValueError:
            return "landscape"
        return "portrait" if height > width else "landscape"
    return value if value in spec.supported_aspect_ratios else spec.supported_aspect_ratios[0]


def _styled_prompt(request: GenerationRequest) -> str:
    styling = ", ".join(
        text for text in (
            f"{request.style} style" if request.style else None,
            f"{request.mood} mood" if request.mood else None,
            f"{request.color_palette} color palette" if request.color_palette else None,
            f"{request.pacing} pacing" if request.pacing else None,
        ) if text
    )
    suffix = f". {styling}" if styling else ""
    room = max(PROMPT_MAX_LENGTH - len(suffix), 0)
    return request.prompt[:room].rstrip() + suffix


def build_model_input(request: GenerationRequest, spec: Optional[VideoModelCapabilities] = None) -> Dict[str, Any]:
    """
    Translate a GenerationRequest into the model's Replicate input dict.

    Continuity sources the model cannot accept are logged and left out.
    """
    spec = spec or get_model_capabilities(request.model_id)
    duration = fit_duration(request.target_duration, spec)

    model_input: Dict[str, Any] = {
        "prompt": _styled_prompt(request),
        "aspect_ratio": _aspect_ratio(request.aspect_ratio, spec),
        spec.duration_param: int(duration) if float(duration).is_integer() else duration,
    }
    model_input.update(spec.extra_input)

    if spec.supports_negative_prompt and request.negative_prompt:
        model_input["negative_prompt"] = request.negative_prompt
    if spec.supports_seed and request.seed is not None:
        model_input["seed"] = request.seed

    if request.continuity_image:
        if spec.image_param:
            model_input[spec.image_param] = request.continuity_image
        else:
            logger.warning("continuity_image_unsupported", model_id=spec.model_id)
    elif request.continuity_video:
        if spec.extension_param:
            model_input[spec.extension_param] = request.continuity_video
        else:
            logger.warning("clip_extension_unsupported", model_id=spec.model_id)
    elif request.reference_images:
        if spec.reference_images_param:
            model_input[spec.reference_images_param] = list(request.reference_images)
        elif spec.image_param:
            # Fall back to anchoring on the first reference image
            model_input[spec.image_param] = request.reference_images[0]
        else:
            logger.warning("reference_images_unsupported", model_id=spec.model_id)

    if duration != request.target_duration:
        logger.info(
            "scene_duration_fitted",
            model_id=spec.model_id,
            requested=request.target_duration,
            fitted=duration,
        )

    return model_input
