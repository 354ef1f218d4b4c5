"""
Pydantic models shared across the scene generation pipeline.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pipeline.errors import ContinuityConflictError


def coerce_flag(value: Any) -> bool:
    """Read a boolean out of loosely-typed JSON config ("true", 1, True, ...)."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return False


class ScenePlan(BaseModel):
    """One scene of a resolved script."""

    scene_number: int = Field(..., ge=1, description="1-based position in the script")
    prompt: str = Field(..., description="Generation prompt for this scene")
    duration: float = Field(..., gt=0, description="Duration in seconds")
    start_time: float = Field(default=0.0, ge=0)
    end_time: float = Field(default=0.0, ge=0)
    extend_previous: bool = Field(default=False, description="Extend the prior scene's clip instead of starting fresh")


class ResolvedScript(BaseModel):
    """Output of the script resolver: an ordered scene list plus script-level hints."""

    overall_prompt: str
    scenes: List[ScenePlan]
    key_elements: List[str] = Field(default_factory=list)
    style_hints: Dict[str, str] = Field(default_factory=dict)
    source: Literal["json", "fenced_json", "scene_markers", "paragraphs", "writer", "planner"]

    @property
    def total_duration(self) -> float:
        return sum(scene.duration for scene in self.scenes)


class SceneDraft(BaseModel):
    """A scene as returned by the script-writing service; timing may be partial."""

    scene_number: int = Field(..., description="1-based scene position")
    prompt: str = Field(..., description="Detailed visual prompt for the scene")
    duration: Optional[float] = Field(default=None, description="Scene length in seconds")
    start_time: Optional[float] = Field(default=None, description="Scene start in seconds")
    end_time: Optional[float] = Field(default=None, description="Scene end in seconds")


class ScriptDraft(BaseModel):
    """Script-writing service response."""

    overall_prompt: str = Field(..., description="One-paragraph summary of the whole video")
    scenes: List[SceneDraft] = Field(..., description="Ordered scenes")
    key_elements: List[str] = Field(default_factory=list, description="Recurring visual elements, props and characters")


class ReconciliationReport(BaseModel):
    script_total: float
    target: float
    scale_factor: float
    action: Literal["unchanged", "scaled_down", "under_filled"]


class ProjectConfig(BaseModel):
    """
    Typed view over a project's loosely-structured config map.

    Keys are stored camelCase; unknown keys are preserved.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    duration: float = Field(default=30.0, gt=0)
    video_model_id: Optional[str] = Field(default=None, alias="videoModelId")
    aspect_ratio: str = Field(default="16:9", alias="aspectRatio")
    style: Optional[str] = None
    mood: Optional[str] = None
    color_palette: Optional[str] = Field(default=None, alias="colorPalette")
    pacing: Optional[str] = None
    negative_prompt: Optional[str] = Field(default=None, alias="negativePrompt")
    seed: Optional[int] = None
    use_reference_frame: bool = Field(default=False, alias="useReferenceFrame")
    continuous: bool = False
    generate_reference_images: bool = Field(default=False, alias="generateReferenceImages")
    execution_mode: Optional[Literal["sequential", "parallel"]] = Field(default=None, alias="executionMode")
    audio_url: Optional[str] = Field(default=None, alias="audioUrl")

    @field_validator("use_reference_frame", "continuous", "generate_reference_images", mode="before")
    @classmethod
    def _loose_bool(cls, value: Any) -> bool:
        return coerce_flag(value)


class GenerationRequest(BaseModel):
    """
    Everything the generation provider needs for a single scene.

    At most one of continuity_image, continuity_video and reference_images
    may be populated.
    """

    prompt: str
    target_duration: float = Field(..., gt=0)
    model_id: str
    aspect_ratio: str = "16:9"
    style: Optional[str] = None
    mood: Optional[str] = None
    color_palette: Optional[str] = None
    pacing: Optional[str] = None
    negative_prompt: Optional[str] = None
    seed: Optional[int] = None
    continuity_image: Optional[str] = Field(default=None, description="URL of the previous scene's last frame")
    continuity_video: Optional[str] = Field(default=None, description="Provider handle of the clip to extend")
    reference_images: Optional[List[str]] = Field(default=None, description="Consistency image set")

    @model_validator(mode="after")
    def _single_continuity_source(self) -> "GenerationRequest":
        populated = [
            name for name in ("continuity_image", "continuity_video", "reference_images")
            if getattr(self, name)
        ]
        if len(populated) > 1:
            raise ContinuityConflictError(populated)
        return self


class ProviderResult(BaseModel):
    status: Literal["succeeded", "failed"]
    output: Any = None
    provider_asset_id: Optional[str] = None
    clip_handle: Optional[str] = None
    error: Optional[str] = None


class SceneArtifact(BaseModel):
    scene_number: int
    duration: float
    video_url: Optional[str] = None
    first_frame_url: Optional[str] = None
    last_frame_url: Optional[str] = None
    provider_asset_id: Optional[str] = None
    clip_handle: Optional[str] = None


class GenerationOptions(BaseModel):
    """Per-run switches; unset values fall back to project config, then settings."""

    execution_mode: Optional[Literal["sequential", "parallel"]] = None
    continuous: Optional[bool] = None
    use_reference_frame: Optional[bool] = None
    extend_previous: bool = False
    reference_images: Optional[List[str]] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)

    @field_validator("continuous", "use_reference_frame", mode="before")
    @classmethod
    def _loose_optional_bool(cls, value: Any) -> Optional[bool]:
        if value is None:
            return None
        return coerce_flag(value)


class GenerationOutcome(BaseModel):
    status: Literal["completed", "failed"]
    final_video_url: Optional[str] = None
    scene_urls: List[str] = Field(default_factory=list)
    failed_scenes: Optional[List[int]] = None


class SingleSceneOutcome(BaseModel):
    video_url: str
    first_frame_url: Optional[str] = None
    last_frame_url: Optional[str] = None
