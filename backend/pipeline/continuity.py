"""
Continuity tracking between consecutive scenes.

ContinuityState is immutable: each successful scene produces a new state via
advance(), and every GenerationRequest is built from scratch so no hint from a
previous scene can leak into the next one.
"""

from dataclasses import dataclass
from typing import List, Optional

import structlog

from pipeline.models import GenerationRequest, ProjectConfig, SceneArtifact, ScenePlan

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ContinuityState:
    last_frame_url: Optional[str] = None
    last_clip_handle: Optional[str] = None


EMPTY_STATE = ContinuityState()


@dataclass(frozen=True)
class ContinuityOptions:
    continuous: bool = False
    use_reference_frame: bool = False


def advance(state: ContinuityState, artifact: SceneArtifact) -> ContinuityState:
    """Return the state the next scene should see after ``artifact`` succeeded."""
    return ContinuityState(
        last_frame_url=artifact.last_frame_url,
        last_clip_handle=artifact.clip_handle,
    )


def select_continuity(
    scene: ScenePlan,
    state: ContinuityState,
    options: ContinuityOptions,
    reference_images: Optional[List[str]] = None,
    seed_images: Optional[List[str]] = None,
) -> dict:
    """
    Decide which single continuity source (if any) a scene should carry.

    Args:
        scene: Scene being generated
        state: Continuity state left by the previous scene
        options: Run-level continuity switches
        reference_images: Images supplied explicitly by the caller
        seed_images: Reference images generated from the script's key elements,
            only offered to a scene with no prior frame

    Returns:
        Dict with at most one of continuity_image / continuity_video / reference_images
    """
    if scene.extend_previous and state.last_clip_handle:
        if reference_images:
            logger.warning(
                "reference_images_dropped_for_extension",
                scene_number=scene.scene_number,
                dropped=len(reference_images),
            )
        return {"continuity_video": state.last_clip_handle}

    if state.last_frame_url and (options.continuous or options.use_reference_frame):
        return {"continuity_image": state.last_frame_url}

    if reference_images:
        return {"reference_images": list(reference_images)}

    if seed_images and not state.last_frame_url:
        return {"reference_images": list(seed_images)}

    return {}


def build_request(
    scene: ScenePlan,
    state: ContinuityState,
    options: ContinuityOptions,
    config: ProjectConfig,
    model_id: str,
    reference_images: Optional[List[str]] = None,
    seed_images: Optional[List[str]] = None,
) -> GenerationRequest:
    """Build a fresh GenerationRequest for one scene."""
    continuity = select_continuity(scene, state, options, reference_images, seed_images)

    return GenerationRequest(
        prompt=scene.prompt,
        target_duration=scene.duration,
        model_id=model_id,
        aspect_ratio=config.aspect_ratio,
        style=config.style,
        mood=config.mood,
        color_palette=config.color_palette,
        pacing=config.pacing,
        negative_prompt=config.negative_prompt,
        seed=config.seed,
        **continuity,
    )
