"""
Persistence contract used by the pipeline.

The DynamoDB implementation lives in project_models.py; anything honouring
ProjectRepository can stand in for it.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from pipeline.errors import InvalidStatusTransition

PROJECT_STATUSES = ("draft", "generating", "completed", "failed")

ALLOWED_TRANSITIONS = {
    "draft": {"generating"},
    "generating": {"completed", "failed"},
    "failed": {"generating"},
    "completed": {"generating"},
}

# camelCase field names accepted by upsert_scene
SCENE_FIELDS = (
    "prompt",
    "duration",
    "startTime",
    "endTime",
    "videoUrl",
    "firstFrameUrl",
    "lastFrameUrl",
    "providerAssetId",
)


def check_status_transition(current: str, requested: str) -> None:
    """
    Raise InvalidStatusTransition unless ``current -> requested`` is allowed.

    Re-asserting the current status is always allowed.
    """
    if requested not in PROJECT_STATUSES:
        raise InvalidStatusTransition(current, requested)
    if current == requested:
        return
    if requested not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransition(current, requested)


def merge_config(config: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a config patch; keys whose value is None are removed."""
    merged = dict(config)
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


class ProjectRecord(BaseModel):
    project_id: str
    user_id: Optional[str] = None
    concept_prompt: str
    status: str = "draft"
    config: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SceneRecord(BaseModel):
    project_id: str
    scene_number: int
    prompt: Optional[str] = None
    duration: Optional[float] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    video_url: Optional[str] = None
    first_frame_url: Optional[str] = None
    last_frame_url: Optional[str] = None
    provider_asset_id: Optional[str] = None
    updated_at: Optional[datetime] = None


class ProjectRepository(Protocol):
    def create_project(
        self, project_id: str, concept_prompt: str, config: Dict[str, Any], user_id: Optional[str] = None
    ) -> ProjectRecord:
        ...

    def get_project(self, project_id: str) -> ProjectRecord:
        """Raises ProjectNotFound."""
        ...

    def update_project(self, project_id: str, fields: Dict[str, Any]) -> ProjectRecord:
        """
        Field-level update. Recognized keys: status, errorMessage, config
        (a patch merged with merge_config).
        """
        ...

    def upsert_scene(self, project_id: str, scene_number: int, fields: Dict[str, Any]) -> SceneRecord:
        """Create or fully replace the scene row keyed by (project_id, scene_number)."""
        ...

    def list_scenes(self, project_id: str) -> List[SceneRecord]:
        ...
