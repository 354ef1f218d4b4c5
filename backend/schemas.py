"""
Pydantic schemas for request/response validation
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime


class ProjectCreateRequest(BaseModel):
    """Request model for creating a project"""
    concept_prompt: str = Field(..., min_length=1, description="Concept text, or a full script (JSON or scene-marked text)")
    user_id: Optional[str] = Field(None, description="Owner of the project")
    config: Dict[str, Any] = Field(
        default_factory=dict,
        description="Project config (duration, videoModelId, aspectRatio, style, mood, continuous, executionMode, audioUrl, ...)"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "concept_prompt": "A lighthouse keeper finds a message in a bottle and sails toward the storm",
                "config": {
                    "duration": 24,
                    "videoModelId": "google/veo-3.1",
                    "aspectRatio": "16:9",
                    "style": "cinematic",
                    "continuous": True
                }
            }
        }


class SceneResponse(BaseModel):
    """One stored scene"""
    scene_number: int
    prompt: Optional[str] = None
    duration: Optional[float] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    video_url: Optional[str] = Field(None, description="Presigned URL of the scene clip")
    first_frame_url: Optional[str] = None
    last_frame_url: Optional[str] = None
    provider_asset_id: Optional[str] = None
    updated_at: Optional[datetime] = None


class ProjectResponse(BaseModel):
    """Response model for project endpoints"""
    project_id: str
    user_id: Optional[str] = None
    concept_prompt: str
    status: Literal["draft", "generating", "completed", "failed"]
    config: Dict[str, Any] = Field(default_factory=dict)
    final_video_url: Optional[str] = Field(None, description="Presigned URL of the final video (when completed)")
    error_message: Optional[str] = None
    scenes: List[SceneResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class GenerateRequest(BaseModel):
    """Run options for a generation request"""
    execution_mode: Optional[Literal["sequential", "parallel"]] = None
    continuous: Optional[bool] = None
    use_reference_frame: Optional[bool] = None
    extend_previous: bool = False
    reference_images: Optional[List[str]] = None
    timeout_seconds: Optional[float] = Field(None, gt=0)

    class Config:
        json_schema_extra = {
            "example": {
                "execution_mode": "sequential",
                "continuous": True
            }
        }


class GenerateResponse(BaseModel):
    """Result of a synchronous generation run"""
    project_id: str
    status: Literal["completed", "failed"]
    final_video_url: Optional[str] = None
    scene_urls: List[str] = Field(default_factory=list)
    failed_scenes: Optional[List[int]] = None


class JobEnqueuedResponse(BaseModel):
    """Response for an asynchronous generation request"""
    job_id: str = Field(..., description="Unique job identifier")
    project_id: str
    status: str = Field(..., description="Initial job status")
    message: str


class JobStatusResponse(BaseModel):
    """Status of a queued generation job"""
    job_id: str
    status: str
    project_id: Optional[str] = None
    final_video_url: Optional[str] = None
    failed_scenes: Optional[List[int]] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class SceneRegenerationResponse(BaseModel):
    """Result of regenerating one scene"""
    project_id: str
    scene_index: int
    video_url: str
    first_frame_url: Optional[str] = None
    last_frame_url: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error body returned for PipelineError failures"""
    error_code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    user_message: str
