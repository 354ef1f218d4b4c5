"""
Project endpoints router

Handles:
- POST /api/projects                                     create a project
- GET  /api/projects/{project_id}                        project + scenes
- POST /api/projects/{project_id}/generate               run (sync) or enqueue (async_job=true)
- POST /api/projects/{project_id}/scenes/{n}/regenerate  regenerate one scene
- GET  /api/jobs/{job_id}                                queued job status
"""

import asyncio
import json
import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response
from redis.exceptions import RedisError

from pipeline.errors import ErrorCode, PipelineError
from pipeline.models import GenerationOptions
from pipeline.orchestrator import GenerationOrchestrator, create_generation_orchestrator
from pipeline.repository import ProjectRecord, ProjectRepository, SceneRecord
from redis_client import RedisClient, get_redis_client
from schemas import (
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    JobEnqueuedResponse,
    JobStatusResponse,
    ProjectCreateRequest,
    ProjectResponse,
    SceneRegenerationResponse,
    SceneResponse,
)
from services.s3_storage import S3StorageService, get_s3_storage_service

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["Projects"])

NOT_FOUND_CODES = (ErrorCode.PROJECT_NOT_FOUND, ErrorCode.SCENE_NOT_FOUND)


# ===== Dependencies =====

def get_repository() -> ProjectRepository:
    from project_models import DynamoProjectRepository
    return DynamoProjectRepository()


def get_storage() -> S3StorageService:
    return get_s3_storage_service()


def get_queue() -> Optional[RedisClient]:
    try:
        return get_redis_client()
    except RedisError as e:
        logger.warning("redis_unavailable", error=str(e))
        return None


def get_orchestrator(queue: Optional[RedisClient] = Depends(get_queue)) -> GenerationOrchestrator:
    return create_generation_orchestrator(redis_client=queue)


# ===== Helpers =====

def http_error(error: PipelineError) -> HTTPException:
    """Map a PipelineError to an HTTPException carrying error.to_dict()."""
    if error.code in NOT_FOUND_CODES:
        status_code = 404
    elif error.code == ErrorCode.INVALID_STATUS_TRANSITION:
        status_code = 409
    elif error.is_client_error:
        status_code = 400
    elif error.code == ErrorCode.REDIS_CONNECTION_ERROR:
        status_code = 503
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=error.to_dict())


def _presign(storage: S3StorageService, url: Optional[str]) -> Optional[str]:
    if not url:
        return url
    return storage.generate_presigned_url(url)


def _scene_response(storage: S3StorageService, scene: SceneRecord) -> SceneResponse:
    return SceneResponse(
        scene_number=scene.scene_number,
        prompt=scene.prompt,
        duration=scene.duration,
        start_time=scene.start_time,
        end_time=scene.end_time,
        video_url=_presign(storage, scene.video_url),
        first_frame_url=_presign(storage, scene.first_frame_url),
        last_frame_url=_presign(storage, scene.last_frame_url),
        provider_asset_id=scene.provider_asset_id,
        updated_at=scene.updated_at,
    )


def _project_response(storage: S3StorageService, project: ProjectRecord, scenes=()) -> ProjectResponse:
    return ProjectResponse(
        project_id=project.project_id,
        user_id=project.user_id,
        concept_prompt=project.concept_prompt,
        status=project.status,
        config=project.config,
        final_video_url=_presign(storage, project.config.get("finalVideoUrl")),
        error_message=project.error_message,
        scenes=[_scene_response(storage, scene) for scene in scenes],
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


# ===== Endpoints =====

@router.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}},
    summary="Create Project",
)
async def create_project(
    request: ProjectCreateRequest,
    repository: ProjectRepository = Depends(get_repository),
    storage: S3StorageService = Depends(get_storage),
):
    """Create a draft project from a concept (or a full script) and its config."""
    project_id = str(uuid.uuid4())
    try:
        project = await asyncio.to_thread(
            repository.create_project,
            project_id,
            request.concept_prompt,
            request.config,
            request.user_id,
        )
    except PipelineError as e:
        raise http_error(e)

    logger.info("project_create_request", project_id=project_id)
    return _project_response(storage, project)


@router.get(
    "/projects/{project_id}",
    response_model=ProjectResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get Project",
)
async def get_project(
    project_id: str = Path(..., description="Project identifier"),
    repository: ProjectRepository = Depends(get_repository),
    storage: S3StorageService = Depends(get_storage),
):
    """
    Return the project with its scenes. Stored URLs are presigned on the way
    out; the canonical URLs stay in the project config.
    """
    try:
        project = await asyncio.to_thread(repository.get_project, project_id)
        scenes = await asyncio.to_thread(repository.list_scenes, project_id)
        return _project_response(storage, project, scenes)
    except PipelineError as e:
        raise http_error(e)


@router.post(
    "/projects/{project_id}/generate",
    responses={
        200: {"model": GenerateResponse, "description": "Run finished"},
        202: {"model": JobEnqueuedResponse, "description": "Run queued"},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Generate Project Video",
)
async def generate_project(
    response: Response,
    project_id: str = Path(..., description="Project identifier"),
    request: Optional[GenerateRequest] = None,
    async_job: bool = Query(False, description="Queue the run for a worker instead of running it inline"),
    repository: ProjectRepository = Depends(get_repository),
    queue: Optional[RedisClient] = Depends(get_queue),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    storage: S3StorageService = Depends(get_storage),
):
    """
    Generate every scene of the project and stitch the final video.

    With ``async_job=true`` the run is queued and a job id is returned with
    status 202; poll ``GET /api/jobs/{job_id}`` or the project itself.
    """
    options = GenerationOptions(**(request or GenerateRequest()).model_dump())

    if async_job:
        try:
            await asyncio.to_thread(repository.get_project, project_id)
        except PipelineError as e:
            raise http_error(e)

        job_id = str(uuid.uuid4())
        enqueued = queue is not None and await asyncio.to_thread(
            queue.enqueue_job,
            job_id,
            {"project_id": project_id, "options": options.model_dump()},
        )
        if not enqueued:
            raise http_error(PipelineError(
                ErrorCode.REDIS_CONNECTION_ERROR,
                "Could not enqueue generation job",
                {"project_id": project_id},
            ))

        response.status_code = 202
        return JobEnqueuedResponse(
            job_id=job_id,
            project_id=project_id,
            status="pending",
            message="Generation job queued",
        )

    try:
        outcome = await orchestrator.run_generation(project_id, options)
    except PipelineError as e:
        raise http_error(e)

    return GenerateResponse(
        project_id=project_id,
        status=outcome.status,
        final_video_url=_presign(storage, outcome.final_video_url),
        scene_urls=[_presign(storage, url) for url in outcome.scene_urls],
        failed_scenes=outcome.failed_scenes,
    )


@router.post(
    "/projects/{project_id}/scenes/{scene_index}/regenerate",
    response_model=SceneRegenerationResponse,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Regenerate Scene",
)
async def regenerate_scene(
    project_id: str = Path(..., description="Project identifier"),
    scene_index: int = Path(..., ge=1, description="1-based scene number"),
    request: Optional[GenerateRequest] = None,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    storage: S3StorageService = Depends(get_storage),
):
    """Regenerate one scene in place, optionally with explicit reference images."""
    options = GenerationOptions(**(request or GenerateRequest()).model_dump())
    try:
        outcome = await orchestrator.run_single_scene(project_id, scene_index, options)
        return SceneRegenerationResponse(
            project_id=project_id,
            scene_index=scene_index,
            video_url=_presign(storage, outcome.video_url),
            first_frame_url=_presign(storage, outcome.first_frame_url),
            last_frame_url=_presign(storage, outcome.last_frame_url),
        )
    except PipelineError as e:
        raise http_error(e)


@router.get(
    "/jobs/{job_id}",
    response_model=JobStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get Job Status",
)
async def get_job_status(
    job_id: str = Path(..., description="Job identifier returned by an async generate call"),
    queue: Optional[RedisClient] = Depends(get_queue),
):
    """Status of a queued generation job, read from its Redis hash."""
    job = await asyncio.to_thread(queue.get_job_status, job_id) if queue else None
    if not job:
        raise HTTPException(
            status_code=404,
            detail={
                "error_code": "JOB_NOT_FOUND",
                "message": f"Job with ID '{job_id}' not found",
                "details": {},
                "user_message": "Job not found or expired.",
            },
        )

    failed = job.get("failed_scenes")
    project_id = None
    if job.get("data"):
        project_id = json.loads(job["data"]).get("project_id")

    return JobStatusResponse(
        job_id=job_id,
        status=job.get("status", "pending"),
        project_id=project_id,
        final_video_url=job.get("final_video_url") or None,
        failed_scenes=[int(n) for n in failed.split(",")] if failed else None,
        error_code=job.get("error_code"),
        error_message=job.get("error_message"),
    )
