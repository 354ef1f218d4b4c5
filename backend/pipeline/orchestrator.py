"""
Scene Generation Orchestrator

Coordinates a full generation run for one project:
1. Script resolution (writer service, detected script, or local planner)
2. Duration reconciliation against the project's target
3. Optional seed reference images from the script's key elements
4. Scene generation, sequential (continuity threaded) or parallel (isolated)
5. Stitching and completion, or failure with partial results

Also regenerates a single scene of an existing project.

Progress is published to Redis pub/sub after each stage; publishing never
fails a run.
"""

import asyncio
import json
import uuid
from datetime import datetime
from typing import Callable, List, Optional

import structlog

from config import settings
from pipeline.asset_manager import AssetManager
from pipeline.continuity import (
    EMPTY_STATE,
    ContinuityOptions,
    ContinuityState,
    advance,
    build_request,
)
from pipeline.duration import reconcile_durations
from pipeline.errors import (
    AggregateSceneFailure,
    ErrorCode,
    PipelineError,
    RunTimeoutError,
    SceneNotFound,
)
from pipeline.models import (
    GenerationOptions,
    GenerationOutcome,
    ProjectConfig,
    ScenePlan,
    SingleSceneOutcome,
)
from pipeline.repository import ProjectRecord, ProjectRepository
from pipeline.run_result import RunResult
from pipeline.scene_generator import SceneGenerator
from pipeline.script_resolver import ScriptWriter, resolve_script
from pipeline.stitcher import Stitcher
from services.generation_provider import GenerationProvider
from services.reference_images import ReferenceImageGenerator
from services.s3_storage import S3StorageService

logger = structlog.get_logger(__name__)

RUN_DEADLINE_ERROR = "cancelled: run deadline exceeded"


class GenerationOrchestrator:
    """
    Run scene generation for projects.

    Example:
        >>> orchestrator = create_generation_orchestrator(redis_client=get_redis_client())
        >>> outcome = await orchestrator.run_generation("p1", GenerationOptions(execution_mode="parallel"))
        >>> outcome.status
        'completed'
    """

    def __init__(
        self,
        repository: ProjectRepository,
        storage: S3StorageService,
        provider: GenerationProvider,
        script_writer: Optional[ScriptWriter] = None,
        reference_generator: Optional[ReferenceImageGenerator] = None,
        redis_client=None,
        asset_manager_factory: Callable[[str], AssetManager] = AssetManager,
    ):
        """
        Args:
            repository: Project / scene persistence
            storage: Durable storage for clips, frames and final video
            provider: Video generation provider
            script_writer: Optional script-writing service
            reference_generator: Optional seed reference image generator
            redis_client: RedisClient for pub/sub progress updates
            asset_manager_factory: Builds the local working directory for a run
        """
        self.repository = repository
        self.storage = storage
        self.provider = provider
        self.script_writer = script_writer
        self.reference_generator = reference_generator
        self.redis_client = redis_client
        self.asset_manager_factory = asset_manager_factory

    # ===== Full run =====

    async def run_generation(
        self,
        project_id: str,
        options: Optional[GenerationOptions] = None
    ) -> GenerationOutcome:
        """
        Generate every scene of a project and stitch the final video.

        The project is moved to "generating" before any work starts and ends
        either "completed" (via the stitcher) or "failed" (with partialResults
        when some scenes succeeded).

        Raises:
            ProjectNotFound / InvalidStatusTransition: before any generation
            RunTimeoutError: the whole run exceeded its deadline
            PipelineError: the run failed; the project is already marked failed
        """
        options = options or GenerationOptions()
        timeout = options.timeout_seconds or settings.GENERATION_RUN_TIMEOUT
        log = logger.bind(project_id=project_id)

        project = await asyncio.to_thread(self.repository.get_project, project_id)
        await asyncio.to_thread(
            self.repository.update_project,
            project_id,
            {"status": "generating", "errorMessage": None},
        )

        result = RunResult(project_id)
        log.info("generation_run_started", timeout=timeout, execution_mode=options.execution_mode)
        await self._publish_progress(project_id, "started", 0, "Generation started")

        try:
            outcome = await asyncio.wait_for(
                self._run(project, options, result),
                timeout=timeout
            )
        except asyncio.TimeoutError as e:
            error = RunTimeoutError(timeout)
            await self._handle_pipeline_error(result, error)
            raise error from e
        except PipelineError as e:
            await self._handle_pipeline_error(result, e)
            raise
        except Exception as e:
            log.error("generation_run_crashed", error=str(e), error_type=type(e).__name__)
            error = PipelineError(
                ErrorCode.VIDEO_GENERATION_FAILED,
                f"Generation run failed: {e}",
                {"project_id": project_id},
            )
            await self._handle_pipeline_error(result, error)
            raise error from e

        await self._publish_progress(project_id, "completed", 100, "Video ready")
        log.info(
            "generation_run_completed",
            final_video_url=outcome.final_video_url,
            scene_count=len(outcome.scene_urls),
            failed_scenes=outcome.failed_scenes,
        )
        return outcome

    async def _run(
        self,
        project: ProjectRecord,
        options: GenerationOptions,
        result: RunResult
    ) -> GenerationOutcome:
        project_id = project.project_id
        config = ProjectConfig.model_validate(project.config)
        log = logger.bind(project_id=project_id)

        # Stage 1: script
        await self._publish_progress(project_id, "script", 5, "Resolving script...")
        script = await resolve_script(
            project.concept_prompt,
            config.duration,
            config,
            writer=self.script_writer,
        )

        # Stage 2: durations
        scenes, report = reconcile_durations(script.scenes, config.duration)
        if options.extend_previous:
            scenes = [
                scene.model_copy(update={"extend_previous": scene.scene_number > 1})
                for scene in scenes
            ]
        await asyncio.to_thread(
            self.repository.update_project,
            project_id,
            {"config": {"reconciliation": report.model_dump(), "scriptSource": script.source}},
        )
        await self._publish_progress(
            project_id, "script", 15, f"Script ready: {len(scenes)} scenes ({script.source})"
        )

        # Stage 3: seed reference images
        seed_images = await self._seed_images(config, script.key_elements, script.style_hints)

        # Stage 4: scenes
        mode = options.execution_mode or config.execution_mode or settings.DEFAULT_EXECUTION_MODE
        continuity = ContinuityOptions(
            continuous=options.continuous if options.continuous is not None else config.continuous,
            use_reference_frame=(
                options.use_reference_frame
                if options.use_reference_frame is not None
                else config.use_reference_frame
            ),
        )
        model_id = config.video_model_id or settings.DEFAULT_VIDEO_MODEL
        log.info(
            "scene_generation_stage_started",
            execution_mode=mode,
            scene_count=len(scenes),
            model_id=model_id,
            continuous=continuity.continuous,
            use_reference_frame=continuity.use_reference_frame,
            seed_image_count=len(seed_images),
        )

        asset_manager = self.asset_manager_factory(f"{project_id}-{uuid.uuid4().hex[:8]}")
        await asset_manager.create_job_directory()
        generator = SceneGenerator(project_id, self.provider, self.storage, self.repository, asset_manager)

        try:
            if mode == "parallel":
                await self._generate_parallel(
                    generator, scenes, continuity, config, model_id, options, seed_images, result
                )
            else:
                await self._generate_sequential(
                    generator, scenes, continuity, config, model_id, options, seed_images, result
                )
        finally:
            await asset_manager.cleanup()

        # Stage 5: stitch
        await self._publish_progress(project_id, "stitching", 85, "Stitching final video...")
        stitcher = Stitcher(
            project_id,
            self.storage,
            self.repository,
            self.asset_manager_factory(f"{project_id}-stitch-{uuid.uuid4().hex[:8]}"),
        )
        final_url = await stitcher.finalize(result.artifacts, config, result.failed_scenes)
        result.mark_finalized()

        return GenerationOutcome(
            status="completed",
            final_video_url=final_url,
            scene_urls=[artifact.video_url for artifact in result.artifacts],
            failed_scenes=result.failed_scenes or None,
        )

    async def _seed_images(self, config: ProjectConfig, key_elements: List[str], style_hints: dict) -> List[str]:
        if not (config.generate_reference_images and key_elements and self.reference_generator):
            return []
        return await self.reference_generator.generate(key_elements, style_hints, config.aspect_ratio)

    async def _generate_sequential(
        self,
        generator: SceneGenerator,
        scenes: List[ScenePlan],
        continuity: ContinuityOptions,
        config: ProjectConfig,
        model_id: str,
        options: GenerationOptions,
        seed_images: List[str],
        result: RunResult,
    ) -> None:
        """
        One scene at a time; each request sees the state left by the last
        success. The first failure aborts the remaining scenes.
        """
        state = EMPTY_STATE
        total = len(scenes)

        for position, scene in enumerate(scenes, start=1):
            try:
                request = build_request(
                    scene, state, continuity, config, model_id,
                    reference_images=options.reference_images,
                    seed_images=seed_images,
                )
                artifact = await generator.generate(scene, request)
            except asyncio.CancelledError:
                result.record_failure(scene.scene_number, RUN_DEADLINE_ERROR)
                raise
            except Exception as e:
                logger.error(
                    "scene_generation_failed",
                    project_id=result.project_id,
                    scene_number=scene.scene_number,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.record_failure(scene.scene_number, str(e))
                raise

            result.record_success(artifact)
            state = advance(state, artifact)
            await self._publish_progress(
                result.project_id,
                "scenes",
                15 + int(70 * position / total),
                f"Scene {scene.scene_number} of {total} generated",
            )

    async def _generate_parallel(
        self,
        generator: SceneGenerator,
        scenes: List[ScenePlan],
        continuity: ContinuityOptions,
        config: ProjectConfig,
        model_id: str,
        options: GenerationOptions,
        seed_images: List[str],
        result: RunResult,
    ) -> None:
        """
        All scenes at once, bounded by MAX_PARALLEL_SCENES. One scene's failure
        never cancels its siblings; only total failure aborts the run.
        """
        chained = [scene.scene_number for scene in scenes if scene.extend_previous]
        if chained:
            logger.warning(
                "extend_previous_unsupported_in_parallel",
                project_id=result.project_id,
                scene_numbers=chained,
            )
            scenes = [scene.model_copy(update={"extend_previous": False}) for scene in scenes]

        # No prior frame is known before dispatch, so every request starts empty.
        requests = [
            build_request(
                scene, EMPTY_STATE, continuity, config, model_id,
                reference_images=options.reference_images,
                seed_images=seed_images,
            )
            for scene in scenes
        ]

        semaphore = asyncio.Semaphore(max(1, settings.MAX_PARALLEL_SCENES))

        async def _bounded(scene, request):
            try:
                async with semaphore:
                    artifact = await generator.generate(scene, request)
            except asyncio.CancelledError:
                result.record_failure(scene.scene_number, RUN_DEADLINE_ERROR)
                raise
            # recorded here so scenes finished before a deadline are kept
            result.record_success(artifact)
            return artifact

        outcomes = await asyncio.gather(
            *[_bounded(scene, request) for scene, request in zip(scenes, requests)],
            return_exceptions=True
        )

        for scene, outcome in zip(scenes, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(
                    "scene_generation_failed",
                    project_id=result.project_id,
                    scene_number=scene.scene_number,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                result.record_failure(scene.scene_number, str(outcome))

        await self._publish_progress(
            result.project_id,
            "scenes",
            85,
            f"{len(result.succeeded)} of {len(scenes)} scenes generated",
        )

        if not result.succeeded:
            raise AggregateSceneFailure(
                result.failed_scenes,
                [result.errors[n] for n in result.failed_scenes],
            )

    # ===== Single scene =====

    async def run_single_scene(
        self,
        project_id: str,
        scene_index: int,
        options: Optional[GenerationOptions] = None
    ) -> SingleSceneOutcome:
        """
        Regenerate one existing scene in place.

        The previous scene's last frame is offered as continuity when the
        run options (or project config) ask for it. The scene row is replaced;
        project status is left alone.

        Raises:
            ProjectNotFound / SceneNotFound: unknown project or scene
            PipelineError: generation or persistence failed
        """
        options = options or GenerationOptions()
        log = logger.bind(project_id=project_id, scene_number=scene_index)

        project = await asyncio.to_thread(self.repository.get_project, project_id)
        config = ProjectConfig.model_validate(project.config)
        stored = {
            scene.scene_number: scene
            for scene in await asyncio.to_thread(self.repository.list_scenes, project_id)
        }

        record = stored.get(scene_index)
        if record is None or not record.prompt or not record.duration:
            raise SceneNotFound(project_id, scene_index)

        previous = stored.get(scene_index - 1)
        state = EMPTY_STATE
        if previous is not None:
            state = ContinuityState(
                last_frame_url=previous.last_frame_url,
                last_clip_handle=previous.video_url,
            )

        scene = ScenePlan(
            scene_number=scene_index,
            prompt=record.prompt,
            duration=record.duration,
            start_time=record.start_time or 0.0,
            end_time=record.end_time or 0.0,
            extend_previous=options.extend_previous and previous is not None,
        )
        continuity = ContinuityOptions(
            continuous=options.continuous if options.continuous is not None else config.continuous,
            use_reference_frame=(
                options.use_reference_frame
                if options.use_reference_frame is not None
                else config.use_reference_frame
            ),
        )
        request = build_request(
            scene, state, continuity, config,
            config.video_model_id or settings.DEFAULT_VIDEO_MODEL,
            reference_images=options.reference_images,
        )

        log.info("scene_regeneration_started")
        await self._publish_progress(project_id, "scene_regeneration", 0, f"Regenerating scene {scene_index}")

        asset_manager = self.asset_manager_factory(f"{project_id}-scene-{scene_index}-{uuid.uuid4().hex[:8]}")
        await asset_manager.create_job_directory()
        try:
            generator = SceneGenerator(project_id, self.provider, self.storage, self.repository, asset_manager)
            artifact = await generator.generate(scene, request)
        finally:
            await asset_manager.cleanup()

        await self._publish_progress(project_id, "scene_regeneration", 100, f"Scene {scene_index} regenerated")
        log.info("scene_regeneration_completed", video_url=artifact.video_url)

        return SingleSceneOutcome(
            video_url=artifact.video_url,
            first_frame_url=artifact.first_frame_url,
            last_frame_url=artifact.last_frame_url,
        )

    # ===== Helpers =====

    async def _handle_pipeline_error(self, result: RunResult, error: Exception):
        """
        Finalize the run as failed and notify subscribers.

        A persistence failure here is logged; the original error is what the
        caller sees.
        """
        try:
            await result.finalize_failure(self.repository, error)
        except Exception as e:
            logger.error(
                "run_failure_not_persisted",
                project_id=result.project_id,
                error=str(e),
                original_error=str(error),
            )

        await self._publish_progress(result.project_id, "failed", 100, str(error))

    async def _publish_progress(
        self,
        project_id: str,
        stage: str,
        progress: int,
        message: Optional[str] = None
    ):
        """
        Publish progress update to Redis pub/sub.

        Args:
            project_id: Project being generated
            stage: Stage name (started, script, scenes, stitching, completed, failed)
            progress: Progress percentage (0-100)
            message: Optional status message
        """
        if not self.redis_client:
            logger.debug("redis_client_not_configured_skipping_progress_update")
            return

        update = {
            "project_id": project_id,
            "stage": stage,
            "progress": progress,
            "message": message,
            "timestamp": datetime.now().isoformat()
        }

        try:
            await asyncio.to_thread(
                self.redis_client.get_client().publish,
                settings.JOB_PROGRESS_CHANNEL,
                json.dumps(update)
            )
            logger.debug("progress_published", project_id=project_id, stage=stage, progress=progress)

        except Exception as e:
            logger.warning(
                "progress_publish_failed",
                project_id=project_id,
                error=str(e),
                stage=stage,
                progress=progress
            )


def create_generation_orchestrator(redis_client=None) -> GenerationOrchestrator:
    """
    Factory function wiring the production collaborators.

    Example:
        >>> orchestrator = create_generation_orchestrator(redis_client=get_redis_client())
    """
    from project_models import DynamoProjectRepository
    from services.generation_provider import ReplicateGenerationProvider
    from services.s3_storage import get_s3_storage_service
    from services.script_writer import create_script_writer

    return GenerationOrchestrator(
        repository=DynamoProjectRepository(),
        storage=get_s3_storage_service(),
        provider=ReplicateGenerationProvider(timeout=settings.REPLICATE_TIMEOUT),
        script_writer=create_script_writer(),
        reference_generator=ReferenceImageGenerator(),
        redis_client=redis_client,
    )
