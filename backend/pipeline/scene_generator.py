"""
Per-scene generation steps.

For one scene: call the provider, normalize whatever it returned, copy the
clip into durable storage, pull out first/last frames for continuity, and
record the scene row. Persisting the clip is mandatory; frames are
best-effort.
"""

import asyncio
from typing import Optional

import aiohttp
import structlog

from pipeline.asset_manager import AssetManager
from pipeline.errors import ArtifactPersistError, PipelineError, ProviderError
from pipeline.models import GenerationRequest, SceneArtifact, ScenePlan
from pipeline.output_normalizer import normalize_output
from pipeline.repository import ProjectRepository
from services.generation_provider import GenerationProvider
from services.media_processor import MediaProcessingError, extract_frames
from services.s3_storage import S3StorageService, scene_frame_path, scene_video_path

logger = structlog.get_logger(__name__)


class SceneGenerator:
    """
    Generate and persist a single scene.

    Example:
        >>> generator = SceneGenerator(project_id, provider, storage, repository, asset_manager)
        >>> artifact = await generator.generate(scene, request)
        >>> artifact.video_url
        'https://bucket.s3.us-east-1.amazonaws.com/projects/p1/scenes/scene-1.mp4'
    """

    def __init__(
        self,
        project_id: str,
        provider: GenerationProvider,
        storage: S3StorageService,
        repository: ProjectRepository,
        asset_manager: AssetManager,
    ):
        self.project_id = project_id
        self.provider = provider
        self.storage = storage
        self.repository = repository
        self.asset_manager = asset_manager
        self.logger = logger.bind(project_id=project_id)

    async def generate(self, scene: ScenePlan, request: GenerationRequest) -> SceneArtifact:
        """
        Run all steps for one scene.

        Raises:
            ProviderError / ProviderTimeoutError: generation failed
            UnrecognizedOutputShape: provider output could not be read
            ArtifactPersistError: the clip could not be copied to storage
        """
        log = self.logger.bind(scene_number=scene.scene_number)
        log.info(
            "scene_generation_started",
            duration=scene.duration,
            model_id=request.model_id,
            has_continuity_image=bool(request.continuity_image),
            has_continuity_video=bool(request.continuity_video),
        )

        result = await self.provider.generate(self._signed(request))
        if result.status == "failed":
            raise ProviderError(
                result.error or "Generation failed",
                scene_number=scene.scene_number,
                details={"provider_asset_id": result.provider_asset_id},
            )

        source_url = normalize_output(result.output)
        video_url, local_path = await self._persist_clip(scene.scene_number, source_url)

        first_frame_url, last_frame_url = await self._persist_frames(scene.scene_number, local_path)

        await asyncio.to_thread(
            self.repository.upsert_scene,
            self.project_id,
            scene.scene_number,
            {
                "prompt": scene.prompt,
                "duration": scene.duration,
                "startTime": scene.start_time,
                "endTime": scene.end_time,
                "videoUrl": video_url,
                "firstFrameUrl": first_frame_url,
                "lastFrameUrl": last_frame_url,
                "providerAssetId": result.provider_asset_id,
            },
        )

        log.info(
            "scene_generation_completed",
            video_url=video_url,
            has_frames=last_frame_url is not None,
        )

        return SceneArtifact(
            scene_number=scene.scene_number,
            duration=scene.duration,
            video_url=video_url,
            first_frame_url=first_frame_url,
            last_frame_url=last_frame_url,
            provider_asset_id=result.provider_asset_id,
            clip_handle=result.clip_handle or video_url,
        )

    def _signed(self, request: GenerationRequest) -> GenerationRequest:
        """Presign any continuity hint that points into the private bucket."""
        update = {}
        for field in ("continuity_image", "continuity_video"):
            value = getattr(request, field)
            if value and self.storage.owns(value):
                update[field] = self.storage.generate_presigned_url(value)
        if request.reference_images:
            update["reference_images"] = [
                self.storage.generate_presigned_url(url) if self.storage.owns(url) else url
                for url in request.reference_images
            ]
        return request.model_copy(update=update) if update else request

    async def _persist_clip(self, scene_number: int, source_url: str) -> tuple:
        """Download the provider clip and store it; returns (stored_url, local_path)."""
        logical_path = scene_video_path(self.project_id, scene_number)
        try:
            local_path = await self.asset_manager.download_with_retry(
                source_url, f"scene-{scene_number}.mp4", "scenes"
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ArtifactPersistError(
                f"Could not download scene {scene_number} from provider: {e}",
                logical_path=logical_path,
            ) from e

        video_url = await self.storage.put_file_async(local_path, logical_path, "video/mp4")
        return video_url, local_path

    async def _persist_frames(self, scene_number: int, local_path: str) -> tuple:
        """
        Extract and store first/last frames.

        Returns (first_url, last_url); either is None when that frame could
        not be extracted or stored.
        """
        try:
            frames = await asyncio.to_thread(
                extract_frames,
                local_path,
                str(self.asset_manager.dir_for("frames")),
                f"scene-{scene_number}",
            )
        except (MediaProcessingError, OSError) as e:
            self.logger.warning("frame_extraction_failed", scene_number=scene_number, error=str(e))
            return None, None

        first_url = await self._persist_frame(scene_number, frames.first_frame, "first")
        last_url = await self._persist_frame(scene_number, frames.last_frame, "last")
        return first_url, last_url

    async def _persist_frame(self, scene_number: int, frame_path: str, which: str) -> Optional[str]:
        try:
            return await self.storage.put_file_async(
                frame_path, scene_frame_path(self.project_id, scene_number, which), "image/jpeg"
            )
        except (PipelineError, OSError) as e:
            self.logger.warning("frame_upload_failed", scene_number=scene_number, frame=which, error=str(e))
            return None
