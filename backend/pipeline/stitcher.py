"""
Stitcher / finalizer.

Concatenates the stored scene clips in scene order, optionally lays the
project soundtrack over the result, uploads the final video and writes the
completed project state in a single update.
"""

import asyncio
from typing import List, Optional

import aiohttp
import structlog

from pipeline.asset_manager import AssetManager
from pipeline.errors import PipelineError, StitchError
from pipeline.models import ProjectConfig, SceneArtifact
from pipeline.repository import ProjectRepository
from services.media_processor import MediaProcessingError, concatenate, overlay_audio
from services.s3_storage import S3StorageService, final_video_path

logger = structlog.get_logger(__name__)


def usable_artifacts(artifacts: List[SceneArtifact]) -> List[SceneArtifact]:
    """Sort by scene number and drop (with a warning) scenes that have no clip."""
    usable = []
    for artifact in sorted(artifacts, key=lambda a: a.scene_number):
        if not artifact.video_url:
            logger.warning("stitch_scene_gap", scene_number=artifact.scene_number)
            continue
        usable.append(artifact)
    return usable


class Stitcher:
    """
    Assemble and publish the final video for a project.

    Example:
        >>> stitcher = Stitcher("p1", storage, repository)
        >>> final_url = await stitcher.finalize(artifacts, config)
    """

    def __init__(
        self,
        project_id: str,
        storage: S3StorageService,
        repository: ProjectRepository,
        asset_manager: Optional[AssetManager] = None,
    ):
        self.project_id = project_id
        self.storage = storage
        self.repository = repository
        self.asset_manager = asset_manager or AssetManager(f"{project_id}-stitch")
        self.logger = logger.bind(project_id=project_id)

    async def finalize(
        self,
        artifacts: List[SceneArtifact],
        config: ProjectConfig,
        failed_scenes: Optional[List[int]] = None,
    ) -> str:
        """
        Stitch, upload and mark the project completed.

        Returns:
            URL of the stored final video

        Raises:
            StitchError: no usable scenes, or concatenation / audio overlay failed
            ArtifactPersistError: the final video could not be stored; the
                project is left as it was
        """
        usable = usable_artifacts(artifacts)
        if not usable:
            raise StitchError(
                "No scene artifacts with a video to stitch",
                details={"project_id": self.project_id, "scene_count": len(artifacts)},
            )

        self.logger.info(
            "stitch_started",
            scene_count=len(usable),
            has_audio=bool(config.audio_url),
        )

        try:
            await self.asset_manager.create_job_directory()
            final_path = await self._assemble(usable, config.audio_url)
            final_url = await self.storage.put_file_async(
                final_path, final_video_path(self.project_id), "video/mp4"
            )
        finally:
            await self.asset_manager.cleanup()

        await asyncio.to_thread(
            self.repository.update_project,
            self.project_id,
            {
                "status": "completed",
                "errorMessage": None,
                "config": {
                    "finalVideoUrl": final_url,
                    "sceneUrls": [a.video_url for a in usable],
                    "frameUrls": [
                        {
                            "sceneNumber": a.scene_number,
                            "firstFrameUrl": a.first_frame_url,
                            "lastFrameUrl": a.last_frame_url,
                        }
                        for a in usable
                    ],
                    "failedScenes": failed_scenes or None,
                    "partialResults": None,
                },
            },
        )

        self.logger.info("stitch_completed", final_video_url=final_url, scene_count=len(usable))
        return final_url

    async def _assemble(self, artifacts: List[SceneArtifact], audio_url: Optional[str]) -> str:
        clip_paths = []
        for artifact in artifacts:
            clip_paths.append(
                await self._fetch(artifact.video_url, f"scene-{artifact.scene_number}.mp4", "scenes")
            )

        final_dir = self.asset_manager.dir_for("final")
        stitched_path = str(final_dir / "stitched.mp4")

        try:
            await asyncio.to_thread(concatenate, clip_paths, stitched_path)

            if not audio_url:
                return stitched_path

            audio_path = await self._fetch(audio_url, "soundtrack", "audio")
            output_path = str(final_dir / "output.mp4")
            await asyncio.to_thread(overlay_audio, stitched_path, audio_path, output_path)
            return output_path
        except MediaProcessingError as e:
            raise StitchError(str(e), details={"project_id": self.project_id}) from e

    async def _fetch(self, url: str, filename: str, subdir: str) -> str:
        """Bring a clip or soundtrack into the working directory."""
        local_path = str(self.asset_manager.dir_for(subdir) / filename)
        try:
            if self.storage.owns(url):
                return await self.storage.download_file_async(url, local_path)
            return await self.asset_manager.download_with_retry(url, filename, subdir)
        except (aiohttp.ClientError, asyncio.TimeoutError, PipelineError) as e:
            raise StitchError(
                f"Could not fetch {filename} for stitching: {e}",
                details={"project_id": self.project_id, "url": url},
            ) from e
