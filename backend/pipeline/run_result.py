"""
Accumulates the outcome of a generation run and writes the terminal state.

A run ends in exactly one of two places:
- finalize_failure: status=failed, errorMessage, and partialResults when at
  least one scene made it to storage
- the stitcher's completion update, which clears partialResults
"""

import asyncio
from typing import Dict, List, Optional

import structlog

from pipeline.models import SceneArtifact
from pipeline.repository import ProjectRepository

logger = structlog.get_logger(__name__)


class RunResult:
    """
    Successes and failures of one run.

    Example:
        >>> result = RunResult("p1")
        >>> result.record_success(artifact)
        >>> result.record_failure(2, "provider timed out")
        >>> await result.finalize_failure(repository, error)
    """

    def __init__(self, project_id: str):
        self.project_id = project_id
        self.succeeded: Dict[int, SceneArtifact] = {}
        self.errors: Dict[int, str] = {}
        self.finalized = False

    def record_success(self, artifact: SceneArtifact) -> None:
        self.succeeded[artifact.scene_number] = artifact
        self.errors.pop(artifact.scene_number, None)

    def record_failure(self, scene_number: int, error: str) -> None:
        self.errors[scene_number] = error

    @property
    def artifacts(self) -> List[SceneArtifact]:
        return [self.succeeded[n] for n in sorted(self.succeeded)]

    @property
    def failed_scenes(self) -> List[int]:
        return sorted(self.errors)

    @property
    def first_failed_index(self) -> Optional[int]:
        failed = self.failed_scenes
        return failed[0] if failed else None

    def partial_results(self, error: str) -> Optional[Dict]:
        if not self.succeeded:
            return None
        return {
            "count": len(self.succeeded),
            "scenes": [artifact.model_dump() for artifact in self.artifacts],
            "error": error,
            "firstFailedIndex": self.first_failed_index,
        }

    async def finalize_failure(self, repository: ProjectRepository, error: Exception) -> None:
        """
        Mark the project failed, keeping whatever scenes succeeded.

        partialResults is removed when nothing succeeded so a stale snapshot
        from an earlier run cannot survive.
        """
        if self.finalized:
            logger.warning("run_result_already_finalized", project_id=self.project_id)
            return
        self.finalized = True

        message = str(error)
        partial = self.partial_results(message)

        await asyncio.to_thread(
            repository.update_project,
            self.project_id,
            {
                "status": "failed",
                "errorMessage": message,
                "config": {
                    "partialResults": partial,
                    "failedScenes": self.failed_scenes or None,
                },
            },
        )

        logger.error(
            "generation_run_failed",
            project_id=self.project_id,
            error=message,
            error_type=type(error).__name__,
            succeeded=len(self.succeeded),
            failed_scenes=self.failed_scenes,
        )

    def mark_finalized(self) -> None:
        """Called once the stitcher has written the completed state."""
        self.finalized = True
