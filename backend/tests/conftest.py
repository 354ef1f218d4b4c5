"""
Shared fixtures for the backend test suite.

Puts the backend directory on sys.path and provides in-memory stand-ins for
persistence, storage, the generation provider and media processing so the
pipeline can run end-to-end without AWS, Replicate or ffmpeg.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add backend directory to Python path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from pipeline.asset_manager import AssetManager  # noqa: E402
from pipeline.errors import ArtifactPersistError, ProjectNotFound  # noqa: E402
from pipeline.models import GenerationRequest, ProviderResult, ScriptDraft, SceneDraft  # noqa: E402
from pipeline.orchestrator import GenerationOrchestrator  # noqa: E402
from pipeline.repository import (  # noqa: E402
    SCENE_FIELDS,
    ProjectRecord,
    SceneRecord,
    check_status_transition,
    merge_config,
)
from services.media_processor import FrameFiles  # noqa: E402

BUCKET_URL = "https://test-bucket.s3.us-east-1.amazonaws.com"


class InMemoryProjectRepository:
    """ProjectRepository keeping projects and scene rows in dicts."""

    def __init__(self):
        self.projects: Dict[str, ProjectRecord] = {}
        self.scenes: Dict[tuple, SceneRecord] = {}
        self.updates: List[Dict[str, Any]] = []

    def create_project(self, project_id, concept_prompt, config, user_id=None):
        now = datetime.now(timezone.utc)
        record = ProjectRecord(
            project_id=project_id,
            user_id=user_id,
            concept_prompt=concept_prompt,
            status="draft",
            config=dict(config),
            created_at=now,
            updated_at=now,
        )
        self.projects[project_id] = record
        return record

    def get_project(self, project_id):
        if project_id not in self.projects:
            raise ProjectNotFound(project_id)
        return self.projects[project_id].model_copy(deep=True)

    def update_project(self, project_id, fields):
        project = self.get_project(project_id)
        self.updates.append(dict(fields))
        changes = {"updated_at": datetime.now(timezone.utc)}
        if "status" in fields:
            check_status_transition(project.status, fields["status"])
            changes["status"] = fields["status"]
        if "errorMessage" in fields:
            changes["error_message"] = fields["errorMessage"]
        if "config" in fields:
            changes["config"] = merge_config(project.config, fields["config"])
        self.projects[project_id] = project.model_copy(update=changes)
        return self.projects[project_id]

    def upsert_scene(self, project_id, scene_number, fields):
        assert set(fields) <= set(SCENE_FIELDS)
        record = SceneRecord(
            project_id=project_id,
            scene_number=scene_number,
            prompt=fields.get("prompt"),
            duration=fields.get("duration"),
            start_time=fields.get("startTime"),
            end_time=fields.get("endTime"),
            video_url=fields.get("videoUrl"),
            first_frame_url=fields.get("firstFrameUrl"),
            last_frame_url=fields.get("lastFrameUrl"),
            provider_asset_id=fields.get("providerAssetId"),
            updated_at=datetime.now(timezone.utc),
        )
        self.scenes[(project_id, scene_number)] = record
        return record

    def list_scenes(self, project_id):
        return sorted(
            (scene for (pid, _), scene in self.scenes.items() if pid == project_id),
            key=lambda scene: scene.scene_number,
        )


class FakeStorage:
    """Stands in for S3StorageService; keeps uploaded paths in memory."""

    def __init__(self):
        self.objects: Dict[str, str] = {}
        self.fail_paths: set = set()

    def url_for_key(self, key: str) -> str:
        return f"{BUCKET_URL}/{key}"

    def owns(self, url: str) -> bool:
        return bool(url) and url.startswith(BUCKET_URL + "/")

    async def put_file_async(self, file_path: str, logical_path: str, content_type: str = None) -> str:
        if logical_path in self.fail_paths:
            raise ArtifactPersistError("simulated S3 outage", logical_path)
        self.objects[logical_path] = file_path
        return self.url_for_key(logical_path)

    async def download_file_async(self, url_or_key: str, local_path: str) -> str:
        Path(local_path).parent.mkdir(parents=True, exist_ok=True)
        Path(local_path).write_bytes(b"stored-clip")
        return local_path

    def generate_presigned_url(self, url_or_key: str, expiry: int = None) -> str:
        if not self.owns(url_or_key):
            return url_or_key
        return f"{url_or_key}?X-Amz-Signature=test"


class FakeProvider:
    """
    Generation provider returning a distinct URL per call.

    ``behavior`` may return a ProviderResult or raise for a given request.
    """

    def __init__(self, behavior: Optional[Callable[[GenerationRequest], ProviderResult]] = None):
        self.behavior = behavior
        self.requests: List[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> ProviderResult:
        self.requests.append(request)
        if self.behavior is not None:
            return self.behavior(request)
        n = len(self.requests)
        return ProviderResult(
            status="succeeded",
            output=[f"https://replicate.delivery/clip-{n}.mp4"],
            provider_asset_id=f"pred-{n}",
        )


class FakeScriptWriter:
    def __init__(self, draft: ScriptDraft):
        self.draft = draft
        self.calls = []

    async def write(self, concept, duration, style_hints):
        self.calls.append((concept, duration, style_hints))
        return self.draft


class OfflineAssetManager(AssetManager):
    """AssetManager whose downloads write placeholder bytes instead of hitting the network."""

    downloaded: List[str] = []

    async def download_with_retry(self, url, filename, subdir=None, max_retries=3, timeout=300):
        self.downloaded.append(url)
        return await self.save_file(b"provider-clip", filename, subdir)


@pytest.fixture
def repository():
    return InMemoryProjectRepository()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def asset_manager_factory(tmp_path):
    OfflineAssetManager.downloaded = []
    return lambda job_id: OfflineAssetManager(job_id, base_path=str(tmp_path))


@pytest.fixture
def fake_media(monkeypatch):
    """Replace MoviePy-backed functions with file-writing stand-ins."""
    calls = {"concatenate": [], "overlay_audio": [], "extract_frames": []}

    def fake_concatenate(paths, output_path):
        calls["concatenate"].append(list(paths))
        Path(output_path).write_bytes(b"stitched")
        return output_path

    def fake_overlay(video_path, audio_path, output_path):
        calls["overlay_audio"].append((video_path, audio_path))
        Path(output_path).write_bytes(b"with-audio")
        return output_path

    def fake_extract(video_path, output_dir, stem="frame"):
        calls["extract_frames"].append(video_path)
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        first, last = out / f"{stem}-first.jpg", out / f"{stem}-last.jpg"
        first.write_bytes(b"jpg")
        last.write_bytes(b"jpg")
        return FrameFiles(first_frame=str(first), last_frame=str(last))

    monkeypatch.setattr("pipeline.stitcher.concatenate", fake_concatenate)
    monkeypatch.setattr("pipeline.stitcher.overlay_audio", fake_overlay)
    monkeypatch.setattr("pipeline.scene_generator.extract_frames", fake_extract)
    return calls


@pytest.fixture
def make_orchestrator(repository, storage, provider, asset_manager_factory, fake_media):
    def _make(**overrides) -> GenerationOrchestrator:
        kwargs = dict(
            repository=repository,
            storage=storage,
            provider=provider,
            script_writer=None,
            reference_generator=None,
            redis_client=None,
            asset_manager_factory=asset_manager_factory,
        )
        kwargs.update(overrides)
        return GenerationOrchestrator(**kwargs)
    return _make


@pytest.fixture
def three_scene_draft():
    return ScriptDraft(
        overall_prompt="A paper boat's journey from a gutter to the open sea",
        scenes=[
            SceneDraft(scene_number=1, prompt="A paper boat drops into a rain-soaked gutter", duration=8),
            SceneDraft(scene_number=2, prompt="The boat rides a storm drain into a river", duration=8),
            SceneDraft(scene_number=3, prompt="The boat drifts out past the harbor lights", duration=8),
        ],
    )
