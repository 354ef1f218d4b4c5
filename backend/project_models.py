"""
PynamoDB models for scene generation projects.

Uses single-table design with composite sort key pattern:
- Partition Key: PROJECT#<projectId>
- Sort Key: METADATA for the project, SCENE#<sceneNumber> for each scene
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pynamodb.attributes import (
    JSONAttribute,
    NumberAttribute,
    UnicodeAttribute,
    UTCDateTimeAttribute,
)
from pynamodb.exceptions import DoesNotExist
import structlog

from config import settings
from dynamodb_config import BaseDynamoModel
from pipeline.errors import ProjectNotFound, ValidationError
from pipeline.repository import (
    SCENE_FIELDS,
    ProjectRecord,
    SceneRecord,
    check_status_transition,
    merge_config,
)

logger = structlog.get_logger()


def project_pk(project_id: str) -> str:
    return f"PROJECT#{project_id}"


def scene_sk(scene_number: int) -> str:
    return f"SCENE#{scene_number:03d}"


class ProjectItem(BaseDynamoModel):
    """
    DynamoDB model for both project metadata and scene items.

    Item Types:
    1. Project Metadata (entityType="project", SK="METADATA")
    2. Scene (entityType="scene", SK="SCENE#001", etc.)
    """

    class Meta:
        table_name = settings.DYNAMODB_TABLE_NAME
        region = settings.DYNAMODB_REGION
        # DynamoDB Local requires explicit (fake) credentials; production uses
        # the boto3 credential chain.
        if settings.USE_LOCAL_DYNAMODB:
            host = settings.DYNAMODB_ENDPOINT
            aws_access_key_id = settings.dynamodb_access_key_id
            aws_secret_access_key = settings.dynamodb_secret_access_key

    # Primary Keys
    PK = UnicodeAttribute(hash_key=True)  # PROJECT#<id>
    SK = UnicodeAttribute(range_key=True)  # METADATA or SCENE#<sceneNumber>

    # Common Attributes
    entityType = UnicodeAttribute()  # "project" or "scene"
    projectId = UnicodeAttribute()
    createdAt = UTCDateTimeAttribute()
    updatedAt = UTCDateTimeAttribute()

    # Project-specific Attributes
    userId = UnicodeAttribute(null=True)
    status = UnicodeAttribute(null=True)  # draft, generating, completed, failed
    conceptPrompt = UnicodeAttribute(null=True)
    config = JSONAttribute(null=True)
    errorMessage = UnicodeAttribute(null=True)

    # Scene-specific Attributes
    sceneNumber = NumberAttribute(null=True)
    prompt = UnicodeAttribute(null=True)
    duration = NumberAttribute(null=True)
    startTime = NumberAttribute(null=True)
    endTime = NumberAttribute(null=True)
    videoUrl = UnicodeAttribute(null=True)
    firstFrameUrl = UnicodeAttribute(null=True)
    lastFrameUrl = UnicodeAttribute(null=True)
    providerAssetId = UnicodeAttribute(null=True)

    def to_project_record(self) -> ProjectRecord:
        return ProjectRecord(
            project_id=self.projectId,
            user_id=self.userId,
            concept_prompt=self.conceptPrompt or "",
            status=self.status or "draft",
            config=dict(self.config or {}),
            error_message=self.errorMessage,
            created_at=self.createdAt,
            updated_at=self.updatedAt,
        )

    def to_scene_record(self) -> SceneRecord:
        return SceneRecord(
            project_id=self.projectId,
            scene_number=int(self.sceneNumber),
            prompt=self.prompt,
            duration=self.duration,
            start_time=self.startTime,
            end_time=self.endTime,
            video_url=self.videoUrl,
            first_frame_url=self.firstFrameUrl,
            last_frame_url=self.lastFrameUrl,
            provider_asset_id=self.providerAssetId,
            updated_at=self.updatedAt,
        )


class DynamoProjectRepository:
    """
    ProjectRepository backed by the single DynamoDB table.

    Scene writes are whole-item puts keyed by (projectId, sceneNumber), so
    re-running a scene replaces its row rather than adding another.
    """

    def create_project(
        self,
        project_id: str,
        concept_prompt: str,
        config: Dict[str, Any],
        user_id: Optional[str] = None,
    ) -> ProjectRecord:
        now = datetime.now(timezone.utc)

        item = ProjectItem()
        item.PK = project_pk(project_id)
        item.SK = "METADATA"
        item.entityType = "project"
        item.projectId = project_id
        item.userId = user_id
        item.status = "draft"
        item.conceptPrompt = concept_prompt
        item.config = dict(config)
        item.createdAt = now
        item.updatedAt = now
        item.save()

        logger.info("project_created", project_id=project_id)
        return item.to_project_record()

    def _get_project_item(self, project_id: str) -> ProjectItem:
        try:
            return ProjectItem.get(project_pk(project_id), "METADATA")
        except DoesNotExist:
            logger.error("project_not_found", project_id=project_id)
            raise ProjectNotFound(project_id)

    def get_project(self, project_id: str) -> ProjectRecord:
        return self._get_project_item(project_id).to_project_record()

    def update_project(self, project_id: str, fields: Dict[str, Any]) -> ProjectRecord:
        unknown = set(fields) - {"status", "errorMessage", "config"}
        if unknown:
            raise ValidationError(f"Unsupported project fields: {sorted(unknown)}")

        item = self._get_project_item(project_id)

        if "status" in fields:
            check_status_transition(item.status or "draft", fields["status"])
            item.status = fields["status"]
        if "errorMessage" in fields:
            item.errorMessage = fields["errorMessage"]
        if "config" in fields:
            item.config = merge_config(dict(item.config or {}), fields["config"])

        item.updatedAt = datetime.now(timezone.utc)
        item.save()

        logger.info(
            "project_updated",
            project_id=project_id,
            fields=sorted(fields.keys()),
            status=item.status,
        )
        return item.to_project_record()

    def upsert_scene(self, project_id: str, scene_number: int, fields: Dict[str, Any]) -> SceneRecord:
        unknown = set(fields) - set(SCENE_FIELDS)
        if unknown:
            raise ValidationError(f"Unsupported scene fields: {sorted(unknown)}")

        now = datetime.now(timezone.utc)
        created_at = now
        try:
            created_at = ProjectItem.get(project_pk(project_id), scene_sk(scene_number)).createdAt
        except DoesNotExist:
            pass

        item = ProjectItem()
        item.PK = project_pk(project_id)
        item.SK = scene_sk(scene_number)
        item.entityType = "scene"
        item.projectId = project_id
        item.sceneNumber = scene_number
        item.createdAt = created_at
        item.updatedAt = now
        for name in SCENE_FIELDS:
            setattr(item, name, fields.get(name))
        item.save()

        logger.info(
            "scene_upserted",
            project_id=project_id,
            scene_number=scene_number,
            has_video=bool(fields.get("videoUrl")),
        )
        return item.to_scene_record()

    def list_scenes(self, project_id: str) -> List[SceneRecord]:
        items = ProjectItem.query(
            project_pk(project_id),
            ProjectItem.SK.startswith("SCENE#"),
        )
        return sorted((item.to_scene_record() for item in items), key=lambda scene: scene.scene_number)
