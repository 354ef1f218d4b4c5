"""
S3 storage service for generated scene and final video artifacts.

put() stores bytes or a local file under a logical path and returns the
object's canonical URL. Canonical URLs are what gets persisted; presigned
links are generated on demand when serving API responses.
"""

import asyncio
import io
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError
import structlog

from config import settings
from pipeline.errors import ArtifactPersistError, ErrorCode, PipelineError

logger = structlog.get_logger()


class S3StorageService:
    """
    Service for managing S3 file operations.
    """

    def __init__(self, bucket_name: Optional[str] = None, s3_client=None):
        """Initialize S3 client."""
        self.s3_client = s3_client or boto3.client(
            's3',
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None
        )
        self.bucket_name = bucket_name or settings.STORAGE_BUCKET
        self.region = settings.AWS_REGION

        logger.info(
            "s3_storage_initialized",
            bucket=self.bucket_name,
            region=self.region
        )

    # ===== References =====

    def url_for_key(self, s3_key: str) -> str:
        """Canonical (unsigned) object URL for a key."""
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/{s3_key}"

    def key_from_url(self, url: str) -> Optional[str]:
        """
        Recover the object key from a URL pointing into this bucket.

        Accepts virtual-hosted, path-style and presigned URLs. Returns None for
        URLs that do not belong to this bucket.
        """
        parsed = urlparse(url)
        host = parsed.netloc.lower()
        path = unquote(parsed.path.lstrip("/"))
        bucket = self.bucket_name.lower()

        if host.startswith(f"{bucket}.s3"):
            return path or None
        if host.startswith("s3") and host.endswith("amazonaws.com") and path.startswith(f"{self.bucket_name}/"):
            return path[len(self.bucket_name) + 1:] or None
        return None

    def owns(self, url: str) -> bool:
        return self.key_from_url(url) is not None

    # ===== Writes =====

    def put(self, data: bytes, logical_path: str, content_type: str = None) -> str:
        """
        Store bytes under a logical path.

        Returns:
            Canonical URL of the stored object

        Raises:
            ArtifactPersistError: if the upload fails
        """
        s3_key = validate_s3_key(logical_path, "logical_path")
        self._upload_fileobj(io.BytesIO(data), s3_key, content_type)
        return self.url_for_key(s3_key)

    def put_file(self, file_path: str, logical_path: str, content_type: str = None) -> str:
        """
        Store a local file under a logical path.

        Raises:
            ArtifactPersistError: if the upload fails
        """
        s3_key = validate_s3_key(logical_path, "logical_path")
        try:
            with open(file_path, 'rb') as f:
                self._upload_fileobj(f, s3_key, content_type)
        except OSError as e:
            logger.error("s3_upload_source_unreadable", file_path=file_path, error=str(e))
            raise ArtifactPersistError(f"Cannot read {file_path}: {e}", s3_key) from e
        return self.url_for_key(s3_key)

    def _upload_fileobj(self, file_data, s3_key: str, content_type: Optional[str]) -> None:
        try:
            extra_args = {}
            if content_type:
                extra_args['ContentType'] = content_type

            self.s3_client.upload_fileobj(
                file_data,
                self.bucket_name,
                s3_key,
                ExtraArgs=extra_args
            )

            logger.info(
                "s3_file_uploaded",
                bucket=self.bucket_name,
                s3_key=s3_key,
                content_type=content_type
            )

        except (ClientError, BotoCoreError) as e:
            logger.error(
                "s3_upload_failed",
                s3_key=s3_key,
                error=str(e),
                exc_info=True
            )
            raise ArtifactPersistError(f"Failed to upload file to S3: {e}", s3_key) from e

    # ===== Reads =====

    def get(self, url_or_key: str) -> bytes:
        """
        Fetch an object's bytes by canonical URL, presigned URL or key.

        Raises:
            PipelineError: (STORAGE_ERROR) if the object cannot be read
        """
        s3_key = url_or_key
        if url_or_key.startswith(("http://", "https://")):
            s3_key = self.key_from_url(url_or_key)
            if s3_key is None:
                raise PipelineError(
                    ErrorCode.STORAGE_ERROR,
                    "URL does not belong to the storage bucket",
                    {"url": url_or_key[:100]}
                )

        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=s3_key)
            data = response['Body'].read()
            logger.info("s3_file_read", s3_key=s3_key, size_bytes=len(data))
            return data

        except (ClientError, BotoCoreError) as e:
            logger.error(
                "s3_read_failed",
                s3_key=s3_key,
                error=str(e),
                exc_info=True
            )
            raise PipelineError(
                ErrorCode.STORAGE_ERROR,
                f"Failed to read file from S3: {e}",
                {"s3_key": s3_key}
            ) from e

    def download_file(self, url_or_key: str, local_path: str) -> str:
        """
        Download an object to a local path.

        Returns:
            Local path where file was saved
        """
        s3_key = self.key_from_url(url_or_key) if url_or_key.startswith(("http://", "https://")) else url_or_key
        if s3_key is None:
            raise PipelineError(
                ErrorCode.STORAGE_ERROR,
                "URL does not belong to the storage bucket",
                {"url": url_or_key[:100]}
            )

        try:
            Path(local_path).parent.mkdir(parents=True, exist_ok=True)

            self.s3_client.download_file(
                self.bucket_name,
                s3_key,
                local_path
            )

            logger.info(
                "s3_file_downloaded",
                s3_key=s3_key,
                local_path=local_path
            )

            return local_path

        except (ClientError, BotoCoreError) as e:
            logger.error(
                "s3_download_failed",
                s3_key=s3_key,
                local_path=local_path,
                error=str(e),
                exc_info=True
            )
            raise PipelineError(
                ErrorCode.STORAGE_ERROR,
                f"Failed to download file from S3: {e}",
                {"s3_key": s3_key}
            ) from e

    def generate_presigned_url(
        self,
        url_or_key: str,
        expiry: int = None
    ) -> str:
        """
        Generate presigned URL for an object.

        URLs outside this bucket are returned unchanged.
        """
        if expiry is None:
            expiry = settings.PRESIGNED_URL_EXPIRY

        s3_key = url_or_key
        if url_or_key.startswith(("http://", "https://")):
            s3_key = self.key_from_url(url_or_key)
            if s3_key is None:
                return url_or_key

        try:
            url = self.s3_client.generate_presigned_url(
                'get_object',
                Params={
                    'Bucket': self.bucket_name,
                    'Key': s3_key
                },
                ExpiresIn=expiry
            )

            logger.info(
                "s3_presigned_url_generated",
                s3_key=s3_key,
                expiry_seconds=expiry
            )

            return url

        except ClientError as e:
            logger.error(
                "s3_presigned_url_failed",
                s3_key=s3_key,
                error=str(e),
                exc_info=True
            )
            raise PipelineError(
                ErrorCode.STORAGE_ERROR,
                f"Failed to generate presigned URL: {e}",
                {"s3_key": s3_key}
            ) from e

    # Async wrappers for use in the pipeline

    async def put_file_async(self, file_path: str, logical_path: str, content_type: str = None) -> str:
        """
        Async wrapper for put_file.

        Runs the sync operation in a thread pool executor.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.put_file, file_path, logical_path, content_type)

    async def download_file_async(self, url_or_key: str, local_path: str) -> str:
        """
        Async wrapper for download_file.

        Runs the sync operation in a thread pool executor.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.download_file, url_or_key, local_path)


def scene_video_path(project_id: str, scene_number: int) -> str:
    """
    Logical storage path for a scene clip.

    Example:
        >>> scene_video_path("123", 2)
        'projects/123/scenes/scene-2.mp4'
    """
    return f"projects/{project_id}/scenes/scene-{scene_number}.mp4"


def scene_frame_path(project_id: str, scene_number: int, which: str) -> str:
    """
    Logical storage path for a scene's first or last frame.

    Example:
        >>> scene_frame_path("123", 2, "last")
        'projects/123/frames/scene-2-last.jpg'
    """
    if which not in ("first", "last"):
        raise ValueError(f"Unknown frame position: {which}. Supported: first, last")
    return f"projects/{project_id}/frames/scene-{scene_number}-{which}.jpg"


def final_video_path(project_id: str) -> str:
    return f"projects/{project_id}/final/output.mp4"


def validate_s3_key(s3_key: Optional[str], field_name: str = "S3 key") -> Optional[str]:
    """
    Validate that an S3 key is not a URL.

    S3 keys should be paths like "projects/{id}/file.ext", not URLs like
    "https://..." or "s3://...".

    Args:
        s3_key: S3 key to validate (can be None)
        field_name: Name of the field for error messages

    Returns:
        The validated S3 key (or None if input was None)

    Raises:
        ValueError: If s3_key appears to be a URL instead of a key
    """
    if s3_key is None:
        return None

    s3_key = s3_key.strip()

    if s3_key.startswith(("http://", "https://", "s3://")):
        raise ValueError(
            f"{field_name} must be an S3 key (e.g., 'projects/{{id}}/file.ext'), "
            f"not a URL. Received: {s3_key[:50]}..."
        )

    # Presigned URL query strings expire and must never be stored as keys
    if "?" in s3_key and ("X-Amz-" in s3_key or "AWSAccessKeyId" in s3_key):
        raise ValueError(
            f"{field_name} must be an S3 key, not a presigned URL. "
            f"Presigned URLs contain query parameters and expire. Received: {s3_key[:50]}..."
        )

    return s3_key


# Singleton instance
_s3_storage_service: Optional[S3StorageService] = None


def get_s3_storage_service() -> S3StorageService:
    """
    Get singleton S3 storage service instance.

    Returns:
        S3StorageService instance
    """
    global _s3_storage_service
    if _s3_storage_service is None:
        _s3_storage_service = S3StorageService()
    return _s3_storage_service
