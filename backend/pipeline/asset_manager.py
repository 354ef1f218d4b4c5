"""
Asset manager for a generation run's local working files.

Each run gets its own isolated directory:
    {TEMP_DIR}/{run_id}/
        scenes/     - Downloaded scene clips
        frames/     - Extracted first/last frames
        audio/      - Soundtrack for the final video
        final/      - Stitched output
"""

import asyncio
import shutil
from pathlib import Path
from typing import Optional
import logging

import aiofiles
import aiohttp

from config import settings

logger = logging.getLogger(__name__)

SUBDIRS = ("scenes", "frames", "audio", "final")


class AssetManager:
    """
    Manages local file operations for one generation run.

    Example:
        >>> am = AssetManager("project-123-run")
        >>> await am.create_job_directory()
        >>> path = await am.download_with_retry("https://example.com/a.mp4", "scene-1.mp4", "scenes")
        >>> await am.cleanup()
    """

    def __init__(self, job_id: str, base_path: Optional[str] = None):
        """
        Initialize asset manager for a specific run.

        Args:
            job_id: Unique identifier for this run's working directory
            base_path: Base directory for all runs (default: settings.TEMP_DIR)
        """
        self.job_id = job_id
        self.base_path = Path(base_path or settings.TEMP_DIR)
        self.job_dir = self.base_path / job_id

    def dir_for(self, subdir: Optional[str] = None) -> Path:
        if subdir in SUBDIRS:
            return self.job_dir / subdir
        return self.job_dir

    async def create_job_directory(self) -> None:
        """Create the run directory and its subdirectories."""
        try:
            self.job_dir.mkdir(parents=True, exist_ok=True)
            for subdir in SUBDIRS:
                (self.job_dir / subdir).mkdir(exist_ok=True)

            logger.info(f"Created job directory structure for {self.job_id}")
        except OSError as e:
            logger.error(f"Failed to create job directory for {self.job_id}: {e}")
            raise

    async def download_file(
        self,
        url: str,
        filename: str,
        subdir: Optional[str] = None,
        timeout: int = 300
    ) -> str:
        """
        Download file from URL into the run directory.

        Returns:
            Absolute path to downloaded file

        Raises:
            aiohttp.ClientError: If download fails
            asyncio.TimeoutError: If download times out
        """
        target_dir = self.dir_for(subdir)
        target_dir.mkdir(parents=True, exist_ok=True)
        file_path = target_dir / filename

        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                    response.raise_for_status()

                    # Stream in chunks to handle large files
                    async with aiofiles.open(file_path, 'wb') as f:
                        async for chunk in response.content.iter_chunked(8192):
                            await f.write(chunk)

            logger.info(f"Downloaded {filename} to {file_path}")
            return str(file_path)

        except aiohttp.ClientError as e:
            logger.error(f"Failed to download {url}: {e}")
            if file_path.exists():
                file_path.unlink()
            raise
        except asyncio.TimeoutError:
            logger.error(f"Download timeout for {url}")
            if file_path.exists():
                file_path.unlink()
            raise

    async def download_with_retry(
        self,
        url: str,
        filename: str,
        subdir: Optional[str] = None,
        max_retries: int = 3,
        timeout: int = 300
    ) -> str:
        """
        Download with exponential backoff retry (immediate, then 1s, 2s, ...).

        Raises:
            aiohttp.ClientError / asyncio.TimeoutError: if all attempts fail
        """
        for attempt in range(max_retries):
            try:
                logger.info(f"Download attempt {attempt + 1}/{max_retries} for {filename}")
                return await self.download_file(url, filename, subdir, timeout)

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt == max_retries - 1:
                    logger.error(f"All {max_retries} download attempts failed for {filename}")
                    raise

                delay = 2 ** attempt
                logger.warning(
                    f"Download attempt {attempt + 1} failed for {filename}, "
                    f"retrying in {delay}s: {e}"
                )
                await asyncio.sleep(delay)

        raise RuntimeError(f"Failed to download {filename} after {max_retries} attempts")

    async def save_file(
        self,
        content: bytes,
        filename: str,
        subdir: Optional[str] = None
    ) -> str:
        """Save binary content into the run directory and return its path."""
        target_dir = self.dir_for(subdir)
        target_dir.mkdir(parents=True, exist_ok=True)
        file_path = target_dir / filename

        async with aiofiles.open(file_path, 'wb') as f:
            await f.write(content)

        logger.info(f"Saved {len(content)} bytes to {file_path}")
        return str(file_path)

    async def read_file(self, path: str) -> bytes:
        async with aiofiles.open(path, 'rb') as f:
            return await f.read()

    async def cleanup(self) -> None:
        """
        Remove all temporary files for this run.

        Safe to call even if directory doesn't exist. Removal failures are
        logged, not raised.
        """
        try:
            if self.job_dir.exists():
                await asyncio.to_thread(shutil.rmtree, self.job_dir)
                logger.info(f"Cleaned up job directory: {self.job_id}")
        except OSError as e:
            logger.error(f"Failed to cleanup job directory {self.job_id}: {e}")

    def __repr__(self) -> str:
        return f"AssetManager(job_id='{self.job_id}', path='{self.job_dir}')"
