"""
Tests for the per-run working directory manager.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from pipeline.asset_manager import SUBDIRS, AssetManager


@pytest.fixture
def asset_manager(tmp_path):
    return AssetManager("run-1", base_path=str(tmp_path))


@pytest.mark.asyncio
async def test_directory_layout_and_cleanup(asset_manager, tmp_path):
    await asset_manager.create_job_directory()

    for subdir in SUBDIRS:
        assert (tmp_path / "run-1" / subdir).is_dir()

    await asset_manager.cleanup()
    assert not (tmp_path / "run-1").exists()

    # second cleanup is a no-op
    await asset_manager.cleanup()


@pytest.mark.asyncio
async def test_save_and_read(asset_manager, tmp_path):
    path = await asset_manager.save_file(b"frame-bytes", "last.jpg", "frames")

    assert path == str(tmp_path / "run-1" / "frames" / "last.jpg")
    assert await asset_manager.read_file(path) == b"frame-bytes"


def test_unknown_subdir_uses_run_root(asset_manager, tmp_path):
    assert asset_manager.dir_for("elsewhere") == tmp_path / "run-1"
    assert asset_manager.dir_for("scenes") == tmp_path / "run-1" / "scenes"


class TestDownloadWithRetry:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, asset_manager):
        download = AsyncMock(side_effect=[aiohttp.ClientError("reset"), "/tmp/run-1/scenes/a.mp4"])

        with patch.object(asset_manager, "download_file", download), \
                patch("pipeline.asset_manager.asyncio.sleep", new=AsyncMock()) as sleep:
            path = await asset_manager.download_with_retry("https://x/a.mp4", "a.mp4", "scenes")

        assert path == "/tmp/run-1/scenes/a.mp4"
        assert download.await_count == 2
        sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, asset_manager):
        download = AsyncMock(side_effect=asyncio.TimeoutError())

        with patch.object(asset_manager, "download_file", download), \
                patch("pipeline.asset_manager.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(asyncio.TimeoutError):
                await asset_manager.download_with_retry("https://x/a.mp4", "a.mp4", max_retries=2)

        assert download.await_count == 2


@pytest.mark.asyncio
async def test_cleanup_failure_is_logged_not_raised(asset_manager, tmp_path):
    await asset_manager.create_job_directory()

    with patch("pipeline.asset_manager.shutil.rmtree", side_effect=PermissionError("busy")):
        await asset_manager.cleanup()

    assert (tmp_path / "run-1").exists()
