"""
Media processing with MoviePy.

All functions are blocking and operate on local files; async callers run them
through asyncio.to_thread.

- concatenate: join scene clips in order
- overlay_audio: lay a soundtrack over a video, looping or trimming it to fit
- extract_frames: save the first and last frames of a clip as JPEGs
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List

import structlog
from moviepy import AudioFileClip, VideoFileClip, afx, concatenate_videoclips
from PIL import Image

logger = structlog.get_logger(__name__)


class MediaProcessingError(Exception):
    """Raised when a media operation fails"""
    pass


@dataclass(frozen=True)
class FrameFiles:
    first_frame: str
    last_frame: str


def concatenate(video_paths: List[str], output_path: str) -> str:
    """
    Concatenate clips in the given order into one MP4.

    Args:
        video_paths: Ordered local clip paths
        output_path: Destination file

    Returns:
        output_path
    """
    if not video_paths:
        raise MediaProcessingError("No clips to concatenate")

    clips = []
    final_clip = None
    try:
        clips = [VideoFileClip(path) for path in video_paths]
        final_clip = concatenate_videoclips(clips, method="compose")
        final_clip.write_videofile(
            output_path,
            codec="libx264",
            audio_codec="aac",
            logger=None  # Suppress MoviePy's progress bar
        )
        logger.info(
            "clips_concatenated",
            clip_count=len(clips),
            duration=final_clip.duration,
            output_path=output_path
        )
        return output_path
    except Exception as e:
        raise MediaProcessingError(f"Concatenation failed: {e}") from e
    finally:
        for clip in clips:
            clip.close()
        if final_clip is not None:
            final_clip.close()


def overlay_audio(video_path: str, audio_path: str, output_path: str) -> str:
    """
    Replace a video's soundtrack with an audio file.

    Audio shorter than the video is looped; longer audio is trimmed.
    """
    video = None
    audio = None
    result = None
    try:
        video = VideoFileClip(video_path)
        audio = AudioFileClip(audio_path)

        if audio.duration < video.duration:
            fitted = audio.with_effects([afx.AudioLoop(duration=video.duration)])
        else:
            fitted = audio.subclipped(0, video.duration)

        result = video.with_audio(fitted)
        result.write_videofile(
            output_path,
            codec="libx264",
            audio_codec="aac",
            logger=None
        )
        logger.info(
            "audio_overlaid",
            video_duration=video.duration,
            audio_duration=audio.duration,
            looped=audio.duration < video.duration,
        )
        return output_path
    except Exception as e:
        raise MediaProcessingError(f"Audio overlay failed: {e}") from e
    finally:
        for clip in (result, audio, video):
            if clip is not None:
                clip.close()


def extract_frames(video_path: str, output_dir: str, stem: str = "frame") -> FrameFiles:
    """
    Save the first and last frames of a clip as JPEGs.

    The first frame is taken slightly after 0 to skip black lead-in frames;
    the last is one frame before the end.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    first_path = out / f"{stem}-first.jpg"
    last_path = out / f"{stem}-last.jpg"

    clip = None
    try:
        clip = VideoFileClip(video_path)
        duration = clip.duration or 0.0
        fps = clip.fps or 24
        first_t = min(0.5, duration * 0.1)
        last_t = max(duration - 1.0 / fps, 0.0)

        Image.fromarray(clip.get_frame(first_t)).convert("RGB").save(first_path, "JPEG", quality=90)
        Image.fromarray(clip.get_frame(last_t)).convert("RGB").save(last_path, "JPEG", quality=90)
    except Exception as e:
        raise MediaProcessingError(f"Frame extraction failed: {e}") from e
    finally:
        if clip is not None:
            clip.close()

    logger.info("frames_extracted", video_path=video_path, first=str(first_path), last=str(last_path))
    return FrameFiles(first_frame=str(first_path), last_frame=str(last_path))
