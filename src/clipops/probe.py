"""Default video-info probe and single-frame extractor.

imageio-ffmpeg ships no ffprobe, so stream information is read with
moviepy's ffmpeg info parser, the same machinery VideoFileClip uses.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from moviepy.video.io.ffmpeg_reader import ffmpeg_parse_infos

from . import commands
from .errors import ExecutionError
from .executor import ProcessRunner

logger = logging.getLogger(__name__)

_FRAME_OUTPUT_CAP = 64 * 1024 * 1024


@dataclass(frozen=True)
class VideoInfo:
    duration: float
    width: int
    height: int
    fps: float
    bitrate: int | None
    format: str
    codec: str | None = None
    has_audio: bool = False


@dataclass(frozen=True)
class FormatInfo:
    format: str
    container: str
    codec: str | None
    resolution: str
    fps: float
    bitrate: int | None
    duration: float

    @classmethod
    def from_info(cls, info: VideoInfo) -> "FormatInfo":
        return cls(
            format=info.format,
            container=info.format,
            codec=info.codec,
            resolution=f"{info.width}x{info.height}",
            fps=info.fps,
            bitrate=info.bitrate,
            duration=info.duration,
        )


def parse_infos(path: str | Path) -> VideoInfo:
    """Read stream information for a local video file (blocking)."""
    try:
        infos = ffmpeg_parse_infos(str(path))
    except (OSError, ValueError) as e:
        raise ExecutionError(f"Could not read video info for {path}: {e}") from e

    if not infos.get("video_found", False):
        raise ExecutionError(f"No video stream found in {path}")

    width, height = infos.get("video_size") or (0, 0)
    return VideoInfo(
        duration=float(infos.get("duration") or 0.0),
        width=int(width),
        height=int(height),
        fps=float(infos.get("video_fps") or 0.0),
        bitrate=infos.get("bitrate"),
        format=Path(path).suffix.lstrip(".").lower() or "unknown",
        codec=infos.get("video_codec_name"),
        has_audio=bool(infos.get("audio_found", False)),
    )


async def probe_video_info(path: str | Path) -> VideoInfo:
    return await asyncio.to_thread(parse_infos, path)


class FrameExtractor:
    """Grab one frame at a given time as encoded image bytes.

    Args:
        runner: ProcessRunner used for the grab.
        timeout: Seconds allowed for one grab.
    """

    def __init__(self, runner: ProcessRunner, timeout: float = 30.0):
        self.runner = runner
        self.timeout = timeout

    async def __call__(
        self, path: str | Path, time: float, format: str = "png", quality: int = 2,
    ) -> bytes:
        result = await self.runner.run(
            commands.frame_grab(path, time, format, quality),
            timeout=self.timeout,
            max_output_bytes=_FRAME_OUTPUT_CAP,
        )
        if not result.stdout:
            raise ExecutionError(f"No frame decoded at {time:g}s from {path}")
        return result.stdout
