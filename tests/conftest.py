"""Shared test fixtures for clipops tests."""

import io
import subprocess
from pathlib import Path

import imageio_ffmpeg
import pytest
from PIL import Image

from clipops.config import Settings
from clipops.errors import ExecutionError
from clipops.executor import ProcessOutput
from clipops.probe import VideoInfo

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


def _make_video(path, duration, color="blue", audio=True, size="320x240", rate=10):
    cmd = [
        _FFMPEG, "-y",
        "-f", "lavfi", "-i", f"color=c={color}:s={size}:d={duration}:r={rate}",
    ]
    if audio:
        cmd += ["-f", "lavfi", "-i", "anullsrc=r=44100:cl=mono", "-shortest"]
    cmd += ["-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p"]
    if audio:
        cmd += ["-c:a", "aac", "-b:a", "32k"]
    cmd.append(str(path))
    subprocess.run(cmd, check=True, capture_output=True)
    return path


@pytest.fixture
def ffmpeg_exe():
    return _FFMPEG


@pytest.fixture
def make_video(tmp_path):
    """Factory: make_video(name, duration, color=..., audio=...) -> Path."""
    def _make(name="source.mp4", duration=5, **kwargs):
        return _make_video(tmp_path / name, duration, **kwargs)
    return _make


@pytest.fixture
def source_video(make_video):
    """A 5-second test video (320x240, 10fps) with a silent audio track."""
    return make_video("source.mp4", 5)


@pytest.fixture
def scratch_dir(tmp_path):
    return tmp_path / "scratch"


@pytest.fixture
def settings(scratch_dir):
    return Settings(scratch_dir=scratch_dir)


def png_bytes(size=(32, 24), color=(255, 0, 0)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, "PNG")
    return buf.getvalue()


def fake_info(duration=10.0, width=320, height=240, fps=10.0, has_audio=True):
    return VideoInfo(
        duration=duration, width=width, height=height, fps=fps,
        bitrate=100, format="mp4", codec="h264", has_audio=has_audio,
    )


class FakeRunner:
    """Records argument lists instead of spawning ffmpeg.

    Writes a few bytes to the output path (last argument) so downstream
    stages see a non-empty file, unless the output is "-".

    Args:
        fail_at: Index of the call that raises ExecutionError.
        stderr: Diagnostic text returned from every call.
    """

    def __init__(self, fail_at=None, stderr=""):
        self.fail_at = fail_at
        self.stderr = stderr
        self.calls = []

    async def run(self, args, *, timeout, max_output_bytes, on_progress=None,
                  expected_duration=None):
        index = len(self.calls)
        self.calls.append([str(a) for a in args])
        if index == self.fail_at:
            raise ExecutionError("ffmpeg exited with code 1", exit_code=1, command=args)
        out = str(args[-1])
        if out != "-":
            Path(out).write_bytes(b"\x00" * 16)
        return ProcessOutput(0, b"", self.stderr)


@pytest.fixture
def fake_runner():
    return FakeRunner()


def make_probe(info_by_name=None, default=None):
    """Async probe returning fake VideoInfo keyed by file name."""
    info_by_name = info_by_name or {}
    default = default or fake_info()

    async def probe(path):
        return info_by_name.get(Path(path).name, default)

    return probe


async def fake_extract_frame(path, time, format="png", quality=2):
    return png_bytes()
