"""Tests for the async ffmpeg runner.

These spawn the bundled imageio-ffmpeg binary against lavfi test sources,
so no media files are needed.
"""

import asyncio
import time

import pytest

from clipops.errors import ExecutionError, OutputLimitExceeded, ProcessTimeoutError
from clipops.executor import ProcessRunner, _tail

MIB = 1024 * 1024


def _lavfi(spec):
    return ["-hide_banner", "-f", "lavfi", "-i", spec]


class TestProcessRunner:
    async def test_success(self, ffmpeg_exe):
        runner = ProcessRunner(ffmpeg_exe)
        result = await runner.run(
            _lavfi("color=c=red:s=64x64:d=1") + ["-f", "null", "-"],
            timeout=30, max_output_bytes=MIB,
        )
        assert result.returncode == 0

    async def test_stdout_is_captured(self, ffmpeg_exe):
        runner = ProcessRunner(ffmpeg_exe)
        result = await runner.run(
            _lavfi("color=c=red:s=32x24:d=1")
            + ["-frames:v", "1", "-f", "image2pipe", "-c:v", "png", "-"],
            timeout=30, max_output_bytes=MIB,
        )
        assert result.stdout.startswith(b"\x89PNG")

    async def test_non_zero_exit(self, ffmpeg_exe, tmp_path):
        runner = ProcessRunner(ffmpeg_exe)
        with pytest.raises(ExecutionError) as exc_info:
            await runner.run(
                ["-hide_banner", "-i", str(tmp_path / "missing.mp4"), "-f", "null", "-"],
                timeout=30, max_output_bytes=MIB,
            )
        err = exc_info.value
        assert err.exit_code not in (None, 0)
        assert "missing.mp4" in err.stderr_tail
        assert err.command[0] == ffmpeg_exe

    async def test_timeout_kills_process(self, ffmpeg_exe):
        runner = ProcessRunner(ffmpeg_exe)
        started = time.monotonic()
        with pytest.raises(ProcessTimeoutError):
            await runner.run(
                ["-re"] + _lavfi("color=s=64x64:d=60") + ["-f", "null", "-"],
                timeout=0.5, max_output_bytes=MIB,
            )
        assert time.monotonic() - started < 10

    async def test_timeout_is_builtin_timeout(self, ffmpeg_exe):
        runner = ProcessRunner(ffmpeg_exe)
        with pytest.raises(TimeoutError):
            await runner.run(
                ["-re"] + _lavfi("color=s=64x64:d=60") + ["-f", "null", "-"],
                timeout=0.3, max_output_bytes=MIB,
            )

    async def test_output_cap(self, ffmpeg_exe):
        runner = ProcessRunner(ffmpeg_exe)
        with pytest.raises(OutputLimitExceeded):
            await runner.run(
                _lavfi("color=s=320x240:d=10")
                + ["-f", "rawvideo", "-pix_fmt", "rgb24", "-"],
                timeout=30, max_output_bytes=100_000,
            )

    async def test_progress_with_expected_duration(self, ffmpeg_exe):
        runner = ProcessRunner(ffmpeg_exe)
        events = []
        await runner.run(
            _lavfi("color=s=64x64:d=3:r=10") + ["-f", "null", "-"],
            timeout=30, max_output_bytes=MIB,
            on_progress=events.append, expected_duration=3,
        )
        assert events
        percents = [e.percent for e in events]
        assert percents == sorted(percents)
        assert percents[-1] >= 90
        assert all(p <= 100 for p in percents)

    async def test_cancellation_propagates(self, ffmpeg_exe):
        runner = ProcessRunner(ffmpeg_exe)
        task = asyncio.create_task(runner.run(
            ["-re"] + _lavfi("color=s=64x64:d=60") + ["-f", "null", "-"],
            timeout=60, max_output_bytes=MIB,
        ))
        await asyncio.sleep(0.5)
        task.cancel()
        started = time.monotonic()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert time.monotonic() - started < 10


class TestTail:
    def test_keeps_last_lines(self):
        text = "\n".join(f"line {i}" for i in range(30))
        assert _tail(text).splitlines() == [f"line {i}" for i in range(20, 30)]

    def test_carriage_returns_split(self):
        assert _tail("a\rb\r\nc\n\n") == "a\nb\nc"
