"""Run one ffmpeg invocation as a child process.

One call to ProcessRunner.run spawns exactly one process, drains stdout
and stderr concurrently, forwards progress events, and enforces a
deadline and an output-size cap. The process is killed on timeout, on
overflow, and when the awaiting task is cancelled.
"""

import asyncio
import logging
import shlex
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from .errors import ExecutionError, OutputLimitExceeded, ProcessTimeoutError
from .progress import ProgressEvent, ProgressParser

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024
_TAIL_LINES = 10

ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class ProcessOutput:
    returncode: int
    stdout: bytes
    stderr: str


class _OverflowGuard:
    """Shared byte counter across both pipes."""

    def __init__(self, limit: int):
        self.limit = limit
        self.total = 0

    def add(self, n: int) -> bool:
        self.total += n
        return self.total > self.limit


class ProcessRunner:
    """Async ffmpeg runner.

    Args:
        ffmpeg: Path to the ffmpeg executable. Prepended to every argv.
    """

    def __init__(self, ffmpeg: str):
        self.ffmpeg = ffmpeg

    async def run(
        self,
        args: list[str],
        *,
        timeout: float,
        max_output_bytes: int,
        on_progress: ProgressCallback | None = None,
        expected_duration: float | None = None,
    ) -> ProcessOutput:
        """Run ffmpeg with the given arguments and wait for it.

        Args:
            args: Arguments after the executable (no shell involved).
            timeout: Seconds before the process is killed.
            max_output_bytes: Combined stdout+stderr cap.
            on_progress: Called with each ProgressEvent as it is parsed.
            expected_duration: Output duration used for percentages when
                ffmpeg cannot report one (e.g. concat demuxer input).

        Returns:
            ProcessOutput with the captured stdout bytes and stderr text.

        Raises:
            ProcessTimeoutError: Deadline passed.
            OutputLimitExceeded: Output cap exceeded.
            ExecutionError: Non-zero exit status.
        """
        cmd = [self.ffmpeg, *[str(a) for a in args]]
        logger.debug("Running: %s", shlex.join(cmd))

        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        guard = _OverflowGuard(max_output_bytes)
        parser = ProgressParser(expected_duration) if on_progress else None
        stdout_chunks: list[bytes] = []
        stderr_chunks: list[str] = []

        async def read_stdout():
            while True:
                chunk = await proc.stdout.read(_CHUNK)
                if not chunk:
                    return False
                stdout_chunks.append(chunk)
                if guard.add(len(chunk)):
                    _signal_kill(proc)
                    return True

        async def read_stderr():
            while True:
                chunk = await proc.stderr.read(_CHUNK)
                if not chunk:
                    break
                text = chunk.decode("utf-8", errors="replace")
                stderr_chunks.append(text)
                if guard.add(len(chunk)):
                    _signal_kill(proc)
                    return True
                if parser is not None:
                    for event in parser.feed(text):
                        on_progress(event)
            if parser is not None:
                for event in parser.close():
                    on_progress(event)
            return False

        async def drain():
            overflowed = await asyncio.gather(read_stdout(), read_stderr())
            if any(overflowed):
                return True
            await proc.wait()
            return False

        try:
            overflowed = await asyncio.wait_for(drain(), timeout=timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            raise ProcessTimeoutError(
                f"ffmpeg timed out after {timeout:g} seconds",
                stderr_tail=_tail("".join(stderr_chunks)),
                command=cmd,
            ) from None
        except BaseException:
            await _kill(proc)
            raise

        stderr = "".join(stderr_chunks)
        if overflowed:
            await _kill(proc)
            raise OutputLimitExceeded(
                f"ffmpeg output exceeded {max_output_bytes} bytes",
                stderr_tail=_tail(stderr),
                command=cmd,
            )

        if proc.returncode != 0:
            raise ExecutionError(
                f"ffmpeg exited with code {proc.returncode}",
                exit_code=proc.returncode,
                stderr_tail=_tail(stderr),
                command=cmd,
            )

        return ProcessOutput(proc.returncode, b"".join(stdout_chunks), stderr)


def _signal_kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass


async def _kill(proc: asyncio.subprocess.Process) -> None:
    _signal_kill(proc)
    await proc.wait()


def _tail(stderr: str, lines: int = _TAIL_LINES) -> str:
    kept = deque(
        (line for line in stderr.replace("\r", "\n").splitlines() if line.strip()),
        maxlen=lines,
    )
    return "\n".join(kept)
