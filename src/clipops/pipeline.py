"""Multi-stage operations: segment replacement, freeze frames, frame sequences.

These edits cannot be expressed as one ffmpeg invocation. Each is split
into ordered stages (cut, generate, concatenate) that share the request's
scratch scope:

  replace_segment:  part1 [0, start)  ->  replacement  ->  part3 [end, duration)
  freeze_frame:     part1 [0, t)      ->  still (d s)  ->  part3 [t, duration)
  join:             clip1             ->  clip2        ->  ...
  repeat:           source listed count times in one concat pass

Every cut or generated stage is re-encoded to the main source's
StreamProfile (size, frame rate, audio layout), so the final concat
stage can stream-copy. Stages run strictly in order; a failure after the
first stage is reported as PartialPipelineFailure.
"""

import asyncio
import io
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from . import commands
from .commands import StreamProfile
from .config import Settings
from .errors import ExecutionError, PartialPipelineFailure, ValidationError
from .progress import ProgressEvent
from .scratch import ScratchScope
from .sources import resolve_source

logger = logging.getLogger(__name__)

# Slack for float comparisons against probed durations.
_EPS = 1e-3


@dataclass
class PipelineStage:
    name: str
    output_path: Path
    args: list[str]
    input_path: Path | None = None
    trim_range: tuple[float, float | None] | None = None
    filter_chain: str | None = None
    duration: float | None = None


class _StageProgress:
    """Map per-stage percentages onto one 0-100 scale weighted by duration."""

    def __init__(self, callback, total: float):
        self.callback = callback
        self.total = total
        self.done = 0.0
        self.last = 0.0

    def for_stage(self, weight: float):
        if self.callback is None or self.total <= 0 or not weight:
            return None
        base = self.done

        def forward(event: ProgressEvent):
            percent = min(100.0, (base + weight * event.percent / 100) / self.total * 100)
            if percent >= self.last:
                self.last = percent
                self.callback(ProgressEvent(percent, event.time, event.speed))

        return forward

    def finish(self, weight: float | None):
        self.done += weight or 0.0


class _StageRun:
    """Executes stages in order and remembers which ones completed."""

    def __init__(self, runner, settings: Settings, progress: _StageProgress):
        self.runner = runner
        self.settings = settings
        self.progress = progress
        self.completed: list[str] = []

    async def run(self, stage: PipelineStage) -> None:
        timeout, cap = self.settings.limits(long_running=True)
        logger.info("Stage %s -> %s", stage.name, stage.output_path.name)
        try:
            await self.runner.run(
                stage.args,
                timeout=timeout,
                max_output_bytes=cap,
                on_progress=self.progress.for_stage(stage.duration),
                expected_duration=stage.duration,
            )
        except ExecutionError as e:
            if self.completed:
                raise PartialPipelineFailure(stage.name, self.completed, e) from e
            raise
        self.progress.finish(stage.duration)
        self.completed.append(stage.name)


def _normalize_frame(ref, dest: Path, size):
    """Write one frame to dest as PNG, letterboxed to size (blocking).

    Returns the size used, which is the frame's own size when size is None.
    """
    in_memory = isinstance(ref, (bytes, bytearray))
    img = Image.open(io.BytesIO(bytes(ref)) if in_memory else ref)
    with img:
        if size is None:
            size = img.size
        if img.size != tuple(size):
            ImageOps.pad(img.convert("RGB"), size, color="black").save(dest, "PNG")
        elif img.format == "PNG" and not in_memory:
            shutil.copyfile(ref, dest)
        else:
            img.save(dest, "PNG")
    return size


def resize_frame(data: bytes, width: int | None, height: int | None, format: str) -> bytes:
    """Scale encoded image bytes; a missing dimension keeps the frame's own."""
    with Image.open(io.BytesIO(data)) as img:
        size = (width or img.width, height or img.height)
        if size == img.size:
            return data
        resized = img.convert("RGB").resize(size, Image.Resampling.LANCZOS)
    buf = io.BytesIO()
    resized.save(buf, "PNG" if format == "png" else "JPEG")
    return buf.getvalue()


class SegmentPipeline:
    """Runs the multi-stage operations against injected collaborators.

    Args:
        runner: ProcessRunner for each stage.
        probe_info: async (path) -> VideoInfo.
        extract_frame: async (path, time, format, quality) -> bytes.
        settings: Timeouts, caps and HTTP timeout.
    """

    def __init__(self, runner, probe_info, extract_frame, settings: Settings):
        self.runner = runner
        self.probe_info = probe_info
        self.extract_frame = extract_frame
        self.settings = settings

    # ── Shared stage builders ──────────────────────────────────────

    def _cut_stage(
        self, name: str, source: Path, start: float, duration: float | None,
        profile: StreamProfile, has_audio: bool, scratch: ScratchScope,
    ) -> PipelineStage:
        out = scratch.new_path(name, ".mp4", created_by=f"stage:{name}")
        end = start + duration if duration is not None else None
        return PipelineStage(
            name=name,
            output_path=out,
            args=commands.encode_stage(
                commands.segment_input(source, start), out, profile,
                duration=duration, input_has_audio=has_audio,
            ),
            input_path=source,
            trim_range=(start, end),
            filter_chain=profile.video_filter(),
            duration=duration,
        )

    async def _concat(
        self, run: _StageRun, stages: list[PipelineStage], output: Path,
        scratch: ScratchScope, total: float,
    ) -> None:
        parts = [
            s.output_path for s in stages
            if s.output_path.exists() and s.output_path.stat().st_size > 0
        ]
        if not parts:
            raise ExecutionError("No video parts were produced")

        manifest = scratch.new_path("concat", ".txt", created_by="stage:concat")
        manifest.write_text(commands.concat_manifest_text(parts))
        await run.run(PipelineStage(
            name="concat",
            output_path=Path(output),
            args=commands.concat(manifest, output),
            input_path=manifest,
            duration=total,
        ))

    # ── Frames ─────────────────────────────────────────────────────

    async def write_frames(
        self, frames, scratch: ScratchScope, size: tuple[int, int] | None = None,
    ) -> tuple[str, int, tuple[int, int]]:
        """Normalize frames to PNG files named frame-%06d.png in a scratch dir.

        Frames may be bytes, paths or URLs. The output size is size, or the
        first frame's size; other frames are letterboxed to it.

        Returns:
            (ffmpeg input pattern, frame count, (width, height))
        """
        if not frames:
            raise ValidationError("At least one frame is required")

        frame_dir = scratch.new_dir("frames", created_by="stage:frames")
        for i, ref in enumerate(frames):
            dest = frame_dir / f"frame-{i:06d}.png"
            if not isinstance(ref, (bytes, bytearray)):
                resolved = await resolve_source(
                    ref, scratch, prefix="temp-frame", suffix=".img",
                    timeout=self.settings.http_timeout,
                )
                ref = resolved.path
            try:
                size = await asyncio.to_thread(_normalize_frame, ref, dest, size)
            except (UnidentifiedImageError, OSError) as e:
                if isinstance(e, FileNotFoundError):
                    raise
                raise ValidationError(f"Frame {i}: not a readable image ({e})") from e

        width, height = size
        # yuv420p needs even dimensions.
        size = (width - width % 2 or 2, height - height % 2 or 2)
        return str(frame_dir / "frame-%06d.png"), len(frames), size

    async def create_from_frames(self, op, scratch: ScratchScope, on_progress=None) -> Path:
        """Encode an image sequence into op.output_path."""
        pattern, count, size = await self.write_frames(op.frames, scratch, op.resolution)
        duration = count / op.fps
        output = Path(op.output_path)
        run = _StageRun(self.runner, self.settings, _StageProgress(on_progress, duration))
        await run.run(PipelineStage(
            name="frames",
            output_path=output,
            args=commands.frames_to_video(
                pattern, output, op.fps, size,
                format=op.format, quality=op.quality, bitrate=op.bitrate,
            ),
            filter_chain=commands.letterbox(*size),
            duration=duration,
        ))
        return output

    # ── Segment replacement ────────────────────────────────────────

    async def replace_segment(
        self, source: Path, op, scratch: ScratchScope, on_progress=None,
    ) -> Path:
        info = await self.probe_info(source)
        if op.target_end > info.duration + _EPS:
            raise ValidationError(
                f"ReplaceSegment target_end ({op.target_end}) exceeds video "
                f"duration ({info.duration:.3f})"
            )
        target_end = min(op.target_end, info.duration)
        profile = StreamProfile.from_info(info)
        stages = []

        if op.target_start > _EPS:
            stages.append(self._cut_stage(
                "part1", source, 0.0, op.target_start, profile, info.has_audio, scratch,
            ))

        if op.replacement_video is not None:
            replacement = await resolve_source(
                op.replacement_video, scratch, prefix="temp-replacement",
                timeout=self.settings.http_timeout,
            )
            repl_info = await self.probe_info(replacement.path)
            if op.replacement_start >= repl_info.duration:
                raise ValidationError(
                    f"ReplaceSegment replacement_start ({op.replacement_start}) is past "
                    f"the end of the replacement video ({repl_info.duration:.3f})"
                )
            stages.append(self._cut_stage(
                "replacement", replacement.path, op.replacement_start,
                op.replacement_duration or (target_end - op.target_start),
                profile, repl_info.has_audio, scratch,
            ))
        else:
            pattern, count, _ = await self.write_frames(
                op.replacement_frames, scratch, (profile.width, profile.height),
            )
            frames_duration = count / op.replacement_fps
            out = scratch.new_path("replacement", ".mp4", created_by="stage:replacement")
            stages.append(PipelineStage(
                name="replacement",
                output_path=out,
                args=commands.encode_stage(
                    commands.frame_sequence_input(pattern, op.replacement_fps), out, profile,
                    duration=frames_duration, input_has_audio=False,
                ),
                filter_chain=profile.video_filter(),
                duration=frames_duration,
            ))

        remaining = info.duration - target_end
        if remaining > _EPS:
            stages.append(self._cut_stage(
                "part3", source, target_end, remaining, profile, info.has_audio, scratch,
            ))

        return await self._run_and_join(stages, op.output_path, scratch, on_progress)

    # ── Freeze frame ───────────────────────────────────────────────

    async def freeze_frame(
        self, source: Path, op, scratch: ScratchScope, on_progress=None,
    ) -> Path:
        info = await self.probe_info(source)
        if op.time > info.duration + _EPS:
            raise ValidationError(
                f"FreezeFrame time ({op.time}) exceeds video duration ({info.duration:.3f})"
            )
        t = min(op.time, info.duration)
        profile = StreamProfile.from_info(info)

        # The last decodable frame starts one frame before the end.
        grab_at = max(0.0, min(t, info.duration - 1 / profile.fps))
        frame = scratch.new_path("freeze-frame", ".png", created_by="stage:freeze")
        frame.write_bytes(await self.extract_frame(source, grab_at, "png", 2))

        stages = []
        if t > _EPS:
            stages.append(self._cut_stage(
                "part1", source, 0.0, t, profile, info.has_audio, scratch,
            ))
        still = scratch.new_path("freeze", ".mp4", created_by="stage:freeze")
        stages.append(PipelineStage(
            name="freeze",
            output_path=still,
            args=commands.encode_stage(
                commands.still_input(frame, profile.fps), still, profile,
                duration=op.duration, input_has_audio=False,
            ),
            input_path=frame,
            filter_chain=profile.video_filter(),
            duration=op.duration,
        ))
        remaining = info.duration - t
        if remaining > _EPS:
            stages.append(self._cut_stage(
                "part3", source, t, remaining, profile, info.has_audio, scratch,
            ))

        return await self._run_and_join(stages, op.output_path, scratch, on_progress)

    # ── Joining whole clips ────────────────────────────────────────

    async def join(
        self, sources: list[Path], output, scratch: ScratchScope, on_progress=None,
    ) -> Path:
        """Concatenate clips end to end, normalized to the first clip's profile."""
        infos = [await self.probe_info(path) for path in sources]
        profile = StreamProfile.from_info(infos[0])
        stages = [
            self._cut_stage(
                f"clip{i + 1}", path, 0.0, info.duration, profile, info.has_audio, scratch,
            )
            for i, (path, info) in enumerate(zip(sources, infos))
        ]
        return await self._run_and_join(stages, output, scratch, on_progress)

    async def repeat(
        self, source: Path, count: int, output, scratch: ScratchScope,
        on_progress=None, reencode: bool = False,
    ) -> Path:
        """Play source count times back to back through the concat demuxer."""
        info = await self.probe_info(source)
        total = info.duration * count
        manifest = scratch.new_path("loop", ".txt", created_by="stage:loop")
        manifest.write_text(commands.concat_manifest_text([source] * count))
        run = _StageRun(self.runner, self.settings, _StageProgress(on_progress, total))
        await run.run(PipelineStage(
            name="loop",
            output_path=Path(output),
            args=commands.concat(manifest, output, copy=not reencode),
            input_path=source,
            duration=total,
        ))
        return Path(output)

    async def _run_and_join(self, stages, output, scratch, on_progress) -> Path:
        total = sum(s.duration or 0.0 for s in stages)
        # Stages plus the concat pass, weighted by duration.
        run = _StageRun(self.runner, self.settings, _StageProgress(on_progress, total * 2))
        for stage in stages:
            await run.run(stage)
        await self._concat(run, stages, Path(output), scratch, total)
        return Path(output)
