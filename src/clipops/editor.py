"""Request dispatcher: routes one OperationRequest to one handler.

VideoEditor owns the request lifecycle:
  1. capability check (ToolUnavailable before anything touches disk),
  2. a scratch scope for every file written on the caller's behalf,
  3. source resolution,
  4. exactly one handler, chosen by operation type,
  5. cleanup on every exit path.

Usage:
    editor = VideoEditor.default()
    result = await editor.run(OperationRequest(
        Trim(start_time=5, end_time=12, output_path="clip.mp4"),
        source="lecture.mp4",
    ))
"""

import asyncio
import dataclasses
import json
import logging
import math
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from . import commands
from . import operations as ops
from .config import Settings, load_settings
from .errors import ExecutionError, ToolUnavailable, ValidationError
from .executor import ProcessRunner
from .operations import OperationRequest
from .pipeline import SegmentPipeline, resize_frame
from .progress import ProgressEvent
from .probe import FormatInfo, FrameExtractor, probe_video_info
from .scratch import ScratchScope, scratch_scope
from .sources import resolve_source
from .toolchain import TOOLCHAIN, ToolProbe, install_instructions

logger = logging.getLogger(__name__)

PTS_TIME_RE = re.compile(r"pts_time:\s*([\d.]+)")


# ── Results ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class OutputResult:
    output_path: str
    success: bool = True
    original_size: int | None = None
    compressed_size: int | None = None


@dataclass(frozen=True)
class Scene:
    time: float
    scene: int


@dataclass(frozen=True)
class ExtractedFrame:
    path: str
    frame_number: int
    time: float


@dataclass(frozen=True)
class BatchResult:
    source: Any
    output: str
    success: bool
    error: str | None = None
    result: Any = None


@dataclass
class _Job:
    source: Path | None
    scratch: ScratchScope
    on_progress: Any


def _describe(source) -> Any:
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    return str(source) if source is not None else None


class VideoEditor:
    """Runs OperationRequests against ffmpeg.

    Args:
        probe_info: async (path) -> VideoInfo.
        extract_frame: async (path, time, format, quality) -> bytes.
        tool_available: () -> bool capability check.
        ffmpeg: Executable used for every invocation.
        settings: Timeouts, output caps, scratch location.
        runner: Prebuilt ProcessRunner-compatible object; replaces ffmpeg.

    All collaborators are required; use VideoEditor.default() for the
    stock wiring.
    """

    _HANDLERS = {
        ops.Trim: "_trim",
        ops.Convert: "_convert",
        ops.ExtractAudio: "_extract_audio",
        ops.AddWatermark: "_add_watermark",
        ops.ChangeSpeed: "_change_speed",
        ops.ApplyEffects: "_apply_effects",
        ops.Merge: "_merge",
        ops.ReplaceSegment: "_replace_segment",
        ops.Rotate: "_rotate",
        ops.Crop: "_crop",
        ops.Compress: "_compress",
        ops.AddText: "_add_text",
        ops.AddFade: "_add_fade",
        ops.Reverse: "_reverse",
        ops.CreateLoop: "_create_loop",
        ops.DetectScenes: "_detect_scenes",
        ops.Stabilize: "_stabilize",
        ops.ColorCorrect: "_color_correct",
        ops.PictureInPicture: "_picture_in_picture",
        ops.SplitScreen: "_split_screen",
        ops.CreateTimeLapse: "_create_time_lapse",
        ops.Mute: "_mute",
        ops.AdjustVolume: "_adjust_volume",
        ops.CreateFromFrames: "_create_from_frames",
        ops.FreezeFrame: "_freeze_frame",
        ops.ExportPreset: "_export_preset",
        ops.NormalizeAudio: "_normalize_audio",
        ops.ApplyLUT: "_apply_lut",
        ops.AddTransition: "_add_transition",
        ops.AddAnimatedText: "_add_animated_text",
        ops.ProbeInfo: "_probe_info",
        ops.DetectFormat: "_detect_format",
        ops.ExtractFrame: "_extract_frame",
        ops.ExtractFrames: "_extract_frames",
        ops.GeneratePreview: "_generate_preview",
        ops.Batch: "_batch",
    }

    def __init__(
        self,
        probe_info,
        extract_frame,
        tool_available,
        *,
        ffmpeg: str | None = None,
        settings: Settings | None = None,
        runner=None,
    ):
        if runner is None and ffmpeg is not None:
            runner = ProcessRunner(ffmpeg)
        missing = [
            name for name, value in (
                ("probe_info", probe_info),
                ("extract_frame", extract_frame),
                ("tool_available", tool_available),
                ("ffmpeg or runner", runner),
            )
            if value is None
        ]
        if missing:
            raise TypeError(f"VideoEditor is missing collaborators: {', '.join(missing)}")

        self.probe_info = probe_info
        self.extract_frame = extract_frame
        self.tool_available = tool_available
        self.settings = settings or Settings()
        self.runner = runner
        self.pipeline = SegmentPipeline(
            self.runner, probe_info, extract_frame, self.settings,
        )

    @classmethod
    def default(cls, settings: Settings | None = None) -> "VideoEditor":
        """Wire the shipped collaborators (moviepy probe, ffmpeg frame grab)."""
        settings = settings or load_settings()
        probe = ToolProbe(settings.ffmpeg) if settings.ffmpeg else TOOLCHAIN
        ffmpeg = probe.executable() or "ffmpeg"
        extractor = FrameExtractor(ProcessRunner(ffmpeg), timeout=settings.probe_timeout)
        return cls(probe_video_info, extractor, probe, ffmpeg=ffmpeg, settings=settings)

    # ── Entry points ───────────────────────────────────────────────

    async def run(self, request: OperationRequest):
        """Execute one request and return its result.

        Raises:
            ToolUnavailable: ffmpeg is missing. Nothing is written.
            ValidationError, SourceResolutionError, ExecutionError: see
                clipops.errors. Scratch files are removed before any of
                these propagate.
        """
        if not await self._tool_ready():
            raise ToolUnavailable(install_instructions())

        op = request.operation
        handler = getattr(self, self._HANDLERS[type(op)])
        request_id = request.request_id or uuid.uuid4().hex[:12]
        logger.info("Request %s: %s", request_id, op.name)

        with scratch_scope(request_id, self.settings.scratch_dir) as scratch:
            output = getattr(op, "output_path", None)
            if output:
                output = Path(output)
                output.parent.mkdir(parents=True, exist_ok=True)
                if not output.exists():
                    scratch.register_output(output)

            source = None
            if op.requires_source:
                resolved = await resolve_source(
                    request.source, scratch, timeout=self.settings.http_timeout,
                )
                source = resolved.path

            result = await handler(op, _Job(source, scratch, request.on_progress))
        logger.info("Request %s: done", request_id)
        return result

    def run_sync(self, request: OperationRequest):
        return asyncio.run(self.run(request))

    # ── Helpers ────────────────────────────────────────────────────

    async def _tool_ready(self) -> bool:
        # The first probe spawns `ffmpeg -version`; keep it off the event loop.
        cached = getattr(self.tool_available, "cached_result", None)
        available = cached() if cached is not None else None
        if available is None:
            available = await asyncio.to_thread(self.tool_available)
        return available

    async def _invoke(self, args, op, job: _Job, expected_duration=None):
        timeout, cap = self.settings.limits(op.long_running)
        return await self.runner.run(
            args,
            timeout=timeout,
            max_output_bytes=cap,
            on_progress=job.on_progress,
            expected_duration=expected_duration,
        )

    async def _single(self, args, op, job: _Job, expected_duration=None) -> OutputResult:
        await self._invoke(args, op, job, expected_duration)
        return OutputResult(str(op.output_path))

    async def _resolve(self, ref, job: _Job, prefix: str, suffix: str = ".mp4") -> Path:
        resolved = await resolve_source(
            ref, job.scratch, prefix=prefix, suffix=suffix,
            timeout=self.settings.http_timeout,
        )
        return resolved.path

    async def _audio_info(self, job: _Job, what: str):
        info = await self.probe_info(job.source)
        if not info.has_audio:
            raise ValidationError(f"{what}: video does not contain an audio stream")
        return info

    def _text_file(self, text: str, job: _Job) -> Path:
        path = job.scratch.new_path("text", ".txt", created_by="drawtext")
        path.write_text(text, encoding="utf-8")
        return path

    # ── Single-invocation handlers ─────────────────────────────────

    async def _trim(self, op, job):
        args = commands.trim(job.source, op.output_path, op.start_time, op.end_time, op.copy)
        return await self._single(args, op, job, op.end_time - op.start_time)

    async def _convert(self, op, job):
        args = commands.convert(
            job.source, op.output_path, op.format, op.quality,
            op.bitrate, op.fps, op.resolution,
        )
        return await self._single(args, op, job)

    async def _export_preset(self, op, job):
        preset = ops.EXPORT_PRESETS[op.preset]
        args = commands.convert(
            job.source, op.output_path,
            format=preset["format"],
            quality="high",
            bitrate=preset["bitrate"],
            fps=preset["fps"],
            resolution=preset["resolution"],
        )
        return await self._single(args, op, job)

    async def _extract_audio(self, op, job):
        await self._audio_info(job, "ExtractAudio")
        args = commands.extract_audio(job.source, op.output_path, op.format, op.bitrate)
        return await self._single(args, op, job)

    async def _add_watermark(self, op, job):
        image = await self._resolve(op.watermark, job, "temp-watermark", ".png")
        args = commands.watermark(
            job.source, image, op.output_path, op.position, op.opacity, op.size,
        )
        return await self._single(args, op, job)

    async def _picture_in_picture(self, op, job):
        overlay = await self._resolve(op.overlay_video, job, "temp-overlay")
        args = commands.picture_in_picture(
            job.source, overlay, op.output_path, op.position, op.size, op.opacity,
        )
        return await self._single(args, op, job)

    async def _change_speed(self, op, job):
        speed = op.speed
        info = await self.probe_info(job.source)
        args = commands.change_speed(job.source, op.output_path, speed, info.has_audio)
        return await self._single(args, op, job, info.duration / speed)

    async def _create_time_lapse(self, op, job):
        return await self._change_speed(op, job)

    async def _apply_effects(self, op, job):
        return await self._single(
            commands.apply_effects(job.source, op.output_path, op.filters), op, job,
        )

    async def _color_correct(self, op, job):
        args = commands.color_correct(
            job.source, op.output_path,
            brightness=op.brightness, contrast=op.contrast,
            saturation=op.saturation, hue=op.hue, temperature=op.temperature,
        )
        return await self._single(args, op, job)

    async def _rotate(self, op, job):
        return await self._single(
            commands.rotate(job.source, op.output_path, op.angle, op.flip), op, job,
        )

    async def _crop(self, op, job):
        args = commands.crop(job.source, op.output_path, op.x, op.y, op.width, op.height)
        return await self._single(args, op, job)

    async def _compress(self, op, job):
        max_bitrate = op.max_bitrate
        if op.target_size_mb is not None:
            info = await self.probe_info(job.source)
            target = commands.target_size_bitrate(op.target_size_mb, info.duration)
            max_bitrate = min(max_bitrate, target) if max_bitrate else target
        args = commands.compress(job.source, op.output_path, op.quality, max_bitrate)
        await self._invoke(args, op, job)
        return OutputResult(
            str(op.output_path),
            original_size=job.source.stat().st_size,
            compressed_size=Path(op.output_path).stat().st_size,
        )

    async def _add_text(self, op, job):
        text_filter = commands.drawtext_filter(
            self._text_file(op.text, job),
            position=op.position,
            font_size=op.font_size,
            font_color=op.font_color,
            background_color=op.background_color,
            start_time=op.start_time,
            end_time=op.end_time,
        )
        return await self._single(
            commands.draw_text(job.source, op.output_path, text_filter), op, job,
        )

    async def _add_animated_text(self, op, job):
        text_filter = commands.drawtext_filter(
            self._text_file(op.text, job),
            position=op.position,
            font_size=op.font_size,
            font_color=op.font_color,
            background_color=op.background_color,
            start_time=op.start_time,
            end_time=op.end_time,
            animation=op.animation,
            font_path=op.font_path,
            font_name=op.font_name,
        )
        return await self._single(
            commands.draw_text(job.source, op.output_path, text_filter), op, job,
        )

    async def _add_fade(self, op, job):
        info = await self.probe_info(job.source)
        if not op.fade_in and not (op.fade_out and info.duration > op.fade_out):
            raise ValidationError(
                f"AddFade: fade_out ({op.fade_out}) must be shorter than the video "
                f"({info.duration:.3f}s)"
            )
        args = commands.fade(job.source, op.output_path, info.duration, op.fade_in, op.fade_out)
        return await self._single(args, op, job)

    async def _reverse(self, op, job):
        info = await self.probe_info(job.source)
        args = commands.reverse(job.source, op.output_path, info.has_audio)
        return await self._single(args, op, job)

    async def _mute(self, op, job):
        if op.ranges:
            await self._audio_info(job, "Mute")
        return await self._single(
            commands.mute(job.source, op.output_path, op.ranges), op, job,
        )

    async def _adjust_volume(self, op, job):
        await self._audio_info(job, "AdjustVolume")
        args = commands.adjust_volume(job.source, op.output_path, op.volume, op.ranges)
        return await self._single(args, op, job)

    async def _normalize_audio(self, op, job):
        await self._audio_info(job, "NormalizeAudio")
        args = commands.normalize_audio(job.source, op.output_path, op.method, op.level)
        return await self._single(args, op, job)

    async def _apply_lut(self, op, job):
        lut = await self._resolve(op.lut, job, "temp-lut", ".cube")
        args = commands.apply_lut(job.source, op.output_path, lut, op.intensity)
        return await self._single(args, op, job)

    async def _stabilize(self, op, job):
        transforms = job.scratch.new_path("transforms", ".trf", created_by="vidstabdetect")
        timeout, cap = self.settings.limits(long_running=True)
        try:
            await self.runner.run(
                commands.stabilize_detect(job.source, transforms),
                timeout=timeout, max_output_bytes=cap,
            )
        except ExecutionError as e:
            if isinstance(e, TimeoutError):
                raise
            # vidstab is an optional ffmpeg build flag; fall back to denoise.
            logger.warning("vidstabdetect failed, applying hqdn3d denoise instead: %s", e.args[0])
            return await self._single(commands.denoise(job.source, op.output_path), op, job)
        args = commands.stabilize_transform(job.source, op.output_path, transforms, op.smoothing)
        return await self._single(args, op, job)

    async def _detect_scenes(self, op, job):
        result = await self._invoke(commands.scene_detect(job.source, op.threshold), op, job)
        times = [
            float(m.group(1))
            for line in result.stderr.splitlines() if "showinfo" in line
            for m in [PTS_TIME_RE.search(line)] if m
        ]
        scenes = [Scene(time=t, scene=i + 1) for i, t in enumerate(times)]
        if op.output_path:
            with open(op.output_path, "w") as f:
                json.dump([dataclasses.asdict(s) for s in scenes], f, indent=2)
        return scenes

    async def _probe_info(self, op, job):
        return await self.probe_info(job.source)

    async def _detect_format(self, op, job):
        return FormatInfo.from_info(await self.probe_info(job.source))

    # ── Frame handlers ─────────────────────────────────────────────

    async def _grab(self, op, job, time: float) -> bytes:
        frame = await self.extract_frame(job.source, time, op.format, op.quality)
        if not frame:
            raise ExecutionError(f"{op.name}: no frame decoded at {time:g}s")
        return frame

    def _check_times(self, op, info, times) -> None:
        late = [t for t in times if t > info.duration + 1e-3]
        if late:
            raise ValidationError(
                f"{op.name}: times {late} exceed video duration ({info.duration:.3f})"
            )

    def _write_frame(self, job, path: Path, data: bytes) -> None:
        if not path.exists():
            job.scratch.register_output(path)
        path.write_bytes(data)

    async def _extract_frame(self, op, job) -> bytes:
        info = await self.probe_info(job.source)
        self._check_times(op, info, [op.time])
        frame = await self._grab(op, job, op.time)
        if op.width or op.height:
            frame = await asyncio.to_thread(
                resize_frame, frame, op.width, op.height, op.format,
            )
        return frame

    async def _extract_frames(self, op, job):
        if op.interval is not None:
            return await self._sweep_frames(op, job)

        info = await self.probe_info(job.source)
        self._check_times(op, info, op.times)
        frames = [await self._grab(op, job, t) for t in op.times]
        if op.output_directory is None:
            return frames

        out_dir = Path(op.output_directory)
        out_dir.mkdir(parents=True, exist_ok=True)
        results = []
        for i, (t, data) in enumerate(zip(op.times, frames), start=1):
            path = out_dir / f"frame-{i:03d}.{op.format}"
            self._write_frame(job, path, data)
            results.append(ExtractedFrame(str(path), i, t))
        return results

    async def _sweep_frames(self, op, job):
        info = await self.probe_info(job.source)
        end = info.duration if op.end_time is None else min(op.end_time, info.duration)
        if op.start_time >= end:
            raise ValidationError(
                f"ExtractFrames start_time ({op.start_time}) is past the end of the "
                f"video ({info.duration:.3f})"
            )
        count = max(1, math.floor((end - op.start_time) / op.interval + 1e-6))

        if op.output_directory is None:
            out_dir = job.scratch.new_dir("frames", created_by="extract_frames")
        else:
            out_dir = Path(op.output_directory)
            out_dir.mkdir(parents=True, exist_ok=True)
        paths = [out_dir / f"frame-{i:03d}.{op.format}" for i in range(1, count + 1)]
        if op.output_directory is not None:
            for path in paths:
                if not path.exists():
                    job.scratch.register_output(path)

        args = commands.frame_sweep(
            job.source, out_dir / f"frame-%03d.{op.format}", op.interval,
            format=op.format, quality=op.quality,
            start=op.start_time, duration=end - op.start_time, count=count,
        )
        await self._invoke(args, op, job, end - op.start_time)

        written = [p for p in paths if p.exists()]
        if not written:
            raise ExecutionError("ExtractFrames: ffmpeg wrote no frames")
        if op.output_directory is None:
            return [p.read_bytes() for p in written]
        return [
            ExtractedFrame(str(p), i, op.start_time + (i - 1) * op.interval)
            for i, p in enumerate(written, start=1)
        ]

    async def _generate_preview(self, op, job) -> list[ExtractedFrame]:
        info = await self.probe_info(job.source)
        out_dir = Path(op.output_directory)
        out_dir.mkdir(parents=True, exist_ok=True)
        step = info.duration / (op.count + 1)
        results = []
        for i in range(1, op.count + 1):
            t = step * i
            path = out_dir / f"preview-{i:03d}.{op.format}"
            self._write_frame(job, path, await self._grab(op, job, t))
            results.append(ExtractedFrame(str(path), i, t))
            if job.on_progress is not None:
                job.on_progress(ProgressEvent(i / op.count * 100, t))
        return results

    # ── Multi-input handlers ───────────────────────────────────────

    async def _stack(self, op, job, layout: str, grid):
        sources = [
            await self._resolve(v, job, f"temp-input{i + 1}")
            for i, v in enumerate(op.videos)
        ]
        info = await self.probe_info(sources[0])
        cell = (max(2, info.width - info.width % 2), max(2, info.height - info.height % 2))
        args = commands.stack(sources, op.output_path, layout, cell, grid or (2, 2))
        return await self._single(args, op, job)

    async def _merge(self, op, job):
        if op.mode == "sequential":
            sources = [
                await self._resolve(v, job, f"temp-input{i + 1}")
                for i, v in enumerate(op.videos)
            ]
            await self.pipeline.join(sources, op.output_path, job.scratch, job.on_progress)
            return OutputResult(str(op.output_path))
        return await self._stack(op, job, op.mode, op.grid)

    async def _split_screen(self, op, job):
        return await self._stack(op, job, op.layout, op.grid)

    async def _create_loop(self, op, job):
        await self.pipeline.repeat(
            job.source, op.count, op.output_path, job.scratch,
            job.on_progress, reencode=op.smooth,
        )
        return OutputResult(str(op.output_path))

    async def _add_transition(self, op, job):
        first = await self.probe_info(job.source)
        if op.second_video is None:
            args = commands.fade_through(job.source, op.output_path, op.duration, first.duration)
            return await self._single(args, op, job)

        if op.duration >= first.duration:
            raise ValidationError(
                f"AddTransition duration ({op.duration}) must be shorter than the "
                f"first video ({first.duration:.3f}s)"
            )
        second_path = await self._resolve(op.second_video, job, "temp-second")
        second = await self.probe_info(second_path)
        width = max(first.width, second.width)
        height = max(first.height, second.height)
        args = commands.transition(
            job.source, second_path, op.output_path,
            type=op.type,
            duration=op.duration,
            first_duration=first.duration,
            size=(width - width % 2, height - height % 2),
            fps=first.fps or 30,
            direction=op.direction,
            with_audio=first.has_audio and second.has_audio,
        )
        return await self._single(
            args, op, job, first.duration + second.duration - op.duration,
        )

    # ── Pipeline handlers ──────────────────────────────────────────

    async def _replace_segment(self, op, job):
        await self.pipeline.replace_segment(job.source, op, job.scratch, job.on_progress)
        return OutputResult(str(op.output_path))

    async def _freeze_frame(self, op, job):
        await self.pipeline.freeze_frame(job.source, op, job.scratch, job.on_progress)
        return OutputResult(str(op.output_path))

    async def _create_from_frames(self, op, job):
        await self.pipeline.create_from_frames(op, job.scratch, job.on_progress)
        return OutputResult(str(op.output_path))

    # ── Batch ──────────────────────────────────────────────────────

    async def _batch(self, op, job) -> list[BatchResult]:
        out_dir = Path(op.output_directory)
        out_dir.mkdir(parents=True, exist_ok=True)
        semaphore = asyncio.Semaphore(self.settings.batch_concurrency)
        done = 0

        async def run_item(i: int, item: ops.BatchItem) -> BatchResult:
            nonlocal done
            item_op = item.operation
            output = getattr(item_op, "output_path", None)
            if output and not Path(output).is_absolute():
                output = out_dir / output
                item_op = dataclasses.replace(item_op, output_path=str(output))
            described = _describe(item.source)
            try:
                async with semaphore:
                    result = await self.run(OperationRequest(
                        item_op, source=item.source,
                        request_id=f"{job.scratch.request_id}-{i + 1}",
                    ))
            except Exception as e:
                logger.warning("Batch item %d failed: %s", i + 1, e)
                outcome = BatchResult(described, str(output or ""), False, error=str(e))
            else:
                outcome = BatchResult(described, str(output or ""), True, result=result)
            done += 1
            if job.on_progress is not None:
                job.on_progress(ProgressEvent(done / len(op.items) * 100, 0.0))
            return outcome

        return list(await asyncio.gather(
            *(run_item(i, item) for i, item in enumerate(op.items))
        ))
