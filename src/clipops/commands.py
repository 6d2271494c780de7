"""ffmpeg argument builders.

Every function here is pure: it takes paths and parameters and returns
the argument list that follows the ffmpeg executable. Nothing is quoted
for a shell because nothing goes through one. Filter values that embed
paths are escaped with common.escape_filter_path.
"""

import math
from dataclasses import dataclass
from pathlib import Path

from .common import (
    OVERLAY_POSITIONS,
    TEXT_POSITIONS,
    escape_filter_path,
    escape_filter_value,
    fmt_num,
)

# ── Encoding tables ────────────────────────────────────────────────

CRF_BY_QUALITY = {"low": 28, "medium": 23, "high": 18, "ultra": 15}

# mpeg4 has no CRF mode; qscale values roughly matching the CRF table.
QSCALE_BY_QUALITY = {"low": 8, "medium": 5, "high": 3, "ultra": 2}

COMPRESS_PRESETS = {
    "low": (32, "fast"),
    "medium": (28, "medium"),
    "high": (23, "slow"),
    "ultra": (18, "veryslow"),
}

FORMAT_CODECS = {
    "mp4": ("libx264", "aac"),
    "mov": ("libx264", "aac"),
    "mkv": ("libx264", "aac"),
    "avi": ("mpeg4", "libmp3lame"),
    "webm": ("libvpx-vp9", "libopus"),
}

AUDIO_CODECS = {
    "mp3": "libmp3lame",
    "wav": "pcm_s16le",
    "aac": "aac",
    "ogg": "libvorbis",
}

SEPIA_MATRIX = ".393:.769:.189:0:.349:.686:.168:0:.272:.534:.131"

XFADE_BASE = {
    "fade": "fade",
    "wipe": "wipeleft",
    "slide": "slideleft",
    "zoom": "zoomin",
    "rotate": "radial",
    "dissolve": "dissolve",
    "blur": "hblur",
    "circle": "circleopen",
    "pixelize": "pixelize",
}

XFADE_DIRECTIONAL = {
    "wipe": {"left": "wipeleft", "right": "wiperight", "up": "wipeup", "down": "wipedown"},
    "slide": {"left": "slideleft", "right": "slideright", "up": "slideup", "down": "slidedown"},
    "zoom": {"in": "zoomin", "out": "circleclose"},
}

SILENCE = "anullsrc=r=48000:cl=stereo"
ANIMATION_RAMP = 1.0


def _base() -> list[str]:
    return ["-hide_banner", "-y"]


def _video_quality(codec: str, quality: str, bitrate: int | None) -> list[str]:
    if bitrate:
        return ["-b:v", f"{int(bitrate)}k"]
    if codec == "libx264":
        return ["-crf", str(CRF_BY_QUALITY[quality])]
    if codec == "libvpx-vp9":
        return ["-crf", str(CRF_BY_QUALITY[quality]), "-b:v", "0"]
    return ["-q:v", str(QSCALE_BY_QUALITY[quality])]


def letterbox(width: int, height: int) -> str:
    """Fit inside width x height, centred on black bars."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
    )


# ── Stream profiles for concat-compatible stages ───────────────────

@dataclass(frozen=True)
class StreamProfile:
    """Shape every pipeline stage is encoded to.

    Stages that share a profile can be joined by the concat demuxer
    without re-encoding.
    """
    width: int
    height: int
    fps: float
    has_audio: bool

    @classmethod
    def from_info(cls, info) -> "StreamProfile":
        # yuv420p needs even dimensions.
        width = max(2, int(info.width) - int(info.width) % 2)
        height = max(2, int(info.height) - int(info.height) % 2)
        fps = info.fps if info.fps and info.fps > 0 else 30
        return cls(width, height, fps, bool(info.has_audio))

    def video_filter(self) -> str:
        return (
            f"{letterbox(self.width, self.height)},setsar=1,"
            f"fps={fmt_num(self.fps)},format=yuv420p"
        )

    def codec_args(self) -> list[str]:
        args = ["-c:v", "libx264", "-crf", "20", "-pix_fmt", "yuv420p"]
        if self.has_audio:
            args += ["-c:a", "aac", "-ar", "48000", "-ac", "2"]
        return args


def encode_stage(
    input_args: list[str],
    output: str | Path,
    profile: StreamProfile,
    *,
    duration: float | None = None,
    input_has_audio: bool = True,
) -> list[str]:
    """Encode one pipeline stage to the given profile.

    When the profile carries audio but the input does not, a silent track
    is synthesized so every stage has the same stream layout.
    """
    args = _base() + list(input_args)
    synth_audio = profile.has_audio and not input_has_audio
    if synth_audio:
        args += ["-f", "lavfi", "-i", SILENCE]
    if duration is not None:
        args += ["-t", fmt_num(duration)]
    args += ["-vf", profile.video_filter(), "-map", "0:v:0"]
    if profile.has_audio:
        args += ["-map", "1:a:0" if synth_audio else "0:a:0"]
    else:
        args += ["-an"]
    if synth_audio:
        args += ["-shortest"]
    args += profile.codec_args()
    args.append(str(output))
    return args


def segment_input(source: str | Path, start: float = 0.0) -> list[str]:
    args = ["-ss", fmt_num(start)] if start > 0 else []
    return args + ["-i", str(source)]


def still_input(image: str | Path, fps: float) -> list[str]:
    return ["-loop", "1", "-framerate", fmt_num(fps), "-i", str(image)]


def frame_sequence_input(pattern: str | Path, fps: float) -> list[str]:
    return ["-framerate", fmt_num(fps), "-i", str(pattern)]


# ── Concat ─────────────────────────────────────────────────────────

def concat_manifest_text(paths) -> str:
    """Concat demuxer list: one file '<path>' line per input."""
    lines = []
    for p in paths:
        escaped = str(Path(p).resolve()).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


def concat(manifest: str | Path, output: str | Path, copy: bool = True) -> list[str]:
    args = _base() + ["-f", "concat", "-safe", "0", "-i", str(manifest)]
    if copy:
        args += ["-c", "copy"]
    else:
        args += ["-c:v", "libx264", "-crf", "20", "-pix_fmt", "yuv420p", "-c:a", "aac"]
    return args + [str(output)]


# ── Single-invocation operations ───────────────────────────────────

def trim(
    source: str | Path,
    output: str | Path,
    start: float,
    end: float,
    copy: bool = False,
) -> list[str]:
    """Cut [start, end) from source.

    copy=True stream-copies (fast, keyframe-aligned); otherwise the cut
    is re-encoded and frame-accurate.
    """
    if copy:
        codec_args = ["-c", "copy"]
    else:
        codec_args = [
            "-c:v", "libx264", "-crf", "20", "-pix_fmt", "yuv420p",
            "-c:a", "aac",
        ]
    return _base() + [
        "-ss", fmt_num(start),
        "-i", str(source),
        "-t", fmt_num(end - start),
        *codec_args,
        str(output),
    ]


def convert(
    source: str | Path,
    output: str | Path,
    format: str = "mp4",
    quality: str = "medium",
    bitrate: int | None = None,
    fps: float | None = None,
    resolution: tuple[int, int] | None = None,
) -> list[str]:
    vcodec, acodec = FORMAT_CODECS[format]
    args = _base() + ["-i", str(source), "-c:v", vcodec]
    args += _video_quality(vcodec, quality, bitrate)
    if fps:
        args += ["-r", fmt_num(fps)]
    if resolution:
        args += ["-vf", f"scale={resolution[0]}:{resolution[1]}"]
    args += ["-pix_fmt", "yuv420p", "-c:a", acodec, str(output)]
    return args


def extract_audio(
    source: str | Path, output: str | Path, format: str = "mp3", bitrate: int = 128,
) -> list[str]:
    args = _base() + ["-i", str(source), "-vn", "-acodec", AUDIO_CODECS[format]]
    if format != "wav":
        args += ["-ab", f"{int(bitrate)}k"]
    return args + [str(output)]


def _overlay_chain(label: str, opacity: float, size=None) -> str:
    scale = f"scale={size[0]}:{size[1]}," if size else ""
    return f"{scale}format=rgba,colorchannelmixer=aa={fmt_num(opacity)}[{label}]"


def watermark(
    source: str | Path,
    image: str | Path,
    output: str | Path,
    position: str = "bottom-right",
    opacity: float = 0.5,
    size: tuple[int, int] | None = None,
) -> list[str]:
    graph = (
        f"[1:v]{_overlay_chain('wm', opacity, size)};"
        f"[0:v][wm]overlay={OVERLAY_POSITIONS[position]}[v]"
    )
    return _base() + [
        "-i", str(source), "-i", str(image),
        "-filter_complex", graph,
        "-map", "[v]", "-map", "0:a?",
        "-c:v", "libx264", "-pix_fmt", "yuv420p", "-c:a", "copy",
        str(output),
    ]


def picture_in_picture(
    source: str | Path,
    overlay: str | Path,
    output: str | Path,
    position: str = "bottom-right",
    size: tuple[int, int] = (320, 180),
    opacity: float = 1.0,
) -> list[str]:
    graph = (
        f"[1:v]{_overlay_chain('overlay', opacity, size)};"
        f"[0:v][overlay]overlay={OVERLAY_POSITIONS[position]}[v]"
    )
    return _base() + [
        "-i", str(source), "-i", str(overlay),
        "-filter_complex", graph,
        "-map", "[v]", "-map", "0:a?",
        "-c:v", "libx264", "-pix_fmt", "yuv420p", "-c:a", "copy",
        str(output),
    ]


# ── Speed ──────────────────────────────────────────────────────────

def atempo_chain(speed: float) -> list[float]:
    """Split a tempo factor into atempo stages each within [0.5, 2.0].

    The product of the returned factors equals speed.
    """
    if speed <= 0:
        raise ValueError(f"speed must be > 0, got {speed}")
    if 0.5 <= speed <= 2.0:
        return [speed]
    n = math.ceil(math.log2(max(speed, 1 / speed)))
    factor = speed ** (1 / n)
    return [min(2.0, max(0.5, factor))] * n


def change_speed(
    source: str | Path, output: str | Path, speed: float, has_audio: bool = True,
) -> list[str]:
    video = f"[0:v]setpts={fmt_num(1 / speed, 6)}*PTS[v]"
    args = _base() + ["-i", str(source)]
    if has_audio:
        tempo = ",".join(f"atempo={fmt_num(f, 6)}" for f in atempo_chain(speed))
        args += ["-filter_complex", f"{video};[0:a]{tempo}[a]", "-map", "[v]", "-map", "[a]"]
    else:
        args += ["-filter_complex", video, "-map", "[v]"]
    return args + [str(output)]


# ── Filters ────────────────────────────────────────────────────────

def _amount(f, default):
    if f.intensity is not None:
        return f.intensity
    if f.value is not None:
        return f.value
    return default


def effect_filter(f) -> str:
    """Translate one EffectFilter into an ffmpeg filter expression."""
    if f.type == "blur":
        return f"boxblur={fmt_num(_amount(f, 5))}"
    if f.type == "brightness":
        return f"eq=brightness={_amount(f, 0) / 100:.2f}"
    if f.type == "contrast":
        return f"eq=contrast={1 + _amount(f, 0) / 100:.2f}"
    if f.type == "saturation":
        return f"eq=saturation={1 + _amount(f, 0) / 100:.2f}"
    if f.type == "grayscale":
        return "hue=s=0"
    if f.type == "sepia":
        return f"colorchannelmixer={SEPIA_MATRIX}"
    if f.type == "invert":
        return "negate"
    if f.type == "sharpen":
        return f"unsharp=5:5:{fmt_num(_amount(f, 1.0))}:5:5:0.0"
    if f.type == "noise":
        return f"noise=alls={fmt_num(_amount(f, 20))}:allf=t+u"
    raise ValueError(f"Unknown effect type: '{f.type}'")


def apply_effects(source: str | Path, output: str | Path, filters) -> list[str]:
    chain = ",".join(effect_filter(f) for f in filters)
    return _base() + ["-i", str(source), "-vf", chain, "-c:a", "copy", str(output)]


def color_correct_chain(
    brightness=None, contrast=None, saturation=None, hue=None, temperature=None,
) -> str:
    parts = []
    eq = []
    if brightness is not None:
        eq.append(f"brightness={brightness / 100:.2f}")
    if contrast is not None:
        eq.append(f"contrast={1 + contrast / 100:.2f}")
    if saturation is not None:
        eq.append(f"saturation={1 + saturation / 100:.2f}")
    if eq:
        parts.append("eq=" + ":".join(eq))
    if hue is not None:
        parts.append(f"hue=h={fmt_num(hue)}")
    if temperature is not None:
        t = temperature
        parts.append(
            f"colorbalance=rs={t / 100:.2f}:gs={-t / 200:.2f}:bs={-t / 100:.2f}"
        )
    return ",".join(parts)


def color_correct(source: str | Path, output: str | Path, **adjustments) -> list[str]:
    chain = color_correct_chain(**adjustments)
    return _base() + ["-i", str(source), "-vf", chain, "-c:a", "copy", str(output)]


def rotation_chain(angle: int | None = None, flip: str | None = None) -> str:
    parts = []
    if angle == 90:
        parts.append("transpose=1")
    elif angle == 180:
        parts += ["transpose=1", "transpose=1"]
    elif angle == 270:
        parts.append("transpose=2")
    if flip in ("horizontal", "both"):
        parts.append("hflip")
    if flip in ("vertical", "both"):
        parts.append("vflip")
    return ",".join(parts)


def rotate(
    source: str | Path, output: str | Path, angle: int | None = None, flip: str | None = None,
) -> list[str]:
    return _base() + [
        "-i", str(source), "-vf", rotation_chain(angle, flip), "-c:a", "copy", str(output),
    ]


def crop(source: str | Path, output: str | Path, x: int, y: int, width: int, height: int) -> list[str]:
    return _base() + [
        "-i", str(source),
        "-vf", f"crop={int(width)}:{int(height)}:{int(x)}:{int(y)}",
        "-c:a", "copy",
        str(output),
    ]


def target_size_bitrate(target_mb: float, duration: float, audio_kbps: int = 128) -> int:
    """Video bitrate (kbps) that lands the file near target_mb megabytes."""
    if duration <= 0:
        raise ValueError(f"duration must be > 0, got {duration}")
    total_kbps = target_mb * 8 * 1024 / duration
    return max(100, int(total_kbps - audio_kbps))


def compress(
    source: str | Path,
    output: str | Path,
    quality: str = "medium",
    max_bitrate: int | None = None,
) -> list[str]:
    crf, preset = COMPRESS_PRESETS[quality]
    args = _base() + [
        "-i", str(source),
        "-c:v", "libx264", "-crf", str(crf), "-preset", preset,
        "-pix_fmt", "yuv420p",
    ]
    if max_bitrate:
        b = int(max_bitrate)
        args += ["-b:v", f"{b}k", "-maxrate", f"{b}k", "-bufsize", f"{b * 2}k"]
    return args + ["-c:a", "aac", "-b:a", "128k", str(output)]


def fade(
    source: str | Path,
    output: str | Path,
    duration: float,
    fade_in: float | None = None,
    fade_out: float | None = None,
) -> list[str]:
    parts = []
    if fade_in:
        parts.append(f"fade=t=in:st=0:d={fmt_num(fade_in)}")
    if fade_out and duration > fade_out:
        parts.append(f"fade=t=out:st={fmt_num(duration - fade_out)}:d={fmt_num(fade_out)}")
    if not parts:
        raise ValueError("fade requires fade_in, or fade_out shorter than the video")
    return _base() + ["-i", str(source), "-vf", ",".join(parts), "-c:a", "copy", str(output)]


def reverse(source: str | Path, output: str | Path, has_audio: bool = True) -> list[str]:
    args = _base() + ["-i", str(source), "-vf", "reverse"]
    if has_audio:
        args += ["-af", "areverse"]
    return args + [str(output)]


def scene_detect(source: str | Path, threshold: float = 0.3) -> list[str]:
    return _base() + [
        "-i", str(source),
        "-vf", f"select='gt(scene,{fmt_num(threshold)})',showinfo",
        "-an", "-f", "null", "-",
    ]


def stabilize_detect(source: str | Path, transforms: str | Path) -> list[str]:
    return _base() + [
        "-i", str(source),
        "-vf", f"vidstabdetect=shakiness=5:accuracy=15:result='{escape_filter_path(transforms)}'",
        "-f", "null", "-",
    ]


def stabilize_transform(
    source: str | Path, output: str | Path, transforms: str | Path, smoothing: int = 10,
) -> list[str]:
    return _base() + [
        "-i", str(source),
        "-vf", f"vidstabtransform=smoothing={int(smoothing)}:input='{escape_filter_path(transforms)}'",
        "-c:a", "copy",
        str(output),
    ]


def denoise(source: str | Path, output: str | Path) -> list[str]:
    return _base() + ["-i", str(source), "-vf", "hqdn3d=4:3:6:4.5", "-c:a", "copy", str(output)]


# ── Stacking (merge side-by-side / grid, split screen) ─────────────

def stack(
    sources,
    output: str | Path,
    layout: str,
    cell: tuple[int, int],
    grid: tuple[int, int] = (2, 2),
) -> list[str]:
    """Place several videos in one frame.

    layout is "side-by-side" (hstack), "top-bottom" (vstack) or "grid"
    (xstack with cols x rows cells). Every input is letterboxed to cell.
    Audio comes from the first input when it has any.
    """
    w, h = cell
    if layout == "grid":
        cols, rows = grid
        count = cols * rows
    else:
        count = len(sources)
    used = list(sources)[:count]

    args = _base()
    for src in used:
        args += ["-i", str(src)]

    chains = [
        f"[{i}:v]{letterbox(w, h)},setsar=1[s{i}]" for i in range(len(used))
    ]
    labels = "".join(f"[s{i}]" for i in range(len(used)))
    if layout == "side-by-side":
        chains.append(f"{labels}hstack=inputs={len(used)}[v]")
    elif layout == "top-bottom":
        chains.append(f"{labels}vstack=inputs={len(used)}[v]")
    elif layout == "grid":
        cells = "|".join(
            f"{(i % cols) * w}_{(i // cols) * h}" for i in range(len(used))
        )
        chains.append(f"{labels}xstack=inputs={len(used)}:layout={cells}[v]")
    else:
        raise ValueError(f"Unknown stack layout: '{layout}'")

    return args + [
        "-filter_complex", ";".join(chains),
        "-map", "[v]", "-map", "0:a?",
        "-c:v", "libx264", "-pix_fmt", "yuv420p", "-c:a", "aac",
        str(output),
    ]


# ── Audio ──────────────────────────────────────────────────────────

def _ranged_volume(r, volume: float) -> str:
    return (
        f"volume=enable='between(t,{fmt_num(r.start)},{fmt_num(r.end)})'"
        f":volume={fmt_num(volume)}"
    )


def mute(source: str | Path, output: str | Path, ranges=()) -> list[str]:
    args = _base() + ["-i", str(source)]
    if not ranges:
        return args + ["-c:v", "copy", "-an", str(output)]
    chain = ",".join(_ranged_volume(r, 0) for r in ranges)
    return args + ["-af", chain, "-c:v", "copy", str(output)]


def adjust_volume(
    source: str | Path, output: str | Path, volume: float = 100, ranges=(),
) -> list[str]:
    if ranges:
        chain = ",".join(
            _ranged_volume(r, (r.volume if r.volume is not None else volume) / 100)
            for r in ranges
        )
    else:
        chain = f"volume={fmt_num(volume / 100)}"
    return _base() + ["-i", str(source), "-af", chain, "-c:v", "copy", str(output)]


def normalize_audio(
    source: str | Path, output: str | Path, method: str = "lufs", level: float = -23.0,
) -> list[str]:
    if method == "lufs":
        chain = f"loudnorm=I={fmt_num(level)}:TP=-1.5:LRA=11"
    else:
        chain = f"volume={fmt_num(level)}dB"
    return _base() + ["-i", str(source), "-af", chain, "-c:v", "copy", str(output)]


# ── Color lookup ───────────────────────────────────────────────────

def apply_lut(
    source: str | Path, output: str | Path, lut: str | Path, intensity: float = 1.0,
) -> list[str]:
    lut3d = f"lut3d=file='{escape_filter_path(lut)}'"
    args = _base() + ["-i", str(source)]
    if intensity >= 1.0:
        args += ["-vf", f"{lut3d},format=yuv420p"]
    else:
        graph = (
            f"[0:v]split[base][graded];[graded]{lut3d}[lut];"
            f"[lut][base]blend=all_mode=normal:all_opacity={fmt_num(intensity)},"
            f"format=yuv420p[v]"
        )
        args += ["-filter_complex", graph, "-map", "[v]", "-map", "0:a?"]
    return args + ["-c:v", "libx264", "-crf", "18", "-c:a", "copy", str(output)]


# ── Transitions ────────────────────────────────────────────────────

def xfade_name(type: str, direction: str | None = None) -> str:
    if direction and type in XFADE_DIRECTIONAL:
        return XFADE_DIRECTIONAL[type].get(direction, XFADE_BASE[type])
    return XFADE_BASE[type]


def transition(
    first: str | Path,
    second: str | Path,
    output: str | Path,
    type: str,
    duration: float,
    first_duration: float,
    size: tuple[int, int],
    fps: float,
    direction: str | None = None,
    with_audio: bool = False,
) -> list[str]:
    """Cross-transition from first into second with xfade.

    Both inputs are normalized to size and fps; the transition starts
    duration seconds before the end of first.
    """
    w, h = size
    norm = f"{letterbox(w, h)},setsar=1,fps={fmt_num(fps)},format=yuv420p"
    offset = max(0.0, first_duration - duration)
    graph = (
        f"[0:v]{norm}[v0];[1:v]{norm}[v1];"
        f"[v0][v1]xfade=transition={xfade_name(type, direction)}"
        f":duration={fmt_num(duration)}:offset={fmt_num(offset)}[v]"
    )
    maps = ["-map", "[v]"]
    codecs = ["-c:v", "libx264", "-pix_fmt", "yuv420p"]
    if with_audio:
        graph += f";[0:a][1:a]acrossfade=d={fmt_num(duration)}[a]"
        maps += ["-map", "[a]"]
        codecs += ["-c:a", "aac"]
    return _base() + [
        "-i", str(first), "-i", str(second),
        "-filter_complex", graph, *maps, *codecs, str(output),
    ]


def fade_through(
    source: str | Path, output: str | Path, duration: float, total: float,
) -> list[str]:
    """Single-clip fade transition: fade in from black and out to black."""
    parts = [f"fade=t=in:st=0:d={fmt_num(duration)}"]
    if total > duration:
        parts.append(f"fade=t=out:st={fmt_num(total - duration)}:d={fmt_num(duration)}")
    return _base() + ["-i", str(source), "-vf", ",".join(parts), "-c:a", "copy", str(output)]


# ── Text ───────────────────────────────────────────────────────────

def _ramp_length(animation: str, start: float, end: float) -> str:
    # Enter and exit ramps share the window when both are present.
    span = end - start
    if animation in ("fade", "slide"):
        span /= 2
    return fmt_num(min(ANIMATION_RAMP, span))


def _ramp_alpha(animation: str, start: float, end: float) -> str | None:
    s, e, r = fmt_num(start), fmt_num(end), _ramp_length(animation, start, end)
    if animation == "fade":
        return (
            f"if(lt(t,{s}),0,if(lt(t,{s}+{r}),(t-{s})/{r},"
            f"if(lt(t,{e}-{r}),1,if(lt(t,{e}),({e}-t)/{r},0))))"
        )
    if animation == "fade_in":
        return f"if(lt(t,{s}),0,if(lt(t,{s}+{r}),(t-{s})/{r},1))"
    if animation == "fade_out":
        return f"if(lt(t,{e}-{r}),1,if(lt(t,{e}),({e}-t)/{r},0))"
    return None


def _ramp_x(animation: str, start: float, end: float, x: str) -> str | None:
    s, e, r = fmt_num(start), fmt_num(end), _ramp_length(animation, start, end)
    enter = f"-text_w+({x}+text_w)*(t-{s})/{r}"
    leave = f"{x}+(w-{x})*(t-({e}-{r}))/{r}"
    if animation == "slide":
        return (
            f"if(lt(t,{s}),-text_w,if(lt(t,{s}+{r}),{enter},"
            f"if(lt(t,{e}-{r}),{x},if(lt(t,{e}),{leave},w))))"
        )
    if animation == "slide_in":
        return f"if(lt(t,{s}),-text_w,if(lt(t,{s}+{r}),{enter},{x}))"
    if animation == "slide_out":
        return f"if(lt(t,{e}-{r}),{x},if(lt(t,{e}),{leave},w))"
    return None


def drawtext_filter(
    text_file: str | Path,
    *,
    position: str = "bottom-center",
    font_size: int = 24,
    font_color: str = "white",
    background_color: str | None = "black@0.5",
    start_time: float | None = None,
    end_time: float | None = None,
    animation: str = "none",
    font_path: str | None = None,
    font_name: str | None = None,
) -> str:
    """drawtext expression reading its text from text_file.

    The text lives in a file so arbitrary characters need no escaping;
    expansion is disabled so '%' is literal.
    """
    x, y = TEXT_POSITIONS[position]
    opts = [f"textfile='{escape_filter_path(text_file)}'", "expansion=none"]
    if font_path:
        opts.append(f"fontfile='{escape_filter_path(font_path)}'")
    elif font_name:
        opts.append(f"font='{escape_filter_value(font_name)}'")
    opts += [f"fontsize={int(font_size)}", f"fontcolor={font_color}"]
    if background_color:
        opts += ["box=1", f"boxcolor={background_color}", "boxborderw=5"]

    if start_time is not None and end_time is not None:
        slid = _ramp_x(animation, start_time, end_time, x)
        if slid is not None:
            x = slid
        if animation == "bounce":
            y = f"{y}-abs(sin(2*PI*(t-{fmt_num(start_time)})))*{int(font_size)}"
        alpha = _ramp_alpha(animation, start_time, end_time)
        if alpha is not None:
            opts.append(f"alpha='{alpha}'")
        opts.append(
            f"enable='between(t,{fmt_num(start_time)},{fmt_num(end_time)})'"
        )

    opts += [f"x='{x}'", f"y='{y}'"]
    return "drawtext=" + ":".join(opts)


def draw_text(source: str | Path, output: str | Path, text_filter: str) -> list[str]:
    return _base() + ["-i", str(source), "-vf", text_filter, "-c:a", "copy", str(output)]


# ── Frames and stills ──────────────────────────────────────────────

def frames_to_video(
    pattern: str | Path,
    output: str | Path,
    fps: float,
    size: tuple[int, int],
    format: str = "mp4",
    quality: str = "medium",
    bitrate: int | None = None,
) -> list[str]:
    vcodec, _ = FORMAT_CODECS[format]
    return _base() + frame_sequence_input(pattern, fps) + [
        "-vf", letterbox(*size),
        "-c:v", vcodec,
        *_video_quality(vcodec, quality, bitrate),
        "-pix_fmt", "yuv420p",
        str(output),
    ]


def frame_grab(source: str | Path, time: float, format: str = "png", quality: int = 2) -> list[str]:
    """Write one frame at time to stdout as PNG or JPEG bytes."""
    codec = ["-c:v", "png"] if format == "png" else ["-c:v", "mjpeg", "-q:v", str(int(quality))]
    return _base() + [
        "-ss", fmt_num(time), "-i", str(source),
        "-frames:v", "1", "-an", "-f", "image2pipe", *codec, "-",
    ]


def frame_sweep(
    source: str | Path, pattern: str | Path, interval: float,
    format: str = "jpg", quality: int = 2,
    start: float = 0.0, duration: float | None = None, count: int | None = None,
) -> list[str]:
    """Write one frame every interval seconds to an image2 pattern, at most count."""
    codec = ["-c:v", "png"] if format == "png" else ["-c:v", "mjpeg", "-q:v", str(int(quality))]
    args = _base() + ["-ss", fmt_num(start), "-i", str(source)]
    if duration is not None:
        args += ["-t", fmt_num(duration)]
    return args + [
        "-vf", f"fps=1/{fmt_num(interval, 6)}", "-an", *codec,
        *(["-frames:v", str(int(count))] if count else []),
        "-start_number", "1", str(pattern),
    ]
