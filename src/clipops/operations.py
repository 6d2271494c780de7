"""Operation requests: one frozen dataclass per video edit.

Each operation validates itself on construction, so an invalid request
never reaches the command builders. OperationRequest wraps exactly one
operation together with its source and an optional progress callback.

Mapping form (used by YAML manifests), one operation key per request:
  source: "${raw}/lecture.mp4"
  id: intro-trim            # optional
  trim:
    start_time: 5
    end_time: 12
    output_path: "${out}/intro.mp4"
"""

import dataclasses
import math
import os
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import ValidationError
from .progress import ProgressEvent

# ── Vocabularies ───────────────────────────────────────────────────

QUALITIES = ("low", "medium", "high", "ultra")
VIDEO_FORMATS = ("mp4", "webm", "avi", "mov", "mkv")
AUDIO_FORMATS = ("mp3", "wav", "aac", "ogg")
IMAGE_FORMATS = ("png", "jpg")
OVERLAY_POSITION_NAMES = ("top-left", "top-right", "bottom-left", "bottom-right", "center")
TEXT_POSITION_NAMES = (
    "top-left", "top-center", "top-right", "center",
    "bottom-left", "bottom-center", "bottom-right",
)
EFFECT_TYPES = (
    "blur", "brightness", "contrast", "saturation", "grayscale",
    "sepia", "invert", "sharpen", "noise",
)
MERGE_MODES = ("sequential", "side-by-side", "grid")
SPLIT_LAYOUTS = ("side-by-side", "top-bottom", "grid")
FLIPS = ("horizontal", "vertical", "both")
ANGLES = (90, 180, 270)
NORMALIZE_METHODS = ("lufs", "peak", "rms")
TRANSITION_TYPES = (
    "fade", "wipe", "slide", "zoom", "rotate",
    "dissolve", "blur", "circle", "pixelize",
)
TRANSITION_DIRECTIONS = ("left", "right", "up", "down", "in", "out")
TEXT_ANIMATIONS = (
    "none", "fade", "fade_in", "fade_out",
    "slide", "slide_in", "slide_out", "bounce",
)
# ffmpeg colour: a name, #RRGGBB[AA] or 0xRRGGBB[AA], optionally @alpha.
COLOR_RE = re.compile(r"(#|0x)?[A-Za-z0-9]+(@(\d+(\.\d+)?|\.\d+|0x[0-9A-Fa-f]{2}))?")
EXPORT_PRESETS = {
    "youtube": {"resolution": (1920, 1080), "fps": 30, "bitrate": 8000, "format": "mp4"},
    "instagram": {"resolution": (1080, 1080), "fps": 30, "bitrate": 3500, "format": "mp4"},
    "tiktok": {"resolution": (1080, 1920), "fps": 30, "bitrate": 4000, "format": "mp4"},
    "twitter": {"resolution": (1280, 720), "fps": 30, "bitrate": 5000, "format": "mp4"},
    "facebook": {"resolution": (1280, 720), "fps": 30, "bitrate": 4000, "format": "mp4"},
    "4k": {"resolution": (3840, 2160), "fps": 30, "bitrate": 50000, "format": "mp4"},
    "1080p": {"resolution": (1920, 1080), "fps": 30, "bitrate": 8000, "format": "mp4"},
    "720p": {"resolution": (1280, 720), "fps": 30, "bitrate": 5000, "format": "mp4"},
    "mobile": {"resolution": (720, 1280), "fps": 30, "bitrate": 2500, "format": "mp4"},
    "web": {"resolution": (1280, 720), "fps": 30, "bitrate": 3000, "format": "webm"},
}


# ── Validation helpers ─────────────────────────────────────────────

def _check(condition: bool, message: str) -> None:
    if not condition:
        raise ValidationError(message)


def _check_number(value, what: str, minimum=None, maximum=None, strict_min=False):
    _check(
        isinstance(value, (int, float)) and not isinstance(value, bool)
        and math.isfinite(value),
        f"{what} must be a number, got {value!r}",
    )
    if minimum is not None:
        if strict_min:
            _check(value > minimum, f"{what} must be > {minimum}, got {value}")
        else:
            _check(value >= minimum, f"{what} must be >= {minimum}, got {value}")
    if maximum is not None:
        _check(value <= maximum, f"{what} must be <= {maximum}, got {value}")


def _check_choice(value, choices, what: str) -> None:
    _check(value in choices, f"{what} must be one of {list(choices)}, got {value!r}")


def _check_output(path, what: str) -> None:
    _check(
        isinstance(path, (str, os.PathLike)) and str(path) != "",
        f"{what}: output_path is required",
    )


def _check_size(size, what: str) -> None:
    _check(
        isinstance(size, tuple) and len(size) == 2,
        f"{what} must be (width, height), got {size!r}",
    )
    for v in size:
        _check(
            isinstance(v, int) and not isinstance(v, bool) and v > 0,
            f"{what} dimensions must be positive integers, got {size!r}",
        )


def _as_size(value):
    """Coerce '1280x720', {'width':..,'height':..} or a pair to a tuple."""
    if value is None or isinstance(value, tuple):
        return value
    if isinstance(value, str) and "x" in value:
        w, _, h = value.partition("x")
        try:
            return (int(w), int(h))
        except ValueError:
            return value
    if isinstance(value, dict) and {"width", "height"} <= set(value):
        return (value["width"], value["height"])
    if isinstance(value, list) and len(value) == 2:
        return tuple(value)
    return value


def _freeze(obj, name: str, convert) -> None:
    object.__setattr__(obj, name, convert(getattr(obj, name)))


# ── Shared value types ─────────────────────────────────────────────

@dataclass(frozen=True)
class TimeRange:
    """[start, end) in seconds. volume is a percentage for ranged volume."""
    start: float
    end: float
    volume: float | None = None

    def __post_init__(self):
        _check_number(self.start, "Range start", minimum=0)
        _check_number(self.end, "Range end")
        _check(self.start < self.end, f"Range start ({self.start}) must be < end ({self.end})")
        if self.volume is not None:
            _check_number(self.volume, "Range volume", minimum=0)


@dataclass(frozen=True)
class EffectFilter:
    type: str
    intensity: float | None = None
    value: float | None = None

    def __post_init__(self):
        _check_choice(self.type, EFFECT_TYPES, "Effect type")
        for attr in ("intensity", "value"):
            v = getattr(self, attr)
            if v is not None:
                _check_number(v, f"Effect {self.type} {attr}")


def _ranges(values) -> tuple:
    return tuple(
        r if isinstance(r, TimeRange) else TimeRange(**r) for r in (values or ())
    )


# ── Operations ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Operation:
    """Base for all operations.

    Class attributes:
        name: Key used in request mappings.
        requires_source: Whether OperationRequest.source must be set.
        long_running: Selects the long timeout and larger output cap.
    """
    name = "operation"
    requires_source = True
    long_running = False

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        pass


@dataclass(frozen=True)
class Trim(Operation):
    start_time: float
    end_time: float
    output_path: str
    copy: bool = False
    name = "trim"

    def validate(self):
        _check_output(self.output_path, "Trim")
        _check_number(self.start_time, "Trim start_time", minimum=0)
        _check_number(self.end_time, "Trim end_time")
        _check(
            self.start_time < self.end_time,
            f"Trim start_time ({self.start_time}) must be < end_time ({self.end_time})",
        )


@dataclass(frozen=True)
class Convert(Operation):
    output_path: str
    format: str = "mp4"
    quality: str = "medium"
    bitrate: int | None = None
    fps: float | None = None
    resolution: tuple[int, int] | None = None
    name = "convert"

    def __post_init__(self):
        _freeze(self, "resolution", _as_size)
        super().__post_init__()

    def validate(self):
        _check_output(self.output_path, "Convert")
        _check_choice(self.format, VIDEO_FORMATS, "Convert format")
        _check_choice(self.quality, QUALITIES, "Convert quality")
        if self.bitrate is not None:
            _check_number(self.bitrate, "Convert bitrate", minimum=0, strict_min=True)
        if self.fps is not None:
            _check_number(self.fps, "Convert fps", minimum=0, strict_min=True)
        if self.resolution is not None:
            _check_size(self.resolution, "Convert resolution")


@dataclass(frozen=True)
class ExtractAudio(Operation):
    output_path: str
    format: str = "mp3"
    bitrate: int = 128
    name = "extract_audio"

    def validate(self):
        _check_output(self.output_path, "ExtractAudio")
        _check_choice(self.format, AUDIO_FORMATS, "ExtractAudio format")
        _check_number(self.bitrate, "ExtractAudio bitrate", minimum=0, strict_min=True)


@dataclass(frozen=True)
class AddWatermark(Operation):
    watermark: Any
    output_path: str
    position: str = "bottom-right"
    opacity: float = 0.5
    size: tuple[int, int] | None = None
    name = "add_watermark"

    def __post_init__(self):
        _freeze(self, "size", _as_size)
        super().__post_init__()

    def validate(self):
        _check_output(self.output_path, "AddWatermark")
        _check(self.watermark is not None, "AddWatermark: watermark is required")
        _check_choice(self.position, OVERLAY_POSITION_NAMES, "AddWatermark position")
        _check_number(self.opacity, "AddWatermark opacity", minimum=0, maximum=1)
        if self.size is not None:
            _check_size(self.size, "AddWatermark size")


@dataclass(frozen=True)
class ChangeSpeed(Operation):
    speed: float
    output_path: str
    name = "change_speed"

    def validate(self):
        _check_output(self.output_path, "ChangeSpeed")
        _check_number(self.speed, "ChangeSpeed speed", minimum=0, strict_min=True)


@dataclass(frozen=True)
class ApplyEffects(Operation):
    filters: tuple[EffectFilter, ...]
    output_path: str
    name = "apply_effects"

    def __post_init__(self):
        _freeze(self, "filters", lambda fs: tuple(
            f if isinstance(f, EffectFilter) else EffectFilter(**f) for f in (fs or ())
        ))
        super().__post_init__()

    def validate(self):
        _check_output(self.output_path, "ApplyEffects")
        _check(len(self.filters) > 0, "ApplyEffects: at least one filter is required")


@dataclass(frozen=True)
class Merge(Operation):
    videos: tuple
    output_path: str
    mode: str = "sequential"
    grid: tuple[int, int] | None = None
    name = "merge"
    requires_source = False
    long_running = True

    def __post_init__(self):
        _freeze(self, "videos", lambda v: tuple(v or ()))
        _freeze(self, "grid", _as_size)
        super().__post_init__()

    def validate(self):
        _check_output(self.output_path, "Merge")
        _check_choice(self.mode, MERGE_MODES, "Merge mode")
        minimum = 2 if self.mode != "sequential" else 1
        _check(
            len(self.videos) >= minimum,
            f"Merge ({self.mode}) requires at least {minimum} videos, got {len(self.videos)}",
        )
        if self.mode == "side-by-side":
            _check(len(self.videos) == 2, "Merge side-by-side requires exactly 2 videos")
        if self.grid is not None:
            _check_size(self.grid, "Merge grid")


@dataclass(frozen=True)
class ReplaceSegment(Operation):
    target_start: float
    target_end: float
    output_path: str
    replacement_video: Any = None
    replacement_start: float = 0.0
    replacement_duration: float | None = None
    replacement_frames: tuple | None = None
    replacement_fps: float = 30
    name = "replace_segment"
    long_running = True

    def __post_init__(self):
        if self.replacement_frames is not None:
            _freeze(self, "replacement_frames", tuple)
        super().__post_init__()

    def validate(self):
        _check_output(self.output_path, "ReplaceSegment")
        has_video = self.replacement_video is not None
        has_frames = self.replacement_frames is not None
        _check(
            has_video != has_frames,
            "ReplaceSegment: provide exactly one of replacement_video or replacement_frames",
        )
        if has_frames:
            _check(
                len(self.replacement_frames) > 0,
                "ReplaceSegment: replacement_frames must not be empty",
            )
        _check_number(self.target_start, "ReplaceSegment target_start", minimum=0)
        _check_number(self.target_end, "ReplaceSegment target_end")
        _check(
            self.target_start < self.target_end,
            f"ReplaceSegment target_start ({self.target_start}) must be < "
            f"target_end ({self.target_end})",
        )
        _check_number(self.replacement_start, "ReplaceSegment replacement_start", minimum=0)
        if self.replacement_duration is not None:
            _check_number(
                self.replacement_duration, "ReplaceSegment replacement_duration",
                minimum=0, strict_min=True,
            )
        _check_number(self.replacement_fps, "ReplaceSegment replacement_fps",
                      minimum=0, strict_min=True)

    @property
    def target_duration(self) -> float:
        return self.target_end - self.target_start


@dataclass(frozen=True)
class Rotate(Operation):
    output_path: str
    angle: int | None = None
    flip: str | None = None
    name = "rotate"

    def validate(self):
        _check_output(self.output_path, "Rotate")
        _check(
            self.angle is not None or self.flip is not None,
            "Rotate: specify angle and/or flip",
        )
        if self.angle is not None:
            _check_choice(self.angle, ANGLES, "Rotate angle")
        if self.flip is not None:
            _check_choice(self.flip, FLIPS, "Rotate flip")


@dataclass(frozen=True)
class Crop(Operation):
    x: int
    y: int
    width: int
    height: int
    output_path: str
    name = "crop"

    def validate(self):
        _check_output(self.output_path, "Crop")
        _check_number(self.x, "Crop x", minimum=0)
        _check_number(self.y, "Crop y", minimum=0)
        _check_number(self.width, "Crop width", minimum=0, strict_min=True)
        _check_number(self.height, "Crop height", minimum=0, strict_min=True)


@dataclass(frozen=True)
class Compress(Operation):
    output_path: str
    quality: str = "medium"
    target_size_mb: float | None = None
    max_bitrate: int | None = None
    name = "compress"
    long_running = True

    def validate(self):
        _check_output(self.output_path, "Compress")
        _check_choice(self.quality, QUALITIES, "Compress quality")
        if self.target_size_mb is not None:
            _check_number(self.target_size_mb, "Compress target_size_mb",
                          minimum=0, strict_min=True)
        if self.max_bitrate is not None:
            _check_number(self.max_bitrate, "Compress max_bitrate",
                          minimum=0, strict_min=True)


def _validate_text_style(op, what: str) -> None:
    _check(isinstance(op.text, str) and op.text != "", f"{what}: text is required")
    _check_choice(op.position, TEXT_POSITION_NAMES, f"{what} position")
    _check_number(op.font_size, f"{what} font_size", minimum=0, strict_min=True)
    for attr in ("font_color", "background_color"):
        v = getattr(op, attr)
        if v is not None or attr == "font_color":
            _check(
                isinstance(v, str) and COLOR_RE.fullmatch(v) is not None,
                f"{what} {attr} must be an ffmpeg colour such as 'white' or "
                f"'#000000@0.5', got {v!r}",
            )


@dataclass(frozen=True)
class AddText(Operation):
    text: str
    output_path: str
    position: str = "bottom-center"
    font_size: int = 24
    font_color: str = "white"
    background_color: str | None = "black@0.5"
    start_time: float | None = None
    end_time: float | None = None
    name = "add_text"

    def validate(self):
        _check_output(self.output_path, "AddText")
        _validate_text_style(self, "AddText")
        if self.start_time is not None or self.end_time is not None:
            _check(
                self.start_time is not None and self.end_time is not None,
                "AddText: start_time and end_time must be given together",
            )
            _check_number(self.start_time, "AddText start_time", minimum=0)
            _check(
                self.start_time < self.end_time,
                f"AddText start_time ({self.start_time}) must be < end_time ({self.end_time})",
            )


@dataclass(frozen=True)
class AddFade(Operation):
    output_path: str
    fade_in: float | None = None
    fade_out: float | None = None
    name = "add_fade"

    def validate(self):
        _check_output(self.output_path, "AddFade")
        _check(
            bool(self.fade_in) or bool(self.fade_out),
            "AddFade: specify fade_in and/or fade_out",
        )
        for attr in ("fade_in", "fade_out"):
            v = getattr(self, attr)
            if v is not None:
                _check_number(v, f"AddFade {attr}", minimum=0)


@dataclass(frozen=True)
class Reverse(Operation):
    output_path: str
    name = "reverse"
    long_running = True

    def validate(self):
        _check_output(self.output_path, "Reverse")


@dataclass(frozen=True)
class CreateLoop(Operation):
    output_path: str
    count: int = 2
    smooth: bool = False
    name = "create_loop"
    long_running = True

    def validate(self):
        _check_output(self.output_path, "CreateLoop")
        _check(
            isinstance(self.count, int) and not isinstance(self.count, bool)
            and self.count >= 2,
            f"CreateLoop count must be an integer >= 2, got {self.count!r}",
        )


@dataclass(frozen=True)
class DetectScenes(Operation):
    threshold: float = 0.3
    output_path: str | None = None
    name = "detect_scenes"

    def validate(self):
        _check_number(self.threshold, "DetectScenes threshold", minimum=0, maximum=1)


@dataclass(frozen=True)
class Stabilize(Operation):
    output_path: str
    smoothing: int = 10
    name = "stabilize"
    long_running = True

    def validate(self):
        _check_output(self.output_path, "Stabilize")
        _check_number(self.smoothing, "Stabilize smoothing", minimum=0)


@dataclass(frozen=True)
class ColorCorrect(Operation):
    output_path: str
    brightness: float | None = None
    contrast: float | None = None
    saturation: float | None = None
    hue: float | None = None
    temperature: float | None = None
    name = "color_correct"

    def validate(self):
        _check_output(self.output_path, "ColorCorrect")
        values = {
            k: getattr(self, k)
            for k in ("brightness", "contrast", "saturation", "hue", "temperature")
        }
        _check(
            any(v is not None for v in values.values()),
            "ColorCorrect: specify at least one adjustment",
        )
        for k, v in values.items():
            if v is not None:
                _check_number(v, f"ColorCorrect {k}")


@dataclass(frozen=True)
class PictureInPicture(Operation):
    overlay_video: Any
    output_path: str
    position: str = "bottom-right"
    size: tuple[int, int] = (320, 180)
    opacity: float = 1.0
    name = "picture_in_picture"

    def __post_init__(self):
        _freeze(self, "size", _as_size)
        super().__post_init__()

    def validate(self):
        _check_output(self.output_path, "PictureInPicture")
        _check(self.overlay_video is not None, "PictureInPicture: overlay_video is required")
        _check_choice(self.position, OVERLAY_POSITION_NAMES, "PictureInPicture position")
        _check_size(self.size, "PictureInPicture size")
        _check_number(self.opacity, "PictureInPicture opacity", minimum=0, maximum=1)


@dataclass(frozen=True)
class SplitScreen(Operation):
    videos: tuple
    output_path: str
    layout: str = "side-by-side"
    grid: tuple[int, int] | None = None
    name = "split_screen"
    requires_source = False
    long_running = True

    def __post_init__(self):
        _freeze(self, "videos", lambda v: tuple(v or ()))
        _freeze(self, "grid", _as_size)
        super().__post_init__()

    def validate(self):
        _check_output(self.output_path, "SplitScreen")
        _check_choice(self.layout, SPLIT_LAYOUTS, "SplitScreen layout")
        if self.layout == "grid":
            cols, rows = self.grid or (2, 2)
            if self.grid is not None:
                _check_size(self.grid, "SplitScreen grid")
            _check(
                len(self.videos) >= cols * rows,
                f"SplitScreen grid {cols}x{rows} requires at least {cols * rows} videos, "
                f"got {len(self.videos)}",
            )
        else:
            _check(
                len(self.videos) >= 2,
                f"SplitScreen {self.layout} requires at least 2 videos, got {len(self.videos)}",
            )


@dataclass(frozen=True)
class CreateTimeLapse(Operation):
    output_path: str
    speed: float = 10
    name = "create_time_lapse"

    def validate(self):
        _check_output(self.output_path, "CreateTimeLapse")
        _check_number(self.speed, "CreateTimeLapse speed", minimum=0, strict_min=True)


@dataclass(frozen=True)
class Mute(Operation):
    output_path: str
    ranges: tuple[TimeRange, ...] = ()
    name = "mute"

    def __post_init__(self):
        _freeze(self, "ranges", _ranges)
        super().__post_init__()

    def validate(self):
        _check_output(self.output_path, "Mute")


@dataclass(frozen=True)
class AdjustVolume(Operation):
    output_path: str
    volume: float = 100
    ranges: tuple[TimeRange, ...] = ()
    name = "adjust_volume"

    def __post_init__(self):
        _freeze(self, "ranges", _ranges)
        super().__post_init__()

    def validate(self):
        _check_output(self.output_path, "AdjustVolume")
        _check_number(self.volume, "AdjustVolume volume", minimum=0)


@dataclass(frozen=True)
class CreateFromFrames(Operation):
    frames: tuple
    output_path: str
    fps: float = 30
    format: str = "mp4"
    quality: str = "medium"
    bitrate: int | None = None
    resolution: tuple[int, int] | None = None
    name = "create_from_frames"
    requires_source = False
    long_running = True

    def __post_init__(self):
        _freeze(self, "frames", lambda f: tuple(f or ()))
        _freeze(self, "resolution", _as_size)
        super().__post_init__()

    def validate(self):
        _check_output(self.output_path, "CreateFromFrames")
        _check(len(self.frames) > 0, "CreateFromFrames: at least one frame is required")
        _check_number(self.fps, "CreateFromFrames fps", minimum=0, strict_min=True)
        _check_choice(self.format, VIDEO_FORMATS, "CreateFromFrames format")
        _check_choice(self.quality, QUALITIES, "CreateFromFrames quality")
        if self.bitrate is not None:
            _check_number(self.bitrate, "CreateFromFrames bitrate", minimum=0, strict_min=True)
        if self.resolution is not None:
            _check_size(self.resolution, "CreateFromFrames resolution")


@dataclass(frozen=True)
class FreezeFrame(Operation):
    time: float
    duration: float
    output_path: str
    name = "freeze_frame"
    long_running = True

    def validate(self):
        _check_output(self.output_path, "FreezeFrame")
        _check_number(self.time, "FreezeFrame time", minimum=0)
        _check_number(self.duration, "FreezeFrame duration", minimum=0, strict_min=True)


@dataclass(frozen=True)
class ExportPreset(Operation):
    preset: str
    output_path: str
    name = "export_preset"

    def validate(self):
        _check_output(self.output_path, "ExportPreset")
        _check_choice(self.preset, tuple(EXPORT_PRESETS), "ExportPreset preset")


@dataclass(frozen=True)
class NormalizeAudio(Operation):
    output_path: str
    target_level: float | None = None
    method: str = "lufs"
    name = "normalize_audio"

    def validate(self):
        _check_output(self.output_path, "NormalizeAudio")
        _check_choice(self.method, NORMALIZE_METHODS, "NormalizeAudio method")
        if self.target_level is not None:
            _check_number(self.target_level, "NormalizeAudio target_level")

    @property
    def level(self) -> float:
        if self.target_level is not None:
            return self.target_level
        return -23.0 if self.method == "lufs" else -1.0


@dataclass(frozen=True)
class ApplyLUT(Operation):
    lut: str
    output_path: str
    intensity: float = 1.0
    name = "apply_lut"

    def validate(self):
        _check_output(self.output_path, "ApplyLUT")
        _check(bool(self.lut), "ApplyLUT: lut path is required")
        _check_number(self.intensity, "ApplyLUT intensity", minimum=0, maximum=1)


@dataclass(frozen=True)
class AddTransition(Operation):
    type: str
    duration: float
    output_path: str
    direction: str | None = None
    second_video: Any = None
    name = "add_transition"
    long_running = True

    def validate(self):
        _check_output(self.output_path, "AddTransition")
        _check_choice(self.type, TRANSITION_TYPES, "AddTransition type")
        _check_number(self.duration, "AddTransition duration", minimum=0, strict_min=True)
        if self.direction is not None:
            _check_choice(self.direction, TRANSITION_DIRECTIONS, "AddTransition direction")
        _check(
            self.second_video is not None or self.type == "fade",
            f"AddTransition: '{self.type}' requires second_video",
        )


@dataclass(frozen=True)
class AddAnimatedText(Operation):
    text: str
    start_time: float
    end_time: float
    output_path: str
    animation: str = "none"
    position: str = "bottom-center"
    font_size: int = 24
    font_color: str = "white"
    font_path: str | None = None
    font_name: str | None = None
    background_color: str | None = "black@0.5"
    name = "add_animated_text"

    def validate(self):
        _check_output(self.output_path, "AddAnimatedText")
        _validate_text_style(self, "AddAnimatedText")
        _check_choice(self.animation, TEXT_ANIMATIONS, "AddAnimatedText animation")
        _check_number(self.start_time, "AddAnimatedText start_time", minimum=0)
        _check_number(self.end_time, "AddAnimatedText end_time")
        _check(
            self.start_time < self.end_time,
            f"AddAnimatedText start_time ({self.start_time}) must be < "
            f"end_time ({self.end_time})",
        )


@dataclass(frozen=True)
class ProbeInfo(Operation):
    name = "probe_info"


@dataclass(frozen=True)
class DetectFormat(Operation):
    name = "detect_format"


def _validate_image_output(op, what: str) -> None:
    _check_choice(op.format, IMAGE_FORMATS, f"{what} format")
    # JPEG qscale: 2 is near lossless, 31 is worst.
    _check(
        isinstance(op.quality, int) and not isinstance(op.quality, bool)
        and 1 <= op.quality <= 31,
        f"{what} quality must be an integer in 1..31, got {op.quality!r}",
    )


@dataclass(frozen=True)
class ExtractFrame(Operation):
    """One frame as encoded image bytes, optionally scaled to width x height."""
    time: float = 0.0
    format: str = "png"
    quality: int = 2
    width: int | None = None
    height: int | None = None
    name = "extract_frame"

    def validate(self):
        _check_number(self.time, "ExtractFrame time", minimum=0)
        _validate_image_output(self, "ExtractFrame")
        for attr in ("width", "height"):
            v = getattr(self, attr)
            if v is not None:
                _check(
                    isinstance(v, int) and not isinstance(v, bool) and v > 0,
                    f"ExtractFrame {attr} must be a positive integer, got {v!r}",
                )


@dataclass(frozen=True)
class ExtractFrames(Operation):
    """Frames at explicit times, or every interval seconds.

    Without output_directory the frames come back as bytes; with it they
    are written as frame-NNN.<format> and described by path. start_time and
    end_time bound the interval sweep.
    """
    times: tuple = ()
    interval: float | None = None
    format: str = "jpg"
    quality: int = 2
    output_directory: str | None = None
    start_time: float = 0.0
    end_time: float | None = None
    name = "extract_frames"
    long_running = True

    def __post_init__(self):
        _freeze(self, "times", lambda t: tuple(t or ()))
        super().__post_init__()

    def validate(self):
        _validate_image_output(self, "ExtractFrames")
        _check(
            bool(self.times) != (self.interval is not None),
            "ExtractFrames: specify exactly one of times or interval",
        )
        for t in self.times:
            _check_number(t, "ExtractFrames time", minimum=0)
        if self.interval is not None:
            _check_number(self.interval, "ExtractFrames interval", minimum=0, strict_min=True)
        _check_number(self.start_time, "ExtractFrames start_time", minimum=0)
        if self.end_time is not None:
            _check_number(self.end_time, "ExtractFrames end_time")
            _check(
                self.start_time < self.end_time,
                f"ExtractFrames start_time ({self.start_time}) must be < "
                f"end_time ({self.end_time})",
            )


@dataclass(frozen=True)
class GeneratePreview(Operation):
    """count frames spread evenly over the video, written as preview-NNN.<format>."""
    output_directory: str
    count: int = 10
    format: str = "png"
    quality: int = 2
    name = "generate_preview"
    long_running = True

    def validate(self):
        _check(bool(self.output_directory), "GeneratePreview: output_directory is required")
        _check(
            isinstance(self.count, int) and not isinstance(self.count, bool)
            and self.count >= 1,
            f"GeneratePreview count must be an integer >= 1, got {self.count!r}",
        )
        _validate_image_output(self, "GeneratePreview")


@dataclass(frozen=True)
class BatchItem:
    source: Any
    operation: Operation

    def __post_init__(self):
        _check(isinstance(self.operation, Operation), "BatchItem: operation is required")
        _check(
            not isinstance(self.operation, Batch),
            "BatchItem: batches cannot be nested",
        )
        if self.operation.requires_source:
            _check(self.source is not None, f"BatchItem ({self.operation.name}): source is required")


@dataclass(frozen=True)
class Batch(Operation):
    items: tuple[BatchItem, ...]
    output_directory: str
    name = "batch"
    requires_source = False

    def __post_init__(self):
        _freeze(self, "items", lambda items: tuple(items or ()))
        super().__post_init__()

    def validate(self):
        _check(bool(self.output_directory), "Batch: output_directory is required")
        _check(len(self.items) > 0, "Batch: at least one item is required")
        for item in self.items:
            _check(isinstance(item, BatchItem), f"Batch: expected BatchItem, got {item!r}")


OPERATIONS: dict[str, type[Operation]] = {
    cls.name: cls
    for cls in (
        Trim, Convert, ExtractAudio, AddWatermark, ChangeSpeed, ApplyEffects,
        Merge, ReplaceSegment, Rotate, Crop, Compress, AddText, AddFade,
        Reverse, CreateLoop, DetectScenes, Stabilize, ColorCorrect,
        PictureInPicture, SplitScreen, CreateTimeLapse, Mute, AdjustVolume,
        CreateFromFrames, FreezeFrame, ExportPreset, NormalizeAudio, ApplyLUT,
        AddTransition, AddAnimatedText, ProbeInfo, DetectFormat,
        ExtractFrame, ExtractFrames, GeneratePreview, Batch,
    )
}


# ── Request envelope ───────────────────────────────────────────────

@dataclass(frozen=True)
class OperationRequest:
    """One edit against one source.

    Args:
        operation: Exactly one Operation instance.
        source: Path, URL or raw bytes of the input video. Required unless
            the operation names its own inputs (merge, split screen,
            frames, batch).
        on_progress: Called with ProgressEvents from the main invocation.
        request_id: Used to name scratch files; generated when omitted.
    """
    operation: Operation
    source: Any = None
    on_progress: Callable[[ProgressEvent], None] | None = field(default=None, compare=False)
    request_id: str | None = None

    def __post_init__(self):
        _check(
            isinstance(self.operation, Operation),
            f"OperationRequest: operation must be an Operation, got {self.operation!r}",
        )
        if self.operation.requires_source:
            _check(
                self.source is not None and self.source != "",
                f"OperationRequest ({self.operation.name}): source is required",
            )


# ── Mapping parser ─────────────────────────────────────────────────

_NESTED_LISTS = {
    "filters": EffectFilter,
    "ranges": TimeRange,
}


def parse_operation(name: str, params: dict | None) -> Operation:
    """Build an Operation from its mapping key and parameter dict.

    Raises:
        ValidationError: Unknown operation, unknown fields, or invalid values.
    """
    if name not in OPERATIONS:
        raise ValidationError(f"Unknown operation: '{name}'")
    cls = OPERATIONS[name]
    params = dict(params or {})

    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(params) - known)
    if unknown:
        raise ValidationError(f"Operation '{name}': unknown fields {unknown}")

    if cls is Batch:
        params["items"] = [
            _parse_batch_item(i, entry) for i, entry in enumerate(params.get("items") or [])
        ]

    try:
        for key, item_cls in _NESTED_LISTS.items():
            if key in params:
                params[key] = [
                    v if isinstance(v, item_cls) else item_cls(**v) for v in params[key]
                ]
        return cls(**params)
    except TypeError as e:
        raise ValidationError(f"Operation '{name}': {e}") from e


def _operation_key(mapping: dict, where: str) -> str:
    keys = [k for k in mapping if k in OPERATIONS]
    if len(keys) != 1:
        found = ", ".join(keys) if keys else "none"
        raise ValidationError(
            f"{where}: expected exactly one operation key, found {found}"
        )
    return keys[0]


def _parse_batch_item(i: int, entry: dict) -> BatchItem:
    if not isinstance(entry, dict):
        raise ValidationError(f"Batch item {i}: expected a mapping")
    key = _operation_key(entry, f"Batch item {i}")
    extra = sorted(set(entry) - {key, "source"})
    if extra:
        raise ValidationError(f"Batch item {i}: unknown fields {extra}")

    # Items without an output path are written as batch-<n>.<ext>.
    params = dict(entry[key] or {})
    cls = OPERATIONS[key]
    field_names = {f.name for f in dataclasses.fields(cls)}
    if "output_path" in field_names and "output_path" not in params and cls is not DetectScenes:
        ext = params.get("format") or ("mp3" if cls is ExtractAudio else "mp4")
        params["output_path"] = f"batch-{i + 1}.{ext}"
    return BatchItem(source=entry.get("source"), operation=parse_operation(key, params))


def parse_request(mapping: dict, on_progress=None) -> OperationRequest:
    """Build an OperationRequest from a mapping with one operation key.

    Raises:
        ValidationError: Zero or several operation keys, unknown fields,
            or invalid parameters.
    """
    if not isinstance(mapping, dict):
        raise ValidationError(f"Request must be a mapping, got {type(mapping).__name__}")
    key = _operation_key(mapping, "Request")
    extra = sorted(set(mapping) - {key, "source", "id"})
    if extra:
        raise ValidationError(f"Request: unknown fields {extra}")
    return OperationRequest(
        operation=parse_operation(key, mapping[key]),
        source=mapping.get("source"),
        on_progress=on_progress,
        request_id=str(mapping["id"]) if mapping.get("id") is not None else None,
    )
