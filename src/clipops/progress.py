"""Incremental parsing of ffmpeg's diagnostic stream into progress events.

ffmpeg prints the input duration once ("Duration: 00:00:20.00") and then
rewrites a status line ending in a carriage return ("... time=00:00:05.12
bitrate=... speed=1.98x"). Chunks arrive at arbitrary boundaries, so
partial lines are buffered until a terminator shows up.
"""

import re
from dataclasses import dataclass

DURATION_RE = re.compile(r"Duration: (\d+):(\d+):(\d+(?:\.\d+)?)")
TIME_RE = re.compile(r"time=(-?\d+):(\d+):(\d+(?:\.\d+)?)")
SPEED_RE = re.compile(r"speed=\s*([\d.]+)x")
LINE_SPLIT_RE = re.compile(r"[\r\n]")


@dataclass(frozen=True)
class ProgressEvent:
    percent: float
    time: float
    speed: float | None = None


def hms_to_seconds(hours: str, minutes: str, seconds: str) -> float:
    # ffmpeg prints "time=-00:00:00.04" before the first frame.
    sign = -1 if hours.startswith("-") else 1
    return sign * (abs(int(hours)) * 3600 + int(minutes) * 60 + float(seconds))


class ProgressParser:
    """Feed stderr chunks, collect ProgressEvents.

    Percent is min(100, elapsed / duration * 100) and never decreases
    within one parser. No events are produced while the duration is
    unknown.

    Args:
        duration: Known output duration in seconds. When given it takes
            precedence over the Duration line ffmpeg reports.
    """

    def __init__(self, duration: float | None = None):
        self.duration = duration if duration and duration > 0 else None
        self._fixed = self.duration is not None
        self._pending = ""
        self._last_percent = 0.0

    def feed(self, chunk: str) -> list[ProgressEvent]:
        data = self._pending + chunk
        lines = LINE_SPLIT_RE.split(data)
        self._pending = lines.pop()
        events = []
        for line in lines:
            event = self._parse_line(line)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> list[ProgressEvent]:
        """Flush a trailing unterminated line."""
        line, self._pending = self._pending, ""
        event = self._parse_line(line)
        return [event] if event is not None else []

    def _parse_line(self, line: str) -> ProgressEvent | None:
        if not line:
            return None

        if not self._fixed and self.duration is None:
            match = DURATION_RE.search(line)
            if match:
                seconds = hms_to_seconds(*match.groups())
                if seconds > 0:
                    self.duration = seconds
                return None

        match = TIME_RE.search(line)
        if match is None or self.duration is None:
            return None

        elapsed = max(0.0, hms_to_seconds(*match.groups()))
        percent = min(100.0, elapsed / self.duration * 100)
        percent = max(percent, self._last_percent)
        self._last_percent = percent

        speed_match = SPEED_RE.search(line)
        speed = float(speed_match.group(1)) if speed_match else None
        return ProgressEvent(percent=percent, time=elapsed, speed=speed)
