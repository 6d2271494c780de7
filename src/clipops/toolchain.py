"""Locate the ffmpeg executable and remember whether it works.

Lookup order: explicit override (settings or CLIPOPS_FFMPEG), PATH,
well-known install locations, then the binary bundled with imageio-ffmpeg.
The result is cached per ToolProbe; the module-level TOOLCHAIN instance
is shared by everything that does not inject its own probe.
"""

import logging
import os
import shutil
import subprocess
import sys
import threading

import imageio_ffmpeg

logger = logging.getLogger(__name__)

WELL_KNOWN_PATHS = {
    "win32": [
        r"C:\ffmpeg\bin\ffmpeg.exe",
        r"C:\Program Files\ffmpeg\bin\ffmpeg.exe",
        r"C:\Program Files (x86)\ffmpeg\bin\ffmpeg.exe",
    ],
    "posix": [
        "/usr/bin/ffmpeg",
        "/usr/local/bin/ffmpeg",
        "/opt/homebrew/bin/ffmpeg",
        "/opt/local/bin/ffmpeg",
    ],
}

_VERSION_TIMEOUT = 10


def _works(executable: str) -> bool:
    try:
        subprocess.run(
            [executable, "-version"],
            check=True, capture_output=True, timeout=_VERSION_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError):
        return False
    return True


def _bundled_ffmpeg() -> str | None:
    try:
        return imageio_ffmpeg.get_ffmpeg_exe()
    except RuntimeError:
        return None


class ToolProbe:
    """Cached capability check for ffmpeg.

    Args:
        override: Executable to try before anything else.
        platform: sys.platform value used to pick well-known locations.
    """

    def __init__(self, override: str | None = None, platform: str | None = None):
        self.override = override or os.environ.get("CLIPOPS_FFMPEG")
        self.platform = platform or sys.platform
        self._lock = threading.Lock()
        self._checked = False
        self._executable = None

    def _candidates(self):
        if self.override:
            yield self.override
        found = shutil.which("ffmpeg")
        if found:
            yield found
        key = "win32" if self.platform == "win32" else "posix"
        yield from WELL_KNOWN_PATHS[key]
        bundled = _bundled_ffmpeg()
        if bundled:
            yield bundled

    def probe(self) -> bool:
        """Return True if a working ffmpeg was found. Runs the lookup once."""
        with self._lock:
            if not self._checked:
                self._executable = next(
                    (c for c in self._candidates() if _works(c)), None,
                )
                self._checked = True
                if self._executable:
                    logger.debug("Using ffmpeg at %s", self._executable)
                else:
                    logger.warning("ffmpeg not found")
            return self._executable is not None

    __call__ = probe

    def cached_result(self) -> bool | None:
        """Return the cached answer, or None if probe() has not run yet."""
        with self._lock:
            if not self._checked:
                return None
            return self._executable is not None

    def executable(self) -> str | None:
        """Path of the working ffmpeg, probing first if needed."""
        self.probe()
        return self._executable

    def reset_for_tests(self) -> None:
        with self._lock:
            self._checked = False
            self._executable = None


TOOLCHAIN = ToolProbe()


def install_instructions(platform: str | None = None) -> str:
    """Human-readable guidance for installing ffmpeg on the given platform."""
    platform = platform or sys.platform
    lines = ["ffmpeg is required for video operations but was not found.", ""]

    if platform == "win32":
        lines += [
            "Windows:",
            "  choco install ffmpeg",
            "  # or",
            "  winget install ffmpeg",
            "  # or download a build from https://www.gyan.dev/ffmpeg/builds/,",
            "  # extract to C:\\ffmpeg and add C:\\ffmpeg\\bin to PATH",
        ]
    elif platform == "darwin":
        lines += [
            "macOS:",
            "  brew install ffmpeg",
            "  # or with MacPorts",
            "  sudo port install ffmpeg",
        ]
    else:
        lines += [
            "Linux:",
            "  Ubuntu/Debian:      sudo apt-get install ffmpeg",
            "  Fedora/RHEL:        sudo dnf install ffmpeg",
            "  Arch:               sudo pacman -S ffmpeg",
        ]

    lines += [
        "",
        "Alternatively: pip install imageio-ffmpeg (bundles a static binary),",
        "or point CLIPOPS_FFMPEG at an existing executable.",
        "Verify with: ffmpeg -version",
    ]
    return "\n".join(lines)
