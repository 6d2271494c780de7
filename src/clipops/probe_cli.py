"""CLI for inspecting videos and the ffmpeg installation.

Usage:
    clipops info source.mp4
    clipops info source.mp4 --json
    clipops check
"""

import argparse
import dataclasses
import json
import sys

from .config import configure_logging, load_settings
from .editor import VideoEditor
from .operations import DetectFormat, OperationRequest
from .toolchain import ToolProbe, install_instructions


def info_main(args=None):
    parser = argparse.ArgumentParser(
        prog="clipops info",
        description="Print duration, resolution, frame rate and codec of a video.",
    )
    parser.add_argument("source", help="Path or URL of the video")
    parser.add_argument("--json", action="store_true", help="Machine-readable output")
    parser.add_argument("--settings", default=None, help="Settings YAML file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parsed = parser.parse_args(args)

    configure_logging(parsed.verbose)
    editor = VideoEditor.default(load_settings(parsed.settings))
    info = editor.run_sync(OperationRequest(DetectFormat(), source=parsed.source))

    if parsed.json:
        print(json.dumps(dataclasses.asdict(info), indent=2))
        return
    print(f"{parsed.source}")
    print(f"  format      {info.format}")
    print(f"  codec       {info.codec or 'unknown'}")
    print(f"  resolution  {info.resolution}")
    print(f"  fps         {info.fps:g}")
    print(f"  duration    {info.duration:.3f}s")
    if info.bitrate:
        print(f"  bitrate     {info.bitrate} kb/s")


def check_main(args=None):
    parser = argparse.ArgumentParser(
        prog="clipops check",
        description="Report whether ffmpeg is available.",
    )
    parser.add_argument("--settings", default=None, help="Settings YAML file")
    parsed = parser.parse_args(args)

    settings = load_settings(parsed.settings)
    probe = ToolProbe(settings.ffmpeg)
    if probe.probe():
        print(f"ffmpeg: {probe.executable()}")
        return
    print(install_instructions(), file=sys.stderr)
    raise SystemExit(1)


if __name__ == "__main__":
    info_main()
