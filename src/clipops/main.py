"""Subcommand dispatcher for clipops.

Usage:
    clipops run    --manifest edits.yaml
    clipops trim   source.mp4 --start 10 --end 30 --output clip.mp4
    clipops info   source.mp4
    clipops check
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="clipops",
        description="Declarative video editing operations driven by ffmpeg.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("run", help="Run every request in a YAML manifest")
    subparsers.add_parser("trim", help="Trim clips from a source video")
    subparsers.add_parser("info", help="Show video stream information")
    subparsers.add_parser("check", help="Check that ffmpeg is available")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "run":
        from .run_cli import main as run_main
        run_main(remaining)
    elif parsed.command == "trim":
        from .trim_cli import main as trim_main
        trim_main(remaining)
    elif parsed.command == "info":
        from .probe_cli import info_main
        info_main(remaining)
    elif parsed.command == "check":
        from .probe_cli import check_main
        check_main(remaining)


if __name__ == "__main__":
    main()
