"""CLI for trimming: single trim or batch from a cuts manifest.

Usage:
    # Single trim
    clipops trim source.mp4 --start 10 --end 30 --output clip.mp4

    # Batch trims
    clipops trim source.mp4 --manifest cuts.yaml --output-dir clips/
    clipops trim --manifest cuts.yaml --output-dir clips/
"""

import argparse
from pathlib import Path

from .config import configure_logging, load_settings
from .cuts_manifest import load_cuts_manifest
from .editor import VideoEditor
from .operations import OperationRequest, Trim


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="clipops trim",
        description="Trim clips from a source video.",
    )
    parser.add_argument(
        "source", nargs="?", default=None,
        help="Path or URL of the source video (optional if --manifest provides it)",
    )
    parser.add_argument(
        "--start", type=float, default=None,
        help="Start time in seconds (single trim mode)",
    )
    parser.add_argument(
        "--end", type=float, default=None,
        help="End time in seconds (single trim mode)",
    )
    parser.add_argument(
        "--output", default=None,
        help="Output file path (single trim mode)",
    )
    parser.add_argument(
        "--manifest", default=None,
        help="Path to cuts YAML manifest (batch mode)",
    )
    parser.add_argument(
        "--output-dir", default=None,
        help="Output directory for batch trims",
    )
    parser.add_argument(
        "--copy", action="store_true",
        help="Stream-copy (fast, keyframe-aligned) instead of re-encode",
    )
    parser.add_argument(
        "--force", action="store_true",
        help="Overwrite existing output files",
    )
    parser.add_argument("--settings", default=None, help="Settings YAML file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parsed = parser.parse_args(args)

    is_single = parsed.start is not None or parsed.end is not None or parsed.output is not None
    is_batch = parsed.manifest is not None or parsed.output_dir is not None

    if is_single and is_batch:
        parser.error(
            "Cannot mix single-trim args (--start/--end/--output) "
            "with batch args (--manifest/--output-dir)"
        )
    if not is_single and not is_batch:
        parser.error(
            "Specify either single trim (--start/--end/--output) "
            "or batch (--manifest/--output-dir)"
        )

    configure_logging(parsed.verbose)

    if is_single:
        if parsed.start is None or parsed.end is None or parsed.output is None:
            parser.error("Single trim mode requires --start, --end, and --output")
        if parsed.source is None:
            parser.error("Single trim mode requires a source video argument")

        request = OperationRequest(
            Trim(parsed.start, parsed.end, parsed.output, copy=parsed.copy),
            source=parsed.source,
        )
        editor = VideoEditor.default(load_settings(parsed.settings))
        print(f"Trimming {parsed.source}  {parsed.start:.1f}s - {parsed.end:.1f}s")
        editor.run_sync(request)
        print(f"Done: {parsed.output}")
        return

    if parsed.manifest is None:
        parser.error("Batch mode requires --manifest")
    if parsed.output_dir is None:
        parser.error("Batch mode requires --output-dir")

    manifest = load_cuts_manifest(parsed.manifest)
    # CLI source arg overrides manifest source.
    source = parsed.source or manifest.source
    if "://" not in source and not Path(source).exists():
        raise FileNotFoundError(f"Source video not found: {source}")

    batch, skipped = manifest.to_batch(
        parsed.output_dir, source=source, copy=parsed.copy, force=parsed.force,
    )
    for cut in skipped:
        print(f"  SKIP   {cut.id}.mp4 (exists, use --force to overwrite)")
    if batch is None:
        print("Nothing to do.")
        return

    print(f"Batch trimming {len(batch.items)} segments from {source}")
    editor = VideoEditor.default(load_settings(parsed.settings))
    results = editor.run_sync(OperationRequest(batch))

    failed = 0
    for result in results:
        status = "OK  " if result.success else "FAIL"
        print(f"  {status}   {result.output}" + (f"  ({result.error})" if result.error else ""))
        failed += not result.success
    print(f"Done: {len(results) - failed} clips in {parsed.output_dir}")
    if failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
