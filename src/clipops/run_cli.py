"""CLI for running a request manifest.

Usage:
    clipops run --manifest edits.yaml
    clipops run --manifest edits.yaml --settings clipops.yaml --keep-going
"""

import argparse
import dataclasses
import json
import sys

from .config import configure_logging, load_settings
from .editor import VideoEditor
from .errors import ClipOpsError
from .manifest import load_request_manifest


def _progress_printer(label: str):
    last = {"step": -1}

    def show(event):
        # Print every 10%.
        step = int(event.percent // 10)
        if step > last["step"]:
            last["step"] = step
            print(f"         {label}  {event.percent:5.1f}%")

    return show


def _summarize(result) -> str:
    if isinstance(result, bytes):
        return f"{len(result)} bytes"
    if isinstance(result, list):
        return f"{len(result)} entries"
    if dataclasses.is_dataclass(result):
        return json.dumps(dataclasses.asdict(result), default=str)
    return str(result)


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="clipops run",
        description="Run every request in a YAML request manifest.",
    )
    parser.add_argument("--manifest", required=True, help="Path to request YAML manifest")
    parser.add_argument("--settings", default=None, help="Settings YAML file")
    parser.add_argument(
        "--keep-going", action="store_true",
        help="Continue with the next request after a failure",
    )
    parser.add_argument("--quiet", "-q", action="store_true", help="No progress output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parsed = parser.parse_args(args)

    configure_logging(parsed.verbose)
    requests = load_request_manifest(parsed.manifest)
    editor = VideoEditor.default(load_settings(parsed.settings))

    print(f"Running {len(requests)} requests from {parsed.manifest}")
    failures = 0
    for i, request in enumerate(requests):
        label = request.request_id or f"#{i + 1}"
        print(f"  RUN    {label}  {request.operation.name}")
        if not parsed.quiet:
            request = dataclasses.replace(request, on_progress=_progress_printer(label))
        try:
            result = editor.run_sync(request)
        except ClipOpsError as e:
            failures += 1
            print(f"  FAIL   {label}: {e}", file=sys.stderr)
            if not parsed.keep_going:
                raise SystemExit(1)
            continue
        print(f"  OK     {label}  {_summarize(result)}")

    print(f"Done: {len(requests) - failures}/{len(requests)} succeeded")
    if failures:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
