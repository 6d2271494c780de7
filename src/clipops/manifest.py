"""Request manifest loader: declare video edits in YAML.

Follows the same ${var} path resolution as the cuts manifest. Variables
are substituted in every string value (sources, output paths, frame
lists, nested batch items).

Request manifest schema:
  paths:
    raw: "/data/recordings"
    out: "/data/edits"
  requests:
    - id: intro                       # optional, names scratch files
      source: "${raw}/lecture.mp4"
      trim:
        start_time: 5
        end_time: 12
        output_path: "${out}/intro.mp4"
    - source: "${raw}/lecture.mp4"
      replace_segment:
        target_start: 2
        target_end: 5
        replacement_video: "${raw}/broll.mp4"
        output_path: "${out}/patched.mp4"
"""

from pathlib import Path

import yaml

from .common import resolve_path_vars
from .operations import OperationRequest, parse_request


def _substitute(value, paths: dict[str, str]):
    if isinstance(value, str):
        return resolve_path_vars(value, paths)
    if isinstance(value, list):
        return [_substitute(v, paths) for v in value]
    if isinstance(value, dict):
        return {k: _substitute(v, paths) for k, v in value.items()}
    return value


def load_request_manifest(manifest_path: str | Path) -> list[OperationRequest]:
    """Load and validate a request manifest.

    Processing pipeline:
      1. Parse YAML.
      2. Resolve ${path} variables in every string value.
      3. Build one OperationRequest per entry (each validates itself).
      4. Check for duplicate ids.

    Args:
        manifest_path: Path to the YAML request manifest.

    Returns:
        OperationRequests in manifest order.

    Raises:
        ValueError: Missing/invalid fields (ValidationError for request
            contents, which is also a ValueError).
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError("Request manifest: expected a mapping at top level")
    if "requests" not in raw:
        raise ValueError("Request manifest: missing required 'requests' field")
    if not isinstance(raw["requests"], list) or not raw["requests"]:
        raise ValueError("Request manifest: 'requests' must be a non-empty list")

    paths = raw.get("paths") or {}

    requests = []
    seen_ids = set()
    for i, entry in enumerate(raw["requests"]):
        if not isinstance(entry, dict):
            raise ValueError(f"Request {i}: expected a mapping")
        try:
            request = parse_request(_substitute(entry, paths))
        except ValueError as e:
            raise type(e)(f"Request {i}: {e}") from e

        if request.request_id is not None:
            if request.request_id in seen_ids:
                raise ValueError(f"Duplicate request id: '{request.request_id}'")
            seen_ids.add(request.request_id)
        requests.append(request)

    return requests
