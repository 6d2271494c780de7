"""Cuts manifest loader: many trims from one source, declared in YAML.

A cuts manifest expands into a Batch of Trim operations, one per cut,
each writing <output_dir>/<id>.mp4.

Cuts manifest schema:
  source: "source.mp4"            # or "${raw}/source.mp4"
  paths:
    raw: "/data/recordings"
  cuts:
    - id: seg-001
      start: 669.0
      end: 937.0
"""

from dataclasses import dataclass
from pathlib import Path

import yaml

from .common import resolve_path_vars
from .errors import ValidationError
from .operations import Batch, BatchItem, Trim


@dataclass(frozen=True)
class Cut:
    id: str
    start: float
    end: float


@dataclass(frozen=True)
class CutsManifest:
    source: str
    cuts: tuple[Cut, ...]

    def to_batch(
        self,
        output_dir: str | Path,
        source: str | None = None,
        copy: bool = False,
        force: bool = False,
    ) -> tuple[Batch | None, list[Cut]]:
        """Build the Batch for these cuts.

        Args:
            output_dir: Directory receiving <id>.mp4 files.
            source: Overrides the manifest source when given.
            copy: Stream-copy instead of re-encoding.
            force: Include cuts whose output file already exists.

        Returns:
            (batch, skipped). batch is None when every cut was skipped.
        """
        source = source or self.source
        items = []
        skipped = []
        for cut in self.cuts:
            if (Path(output_dir) / f"{cut.id}.mp4").exists() and not force:
                skipped.append(cut)
                continue
            items.append(BatchItem(source, Trim(
                start_time=cut.start, end_time=cut.end,
                output_path=f"{cut.id}.mp4", copy=copy,
            )))
        if not items:
            return None, skipped
        return Batch(items=tuple(items), output_directory=str(output_dir)), skipped


def load_cuts_manifest(manifest_path: str | Path) -> CutsManifest:
    """Load and validate a cuts manifest.

    Raises:
        ValidationError: Missing fields, bad ranges, duplicate ids.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValidationError("Cuts manifest: expected a mapping at top level")
    for key in ("source", "cuts"):
        if key not in raw:
            raise ValidationError(f"Cuts manifest: missing required '{key}' field")

    source = resolve_path_vars(str(raw["source"]), raw.get("paths") or {})

    cuts = []
    seen_ids = set()
    for i, entry in enumerate(raw["cuts"] or []):
        missing = [k for k in ("id", "start", "end") if k not in entry]
        if missing:
            raise ValidationError(f"Cut {i}: missing required field '{missing[0]}'")

        cut = Cut(str(entry["id"]), float(entry["start"]), float(entry["end"]))
        if cut.start < 0:
            raise ValidationError(f"Cut {i} ({cut.id}): start must be >= 0, got {cut.start}")
        if cut.start >= cut.end:
            raise ValidationError(
                f"Cut {i} ({cut.id}): start ({cut.start}) must be < end ({cut.end})"
            )
        if cut.id in seen_ids:
            raise ValidationError(f"Duplicate cut id: '{cut.id}'")
        seen_ids.add(cut.id)
        cuts.append(cut)

    return CutsManifest(source=source, cuts=tuple(cuts))
