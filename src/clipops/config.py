"""Runtime settings: timeouts, output caps, scratch location.

Settings come from dataclass defaults, then an optional YAML file, then
environment overrides:

  CLIPOPS_FFMPEG       explicit ffmpeg executable
  CLIPOPS_SCRATCH_DIR  directory for temporary files

Settings file schema (every key optional):
  ffmpeg: /usr/local/bin/ffmpeg
  scratch_dir: /tmp/clipops
  default_timeout: 300
  long_timeout: 600
  max_output_bytes: 10485760
  long_max_output_bytes: 20971520
  probe_timeout: 30
  batch_concurrency: 2
  http_timeout: 60
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

MIB = 1024 * 1024


@dataclass
class Settings:
    ffmpeg: str | None = None
    scratch_dir: Path = field(default_factory=lambda: Path.cwd() / ".temp-frames")
    default_timeout: float = 300.0
    long_timeout: float = 600.0
    max_output_bytes: int = 10 * MIB
    long_max_output_bytes: int = 20 * MIB
    probe_timeout: float = 30.0
    batch_concurrency: int = 2
    http_timeout: float = 60.0

    def __post_init__(self):
        self.scratch_dir = Path(self.scratch_dir).resolve()
        if self.batch_concurrency < 1:
            raise ValueError(
                f"batch_concurrency must be >= 1, got {self.batch_concurrency}"
            )
        for name in ("default_timeout", "long_timeout", "probe_timeout", "http_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")

    def limits(self, long_running: bool = False) -> tuple[float, int]:
        """Return (timeout, max_output_bytes) for one invocation."""
        if long_running:
            return self.long_timeout, self.long_max_output_bytes
        return self.default_timeout, self.max_output_bytes


def configure_logging(verbose: bool = False) -> None:
    """Root logging setup for the CLI entry points."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def load_settings(path: str | Path | None = None, environ=None) -> Settings:
    """Build Settings from an optional YAML file and the environment.

    Raises:
        ValueError: Unknown keys in the settings file, or invalid values.
    """
    environ = os.environ if environ is None else environ
    values = {}

    if path is not None:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Settings file {path}: expected a mapping at top level")
        known = {f.name for f in dataclasses.fields(Settings)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValueError(f"Settings file {path}: unknown keys {unknown}")
        values.update(raw)

    if environ.get("CLIPOPS_FFMPEG"):
        values["ffmpeg"] = environ["CLIPOPS_FFMPEG"]
    if environ.get("CLIPOPS_SCRATCH_DIR"):
        values["scratch_dir"] = environ["CLIPOPS_SCRATCH_DIR"]

    return Settings(**values)
