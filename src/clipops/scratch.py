"""Per-request temporary file registry with guaranteed cleanup.

Every temporary path a request creates is registered here before the
write that produces it, so a failure at any point still leaves nothing
behind. Caller-visible outputs can be registered too; those are only
removed when the request fails.
"""

import contextlib
import itertools
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScratchEntry:
    path: Path
    created_by: str


class ScratchScope:
    """Registry of temp files and directories owned by one request.

    Args:
        request_id: Used in generated names so concurrent requests never
            collide.
        root: Directory that holds generated scratch files.
    """

    def __init__(self, request_id: str, root: str | Path):
        self.request_id = request_id
        self.root = Path(root).resolve()
        self._entries: list[ScratchEntry] = []
        self._outputs: list[Path] = []
        self._counter = itertools.count(1)

    @property
    def entries(self) -> list[ScratchEntry]:
        return list(self._entries)

    def register(self, path: str | Path, created_by: str = "") -> Path:
        path = Path(path)
        self._entries.append(ScratchEntry(path, created_by))
        return path

    def register_output(self, path: str | Path) -> Path:
        """Track a caller output so a failed request does not leave it half-written."""
        path = Path(path)
        self._outputs.append(path)
        return path

    def _fresh_name(self, prefix: str, suffix: str = "") -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root / (
            f"{prefix}-{self.request_id}-{time.time_ns()}-{next(self._counter)}{suffix}"
        )

    def new_path(self, prefix: str, suffix: str = "", created_by: str = "") -> Path:
        """Reserve and register a unique file path. Nothing is written."""
        return self.register(self._fresh_name(prefix, suffix), created_by or prefix)

    def new_dir(self, prefix: str, created_by: str = "") -> Path:
        """Create and register a unique directory."""
        path = self.register(self._fresh_name(prefix), created_by or prefix)
        path.mkdir(parents=True)
        return path

    def cleanup(self) -> None:
        """Delete every registered entry, newest first. Errors are logged only."""
        while self._entries:
            _remove(self._entries.pop().path)

    def discard_outputs(self) -> None:
        while self._outputs:
            _remove(self._outputs.pop())


def _remove(path: Path) -> None:
    try:
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
    except OSError as e:
        logger.debug("Could not remove scratch path %s: %s", path, e)


@contextlib.contextmanager
def scratch_scope(request_id: str, root: str | Path):
    """Yield a ScratchScope and clean it up on every exit path.

    On failure (including cancellation) registered outputs are removed
    before the exception propagates.
    """
    scope = ScratchScope(request_id, root)
    try:
        yield scope
    except BaseException:
        scope.discard_outputs()
        raise
    finally:
        scope.cleanup()
