"""Turn media references (bytes, URLs, paths) into local files."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import httpx

from .errors import SourceFetchError, SourceNotFoundError
from .scratch import ScratchScope

logger = logging.getLogger(__name__)

MediaRef = str | os.PathLike | bytes | bytearray


@dataclass(frozen=True)
class ResolvedSource:
    """A local file ready to hand to ffmpeg.

    owned is True only when the file was written for this request and
    must be deleted when the request ends.
    """
    path: Path
    owned: bool


def is_url(ref) -> bool:
    return isinstance(ref, str) and ref.startswith(("http://", "https://"))


async def resolve_source(
    ref: MediaRef,
    scratch: ScratchScope,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = 60.0,
    prefix: str = "temp-video",
    suffix: str = ".mp4",
) -> ResolvedSource:
    """Resolve a media reference to a local path.

    Bytes are written to a fresh scratch file, URLs are downloaded to one,
    and anything else is treated as a filesystem path relative to the
    working directory. Scratch paths are registered before they are
    written.

    Args:
        ref: Raw bytes, http(s) URL, or filesystem path.
        scratch: Registry for files written on the caller's behalf.
        client: Optional shared httpx client (used for URL refs).
        timeout: Download timeout when no client is supplied.
        prefix, suffix: Naming of generated scratch files.

    Raises:
        SourceNotFoundError: Local path does not exist.
        SourceFetchError: Download failed (transport or HTTP status).
    """
    if isinstance(ref, (bytes, bytearray)):
        path = scratch.new_path(prefix, suffix, created_by="source:bytes")
        path.write_bytes(bytes(ref))
        return ResolvedSource(path, owned=True)

    if is_url(ref):
        path = scratch.new_path(prefix, suffix, created_by="source:url")
        await _download(ref, path, client, timeout)
        return ResolvedSource(path, owned=True)

    path = Path(ref).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    if not path.exists():
        raise SourceNotFoundError(f"Video file not found: {path}")
    return ResolvedSource(path, owned=False)


async def _download(url: str, dest: Path, client, timeout: float) -> None:
    logger.debug("Downloading %s -> %s", url, dest)
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as c:
                await _stream_to_file(c, url, dest)
        else:
            await _stream_to_file(client, url, dest)
    except httpx.HTTPError as e:
        raise SourceFetchError(f"Failed to fetch {url}: {e}") from e


async def _stream_to_file(client: httpx.AsyncClient, url: str, dest: Path) -> None:
    async with client.stream("GET", url) as response:
        response.raise_for_status()
        with open(dest, "wb") as f:
            async for chunk in response.aiter_bytes():
                f.write(chunk)
