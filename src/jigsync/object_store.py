"""Object store backends for uploaded puzzle images.

The core only needs a URL back from ``put`` and a way to ``delete`` the
object again. Bucket layout, CDN and provider details stay in here.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

log = logging.getLogger(__name__)


def _safe_key(key_hint: str) -> str:
    """Normalize a key hint into a relative POSIX path without ``..`` parts."""
    parts = [p for p in PurePosixPath(key_hint).parts if p not in ("", "/", ".", "..")]
    if not parts:
        raise ValueError(f"Invalid object key: {key_hint!r}")
    return "/".join(parts)


class ObjectStore(ABC):
    """Abstract base class for object store backends."""

    @abstractmethod
    async def put(self, data: bytes, content_type: str, key_hint: str) -> str:
        """Store ``data`` and return a URL under which it can be fetched.

        Parameters
        ----------
        data : bytes
            Raw object payload.
        content_type : str
            Media type recorded with the object.
        key_hint : str
            Preferred key, e.g. ``rooms/<user>/<timestamp>.png``.

        Returns
        -------
        str
            Retrievable URL of the stored object.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the object stored under ``key``. Missing keys are ignored."""

    @abstractmethod
    def key_for(self, url: str) -> str | None:
        """Recover the key of an object from its URL, if it belongs to this store."""


class InMemoryObjectStore(ObjectStore):
    """Object store keeping payloads in a dict.

    Fast but not persistent - data is lost on server restart.
    Good for development and testing.
    """

    def __init__(self, base_url: str = "memory://objects") -> None:
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def put(self, data: bytes, content_type: str, key_hint: str) -> str:
        key = _safe_key(key_hint)
        self.objects[key] = (data, content_type)
        return f"{self.base_url}/{key}"

    async def delete(self, key: str) -> None:
        self.objects.pop(_safe_key(key), None)

    def key_for(self, url: str) -> str | None:
        prefix = f"{self.base_url}/"
        return url[len(prefix):] if url.startswith(prefix) else None


class FilesystemObjectStore(ObjectStore):
    """Object store writing files below ``root``.

    The server mounts ``root`` as static files at ``base_url``.
    """

    def __init__(self, root: Path, base_url: str = "/media") -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        return self.root / _safe_key(key)

    async def put(self, data: bytes, content_type: str, key_hint: str) -> str:
        key = _safe_key(key_hint)
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        log.debug("Stored %d bytes (%s) at %s", len(data), content_type, path)
        return f"{self.base_url}/{key}"

    async def delete(self, key: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    def key_for(self, url: str) -> str | None:
        prefix = f"{self.base_url}/"
        return url[len(prefix):] if url.startswith(prefix) else None
