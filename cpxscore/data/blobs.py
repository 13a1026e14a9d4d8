"""Blob storage addressed by hierarchical keys such as ``SP_script/2025/abc.txt``."""

from __future__ import annotations

import abc
import asyncio
from pathlib import Path, PurePosixPath


class BlobNotFoundError(LookupError):
    """Raised when a key has no stored blob."""


class BlobStore(abc.ABC):
    @abc.abstractmethod
    async def get(self, key: str) -> bytes:
        raise NotImplementedError

    @abc.abstractmethod
    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        raise NotImplementedError

    async def get_text(self, key: str) -> str:
        return (await self.get(key)).decode("utf-8")

    async def put_text(self, key: str, text: str, content_type: str = "text/plain; charset=utf-8") -> None:
        await self.put(key, text.encode("utf-8"), content_type=content_type)


class LocalBlobStore(BlobStore):
    """Filesystem-backed blob store rooted at a single directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if not key or relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.root.joinpath(*relative.parts)

    def _read(self, key: str) -> bytes:
        path = self.path_for(key)
        if not path.is_file():
            raise BlobNotFoundError(key)
        return path.read_bytes()

    def _write(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".partial")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)

    async def get(self, key: str) -> bytes:
        return await asyncio.to_thread(self._read, key)

    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        await asyncio.to_thread(self._write, key, data)


__all__ = ["BlobNotFoundError", "BlobStore", "LocalBlobStore"]
