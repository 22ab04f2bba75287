from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol

from event_checkin.errors import StorageFailure


class BlobStore(Protocol):
    """Opaque artifact storage. ``put`` returns the location to persist."""

    def put(self, key: str, data: bytes, *, content_type: str = "application/octet-stream") -> str:
        ...

    def get(self, key: str) -> bytes:
        ...

    def exists(self, key: str) -> bool:
        ...


class LocalBlobStore:
    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        candidate = (self._root / key).resolve()
        if self._root.resolve() not in candidate.parents:
            raise ValueError(f"Blob key escapes the store root: {key!r}")
        return candidate

    def put(self, key: str, data: bytes, *, content_type: str = "application/octet-stream") -> str:
        target = self._path_for(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            # Readers only ever see a complete artifact.
            with tempfile.NamedTemporaryFile(dir=target.parent, delete=False) as handle:
                handle.write(data)
                temp_name = handle.name
            os.replace(temp_name, target)
        except OSError as exc:
            raise StorageFailure(f"Unable to write blob {key}: {exc}") from exc
        return str(target)

    def get(self, key: str) -> bytes:
        path = self._path_for(key)
        if not path.exists():
            raise FileNotFoundError(f"No blob stored under {key!r}")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageFailure(f"Unable to read blob {key}: {exc}") from exc

    def exists(self, key: str) -> bool:
        return self._path_for(key).exists()
