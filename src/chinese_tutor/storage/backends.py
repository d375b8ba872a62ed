"""Key/value backends underneath the quota-safe store.

Backends store raw serialized strings and raise ``StorageQuotaError`` when a
write would exceed their capacity.
"""

import errno
import os
import tempfile
from pathlib import Path
from typing import Protocol
from urllib.parse import quote, unquote

from chinese_tutor.errors import StorageQuotaError


class KeyValueBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


def _size(value: str) -> int:
    return len(value.encode("utf-8"))


class MemoryBackend:
    """In-process backend, optionally bounded to ``capacity_bytes``."""

    def __init__(self, capacity_bytes: int | None = None):
        self.capacity_bytes = capacity_bytes
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.capacity_bytes is not None:
            used = sum(_size(v) for k, v in self._data.items() if k != key)
            if used + _size(value) > self.capacity_bytes:
                raise StorageQuotaError(f"capacity of {self.capacity_bytes} bytes exceeded")
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileBackend:
    """One file per key inside ``directory`` (temp file + atomic replace)."""

    SUFFIX = ".json"

    def __init__(self, directory: Path, capacity_bytes: int | None = None):
        self.directory = directory
        self.capacity_bytes = capacity_bytes
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        if self.capacity_bytes is not None:
            used = sum(
                p.stat().st_size
                for p in self.directory.glob(f"*{self.SUFFIX}")
                if p != path
            )
            if used + _size(value) > self.capacity_bytes:
                raise StorageQuotaError(f"capacity of {self.capacity_bytes} bytes exceeded")
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self.directory, delete=False, suffix=".tmp", encoding="utf-8"
            ) as tmp:
                tmp.write(value)
            os.replace(tmp.name, path)
        except OSError as e:
            if e.errno in (errno.ENOSPC, errno.EDQUOT):
                raise StorageQuotaError(str(e)) from e
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        return [
            unquote(p.name[: -len(self.SUFFIX)])
            for p in sorted(self.directory.glob(f"*{self.SUFFIX}"))
        ]
