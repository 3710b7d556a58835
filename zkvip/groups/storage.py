"""
Keyed persistence for group records.

Each key holds one sequence of plain dict records wrapped in a versioned
envelope: {"schema_v": 1, "records": [...]}. load() returns None for a key
that has never been written, which is how the store detects first run.
"""

from __future__ import annotations

import copy
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import cbor2

from .errors import StorageError

SCHEMA_V = 1
AVAILABLE_GROUPS_KEY = "zkvip_available_groups"
JOINED_GROUPS_KEY = "zkvip_joined_groups"

MAX_RECORD_FILE_BYTES = 4 * 1024 * 1024

Records = List[Dict[str, Any]]


class GroupStorage(Protocol):
    def load(self, key: str) -> Optional[Records]:
        ...

    def save(self, key: str, records: Records) -> None:
        ...


def wrap_records(records: Records) -> Dict[str, Any]:
    return {"schema_v": SCHEMA_V, "records": list(records)}


def unwrap_records(envelope: Any, key: str) -> Records:
    if not isinstance(envelope, dict):
        raise StorageError(f"{key}: envelope must be a mapping")
    schema_v = envelope.get("schema_v")
    if schema_v != SCHEMA_V:
        raise StorageError(f"{key}: unsupported schema_v {schema_v!r}")
    records = envelope.get("records")
    if not isinstance(records, list):
        raise StorageError(f"{key}: records must be a list")
    return records


class MemoryStorage:
    """In-process storage; records are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}

    def load(self, key: str) -> Optional[Records]:
        if key not in self._data:
            return None
        return copy.deepcopy(unwrap_records(self._data[key], key))

    def save(self, key: str, records: Records) -> None:
        self._data[key] = wrap_records(copy.deepcopy(records))


class CborFileStorage:
    """One CBOR file per key under a directory, replaced atomically on save."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def path_for(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise StorageError(f"invalid storage key: {key!r}")
        return self._directory / f"{key}.cbor"

    def load(self, key: str) -> Optional[Records]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            if path.stat().st_size > MAX_RECORD_FILE_BYTES:
                raise StorageError(f"{path} is too large")
            envelope = cbor2.loads(path.read_bytes())
        except (OSError, cbor2.CBORDecodeError) as exc:
            raise StorageError(f"failed to read {path}: {exc}") from exc
        return unwrap_records(envelope, key)

    def save(self, key: str, records: Records) -> None:
        path = self.path_for(key)
        try:
            blob = cbor2.dumps(wrap_records(records))
        except cbor2.CBOREncodeError as exc:
            raise StorageError(f"failed to encode {key}: {exc}") from exc

        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", dir=self._directory)
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(blob)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise StorageError(f"failed to write {path}: {exc}") from exc
