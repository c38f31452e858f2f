"""
Archive state store.

One JSON document maps archive names to their metadata::

    {"archives": {"<name>": {"name": ..., "checksums": {"SHA-256": ...}, ...}}}

Records written before digest sets existed only carry ``checksum`` (the
SHA-256 hex); they are migrated in memory on load and rewritten on the next
``save``. No locking is done: one writer per state file.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config import Config, find_config, load_config
from .constants import DIGEST_SHA256, STATE_FILE_NAME
from .errors import StateCorruption, UnknownDigestAlgorithm
from .hashutil import DigestSet


def now_timestamp() -> str:
    return datetime.now().astimezone().isoformat()


@dataclass(frozen=True)
class ArchiveMetadata:
    name: str
    created_at: str
    checksums: DigestSet
    algorithm: str
    size_bytes: int
    file_count: int
    encrypted: bool
    contents: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not isinstance(self.checksums, DigestSet):
            object.__setattr__(self, "checksums", DigestSet(self.checksums))
        object.__setattr__(self, "contents", tuple(self.contents))

    @property
    def checksum(self) -> str:
        """SHA-256 hex digest (the single value older releases stored)."""
        return self.checksums.sha256

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "created_at": self.created_at,
            "checksum": self.checksum,
            "checksums": self.checksums.to_dict(),
            "algorithm": self.algorithm,
            "size_bytes": self.size_bytes,
            "file_count": self.file_count,
            "encrypted": self.encrypted,
            "contents": list(self.contents),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArchiveMetadata":
        """Build a record from its stored form.

        A legacy record holding only ``checksum`` gets that value as its
        SHA-256 entry. Like every digest in a DigestSet it is stored
        lower-cased, so an upper-case hex value migrates as its lower-case
        spelling. Raises StateCorruption for malformed records.
        """
        if not isinstance(data, dict):
            raise StateCorruption(f"Archive record is not an object: {data!r}")
        try:
            raw_sets = data.get("checksums") or {}
            if not isinstance(raw_sets, dict):
                raise StateCorruption("'checksums' must be an object")
            checksums = DigestSet(raw_sets)
            legacy = data.get("checksum") or ""
            if legacy and DIGEST_SHA256 not in checksums:
                checksums[DIGEST_SHA256] = legacy
            contents = data.get("contents") or []
            if not isinstance(contents, list):
                raise StateCorruption("'contents' must be a list")
            return cls(
                name=str(data["name"]),
                created_at=str(data.get("created_at", "")),
                checksums=checksums,
                algorithm=str(data.get("algorithm", "")),
                size_bytes=int(data.get("size_bytes", 0)),
                file_count=int(data.get("file_count", len(contents))),
                encrypted=bool(data.get("encrypted", False)),
                contents=tuple(str(c) for c in contents),
            )
        except (KeyError, TypeError, ValueError, UnknownDigestAlgorithm) as exc:
            raise StateCorruption(f"Malformed archive record: {exc}") from exc


def _created_key(meta: ArchiveMetadata) -> datetime:
    try:
        ts = datetime.fromisoformat(meta.created_at)
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if ts.tzinfo is None:
        ts = ts.astimezone()
    return ts


class ArchiveStateStore:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._archives: Dict[str, ArchiveMetadata] = {}

    @classmethod
    def in_dir(cls, state_dir: str | os.PathLike) -> "ArchiveStateStore":
        return cls(Path(state_dir) / STATE_FILE_NAME)

    @classmethod
    def default(cls, cfg: Optional[Config] = None) -> "ArchiveStateStore":
        """Store in the configured state directory (config file read when ``cfg`` is None)."""
        if cfg is None:
            cfg = load_config(find_config())
        return cls.in_dir(cfg.state_dir)

    def load(self) -> "ArchiveStateStore":
        """Read the whole document, replacing anything held in memory.

        A missing file is an empty store. Raises StateCorruption when the
        document cannot be parsed; nothing is loaded in that case.
        """
        if not self.path.exists():
            self._archives = {}
            return self
        try:
            doc = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise StateCorruption(f"State file {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(doc, dict) or not isinstance(doc.get("archives", {}), dict):
            raise StateCorruption(f"State file {self.path} has an unexpected layout")
        loaded: Dict[str, ArchiveMetadata] = {}
        for key, record in doc.get("archives", {}).items():
            meta = ArchiveMetadata.from_dict(record)
            loaded[key] = meta
        self._archives = loaded
        return self

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        doc = {"archives": {k: m.to_dict() for k, m in self._archives.items()}}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(doc, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def put(self, metadata: ArchiveMetadata) -> None:
        """Insert or wholly replace the record with the same name."""
        self._archives.pop(metadata.name, None)
        self._archives[metadata.name] = metadata

    def get(self, name: str) -> Optional[ArchiveMetadata]:
        return self._archives.get(name)

    def remove(self, name: str) -> bool:
        return self._archives.pop(name, None) is not None

    def list(self) -> List[ArchiveMetadata]:
        """All records, most recently created first."""
        return sorted(self._archives.values(), key=_created_key, reverse=True)

    def __len__(self) -> int:
        return len(self._archives)

    def __contains__(self, name: object) -> bool:
        return name in self._archives

