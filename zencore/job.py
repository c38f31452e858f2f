from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .constants import DIGEST_SHA256


@dataclass(frozen=True)
class ArchiveJob:
    """Everything the pipeline needs to produce one archive.

    ``name`` is the final file name (extension included) inside
    ``destination``; see ``naming.generate_archive_name``.
    """

    source: Path
    destination: Path
    name: str
    kind: str
    level: Optional[int] = None
    threads: int = 0
    password: Optional[str] = None
    algorithms: Tuple[str, ...] = (DIGEST_SHA256,)
    sort_by_size: bool = True
    cipher: str = "aes-256-gcm"
    extreme: bool = False

    def __post_init__(self):
        object.__setattr__(self, "source", Path(self.source))
        object.__setattr__(self, "destination", Path(self.destination))
        object.__setattr__(self, "algorithms", tuple(self.algorithms))

    @property
    def archive_path(self) -> Path:
        return self.destination / self.name

    def with_name(self, name: str) -> "ArchiveJob":
        return dataclasses.replace(self, name=name)
