from __future__ import annotations

import os
from pathlib import Path

from .errors import PathInvalid


def relative_entry_name(path: str | os.PathLike, root: str | os.PathLike) -> str:
    """Entry name for ``path`` inside a container rooted at ``root``.

    Only the platform separator becomes ``/``; every other character of the
    file name (backslashes on POSIX included) is kept as is.
    """
    rel = os.path.relpath(os.fspath(path), start=os.fspath(root))
    if os.sep != "/":
        rel = rel.replace(os.sep, "/")
    return rel


def require_dir(path: str | os.PathLike) -> Path:
    p = Path(path)
    if not p.is_dir():
        raise PathInvalid(f"Source directory does not exist: {p}")
    return p


def ensure_dir(path: str | os.PathLike) -> Path:
    """Create ``path`` (and parents) if needed; raise PathInvalid when that fails."""
    p = Path(path)
    try:
        p.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise PathInvalid(f"Cannot create directory {p}: {exc}") from exc
    if not p.is_dir():
        raise PathInvalid(f"Destination is not a directory: {p}")
    return p
