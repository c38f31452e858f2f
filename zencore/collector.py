"""
File collection for an archive job.

The source root is listed by the coordinating thread; each top-level
subdirectory is then walked by a pool worker. Results are merged back in
submission order, so the final list does not depend on scheduling.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .pool import WorkerPool


@dataclass(frozen=True)
class SourceFile:
    path: str
    size: int


def _scan(directory: str) -> Tuple[List[str], List[str]]:
    """Return (regular files, subdirectories) of ``directory`` in name order."""
    files: List[str] = []
    dirs: List[str] = []
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                dirs.append(entry.path)
            elif entry.is_file(follow_symlinks=False):
                files.append(entry.path)
        except OSError:
            continue
    return files, dirs


def _walk(directory: str) -> List[str]:
    # Pre-order: a directory's own files, then each subdirectory in turn.
    out: List[str] = []
    stack = [directory]
    while stack:
        current = stack.pop()
        try:
            files, dirs = _scan(current)
        except OSError:
            continue
        out.extend(files)
        stack.extend(reversed(dirs))
    return out


def _file_size(path: str) -> Optional[int]:
    try:
        return os.stat(path, follow_symlinks=False).st_size
    except OSError:
        return None


def collect_files(root: str | os.PathLike, pool: WorkerPool, *, sort_by_size: bool = False) -> List[SourceFile]:
    """Enumerate every regular file beneath ``root``.

    Args:
        root: Source directory.
        pool: Worker pool used for subtree walks and size lookups.
        sort_by_size: When True, order by descending size; ties keep
            discovery order.

    Unreadable subtrees and files are skipped. An empty result is valid.
    """
    root_str = os.fspath(Path(root))
    try:
        top_files, top_dirs = _scan(root_str)
    except OSError:
        return []

    futures = [pool.submit(_walk, d) for d in top_dirs]
    paths: List[str] = list(top_files)
    for fut in futures:
        paths.extend(fut.result())

    sizes = pool.map(_file_size, paths)
    files = [SourceFile(p, s) for p, s in zip(paths, sizes) if s is not None]
    if sort_by_size:
        files.sort(key=lambda f: f.size, reverse=True)
    return files
