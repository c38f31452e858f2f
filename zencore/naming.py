from __future__ import annotations

import os
from datetime import datetime
from typing import Optional

from .constants import CONTAINER_KINDS, DEFAULT_DATE_FORMAT
from .errors import UnsupportedContainerKind

MAX_COUNTER = 9999


def archive_extension(kind: str) -> str:
    if kind not in CONTAINER_KINDS:
        raise UnsupportedContainerKind(f"Unsupported container kind: {kind}")
    return kind


def generate_archive_name(
    destination: str | os.PathLike,
    kind: str,
    base: Optional[str] = None,
    *,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> str:
    """Pick a file name in ``destination`` that does not collide.

    Tries ``base.ext``, then ``base.1.ext`` .. ``base.9999.ext``, and falls
    back to ``base.copy.ext``. Without ``base`` the current local time
    formatted with ``date_format`` is used.
    """
    ext = archive_extension(kind)
    if not base:
        base = datetime.now().strftime(date_format)
    dest = os.fspath(destination)

    name = f"{base}.{ext}"
    if not os.path.exists(os.path.join(dest, name)):
        return name
    for counter in range(1, MAX_COUNTER + 1):
        name = f"{base}.{counter}.{ext}"
        if not os.path.exists(os.path.join(dest, name)):
            return name
    return f"{base}.copy.{ext}"
