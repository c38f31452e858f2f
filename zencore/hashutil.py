"""
Digest engine.

Files are always streamed in fixed-size chunks. When several algorithms are
requested each one gets its own full read of the file.
"""
from __future__ import annotations

import hashlib
import os
import sys
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, MutableMapping, Optional

import blake3

from .constants import (
    DIGEST_SHA256,
    DIGEST_SHA3_256,
    DIGEST_BLAKE3,
    DIGEST_CHUNK_SIZE,
    SIDECAR_SUFFIX,
)
from .encryption import is_envelope
from .errors import UnknownDigestAlgorithm


_ALIASES = {
    "sha256": DIGEST_SHA256,
    "sha-256": DIGEST_SHA256,
    "sha3": DIGEST_SHA3_256,
    "sha3-256": DIGEST_SHA3_256,
    "sha3_256": DIGEST_SHA3_256,
    "blake3": DIGEST_BLAKE3,
}

_FACTORIES: Dict[str, Callable[[], object]] = {
    DIGEST_SHA256: hashlib.sha256,
    DIGEST_SHA3_256: hashlib.sha3_256,
    DIGEST_BLAKE3: blake3.blake3,
}


def normalize_algorithm(name: str) -> str:
    """Canonical algorithm name (e.g. ``"sha256"`` -> ``"SHA-256"``)."""
    key = str(name).strip().lower()
    try:
        return _ALIASES[key]
    except KeyError:
        raise UnknownDigestAlgorithm(f"Unknown hash algorithm: {name}") from None


def resolve_algorithms(names: Iterable[str]) -> List[str]:
    """Normalize a configured algorithm list.

    Unknown names are reported and dropped; duplicates collapse; an empty
    result falls back to SHA-256.
    """
    out: List[str] = []
    for name in names:
        try:
            canon = normalize_algorithm(name)
        except UnknownDigestAlgorithm as exc:
            print(f"Warning: {exc}; ignoring", file=sys.stderr)
            continue
        if canon not in out:
            out.append(canon)
    if not out:
        out.append(DIGEST_SHA256)
    return out


def _iter_chunks(path: str | os.PathLike, chunk_size: int = DIGEST_CHUNK_SIZE) -> Iterator[bytes]:
    with open(path, "rb") as fh:
        while True:
            buf = fh.read(chunk_size)
            if not buf:
                return
            yield buf


def file_digest(path: str | os.PathLike, algorithm: str = DIGEST_SHA256) -> str:
    """Lowercase hex digest of ``path`` for a single algorithm."""
    h = _FACTORIES[normalize_algorithm(algorithm)]()
    for buf in _iter_chunks(path):
        h.update(buf)
    return h.hexdigest()


def bytes_digest(data: bytes, algorithm: str = DIGEST_SHA256) -> str:
    """Hex digest of an in-memory buffer."""
    h = _FACTORIES[normalize_algorithm(algorithm)]()
    h.update(data)
    return h.hexdigest()


class DigestSet(MutableMapping[str, str]):
    """Algorithm name -> hex digest, keyed by canonical algorithm name.

    The SHA-256 value is exposed through ``sha256`` instead of being stored
    twice.
    """

    def __init__(self, values: Optional[Mapping[str, str]] = None):
        self._values: Dict[str, str] = {}
        if values:
            for k, v in values.items():
                self[k] = v

    def __getitem__(self, key: str) -> str:
        return self._values[normalize_algorithm(key)]

    def __setitem__(self, key: str, value: str) -> None:
        self._values[normalize_algorithm(key)] = str(value).lower()

    def __delitem__(self, key: str) -> None:
        del self._values[normalize_algorithm(key)]

    def __iter__(self):
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key) -> bool:
        try:
            return normalize_algorithm(key) in self._values
        except UnknownDigestAlgorithm:
            return False

    def __repr__(self) -> str:
        return f"DigestSet({self._values!r})"

    def __eq__(self, other) -> bool:
        if isinstance(other, DigestSet):
            return self._values == other._values
        if isinstance(other, Mapping):
            return self == DigestSet(other)
        return NotImplemented

    @property
    def sha256(self) -> str:
        """SHA-256 hex digest, or "" when it was not computed."""
        return self._values.get(DIGEST_SHA256, "")

    def to_dict(self) -> Dict[str, str]:
        return dict(self._values)


def digest(path: str | os.PathLike, algorithms: Iterable[str] = (DIGEST_SHA256,)) -> DigestSet:
    """Compute every requested digest of ``path``.

    Raises:
        UnknownDigestAlgorithm: If any name is not recognised.
        OSError: If the file cannot be read.
    """
    canon = [normalize_algorithm(a) for a in algorithms]
    out = DigestSet()
    for algo in canon:
        if algo not in out:
            out[algo] = file_digest(path, algo)
    return out


# -------- Sidecar checksum files --------

def sidecar_path(archive: str | os.PathLike) -> str:
    return os.fspath(archive) + SIDECAR_SUFFIX


def write_sidecar(archive: str | os.PathLike, sha256_hex: Optional[str] = None) -> str:
    """Write ``<archive>.sha256`` as ``<hex>  <file name>\\n``."""
    if sha256_hex is None:
        sha256_hex = file_digest(archive, DIGEST_SHA256)
    path = sidecar_path(archive)
    with open(path, "w", encoding="utf-8", newline="\n") as fh:
        fh.write(f"{sha256_hex.lower()}  {os.path.basename(os.fspath(archive))}\n")
    return path


def read_sidecar(archive: str | os.PathLike) -> Optional[str]:
    """Digest stored next to ``archive``, or None when there is no sidecar."""
    path = sidecar_path(archive)
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as fh:
        line = fh.readline().strip()
    if not line:
        return None
    return line.split()[0]


def verify_checksum(path: str | os.PathLike, expected: str, algorithm: str = DIGEST_SHA256) -> bool:
    actual = file_digest(path, algorithm)
    return actual.lower() == expected.strip().lower()


def check_sidecar(archive: str | os.PathLike) -> Optional[bool]:
    """True/False against the sidecar; None when there is nothing to compare.

    The sidecar describes the container before encryption, so an enveloped
    archive has no usable reference on disk and also yields None.
    """
    expected = read_sidecar(archive)
    if expected is None or is_envelope(archive):
        return None
    return verify_checksum(archive, expected)


def auto_verify(archive: str | os.PathLike) -> bool:
    """Verify against the sidecar if one is usable; otherwise the archive passes."""
    result = check_sidecar(archive)
    return True if result is None else result
