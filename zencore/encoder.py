"""
Container encoders.

Three interchangeable container kinds share one contract:
``encode(job, files) -> (archive_path, relative_paths)``. Entries are written
in the order given, named by their path relative to the job's source root,
and the returned list is exactly what was written, in write order.
"""
from __future__ import annotations

import io
import os
import sys
import tarfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pyzipper
import zstandard

from .collector import SourceFile
from .constants import (
    KIND_TAR_GZ,
    KIND_TAR_ZST,
    KIND_ZIP,
    STREAMING_KINDS,
    GZIP_LEVELS,
    ZSTD_LEVELS,
    ZIP_LEVELS,
    ZSTD_MAX_REGULAR_LEVEL,
)
from .encryption import is_envelope, unseal
from .errors import DecryptionFailed, InvalidCompressionLevel, UnsupportedContainerKind
from .job import ArchiveJob
from .pathutil import relative_entry_name


ProgressFn = Callable[[int, int, str], None]

_LEVELS: Dict[str, Tuple[int, int, int]] = {
    KIND_TAR_GZ: GZIP_LEVELS,
    KIND_TAR_ZST: ZSTD_LEVELS,
    KIND_ZIP: ZIP_LEVELS,
}


def resolve_level(kind: str, level: Optional[int], *, extreme: bool = False) -> int:
    """Validate a compression level for ``kind``.

    Out-of-range values are reported and replaced by the kind's default,
    never clamped. zstd levels above 19 need ``extreme=True``.
    """
    if kind not in _LEVELS:
        raise UnsupportedContainerKind(f"Unsupported container kind: {kind}")
    lo, hi, default = _LEVELS[kind]
    if level is None:
        return default
    problem: Optional[InvalidCompressionLevel] = None
    if isinstance(level, bool) or not isinstance(level, int):
        problem = InvalidCompressionLevel(f"compression level {level!r} is not an integer")
    elif not lo <= level <= hi:
        problem = InvalidCompressionLevel(f"compression level {level} is outside {lo}..{hi} for {kind}")
    elif kind == KIND_TAR_ZST and level > ZSTD_MAX_REGULAR_LEVEL and not extreme:
        problem = InvalidCompressionLevel(
            f"zstd level {level} is an extreme level; pass --extreme to use levels above {ZSTD_MAX_REGULAR_LEVEL}"
        )
    if problem is not None:
        print(f"Warning: {problem}; using default level {default}", file=sys.stderr)
        return default
    return level


class ContainerEncoder:
    kind = ""

    def encode(
        self,
        job: ArchiveJob,
        files: Sequence[SourceFile],
        *,
        progress: Optional[ProgressFn] = None,
    ) -> Tuple[Path, List[str]]:
        archive_path = job.archive_path
        level = resolve_level(self.kind, job.level, extreme=job.extreme)
        entries = [(f.path, relative_entry_name(f.path, job.source)) for f in files]
        names = self._write(archive_path, entries, level, job, progress)
        return archive_path, names

    def _write(self, archive_path: Path, entries, level: int, job: ArchiveJob, progress) -> List[str]:
        raise NotImplementedError

    @staticmethod
    def _add_all(
        entries: Sequence[Tuple[str, str]],
        add: Callable[[str, str], None],
        progress: Optional[ProgressFn],
    ) -> List[str]:
        written: List[str] = []
        total = len(entries)
        for full, rel in entries:
            add(full, rel)
            written.append(rel)
            if progress is not None:
                progress(len(written), total, rel)
        return written


class TarGzEncoder(ContainerEncoder):
    kind = KIND_TAR_GZ

    def _write(self, archive_path, entries, level, job, progress):
        if job.password:
            print("Warning: tar.gz has no built-in password protection; the archive is enveloped after encoding", file=sys.stderr)
        with tarfile.open(archive_path, "w:gz", compresslevel=level) as tar:
            return self._add_all(entries, lambda full, rel: tar.add(full, arcname=rel, recursive=False), progress)


class TarZstEncoder(ContainerEncoder):
    kind = KIND_TAR_ZST

    def _write(self, archive_path, entries, level, job, progress):
        if job.password:
            print("Warning: tar.zst has no built-in password protection; the archive is enveloped after encoding", file=sys.stderr)
        cctx = zstandard.ZstdCompressor(level=level)
        with open(archive_path, "wb") as fh:
            with cctx.stream_writer(fh, closefd=False) as zw:
                with tarfile.open(fileobj=zw, mode="w|") as tar:
                    return self._add_all(entries, lambda full, rel: tar.add(full, arcname=rel, recursive=False), progress)


class ZipEncoder(ContainerEncoder):
    """Deflate zip; a job password turns on WinZip AES-256 per entry."""

    kind = KIND_ZIP

    def _write(self, archive_path, entries, level, job, progress):
        with pyzipper.AESZipFile(
            archive_path,
            "w",
            compression=pyzipper.ZIP_DEFLATED,
            compresslevel=level,
        ) as zf:
            if job.password:
                zf.setpassword(job.password.encode("utf-8"))
                zf.setencryption(pyzipper.WZ_AES, nbits=256)
            return self._add_all(entries, lambda full, rel: zf.write(full, arcname=rel), progress)


_ENCODERS: Dict[str, ContainerEncoder] = {
    KIND_TAR_GZ: TarGzEncoder(),
    KIND_TAR_ZST: TarZstEncoder(),
    KIND_ZIP: ZipEncoder(),
}


def get_encoder(kind: str) -> ContainerEncoder:
    try:
        return _ENCODERS[kind]
    except KeyError:
        raise UnsupportedContainerKind(f"Unsupported container kind: {kind}") from None


def encode(
    job: ArchiveJob,
    files: Sequence[SourceFile],
    *,
    progress: Optional[ProgressFn] = None,
) -> Tuple[Path, List[str]]:
    return get_encoder(job.kind).encode(job, files, progress=progress)


def kind_from_path(path: str | os.PathLike) -> str:
    name = os.fspath(path).lower()
    for kind in (KIND_TAR_GZ, KIND_TAR_ZST, KIND_ZIP):
        if name.endswith("." + kind):
            return kind
    raise UnsupportedContainerKind(f"Cannot infer container kind from file name: {path}")


def _tar_names(fh, kind: str) -> List[str]:
    if kind == KIND_TAR_GZ:
        with tarfile.open(fileobj=fh, mode="r:gz") as tar:
            return [m.name for m in tar.getmembers()]
    dctx = zstandard.ZstdDecompressor()
    with dctx.stream_reader(fh, closefd=False) as zr:
        with tarfile.open(fileobj=zr, mode="r|") as tar:
            return [m.name for m in tar]


def list_container(
    path: str | os.PathLike,
    *,
    kind: Optional[str] = None,
    password: Optional[str] = None,
) -> List[str]:
    """Entry names stored in a container, in stored order.

    An enveloped tar archive is decrypted in memory with ``password``;
    without one, DecryptionFailed is raised. Zip entry names are readable
    without the password.
    """
    kind = kind or kind_from_path(path)
    if kind in STREAMING_KINDS:
        if is_envelope(path):
            if password is None:
                raise DecryptionFailed(f"{path} is encrypted; a password is required")
            with open(path, "rb") as fh:
                return _tar_names(io.BytesIO(unseal(fh.read(), password)), kind)
        with open(path, "rb") as fh:
            return _tar_names(fh, kind)
    if kind == KIND_ZIP:
        with pyzipper.AESZipFile(path) as zf:
            if password:
                zf.setpassword(password.encode("utf-8"))
            return zf.namelist()
    raise UnsupportedContainerKind(f"Unsupported container kind: {kind}")
