"""
Archive production: collect -> encode -> digest -> (encrypt) -> record.
"""
from __future__ import annotations

import dataclasses
import os
from typing import Callable, Optional

from .collector import collect_files
from .constants import DIGEST_SHA256, KIND_ZIP, STREAMING_KINDS
from .encoder import ProgressFn, encode, get_encoder, resolve_level
from .encryption import cipher_name, encrypt_file, parse_cipher
from .hashutil import digest, resolve_algorithms, write_sidecar
from .job import ArchiveJob
from .pathutil import ensure_dir, require_dir
from .pool import WorkerPool
from .state import ArchiveMetadata, ArchiveStateStore, now_timestamp


NotifyFn = Callable[[str], None]


def _silent(_msg: str) -> None:
    return None


def run_job(
    job: ArchiveJob,
    store: Optional[ArchiveStateStore] = None,
    *,
    notify: Optional[NotifyFn] = None,
    progress: Optional[ProgressFn] = None,
) -> ArchiveMetadata:
    """Produce one archive for ``job`` and record it.

    Args:
        job: Job description; ``job.name`` must already be collision free.
        store: Loaded state store; when given the new record is upserted and
            the store saved.
        notify: Receives one line per pipeline step.
        progress: Per-entry callback forwarded to the encoder.

    Returns:
        The metadata written for the archive.

    Raises:
        PathInvalid, UnsupportedContainerKind, UnknownCipher: before any
            output is written.
        OSError, KeyDerivationFailure: while producing the archive; partial
            output is left on disk.
    """
    say = notify or _silent
    require_dir(job.source)
    ensure_dir(job.destination)
    get_encoder(job.kind)
    cipher_id = parse_cipher(job.cipher) if job.password else None

    # The sidecar and the legacy checksum field both need SHA-256.
    algorithms = resolve_algorithms(job.algorithms)
    if DIGEST_SHA256 not in algorithms:
        algorithms.insert(0, DIGEST_SHA256)

    with WorkerPool(job.threads) as pool:
        say(f"Scanning directory with {pool.size} threads...")
        files = collect_files(job.source, pool, sort_by_size=job.sort_by_size)
    say(f"Found {len(files)} files")

    level = resolve_level(job.kind, job.level, extreme=job.extreme)
    job = dataclasses.replace(job, level=level)
    say(f"Compressing with {job.kind} (level {level})...")
    archive_path, names = encode(job, files, progress=progress)

    say(f"Generating {', '.join(algorithms)} checksum(s)...")
    digests = digest(archive_path, algorithms)
    write_sidecar(archive_path, digests.sha256)

    encrypted = False
    if job.password:
        if job.kind in STREAMING_KINDS:
            say(f"Encrypting with {cipher_name(cipher_id)}...")
            encrypt_file(archive_path, job.password, cipher_id)
        elif job.kind == KIND_ZIP:
            say("Archive entries encrypted with AES-256 (zip native)")
        encrypted = True

    meta = ArchiveMetadata(
        name=job.name,
        created_at=now_timestamp(),
        checksums=digests,
        algorithm=job.kind,
        size_bytes=os.path.getsize(archive_path),
        file_count=len(names),
        encrypted=encrypted,
        contents=tuple(names),
    )
    if store is not None:
        store.put(meta)
        store.save()
    return meta
