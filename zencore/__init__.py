"""
zencore: directory archiving with provenance.

Pipeline:

- Parallel file collection (optional largest-first ordering).
- Containers: tar + gzip, tar + zstd, or zip (Deflate, optional native AES entries).
- Content digests: SHA-256, SHA3-256, BLAKE3, plus a ``.sha256`` sidecar file.
- Whole-file AEAD envelope (AES-256-GCM or ChaCha20-Poly1305, Argon2id key).
- JSON state store of archive metadata for later verification.
"""

__version__ = "1.0.0"

__all__ = [
    "collector",
    "encoder",
    "hashutil",
    "encryption",
    "state",
    "pipeline",
]

# Programmatic entry point: zencore.pipeline.run_job(ArchiveJob(...), store).
