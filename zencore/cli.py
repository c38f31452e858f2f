from __future__ import annotations

import os
import sys
import time
import argparse
import getpass as _getpass

from pathlib import Path
from typing import List, Optional

from zencore.config import Config, find_config, load_config
from zencore.constants import CONTAINER_KINDS, STREAMING_KINDS
from zencore.encryption import cipher_name, decrypt_file, encrypt_file, is_envelope, parse_cipher, read_header, unseal
from zencore.errors import DecryptionFailed, UnsupportedContainerKind, ZencoreError
from zencore.hashutil import bytes_digest, file_digest, read_sidecar, sidecar_path
from zencore.job import ArchiveJob
from zencore.naming import generate_archive_name
from zencore.pathutil import ensure_dir
from zencore.pipeline import run_job
from zencore.state import ArchiveStateStore


def _format_size(size: int) -> str:
    return f"{size / (1024.0 * 1024.0):.2f} MB"


def _prompt_password(confirm: bool = True) -> str:
    """Read a password from the terminal, optionally asking twice."""
    pw = _getpass.getpass("Enter encryption password: ")
    if confirm:
        again = _getpass.getpass("Confirm password: ")
        if pw != again:
            raise RuntimeError("Passwords don't match")
    if not pw:
        raise RuntimeError("Password may not be empty")
    return pw


def _open_store(cfg: Config) -> ArchiveStateStore:
    return ArchiveStateStore.default(cfg).load()


def cmd_backup(
    source: str,
    destination: str,
    *,
    cfg: Optional[Config] = None,
    name: Optional[str] = None,
    algorithm: Optional[str] = None,
    level: Optional[int] = None,
    extreme: bool = False,
    threads: Optional[int] = None,
    password: Optional[str] = None,
    encrypt: bool = False,
    cipher: Optional[str] = None,
    hashes: Optional[List[str]] = None,
    sort_by_size: bool = True,
    quiet: bool = False,
) -> bool:
    """Archive ``source`` into ``destination`` and record it in the state store.

    Args:
        source: Directory to archive.
        destination: Directory receiving the archive (created if needed).
        cfg: Loaded configuration; defaults apply when None.
        name: Archive base name; a timestamp is used when omitted.
        algorithm: Container kind ("tar.gz", "tar.zst" or "zip").
        level: Compression level; invalid values fall back to the kind default.
        extreme: Allow zstd levels 20-22.
        threads: Collector threads (0 = CPU count).
        password: Encryption password. Implies encryption.
        encrypt: Prompt for a password when none was given.
        cipher: Envelope cipher for tar kinds ("aes-256-gcm" or "chacha20-poly1305").
        hashes: Digest algorithm names.
        sort_by_size: Write the largest files first.
        quiet: Limit output to summaries.
    """
    cfg = cfg or Config()
    kind = (algorithm or cfg.default_algorithm).lower()
    if kind not in CONTAINER_KINDS:
        raise UnsupportedContainerKind(f"Unsupported container kind: {algorithm}")
    dest = ensure_dir(Path(destination).expanduser())
    if password is None and (encrypt or cfg.encrypt_by_default):
        password = _prompt_password()
    cipher = cipher or cfg.default_cipher
    if password:
        parse_cipher(cipher)

    archive_name = generate_archive_name(dest, kind, name, date_format=cfg.date_format)
    job = ArchiveJob(
        source=Path(source).expanduser(),
        destination=dest,
        name=archive_name,
        kind=kind,
        level=level if level is not None else cfg.compression_level,
        threads=threads if threads is not None else cfg.num_threads,
        password=password,
        algorithms=tuple(hashes or cfg.hash_algorithms),
        sort_by_size=sort_by_size,
        cipher=cipher,
        extreme=extreme,
    )
    print(f" Archive name: {archive_name}")
    print(f" Source: {job.source}")
    print(f" Destination: {dest}")

    def _progress(done: int, total: int, rel: str) -> None:
        print(f" {done:>6}/{total:<6} compressing: {rel}")

    t0 = time.time()
    store = _open_store(cfg)
    meta = run_job(
        job,
        store,
        notify=None if quiet else (lambda msg: print(f" {msg}", flush=True)),
        progress=None if quiet else _progress,
    )
    dt = max(0.000001, time.time() - t0)

    print(f"Compressed to: {job.archive_path}")
    for algo, value in meta.checksums.items():
        print(f"  {algo}: {value}")
    print(f"  Checksum file: {sidecar_path(job.archive_path)}")
    print(
        f"Done: {meta.file_count} files; {_format_size(meta.size_bytes)} in {dt:.1f}s; "
        f"encrypted={'yes' if meta.encrypted else 'no'}"
    )
    return True


def cmd_list(*, cfg: Optional[Config] = None) -> bool:
    """Print every recorded archive, newest first."""
    cfg = cfg or Config()
    archives = _open_store(cfg).list()
    if not archives:
        print("No archives found. Create one with 'zencore backup'")
        return True
    print(f"{'Name':<30} {'Created':<20} {'Size':>13} {'Files':>10}")
    print("-" * 76)
    for a in archives:
        created = a.created_at.split("T")[0] or "unknown"
        print(f"{a.name:<30} {created:<20} {_format_size(a.size_bytes):>13} {a.file_count:>10}")
    return True


def cmd_show(name: str, *, cfg: Optional[Config] = None, limit: int = 50) -> bool:
    """Show one archive record and the first ``limit`` entries of its content listing."""
    cfg = cfg or Config()
    meta = _open_store(cfg).get(name)
    if meta is None:
        raise ZencoreError(f"Archive not found in state: {name}")
    print(f"Archive: {meta.name}")
    print(f"  Created:    {meta.created_at}")
    print(f"  Algorithm:  {meta.algorithm}")
    for algo, value in meta.checksums.items():
        print(f"  {algo + ':':<11} {value}")
    print(f"  Size:       {_format_size(meta.size_bytes)}")
    print(f"  Files:      {meta.file_count}")
    print(f"  Encrypted:  {'Yes' if meta.encrypted else 'No'}")
    print(f"Contents ({len(meta.contents)} files):")
    for i, entry in enumerate(meta.contents[:limit], start=1):
        print(f"  {i}. {entry}")
    if len(meta.contents) > limit:
        print(f"  ... and {len(meta.contents) - limit} more files")
    return True


def cmd_verify(archive: str, *, cfg: Optional[Config] = None, password: Optional[str] = None) -> bool:
    """Verify an archive against its recorded SHA-256 and its sidecar file.

    Encrypted (enveloped) archives are authenticated with ``password`` and the
    digest is taken over the decrypted container in memory.

    Returns:
        False on a checksum mismatch; True when every reference matched or
        when no reference exists (reported as a warning).
    """
    cfg = cfg or Config()
    print(" Verifying archive integrity...")
    if is_envelope(archive):
        header = read_header(archive)
        print(f" Archive is encrypted ({cipher_name(header.cipher_id)}); authenticating...")
        if password is None:
            password = _prompt_password(confirm=False)
        with open(archive, "rb") as fh:
            plaintext = unseal(fh.read(), password)
        actual = bytes_digest(plaintext)
    else:
        actual = file_digest(archive)
    print(f"Checksum: {actual}")

    references = []
    meta = _open_store(cfg).get(os.path.basename(archive))
    if meta is not None and meta.checksum:
        references.append(("state", meta.checksum))
    sidecar = read_sidecar(archive)
    if sidecar is not None:
        references.append(("sidecar", sidecar))
    if not references:
        print("Warning: no stored checksum found for comparison.", file=sys.stderr)
        return True

    ok = True
    for source, expected in references:
        if expected.lower() == actual.lower():
            print(f"OK: checksum matches {source}")
        else:
            print(f"FAIL: checksum mismatch against {source} (expected {expected})")
            ok = False
    return ok


def cmd_encrypt(archive: str, *, password: Optional[str] = None, cipher: str = "aes-256-gcm", keep_backup: bool = False) -> bool:
    """Wrap an existing tar container in the AEAD envelope, in place."""
    if is_envelope(archive):
        raise ZencoreError(f"Archive is already encrypted: {archive}")
    if not any(archive.lower().endswith("." + k) for k in STREAMING_KINDS):
        print("Warning: envelope encryption is meant for tar.gz/tar.zst containers", file=sys.stderr)
    password = password or _prompt_password()
    cipher_id = parse_cipher(cipher)
    print(f" Encrypting with {cipher_name(cipher_id)}...", flush=True)
    encrypt_file(archive, password, cipher_id, keep_backup=keep_backup)
    print(f"Encrypted: {archive}")
    return True


def cmd_decrypt(archive: str, *, password: Optional[str] = None) -> bool:
    """Decrypt an enveloped archive in place; the cipher is read from the header."""
    header = read_header(archive)
    print(f" Detected cipher: {cipher_name(header.cipher_id)}")
    password = password or _prompt_password(confirm=False)
    decrypt_file(archive, password)
    print(f"Decrypted: {archive}")
    return True


def cmd_config(cfg: Config, path: Path) -> bool:
    """Show configuration and state locations."""
    print("Configuration:")
    print(f"  Config file: {path}{'' if path.exists() else ' (not created; defaults in use)'}")
    print(f"  State dir:   {cfg.state_dir}")
    print(f"  Default algorithm:  {cfg.default_algorithm}")
    print(f"  Date format:        {cfg.date_format}")
    print(f"  Default cipher:     {cfg.default_cipher}")
    print(f"  Hash algorithms:    {', '.join(cfg.hash_algorithms)}")
    print(f"  Threads:            {cfg.num_threads or 'auto'}")
    print(f"  Encrypt by default: {cfg.encrypt_by_default}")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="zencore",
        description="Directory archiving with checksums and optional encryption",
        epilog="tar archives are encrypted with an Argon2id/AEAD envelope; zip archives use native AES entries.",
    )
    ap.add_argument("--config", help="Config file path (TOML)")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_backup = sub.add_parser("backup", help="Archive a directory")
    ap_backup.add_argument("source", help="Source directory")
    ap_backup.add_argument("destination", nargs="?", help="Destination directory (default: config default_backup_destination)")
    ap_backup.add_argument("--name", "-n", help="Archive base name (default: timestamp)")
    ap_backup.add_argument("--algorithm", "-a", choices=list(CONTAINER_KINDS), help="Container kind")
    ap_backup.add_argument("--level", "-l", type=int, help="Compression level (gzip/zip 0-9, zstd 1-19, 20-22 with --extreme)")
    ap_backup.add_argument("--extreme", action="store_true", help="Allow zstd levels 20-22")
    ap_backup.add_argument("--threads", "-t", type=int, help="Scan threads (0 = CPU count)")
    ap_backup.add_argument("--encrypt", "-e", action="store_true", help="Prompt for an encryption password")
    ap_backup.add_argument("--password", help="Encryption password (implies --encrypt)")
    ap_backup.add_argument("--cipher", choices=["aes-256-gcm", "chacha20-poly1305"], help="Envelope cipher for tar archives")
    ap_backup.add_argument("--hash", dest="hashes", action="append", help="Digest algorithm (sha256, sha3, blake3); repeatable")
    ap_backup.add_argument("--no-sort", action="store_true", help="Keep discovery order instead of largest-first")
    ap_backup.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    sub.add_parser("list", help="List recorded archives")

    ap_show = sub.add_parser("show", help="Show a recorded archive")
    ap_show.add_argument("name", help="Archive file name")

    ap_verify = sub.add_parser("verify", help="Verify archive checksum")
    ap_verify.add_argument("archive", help="Archive path")
    ap_verify.add_argument("--password", help="Password for encrypted archives")

    ap_encrypt = sub.add_parser("encrypt", help="Encrypt an archive in place")
    ap_encrypt.add_argument("archive", help="Archive path")
    ap_encrypt.add_argument("--password", help="Encryption password")
    ap_encrypt.add_argument("--cipher", choices=["aes-256-gcm", "chacha20-poly1305"], default="aes-256-gcm")
    ap_encrypt.add_argument("--keep-backup", action="store_true", help="Keep the plaintext .bak copy")

    ap_decrypt = sub.add_parser("decrypt", help="Decrypt an archive in place")
    ap_decrypt.add_argument("archive", help="Archive path")
    ap_decrypt.add_argument("--password", help="Archive password")

    sub.add_parser("config", help="Show configuration")

    args = ap.parse_args(argv)
    try:
        cfg_path = find_config(args.config)
        cfg = load_config(cfg_path)
        if args.cmd == "backup":
            destination = args.destination or cfg.default_backup_destination
            if not destination:
                raise RuntimeError("Destination folder required")
            cmd_backup(
                args.source,
                destination,
                cfg=cfg,
                name=args.name,
                algorithm=args.algorithm,
                level=args.level,
                extreme=args.extreme,
                threads=args.threads,
                password=args.password,
                encrypt=args.encrypt,
                cipher=args.cipher,
                hashes=args.hashes,
                sort_by_size=not args.no_sort,
                quiet=args.quiet,
            )
        elif args.cmd == "list":
            cmd_list(cfg=cfg)
        elif args.cmd == "show":
            cmd_show(args.name, cfg=cfg)
        elif args.cmd == "verify":
            ok = cmd_verify(args.archive, cfg=cfg, password=args.password)
            sys.exit(0 if ok else 1)
        elif args.cmd == "encrypt":
            cmd_encrypt(args.archive, password=args.password, cipher=args.cipher, keep_backup=args.keep_backup)
        elif args.cmd == "decrypt":
            cmd_decrypt(args.archive, password=args.password)
        elif args.cmd == "config":
            cmd_config(cfg, cfg_path)
        else:
            raise RuntimeError("Unknown command")
    except DecryptionFailed as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (ZencoreError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
