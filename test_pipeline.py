from __future__ import annotations

import contextlib
import io
import os
import tempfile
import unittest
from pathlib import Path

import pyzipper

from zencore.constants import DIGEST_BLAKE3, DIGEST_SHA256
from zencore.encoder import list_container
from zencore.encryption import decrypt_file, is_envelope, read_header
from zencore.errors import DecryptionFailed, PathInvalid, UnsupportedContainerKind
from zencore.hashutil import auto_verify, check_sidecar, file_digest, read_sidecar
from zencore.job import ArchiveJob
from zencore.naming import generate_archive_name
from zencore.pipeline import run_job
from zencore.state import ArchiveStateStore


def _sized_tree(root: Path) -> None:
    (root / "album").mkdir()
    (root / "ten.bin").write_bytes(os.urandom(10 * 1024))
    (root / "album" / "one.bin").write_bytes(os.urandom(1024))
    (root / "hundred.bin").write_bytes(os.urandom(100 * 1024))


class PipelineTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp)
            src = base / "music"
            src.mkdir()
            _sized_tree(src)
            func(base, src, base / "backups")

    def test_end_to_end_sorted_by_size(self):
        def scenario(base: Path, src: Path, dst: Path):
            store = ArchiveStateStore(base / "state" / "archives.json").load()
            job = ArchiveJob(source=src, destination=dst, name="backup.tar.zst", kind="tar.zst", sort_by_size=True)
            meta = run_job(job, store)

            self.assertEqual(list(meta.contents), ["hundred.bin", "ten.bin", "album/one.bin"])
            self.assertEqual(meta.file_count, 3)
            self.assertFalse(meta.encrypted)
            self.assertEqual(meta.algorithm, "tar.zst")
            self.assertEqual(meta.size_bytes, (dst / "backup.tar.zst").stat().st_size)
            self.assertEqual(meta.checksum, file_digest(dst / "backup.tar.zst"))
            self.assertEqual(read_sidecar(dst / "backup.tar.zst"), meta.checksum)
            self.assertEqual(list_container(dst / "backup.tar.zst"), list(meta.contents))

            reloaded = ArchiveStateStore(base / "state" / "archives.json").load()
            listed = reloaded.list()
            self.assertEqual(len(listed), 1)
            self.assertEqual(listed[0].name, "backup.tar.zst")

        self.run_with_tmpdir(scenario)

    def test_second_run_with_same_base_name_gets_suffix(self):
        def scenario(base: Path, src: Path, dst: Path):
            store = ArchiveStateStore(base / "archives.json")
            names = []
            for _ in range(3):
                dst.mkdir(exist_ok=True)
                name = generate_archive_name(dst, "tar.zst", "backup")
                run_job(ArchiveJob(source=src, destination=dst, name=name, kind="tar.zst"), store)
                names.append(name)
            self.assertEqual(names, ["backup.tar.zst", "backup.1.tar.zst", "backup.2.tar.zst"])
            self.assertEqual(len(store.list()), 3)

        self.run_with_tmpdir(scenario)

    def test_rerun_same_name_replaces_record(self):
        def scenario(base: Path, src: Path, dst: Path):
            store = ArchiveStateStore(base / "archives.json")
            job = ArchiveJob(source=src, destination=dst, name="same.tar.gz", kind="tar.gz")
            run_job(job, store)
            (src / "extra.txt").write_text("more", encoding="utf-8")
            meta = run_job(job, store)
            self.assertEqual(len(store.list()), 1)
            self.assertEqual(store.get("same.tar.gz").file_count, 4)
            self.assertEqual(meta.contents[-1], "extra.txt")

        self.run_with_tmpdir(scenario)

    def test_encrypted_streaming_archive_uses_envelope(self):
        def scenario(base: Path, src: Path, dst: Path):
            job = ArchiveJob(
                source=src,
                destination=dst,
                name="secret.tar.gz",
                kind="tar.gz",
                password="hunter2",
                cipher="chacha20",
                algorithms=("sha256", "blake3"),
            )
            with contextlib.redirect_stderr(io.StringIO()):
                meta = run_job(job)
            archive = dst / "secret.tar.gz"
            self.assertTrue(meta.encrypted)
            self.assertEqual(sorted(meta.checksums), sorted([DIGEST_SHA256, DIGEST_BLAKE3]))
            self.assertTrue(is_envelope(archive))
            self.assertEqual(read_header(archive).cipher_id, 1)
            self.assertFalse((dst / "secret.tar.gz.bak").exists())
            self.assertEqual(meta.size_bytes, archive.stat().st_size)
            self.assertIsNone(check_sidecar(archive))
            self.assertTrue(auto_verify(archive))
            self.assertEqual(list_container(archive, password="hunter2"), list(meta.contents))
            with self.assertRaises(DecryptionFailed):
                list_container(archive)

            with self.assertRaises(DecryptionFailed):
                decrypt_file(archive, "wrong")
            decrypt_file(archive, "hunter2")
            self.assertIs(check_sidecar(archive), True)
            self.assertEqual(file_digest(archive, "blake3"), meta.checksums["BLAKE3"])
            self.assertEqual(list_container(archive), list(meta.contents))

        self.run_with_tmpdir(scenario)

    def test_zip_password_uses_native_encryption(self):
        def scenario(base: Path, src: Path, dst: Path):
            job = ArchiveJob(source=src, destination=dst, name="enc.zip", kind="zip", password="pw")
            meta = run_job(job)
            archive = dst / "enc.zip"
            self.assertTrue(meta.encrypted)
            self.assertFalse(is_envelope(archive))
            self.assertTrue(check_sidecar(archive))
            with pyzipper.AESZipFile(archive) as zf:
                zf.setpassword(b"pw")
                self.assertEqual(zf.read("ten.bin"), (src / "ten.bin").read_bytes())

        self.run_with_tmpdir(scenario)

    def test_empty_source_is_a_valid_job(self):
        def scenario(base: Path, src: Path, dst: Path):
            empty = base / "empty"
            empty.mkdir()
            meta = run_job(ArchiveJob(source=empty, destination=dst, name="e.zip", kind="zip"))
            self.assertEqual(meta.file_count, 0)
            self.assertEqual(meta.contents, ())

        self.run_with_tmpdir(scenario)

    def test_configuration_errors_before_output(self):
        def scenario(base: Path, src: Path, dst: Path):
            with self.assertRaises(PathInvalid):
                run_job(ArchiveJob(source=base / "missing", destination=dst, name="x.zip", kind="zip"))
            with self.assertRaises(UnsupportedContainerKind):
                run_job(ArchiveJob(source=src, destination=dst, name="x.rar", kind="rar"))
            self.assertFalse((dst / "x.rar").exists())
            blocker = base / "file-not-dir"
            blocker.write_text("x", encoding="utf-8")
            with self.assertRaises(PathInvalid):
                run_job(ArchiveJob(source=src, destination=blocker / "sub", name="x.zip", kind="zip"))

        self.run_with_tmpdir(scenario)

    def test_invalid_level_is_reported_and_replaced(self):
        def scenario(base: Path, src: Path, dst: Path):
            job = ArchiveJob(source=src, destination=dst, name="lvl.tar.gz", kind="tar.gz", level=42)
            with contextlib.redirect_stderr(io.StringIO()) as err:
                meta = run_job(job)
            self.assertEqual(err.getvalue().count("Warning"), 1)
            self.assertEqual(meta.file_count, 3)

        self.run_with_tmpdir(scenario)


if __name__ == "__main__":
    unittest.main()
