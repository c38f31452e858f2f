from __future__ import annotations

import contextlib
import hashlib
import io
import tempfile
import unittest
from pathlib import Path

import blake3

from zencore.constants import DIGEST_BLAKE3, DIGEST_SHA256, DIGEST_SHA3_256
from zencore.errors import UnknownDigestAlgorithm
from zencore.hashutil import (
    DigestSet,
    auto_verify,
    bytes_digest,
    check_sidecar,
    digest,
    file_digest,
    normalize_algorithm,
    read_sidecar,
    resolve_algorithms,
    sidecar_path,
    verify_checksum,
    write_sidecar,
)


class DigestTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_known_sha256_and_streaming(self):
        def scenario(tmp: Path):
            path = tmp / "data.bin"
            payload = b"abc" * 100_000  # spans several read chunks
            path.write_bytes(payload)
            self.assertEqual(file_digest(path), hashlib.sha256(payload).hexdigest())
            self.assertEqual(file_digest(path, "sha3"), hashlib.sha3_256(payload).hexdigest())
            self.assertEqual(bytes_digest(payload), file_digest(path))

        self.run_with_tmpdir(scenario)

    def test_deterministic_and_sensitive_to_single_byte(self):
        def scenario(tmp: Path):
            path = tmp / "f.bin"
            data = bytearray(b"x" * 5000)
            path.write_bytes(bytes(data))
            first = file_digest(path, "sha256")
            self.assertEqual(first, file_digest(path, "SHA-256"))
            data[2500] ^= 0x01
            path.write_bytes(bytes(data))
            self.assertNotEqual(first, file_digest(path, "sha256"))

        self.run_with_tmpdir(scenario)

    def test_multiple_algorithms(self):
        def scenario(tmp: Path):
            path = tmp / "f.bin"
            path.write_bytes(b"hello")
            ds = digest(path, ["sha256", "BLAKE3", "Sha3-256", "sha-256"])
            self.assertEqual(sorted(ds), sorted([DIGEST_SHA256, DIGEST_BLAKE3, DIGEST_SHA3_256]))
            self.assertEqual(ds[DIGEST_BLAKE3], blake3.blake3(b"hello").hexdigest())
            self.assertEqual(ds.sha256, hashlib.sha256(b"hello").hexdigest())
            self.assertEqual(ds["sha256"], ds.sha256)

        self.run_with_tmpdir(scenario)

    def test_algorithm_names(self):
        self.assertEqual(normalize_algorithm("SHA256"), DIGEST_SHA256)
        self.assertEqual(normalize_algorithm(" sha3 "), DIGEST_SHA3_256)
        self.assertEqual(normalize_algorithm("Blake3"), DIGEST_BLAKE3)
        with self.assertRaises(UnknownDigestAlgorithm):
            normalize_algorithm("md5")

    def test_resolve_algorithms_substitutes_default(self):
        with contextlib.redirect_stderr(io.StringIO()) as err:
            self.assertEqual(resolve_algorithms(["md5"]), [DIGEST_SHA256])
            self.assertEqual(resolve_algorithms(["blake3", "crc", "BLAKE3"]), [DIGEST_BLAKE3])
        self.assertIn("md5", err.getvalue())
        self.assertEqual(resolve_algorithms([]), [DIGEST_SHA256])

    def test_digest_set_is_case_normalized(self):
        ds = DigestSet({"sha256": "ABCDEF"})
        self.assertEqual(ds.sha256, "abcdef")
        self.assertIn("SHA-256", ds)
        self.assertNotIn("md5", ds)
        self.assertEqual(DigestSet().sha256, "")
        self.assertEqual(ds, {"SHA-256": "abcdef"})

    def test_sidecar_format_and_verification(self):
        def scenario(tmp: Path):
            archive = tmp / "backup.tar.zst"
            archive.write_bytes(b"archive bytes")
            self.assertIsNone(read_sidecar(archive))
            self.assertIsNone(check_sidecar(archive))
            self.assertTrue(auto_verify(archive))

            path = write_sidecar(archive)
            self.assertEqual(path, sidecar_path(archive))
            expected = hashlib.sha256(b"archive bytes").hexdigest()
            self.assertEqual(Path(path).read_text(encoding="utf-8"), f"{expected}  backup.tar.zst\n")
            self.assertTrue(check_sidecar(archive))
            self.assertTrue(verify_checksum(archive, expected.upper()))

            archive.write_bytes(b"archive bytez")
            self.assertFalse(check_sidecar(archive))
            self.assertFalse(auto_verify(archive))

        self.run_with_tmpdir(scenario)


if __name__ == "__main__":
    unittest.main()
