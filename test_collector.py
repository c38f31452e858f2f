from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from zencore.collector import SourceFile, collect_files
from zencore.pathutil import relative_entry_name
from zencore.pool import WorkerPool, detect_threads


def _build_tree(root: Path) -> None:
    (root / "b.txt").write_bytes(b"b" * 10)
    (root / "a.txt").write_bytes(b"a" * 30)
    (root / "sub" / "deep").mkdir(parents=True)
    (root / "sub" / "c.txt").write_bytes(b"c" * 30)
    (root / "sub" / "deep" / "d.txt").write_bytes(b"d" * 5)
    (root / "z").mkdir()
    (root / "z" / "e.txt").write_bytes(b"e" * 100)
    (root / "empty").mkdir()


class CollectorTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_discovery_order_is_deterministic(self):
        def scenario(tmp: Path):
            _build_tree(tmp)
            with WorkerPool(4) as pool:
                first = collect_files(tmp, pool)
                second = collect_files(tmp, pool)
            rels = [relative_entry_name(f.path, tmp) for f in first]
            self.assertEqual(rels, ["a.txt", "b.txt", "sub/c.txt", "sub/deep/d.txt", "z/e.txt"])
            self.assertEqual(first, second)

        self.run_with_tmpdir(scenario)

    def test_sort_by_size_descending_ties_keep_discovery_order(self):
        def scenario(tmp: Path):
            _build_tree(tmp)
            with WorkerPool(2) as pool:
                files = collect_files(tmp, pool, sort_by_size=True)
            rels = [relative_entry_name(f.path, tmp) for f in files]
            self.assertEqual(rels, ["z/e.txt", "a.txt", "sub/c.txt", "b.txt", "sub/deep/d.txt"])
            self.assertEqual([f.size for f in files], [100, 30, 30, 10, 5])

        self.run_with_tmpdir(scenario)

    def test_sizes_are_reported(self):
        def scenario(tmp: Path):
            (tmp / "x.bin").write_bytes(os.urandom(1234))
            with WorkerPool(1) as pool:
                files = collect_files(tmp, pool)
            self.assertEqual(files, [SourceFile(str(tmp / "x.bin"), 1234)])

        self.run_with_tmpdir(scenario)

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks unsupported")
    def test_symlinks_are_not_collected(self):
        def scenario(tmp: Path):
            _build_tree(tmp)
            try:
                os.symlink(tmp / "a.txt", tmp / "link.txt")
                os.symlink(tmp / "sub", tmp / "linkdir")
            except (OSError, NotImplementedError):
                self.skipTest("cannot create symlinks")
            with WorkerPool(2) as pool:
                rels = [relative_entry_name(f.path, tmp) for f in collect_files(tmp, pool)]
            self.assertNotIn("link.txt", rels)
            self.assertFalse(any(r.startswith("linkdir/") for r in rels))
            self.assertEqual(len(rels), 5)

        self.run_with_tmpdir(scenario)

    def test_empty_and_missing_roots(self):
        def scenario(tmp: Path):
            with WorkerPool(2) as pool:
                self.assertEqual(collect_files(tmp, pool), [])
                self.assertEqual(collect_files(tmp / "missing", pool), [])

        self.run_with_tmpdir(scenario)

    def test_unreadable_subtrees_are_skipped(self):
        def scenario(tmp: Path):
            _build_tree(tmp)
            real_scandir = os.scandir
            denied = {os.fspath(tmp / "sub" / "deep"), os.fspath(tmp / "z")}

            def guarded_scandir(path="."):
                if os.fspath(path) in denied:
                    raise PermissionError(13, "Permission denied", os.fspath(path))
                return real_scandir(path)

            with mock.patch("os.scandir", side_effect=guarded_scandir):
                with WorkerPool(3) as pool:
                    files = collect_files(tmp, pool)
            rels = [relative_entry_name(f.path, tmp) for f in files]
            self.assertEqual(rels, ["a.txt", "b.txt", "sub/c.txt"])

        self.run_with_tmpdir(scenario)

    def test_pool_size_detection(self):
        self.assertEqual(detect_threads(3), 3)
        self.assertEqual(detect_threads(0), max(1, os.cpu_count() or 1))
        self.assertEqual(detect_threads(None), max(1, os.cpu_count() or 1))
        with WorkerPool(2) as pool:
            self.assertEqual(pool.size, 2)
            self.assertEqual(pool.map(lambda x: x * 2, [3, 1, 2]), [6, 2, 4])


if __name__ == "__main__":
    unittest.main()
