import json
import os
import tempfile
import unittest
from pathlib import Path

from scenebundle.core.fsutil import clear_dir, copy_file_safe, read_json, write_json_safe
from scenebundle.core.scanner import scan_folder


class TestFsUtil(unittest.TestCase):
    def test_clear_dir_empties_but_keeps_folder(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp) / "pack"
            (root / "Assets" / "images").mkdir(parents=True)
            (root / "Assets" / "images" / "a.png").write_bytes(b"a")
            (root / "collection.json").write_text("{}")

            clear_dir(str(root))

            self.assertTrue(root.is_dir())
            self.assertEqual(list(root.iterdir()), [])

    @unittest.skipIf(os.name == "nt", "symlinks need privileges on Windows")
    def test_clear_dir_does_not_follow_symlinks(self):
        with tempfile.TemporaryDirectory() as tmp:
            outside = Path(tmp) / "outside"
            outside.mkdir()
            keep = outside / "keep.txt"
            keep.write_text("keep")

            root = Path(tmp) / "pack"
            root.mkdir()
            os.symlink(outside, root / "link", target_is_directory=True)

            clear_dir(str(root))

            self.assertFalse((root / "link").exists())
            self.assertTrue(keep.exists())

    def test_clear_dir_missing_folder_is_noop(self):
        with tempfile.TemporaryDirectory() as tmp:
            clear_dir(str(Path(tmp) / "missing"))

    def test_write_json_safe_keeps_backup(self):
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "scenes" / "Demo.json"
            write_json_safe({"v": 1}, str(target))
            write_json_safe({"v": 2}, str(target))

            self.assertEqual(read_json(str(target)), {"v": 2})
            self.assertEqual(json.loads(target.with_name("Demo.json.bak").read_text()), {"v": 1})
            self.assertFalse(target.with_name("Demo.json.tmp").exists())

    def test_copy_file_safe_overwrites(self):
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "src.json"
            dst = Path(tmp) / "backups" / "src.json"
            src.write_text("new")
            dst.parent.mkdir()
            dst.write_text("stale")

            copy_file_safe(str(src), str(dst))
            self.assertEqual(dst.read_text(), "new")

    def test_copy_file_safe_missing_source_raises(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(OSError):
                copy_file_safe(str(Path(tmp) / "gone"), str(Path(tmp) / "dst"))
            self.assertFalse((Path(tmp) / "dst.tmp").exists())


class TestScanner(unittest.TestCase):
    def test_scan_non_recursive_by_default(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "b.wav").write_bytes(b"bb")
            (root / "a.wav").write_bytes(b"a")
            (root / "sub").mkdir()
            (root / "sub" / "c.wav").write_bytes(b"c")

            files = scan_folder(str(root))
            self.assertEqual([f.relpath for f in files], ["a.wav", "b.wav"])
            self.assertEqual(files[1].size_bytes, 2)

            deep = scan_folder(str(root), recursive=True)
            self.assertEqual([f.relpath for f in deep], ["a.wav", "b.wav", "sub/c.wav"])

    def test_scan_rejects_files(self):
        with tempfile.TemporaryDirectory() as tmp:
            f = Path(tmp) / "x.txt"
            f.write_text("x")
            with self.assertRaises(NotADirectoryError):
                scan_folder(str(f))


if __name__ == "__main__":
    unittest.main()
