import json
import tempfile
import unittest
import zipfile
from pathlib import Path

from scenebundle.core.validator import validate_bundle


def _codes(issues):
    return {i.code for i in issues}


class TestValidateBundle(unittest.TestCase):
    def _write(self, path: Path, entries: dict):
        with zipfile.ZipFile(path, "w") as zf:
            for name, data in entries.items():
                zf.writestr(name, data)
        return path

    def test_valid_bundle_only_reports_entry_count(self):
        with tempfile.TemporaryDirectory() as tmp:
            manifest = {
                "canvas": {"width": 1920, "height": 1080},
                "id": "abc",
                "version": "1.0",
                "stream_deck_actions": [{"filename": "a.streamDeckAction", "label": "A"}],
            }
            collection = {
                "sources": [
                    {"settings": {"file": "{FILE}:Assets/images/logo.png"}},
                    {"settings": {"dir": "{FILE}:Assets/misc/alerts"}},
                ]
            }
            path = self._write(
                Path(tmp) / "ok.zip",
                {
                    "manifest.json": json.dumps(manifest),
                    "collection.json": json.dumps(collection),
                    "Assets/images/logo.png": b"png",
                    "Assets/misc/alerts/ding.wav": b"wav",
                    "Assets/stream-deck/stream-deck-actions/a.streamDeckAction": b"sd",
                },
            )
            issues = validate_bundle(str(path))
            self.assertEqual(_codes(issues), {"ENTRY_COUNT"})

    def test_missing_file(self):
        issues = validate_bundle("/no/such/bundle.zip")
        self.assertEqual(_codes(issues), {"BUNDLE_NOT_FOUND"})

    def test_not_a_zip(self):
        with tempfile.TemporaryDirectory() as tmp:
            p = Path(tmp) / "x.zip"
            p.write_text("nope")
            self.assertEqual(_codes(validate_bundle(str(p))), {"NOT_A_ZIP"})

    def test_missing_required_entries(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = self._write(Path(tmp) / "empty.zip", {"readme.txt": "hi"})
            codes = _codes(validate_bundle(str(path)))
            self.assertIn("MANIFEST_MISSING", codes)
            self.assertIn("COLLECTION_MISSING", codes)

    def test_legacy_manifest_name_accepted(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = self._write(
                Path(tmp) / "legacy.zip",
                {"bundle_info.json": json.dumps({"id": "x", "version": "1"}), "collection.json": "{}"},
            )
            codes = _codes(validate_bundle(str(path)))
            self.assertNotIn("MANIFEST_MISSING", codes)

    def test_broken_documents_and_missing_assets(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = self._write(
                Path(tmp) / "bad.zip",
                {
                    "manifest.json": "{broken",
                    "collection.json": json.dumps({"sources": [{"file": "{FILE}:Assets/images/gone.png"}]}),
                    "../escape.txt": "x",
                },
            )
            issues = validate_bundle(str(path))
            codes = _codes(issues)
            self.assertIn("MANIFEST_INVALID", codes)
            self.assertIn("ASSET_MISSING", codes)
            self.assertIn("UNSAFE_ENTRY", codes)
            missing = [i for i in issues if i.code == "ASSET_MISSING"]
            self.assertEqual(missing[0].relpath, "Assets/images/gone.png")

    def test_collection_must_be_object(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = self._write(
                Path(tmp) / "list.zip",
                {"manifest.json": json.dumps({"id": "x"}), "collection.json": "[]"},
            )
            self.assertIn("COLLECTION_INVALID", _codes(validate_bundle(str(path))))


if __name__ == "__main__":
    unittest.main()
