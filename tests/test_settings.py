import json
import tempfile
import unittest
from pathlib import Path

from scenebundle.core.settings import (
    DEFAULT_INCOMPATIBLE_FILTERS,
    default_settings,
    from_json_dict,
    load_settings,
    save_settings,
    settings_path,
)


class TestSettings(unittest.TestCase):
    def test_missing_file_gives_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            s = load_settings(tmp)
            self.assertEqual(s, default_settings())
            self.assertEqual(s.incompatible_filters, DEFAULT_INCOMPATIBLE_FILTERS)
            self.assertEqual(s.extension_classes["png"], "images")

    def test_save_then_load(self):
        with tempfile.TemporaryDirectory() as tmp:
            s = from_json_dict({"backup_dir": str(Path(tmp) / "bk"), "handshake_timeout": 5, "chunk_size": 1024})
            path = save_settings(tmp, s)
            self.assertEqual(path, settings_path(tmp))

            loaded = load_settings(tmp)
            self.assertEqual(loaded, s)
            self.assertEqual(loaded.handshake_timeout, 5.0)

    def test_partial_file_keeps_other_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            settings_path(tmp).write_text(
                json.dumps({"incompatible_filters": ["vst_filter", "shader_filter"], "extension_classes": {".HTML": "web"}}),
                encoding="utf-8",
            )
            s = load_settings(tmp)
            self.assertEqual(s.incompatible_filters, frozenset({"vst_filter", "shader_filter"}))
            self.assertEqual(s.extension_classes, {"html": "web"})
            self.assertEqual(s.video_source_ids, default_settings().video_source_ids)

    def test_invalid_chunk_size_raises(self):
        with self.assertRaises(ValueError):
            from_json_dict({"chunk_size": -1})

    def test_malformed_file_raises(self):
        with tempfile.TemporaryDirectory() as tmp:
            settings_path(tmp).write_text("{not json", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_settings(tmp)


if __name__ == "__main__":
    unittest.main()
