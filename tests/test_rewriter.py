import tempfile
import unittest
from pathlib import Path

from scenebundle.core.assets import AssetDeduplicator
from scenebundle.core.filters import FilterCompatibilityFilter
from scenebundle.core.rewriter import (
    JsonTreeRewriter,
    PlaceholderResolver,
    collection_sections,
    referenced_assets,
)


def _rewriter():
    return JsonTreeRewriter(AssetDeduplicator(), FilterCompatibilityFilter(), uuid_factory=lambda: "generated")


class TestJsonTreeRewriter(unittest.TestCase):
    def test_asset_paths_become_file_markers(self):
        with tempfile.TemporaryDirectory() as tmp:
            logo = Path(tmp) / "logo.png"
            logo.write_bytes(b"png")
            doc = {
                "sources": [
                    {"id": "image_source", "name": "Logo", "settings": {"file": logo.as_posix(), "opacity": 80}},
                ]
            }

            rw = _rewriter()
            rw.rewrite_collection(doc)

            settings = doc["sources"][0]["settings"]
            self.assertEqual(settings["file"], "{FILE}:Assets/images/logo.png")
            self.assertEqual(settings["opacity"], 80)
            self.assertEqual(rw.assets.mapping(), {logo.as_posix(): "Assets/images/logo.png"})

    def test_non_asset_strings_untouched(self):
        doc = {"sources": [{"id": "text_gdiplus", "name": "Title", "settings": {"text": "/not/a/real/file.png"}}]}
        _rewriter().rewrite_collection(doc)
        self.assertEqual(doc["sources"][0]["settings"]["text"], "/not/a/real/file.png")

    def test_paths_inside_nested_arrays(self):
        with tempfile.TemporaryDirectory() as tmp:
            a = Path(tmp) / "a.mp3"
            b = Path(tmp) / "b.mp3"
            a.write_bytes(b"a")
            b.write_bytes(b"b")
            doc = {"sources": [{"id": "vlc_source", "settings": {"playlist": [{"value": a.as_posix()}, [b.as_posix()]]}}]}

            _rewriter().rewrite_collection(doc)

            playlist = doc["sources"][0]["settings"]["playlist"]
            self.assertEqual(playlist[0]["value"], "{FILE}:Assets/audio/a.mp3")
            self.assertEqual(playlist[1][0], "{FILE}:Assets/audio/b.mp3")

    def test_capture_devices_tokenized(self):
        doc = {
            "sources": [
                {"id": "dshow_input", "name": "Webcam", "uuid": "cam-1", "settings": {"video_device_id": "usb"}},
                {"id": "v4l2_input", "name": "No Uuid", "settings": {"device_id": "/dev/video0"}},
                {"id": "wasapi_input_capture", "name": "Mic", "settings": {"device_id": "default"}},
            ]
        }
        rw = _rewriter()
        rw.rewrite_collection(doc)

        self.assertEqual(doc["sources"][0]["settings"], "{cam-1}")
        self.assertEqual(doc["sources"][1]["uuid"], "generated")
        self.assertEqual(doc["sources"][1]["settings"], "{generated}")
        self.assertEqual(doc["sources"][2]["settings"], "{AUDIO_CAPTURE_SETTINGS}")
        self.assertEqual(rw.video_devices, {"cam-1": "Webcam", "generated": "No Uuid"})

    def test_filters_filtered_with_owner_name(self):
        doc = {
            "sources": [
                {
                    "id": "wasapi_output_capture",
                    "name": "Desktop",
                    "filters": [{"id": "vst_filter", "name": "Reverb"}, {"id": "gain_filter", "name": "Gain"}],
                }
            ]
        }
        rw = _rewriter()
        rw.rewrite_collection(doc)
        self.assertEqual(doc["sources"][0]["filters"], [{"id": "gain_filter", "name": "Gain"}])
        self.assertEqual(rw.filters.skipped[0].source_name, "Desktop")
        self.assertEqual(rw.filters.skipped[0].filter_name, "Reverb")

    def test_sections(self):
        doc = {
            "modules": {"scripts-tool": [{"path": "x"}], "other": []},
            "sources": [],
            "groups": [{"id": "group"}],
            "transitions": [],
            "scene_order": [{"name": "Main"}],
        }
        sections = collection_sections(doc)
        self.assertEqual(len(sections), 4)
        self.assertIs(sections[0], doc["modules"]["scripts-tool"])
        self.assertIs(sections[2], doc["groups"])

    def test_reset_clears_run_state(self):
        doc = {"sources": [{"id": "dshow_input", "name": "Cam", "uuid": "u", "filters": [{"id": "vst_filter", "name": "V"}]}]}
        rw = _rewriter()
        rw.rewrite_collection(doc)
        rw.reset()
        self.assertEqual(rw.video_devices, {})
        self.assertEqual(rw.filters.skipped, [])


class TestPlaceholderResolver(unittest.TestCase):
    def test_file_markers_resolve_under_pack_path(self):
        doc = {"sources": [{"id": "image_source", "settings": {"file": "{FILE}:Assets/images/logo.png"}}]}
        PlaceholderResolver("/packs/demo/").resolve(doc)
        self.assertEqual(doc["sources"][0]["settings"]["file"], "/packs/demo/Assets/images/logo.png")

    def test_device_tokens_resolve_to_settings_objects(self):
        doc = {
            "sources": [
                {"id": "dshow_input", "name": "Cam", "settings": "{cam-1}"},
                {"id": "dshow_input", "name": "Other", "settings": "{cam-2}"},
                {"id": "wasapi_input_capture", "name": "Mic", "settings": "{AUDIO_CAPTURE_SETTINGS}"},
            ]
        }
        r = PlaceholderResolver(
            "/packs/demo",
            video_settings={"cam-1": {"video_device_id": "usb:2"}},
            audio_settings={"device_id": "mic-7"},
        )
        r.resolve(doc)

        self.assertEqual(doc["sources"][0]["settings"], {"video_device_id": "usb:2"})
        self.assertEqual(doc["sources"][1]["settings"], {})
        self.assertEqual(doc["sources"][2]["settings"], {"device_id": "mic-7"})
        self.assertEqual(r.unresolved_devices, ["cam-2"])

    def test_token_lookalikes_outside_capture_sources_untouched(self):
        doc = {
            "sources": [
                {"id": "text_gdiplus", "name": "{cam-1}", "settings": {"text": "{AUDIO_CAPTURE_SETTINGS}"}},
                {"id": "image_source", "settings": "{cam-1}"},
            ]
        }
        PlaceholderResolver("/p", video_settings={"cam-1": {"x": 1}}, audio_settings={"y": 2}).resolve(doc)
        self.assertEqual(doc["sources"][0]["name"], "{cam-1}")
        self.assertEqual(doc["sources"][0]["settings"]["text"], "{AUDIO_CAPTURE_SETTINGS}")
        self.assertEqual(doc["sources"][1]["settings"], "{cam-1}")

    def test_each_source_gets_its_own_settings_copy(self):
        doc = {
            "sources": [
                {"id": "wasapi_input_capture", "settings": "{AUDIO_CAPTURE_SETTINGS}"},
                {"id": "wasapi_input_capture", "settings": "{AUDIO_CAPTURE_SETTINGS}"},
            ]
        }
        PlaceholderResolver("/p", audio_settings={"device_id": "a"}).resolve(doc)
        doc["sources"][0]["settings"]["device_id"] = "changed"
        self.assertEqual(doc["sources"][1]["settings"]["device_id"], "a")


class TestReferencedAssets(unittest.TestCase):
    def test_document_order(self):
        doc = {
            "sources": [
                {"settings": {"file": "{FILE}:Assets/images/a.png"}},
                {"settings": {"list": ["{FILE}:Assets/audio/b.wav", "plain"]}},
            ]
        }
        self.assertEqual(referenced_assets(doc), ["Assets/images/a.png", "Assets/audio/b.wav"])


if __name__ == "__main__":
    unittest.main()
