from __future__ import annotations

import json
from pathlib import Path


def main():
    root = Path("demo_collection").resolve()
    media = root / "media"
    (media / "overlays").mkdir(parents=True, exist_ok=True)
    (media / "alerts").mkdir(parents=True, exist_ok=True)
    (root / "scenes").mkdir(parents=True, exist_ok=True)

    (media / "logo.png").write_bytes(b"dummy_png")
    (media / "overlays" / "logo.png").write_bytes(b"other_dummy_png")
    (media / "intro.mp4").write_bytes(b"dummy_mp4")
    (media / "alerts" / "ding.wav").write_bytes(b"dummy_wav")
    (media / "alerts" / "chime.wav").write_bytes(b"dummy_wav_2")
    (media / "countdown.lua").write_text("-- dummy script\n", encoding="utf-8")

    collection = {
        "name": "Demo",
        "current_scene": "Main",
        "modules": {
            "scripts-tool": [{"path": (media / "countdown.lua").as_posix(), "settings": {}}],
        },
        "sources": [
            {"id": "scene", "name": "Main", "uuid": "scene-main", "settings": {"items": []}},
            {
                "id": "image_source",
                "name": "Logo",
                "settings": {"file": (media / "logo.png").as_posix()},
                "filters": [
                    {"id": "vst_filter", "name": "Reverb"},
                    {"id": "color_filter", "name": "Tint"},
                ],
            },
            {"id": "image_source", "name": "Corner Logo", "settings": {"file": (media / "overlays" / "logo.png").as_posix()}},
            {"id": "ffmpeg_source", "name": "Intro", "settings": {"local_file": (media / "intro.mp4").as_posix()}},
            {"id": "browser_source", "name": "Alerts", "settings": {"sound_dir": (media / "alerts").as_posix()}},
            {"id": "dshow_input", "name": "Webcam", "uuid": "cam-1", "settings": {"video_device_id": "usb:1"}},
            {"id": "wasapi_input_capture", "name": "Mic", "settings": {"device_id": "default"}},
        ],
        "groups": [],
        "transitions": [],
    }

    path = root / "scenes" / "Demo.json"
    path.write_text(json.dumps(collection, indent=2), encoding="utf-8")

    print(f"Created demo collection at: {path}")


if __name__ == "__main__":
    main()
