from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Dict, FrozenSet

from scenebundle.config import CHUNK_SIZE_DEFAULT, HANDSHAKE_TIMEOUT_DEFAULT

SETTINGS_FILENAME = "scenebundle.json"

DEFAULT_EXTENSION_CLASSES: Dict[str, str] = {
    "jpg": "images", "jpeg": "images", "gif": "images", "png": "images", "bmp": "images",
    "webm": "video", "mov": "video", "mp4": "video", "mkv": "video",
    "mp3": "audio", "wav": "audio",
    "effect": "shaders", "shader": "shaders", "hlsl": "shaders",
    "lua": "scripts", "py": "scripts",
    "html": "browser-sources", "htm": "browser-sources",
}

# Filters that depend on external libraries or executables
DEFAULT_INCOMPATIBLE_FILTERS = frozenset({"vst_filter"})

DEFAULT_VIDEO_SOURCES = frozenset({"dshow_input", "av_capture_input", "macos-avcapture", "v4l2_input"})
DEFAULT_AUDIO_SOURCES = frozenset({
    "wasapi_input_capture",
    "coreaudio_input_capture",
    "pulse_input_capture",
    "alsa_input_capture",
})


def default_backup_dir() -> str:
    return str(Path.home() / ".scenebundle" / "SCBackups")


@dataclass(frozen=True)
class BundleSettings:
    extension_classes: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_EXTENSION_CLASSES))
    incompatible_filters: FrozenSet[str] = DEFAULT_INCOMPATIBLE_FILTERS
    video_source_ids: FrozenSet[str] = DEFAULT_VIDEO_SOURCES
    audio_source_ids: FrozenSet[str] = DEFAULT_AUDIO_SOURCES
    backup_dir: str = field(default_factory=default_backup_dir)
    handshake_timeout: float = HANDSHAKE_TIMEOUT_DEFAULT
    chunk_size: int = CHUNK_SIZE_DEFAULT


def default_settings() -> BundleSettings:
    return BundleSettings()


def settings_path(config_dir: str) -> Path:
    return Path(config_dir).resolve() / SETTINGS_FILENAME


def to_json_dict(settings: BundleSettings) -> Dict[str, Any]:
    d = asdict(settings)
    d["incompatible_filters"] = sorted(settings.incompatible_filters)
    d["video_source_ids"] = sorted(settings.video_source_ids)
    d["audio_source_ids"] = sorted(settings.audio_source_ids)
    d["extension_classes"] = dict(sorted(settings.extension_classes.items()))
    return d


def _id_set(values: Any, fallback: FrozenSet[str]) -> FrozenSet[str]:
    if values is None:
        return fallback
    return frozenset(str(x).strip() for x in values if str(x).strip())


def from_json_dict(d: Dict[str, Any]) -> BundleSettings:
    defaults = default_settings()

    classes_in = d.get("extension_classes")
    if classes_in is None:
        classes = dict(defaults.extension_classes)
    else:
        classes = {
            str(ext).lower().lstrip("."): str(cls).strip("/")
            for ext, cls in classes_in.items()
            if str(ext).strip() and str(cls).strip()
        }

    chunk_size = int(d.get("chunk_size") or defaults.chunk_size)
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    return BundleSettings(
        extension_classes=classes,
        incompatible_filters=_id_set(d.get("incompatible_filters"), defaults.incompatible_filters),
        video_source_ids=_id_set(d.get("video_source_ids"), defaults.video_source_ids),
        audio_source_ids=_id_set(d.get("audio_source_ids"), defaults.audio_source_ids),
        backup_dir=str(d.get("backup_dir") or defaults.backup_dir),
        handshake_timeout=float(d.get("handshake_timeout") or defaults.handshake_timeout),
        chunk_size=chunk_size,
    )


def load_settings(config_dir: str) -> BundleSettings:
    """
    Load settings from <config_dir>/scenebundle.json.
    Missing file falls back to defaults; a malformed file raises.
    """
    path = settings_path(config_dir)
    if not path.exists():
        return default_settings()
    d = json.loads(path.read_text(encoding="utf-8"))
    return from_json_dict(d)


def save_settings(config_dir: str, settings: BundleSettings) -> Path:
    path = settings_path(config_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(to_json_dict(settings), indent=2), encoding="utf-8")
    return path
