"""
Bundle manifest (manifest.json) creation and parsing.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any, Dict, List, Optional, Sequence, Tuple

from scenebundle.config import APP_VERSION, DEFAULT_BUNDLE_VERSION, FORMAT_VERSION
from scenebundle.models import StreamDeckFile


@dataclass
class ThirdPartyRequirement:
    name: str
    url: str


@dataclass
class OutputScene:
    id: str
    name: str


@dataclass
class StreamDeckAsset:
    filename: str
    label: str


@dataclass
class BundleManifest:
    canvas_width: int = 1920
    canvas_height: int = 1080
    format_version: str = FORMAT_VERSION
    bundle_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    version: str = DEFAULT_BUNDLE_VERSION
    required_plugins: List[str] = field(default_factory=list)
    video_device_descriptions: Dict[str, str] = field(default_factory=dict)
    third_party_requirements: List[ThirdPartyRequirement] = field(default_factory=list)
    output_scenes: List[OutputScene] = field(default_factory=list)
    stream_deck_actions: List[StreamDeckAsset] = field(default_factory=list)
    stream_deck_profiles: List[StreamDeckAsset] = field(default_factory=list)
    exported_with_version: str = APP_VERSION

    @property
    def stream_deck_assets(self) -> List[StreamDeckAsset]:
        return list(self.stream_deck_actions) + list(self.stream_deck_profiles)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canvas": {"width": self.canvas_width, "height": self.canvas_height},
            "format_version": self.format_version,
            "id": self.bundle_id,
            "version": self.version,
            "plugins_required": list(self.required_plugins),
            "third_party": [{"name": r.name, "url": r.url} for r in self.third_party_requirements],
            "video_devices": dict(self.video_device_descriptions),
            "output_scenes": [{"id": s.id, "name": s.name} for s in self.output_scenes],
            "stream_deck_actions": [{"filename": a.filename, "label": a.label} for a in self.stream_deck_actions],
            "stream_deck_profiles": [{"filename": p.filename, "label": p.label} for p in self.stream_deck_profiles],
            "exported_with_version": self.exported_with_version,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BundleManifest":
        canvas = d.get("canvas") or {}

        def _assets(key: str) -> List[StreamDeckAsset]:
            return [
                StreamDeckAsset(filename=str(a.get("filename", "")), label=str(a.get("label", "")))
                for a in (d.get(key) or [])
            ]

        return cls(
            canvas_width=int(canvas.get("width", 1920)),
            canvas_height=int(canvas.get("height", 1080)),
            # older bundles used "ec_version" / "exported_with_plugin_version"
            format_version=str(d.get("format_version", d.get("ec_version", FORMAT_VERSION))),
            bundle_id=str(d.get("id", "")),
            version=str(d.get("version", DEFAULT_BUNDLE_VERSION)),
            required_plugins=[str(p) for p in (d.get("plugins_required") or [])],
            video_device_descriptions={str(k): str(v) for k, v in (d.get("video_devices") or {}).items()},
            third_party_requirements=[
                ThirdPartyRequirement(name=str(r.get("name", "")), url=str(r.get("url", "")))
                for r in (d.get("third_party") or [])
            ],
            output_scenes=[
                OutputScene(id=str(s.get("id", "")), name=str(s.get("name", "")))
                for s in (d.get("output_scenes") or [])
            ],
            stream_deck_actions=_assets("stream_deck_actions"),
            stream_deck_profiles=_assets("stream_deck_profiles"),
            exported_with_version=str(
                d.get("exported_with_version", d.get("exported_with_plugin_version", "1.0.0.0"))
            ),
        )

    @classmethod
    def from_json(cls, text: str) -> "BundleManifest":
        return cls.from_dict(json.loads(text))

    def validate(self) -> List[str]:
        errors = []
        if self.canvas_width <= 0 or self.canvas_height <= 0:
            errors.append(f"Invalid canvas size: {self.canvas_width}x{self.canvas_height}")
        if not self.bundle_id:
            errors.append("Manifest missing bundle id")
        if not self.version:
            errors.append("Manifest missing version")
        return errors


def build_manifest(
    canvas: Tuple[int, int],
    version: str,
    plugins: Sequence[str] = (),
    third_party: Sequence[Tuple[str, str]] = (),
    output_scenes: Sequence[Tuple[str, str]] = (),
    video_devices: Optional[Dict[str, str]] = None,
    stream_deck_actions: Sequence[StreamDeckFile] = (),
    stream_deck_profiles: Sequence[StreamDeckFile] = (),
) -> BundleManifest:
    """
    Fresh manifest for one export. Stream-Deck files are recorded by file
    name only; their contents travel under Assets/stream-deck/.
    """
    return BundleManifest(
        canvas_width=int(canvas[0]),
        canvas_height=int(canvas[1]),
        version=version or DEFAULT_BUNDLE_VERSION,
        required_plugins=list(plugins),
        video_device_descriptions=dict(video_devices or {}),
        third_party_requirements=[ThirdPartyRequirement(name=n, url=u) for n, u in third_party],
        output_scenes=[OutputScene(id=i, name=n) for i, n in output_scenes],
        stream_deck_actions=[
            StreamDeckAsset(filename=PurePath(f.path.replace("\\", "/")).name, label=f.label)
            for f in stream_deck_actions
        ],
        stream_deck_profiles=[
            StreamDeckAsset(filename=PurePath(f.path.replace("\\", "/")).name, label=f.label)
            for f in stream_deck_profiles
        ],
    )
