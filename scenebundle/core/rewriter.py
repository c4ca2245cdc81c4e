from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional

from scenebundle.config import AUDIO_SETTINGS_TOKEN, FILE_MARKER
from scenebundle.core.assets import AssetDeduplicator, is_asset_reference, normalize_path
from scenebundle.core.filters import FilterCompatibilityFilter
from scenebundle.core.settings import DEFAULT_AUDIO_SOURCES, DEFAULT_VIDEO_SOURCES

logger = logging.getLogger(__name__)


def device_token(source_uuid: str) -> str:
    return "{" + source_uuid + "}"


def collection_sections(collection: Dict[str, Any]) -> List[List[Any]]:
    """
    Top-level lists that hold rewritable items:
      modules["scripts-tool"], sources, groups, transitions
    """
    sections: List[List[Any]] = []

    modules = collection.get("modules")
    if isinstance(modules, dict):
        scripts = modules.get("scripts-tool")
        if isinstance(scripts, list):
            sections.append(scripts)

    for key in ("sources", "groups", "transitions"):
        items = collection.get(key)
        if isinstance(items, list):
            sections.append(items)

    return sections


class JsonTreeRewriter:
    """
    Depth-first, in-place rewrite of a collection document for export.

    - capture device settings -> placeholder tokens
    - absolute asset paths    -> "{FILE}:Assets/<class>/<name>"
    - "filters" arrays        -> incompatible filters removed

    The document must be a tree (as parsed from JSON); shared or cyclic
    containers are not detected.
    """

    def __init__(
        self,
        assets: AssetDeduplicator,
        filters: FilterCompatibilityFilter,
        video_source_ids: Optional[Iterable[str]] = None,
        audio_source_ids: Optional[Iterable[str]] = None,
        uuid_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.assets = assets
        self.filters = filters
        self.video_source_ids = frozenset(DEFAULT_VIDEO_SOURCES if video_source_ids is None else video_source_ids)
        self.audio_source_ids = frozenset(DEFAULT_AUDIO_SOURCES if audio_source_ids is None else audio_source_ids)
        self._uuid_factory = uuid_factory
        # source uuid -> display name
        self.video_devices: Dict[str, str] = {}

    def reset(self) -> None:
        self.assets.reset()
        self.filters.reset()
        self.video_devices = {}

    def rewrite_collection(self, collection: Dict[str, Any]) -> None:
        for section in collection_sections(collection):
            self.rewrite_array(section)

    def rewrite(self, node: Any) -> Any:
        if isinstance(node, dict):
            self.rewrite_object(node)
        elif isinstance(node, list):
            self.rewrite_array(node)
        elif isinstance(node, str):
            return self._rewrite_string(node)
        return node

    def rewrite_object(self, obj: Dict[str, Any]) -> None:
        self._replace_device_settings(obj)

        for key, item in list(obj.items()):
            if isinstance(item, str):
                obj[key] = self._rewrite_string(item)
            elif isinstance(item, dict):
                self.rewrite_object(item)
            elif isinstance(item, list):
                if key == "filters":
                    self.filters.apply(str(obj.get("name", "")), item)
                self.rewrite_array(item)

    def rewrite_array(self, items: List[Any]) -> None:
        for idx, item in enumerate(items):
            if isinstance(item, str):
                items[idx] = self._rewrite_string(item)
            elif isinstance(item, dict):
                self.rewrite_object(item)
            elif isinstance(item, list):
                self.rewrite_array(item)

    def _replace_device_settings(self, obj: Dict[str, Any]) -> None:
        source_id = obj.get("id")
        if not isinstance(source_id, str):
            return

        if source_id in self.video_source_ids:
            source_uuid = obj.get("uuid")
            if not isinstance(source_uuid, str) or not source_uuid:
                source_uuid = self._uuid_factory()
                obj["uuid"] = source_uuid
            obj["settings"] = device_token(source_uuid)
            self.video_devices[source_uuid] = str(obj.get("name", ""))
            logger.info("Video capture source tokenized: %s", obj.get("name"))
        elif source_id in self.audio_source_ids:
            obj["settings"] = AUDIO_SETTINGS_TOKEN

    def _rewrite_string(self, value: str) -> str:
        if not is_asset_reference(value):
            return value
        return FILE_MARKER + self.assets.resolve(value)


class PlaceholderResolver:
    """
    Import-side inverse of JsonTreeRewriter, applied to parsed nodes.

    Device tokens are honored only as the "settings" value of a capture
    source, so a source name or text field that happens to look like a
    token is left alone.
    """

    def __init__(
        self,
        pack_path: str,
        video_settings: Optional[Dict[str, Any]] = None,
        audio_settings: Any = None,
        video_source_ids: Optional[Iterable[str]] = None,
        audio_source_ids: Optional[Iterable[str]] = None,
    ):
        self.pack_path = normalize_path(pack_path).rstrip("/")
        self.video_settings = dict(video_settings or {})
        self.audio_settings = {} if audio_settings is None else audio_settings
        self.video_source_ids = frozenset(DEFAULT_VIDEO_SOURCES if video_source_ids is None else video_source_ids)
        self.audio_source_ids = frozenset(DEFAULT_AUDIO_SOURCES if audio_source_ids is None else audio_source_ids)
        self.unresolved_devices: List[str] = []

    def resolve(self, node: Any) -> Any:
        if isinstance(node, dict):
            self._resolve_object(node)
        elif isinstance(node, list):
            self._resolve_array(node)
        elif isinstance(node, str):
            return self._resolve_string(node)
        return node

    def _resolve_object(self, obj: Dict[str, Any]) -> None:
        self._resolve_device_settings(obj)

        for key, item in list(obj.items()):
            if isinstance(item, str):
                obj[key] = self._resolve_string(item)
            elif isinstance(item, dict):
                self._resolve_object(item)
            elif isinstance(item, list):
                self._resolve_array(item)

    def _resolve_array(self, items: List[Any]) -> None:
        for idx, item in enumerate(items):
            if isinstance(item, str):
                items[idx] = self._resolve_string(item)
            elif isinstance(item, dict):
                self._resolve_object(item)
            elif isinstance(item, list):
                self._resolve_array(item)

    def _resolve_device_settings(self, obj: Dict[str, Any]) -> None:
        token = obj.get("settings")
        source_id = obj.get("id")
        if not isinstance(token, str) or not isinstance(source_id, str):
            return

        if source_id in self.audio_source_ids and token == AUDIO_SETTINGS_TOKEN:
            obj["settings"] = copy.deepcopy(self.audio_settings)
            return

        if source_id in self.video_source_ids and token.startswith("{") and token.endswith("}"):
            key = token[1:-1]
            if key in self.video_settings:
                obj["settings"] = copy.deepcopy(self.video_settings[key])
            else:
                # no device chosen for this source; leave it unconfigured
                self.unresolved_devices.append(key)
                obj["settings"] = {}
                logger.warning("No device settings supplied for source %s", obj.get("name"))

    def _resolve_string(self, value: str) -> str:
        if not value.startswith(FILE_MARKER):
            return value
        return f"{self.pack_path}/{value[len(FILE_MARKER):]}"


def referenced_assets(node: Any) -> List[str]:
    """Portable paths named by "{FILE}:" markers anywhere under node, in document order."""
    found: List[str] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            stack.extend(reversed(list(current.values())))
        elif isinstance(current, list):
            stack.extend(reversed(current))
        elif isinstance(current, str) and current.startswith(FILE_MARKER):
            found.append(current[len(FILE_MARKER):])
    return found
