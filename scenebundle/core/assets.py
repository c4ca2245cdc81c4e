from __future__ import annotations

import logging
import os
import posixpath
from typing import Dict, List, Optional, Set

from scenebundle.config import ASSETS_ROOT
from scenebundle.core.settings import DEFAULT_EXTENSION_CLASSES

logger = logging.getLogger(__name__)

MISC_CLASS = "misc"
BROWSER_SOURCES_CLASS = "browser-sources"


def normalize_path(path: str) -> str:
    return path.replace("\\", "/")


def _split_name(filename: str) -> tuple[str, str]:
    # ".hidden" has no extension; "a.tar.gz" -> ("a.tar", ".gz")
    dot = filename.rfind(".")
    if dot <= 0:
        return filename, ""
    return filename[:dot], filename[dot:]


def classify(path: str, extension_classes: Optional[Dict[str, str]] = None) -> str:
    table = DEFAULT_EXTENSION_CLASSES if extension_classes is None else extension_classes
    _, ext = _split_name(posixpath.basename(normalize_path(path)))
    return table.get(ext.lower().lstrip("."), MISC_CLASS)


class AssetDeduplicator:
    """
    Maps absolute asset paths to portable archive paths:
      Assets/<class>/<name>

    The same absolute path always yields the same portable path within a run,
    and two different absolute paths never share one. Name clashes get a
    numeric suffix before the extension (logo.png, logo_1.png, ...).

    Browser-source pages keep their folder:
      Assets/browser-sources/<parentdir>/<name>
    Every page from one folder shares that root; two different folders with
    the same name get overlay, overlay_1, ...
    """

    def __init__(self, extension_classes: Optional[Dict[str, str]] = None):
        self._classes = dict(DEFAULT_EXTENSION_CLASSES if extension_classes is None else extension_classes)
        self._mapping: Dict[str, str] = {}
        self._claimed: Set[str] = set()
        # source folder -> portable folder
        self._browser_roots: Dict[str, str] = {}

    def reset(self) -> None:
        self._mapping.clear()
        self._claimed.clear()
        self._browser_roots.clear()

    @staticmethod
    def _key(path: str) -> str:
        key = normalize_path(path)
        # "/x/dir/" and "/x/dir" are the same folder
        return key.rstrip("/") or key

    def _browser_root(self, source_dir: str) -> str:
        known = self._browser_roots.get(source_dir)
        if known is not None:
            return known

        name = posixpath.basename(source_dir).replace(":", "") or "root"
        base = f"{ASSETS_ROOT}/{BROWSER_SOURCES_CLASS}"
        taken = set(self._browser_roots.values())
        root = f"{base}/{name}"
        n = 1
        while root in taken:
            root = f"{base}/{name}_{n}"
            n += 1

        self._browser_roots[source_dir] = root
        return root

    def resolve(self, path: str) -> str:
        key = self._key(path)
        known = self._mapping.get(key)
        if known is not None:
            return known

        filename = posixpath.basename(key)
        base, ext = _split_name(filename)
        cls = classify(filename, self._classes)

        if cls == BROWSER_SOURCES_CLASS:
            portable = f"{self._browser_root(posixpath.dirname(key))}/{filename}"
        else:
            directory = f"{ASSETS_ROOT}/{cls}"
            portable = f"{directory}/{filename}"
            n = 1
            while portable in self._claimed:
                portable = f"{directory}/{base}_{n}{ext}"
                n += 1

        self._mapping[key] = portable
        self._claimed.add(portable)
        logger.debug("Asset mapped: %s -> %s", key, portable)
        return portable

    def portable_path(self, path: str) -> Optional[str]:
        return self._mapping.get(self._key(path))

    def mapping(self) -> Dict[str, str]:
        return dict(self._mapping)

    def browser_roots(self) -> Dict[str, str]:
        """Source folder -> portable folder for every referenced browser-source page."""
        return dict(self._browser_roots)

    def source_paths(self) -> List[str]:
        return list(self._mapping.keys())

    def __len__(self) -> int:
        return len(self._mapping)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self._key(path) in self._mapping


def is_asset_reference(value: str) -> bool:
    """
    True when a string value names an existing absolute path (file or folder).
    Filesystem roots are never treated as assets.
    """
    if not value:
        return False
    candidate = normalize_path(value)
    if not os.path.isabs(candidate):
        return False
    _, tail = os.path.splitdrive(candidate)
    if not tail.strip("/"):
        return False
    return os.path.exists(candidate)
