from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

from scenebundle.config import (
    COLLECTION_NAME,
    LEGACY_MANIFEST_NAME,
    MANIFEST_NAME,
    STREAM_DECK_ACTIONS_DIR,
    STREAM_DECK_PROFILES_DIR,
)
from scenebundle.core.archive import ArchiveReader
from scenebundle.core.manifest import BundleManifest
from scenebundle.core.rewriter import referenced_assets
from scenebundle.models import BundleIssue


def manifest_entry_name(reader: ArchiveReader) -> Optional[str]:
    for name in (MANIFEST_NAME, LEGACY_MANIFEST_NAME):
        if reader.contains(name):
            return name
    return None


def validate_bundle(archive_path: str) -> List[BundleIssue]:
    results: List[BundleIssue] = []
    path = Path(archive_path)

    if not path.is_file():
        return [BundleIssue("ERROR", "BUNDLE_NOT_FOUND", f"Bundle not found: {path}", None)]

    with ArchiveReader() as reader:
        if not reader.open(str(path)):
            return [BundleIssue("ERROR", "NOT_A_ZIP", "Bundle is not a readable zip archive.", None)]

        names = set(reader.names())

        # -------------------------
        # Rule: required entries
        # -------------------------
        manifest_name = manifest_entry_name(reader)
        if manifest_name is None:
            results.append(BundleIssue("ERROR", "MANIFEST_MISSING", f"Required entry missing: {MANIFEST_NAME}", None))
        if COLLECTION_NAME not in names:
            results.append(
                BundleIssue("ERROR", "COLLECTION_MISSING", f"Required entry missing: {COLLECTION_NAME}", None)
            )

        # -------------------------
        # Rule: no path traversal
        # -------------------------
        for name in reader.unsafe_entries():
            results.append(BundleIssue("ERROR", "UNSAFE_ENTRY", "Entry escapes the extraction folder.", name))

        # -------------------------
        # Rule: manifest parses and is sane
        # -------------------------
        manifest: Optional[BundleManifest] = None
        if manifest_name is not None:
            text = reader.read_text(manifest_name)
            try:
                manifest = BundleManifest.from_json(text or "")
            except (ValueError, TypeError, AttributeError) as e:
                results.append(BundleIssue("ERROR", "MANIFEST_INVALID", f"Invalid manifest: {e}", manifest_name))
            else:
                for msg in manifest.validate():
                    results.append(BundleIssue("WARNING", "MANIFEST_FIELD", msg, manifest_name))

        # -------------------------
        # Rule: collection parses and its assets are present
        # -------------------------
        if COLLECTION_NAME in names:
            text = reader.read_text(COLLECTION_NAME)
            try:
                collection = json.loads(text or "")
            except ValueError as e:
                results.append(
                    BundleIssue("ERROR", "COLLECTION_INVALID", f"Invalid collection JSON: {e}", COLLECTION_NAME)
                )
            else:
                if not isinstance(collection, dict):
                    results.append(
                        BundleIssue("ERROR", "COLLECTION_INVALID", "Collection is not a JSON object.", COLLECTION_NAME)
                    )
                else:
                    for asset in sorted(set(referenced_assets(collection))):
                        # directories are stored as their member files
                        if asset in names or any(n.startswith(asset + "/") for n in names):
                            continue
                        results.append(
                            BundleIssue("WARNING", "ASSET_MISSING", "Referenced asset not in bundle.", asset)
                        )

        if manifest is not None:
            for folder, assets in (
                (STREAM_DECK_ACTIONS_DIR, manifest.stream_deck_actions),
                (STREAM_DECK_PROFILES_DIR, manifest.stream_deck_profiles),
            ):
                for a in assets:
                    entry = f"{folder}/{a.filename}"
                    if entry not in names:
                        results.append(
                            BundleIssue("WARNING", "STREAM_DECK_MISSING", "Stream Deck file not in bundle.", entry)
                        )

        results.append(BundleIssue("INFO", "ENTRY_COUNT", f"Bundle holds {len(names)} entries.", None))

    return results
