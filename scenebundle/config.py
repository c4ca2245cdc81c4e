from __future__ import annotations

APP_NAME = "Scene Bundle"
APP_VERSION = "1.0.0"

# Archive layout
MANIFEST_NAME = "manifest.json"
LEGACY_MANIFEST_NAME = "bundle_info.json"
COLLECTION_NAME = "collection.json"
ASSETS_ROOT = "Assets"
STREAM_DECK_ACTIONS_DIR = "Assets/stream-deck/stream-deck-actions"
STREAM_DECK_PROFILES_DIR = "Assets/stream-deck/stream-deck-profiles"
STREAM_DECK_PREFIX = "Assets/stream-deck/"

FORMAT_VERSION = "1.0"
DEFAULT_BUNDLE_VERSION = "1.0"

# Placeholder tokens written into collection.json
FILE_MARKER = "{FILE}:"
AUDIO_SETTINGS_TOKEN = "{AUDIO_CAPTURE_SETTINGS}"

# Key the installed collection carries its bundle metadata under
MODULE_KEY = "scene_bundle"

CHUNK_SIZE_DEFAULT = 256 * 1024
HANDSHAKE_TIMEOUT_DEFAULT = 30.0
