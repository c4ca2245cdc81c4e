"""
Export/import orchestration for scene bundles.

SceneBundle owns one run at a time:

  export: IDLE -> COLLECTING -> REWRITING -> PACKAGING -> DONE | CANCELLED | ERROR
  import: IDLE -> EXTRACTING -> REWRITING -> SWITCHING_COLLECTION -> DONE | ERROR

Methods are blocking and meant to be called from a worker thread;
cancel() and interrupt() may be called from any thread.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from scenebundle.config import (
    COLLECTION_NAME,
    DEFAULT_BUNDLE_VERSION,
    MANIFEST_NAME,
    MODULE_KEY,
    STREAM_DECK_ACTIONS_DIR,
    STREAM_DECK_PREFIX,
    STREAM_DECK_PROFILES_DIR,
)
from scenebundle.core.archive import ArchiveReader, ArchiveWriter, FileProgressFn, OverallProgressFn
from scenebundle.core.assets import AssetDeduplicator
from scenebundle.core.errors import BundleError, UnsafeEntryError
from scenebundle.core.filters import FilterCompatibilityFilter
from scenebundle.core.fsutil import clear_dir, copy_file_safe
from scenebundle.core.handshake import CollectionSwitcher
from scenebundle.core.host import SceneCollectionHost
from scenebundle.core.manifest import BundleManifest, build_manifest
from scenebundle.core.rewriter import JsonTreeRewriter, PlaceholderResolver
from scenebundle.core.scanner import scan_folder
from scenebundle.core.settings import BundleSettings, default_settings
from scenebundle.core.validator import manifest_entry_name
from scenebundle.models import BundleIssue, BundleState, OperationResult, SkippedFilterRecord, StreamDeckFile

logger = logging.getLogger(__name__)

StateFn = Callable[[BundleState], None]
SettingsArg = Union[str, Dict[str, Any], None]


@dataclass
class ExportRequest:
    """Caller metadata that ends up in manifest.json."""
    version: str = DEFAULT_BUNDLE_VERSION
    plugins: List[str] = field(default_factory=list)
    third_party: List[Tuple[str, str]] = field(default_factory=list)    # (name, url)
    output_scenes: List[Tuple[str, str]] = field(default_factory=list)  # (id, name)
    # source uuid -> label; empty means "use the source names found while rewriting"
    video_device_descriptions: Dict[str, str] = field(default_factory=dict)
    stream_deck_actions: List[StreamDeckFile] = field(default_factory=list)
    stream_deck_profiles: List[StreamDeckFile] = field(default_factory=list)


@dataclass
class BundleInfo:
    manifest: BundleManifest
    entry_count: int
    # temp folder holding Assets/stream-deck/..., when requested and present
    stream_deck_dir: Optional[str] = None


def _parse_settings_arg(value: SettingsArg) -> Any:
    # device settings arrive either as JSON text (from a UI) or already parsed
    if value is None:
        return None
    if isinstance(value, str):
        return json.loads(value) if value.strip() else None
    return value


def module_info(manifest: BundleManifest, pack_path: str) -> Dict[str, Any]:
    d = manifest.to_dict()
    return {
        "first_run": True,
        "bundle_id": manifest.bundle_id,
        "version": manifest.version,
        "exported_with_version": manifest.exported_with_version,
        "third_party": d["third_party"],
        "stream_deck_actions": d["stream_deck_actions"],
        "stream_deck_profiles": d["stream_deck_profiles"],
        "pack_path": pack_path,
    }


def read_bundle_info(archive_path: str, extract_stream_deck: bool = False) -> Optional[BundleInfo]:
    """
    Reads manifest.json without installing anything.
    With extract_stream_deck=True the Assets/stream-deck/ subtree is copied
    to a fresh temp folder the caller owns.
    Returns None when the archive cannot be opened or has no usable manifest.
    """
    with ArchiveReader() as reader:
        if not reader.open(archive_path):
            return None

        name = manifest_entry_name(reader)
        if name is None:
            logger.error("No manifest in %s", archive_path)
            return None

        text = reader.read_text(name)
        try:
            manifest = BundleManifest.from_json(text or "")
        except (ValueError, TypeError, AttributeError) as e:
            logger.error("Invalid manifest in %s: %s", archive_path, e)
            return None

        info = BundleInfo(manifest=manifest, entry_count=len(reader.names()))

        if extract_stream_deck and any(n.startswith(STREAM_DECK_PREFIX) for n in reader.names()):
            tmp = tempfile.mkdtemp(prefix="scenebundle_sd_")
            if reader.extract_all(tmp, prefix=STREAM_DECK_PREFIX):
                info.stream_deck_dir = tmp
            else:
                logger.warning("Stream Deck assets could not be extracted from %s", archive_path)
                shutil.rmtree(tmp, ignore_errors=True)

    return info


class SceneBundle:
    def __init__(
        self,
        host: SceneCollectionHost,
        settings: Optional[BundleSettings] = None,
        on_file_progress: Optional[FileProgressFn] = None,
        on_overall_progress: Optional[OverallProgressFn] = None,
        on_state_changed: Optional[StateFn] = None,
    ):
        self.host = host
        self.settings = settings or default_settings()
        self.on_file_progress = on_file_progress
        self.on_overall_progress = on_overall_progress
        self.on_state_changed = on_state_changed

        self.assets = AssetDeduplicator(self.settings.extension_classes)
        self.filters = FilterCompatibilityFilter(self.settings.incompatible_filters)
        self.rewriter = JsonTreeRewriter(
            self.assets,
            self.filters,
            video_source_ids=self.settings.video_source_ids,
            audio_source_ids=self.settings.audio_source_ids,
        )

        self.state = BundleState.IDLE
        self.issues: List[BundleIssue] = []
        self.collection: Optional[Dict[str, Any]] = None
        self.manifest: Optional[BundleManifest] = None
        self.pack_path: Optional[str] = None

        self._busy = threading.Lock()
        self._cancel = threading.Event()
        self._interrupt = threading.Event()
        self._interrupt_reason = OperationResult.CALLER_DESTROYED

    # -------------------------
    # State / control
    # -------------------------
    def _set_state(self, state: BundleState) -> None:
        self.state = state
        logger.debug("Bundle state: %s", state.value)
        if self.on_state_changed:
            self.on_state_changed(state)

    def cancel(self) -> None:
        self._cancel.set()

    def interrupt(self, reason: OperationResult = OperationResult.CALLER_DESTROYED) -> None:
        """Abort the running operation on behalf of a caller that is going away."""
        self._interrupt_reason = reason
        self._interrupt.set()

    def is_stopped(self) -> bool:
        return self._cancel.is_set() or self._interrupt.is_set()

    def _stopped(self) -> OperationResult:
        if self._interrupt.is_set():
            self._set_state(BundleState.ERROR)
            return self._interrupt_reason
        self._set_state(BundleState.CANCELLED)
        return OperationResult.CANCELLED

    def _fail(self, code: str, message: str, relpath: Optional[str] = None) -> OperationResult:
        self.issues.append(BundleIssue("ERROR", code, message, relpath))
        logger.error(message)
        self._set_state(BundleState.ERROR)
        return OperationResult.ERROR

    def _begin(self) -> bool:
        if not self._busy.acquire(blocking=False):
            logger.warning("Bundle operation already running; request ignored")
            return False
        self._cancel.clear()
        self._interrupt.clear()
        self.issues = []
        return True

    # -------------------------
    # Accessors for a confirmation step
    # -------------------------
    @property
    def skipped_filters(self) -> List[SkippedFilterRecord]:
        return list(self.filters.skipped)

    def file_list(self) -> Dict[str, str]:
        """Absolute source path -> portable archive path for the last export."""
        return self.assets.mapping()

    def video_capture_devices(self) -> Dict[str, str]:
        """Source uuid -> source name for every tokenized video capture source."""
        return dict(self.rewriter.video_devices)

    # -------------------------
    # Export
    # -------------------------
    def from_collection(self) -> OperationResult:
        """Loads and rewrites the host's active collection into self.collection."""
        self.rewriter.reset()
        self.collection = None

        self._set_state(BundleState.COLLECTING)
        path = self.host.collection_file()
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except OSError as e:
            return self._fail("COLLECTION_READ_FAILED", f"Cannot read collection {path}: {e}", path)
        except ValueError as e:
            return self._fail("COLLECTION_PARSE_FAILED", f"Collection {path} is not valid JSON: {e}", path)

        if not isinstance(document, dict):
            return self._fail("COLLECTION_PARSE_FAILED", f"Collection {path} is not a JSON object", path)

        self._set_state(BundleState.REWRITING)
        self.rewriter.rewrite_collection(document)
        self.collection = document
        logger.info(
            "Collection rewritten: %d assets, %d filters skipped, %d video devices",
            len(self.assets),
            len(self.filters.skipped),
            len(self.rewriter.video_devices),
        )
        return OperationResult.SUCCESS

    def _enqueue_assets(self, writer: ArchiveWriter) -> bool:
        for src, portable in self.assets.mapping().items():
            if self.is_stopped():
                return False
            if os.path.isdir(src):
                # a folder reference carries its direct files only
                files = scan_folder(src, recursive=False)
                if not files:
                    writer.add_directory(portable)
                for f in files:
                    writer.add_file(f"{portable}/{f.name}", f.path)
            else:
                writer.add_file(portable, src)

        # a browser-source page takes its whole folder along
        for src_dir, root in self.assets.browser_roots().items():
            if self.is_stopped():
                return False
            if not os.path.splitdrive(src_dir)[1].strip("/"):
                logger.warning("Browser source folder %s is a filesystem root; packaging the page only", src_dir)
                continue
            for f in scan_folder(src_dir, recursive=True):
                writer.add_file(f"{root}/{f.relpath}", f.path)
        return True

    def _enqueue_stream_deck(self, writer: ArchiveWriter, folder: str, files: Sequence[StreamDeckFile]) -> bool:
        for f in files:
            if self.is_stopped():
                return False
            name = PurePath(f.path.replace("\\", "/")).name
            writer.add_file(f"{folder}/{name}", f.path)
        return True

    def to_archive(self, target_path: str, request: Optional[ExportRequest] = None) -> OperationResult:
        """Packages the rewritten collection, manifest and assets into target_path."""
        if self.collection is None:
            return self._fail("NOTHING_TO_EXPORT", "No collection loaded; call from_collection() first")
        request = request or ExportRequest()

        self._set_state(BundleState.PACKAGING)
        self.manifest = build_manifest(
            canvas=self.host.canvas_size(),
            version=request.version,
            plugins=request.plugins,
            third_party=request.third_party,
            output_scenes=request.output_scenes,
            video_devices=request.video_device_descriptions or self.rewriter.video_devices,
            stream_deck_actions=request.stream_deck_actions,
            stream_deck_profiles=request.stream_deck_profiles,
        )

        writer = ArchiveWriter(
            chunk_size=self.settings.chunk_size,
            on_file_progress=self.on_file_progress,
            on_overall_progress=self.on_overall_progress,
            is_cancelled=self.is_stopped,
        )
        writer.add_string(MANIFEST_NAME, self.manifest.to_json())
        writer.add_string(COLLECTION_NAME, json.dumps(self.collection, indent=2, ensure_ascii=False))

        try:
            queued = (
                self._enqueue_assets(writer)
                and self._enqueue_stream_deck(writer, STREAM_DECK_ACTIONS_DIR, request.stream_deck_actions)
                and self._enqueue_stream_deck(writer, STREAM_DECK_PROFILES_DIR, request.stream_deck_profiles)
            )
        except OSError as e:
            return self._fail("ASSET_SCAN_FAILED", f"Cannot list asset folder: {e}")
        if not queued:
            return self._stopped()

        ok = writer.write(target_path)
        self.issues.extend(writer.issues)
        if ok:
            self._set_state(BundleState.DONE)
            logger.info("Bundle exported: %s", target_path)
            return OperationResult.SUCCESS
        if writer.cancelled:
            return self._stopped()
        self._set_state(BundleState.ERROR)
        return OperationResult.ERROR

    def export_bundle(self, target_path: str, request: Optional[ExportRequest] = None) -> OperationResult:
        if not self._begin():
            return OperationResult.ERROR
        try:
            result = self.from_collection()
            if result != OperationResult.SUCCESS:
                return result
            return self.to_archive(target_path, request)
        finally:
            self._busy.release()

    # -------------------------
    # Import
    # -------------------------
    def _check_entries(self, reader: ArchiveReader) -> str:
        """Returns the manifest entry name; raises BundleError for an unusable archive."""
        name = manifest_entry_name(reader)
        if name is None:
            raise BundleError(f"{reader.path} has no {MANIFEST_NAME}")
        if not reader.contains(COLLECTION_NAME):
            raise BundleError(f"{reader.path} has no {COLLECTION_NAME}")
        unsafe = reader.unsafe_entries()
        if unsafe:
            raise UnsafeEntryError(unsafe[0])
        return name

    def from_archive(self, archive_path: str, destination: str) -> OperationResult:
        """Extracts a bundle into destination, replacing whatever was there."""
        self._set_state(BundleState.EXTRACTING)
        self.manifest = None
        self.pack_path = None

        with ArchiveReader(
            chunk_size=self.settings.chunk_size,
            on_file_progress=self.on_file_progress,
            on_overall_progress=self.on_overall_progress,
            is_cancelled=self.is_stopped,
        ) as reader:
            if not reader.open(archive_path):
                self.issues.extend(reader.issues)
                self._set_state(BundleState.ERROR)
                return OperationResult.INVALID_BUNDLE

            try:
                manifest_name = self._check_entries(reader)
            except BundleError as e:
                self.issues.append(BundleIssue("ERROR", "INVALID_BUNDLE", str(e), archive_path))
                logger.error("Invalid bundle: %s", e)
                self._set_state(BundleState.ERROR)
                return OperationResult.INVALID_BUNDLE

            text = reader.read_text(manifest_name)
            try:
                manifest = BundleManifest.from_json(text or "")
            except (ValueError, TypeError, AttributeError) as e:
                self.issues.extend(reader.issues)
                return self._fail("MANIFEST_INVALID", f"Invalid manifest in {archive_path}: {e}", manifest_name)

            try:
                Path(destination).mkdir(parents=True, exist_ok=True)
                clear_dir(destination)
            except OSError as e:
                return self._fail("DEST_PREPARE_FAILED", f"Cannot prepare {destination}: {e}", destination)

            ok = reader.extract_all(destination)
            self.issues.extend(reader.issues)
            if not ok:
                if reader.cancelled:
                    return self._stopped()
                self._set_state(BundleState.ERROR)
                return OperationResult.ERROR

        self.manifest = manifest
        self.pack_path = str(Path(destination).resolve()).replace("\\", "/")
        logger.info("Bundle extracted: %s -> %s", archive_path, self.pack_path)
        return OperationResult.SUCCESS

    def backup_current_collection(self) -> str:
        """Copies the active collection file into the backup folder and returns the copy's path."""
        src = self.host.collection_file()
        dst = Path(self.settings.backup_dir) / Path(src).name
        copy_file_safe(src, str(dst))
        logger.info("Current collection backed up to %s", dst)
        return str(dst)

    def to_collection(
        self,
        name: str,
        video_settings: SettingsArg = None,
        audio_settings: SettingsArg = None,
    ) -> OperationResult:
        """
        Resolves placeholders in the extracted collection and installs it as a
        new host collection called name.
        video_settings maps source uuid -> device settings object.
        """
        if self.pack_path is None or self.manifest is None:
            return self._fail("NOTHING_TO_IMPORT", "No bundle extracted; call from_archive() first")

        self._set_state(BundleState.REWRITING)
        collection_path = os.path.join(self.pack_path, COLLECTION_NAME)
        try:
            with open(collection_path, "r", encoding="utf-8") as f:
                document = json.load(f)
            video = _parse_settings_arg(video_settings)
            audio = _parse_settings_arg(audio_settings)
        except OSError as e:
            return self._fail("COLLECTION_READ_FAILED", f"Cannot read {collection_path}: {e}", COLLECTION_NAME)
        except ValueError as e:
            return self._fail("COLLECTION_PARSE_FAILED", f"Invalid JSON while importing: {e}", COLLECTION_NAME)

        if not isinstance(document, dict):
            return self._fail("COLLECTION_PARSE_FAILED", "Bundled collection is not a JSON object", COLLECTION_NAME)
        if video is not None and not isinstance(video, dict):
            return self._fail("DEVICE_SETTINGS_INVALID", "Video device settings must be a JSON object")

        resolver = PlaceholderResolver(
            self.pack_path,
            video_settings=video,
            audio_settings=audio,
            video_source_ids=self.settings.video_source_ids,
            audio_source_ids=self.settings.audio_source_ids,
        )
        resolver.resolve(document)

        modules = document.get("modules")
        if not isinstance(modules, dict):
            modules = {}
            document["modules"] = modules
        modules[MODULE_KEY] = module_info(self.manifest, self.pack_path)

        if self.is_stopped():
            return self._stopped()

        self._set_state(BundleState.SWITCHING_COLLECTION)
        try:
            self.backup_current_collection()
            CollectionSwitcher(self.host, self.settings.handshake_timeout).install(name, document)
        except BundleError as e:
            return self._fail("HANDSHAKE_FAILED", f"Collection switch failed: {e}")
        except OSError as e:
            return self._fail("INSTALL_FAILED", f"Cannot install collection: {e}")

        self._set_state(BundleState.DONE)
        logger.info("Bundle imported as collection %s", name)
        return OperationResult.SUCCESS

    def import_bundle(
        self,
        archive_path: str,
        destination: str,
        name: str,
        video_settings: SettingsArg = None,
        audio_settings: SettingsArg = None,
    ) -> OperationResult:
        if not self._begin():
            return OperationResult.ERROR
        try:
            result = self.from_archive(archive_path, destination)
            if result != OperationResult.SUCCESS:
                return result
            return self.to_collection(name, video_settings, audio_settings)
        finally:
            self._busy.release()
