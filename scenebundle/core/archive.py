"""
Streaming zip container I/O for scene bundles.

Both directions move data in bounded chunks, report per-entry and overall
progress as fractions in [0, 1], and poll a cancellation flag at every chunk
boundary. Failures are reported as a False return plus `issues`; nothing in
this module raises for an I/O or cancellation condition.

Progress callbacks run on the thread that calls write()/extract_all().
Callers that drive a UI hand them off through a queued channel
(see scenebundle.ui.worker).
"""

from __future__ import annotations

import io
import logging
import os
import threading
import time
import zipfile
from pathlib import Path
from typing import BinaryIO, Callable, Dict, List, Optional

from scenebundle.config import CHUNK_SIZE_DEFAULT
from scenebundle.models import BundleIssue, PendingArchiveEntry

logger = logging.getLogger(__name__)

FileProgressFn = Callable[[str, float], None]
OverallProgressFn = Callable[[float], None]


class _Cancelled(Exception):
    pass


def archive_name(name: str) -> str:
    """Archive names always use forward slashes and are never rooted."""
    return name.replace("\\", "/").lstrip("/")


def is_safe_entry(name: str) -> bool:
    """
    Rejects names that would land outside an extraction root:
    absolute paths, drive letters and ".." segments.
    """
    norm = name.replace("\\", "/")
    if not norm or norm.startswith("/"):
        return False
    if len(norm) >= 2 and norm[1] == ":":
        return False
    return ".." not in norm.split("/")


def _resolve_inside(root: Path, name: str) -> Optional[Path]:
    if not is_safe_entry(name):
        return None
    target = (root / name).resolve()
    try:
        target.relative_to(root)
    except ValueError:
        return None
    return target


class _ProgressReporter:
    def __init__(
        self,
        on_file_progress: Optional[FileProgressFn],
        on_overall_progress: Optional[OverallProgressFn],
    ):
        self._file_cb = on_file_progress
        self._overall_cb = on_overall_progress
        self._last_overall = 0.0

    def file(self, name: str, fraction: float) -> None:
        if self._file_cb:
            self._file_cb(name, min(max(fraction, 0.0), 1.0))

    def overall(self, fraction: float) -> None:
        # never report a lower value than before within one operation
        fraction = min(max(fraction, self._last_overall), 1.0)
        self._last_overall = fraction
        if self._overall_cb:
            self._overall_cb(fraction)


class _ChunkSource:
    """
    Pull-based data source for one archive entry.

    The writer calls open(), then read() until it returns b"", then close().
    Each read checks for cancellation before and after touching the data and
    reports progress once per 0.1% of the entry.
    """

    def __init__(
        self,
        entry: PendingArchiveEntry,
        size: int,
        overall_offset: int,
        overall_total: int,
        reporter: _ProgressReporter,
        is_cancelled: Callable[[], bool],
    ):
        self.entry = entry
        self.size = size
        self.overall_offset = overall_offset
        self.overall_total = overall_total
        self._reporter = reporter
        self._is_cancelled = is_cancelled
        self._fh: Optional[BinaryIO] = None
        self._read_so_far = 0
        self._reported_permille = -1

    def open(self) -> None:
        if self._is_cancelled():
            raise _Cancelled()
        if self.entry.is_file:
            self._fh = open(self.entry.source_path, "rb")
        else:
            self._fh = io.BytesIO(self.entry.data or b"")

    def read(self, n: int) -> bytes:
        if self._is_cancelled():
            raise _Cancelled()

        chunk = self._fh.read(n)
        if not chunk:
            return b""

        if self._is_cancelled():
            raise _Cancelled()

        self._read_so_far += len(chunk)
        file_p = (self._read_so_far / self.size) if self.size > 0 else 1.0
        permille = int(file_p * 1000)
        if permille != self._reported_permille:
            self._reported_permille = permille
            self._reporter.file(self.entry.internal_name, file_p)
            if self.overall_total > 0:
                self._reporter.overall((self.overall_offset + self._read_so_far) / self.overall_total)
        return chunk

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        if self.size == 0:
            self._reporter.file(self.entry.internal_name, 1.0)


class ArchiveWriter:
    """
    Collects entries lazily and writes them in one pass.

    The archive is written next to the target as "<name>.part" and moved into
    place only after the last entry is finished. A failed or cancelled write
    leaves no archive at the target path, including one from an earlier run.

    Cancellation is sticky: once cancel() is called this writer will refuse
    to write.
    """

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE_DEFAULT,
        on_file_progress: Optional[FileProgressFn] = None,
        on_overall_progress: Optional[OverallProgressFn] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
        compression: int = zipfile.ZIP_DEFLATED,
    ):
        self.chunk_size = chunk_size
        self.on_file_progress = on_file_progress
        self.on_overall_progress = on_overall_progress
        self.compression = compression
        self._external_cancel = is_cancelled
        self._cancel = threading.Event()
        self._pending: List[PendingArchiveEntry] = []
        self._index: Dict[str, int] = {}

        self.issues: List[BundleIssue] = []
        self.cancelled = False

    # -------------------------
    # Queue
    # -------------------------
    def _queue(self, entry: PendingArchiveEntry) -> None:
        # a later entry with the same name replaces the earlier one
        existing = self._index.get(entry.internal_name)
        if existing is not None:
            self._pending[existing] = entry
            return
        self._index[entry.internal_name] = len(self._pending)
        self._pending.append(entry)

    def add_file(self, internal_name: str, source_path: str) -> None:
        self._queue(PendingArchiveEntry(internal_name=archive_name(internal_name), source_path=str(source_path)))

    def add_data(self, internal_name: str, data: bytes) -> None:
        self._queue(PendingArchiveEntry(internal_name=archive_name(internal_name), data=bytes(data)))

    def add_string(self, internal_name: str, text: str) -> None:
        self.add_data(internal_name, text.encode("utf-8"))

    def add_directory(self, internal_name: str) -> None:
        name = archive_name(internal_name)
        if not name.endswith("/"):
            name += "/"
        self._queue(PendingArchiveEntry(internal_name=name, data=b""))

    def pending(self) -> List[PendingArchiveEntry]:
        return list(self._pending)

    # -------------------------
    # Cancellation
    # -------------------------
    def cancel(self) -> None:
        self._cancel.set()

    def is_cancelled(self) -> bool:
        if self._cancel.is_set():
            return True
        return bool(self._external_cancel and self._external_cancel())

    # -------------------------
    # Write
    # -------------------------
    def _entry_sizes(self, entries: List[PendingArchiveEntry]) -> Optional[Dict[str, int]]:
        sizes: Dict[str, int] = {}
        for entry in entries:
            if entry.is_directory:
                sizes[entry.internal_name] = 0
            elif entry.is_file:
                try:
                    sizes[entry.internal_name] = os.stat(entry.source_path).st_size
                except OSError as e:
                    self.issues.append(
                        BundleIssue(
                            "ERROR",
                            "SRC_MISSING",
                            f"Source missing: {entry.source_path} ({e})",
                            entry.internal_name,
                        )
                    )
                    return None
            else:
                sizes[entry.internal_name] = len(entry.data or b"")
        return sizes

    def _zip_info(self, entry: PendingArchiveEntry, size: int) -> zipfile.ZipInfo:
        if entry.is_file:
            info = zipfile.ZipInfo.from_file(entry.source_path, entry.internal_name, strict_timestamps=False)
        else:
            info = zipfile.ZipInfo(entry.internal_name, date_time=time.localtime()[:6])
        info.compress_type = self.compression
        info.file_size = size
        return info

    def _stream_entry(self, zf: zipfile.ZipFile, source: _ChunkSource) -> None:
        info = self._zip_info(source.entry, source.size)
        source.open()
        try:
            with zf.open(info, "w", force_zip64=source.size > zipfile.ZIP64_LIMIT) as dst:
                while True:
                    chunk = source.read(self.chunk_size)
                    if not chunk:
                        break
                    dst.write(chunk)
        finally:
            source.close()

    def write(self, target_path: str) -> bool:
        """
        Writes every queued entry to target_path.
        Returns True on success; on failure/cancel returns False, fills
        `issues`, sets `cancelled` when applicable, and removes partial output
        along with any archive already at target_path.
        """
        self.issues = []
        self.cancelled = False

        entries = self._pending
        self._pending = []
        self._index = {}

        target = Path(target_path)
        part = target.with_name(target.name + ".part")

        sizes = self._entry_sizes(entries)
        if sizes is None:
            self._discard(target)
            return False
        total = sum(sizes.values())
        reporter = _ProgressReporter(self.on_file_progress, self.on_overall_progress)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if self.is_cancelled():
                raise _Cancelled()

            with zipfile.ZipFile(part, "w", compression=self.compression, allowZip64=True) as zf:
                written = 0
                for entry in entries:
                    if self.is_cancelled():
                        raise _Cancelled()

                    if entry.is_directory:
                        zf.writestr(zipfile.ZipInfo(entry.internal_name, date_time=time.localtime()[:6]), b"")
                        continue

                    source = _ChunkSource(
                        entry=entry,
                        size=sizes[entry.internal_name],
                        overall_offset=written,
                        overall_total=total,
                        reporter=reporter,
                        is_cancelled=self.is_cancelled,
                    )
                    self._stream_entry(zf, source)
                    written += source.size

                if self.is_cancelled():
                    raise _Cancelled()

            os.replace(part, target)
        except _Cancelled:
            self.cancelled = True
            self.issues.append(BundleIssue("WARNING", "WRITE_CANCELLED", "Archive write cancelled.", str(target)))
            self._discard(part)
            self._discard(target)
            logger.info("Archive write cancelled: %s", target)
            return False
        except (OSError, RuntimeError, zipfile.LargeZipFile, ValueError) as e:
            self.issues.append(BundleIssue("ERROR", "WRITE_FAILED", f"Archive write failed: {e}", str(target)))
            self._discard(part)
            self._discard(target)
            logger.error("Archive write failed for %s: %s", target, e)
            return False

        reporter.overall(1.0)
        logger.info("Archive written: %s (%d entries, %d bytes)", target, len(entries), total)
        return True

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove partial archive %s: %s", path, e)


class ArchiveReader:
    """Random-access reader for an existing bundle archive."""

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE_DEFAULT,
        on_file_progress: Optional[FileProgressFn] = None,
        on_overall_progress: Optional[OverallProgressFn] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ):
        self.chunk_size = chunk_size
        self.on_file_progress = on_file_progress
        self.on_overall_progress = on_overall_progress
        self._external_cancel = is_cancelled
        self._cancel = threading.Event()
        self._zf: Optional[zipfile.ZipFile] = None
        self.path: Optional[str] = None

        self.issues: List[BundleIssue] = []
        self.cancelled = False

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def cancel(self) -> None:
        self._cancel.set()

    def is_cancelled(self) -> bool:
        if self._cancel.is_set():
            return True
        return bool(self._external_cancel and self._external_cancel())

    def open(self, path: str) -> bool:
        self.close()
        try:
            self._zf = zipfile.ZipFile(path, "r")
        except (OSError, zipfile.BadZipFile) as e:
            self.issues.append(BundleIssue("ERROR", "OPEN_FAILED", f"Cannot open archive: {e}", str(path)))
            logger.error("Cannot open archive %s: %s", path, e)
            return False
        self.path = str(path)
        return True

    def close(self) -> None:
        if self._zf is not None:
            self._zf.close()
            self._zf = None

    @property
    def is_open(self) -> bool:
        return self._zf is not None

    def names(self) -> List[str]:
        if self._zf is None:
            return []
        return self._zf.namelist()

    def contains(self, name: str) -> bool:
        if self._zf is None:
            return False
        try:
            self._zf.getinfo(archive_name(name))
        except KeyError:
            return False
        return True

    def read_bytes(self, name: str) -> Optional[bytes]:
        """Reads one entry in chunks; None if missing or unreadable."""
        if self._zf is None:
            return None
        name = archive_name(name)
        try:
            info = self._zf.getinfo(name)
        except KeyError:
            self.issues.append(BundleIssue("ERROR", "ENTRY_MISSING", f"Entry not found: {name}", name))
            return None

        reporter = _ProgressReporter(self.on_file_progress, None)
        out = bytearray()
        try:
            with self._zf.open(info, "r") as src:
                while True:
                    chunk = src.read(self.chunk_size)
                    if not chunk:
                        break
                    out += chunk
                    reporter.file(name, len(out) / info.file_size if info.file_size else 1.0)
        except (OSError, zipfile.BadZipFile, EOFError) as e:
            self.issues.append(BundleIssue("ERROR", "READ_FAILED", f"Failed reading {name}: {e}", name))
            return None
        return bytes(out)

    def read_text(self, name: str) -> Optional[str]:
        data = self.read_bytes(name)
        if data is None:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            self.issues.append(BundleIssue("ERROR", "NOT_UTF8", f"Entry is not UTF-8 text: {e}", name))
            return None

    def unsafe_entries(self) -> List[str]:
        return [n for n in self.names() if not is_safe_entry(n)]

    def extract_all(self, destination: str, prefix: str = "") -> bool:
        """
        Streams every entry (or every entry whose name starts with prefix)
        under destination.
        Names ending in "/" become (empty) directories. Any name that would
        resolve outside destination fails the whole extraction up front.
        """
        self.cancelled = False
        if self._zf is None:
            self.issues.append(BundleIssue("ERROR", "NOT_OPEN", "No archive is open.", None))
            return False

        root = Path(destination).resolve()
        infos = [i for i in self._zf.infolist() if i.filename.startswith(prefix)]

        targets: Dict[str, Path] = {}
        for info in infos:
            target = _resolve_inside(root, info.filename)
            if target is None:
                self.issues.append(
                    BundleIssue("ERROR", "UNSAFE_ENTRY", f"Entry escapes destination: {info.filename}", info.filename)
                )
                logger.error("Refusing to extract %s: unsafe entry %s", self.path, info.filename)
                return False
            targets[info.filename] = target

        total = sum(i.file_size for i in infos if not i.is_dir())
        reporter = _ProgressReporter(self.on_file_progress, self.on_overall_progress)
        written = 0
        buf_target: Optional[Path] = None

        try:
            root.mkdir(parents=True, exist_ok=True)
            for info in infos:
                if self.is_cancelled():
                    raise _Cancelled()

                target = targets[info.filename]
                if info.filename.endswith("/"):
                    target.mkdir(parents=True, exist_ok=True)
                    continue

                target.parent.mkdir(parents=True, exist_ok=True)
                buf_target = target
                written_this = 0
                with self._zf.open(info, "r") as src, open(target, "wb") as dst:
                    while True:
                        if self.is_cancelled():
                            raise _Cancelled()
                        chunk = src.read(self.chunk_size)
                        if not chunk:
                            break
                        dst.write(chunk)
                        written_this += len(chunk)
                        written += len(chunk)
                        reporter.file(info.filename, written_this / info.file_size if info.file_size else 1.0)
                        reporter.overall(written / total if total else 1.0)
                if info.file_size == 0:
                    reporter.file(info.filename, 1.0)
                buf_target = None
        except _Cancelled:
            self.cancelled = True
            self.issues.append(BundleIssue("WARNING", "EXTRACT_CANCELLED", "Extraction cancelled.", None))
            self._discard(buf_target)
            return False
        except (OSError, zipfile.BadZipFile, EOFError) as e:
            self.issues.append(BundleIssue("ERROR", "EXTRACT_FAILED", f"Extraction failed: {e}", None))
            self._discard(buf_target)
            logger.error("Extraction of %s failed: %s", self.path, e)
            return False

        reporter.overall(1.0)
        return True

    @staticmethod
    def _discard(path: Optional[Path]) -> None:
        if path is None:
            return
        try:
            path.unlink()
        except OSError:
            pass
