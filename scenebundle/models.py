from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class BundleIssue:
    level: str  # INFO | WARNING | ERROR
    code: str   # stable short identifier (e.g. ENTRY_MISSING)
    message: str
    relpath: Optional[str] = None  # archive entry or asset path when applicable


@dataclass(frozen=True)
class SkippedFilterRecord:
    source_name: str
    filter_name: str


@dataclass(frozen=True)
class PendingArchiveEntry:
    internal_name: str              # forward slashes; trailing "/" marks a directory
    source_path: Optional[str] = None
    data: Optional[bytes] = None

    @property
    def is_file(self) -> bool:
        return self.source_path is not None

    @property
    def is_directory(self) -> bool:
        return self.internal_name.endswith("/")


@dataclass(frozen=True)
class StreamDeckFile:
    path: str
    label: str


class OperationResult(Enum):
    SUCCESS = "success"
    CANCELLED = "cancelled"
    CALLER_DESTROYED = "caller_destroyed"
    INVALID_BUNDLE = "invalid_bundle"
    ERROR = "error"


class BundleState(Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    REWRITING = "rewriting"
    PACKAGING = "packaging"
    EXTRACTING = "extracting"
    SWITCHING_COLLECTION = "switching_collection"
    DONE = "done"
    CANCELLED = "cancelled"
    ERROR = "error"
