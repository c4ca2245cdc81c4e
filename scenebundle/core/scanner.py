from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List


@dataclass(frozen=True)
class ScanFile:
    path: str           # full path
    relpath: str        # relative to scan root, forward slashes
    name: str
    size_bytes: int


def scan_folder(root: str, recursive: bool = False, follow_symlinks: bool = False) -> List[ScanFile]:
    """
    List regular files under root, sorted by relpath.
    With recursive=False only the files directly inside root are returned.
    """
    root_path = Path(root)
    if not root_path.is_dir():
        raise NotADirectoryError(f"Scan root is not a directory: {root}")

    files: List[ScanFile] = []
    for dirpath, dirnames, filenames in os.walk(root_path, followlinks=follow_symlinks):
        if not recursive:
            # stop os.walk from descending
            dirnames[:] = []
        for fn in filenames:
            full = Path(dirpath) / fn
            if not full.is_file():
                continue
            rel = str(full.relative_to(root_path)).replace("\\", "/")
            files.append(
                ScanFile(
                    path=str(full),
                    relpath=rel,
                    name=fn,
                    size_bytes=int(full.stat().st_size),
                )
            )

    files.sort(key=lambda f: f.relpath)
    return files
