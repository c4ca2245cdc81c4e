from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def clear_dir(path: str) -> None:
    """
    Empties a directory without removing it.
    Symlinked sub-directories are unlinked, never followed.
    """
    root = Path(path)
    if not root.is_dir():
        return
    for child in root.iterdir():
        if child.is_symlink():
            logger.warning("Removing symlink without following it: %s", child)
            child.unlink()
        elif child.is_dir():
            shutil.rmtree(child)
        else:
            child.unlink()


def read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_json_safe(data: Any, path: str, temp_ext: str = "tmp", backup_ext: str = "bak") -> str:
    """
    Writes JSON next to path as <path>.<temp_ext>, keeps the previous file as
    <path>.<backup_ext>, then moves the new file into place.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(f"{target.name}.{temp_ext}")
    bak = target.with_name(f"{target.name}.{backup_ext}")

    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.flush()
        os.fsync(f.fileno())

    if target.exists():
        shutil.copy2(target, bak)
    os.replace(tmp, target)
    return str(target)


def copy_file_safe(src: str, dst: str) -> str:
    """Copy src over dst, replacing any existing file only once the copy is complete."""
    target = Path(dst)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + ".tmp")
    try:
        shutil.copy2(src, tmp)
        os.replace(tmp, target)
    except OSError:
        if tmp.exists():
            tmp.unlink()
        raise
    return str(target)
