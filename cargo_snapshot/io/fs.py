"""cargo_snapshot.io.fs

Atomic, stable filesystem writers.

Snapshot artifacts are version-controlled and compared byte-for-byte, and the
synthesized project is rebuilt on every suite run. Both go through this module
so a write interrupted mid-way never leaves a half-written file behind.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def write_text_atomic(path: Path, text: str, *, encoding: str = "utf-8") -> None:
    """Write text atomically by writing to a temp file and ``os.replace()``.

    Newlines are written verbatim (no platform translation).
    """

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f"{p.name}.", suffix=".tmp", dir=str(p.parent))
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_path, p)
    finally:
        # If os.replace fails, best-effort cleanup of the temp file.
        try:
            if tmp_path.exists():
                tmp_path.unlink()
        except OSError:
            pass


def read_text_if_exists(path: Path, *, encoding: str = "utf-8") -> Optional[str]:
    """Return file content, or ``None`` when the file does not exist."""

    p = Path(path)
    if not p.is_file():
        return None
    with p.open("r", encoding=encoding, errors="replace", newline="") as f:
        return f.read()


def remove_tree(path: Path) -> bool:
    """Remove a directory tree if present. Returns True when something was removed."""

    p = Path(path)
    if not p.exists():
        return False
    logger.debug("removing %s", p)
    shutil.rmtree(p)
    return True
