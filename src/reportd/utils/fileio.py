"""Atomares Schreiben von Dateien.

Schreibt immer in eine temporäre Datei im Zielverzeichnis und ersetzt
das Ziel per ``os.replace``. Leser sehen entweder die alte oder die neue
Version, nie einen halb geschriebenen Zustand.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


def atomic_write_text(path: Path, content: str) -> None:
    """Schreibt ``content`` atomar nach ``path``.

    Raises:
        OSError: Wenn Verzeichnis oder Datei nicht geschrieben werden können.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=".reportd_write_",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, str(path))
    except Exception:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise
