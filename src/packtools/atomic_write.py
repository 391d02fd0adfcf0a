"""Atomic text and JSON writes with fsync."""

from __future__ import annotations

import json
import os
import uuid
from pathlib import Path
from typing import Any


def atomic_write_text(final_path: Path, content: str, *, temp_prefix: str) -> None:
    """Write text to final_path atomically: temp -> fsync -> rename -> fsync dir.

    The temp file is created next to the destination so the rename is atomic.
    On failure the temp file is removed and the error propagates.

    Args:
        final_path: Destination path.
        content: UTF-8 text to write.
        temp_prefix: Prefix for the temp filename, e.g. "dashboard".
    """
    directory = final_path.parent
    directory.mkdir(parents=True, exist_ok=True)
    temp_path = directory / f".{temp_prefix}.{os.getpid()}.{uuid.uuid4().hex[:8]}.tmp"
    try:
        fd = os.open(str(temp_path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
        try:
            os.write(fd, content.encode("utf-8"))
            os.fsync(fd)
        finally:
            os.close(fd)
        os.replace(temp_path, final_path)
        try:
            dir_fd = os.open(str(directory), os.O_RDONLY)
            try:
                os.fsync(dir_fd)
            finally:
                os.close(dir_fd)
        except OSError:
            pass  # directory fsync unsupported on some platforms
    finally:
        temp_path.unlink(missing_ok=True)


def atomic_write_json(final_path: Path, data: Any, *, temp_prefix: str) -> None:
    """Write JSON-serializable data atomically with stable indentation.

    Args:
        final_path: Destination path.
        data: JSON-serializable payload.
        temp_prefix: Prefix for the temp filename.
    """
    atomic_write_text(
        final_path, json.dumps(data, indent=2) + "\n", temp_prefix=temp_prefix
    )
