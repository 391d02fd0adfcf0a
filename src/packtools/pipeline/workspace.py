"""Scoped temporary working directories for packaging runs."""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

_LOGGER = logging.getLogger(__name__)

_TEMP_PREFIX = "packtools-"


@contextmanager
def temporary_directory(root: Path | None = None) -> Iterator[Path]:
    """Create a run-unique directory and remove it on every exit path.

    Args:
        root: Optional parent directory; defaults to the system temp dir.

    Yields:
        Path of the created directory.
    """
    if root is not None:
        root.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=_TEMP_PREFIX, dir=root))
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            _LOGGER.debug("could not remove working directory %s: %s", path, exc)
