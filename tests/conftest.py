"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest


@pytest.fixture
def working_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Temporary working directory; relative artifact and settings paths land here."""
    monkeypatch.chdir(tmp_path)
    return tmp_path
