"""Test configuration for openwriter."""

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from helpers import FakeClock

from openwriter.logging_utils import JSONFormatter
from openwriter.versions import VersionStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def version_store(tmp_path: Path, clock: FakeClock) -> VersionStore:
    return VersionStore(tmp_path / ".versions", clock=clock)


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the default data directory at a temporary location."""
    data_dir = tmp_path / "data"
    monkeypatch.setenv("OPENWRITER_DATA_DIR", str(data_dir))
    return data_dir


@pytest.fixture(autouse=True)
def reset_cli_logging() -> Iterator[None]:
    """Drop the stderr handler a CLI command installs on the root logger."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler.formatter, JSONFormatter):
            root.removeHandler(handler)
    root.setLevel(logging.WARNING)
