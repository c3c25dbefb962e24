"""Pytest configuration and fixtures for the test suite."""

import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from tests.test_utils import FakeClock, FakeRipgrep


@pytest.fixture
def temp_workspace() -> Generator[Path, None, None]:
    """Create a temporary workspace for file operations."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def fake_rg(temp_workspace: Path) -> FakeRipgrep:
    """Provide a scripted stand-in for the ripgrep executable."""
    return FakeRipgrep(temp_workspace / "fake_rg")


@pytest.fixture
def roots(temp_workspace: Path) -> dict[str, Path]:
    """Provide two empty search roots."""
    result = {}
    for name in ("alpha", "beta"):
        root = temp_workspace / name
        root.mkdir()
        result[name] = root
    return result


@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock that only moves when told to."""
    return FakeClock()
