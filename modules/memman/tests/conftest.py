"""Shared fixtures for all test modules."""

import pytest

from memman.config import load_config
from memman.datastore.memorydb.repository import MemoryRepository


@pytest.fixture
def repo(tmp_path):
    """A MemoryRepository over a fresh database file."""
    repository = MemoryRepository(tmp_path / "db" / "memory.db")
    yield repository
    repository.close()


@pytest.fixture
def memman_home(tmp_path, monkeypatch):
    """Isolated config home; no API key leaks in from the environment."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("MEMMAN_HOME", str(home))
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    return home


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def config(memman_home, project):
    return load_config(project, environ={"MEMMAN_HOME": str(memman_home)})
