"""Pytest fixtures for Cardpipe tests."""

import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from cardpipe.config import Settings
from cardpipe.database.repository import Repository
from cardpipe.database.storage import AssetStorage
from cardpipe.models.card import Card


@pytest.fixture
def temp_db_path():
    """Provide a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def repository(temp_db_path):
    """Provide a repository with a temporary database."""
    return Repository(f"sqlite:///{temp_db_path}")


@pytest.fixture
def storage(repository):
    """Provide asset storage sharing the repository database."""
    return AssetStorage(repository.session_factory)


@pytest.fixture
def settings(temp_db_path):
    """Settings pointing at the temporary database."""
    return Settings(database_path=temp_db_path, _env_file=None)


@pytest.fixture
def make_card(repository):
    """Factory that stores a card and returns it."""

    def _make_card(**fields) -> Card:
        fields.setdefault("user_id", "user-1")
        return repository.add_card(Card(**fields))

    return _make_card


@pytest.fixture
def no_retry_wait():
    """Skip tenacity backoff sleeps."""
    with patch("time.sleep"):
        yield
