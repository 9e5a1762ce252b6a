"""Shared test fixtures for schedwatch."""

import pytest

from schedwatch.services.checker import AppState, Tracker
from schedwatch.services.file_store import FileStore
from schedwatch.services.persistence import DatabaseManager
from tests.helpers import FakeNotifier, FakeScraper


@pytest.fixture
def db_manager(tmp_path):
    db = DatabaseManager(str(tmp_path / "test.db"))
    yield db
    db.close()


@pytest.fixture
def store(tmp_path):
    return FileStore(str(tmp_path / "downloads"))


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def make_tracker(db_manager, store, notifier):
    """Tracker over fakes; the scraper serves the given layouts in order."""
    def factory(*layouts, state=None, **scraper_kwargs):
        scraper = FakeScraper(*layouts, **scraper_kwargs)
        return Tracker(db_manager, scraper, store, notifier, state=state or AppState.empty())
    return factory
