import logging
from datetime import datetime, timezone

import pytest

from mneme.application.review_service import ReviewService
from mneme.infrastructure.adapters.memory_store import InMemoryCardStore


@pytest.fixture
def t0() -> datetime:
    return datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def memory_store():
    return InMemoryCardStore()


@pytest.fixture
def service(memory_store, t0):
    return ReviewService(memory_store, clock=lambda: t0)


@pytest.fixture
def mock_vault(tmp_path):
    """Creates a temporary directory structure mimicking a vault."""
    d = tmp_path / "MyVault"
    d.mkdir()
    return d


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    for var in ("MNEME_DATA_FILE", "MNEME_VAULT_ROOT", "MNEME_STORE", "MNEME_RANDOMIZE",
                "MNEME_HOST", "MNEME_PORT", "MNEME_VERBOSE", "MNEME_LOG_DIR"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture(autouse=True)
def reset_mneme_logger():
    """Drops handlers and level set by logging setup during a test."""
    yield
    logger = logging.getLogger("mneme")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
