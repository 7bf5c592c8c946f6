"""Shared pytest fixtures."""

import pytest

from booking_worker.config.models import AppConfig
from booking_worker.logging.context import clear_log_context
from booking_worker.persistence import close_database, init_database

from tests.helpers import FixedClock, RecordingGateway


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite file database per test.

    A file (not :memory:) so that worker threads share one database.
    """
    init_database(f"sqlite:///{tmp_path / 'worker.db'}")
    yield
    close_database()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def app_config():
    return AppConfig.model_validate(
        {
            "dispatch": {"max_concurrency": 3},
            "jobs": {"test_job_delay_seconds": 0},
        }
    )


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_log_context()
    yield
    clear_log_context()
