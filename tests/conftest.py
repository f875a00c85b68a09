"""
Shared test fixtures.

Provides an in-memory SQLite database for the connection status repository
and resets the process-wide configuration and logger between tests.
"""

import pytest
from sqlalchemy.orm import Session

from credential_broker.config import reset_config
from credential_broker.db import DatabaseManager, get_development_config, init_db
from credential_broker.db.db_config import Base
from credential_broker.exceptions import clear_correlation_id
from credential_broker.utils.logger import reset_logging


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset global configuration, logger and correlation id around each test."""
    reset_config()
    reset_logging()
    clear_correlation_id()
    yield
    reset_config()
    reset_logging()
    clear_correlation_id()


@pytest.fixture(scope="session")
def db_manager() -> DatabaseManager:
    """Create and initialize an in-memory database manager."""
    manager = DatabaseManager(get_development_config())
    init_db(manager)
    yield manager
    manager.close()


@pytest.fixture(scope="function")
def db_session(db_manager: DatabaseManager) -> Session:
    """
    Create a database session for each test.

    Tables are created before and dropped after every test so each test
    starts from an empty database.
    """
    Base.metadata.create_all(db_manager.engine)
    session = db_manager.get_session()

    yield session

    session.rollback()
    db_manager.close_session()
    Base.metadata.drop_all(db_manager.engine)


@pytest.fixture
def sample_workspace_id() -> str:
    """Standard workspace ID for testing."""
    return "test-workspace-123"
