from typing import Any, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import DatabaseConfig, get_config
from ..exceptions import ErrorCode, ServiceError
from ..utils import get_logger

# Base class for all SQLAlchemy models
Base: Any = declarative_base()


class DatabaseManager:
    """
    Database connection manager driven by the DatabaseConfig section.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.engine = self._create_engine()
        self.session_factory = sessionmaker(bind=self.engine)
        self.scoped_session = scoped_session(self.session_factory)

    def _create_engine(self):
        connection_string = self.config.connection_string
        if connection_string.startswith("sqlite"):
            connect_args = {"check_same_thread": False}
            if ":memory:" in connection_string or connection_string == "sqlite://":
                # Every session must see the same in-memory database
                return create_engine(
                    connection_string,
                    echo=self.config.echo,
                    connect_args=connect_args,
                    poolclass=StaticPool,
                )
            return create_engine(connection_string, echo=self.config.echo, connect_args=connect_args)
        return create_engine(connection_string, echo=self.config.echo)

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        Base.metadata.drop_all(self.engine)

    def get_session(self) -> Session:
        return self.scoped_session()

    def close_session(self, session: Optional[Session] = None) -> None:
        if session:
            session.close()
        else:
            self.scoped_session.remove()

    def close(self) -> None:
        self.scoped_session.remove()
        self.engine.dispose()


def get_development_config() -> DatabaseConfig:
    """
    Get in-memory SQLite configuration for development and tests.
    """
    return DatabaseConfig(connection_string="sqlite:///:memory:")


def import_all_models():
    """Import all models to ensure they're registered with SQLAlchemy metadata."""
    from sqlalchemy.orm import configure_mappers

    from .db_connection_status_models import ConnectionStatusRecord  # noqa

    configure_mappers()


def init_db(db_manager: DatabaseManager) -> None:
    """
    Initialize the database, creating all tables.

    Args:
        db_manager: DatabaseManager instance to use for table creation
    """
    get_logger().info("Initializing connection status storage")
    import_all_models()
    db_manager.create_tables()


# Global database manager instance
_db_manager: Optional[DatabaseManager] = None


def initialize_db(config: Optional[DatabaseConfig] = None) -> DatabaseManager:
    """
    Create the global database manager and its tables.

    Args:
        config: Database configuration (default: AppConfig.database)
    """
    global _db_manager
    _db_manager = DatabaseManager(config or get_config().database)
    init_db(_db_manager)
    return _db_manager


def get_db_manager() -> DatabaseManager:
    """
    Get the global database manager instance.

    Raises:
        ServiceError: If no database manager has been initialized
    """
    if _db_manager is None:
        raise ServiceError(
            "Database manager not initialized. Call initialize_db() first.",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            operation="get_db_manager",
        )
    return _db_manager
