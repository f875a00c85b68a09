"""
SQLAlchemy models and database management for connection status storage.
"""

from .db_base import TimestampMixin, ensure_utc, utc_now
from .db_config import (
    Base,
    DatabaseManager,
    get_db_manager,
    get_development_config,
    import_all_models,
    init_db,
    initialize_db,
)
from .db_connection_status_models import ConnectionStatusRecord

__all__ = [
    # Base definitions
    "Base",
    "TimestampMixin",
    "ensure_utc",
    "utc_now",
    # Configuration
    "DatabaseManager",
    "get_db_manager",
    "get_development_config",
    "import_all_models",
    "init_db",
    "initialize_db",
    # Models
    "ConnectionStatusRecord",
]
