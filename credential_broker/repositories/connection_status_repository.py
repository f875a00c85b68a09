"""
Repository for the persisted connection status.

Stores one ConnectionStatus row per workspace. This is the only state that
survives a process restart; secrets and tokens are never written here.
"""

from typing import Optional

from sqlalchemy.orm import Session

from ..constants import ConnectionState
from ..db.db_base import ensure_utc, utc_now
from ..db.db_connection_status_models import ConnectionStatusRecord
from ..exceptions import ErrorCode, RepositoryError
from ..schemas.connection_status_schema import ConnectionStatus
from ..utils.logger import get_logger


class ConnectionStatusRepository:
    """Key/value style access to the connection status of one workspace."""

    def __init__(self, session: Session, workspace_id: str):
        self.session = session
        self.workspace_id = workspace_id
        self.logger = get_logger()

    def load(self) -> Optional[ConnectionStatus]:
        """
        Load the persisted status for this workspace.

        Returns:
            The stored ConnectionStatus, or None when nothing has been saved

        Raises:
            RepositoryError: If the row cannot be read or no longer validates
        """
        try:
            record = self.session.get(ConnectionStatusRecord, self.workspace_id)
            if record is None:
                return None
            return self._to_schema(record)
        except Exception as e:
            self.logger.error(
                f"Failed to load connection status: {str(e)}",
                extra={"workspace_id": self.workspace_id, "error": str(e)},
            )
            raise RepositoryError(
                f"Failed to load connection status: {str(e)}",
                error_code=ErrorCode.DATABASE_ERROR,
                cause=e,
                workspace_id=self.workspace_id,
            )

    def save(self, status: ConnectionStatus) -> ConnectionStatus:
        """
        Insert or replace the status for this workspace.

        Raises:
            RepositoryError: If the write fails
        """
        try:
            record = self.session.get(ConnectionStatusRecord, self.workspace_id)
            if record is None:
                record = ConnectionStatusRecord(workspace_id=self.workspace_id)
                self.session.add(record)

            record.state = status.state.value
            record.account = status.account
            record.region = status.region
            record.profile = status.profile
            record.secret_access_ok = status.secret_access_ok
            record.session_expiry_estimate = status.session_expiry_estimate
            record.connected_at = status.connected_at
            record.soft_error = status.soft_error
            record.error = status.error
            record.updated_at = utc_now()

            self.session.commit()

            self.logger.info(
                "Saved connection status",
                extra={"workspace_id": self.workspace_id, "state": status.state.value},
            )
            return status

        except Exception as e:
            self.session.rollback()
            self.logger.error(
                f"Failed to save connection status: {str(e)}",
                extra={"workspace_id": self.workspace_id, "error": str(e)},
            )
            raise RepositoryError(
                f"Failed to save connection status: {str(e)}",
                error_code=ErrorCode.DATABASE_ERROR,
                cause=e,
                workspace_id=self.workspace_id,
            )

    def clear(self) -> bool:
        """
        Delete the stored status. Returns True if a row was removed.

        Raises:
            RepositoryError: If the delete fails
        """
        try:
            record = self.session.get(ConnectionStatusRecord, self.workspace_id)
            if record is None:
                return False
            self.session.delete(record)
            self.session.commit()
            self.logger.info(
                "Cleared connection status", extra={"workspace_id": self.workspace_id}
            )
            return True
        except Exception as e:
            self.session.rollback()
            raise RepositoryError(
                f"Failed to clear connection status: {str(e)}",
                error_code=ErrorCode.DATABASE_ERROR,
                cause=e,
                workspace_id=self.workspace_id,
            )

    @staticmethod
    def _to_schema(record: ConnectionStatusRecord) -> ConnectionStatus:
        return ConnectionStatus(
            state=ConnectionState(record.state),
            account=record.account,
            region=record.region,
            profile=record.profile,
            secret_access_ok=bool(record.secret_access_ok),
            session_expiry_estimate=ensure_utc(record.session_expiry_estimate),
            connected_at=ensure_utc(record.connected_at),
            soft_error=record.soft_error,
            error=record.error,
        )
