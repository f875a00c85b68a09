"""
Pydantic schemas for connection status and secret diagnostics.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..constants import ConnectionState


class ConnectionStatus(BaseModel):
    """
    Durable view of the cloud-account connection.

    Only the connection state machine creates new instances; everything else
    reads them.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    state: ConnectionState = ConnectionState.DISCONNECTED
    account: Optional[str] = None
    region: Optional[str] = None
    profile: Optional[str] = None
    secret_access_ok: bool = False
    session_expiry_estimate: Optional[datetime] = None
    soft_error: Optional[str] = None
    error: Optional[str] = None
    connected_at: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_connected_identity(self) -> "ConnectionStatus":
        """A connected status always names its profile and account."""
        if self.state == ConnectionState.CONNECTED and not (self.profile and self.account):
            raise ValueError("connected status requires non-empty profile and account")
        return self

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @classmethod
    def disconnected(cls) -> "ConnectionStatus":
        return cls(state=ConnectionState.DISCONNECTED)


class SecretInspection(BaseModel):
    """Non-raising diagnostic view of the configured credential secret."""

    secret_name: Optional[str] = None
    cloud_connected: bool = False
    exists: bool = False
    valid: bool = False
    missing_fields: List[str] = Field(default_factory=list)
    available_fields: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None
