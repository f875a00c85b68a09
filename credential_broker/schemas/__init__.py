"""Pydantic schemas for the credential broker."""

from .connection_status_schema import ConnectionStatus, SecretInspection
from .credential_schemas import (
    AccessToken,
    CredentialProfile,
    CrmCredentials,
    ProfileResolution,
    SecretRecord,
)
from .crm_schemas import QueryResponse, TokenResponse

__all__ = [
    "AccessToken",
    "ConnectionStatus",
    "CredentialProfile",
    "CrmCredentials",
    "ProfileResolution",
    "QueryResponse",
    "SecretInspection",
    "SecretRecord",
    "TokenResponse",
]
