"""
Pydantic schemas for profiles, secrets and CRM credentials.

These are in-memory values only. SecretRecord and CrmCredentials are never
persisted, and their sensitive fields are hidden from ``repr``.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import SECURITY_TOKEN_EMBEDDED_LENGTH


class CredentialProfile(BaseModel):
    """A named CLI credential profile and the region used with it."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Named CLI profile")
    region: str = Field(default="", description="Region; empty means CLI default")


class ProfileResolution(BaseModel):
    """Outcome of profile resolution."""

    model_config = ConfigDict(frozen=True)

    profile: str
    warning: bool = Field(
        default=False, description="True when a fallback replaced the first candidate"
    )
    tried: List[str] = Field(default_factory=list)


class SecretRecord(BaseModel):
    """A structured secret fetched from the secret store."""

    model_config = ConfigDict(frozen=True)

    name: str
    raw_payload: str = Field(repr=False)
    fields: Dict[str, str] = Field(default_factory=dict, repr=False)

    @property
    def field_names(self) -> List[str]:
        return list(self.fields.keys())


class CrmCredentials(BaseModel):
    """OAuth2 password-grant credentials for the CRM backend."""

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1, repr=False)
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, repr=False)
    security_token: Optional[str] = Field(default=None, repr=False)

    @field_validator("client_id", "client_secret")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("cannot be empty")
        return v

    @field_validator("username", "password", mode="before")
    @classmethod
    def decode_url_encoding(cls, v):
        """Secrets are sometimes stored URL-encoded."""
        if isinstance(v, str):
            return unquote(v)
        return v

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """CRM usernames are e-mail addresses."""
        if "@" not in v:
            raise ValueError("username must be a valid email address")
        return v

    @classmethod
    def from_secret_record(cls, record: SecretRecord) -> "CrmCredentials":
        fields = record.fields
        return cls(
            client_id=fields.get("client_id", ""),
            client_secret=fields.get("client_secret", ""),
            username=fields.get("username", ""),
            password=fields.get("password", ""),
            security_token=fields.get("security_token") or None,
        )

    @property
    def full_password(self) -> str:
        """Password with the security token appended when it is not already embedded."""
        if not self.security_token or len(self.password) > SECURITY_TOKEN_EMBEDDED_LENGTH:
            return self.password
        return self.password + self.security_token


class AccessToken(BaseModel):
    """An OAuth2 bearer token with a locally enforced lifetime."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., min_length=1, repr=False)
    issued_at: datetime
    ttl_ms: int = Field(..., gt=0)
    instance_url: Optional[str] = None
    token_type: Optional[str] = None

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(milliseconds=self.ttl_ms)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
