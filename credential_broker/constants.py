"""
Constants and enums for the credential broker.

This module centralizes the magic strings, vocabularies and defaults used
throughout the package so that classification logic and CLI invocations stay
consistent.
"""

from enum import Enum


class ConnectionState(str, Enum):
    """Lifecycle states of the cloud-account connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class FailureKind(str, Enum):
    """Routing classification for a failed token acquisition attempt."""

    AUTH = "auth"
    NETWORK = "network"
    OTHER = "other"


class ProfileFailureKind(str, Enum):
    """Classification of a failed identity probe."""

    EXPIRED_SESSION = "expired_session"
    CREDENTIALS_MISSING = "credentials_missing"


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    DATABASE_URL = "DATABASE_URL"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    DEBUG = "DEBUG"
    WORKSPACE_ID = "WORKSPACE_ID"
    AWS_PROFILE = "CREDENTIAL_BROKER_AWS_PROFILE"
    AWS_REGION = "CREDENTIAL_BROKER_AWS_REGION"
    AWS_CLI_PATH = "CREDENTIAL_BROKER_AWS_CLI"
    SECRET_NAME = "SALESFORCE_SECRET_NAME"
    CRM_AUTH_URL = "SALESFORCE_AUTH_URL"
    CRM_BASE_URL = "SALESFORCE_BASE_URL"
    CRM_API_VERSION = "SALESFORCE_API_VERSION"
    CRM_HEALTH_URL = "SALESFORCE_HEALTH_URL"


# Profiles probed after the configured one, in priority order
FALLBACK_PROFILES = ("default", "development", "dev")

# Substrings of CLI error output that indicate an expired SSO/STS session
EXPIRED_SESSION_MARKERS = (
    "ExpiredToken",
    "InvalidClientTokenId",
    "token has expired",
    "security token included in the request is expired",
)

# Failure vocabulary for token acquisition, matched case-insensitively
AUTH_FAILURE_MARKERS = (
    "invalid_grant",
    "401",
    "unauthorized",
)
NETWORK_FAILURE_MARKERS = (
    "timeout",
    "timed out",
    "econnreset",
    "enotfound",
    "fetch",
    "network",
    "connection",
)

# Keys a CRM credential secret must carry before it is trusted
REQUIRED_SECRET_FIELDS = ("client_id", "client_secret", "username", "password")

TOKEN_REQUEST_KEY = "crm_access_token"

DEFAULT_REGION = "us-east-1"
DEFAULT_SECRET_NAME = "lcp-devsecops-plugin"
DEFAULT_FALLBACK_KEYWORDS = ("salesforce", "sfdc")
DEFAULT_WORKSPACE_ID = "default"

DEFAULT_CRM_AUTH_URL = "https://test.salesforce.com/services/oauth2/token"
DEFAULT_CRM_BASE_URL = "https://test.salesforce.com"
DEFAULT_CRM_API_VERSION = "v56.0"

# Passwords longer than this are assumed to already carry the security token
SECURITY_TOKEN_EMBEDDED_LENGTH = 25

SESSION_EXPIRY_HOURS = 12
