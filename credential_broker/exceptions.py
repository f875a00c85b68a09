"""
Consolidated exception system with error codes, context, and correlation support.

This module provides the exception hierarchy for the credential broker, with
automatic logging and correlation ID tracking. Every error a caller can see
carries a ``remediation`` string so user-facing layers can show a specific
next step instead of a generic failure message.
"""

import threading
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .constants import FailureKind

_thread_local = threading.local()


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # System errors (1xxx)
    INTERNAL_ERROR = "1000"
    DATABASE_ERROR = "1001"
    CONNECTION_ERROR = "1002"
    CONFIGURATION_ERROR = "1003"

    # Validation errors (2xxx)
    VALIDATION_FAILED = "2000"
    MISSING_REQUIRED = "2002"

    # Resource errors (3xxx)
    NOT_FOUND = "3000"
    EXPIRED = "3004"

    # Business logic errors (4xxx)
    PRECONDITION_FAILED = "4004"
    AUTHENTICATION_FAILED = "4005"

    # External service errors (5xxx)
    EXTERNAL_API_ERROR = "5002"


class BaseError(Exception):
    """Base exception with context, error codes, logging, and error chaining."""

    remediation: str = "Check the logs for details."

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        cause: Optional[Exception] = None,
        **context: Any,
    ):
        """
        Initialize base error with rich context.

        Args:
            message: Human-readable error message
            error_code: Standardized error code from ErrorCode enum
            status_code: HTTP-style status code used to pick the log level
            cause: Original exception that caused this error
            **context: Additional context information
        """
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.error_id = str(uuid.uuid4())
        self.context = context

        correlation_id = get_correlation_id()
        if correlation_id:
            self.context["correlation_id"] = correlation_id

        self.context["error_id"] = self.error_id

        if cause:
            self.context["cause"] = {
                "type": type(cause).__name__,
                "message": str(cause),
                "traceback": traceback.format_exception(type(cause), cause, cause.__traceback__),
            }

        self._log_error()

        super().__init__(message)

    def _log_error(self) -> None:
        """Log error with appropriate level based on status code."""
        # Lazy import: the logger module reads configuration at import time
        from .utils.logger import get_logger

        logger = get_logger()

        log_data = {
            "error_id": self.error_id,
            "error_code": self.error_code.value,
            "status_code": self.status_code,
            "error_message": self.message,
            "timestamp": self.timestamp,
            "context": {k: v for k, v in self.context.items() if k not in ["cause", "traceback"]},
        }

        if "correlation_id" in self.context:
            log_data["correlation_id"] = self.context["correlation_id"]

        if self.status_code >= 500:
            logger.error(
                f"Error {self.error_code}: {self.message}", extra=log_data, exc_info=self.cause
            )
        elif self.status_code >= 400:
            logger.warning(f"Client error {self.error_code}: {self.message}", extra=log_data)
        else:
            logger.info(f"Error {self.error_code}: {self.message}", extra=log_data)

    def to_dict(
        self, include_cause: bool = False, include_traceback: bool = False
    ) -> Dict[str, Any]:
        """
        Convert to a dict suitable for JSON serialization.

        Args:
            include_cause: Include cause information (useful for debugging)
            include_traceback: Include full traceback (only in debug mode)
        """
        result: Dict[str, Any] = {
            "error": {
                "id": self.error_id,
                "code": self.error_code.value,
                "message": self.message,
                "remediation": self.remediation,
                "timestamp": self.timestamp,
                "context": {
                    k: v
                    for k, v in self.context.items()
                    if k not in ["cause", "error_id", "correlation_id"]
                },
            }
        }

        if "correlation_id" in self.context:
            result["error"]["correlation_id"] = self.context["correlation_id"]

        if include_cause and "cause" in self.context:
            result["error"]["cause"] = {
                "type": self.context["cause"]["type"],
                "message": self.context["cause"]["message"],
            }
            if include_traceback:
                result["error"]["cause"]["traceback"] = self.context["cause"]["traceback"]

        return result

    def add_context(self, **kwargs: Any) -> "BaseError":
        """Add additional context to the error (fluent interface)."""
        self.context.update(kwargs)
        return self

    @property
    def error_chain(self) -> List[Exception]:
        """Get the full chain of errors."""
        chain: List[Exception] = [self]
        current = self.cause
        while current:
            chain.append(current)
            current = getattr(current, "cause", None)
        return chain


# Layer-specific base exceptions
class RepositoryError(BaseError):
    """Persistence layer errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATABASE_ERROR,
        status_code: int = 500,
        cause: Optional[Exception] = None,
        **context,
    ):
        super().__init__(message, error_code, status_code, cause, **context)


class ServiceError(BaseError):
    """Service layer errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        operation: Optional[str] = None,
        cause: Optional[Exception] = None,
        **context,
    ):
        if operation:
            context["operation"] = operation
        super().__init__(message, error_code, 500, cause, **context)


class ExternalServiceError(BaseError):
    """External service integration errors."""

    def __init__(
        self,
        message: str,
        service_name: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_API_ERROR,
        status_code: int = 502,
        cause: Optional[Exception] = None,
        **context,
    ):
        context["service_name"] = service_name
        super().__init__(message, error_code, status_code, cause, **context)


class CommandFailedError(ExternalServiceError):
    """Raised when a CLI invocation exits non-zero or cannot be run."""

    def __init__(
        self,
        message: str,
        command: Sequence[str] = (),
        returncode: Optional[int] = None,
        cause: Optional[Exception] = None,
        **context,
    ):
        self.command = list(command)
        self.returncode = returncode
        super().__init__(
            message,
            service_name="aws-cli",
            status_code=424,
            cause=cause,
            command=" ".join(self.command),
            returncode=returncode,
            **context,
        )


class CrmRequestError(ExternalServiceError):
    """Raised by the CRM client for failed HTTP exchanges."""

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        cause: Optional[Exception] = None,
        **context,
    ):
        self.http_status = http_status
        super().__init__(
            message,
            service_name="crm",
            status_code=424,
            cause=cause,
            http_status=http_status,
            **context,
        )


# ==================== CONNECTION ERRORS ====================


class ToolMissingError(BaseError):
    """Raised when the cloud CLI is not installed or not on PATH."""

    remediation = "Install the AWS CLI from https://aws.amazon.com/cli/ and make sure it is on PATH."

    def __init__(self, message: str = "AWS CLI is not installed", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.CONFIGURATION_ERROR, status_code=500, **kwargs
        )


class CredentialsMissingError(BaseError):
    """Raised when none of the candidate profiles can authenticate."""

    remediation = (
        "Configure your CLI profile: run 'aws configure' (or 'aws configure --profile <name>') "
        "and set the profile name in the broker configuration."
    )

    def __init__(self, message: Optional[str] = None, tried: Sequence[str] = (), **kwargs):
        self.tried = list(tried)
        if message is None:
            tried_text = ", ".join(f"[{p}]" for p in self.tried) or "none"
            message = f"No usable AWS profile found. Tried: {tried_text}"
        super().__init__(
            message=message,
            error_code=ErrorCode.MISSING_REQUIRED,
            status_code=401,
            tried=self.tried,
            **kwargs,
        )


class ExpiredSessionError(BaseError):
    """Raised when the cached SSO/STS session token has expired."""

    remediation = (
        "Refresh your session: run 'duo-auth' or re-authenticate through your SSO portal. "
        "Static-credential users can run 'aws configure' to update their keys."
    )

    def __init__(self, message: str = "AWS session token expired", **kwargs):
        super().__init__(message=message, error_code=ErrorCode.EXPIRED, status_code=401, **kwargs)


# ==================== SECRET ERRORS ====================


class SecretLookupError(BaseError):
    """Base class for failures to obtain a trusted credential secret."""


class SecretNotFoundError(SecretLookupError):
    """Raised when no visible secret matches the configured name or keywords."""

    remediation = (
        "Set the secret name (SALESFORCE_SECRET_NAME) to one of the available secrets, "
        "or create a secret with the configured name."
    )

    def __init__(
        self,
        configured_name: str,
        keywords: Sequence[str] = (),
        available: Sequence[str] = (),
        message: Optional[str] = None,
        **kwargs,
    ):
        self.configured_name = configured_name
        self.keywords = list(keywords)
        self.available = list(available)
        if message is None:
            message = (
                f"No secret found matching '{configured_name}'"
                f" (keywords: {', '.join(self.keywords) or 'none'})."
                f" Available secrets: {', '.join(self.available) or 'None'}"
            )
        super().__init__(
            message=message,
            error_code=ErrorCode.NOT_FOUND,
            status_code=404,
            configured_name=configured_name,
            keywords=self.keywords,
            available=self.available,
            **kwargs,
        )


class SecretSchemaError(SecretLookupError):
    """Raised when the matched secret lacks required fields or cannot be parsed."""

    def __init__(
        self,
        secret_name: str,
        missing: Sequence[str] = (),
        present: Sequence[str] = (),
        reason: Optional[str] = None,
        **kwargs,
    ):
        self.secret_name = secret_name
        self.missing = list(missing)
        self.present = list(present)
        self.reason = reason
        if reason:
            message = f"Secret '{secret_name}' is not a valid credential record: {reason}"
        else:
            message = (
                f"Secret '{secret_name}' is missing required fields: {', '.join(self.missing)}."
                f" Found fields: {', '.join(self.present) or 'none'}"
            )
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_FAILED,
            status_code=422,
            secret_name=secret_name,
            missing=self.missing,
            present=self.present,
            **kwargs,
        )

    @property
    def remediation(self) -> str:  # type: ignore[override]
        if self.missing:
            return f"Add the missing fields to the secret: {', '.join(self.missing)}."
        return "Fix the secret payload so it is a JSON object with the required fields."


# ==================== TOKEN ERRORS ====================


class TokenAcquisitionError(BaseError):
    """Raised when an access token cannot be obtained from the CRM backend."""

    failure_kind: FailureKind = FailureKind.OTHER

    def __init__(
        self,
        last_cause: str,
        attempts: int,
        error_code: ErrorCode = ErrorCode.EXTERNAL_API_ERROR,
        status_code: int = 502,
        cause: Optional[Exception] = None,
        **kwargs,
    ):
        self.attempts = attempts
        self.last_cause = last_cause
        super().__init__(
            message=f"Failed to obtain CRM access token after {attempts} attempt(s): {last_cause}",
            error_code=error_code,
            status_code=status_code,
            cause=cause,
            attempts=attempts,
            failure_kind=self.failure_kind.value,
            **kwargs,
        )


class AuthError(TokenAcquisitionError):
    """The CRM backend rejected the credentials."""

    failure_kind = FailureKind.AUTH
    remediation = (
        "Check the CRM credentials in the secret: username and password are correct, the "
        "security token is appended if required, IP restrictions allow access and the "
        "connected app is configured."
    )

    def __init__(self, last_cause: str, attempts: int, **kwargs):
        super().__init__(
            last_cause,
            attempts,
            error_code=ErrorCode.AUTHENTICATION_FAILED,
            status_code=401,
            **kwargs,
        )


class NetworkError(TokenAcquisitionError):
    """The CRM backend could not be reached."""

    failure_kind = FailureKind.NETWORK
    remediation = "Check your network or VPN connection and try again."

    def __init__(self, last_cause: str, attempts: int, **kwargs):
        super().__init__(
            last_cause,
            attempts,
            error_code=ErrorCode.CONNECTION_ERROR,
            status_code=503,
            **kwargs,
        )


class OtherError(TokenAcquisitionError):
    """Any failure that is neither an auth rejection nor a transport failure."""

    failure_kind = FailureKind.OTHER
    remediation = "Inspect the underlying cause; this failure is not retried automatically."


class CredentialsUnavailableError(BaseError):
    """Raised when a token is requested but no validated credentials are held."""

    remediation = "Connect first, and make sure the CRM credential secret can be found."

    def __init__(
        self, message: str = "CRM credentials not available. Connect first.", **kwargs
    ):
        super().__init__(
            message=message, error_code=ErrorCode.PRECONDITION_FAILED, status_code=412, **kwargs
        )


# Correlation ID management
def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current thread."""
    _thread_local.correlation_id = correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the current thread's correlation ID."""
    return getattr(_thread_local, "correlation_id", None)


def clear_correlation_id() -> None:
    """Clear the current thread's correlation ID."""
    if hasattr(_thread_local, "correlation_id"):
        delattr(_thread_local, "correlation_id")
