"""
HTTP client for the CRM backend (Salesforce).

Covers the OAuth2 password-grant token endpoint, the SOQL query endpoint and
a health probe. Failures are raised as CrmRequestError with messages worded
so that the token broker's failure classifier can route them: rejected
grants carry their CRM error code, transport failures mention the network.
"""

import json
from typing import Any, Optional, Tuple

import httpx
from pydantic import ValidationError

from ..config import CrmConfig
from ..exceptions import CrmRequestError
from ..schemas.credential_schemas import CrmCredentials
from ..schemas.crm_schemas import QueryResponse, TokenResponse
from ..utils.logger import get_logger

INVALID_GRANT_MESSAGE = (
    "Invalid CRM credentials. Please check:\n"
    "- Username and password are correct\n"
    "- Security token is appended to password (if required)\n"
    "- IP restrictions allow access from your location\n"
    "- Connected app is properly configured"
)


def _error_fields(text: str) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(error_code, description)`` from a CRM error body."""
    try:
        body: Any = json.loads(text) if text else {}
    except ValueError:
        return None, text

    if isinstance(body, list):
        body = body[0] if body and isinstance(body[0], dict) else {}
    if not isinstance(body, dict):
        return None, text

    error = body.get("error") or body.get("errorCode")
    description = body.get("error_description") or body.get("message")
    return error, description


def parse_error_response(text: str) -> str:
    """
    Turn a CRM error body into a readable message.

    The body may be a JSON object or a JSON array of objects, using either the
    OAuth ``error``/``error_description`` keys or the REST
    ``errorCode``/``message`` keys. Anything unparsable is reported verbatim.
    """
    error, description = _error_fields(text)
    if error == "invalid_grant":
        return INVALID_GRANT_MESSAGE
    return f"CRM error: {description or error or 'unknown'}"


class CrmClient:
    """Async CRM client built on httpx."""

    def __init__(self, config: Optional[CrmConfig] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config or CrmConfig()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self.config.request_timeout)
        self.logger = get_logger()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    @staticmethod
    def _transport_error(action: str, error: httpx.TransportError) -> CrmRequestError:
        if isinstance(error, httpx.TimeoutException):
            message = f"{action} timed out: {type(error).__name__}"
        else:
            message = f"{action} failed with a network connection error: {type(error).__name__} {str(error)}"
        return CrmRequestError(message, cause=error)

    async def request_token(self, credentials: CrmCredentials) -> TokenResponse:
        """
        Exchange credentials for an access token.

        Raises:
            CrmRequestError: On a rejected grant, transport failure or malformed response
        """
        form = {
            "grant_type": "password",
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "username": credentials.username,
            "password": credentials.full_password,
        }

        try:
            response = await self._client.post(self.config.auth_url, data=form)
        except httpx.TransportError as e:
            raise self._transport_error("CRM token request", e)

        if not response.is_success:
            error_code, _ = _error_fields(response.text)
            detail = parse_error_response(response.text)
            self.logger.warning(
                "CRM token request rejected",
                extra={"http_status": response.status_code, "username": credentials.username},
            )
            # Classification reads the error code, e.g. invalid_grant
            status = f"{response.status_code} {response.reason_phrase}"
            if error_code:
                status = f"{status} ({error_code})"
            raise CrmRequestError(
                f"CRM token request failed: {status}. {detail}",
                http_status=response.status_code,
            )

        try:
            token = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise CrmRequestError(
                "Malformed token response from CRM: expected a JSON object with access_token",
                http_status=response.status_code,
                cause=e,
            )

        self.logger.info(
            "CRM access token issued", extra={"instance_url": token.instance_url}
        )
        return token

    async def query(self, soql: str, access_token: str) -> QueryResponse:
        """
        Run a SOQL query.

        Raises:
            CrmRequestError: On a non-2xx response or transport failure;
                ``http_status`` is 401 when the token was rejected
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            response = await self._client.get(
                self.config.query_url, params={"q": soql}, headers=headers
            )
        except httpx.TransportError as e:
            raise self._transport_error("CRM query", e)

        if not response.is_success:
            raise CrmRequestError(
                f"Query failed: {response.status_code} {response.reason_phrase}. "
                f"{parse_error_response(response.text)}",
                http_status=response.status_code,
            )

        try:
            return QueryResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise CrmRequestError(
                "Malformed query response from CRM", http_status=response.status_code, cause=e
            )

    async def check_health(self, url: Optional[str] = None) -> bool:
        """
        Probe a health endpoint with the configured short timeout.

        Never raises; any failure, including a timeout, returns False.
        """
        target = url or self.config.health_url or self.config.base_url
        try:
            response = await self._client.get(
                target, timeout=self.config.health_check_timeout
            )
        except httpx.HTTPError as e:
            self.logger.warning(
                "CRM health check failed", extra={"url": target, "error": str(e)}
            )
            return False
        return response.status_code < 500
