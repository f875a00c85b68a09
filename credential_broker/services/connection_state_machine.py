"""
Connection lifecycle for the cloud account and the CRM credential secret.

States move DISCONNECTED -> CONNECTING -> CONNECTED or ERROR, CONNECTED ->
CONNECTING on refresh, and CONNECTED/ERROR -> DISCONNECTED on disconnect.
This class is the only writer of ConnectionStatus; every transition that
ends in a stable state is persisted through the repository.
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..config import AwsConfig, SecretConfig
from ..constants import DEFAULT_REGION, ConnectionState, ProfileFailureKind
from ..db.db_base import utc_now
from ..exceptions import (
    BaseError,
    CommandFailedError,
    CredentialsMissingError,
    ExpiredSessionError,
    SecretLookupError,
    ServiceError,
    ToolMissingError,
)
from ..repositories.connection_status_repository import ConnectionStatusRepository
from ..schemas.connection_status_schema import ConnectionStatus
from ..utils.logger import get_logger
from .profile_resolver import ProfileResolver, classify_profile_failure
from .secret_locator import SecretLocator
from .token_broker import TokenBroker


class ConnectionStateMachine:
    """
    Orchestrates connect, refresh and disconnect.

    Connecting is strictly sequential: tool check, profile resolution,
    account identity, then the secret lookup. Only the secret lookup is
    allowed to fail softly.
    """

    def __init__(
        self,
        secret_store_client,
        profile_resolver: ProfileResolver,
        secret_locator: SecretLocator,
        token_broker: TokenBroker,
        repository: Optional[ConnectionStatusRepository] = None,
        aws_config: Optional[AwsConfig] = None,
        secret_config: Optional[SecretConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client = secret_store_client
        self.profile_resolver = profile_resolver
        self.secret_locator = secret_locator
        self.token_broker = token_broker
        self.repository = repository
        self.aws_config = aws_config or AwsConfig()
        self.secret_config = secret_config or SecretConfig()
        self._clock = clock
        self.logger = get_logger()

        self._status = ConnectionStatus.disconnected()
        self._connection_log: List[str] = []

    # ==================== STATUS ====================

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def connection_log(self) -> List[str]:
        return list(self._connection_log)

    def clear_connection_log(self) -> None:
        self._connection_log = []

    def load(self) -> ConnectionStatus:
        """
        Restore the persisted status at startup.

        A restored CONNECTED status holds no credentials; they are fetched
        again on the next connect or retry_secret.
        """
        if self.repository is not None:
            restored = self.repository.load()
            if restored is not None:
                self._status = restored
        self._log_step(f"Restored connection status: {self._status.state.value}")
        return self._status

    def _log_step(self, message: str, level: str = "info") -> None:
        timestamp = self._clock().isoformat()
        self._connection_log.append(f"{level.upper()} | [{timestamp}] {message}")
        getattr(self.logger, level)(message, extra={"state": self._status.state.value})

    def _transition(self, status: ConnectionStatus, persist: bool = True) -> ConnectionStatus:
        previous = self._status.state
        self._status = status
        if previous != status.state:
            self.logger.info(
                f"Connection state {previous.value} -> {status.state.value}",
                extra={"profile": status.profile},
            )
        if persist and self.repository is not None:
            self.repository.save(status)
        return status

    def _fail(self, error: BaseError) -> ConnectionStatus:
        self.token_broker.clear()
        self._log_step(f"Connection failed: {error.message}", "error")
        self._log_step(f"Suggested fix: {error.remediation}", "warning")
        return self._transition(
            ConnectionStatus(state=ConnectionState.ERROR, error=error.message)
        )

    # ==================== CONNECT ====================

    async def _resolve_region(self, profile: str) -> str:
        if self.aws_config.region:
            return self.aws_config.region
        region = await self.client.configured_region(profile)
        if not region:
            self._log_step(f"No region configured, using {DEFAULT_REGION}", "warning")
        return region or DEFAULT_REGION

    async def _confirm_account(self, profile: str, region: str) -> str:
        try:
            identity = await self.client.caller_identity(profile, region)
        except CommandFailedError as e:
            if classify_profile_failure(e.message) == ProfileFailureKind.EXPIRED_SESSION:
                raise ExpiredSessionError(cause=e)
            raise CredentialsMissingError(
                f"Unable to confirm account identity for profile [{profile}]: {e.message}",
                tried=[profile],
                cause=e,
            )

        account = identity.get("Account")
        if not account:
            raise CredentialsMissingError(
                f"Caller identity for profile [{profile}] returned no account id",
                tried=[profile],
            )
        return str(account)

    async def connect(self) -> ConnectionStatus:
        """
        Connect to the cloud account and load the CRM credentials.

        Returns:
            The CONNECTED status; ``soft_error`` is set if the secret could not
            be used

        Raises:
            ToolMissingError: If the AWS CLI is not installed
            ExpiredSessionError: If the session token has expired
            CredentialsMissingError: If no profile can authenticate

        Any failure outside the secret lookup leaves the status in ERROR.
        """
        self._log_step("=== Connecting to AWS ===")
        self._transition(ConnectionStatus(state=ConnectionState.CONNECTING), persist=False)

        try:
            if not await self.client.is_available():
                raise ToolMissingError()
            self._log_step("AWS CLI found")

            resolution = await self.profile_resolver.resolve(self.aws_config.profile)
            profile = resolution.profile
            if resolution.warning:
                self._log_step(
                    f"Configured profile unavailable, using [{profile}] "
                    f"(tried: {', '.join(resolution.tried)})",
                    "warning",
                )
            else:
                self._log_step(f"Using profile [{profile}]")

            region = await self._resolve_region(profile)
            account = await self._confirm_account(profile, region)
            self._log_step(f"Connected to account {account} in {region}")

            secret_error = await self._load_credentials(profile, region)
        except BaseError as e:
            self._fail(e)
            raise
        except Exception as e:
            self._fail(ServiceError(f"Unexpected error while connecting: {e}", operation="connect", cause=e))
            raise

        soft_error = secret_error.message if secret_error is not None else None

        now = self._clock()
        status = ConnectionStatus(
            state=ConnectionState.CONNECTED,
            account=account,
            region=region,
            profile=profile,
            secret_access_ok=soft_error is None,
            soft_error=soft_error,
            session_expiry_estimate=now + timedelta(hours=self.aws_config.session_expiry_hours),
            connected_at=now,
        )
        self._log_step("=== Connection established ===")
        return self._transition(status)

    async def _load_credentials(self, profile: str, region: Optional[str]) -> Optional[BaseError]:
        """Locate the CRM secret and hand it to the token broker. Returns the soft failure, if any."""
        name = self.secret_config.name
        try:
            credentials = await self.secret_locator.locate_credentials(
                name, self.secret_config.fallback_keywords, profile, region
            )
        except (SecretLookupError, CommandFailedError) as e:
            self.token_broker.mark_unavailable(e.message)
            self._log_step(f"CRM credentials unavailable: {e.message}", "warning")
            self._log_step(f"Suggested fix: {e.remediation}", "warning")
            return e

        self.token_broker.set_credentials(credentials)
        self._log_step(f"CRM credentials loaded from secret '{name}'")
        return None

    # ==================== REFRESH / RETRY / DISCONNECT ====================

    async def refresh_status(self) -> ConnectionStatus:
        """
        Re-check account identity under the current profile.

        A failure demotes the connection to ERROR and purges the cached token
        and credentials. A success leaves the cache untouched.
        """
        current = self._status
        if current.state != ConnectionState.CONNECTED or not current.profile:
            return current

        self._transition(current.model_copy(update={"state": ConnectionState.CONNECTING}), persist=False)
        try:
            await self.client.caller_identity(current.profile, current.region)
        except CommandFailedError as e:
            if classify_profile_failure(e.message) == ProfileFailureKind.EXPIRED_SESSION:
                message = "AWS session token expired"
            else:
                message = "AWS credentials expired or invalid"
            self.token_broker.clear()
            self._log_step(f"Status refresh failed: {message}", "error")
            return self._transition(
                ConnectionStatus(
                    state=ConnectionState.ERROR,
                    profile=current.profile,
                    region=current.region,
                    error=message,
                )
            )

        return self._transition(current, persist=False)

    async def retry_secret(
        self, profile: Optional[str] = None, region: Optional[str] = None
    ) -> ConnectionStatus:
        """
        Re-run only the secret lookup, optionally under another profile/region.

        Raises:
            SecretLookupError: If the secret still cannot be used
            CommandFailedError: If the secret store cannot be read
        """
        current = self._status
        use_profile = profile or current.profile or self.aws_config.profile or "default"
        use_region = region or current.region or self.aws_config.region or None

        secret_error = await self._load_credentials(use_profile, use_region)
        soft_error = secret_error.message if secret_error is not None else None
        if current.state == ConnectionState.CONNECTED:
            self._transition(
                current.model_copy(
                    update={"secret_access_ok": soft_error is None, "soft_error": soft_error}
                )
            )

        if secret_error is not None:
            self._log_step(
                f"Failed to fetch CRM credentials from {use_region or 'default region'}",
                "error",
            )
            raise secret_error
        return self._status

    async def disconnect(self) -> ConnectionStatus:
        """Forget everything. Safe to call in any state."""
        if self.repository is not None:
            self.repository.clear()
        self.token_broker.clear()
        self._log_step("Disconnected")
        return self._transition(ConnectionStatus.disconnected(), persist=False)
