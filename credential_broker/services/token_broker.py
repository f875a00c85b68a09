"""
Access token broker for the CRM backend.

Holds one cached AccessToken, collapses concurrent requests for a new token
into a single upstream call, and retries failed acquisitions according to the
failure's classification:

- AUTH on the first attempt: drop the cache and retry immediately; AUTH on
  any later attempt is final
- NETWORK: back off exponentially and retry until the attempt budget is spent
- OTHER: final
"""

import asyncio
import random
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, Dict, Optional

from ..config import CacheConfig, RetryConfig
from ..constants import TOKEN_REQUEST_KEY, FailureKind
from ..db.db_base import utc_now
from ..exceptions import (
    AuthError,
    BaseError,
    CredentialsUnavailableError,
    NetworkError,
    OtherError,
    TokenAcquisitionError,
)
from ..schemas.credential_schemas import AccessToken, CrmCredentials
from ..utils.logger import get_logger
from ..utils.retry_utils import calculate_exponential_backoff, classify_failure


class TokenBroker:
    """
    Cached, single-flight, retrying access token acquisition.

    All state is private to the instance and only touched between awaits on
    the event loop thread, so no locks are needed. The in-flight entry is
    registered before the first suspension point of the request.
    """

    def __init__(
        self,
        crm_client,
        retry_config: Optional[RetryConfig] = None,
        cache_config: Optional[CacheConfig] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        random_fn: Callable[[], float] = random.random,
    ):
        self.crm_client = crm_client
        self.retry_config = retry_config or RetryConfig()
        self.cache_config = cache_config or CacheConfig()
        self._clock = clock
        self._sleep = sleep
        self._random = random_fn
        self.logger = get_logger()

        self._credentials: Optional[CrmCredentials] = None
        self._unavailable_reason: Optional[str] = None
        self._token: Optional[AccessToken] = None
        self._in_flight: Dict[str, asyncio.Task] = {}
        # Bumped whenever credentials change so a stale request cannot refill the cache
        self._generation = 0

    # ==================== STATE ====================

    @property
    def has_credentials(self) -> bool:
        return self._credentials is not None

    @property
    def cached_token(self) -> Optional[AccessToken]:
        """The cached token if it is still valid; an expired token is dropped."""
        if self._token is not None and self._token.is_expired(self._clock()):
            self.logger.debug("Cached access token expired")
            self._token = None
        return self._token

    def set_credentials(self, credentials: CrmCredentials) -> None:
        self._start_generation()
        self._credentials = credentials
        self._unavailable_reason = None

    def mark_unavailable(self, reason: Optional[str]) -> None:
        """Forget credentials, remembering why they could not be obtained."""
        self._start_generation()
        self._credentials = None
        self._unavailable_reason = reason

    def invalidate(self) -> None:
        """Drop the cached token; credentials are kept."""
        self._token = None

    def clear(self) -> None:
        """Drop the cached token and the credentials."""
        self.mark_unavailable(None)

    def _start_generation(self) -> None:
        # Callers already awaiting an older request keep it; new callers start fresh
        self._generation += 1
        self._token = None
        self._in_flight.pop(TOKEN_REQUEST_KEY, None)

    # ==================== ACQUISITION ====================

    async def get_access_token(self) -> str:
        """
        Return a valid access token, fetching one if needed.

        Raises:
            CredentialsUnavailableError: If no credentials are held
            AuthError: If the CRM rejected the credentials
            NetworkError: If the CRM stayed unreachable for the whole budget
            OtherError: For any other failure
        """
        token = self.cached_token
        if token is not None:
            return token.value

        task = self._in_flight.get(TOKEN_REQUEST_KEY)
        if task is None:
            if self._credentials is None:
                message = "CRM credentials not available. Connect first."
                if self._unavailable_reason:
                    message = f"{message} Last error: {self._unavailable_reason}"
                raise CredentialsUnavailableError(message)

            task = asyncio.ensure_future(self._acquire(self._credentials, self._generation))
            self._in_flight[TOKEN_REQUEST_KEY] = task
            task.add_done_callback(partial(self._settle, TOKEN_REQUEST_KEY))
        else:
            self.logger.debug("Joining in-flight token request")

        token = await asyncio.shield(task)
        return token.value

    def _settle(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the exception retrieved; callers that awaited already saw it
            task.exception()

    async def _acquire(self, credentials: CrmCredentials, generation: int) -> AccessToken:
        max_attempts = self.retry_config.max_attempts
        attempt = 0

        while True:
            try:
                response = await self.crm_client.request_token(credentials)
            except Exception as e:
                last_cause = e.message if isinstance(e, BaseError) else str(e)
                attempt += 1
                error = self._route_failure(last_cause, attempt, max_attempts, e, generation)
                if error is not None:
                    raise error
                if classify_failure(last_cause) == FailureKind.NETWORK:
                    delay = calculate_exponential_backoff(
                        attempt - 1,
                        base_delay=self.retry_config.base_delay,
                        max_delay=self.retry_config.max_delay,
                        jitter_ratio=self.retry_config.jitter_ratio,
                        random_fn=self._random,
                    )
                    self.logger.info(
                        f"Retrying token request in {delay:.2f}s",
                        extra={"attempt": attempt, "delay": delay},
                    )
                    await self._sleep(delay)
                continue

            token = AccessToken(
                value=response.access_token,
                issued_at=self._clock(),
                ttl_ms=self.cache_config.token_ttl_ms,
                instance_url=response.instance_url,
                token_type=response.token_type,
            )
            if generation == self._generation:
                self._token = token
            self.logger.info(
                "Access token acquired", extra={"attempt": attempt + 1, "ttl_ms": token.ttl_ms}
            )
            return token

    def _route_failure(
        self,
        last_cause: str,
        attempt: int,
        max_attempts: int,
        cause: Exception,
        generation: int,
    ) -> Optional[TokenAcquisitionError]:
        """Return the final error to raise, or None to retry."""
        kind = classify_failure(last_cause)
        self.logger.warning(
            "Token request failed",
            extra={"attempt": attempt, "failure_kind": kind.value, "error": last_cause},
        )

        if generation == self._generation:
            self._token = None

        if kind == FailureKind.AUTH:
            if attempt == 1 and attempt < max_attempts:
                return None
            return AuthError(last_cause, attempt, cause=cause)

        if kind == FailureKind.NETWORK:
            if attempt < max_attempts:
                return None
            return NetworkError(last_cause, attempt, cause=cause)

        return OtherError(last_cause, attempt, cause=cause)
