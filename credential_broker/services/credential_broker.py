"""
Facade that owns one instance of every broker component.

Collaborators are built from AppConfig unless injected, so tests can pass
fakes for the CLI client, the CRM client, the clock and the sleep function.
"""

import asyncio
import random
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.orm import Session

from ..clients.crm_client import CrmClient
from ..clients.secret_store_client import AwsCliSecretStoreClient
from ..config import AppConfig, get_config
from ..db.db_base import utc_now
from ..exceptions import CrmRequestError
from ..repositories.connection_status_repository import ConnectionStatusRepository
from ..schemas.connection_status_schema import ConnectionStatus, SecretInspection
from ..schemas.credential_schemas import CredentialProfile
from ..schemas.crm_schemas import QueryResponse
from ..utils.logger import get_logger
from .connection_state_machine import ConnectionStateMachine
from .profile_resolver import ProfileResolver
from .secret_locator import SecretLocator
from .token_broker import TokenBroker


class CredentialBroker:
    """Single entry point for connection management and CRM access."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        secret_store_client=None,
        crm_client: Optional[CrmClient] = None,
        session: Optional[Session] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        random_fn: Callable[[], float] = random.random,
    ):
        self.config = config or get_config()
        self.logger = get_logger()

        self.secret_store_client = secret_store_client or AwsCliSecretStoreClient(self.config.aws)
        self.crm_client = crm_client or CrmClient(self.config.crm)

        repository = None
        if session is not None:
            repository = ConnectionStatusRepository(session, self.config.database.workspace_id)

        self.profile_resolver = ProfileResolver(self.secret_store_client)
        self.secret_locator = SecretLocator(self.secret_store_client)
        self.token_broker = TokenBroker(
            self.crm_client,
            retry_config=self.config.retry,
            cache_config=self.config.cache,
            clock=clock,
            sleep=sleep,
            random_fn=random_fn,
        )
        self.state_machine = ConnectionStateMachine(
            self.secret_store_client,
            self.profile_resolver,
            self.secret_locator,
            self.token_broker,
            repository=repository,
            aws_config=self.config.aws,
            secret_config=self.config.secret,
            clock=clock,
        )

    @property
    def status(self) -> ConnectionStatus:
        return self.state_machine.status

    @property
    def resolved_profile(self) -> Optional[CredentialProfile]:
        """Profile and region of the current connection, if connected."""
        status = self.state_machine.status
        if not status.connected or not status.profile:
            return None
        return CredentialProfile(name=status.profile, region=status.region or "")

    @property
    def connection_log(self) -> List[str]:
        return self.state_machine.connection_log

    def load(self) -> ConnectionStatus:
        return self.state_machine.load()

    async def connect(self) -> ConnectionStatus:
        return await self.state_machine.connect()

    async def refresh_status(self) -> ConnectionStatus:
        return await self.state_machine.refresh_status()

    async def disconnect(self) -> ConnectionStatus:
        return await self.state_machine.disconnect()

    async def retry_secret(
        self, profile: Optional[str] = None, region: Optional[str] = None
    ) -> ConnectionStatus:
        return await self.state_machine.retry_secret(profile, region)

    async def list_available_secrets(
        self, profile: Optional[str] = None, region: Optional[str] = None
    ) -> List[str]:
        status = self.state_machine.status
        return await self.secret_locator.list_available(
            profile or status.profile or self.config.aws.profile or "default",
            region or status.region or self.config.aws.region or None,
        )

    async def inspect_secret(self) -> SecretInspection:
        status = self.state_machine.status
        return await self.secret_locator.inspect(
            self.config.secret.name,
            status.profile or self.config.aws.profile or "default",
            status.region or self.config.aws.region or None,
        )

    async def get_access_token(self) -> str:
        return await self.token_broker.get_access_token()

    async def query(self, soql: str) -> QueryResponse:
        """
        Run a SOQL query with a brokered token.

        A 401 from the query endpoint invalidates the cached token and the
        query is retried once with a fresh one.
        """
        token = await self.token_broker.get_access_token()
        try:
            return await self.crm_client.query(soql, token)
        except CrmRequestError as e:
            if e.http_status != 401:
                raise
            self.logger.warning("Query rejected the access token, refreshing it")

        self.token_broker.invalidate()
        token = await self.token_broker.get_access_token()
        return await self.crm_client.query(soql, token)

    async def check_health(self, url: Optional[str] = None) -> bool:
        return await self.crm_client.check_health(url)

    async def aclose(self) -> None:
        await self.crm_client.aclose()
