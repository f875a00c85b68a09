"""
Unit test conftest.py - Component-specific fixtures.

This module provides fakes for the two external boundaries so services can
be tested without the AWS CLI or a CRM backend:
- FakeSecretStoreClient: scripted identity probes and secrets
- FakeCrmClient: scripted token responses and failures
- FakeClock: controllable time for token expiry
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from credential_broker.config import AppConfig, CacheConfig, RetryConfig
from credential_broker.exceptions import CommandFailedError
from credential_broker.schemas import CrmCredentials, TokenResponse
from credential_broker.services import (
    ConnectionStateMachine,
    ProfileResolver,
    SecretLocator,
    TokenBroker,
)

VALID_SECRET_PAYLOAD = json.dumps(
    {
        "client_id": "client-123",
        "client_secret": "secret-456",
        "username": "dev%40example.com",
        "password": "hunter2",
        "security_token": "TOKEN",
    }
)


class FakeSecretStoreClient:
    """In-memory stand-in for AwsCliSecretStoreClient."""

    def __init__(self):
        self.available = True
        self.probe_failures: Dict[str, str] = {}
        self.identity_failure: Optional[str] = None
        self.account = "123456789012"
        self.region = "eu-west-1"
        self.secrets: Dict[str, str] = {}
        self.list_failure: Optional[str] = None
        self.calls: List[tuple] = []

    @staticmethod
    def _fail(message: str):
        raise CommandFailedError(message, command=["aws"], returncode=255)

    async def is_available(self) -> bool:
        self.calls.append(("is_available",))
        return self.available

    async def probe_identity(self, profile: str) -> None:
        self.calls.append(("probe_identity", profile))
        if profile in self.probe_failures:
            self._fail(self.probe_failures[profile])

    async def caller_identity(self, profile: str, region: Optional[str] = None) -> dict:
        self.calls.append(("caller_identity", profile, region))
        if self.identity_failure:
            self._fail(self.identity_failure)
        return {"Account": self.account, "Arn": f"arn:aws:iam::{self.account}:user/dev"}

    async def configured_region(self, profile: str) -> str:
        self.calls.append(("configured_region", profile))
        return self.region

    async def list_secrets(self, profile: str, region: Optional[str] = None) -> List[str]:
        self.calls.append(("list_secrets", profile, region))
        if self.list_failure:
            self._fail(self.list_failure)
        return list(self.secrets)

    async def get_secret_value(self, name: str, profile: str, region: Optional[str] = None) -> str:
        self.calls.append(("get_secret_value", name, profile, region))
        if name not in self.secrets:
            self._fail(
                "An error occurred (ResourceNotFoundException) when calling the "
                "GetSecretValue operation: Secrets Manager can't find the specified secret."
            )
        return self.secrets[name]


class FakeCrmClient:
    """Scripted CRM client; each request pops the next outcome."""

    def __init__(self, outcomes: Optional[list] = None):
        self.outcomes = list(outcomes or [])
        self.request_count = 0

    async def request_token(self, credentials: CrmCredentials) -> TokenResponse:
        self.request_count += 1
        await asyncio.sleep(0)
        outcome = self.outcomes.pop(0) if self.outcomes else f"token-{self.request_count}"
        if isinstance(outcome, Exception):
            raise outcome
        return TokenResponse(access_token=outcome, instance_url="https://example.my.salesforce.com")

    async def aclose(self) -> None:
        pass


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, milliseconds: int) -> None:
        self.now = self.now + timedelta(milliseconds=milliseconds)


class SleepRecorder:
    """Replacement for asyncio.sleep that records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ==================== FIXTURES ====================


@pytest.fixture
def fake_store() -> FakeSecretStoreClient:
    """Secret store fake with one valid CRM secret."""
    store = FakeSecretStoreClient()
    store.secrets["lcp-devsecops-plugin"] = VALID_SECRET_PAYLOAD
    return store


@pytest.fixture
def valid_secret_payload() -> str:
    return VALID_SECRET_PAYLOAD


@pytest.fixture
def fake_crm() -> FakeCrmClient:
    return FakeCrmClient()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def crm_credentials() -> CrmCredentials:
    return CrmCredentials(
        client_id="client-123",
        client_secret="secret-456",
        username="dev@example.com",
        password="hunter2",
        security_token="TOKEN",
    )


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration isolated from the environment."""
    config = AppConfig()
    config.aws.profile = ""
    config.aws.region = ""
    config.secret.name = "lcp-devsecops-plugin"
    config.secret.fallback_keywords = ["salesforce", "sfdc"]
    config.database.workspace_id = "test-workspace-123"
    return config


@pytest.fixture
def token_broker(fake_crm, fake_clock, sleep_recorder) -> TokenBroker:
    return TokenBroker(
        fake_crm,
        retry_config=RetryConfig(),
        cache_config=CacheConfig(),
        clock=fake_clock,
        sleep=sleep_recorder,
        random_fn=lambda: 0.0,
    )


@pytest.fixture
def state_machine(fake_store, token_broker, app_config, fake_clock):
    """State machine without persistence."""
    return ConnectionStateMachine(
        fake_store,
        ProfileResolver(fake_store),
        SecretLocator(fake_store),
        token_broker,
        aws_config=app_config.aws,
        secret_config=app_config.secret,
        clock=fake_clock,
    )
