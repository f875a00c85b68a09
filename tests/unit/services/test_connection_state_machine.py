"""
Tests for the connection lifecycle.
"""

import json
from datetime import timedelta

import pytest

from credential_broker.constants import ConnectionState
from credential_broker.exceptions import (
    CommandFailedError,
    CredentialsMissingError,
    CredentialsUnavailableError,
    ExpiredSessionError,
    SecretNotFoundError,
    SecretSchemaError,
    ToolMissingError,
)
from credential_broker.repositories import ConnectionStatusRepository
from credential_broker.services import (
    ConnectionStateMachine,
    ProfileResolver,
    SecretLocator,
)

EXPIRED = "An error occurred (ExpiredToken) when calling the GetCallerIdentity operation"
MISSING = "Unable to locate credentials"


@pytest.fixture
def repository(db_session, sample_workspace_id):
    return ConnectionStatusRepository(db_session, sample_workspace_id)


@pytest.fixture
def persistent_machine(fake_store, token_broker, app_config, fake_clock, repository):
    return ConnectionStateMachine(
        fake_store,
        ProfileResolver(fake_store),
        SecretLocator(fake_store),
        token_broker,
        repository=repository,
        aws_config=app_config.aws,
        secret_config=app_config.secret,
        clock=fake_clock,
    )


class TestConnect:
    """Test the connect sequence."""

    @pytest.mark.asyncio
    async def test_successful_connect(self, state_machine, token_broker, fake_clock):
        status = await state_machine.connect()

        assert status.state == ConnectionState.CONNECTED
        assert status.profile == "default"
        assert status.account == "123456789012"
        assert status.region == "eu-west-1"
        assert status.secret_access_ok is True
        assert status.soft_error is None
        assert status.connected_at == fake_clock.now
        assert status.session_expiry_estimate == fake_clock.now + timedelta(hours=12)
        assert token_broker.has_credentials is True

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self, state_machine, fake_store):
        await state_machine.connect()

        names = [call[0] for call in fake_store.calls]
        assert names == [
            "is_available",
            "probe_identity",
            "configured_region",
            "caller_identity",
            "list_secrets",
            "get_secret_value",
        ]

    @pytest.mark.asyncio
    async def test_configured_region_skips_cli_lookup(self, state_machine, fake_store, app_config):
        app_config.aws.region = "ap-southeast-2"

        status = await state_machine.connect()

        assert status.region == "ap-southeast-2"
        assert ("configured_region", "default") not in fake_store.calls

    @pytest.mark.asyncio
    async def test_region_defaults_to_us_east_1(self, state_machine, fake_store):
        fake_store.region = ""
        status = await state_machine.connect()
        assert status.region == "us-east-1"

    @pytest.mark.asyncio
    async def test_tool_missing_is_fatal(self, state_machine, fake_store):
        fake_store.available = False

        with pytest.raises(ToolMissingError):
            await state_machine.connect()

        assert state_machine.status.state == ConnectionState.ERROR
        assert state_machine.status.error == "AWS CLI is not installed"
        assert fake_store.calls == [("is_available",)]

    @pytest.mark.asyncio
    async def test_expired_session_aborts(self, state_machine, fake_store):
        fake_store.probe_failures = {name: EXPIRED for name in ["default", "development", "dev"]}

        with pytest.raises(ExpiredSessionError):
            await state_machine.connect()

        assert state_machine.status.state == ConnectionState.ERROR
        assert not any(call[0] == "list_secrets" for call in fake_store.calls)

    @pytest.mark.asyncio
    async def test_identity_failure_is_fatal(self, state_machine, fake_store, token_broker):
        fake_store.identity_failure = MISSING

        with pytest.raises(CredentialsMissingError, match="Unable to confirm account identity"):
            await state_machine.connect()

        assert state_machine.status.state == ConnectionState.ERROR
        assert token_broker.has_credentials is False

    @pytest.mark.asyncio
    async def test_command_failure_during_connect_ends_in_error(self, state_machine, fake_store, token_broker):
        async def failing_region(profile):
            raise CommandFailedError("aws: error: argument command: Invalid choice", command=["aws"], returncode=2)

        fake_store.configured_region = failing_region

        with pytest.raises(CommandFailedError):
            await state_machine.connect()

        assert state_machine.status.state == ConnectionState.ERROR
        assert state_machine.status.error == "aws: error: argument command: Invalid choice"
        assert token_broker.has_credentials is False

    @pytest.mark.asyncio
    async def test_unexpected_error_during_connect_ends_in_error(self, persistent_machine, fake_store, repository):
        async def broken_identity(profile, region=None):
            return None

        fake_store.caller_identity = broken_identity

        with pytest.raises(AttributeError):
            await persistent_machine.connect()

        assert persistent_machine.status.state == ConnectionState.ERROR
        assert persistent_machine.status.error.startswith("Unexpected error while connecting:")
        assert repository.load().state == ConnectionState.ERROR

    @pytest.mark.asyncio
    async def test_missing_secret_is_soft(self, state_machine, fake_store, token_broker):
        fake_store.secrets = {"jira-token": "{}"}

        status = await state_machine.connect()

        assert status.state == ConnectionState.CONNECTED
        assert status.secret_access_ok is False
        assert "No secret found matching" in status.soft_error
        with pytest.raises(CredentialsUnavailableError, match="No secret found matching"):
            await token_broker.get_access_token()

    @pytest.mark.asyncio
    async def test_invalid_secret_is_soft(self, state_machine, fake_store):
        fake_store.secrets = {
            "lcp-devsecops-plugin": json.dumps({"username": "a", "password": "b"})
        }

        status = await state_machine.connect()

        assert status.connected
        assert "client_id, client_secret" in status.soft_error

    @pytest.mark.asyncio
    async def test_secret_listing_failure_is_soft(self, state_machine, fake_store):
        fake_store.list_failure = "AccessDeniedException"

        status = await state_machine.connect()

        assert status.connected
        assert status.soft_error == "AccessDeniedException"

    @pytest.mark.asyncio
    async def test_connection_log_records_remediation(self, state_machine, fake_store):
        fake_store.available = False

        with pytest.raises(ToolMissingError):
            await state_machine.connect()

        log = "\n".join(state_machine.connection_log)
        assert "Connection failed: AWS CLI is not installed" in log
        assert "Suggested fix: Install the AWS CLI" in log

        state_machine.clear_connection_log()
        assert state_machine.connection_log == []


class TestRefreshStatus:
    """Test refresh_status."""

    @pytest.mark.asyncio
    async def test_success_keeps_cache(self, state_machine, token_broker, fake_crm):
        await state_machine.connect()
        await token_broker.get_access_token()

        status = await state_machine.refresh_status()

        assert status.state == ConnectionState.CONNECTED
        assert token_broker.cached_token is not None
        assert fake_crm.request_count == 1

    @pytest.mark.asyncio
    async def test_expired_session_demotes_and_purges(self, state_machine, fake_store, token_broker):
        await state_machine.connect()
        await token_broker.get_access_token()
        fake_store.identity_failure = EXPIRED

        status = await state_machine.refresh_status()

        assert status.state == ConnectionState.ERROR
        assert status.error == "AWS session token expired"
        assert token_broker.cached_token is None
        assert token_broker.has_credentials is False

    @pytest.mark.asyncio
    async def test_invalid_credentials_message(self, state_machine, fake_store):
        await state_machine.connect()
        fake_store.identity_failure = MISSING

        status = await state_machine.refresh_status()

        assert status.error == "AWS credentials expired or invalid"

    @pytest.mark.asyncio
    async def test_refresh_when_disconnected_is_noop(self, state_machine, fake_store):
        status = await state_machine.refresh_status()

        assert status.state == ConnectionState.DISCONNECTED
        assert fake_store.calls == []


class TestRetrySecret:
    """Test retry_secret."""

    @pytest.mark.asyncio
    async def test_recovers_soft_error(self, state_machine, fake_store, valid_secret_payload, token_broker):
        fake_store.secrets = {}
        status = await state_machine.connect()
        assert status.secret_access_ok is False

        fake_store.secrets = {"lcp-devsecops-plugin": valid_secret_payload}
        status = await state_machine.retry_secret()

        assert status.secret_access_ok is True
        assert status.soft_error is None
        assert token_broker.has_credentials is True

    @pytest.mark.asyncio
    async def test_uses_override_region(self, state_machine, fake_store):
        await state_machine.connect()
        await state_machine.retry_secret(region="us-west-2")
        assert ("list_secrets", "default", "us-west-2") in fake_store.calls

    @pytest.mark.asyncio
    async def test_failure_raises_and_records(self, state_machine, fake_store):
        await state_machine.connect()
        fake_store.secrets = {"lcp-devsecops-plugin": "[]"}

        with pytest.raises(SecretSchemaError):
            await state_machine.retry_secret()

        assert state_machine.status.secret_access_ok is False
        assert state_machine.status.connected

    @pytest.mark.asyncio
    async def test_not_found_when_disconnected(self, state_machine, fake_store):
        fake_store.secrets = {}

        with pytest.raises(SecretNotFoundError):
            await state_machine.retry_secret()

        assert state_machine.status.state == ConnectionState.DISCONNECTED


class TestDisconnectAndPersistence:
    """Test disconnect, persistence and restore."""

    @pytest.mark.asyncio
    async def test_disconnect_purges_everything(self, persistent_machine, repository, token_broker):
        await persistent_machine.connect()
        await token_broker.get_access_token()

        status = await persistent_machine.disconnect()

        assert status.state == ConnectionState.DISCONNECTED
        assert repository.load() is None
        assert token_broker.cached_token is None
        assert token_broker.has_credentials is False

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, persistent_machine):
        await persistent_machine.disconnect()
        status = await persistent_machine.disconnect()
        assert status.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_connect_persists_status(self, persistent_machine, repository):
        status = await persistent_machine.connect()
        assert repository.load() == status

    @pytest.mark.asyncio
    async def test_fatal_error_persisted(self, persistent_machine, repository, fake_store):
        fake_store.available = False

        with pytest.raises(ToolMissingError):
            await persistent_machine.connect()

        stored = repository.load()
        assert stored.state == ConnectionState.ERROR
        assert stored.error == "AWS CLI is not installed"

    @pytest.mark.asyncio
    async def test_load_restores_without_credentials(
        self, persistent_machine, fake_store, token_broker, app_config, fake_clock, repository
    ):
        await persistent_machine.connect()

        token_broker.clear()
        restarted = ConnectionStateMachine(
            fake_store,
            ProfileResolver(fake_store),
            SecretLocator(fake_store),
            token_broker,
            repository=repository,
            aws_config=app_config.aws,
            secret_config=app_config.secret,
            clock=fake_clock,
        )
        status = restarted.load()

        assert status.connected
        assert status.profile == "default"
        assert token_broker.has_credentials is False
