"""Broker services: profile resolution, secret lookup, tokens and connection state."""

from .connection_state_machine import ConnectionStateMachine
from .credential_broker import CredentialBroker
from .profile_resolver import ProfileResolver, build_candidates, classify_profile_failure
from .secret_locator import SecretLocator, match_secret_name, parse_secret_payload
from .token_broker import TokenBroker

__all__ = [
    "ConnectionStateMachine",
    "CredentialBroker",
    "ProfileResolver",
    "SecretLocator",
    "TokenBroker",
    "build_candidates",
    "classify_profile_failure",
    "match_secret_name",
    "parse_secret_payload",
]
