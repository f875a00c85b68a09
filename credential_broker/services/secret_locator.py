"""
Secret discovery and validation.

The configured secret name is matched loosely against the names visible in
the store (exact, then substring, then fallback keywords), and the matched
payload is repaired, parsed and checked for the required CRM fields before
it is trusted.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from ..constants import REQUIRED_SECRET_FIELDS
from ..exceptions import CommandFailedError, SecretNotFoundError, SecretSchemaError
from ..schemas.connection_status_schema import SecretInspection
from ..schemas.credential_schemas import CrmCredentials, SecretRecord
from ..utils.json_utils import loads_lenient
from ..utils.logger import get_logger


def match_secret_name(
    available: Sequence[str], configured_name: str, fallback_keywords: Sequence[str] = ()
) -> Optional[str]:
    """
    Pick the secret to use from the names visible in the store.

    Tiers, first hit wins:
        1. case-insensitive exact match on ``configured_name``
        2. ``configured_name`` contained in a listed name
        3. each keyword in the order given, first listed name containing it

    Returns:
        The matched name, or None
    """
    wanted = (configured_name or "").lower()

    if wanted:
        for name in available:
            if name.lower() == wanted:
                return name
        for name in available:
            if wanted in name.lower():
                return name

    for keyword in fallback_keywords:
        needle = keyword.lower()
        if not needle:
            continue
        for name in available:
            if needle in name.lower():
                return name

    return None


def parse_secret_payload(secret_name: str, raw_payload: str) -> SecretRecord:
    """
    Parse a raw payload into a SecretRecord with every required field present.

    Raises:
        SecretSchemaError: If the payload is not a JSON object or lacks required fields
    """
    try:
        data: Any = loads_lenient(raw_payload)
    except json.JSONDecodeError as e:
        raise SecretSchemaError(secret_name, reason=f"payload is not valid JSON ({e.msg})")

    if not isinstance(data, dict):
        raise SecretSchemaError(secret_name, reason="payload is not a JSON object")

    present = list(data.keys())
    missing = [field for field in REQUIRED_SECRET_FIELDS if not data.get(field)]
    if missing:
        raise SecretSchemaError(secret_name, missing=missing, present=present)

    fields: Dict[str, str] = {
        key: value if isinstance(value, str) else json.dumps(value)
        for key, value in data.items()
        if value is not None
    }
    return SecretRecord(name=secret_name, raw_payload=raw_payload, fields=fields)


class SecretLocator:
    """Finds and validates the CRM credential secret."""

    def __init__(self, secret_store_client):
        self.client = secret_store_client
        self.logger = get_logger()

    async def locate(
        self,
        configured_name: str,
        fallback_keywords: Sequence[str],
        profile: str,
        region: Optional[str] = None,
    ) -> SecretRecord:
        """
        Locate the secret and return it once it is schema-valid.

        Raises:
            SecretNotFoundError: If no visible secret matches any tier
            SecretSchemaError: If the matched secret cannot be trusted
            CommandFailedError: If the store cannot be listed or read
        """
        available = await self.client.list_secrets(profile, region)
        self.logger.info(
            f"Found {len(available)} secrets",
            extra={"profile": profile, "region": region, "secret_count": len(available)},
        )

        name = match_secret_name(available, configured_name, fallback_keywords)
        if name is None:
            raise SecretNotFoundError(
                configured_name, keywords=fallback_keywords, available=available
            )

        if name != configured_name:
            self.logger.info(
                f"Using secret '{name}' for configured name '{configured_name}'",
                extra={"secret_name": name},
            )

        raw_payload = await self.client.get_secret_value(name, profile, region)
        record = parse_secret_payload(name, raw_payload)
        self.logger.info(
            "Secret validated", extra={"secret_name": name, "fields": record.field_names}
        )
        return record

    async def locate_credentials(
        self,
        configured_name: str,
        fallback_keywords: Sequence[str],
        profile: str,
        region: Optional[str] = None,
    ) -> CrmCredentials:
        """
        Locate the secret and convert it to CRM credentials.

        Raises:
            SecretSchemaError: Additionally when a field value is unusable,
                for example a username that is not an e-mail address
        """
        record = await self.locate(configured_name, fallback_keywords, profile, region)
        try:
            return CrmCredentials.from_secret_record(record)
        except ValidationError as e:
            # Only field names and messages; values are secret
            reason = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise SecretSchemaError(record.name, present=record.field_names, reason=reason)

    async def list_available(self, profile: str, region: Optional[str] = None) -> List[str]:
        """Visible secret names, or an empty list when the store cannot be listed."""
        try:
            return await self.client.list_secrets(profile, region)
        except CommandFailedError as e:
            self.logger.warning(
                "Unable to list secrets", extra={"profile": profile, "region": region, "error": e.message}
            )
            return []

    async def inspect(
        self, configured_name: str, profile: str, region: Optional[str] = None
    ) -> SecretInspection:
        """
        Diagnose the configured secret by exact id without raising.
        """
        try:
            await self.client.probe_identity(profile)
        except CommandFailedError as e:
            return SecretInspection(error_message=f"AWS connection failed: {e.message}")

        try:
            raw_payload = await self.client.get_secret_value(configured_name, profile, region)
        except CommandFailedError as e:
            if "ResourceNotFoundException" in e.message:
                message = f"Secret '{configured_name}' not found in AWS Secrets Manager"
            else:
                message = f"Failed to access secret '{configured_name}': {e.message}"
            return SecretInspection(
                secret_name=configured_name, cloud_connected=True, error_message=message
            )

        try:
            record = parse_secret_payload(configured_name, raw_payload)
        except SecretSchemaError as e:
            return SecretInspection(
                secret_name=configured_name,
                cloud_connected=True,
                exists=True,
                missing_fields=e.missing,
                available_fields=e.present,
                error_message=e.message,
            )

        return SecretInspection(
            secret_name=configured_name,
            cloud_connected=True,
            exists=True,
            valid=True,
            available_fields=record.field_names,
        )
