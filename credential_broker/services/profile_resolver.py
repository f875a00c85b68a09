"""
Named-profile resolution.

Finds the first CLI profile that can authenticate from a fixed priority list
and classifies probe failures so the caller can show the right remediation.
"""

from typing import List, Optional

from ..constants import EXPIRED_SESSION_MARKERS, FALLBACK_PROFILES, ProfileFailureKind
from ..exceptions import CommandFailedError, CredentialsMissingError, ExpiredSessionError
from ..schemas.credential_schemas import ProfileResolution
from ..utils.logger import get_logger


def build_candidates(configured_profile: Optional[str]) -> List[str]:
    """Configured profile first, then the fallbacks, without duplicates."""
    candidates: List[str] = []
    for name in [configured_profile or "", *FALLBACK_PROFILES]:
        if name and name not in candidates:
            candidates.append(name)
    return candidates


def classify_profile_failure(message: Optional[str]) -> ProfileFailureKind:
    """Tag a probe failure as an expired session or missing credentials."""
    text = message or ""
    if any(marker in text for marker in EXPIRED_SESSION_MARKERS):
        return ProfileFailureKind.EXPIRED_SESSION
    return ProfileFailureKind.CREDENTIALS_MISSING


class ProfileResolver:
    """Probes candidate profiles in order and returns the first that works."""

    def __init__(self, secret_store_client):
        self.client = secret_store_client
        self.logger = get_logger()

    async def resolve(self, configured_profile: Optional[str]) -> ProfileResolution:
        """
        Return the first candidate profile whose identity probe succeeds.

        Args:
            configured_profile: Profile from configuration; may be empty

        Returns:
            ProfileResolution with ``warning`` set when a fallback replaced the
            first candidate

        Raises:
            ExpiredSessionError: If every probe failed and at least one failure
                indicated an expired session
            CredentialsMissingError: If every probe failed otherwise
        """
        candidates = build_candidates(configured_profile)
        tried: List[str] = []
        saw_expired = False

        for candidate in candidates:
            tried.append(candidate)
            try:
                await self.client.probe_identity(candidate)
            except CommandFailedError as e:
                kind = classify_profile_failure(e.message)
                saw_expired = saw_expired or kind == ProfileFailureKind.EXPIRED_SESSION
                self.logger.warning(
                    f"Profile [{candidate}] failed identity probe",
                    extra={"profile": candidate, "failure_kind": kind.value},
                )
                continue

            warning = candidate != candidates[0]
            if warning:
                self.logger.warning(
                    f"Using fallback profile [{candidate}] instead of [{candidates[0]}]",
                    extra={"profile": candidate, "tried": tried},
                )
            else:
                self.logger.info(f"Profile [{candidate}] resolved", extra={"profile": candidate})
            return ProfileResolution(profile=candidate, warning=warning, tried=tried)

        if saw_expired:
            raise ExpiredSessionError(tried=tried)
        raise CredentialsMissingError(tried=tried)
