"""
Async wrapper over the AWS CLI.

Every call runs the CLI as an argument vector through
``asyncio.create_subprocess_exec`` (no shell) and awaits its completion, so
callers interleave with other tasks on the event loop. Failures surface as
CommandFailedError whose message is the CLI's own stderr text; the profile
resolver classifies that text.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..config import AwsConfig
from ..exceptions import CommandFailedError
from ..utils.logger import get_logger


class AwsCliSecretStoreClient:
    """Identity probes and Secrets Manager reads through the ``aws`` executable."""

    def __init__(self, config: Optional[AwsConfig] = None):
        self.config = config or AwsConfig()
        self.logger = get_logger()

    @staticmethod
    def _scope_args(profile: Optional[str], region: Optional[str] = None) -> List[str]:
        args: List[str] = []
        # The CLI's own default profile is selected by omitting --profile
        if profile and profile != "default":
            args.extend(["--profile", profile])
        if region:
            args.extend(["--region", region])
        return args

    async def _run(self, args: Sequence[str]) -> Tuple[int, str, str]:
        command = [self.config.cli_path, *args]
        self.logger.debug("Running AWS CLI", extra={"command": " ".join(command)})

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CommandFailedError(
                f"Unable to run {self.config.cli_path}: {str(e)}", command=command, cause=e
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.config.command_timeout
            )
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise CommandFailedError(
                f"AWS CLI command timed out after {self.config.command_timeout}s",
                command=command,
                cause=e,
            )

        return (
            process.returncode if process.returncode is not None else -1,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def _run_checked(self, args: Sequence[str]) -> str:
        returncode, stdout, stderr = await self._run(args)
        if returncode != 0:
            message = stderr.strip() or stdout.strip() or f"exit status {returncode}"
            raise CommandFailedError(
                message, command=[self.config.cli_path, *args], returncode=returncode
            )
        return stdout

    async def _run_json(self, args: Sequence[str]) -> Any:
        stdout = await self._run_checked([*args, "--output", "json"])
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise CommandFailedError(
                f"Unexpected AWS CLI output: {str(e)}",
                command=[self.config.cli_path, *args],
                cause=e,
            )

    async def is_available(self) -> bool:
        """True when ``aws --version`` runs and exits zero."""
        try:
            returncode, _, _ = await self._run(["--version"])
        except CommandFailedError:
            return False
        return returncode == 0

    async def probe_identity(self, profile: str) -> None:
        """
        Check that the profile can authenticate.

        Raises:
            CommandFailedError: With the CLI's error text when it cannot
        """
        await self._run_json(["sts", "get-caller-identity", *self._scope_args(profile)])

    async def caller_identity(self, profile: str, region: Optional[str] = None) -> Dict[str, Any]:
        """Return the ``Account``/``Arn``/``UserId`` document for the profile."""
        result = await self._run_json(
            ["sts", "get-caller-identity", *self._scope_args(profile, region)]
        )
        return result if isinstance(result, dict) else {}

    async def configured_region(self, profile: str) -> str:
        """Region from the CLI configuration for the profile, or empty string."""
        try:
            stdout = await self._run_checked(
                ["configure", "get", "region", *self._scope_args(profile)]
            )
        except CommandFailedError:
            return ""
        return stdout.strip()

    async def list_secrets(self, profile: str, region: Optional[str] = None) -> List[str]:
        """Names of every secret visible to the profile, in store order."""
        result = await self._run_json(
            ["secretsmanager", "list-secrets", *self._scope_args(profile, region)]
        )
        secrets = result.get("SecretList", []) if isinstance(result, dict) else []
        return [entry["Name"] for entry in secrets if isinstance(entry, dict) and entry.get("Name")]

    async def get_secret_value(
        self, name: str, profile: str, region: Optional[str] = None
    ) -> str:
        """Raw ``SecretString`` payload of the named secret."""
        result = await self._run_json(
            [
                "secretsmanager",
                "get-secret-value",
                "--secret-id",
                name,
                *self._scope_args(profile, region),
            ]
        )
        if not isinstance(result, dict) or result.get("SecretString") is None:
            raise CommandFailedError(
                f"Secret '{name}' has no string payload",
                command=[self.config.cli_path, "secretsmanager", "get-secret-value"],
            )
        return result["SecretString"]
