"""SSM Parameter Store access for payment gateway secrets.

Parameters live under ``/rentcore/{environment}/...`` as SecureStrings and
are cached per service instance after the first read.
"""

import logging
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError

from rentcore.config import get_settings

logger = logging.getLogger(__name__)

PARAMETER_ROOT = "/rentcore"


class SSMServiceError(Exception):
    """Raised when a parameter cannot be read."""


def _as_service_error(path: str, error: ClientError) -> SSMServiceError:
    code = error.response.get("Error", {}).get("Code", "Unknown")
    if code == "ParameterNotFound":
        return SSMServiceError(f"SSM parameter not found: {path}")
    if code == "AccessDeniedException":
        return SSMServiceError(f"Access denied to SSM parameter {path} (ssm:GetParameter)")
    return SSMServiceError(f"Failed to read SSM parameter {path}: {error}")


class SSMService:
    """Environment-scoped reader for SecureString parameters.

    Usage:
        ssm = get_ssm_service()
        secret_key = ssm.get_secret("stripe/secret_key")
    """

    def __init__(self, environment: str | None = None) -> None:
        self._client = boto3.client("ssm")
        self._environment = environment or get_settings().environment
        self._values: dict[str, str] = {}

    def parameter_path(self, name: str) -> str:
        """Full parameter path for an environment-relative name.

        Args:
            name: Relative name such as "stripe/secret_key"

        Returns:
            Path like "/rentcore/dev/stripe/secret_key"
        """
        return f"{PARAMETER_ROOT}/{self._environment}/{name.lstrip('/')}"

    def get_secret(self, name: str, *, use_cache: bool = True) -> str:
        """Read one environment-relative secret.

        Raises:
            SSMServiceError: If the parameter is missing or unreadable
        """
        path = self.parameter_path(name)
        if use_cache and path in self._values:
            return self._values[path]

        logger.info(f"Fetching SSM parameter {path}")
        try:
            response = self._client.get_parameter(Name=path, WithDecryption=True)
        except ClientError as e:
            raise _as_service_error(path, e) from e
        self._values[path] = response["Parameter"]["Value"]
        return self._values[path]

    def get_secrets(self, *names: str) -> dict[str, str]:
        """Read several secrets in one round trip.

        Args:
            names: Environment-relative names

        Returns:
            Mapping of each relative name to its decrypted value

        Raises:
            SSMServiceError: If any of the parameters does not exist
        """
        paths = {self.parameter_path(n): n for n in names}
        missing = [p for p in paths if p not in self._values]
        if missing:
            try:
                response = self._client.get_parameters(Names=missing, WithDecryption=True)
            except ClientError as e:
                raise _as_service_error(", ".join(missing), e) from e
            if response.get("InvalidParameters"):
                raise SSMServiceError(
                    f"SSM parameter not found: {', '.join(response['InvalidParameters'])}"
                )
            for param in response["Parameters"]:
                self._values[param["Name"]] = param["Value"]
        return {name: self._values[path] for path, name in paths.items()}

    def clear_cache(self) -> None:
        self._values.clear()


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Shared SSMService for the current environment."""
    return SSMService()
