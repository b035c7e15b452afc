import os

from vehosts_runner.utils.logger import logger

ENV_PREFIX = "VEHOSTS_"


class VaultIntegrator:
    """
    Resolves secrets from environment variables.

    Bare keys (``S3_ACCESS_KEY``) win over prefixed ones (``VEHOSTS_S3_ACCESS_KEY``).
    """

    def __init__(self, environ: dict[str, str] | None = None):
        self._environ = environ

    def _lookup(self, key: str) -> str | None:
        if self._environ is not None:
            return self._environ.get(key)
        return os.getenv(key)

    def get_secret(self, key: str) -> str | None:
        """
        Fetch a secret by key. Returns None when it is not set or empty.
        """
        val = self._lookup(key)
        if not val:
            val = self._lookup(f"{ENV_PREFIX}{key}")

        if not val:
            logger.debug(f"Secret {key} not found in environment.")
            return None

        return val
