"""
Vault Configuration — Master secret loading and validated settings.

Reads the master secret from the environment:
    ENCRYPTION_KEY = <string of at least 32 characters>

The secret is read once at startup and injected into ``TokenCipher``;
cipher functions never read it from the environment themselves.

Security Note:
    Never log the master secret, not even partially. Only log its length.
"""
import os
import secrets
import logging

from pydantic import BaseModel, SecretStr, field_validator

from ..conf import ENCRYPTION_KEY_ENV, MIN_SECRET_LENGTH
from .exceptions import ConfigurationError

logger = logging.getLogger("token_custody.vault")


def load_master_secret() -> str:
    """Load the master secret from the ENCRYPTION_KEY environment variable.

    Returns:
        The master secret string.

    Raises:
        ConfigurationError: If the variable is unset, empty or shorter than
            32 characters.
    """
    secret = os.environ.get(ENCRYPTION_KEY_ENV)
    if not secret:
        raise ConfigurationError(
            f"{ENCRYPTION_KEY_ENV} environment variable is not set"
        )
    if len(secret) < MIN_SECRET_LENGTH:
        raise ConfigurationError(
            f"{ENCRYPTION_KEY_ENV} must be at least {MIN_SECRET_LENGTH} "
            f"characters long (got {len(secret)}). Generate one with "
            "token_custody.vault.generate_master_secret()"
        )
    logger.debug("Loaded master secret (%d characters)", len(secret))
    return secret


def generate_master_secret() -> str:
    """Generate a random master secret as a 64-character hex string.

    This is a utility for operators to generate new secrets.
    """
    return secrets.token_hex(32)


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    master_secret: SecretStr

    model_config = {"frozen": True, "hide_input_in_errors": True}

    @field_validator("master_secret")
    @classmethod
    def validate_secret_length(cls, v: SecretStr) -> SecretStr:
        """Enforce the minimum master secret length."""
        if len(v.get_secret_value()) < MIN_SECRET_LENGTH:
            raise ValueError(
                f"master_secret must be at least {MIN_SECRET_LENGTH} characters long"
            )
        return v

    @property
    def secret(self) -> str:
        """Plain master secret, for handing to the cipher functions."""
        return self.master_secret.get_secret_value()

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading the master secret from environment.

        Raises:
            ConfigurationError: If the master secret is missing or too short.
        """
        return cls(master_secret=load_master_secret())
