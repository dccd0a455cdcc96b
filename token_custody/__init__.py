"""Token Custody.

Keeps long-lived OAuth access and refresh tokens encrypted at rest so a
backend can act on behalf of a user without re-prompting for consent.
"""
from .version import __version__
from .vault import (
    TokenCipher,
    VaultConfig,
    encrypt_token,
    decrypt_token,
    ConfigurationError,
    DecryptionFailed,
)

__all__ = [
    "__version__",
    "TokenCipher",
    "VaultConfig",
    "encrypt_token",
    "decrypt_token",
    "ConfigurationError",
    "DecryptionFailed",
]
