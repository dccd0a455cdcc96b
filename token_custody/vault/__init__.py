"""Token Vault — OAuth tokens encrypted at rest.

Security Note (Threat Model):
    Anyone holding the master secret can decrypt every stored token.
    The authentication tag does not bind the owning user, so an attacker
    with write access to the store can swap one user's blob into another
    user's record without detection. Key rotation is not supported.
"""

from .exceptions import (
    TokenCustodyError,
    ConfigurationError,
    DecryptionFailed,
    ReauthenticationRequired,
)
from .crypto import encrypt_token, decrypt_token
from .config import VaultConfig, load_master_secret, generate_master_secret
from .cipher import TokenCipher
from .token_store import UserTokenStore, UserRecord, TokenPair

__all__ = [
    "TokenCustodyError",
    "ConfigurationError",
    "DecryptionFailed",
    "ReauthenticationRequired",
    "encrypt_token",
    "decrypt_token",
    "VaultConfig",
    "load_master_secret",
    "generate_master_secret",
    "TokenCipher",
    "UserTokenStore",
    "UserRecord",
    "TokenPair",
]
