"""TokenCipher — token encryption bound to an injected master secret."""
from typing import Union

from .config import VaultConfig
from .crypto import encrypt_token, decrypt_token
from .exceptions import ConfigurationError


class TokenCipher:
    """Encrypts and decrypts stored tokens with one master secret.

    The cipher holds no state besides the secret, so a single instance can be
    shared across concurrent requests.
    """

    __slots__ = ("_secret",)

    def __init__(self, config: Union[VaultConfig, str]):
        if isinstance(config, VaultConfig):
            secret = config.secret
        else:
            secret = config
        if not secret:
            raise ConfigurationError("TokenCipher requires a master secret")
        self._secret = secret

    def __repr__(self) -> str:
        return "<TokenCipher secret=**********>"

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a token, returning a ``salt:iv:tag:ciphertext`` blob."""
        return encrypt_token(plaintext, self._secret)

    def decrypt(self, blob: str) -> str:
        """Decrypt a stored blob.

        Raises:
            DecryptionFailed: If the blob is malformed, tampered with or was
                encrypted under another secret.
        """
        return decrypt_token(blob, self._secret)
