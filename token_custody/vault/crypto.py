"""
Vault Crypto Core — Key derivation, token encryption/decryption and blob encoding.

Each stored token is encrypted under its own key:
    PBKDF2-HMAC-SHA256(master_secret, salt, 100000) → AES-256-GCM → blob

Blob format (single text value, lowercase hex):
    <salt 64B>:<iv 16B>:<tag 16B>:<ciphertext>

Security Note:
    Never log plaintext, ciphertext, blobs or key material.
    KDF parameters are not stored in the blob; changing them makes every
    previously stored blob undecryptable.
    Malformed blobs are rejected before key derivation, so they fail faster
    than tampered ones; the failure kind is observable through timing.
"""
import os
import binascii
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import (
    ConfigurationError,
    DecryptionFailed,
    MalformedInput,
    AuthenticationFailed,
)

logger = logging.getLogger("token_custody.vault")

SALT_SIZE = 64
IV_SIZE = 16
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256
KDF_ITERATIONS = 100_000

BLOB_SEPARATOR = ":"
BLOB_FIELDS = 4

_DECRYPTION_FAILED = "Decryption failed: invalid encrypted token or key"

# Lone surrogates (e.g. from JSON "\ud800") survive the round trip.
_TEXT_ERRORS = "surrogatepass"


def _require_secret(master_secret: str) -> None:
    if not master_secret:
        raise ConfigurationError(
            "Master secret is not configured; cannot encrypt or decrypt tokens"
        )


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(master_secret: str, salt: bytes) -> bytes:
    """Derive a 32-byte encryption key using PBKDF2-HMAC-SHA256.

    Args:
        master_secret: Process-wide master secret.
        salt: Per-blob random salt.

    Returns:
        32-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(master_secret.encode("utf-8"))


# ---------------------------------------------------------------------------
# Blob encoding
# ---------------------------------------------------------------------------

def encode_blob(salt: bytes, iv: bytes, tag: bytes, ciphertext: bytes) -> str:
    """Join the four blob components as lowercase hex fields."""
    return BLOB_SEPARATOR.join(
        part.hex() for part in (salt, iv, tag, ciphertext)
    )


def decode_blob(blob: str) -> tuple[bytes, bytes, bytes, bytes]:
    """Split an encoded blob into (salt, iv, tag, ciphertext).

    Raises:
        MalformedInput: wrong field count, invalid hex or wrong component size.
    """
    if not isinstance(blob, str):
        raise MalformedInput(f"blob must be str, got {type(blob).__name__}")
    fields = blob.split(BLOB_SEPARATOR)
    if len(fields) != BLOB_FIELDS:
        raise MalformedInput(
            f"expected {BLOB_FIELDS} fields, got {len(fields)}"
        )
    try:
        salt, iv, tag, ciphertext = (
            binascii.unhexlify(field) for field in fields
        )
    except (binascii.Error, ValueError) as err:
        raise MalformedInput(f"invalid hex field: {err}") from None
    for name, value, size in (
        ("salt", salt, SALT_SIZE),
        ("iv", iv, IV_SIZE),
        ("tag", tag, TAG_SIZE),
    ):
        if len(value) != size:
            raise MalformedInput(
                f"{name} must be {size} bytes, got {len(value)}"
            )
    return salt, iv, tag, ciphertext


# ---------------------------------------------------------------------------
# Token encryption
# ---------------------------------------------------------------------------

def encrypt_token(plaintext: str, master_secret: str) -> str:
    """Encrypt a token string into an encoded blob.

    A fresh salt and IV are generated on every call, so encrypting the same
    token twice never yields the same blob.

    Args:
        plaintext: Token to encrypt.
        master_secret: Process-wide master secret.

    Returns:
        ``salt:iv:tag:ciphertext`` hex blob.

    Raises:
        ConfigurationError: If master_secret is missing.
    """
    _require_secret(master_secret)
    salt = os.urandom(SALT_SIZE)
    iv = os.urandom(IV_SIZE)
    key = derive_key(master_secret, salt)
    data = plaintext.encode("utf-8", _TEXT_ERRORS)
    sealed = AESGCM(key).encrypt(iv, data, None)
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return encode_blob(salt, iv, tag, ciphertext)


def _open_blob(blob: str, master_secret: str) -> str:
    salt, iv, tag, ciphertext = decode_blob(blob)
    key = derive_key(master_secret, salt)
    try:
        data = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag:
        raise AuthenticationFailed("authentication tag mismatch") from None
    try:
        return data.decode("utf-8", _TEXT_ERRORS)
    except UnicodeDecodeError:
        raise MalformedInput("plaintext is not valid UTF-8") from None


def decrypt_token(blob: str, master_secret: str) -> str:
    """Decrypt an encoded blob back to the original token string.

    Every decoding or authentication problem is reported as a single
    ``DecryptionFailed``; the specific reason is only logged.

    Args:
        blob: ``salt:iv:tag:ciphertext`` hex blob.
        master_secret: Process-wide master secret.

    Returns:
        Original token string.

    Raises:
        ConfigurationError: If master_secret is missing.
        DecryptionFailed: If the blob is malformed, tampered with, or was
            encrypted under another master secret.
    """
    _require_secret(master_secret)
    try:
        return _open_blob(blob, master_secret)
    except DecryptionFailed as err:
        logger.warning(
            "Token decryption failed (%s): %s", type(err).__name__, err
        )
        raise DecryptionFailed(_DECRYPTION_FAILED) from None
