"""Vault exceptions.

``MalformedInput`` and ``AuthenticationFailed`` are raised by the internal
decoding and decryption helpers only. ``decrypt_token`` logs the subtype and
re-raises a plain ``DecryptionFailed`` so callers cannot tell them apart.
"""


class TokenCustodyError(Exception):
    """Base class for all token custody errors."""


class ConfigurationError(TokenCustodyError):
    """Master secret is missing or does not satisfy the length policy."""


class DecryptionFailed(TokenCustodyError):
    """A stored token blob could not be decrypted.

    The credential is unusable: callers should prompt the user to
    re-authenticate instead of trying to repair the stored value.
    """


class MalformedInput(DecryptionFailed):
    """Blob is not four valid hex fields of the expected sizes."""


class AuthenticationFailed(DecryptionFailed):
    """GCM tag verification failed (tampering or wrong master secret)."""


class ReauthenticationRequired(TokenCustodyError):
    """Stored tokens for a user are unusable and consent must be requested again."""

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(
            f"Stored tokens for user {user_id} are unusable, re-authentication required"
        )
