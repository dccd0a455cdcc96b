"""
UserTokenStore — Persistence of OAuth users with their tokens encrypted at rest.

Provides the public API used by the OAuth callback and by outbound API calls:
- ``create_user(...)`` — insert a user with freshly encrypted tokens
- ``find_by_provider_user_id(id)`` / ``find_by_id(id)`` — look up a user
- ``update_tokens(user_id, tokens)`` — replace both token blobs
- ``update_profile(user_id, **fields)`` — update public profile fields
- ``get_decrypted_tokens(user_id)`` — decrypt tokens for an outbound call
- ``delete_user(user_id)`` — remove a user and its tokens

Security Note:
    Never log tokens or blobs. Only log user IDs and operations.
    Token blobs are never mutated in place, every update writes new blobs.
"""
import asyncio
import logging
from typing import Any, Optional
from dataclasses import dataclass, field
from datetime import datetime

from datamodel import BaseModel

from .cipher import TokenCipher
from .exceptions import DecryptionFailed, ReauthenticationRequired

logger = logging.getLogger("token_custody.vault")

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_USER_COLUMNS = "id, provider_user_id, username, display_name, avatar_url, created_at"

_INSERT_USER = f"""
INSERT INTO users (provider_user_id, username, display_name, avatar_url,
                   access_token, refresh_token)
VALUES ($1, $2, $3, $4, $5, $6)
RETURNING {_USER_COLUMNS}
"""

_SELECT_BY_PROVIDER_ID = f"""
SELECT {_USER_COLUMNS}
FROM users
WHERE provider_user_id = $1
"""

_SELECT_BY_ID = f"""
SELECT {_USER_COLUMNS}
FROM users
WHERE id = $1
"""

_UPDATE_TOKENS = """
UPDATE users
SET access_token = $2, refresh_token = $3, updated_at = NOW()
WHERE id = $1
"""

_SELECT_TOKENS = """
SELECT access_token, refresh_token
FROM users
WHERE id = $1
"""

_DELETE_USER = """
DELETE FROM users
WHERE id = $1
"""

_PROFILE_FIELDS = ("username", "display_name", "avatar_url")


class UserRecord(BaseModel):
    """Public view of a stored user. Never carries tokens."""
    id: str
    provider_user_id: str
    username: str
    display_name: str = ''
    avatar_url: str = ''
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class TokenPair:
    """Plaintext OAuth tokens, as returned by the provider."""
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)


def _to_record(row: Any) -> UserRecord:
    return UserRecord(
        id=str(row["id"]),
        provider_user_id=row["provider_user_id"],
        username=row["username"],
        display_name=row["display_name"] or '',
        avatar_url=row["avatar_url"] or '',
        created_at=row["created_at"],
    )


class UserTokenStore:
    """Users table access with token encryption at rest.

    Tokens are encrypted by the injected ``TokenCipher`` before every write
    and decrypted only on explicit request through ``get_decrypted_tokens``.
    Sealing and opening run in a worker thread, off the event loop.
    """

    def __init__(self, cipher: TokenCipher, db_pool: Any):
        self._cipher = cipher
        self._db = db_pool

    def _seal(self, tokens: TokenPair) -> tuple[str, str]:
        return (
            self._cipher.encrypt(tokens.access_token),
            self._cipher.encrypt(tokens.refresh_token),
        )

    def _open(self, access_blob: str, refresh_blob: str) -> TokenPair:
        return TokenPair(
            access_token=self._cipher.decrypt(access_blob),
            refresh_token=self._cipher.decrypt(refresh_blob),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create_user(
        self,
        provider_user_id: str,
        username: str,
        display_name: str,
        avatar_url: str,
        tokens: TokenPair,
    ) -> UserRecord:
        """Insert a new user with encrypted tokens.

        Args:
            provider_user_id: User identifier at the OAuth provider.
            username: Provider username.
            display_name: Provider display name.
            avatar_url: Provider avatar URL.
            tokens: Plaintext tokens obtained from the code exchange.

        Returns:
            The stored user record.
        """
        access_blob, refresh_blob = await asyncio.to_thread(self._seal, tokens)
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                _INSERT_USER,
                provider_user_id, username, display_name, avatar_url,
                access_blob, refresh_blob,
            )
        user = _to_record(row)
        logger.info("Created user=%s", user.id)
        return user

    async def find_by_provider_user_id(
        self, provider_user_id: str
    ) -> Optional[UserRecord]:
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_BY_PROVIDER_ID, provider_user_id)
        return _to_record(row) if row is not None else None

    async def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_BY_ID, user_id)
        return _to_record(row) if row is not None else None

    async def update_tokens(self, user_id: str, tokens: TokenPair) -> None:
        """Replace the stored tokens of a user with freshly encrypted blobs."""
        access_blob, refresh_blob = await asyncio.to_thread(self._seal, tokens)
        async with self._db.acquire() as conn:
            await conn.execute(_UPDATE_TOKENS, user_id, access_blob, refresh_blob)
        logger.debug("Tokens updated: user=%s", user_id)

    async def update_profile(
        self, user_id: str, **fields: str
    ) -> Optional[UserRecord]:
        """Update username, display_name and/or avatar_url.

        Raises:
            ValueError: If a field outside the public profile is given.
        """
        unknown = set(fields) - set(_PROFILE_FIELDS)
        if unknown:
            raise ValueError(
                f"Cannot update profile field(s): {', '.join(sorted(unknown))}"
            )
        if not fields:
            return await self.find_by_id(user_id)
        names = [name for name in _PROFILE_FIELDS if name in fields]
        assignments = ", ".join(
            f"{name} = ${idx}" for idx, name in enumerate(names, start=2)
        )
        sql = (
            f"UPDATE users SET {assignments}, updated_at = NOW() "
            f"WHERE id = $1 RETURNING {_USER_COLUMNS}"
        )
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(sql, user_id, *(fields[n] for n in names))
        return _to_record(row) if row is not None else None

    async def get_decrypted_tokens(self, user_id: str) -> Optional[TokenPair]:
        """Decrypt the stored tokens of a user.

        Returns:
            The plaintext tokens, or None if the user does not exist or has
            no stored tokens.

        Raises:
            ReauthenticationRequired: If the stored blobs cannot be decrypted.
        """
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_TOKENS, user_id)
        if row is None:
            return None
        if not row["access_token"] or not row["refresh_token"]:
            return None
        try:
            return await asyncio.to_thread(
                self._open, row["access_token"], row["refresh_token"]
            )
        except DecryptionFailed:
            logger.error("Stored tokens unusable for user=%s", user_id)
            raise ReauthenticationRequired(user_id) from None

    async def delete_user(self, user_id: str) -> None:
        """Delete a user together with its stored tokens."""
        async with self._db.acquire() as conn:
            await conn.execute(_DELETE_USER, user_id)
        logger.info("Deleted user=%s", user_id)
