"""
Tests for UserTokenStore.

Uses an in-memory asyncpg-like pool that understands the store's statements.
"""
import re
import uuid
import asyncio
import threading
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest

from token_custody.vault import (
    TokenCipher,
    TokenPair,
    UserRecord,
    UserTokenStore,
    ReauthenticationRequired,
)
from token_custody.vault.crypto import decode_blob, encode_blob

_PUBLIC = ("id", "provider_user_id", "username", "display_name", "avatar_url", "created_at")


class FakeConnection:
    def __init__(self, rows: dict):
        self.rows = rows

    def _public(self, row):
        return {name: row[name] for name in _PUBLIC}

    async def fetchrow(self, sql: str, *args):
        sql = " ".join(sql.split())
        if sql.startswith("INSERT INTO users"):
            row = dict(
                id=uuid.uuid4(),
                provider_user_id=args[0],
                username=args[1],
                display_name=args[2],
                avatar_url=args[3],
                access_token=args[4],
                refresh_token=args[5],
                created_at=datetime.now(timezone.utc),
            )
            self.rows[str(row["id"])] = row
            return self._public(row)
        if sql.startswith("SELECT access_token"):
            row = self.rows.get(args[0])
            if row is None:
                return None
            return {"access_token": row["access_token"], "refresh_token": row["refresh_token"]}
        if "WHERE provider_user_id = $1" in sql:
            for row in self.rows.values():
                if row["provider_user_id"] == args[0]:
                    return self._public(row)
            return None
        if sql.startswith("SELECT"):
            row = self.rows.get(args[0])
            return self._public(row) if row else None
        if sql.startswith("UPDATE users SET"):
            row = self.rows.get(args[0])
            if row is None:
                return None
            for name, idx in re.findall(r"(\w+) = \$(\d+)", sql):
                row[name] = args[int(idx) - 1]
            return self._public(row)
        raise AssertionError(f"unexpected fetchrow: {sql}")

    async def execute(self, sql: str, *args):
        sql = " ".join(sql.split())
        if sql.startswith("UPDATE users SET access_token"):
            row = self.rows.get(args[0])
            if row is None:
                return "UPDATE 0"
            row["access_token"], row["refresh_token"] = args[1], args[2]
            return "UPDATE 1"
        if sql.startswith("DELETE FROM users"):
            return "DELETE 1" if self.rows.pop(args[0], None) else "DELETE 0"
        raise AssertionError(f"unexpected execute: {sql}")


class FakePool:
    def __init__(self):
        self.rows: dict = {}

    @asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self.rows)


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def store(cipher, pool):
    return UserTokenStore(cipher, pool)


@pytest.fixture
def tokens():
    return TokenPair(access_token="act.access-123", refresh_token="rft.refresh-456")


async def create(store, tokens, provider_user_id="open-id-1"):
    return await store.create_user(
        provider_user_id=provider_user_id,
        username="jdoe",
        display_name="Jane Doe",
        avatar_url="https://cdn.example.com/a.png",
        tokens=tokens,
    )


class TestCreateUser:

    @pytest.mark.asyncio
    async def test_tokens_encrypted_at_rest(self, store, pool, tokens):
        """Test only blobs reach the database."""
        user = await create(store, tokens)
        row = pool.rows[user.id]

        assert row["access_token"] != tokens.access_token
        assert row["refresh_token"] != tokens.refresh_token
        assert len(row["access_token"].split(":")) == 4
        assert len(row["refresh_token"].split(":")) == 4

    @pytest.mark.asyncio
    async def test_returns_public_record(self, store, tokens):
        """Test the returned record carries profile fields only."""
        user = await create(store, tokens)

        assert isinstance(user, UserRecord)
        assert user.provider_user_id == "open-id-1"
        assert user.username == "jdoe"
        assert user.display_name == "Jane Doe"

    def test_token_pair_repr_hides_tokens(self, tokens):
        assert tokens.access_token not in repr(tokens)
        assert tokens.refresh_token not in repr(tokens)


class TestLookup:

    @pytest.mark.asyncio
    async def test_find_by_provider_user_id(self, store, tokens):
        user = await create(store, tokens)
        found = await store.find_by_provider_user_id("open-id-1")
        assert found is not None
        assert found.id == user.id

    @pytest.mark.asyncio
    async def test_find_by_id(self, store, tokens):
        user = await create(store, tokens)
        found = await store.find_by_id(user.id)
        assert found.username == "jdoe"

    @pytest.mark.asyncio
    async def test_missing_user(self, store):
        assert await store.find_by_id(str(uuid.uuid4())) is None
        assert await store.find_by_provider_user_id("nobody") is None


class TestTokens:

    @pytest.mark.asyncio
    async def test_get_decrypted_tokens(self, store, tokens):
        """Test stored tokens decrypt to the originals."""
        user = await create(store, tokens)
        assert await store.get_decrypted_tokens(user.id) == tokens

    @pytest.mark.asyncio
    async def test_update_tokens_replaces_blobs(self, store, pool, tokens):
        """Test a refresh writes new blobs instead of mutating old ones."""
        user = await create(store, tokens)
        old = dict(pool.rows[user.id])
        rotated = TokenPair(access_token="act.new", refresh_token="rft.new")

        await store.update_tokens(user.id, rotated)

        row = pool.rows[user.id]
        assert row["access_token"] != old["access_token"]
        assert row["refresh_token"] != old["refresh_token"]
        assert await store.get_decrypted_tokens(user.id) == rotated

    @pytest.mark.asyncio
    async def test_same_token_new_blob(self, store, pool, tokens):
        """Test re-storing the same tokens still produces fresh blobs."""
        user = await create(store, tokens)
        old = pool.rows[user.id]["access_token"]
        await store.update_tokens(user.id, tokens)
        assert pool.rows[user.id]["access_token"] != old

    @pytest.mark.asyncio
    async def test_missing_user_has_no_tokens(self, store):
        assert await store.get_decrypted_tokens(str(uuid.uuid4())) is None

    @pytest.mark.asyncio
    async def test_null_tokens(self, store, pool, tokens):
        """Test a user without stored tokens yields None."""
        user = await create(store, tokens)
        pool.rows[user.id]["refresh_token"] = None
        assert await store.get_decrypted_tokens(user.id) is None

    @pytest.mark.asyncio
    async def test_tampered_blob_requires_reauth(self, store, pool, tokens, caplog):
        """Test an unusable blob asks for re-authentication."""
        user = await create(store, tokens)
        salt, iv, tag, ct = decode_blob(pool.rows[user.id]["access_token"])
        tampered = encode_blob(salt, iv, tag, bytes([ct[0] ^ 1]) + ct[1:])
        pool.rows[user.id]["access_token"] = tampered

        with caplog.at_level(logging.WARNING, logger="token_custody.vault"):
            with pytest.raises(ReauthenticationRequired) as exc_info:
                await store.get_decrypted_tokens(user.id)

        assert exc_info.value.user_id == user.id
        assert user.id in caplog.text
        assert tampered not in caplog.text
        assert tokens.refresh_token not in caplog.text

    @pytest.mark.asyncio
    async def test_foreign_secret_requires_reauth(self, pool, tokens, other_secret, store):
        """Test blobs written under another master secret are unusable."""
        foreign = UserTokenStore(TokenCipher(other_secret), pool)
        user = await create(foreign, tokens)

        with pytest.raises(ReauthenticationRequired):
            await store.get_decrypted_tokens(user.id)


class TestProfile:

    @pytest.mark.asyncio
    async def test_update_profile(self, store, tokens):
        user = await create(store, tokens)
        updated = await store.update_profile(user.id, display_name="J. Doe")

        assert updated.display_name == "J. Doe"
        assert updated.username == "jdoe"

    @pytest.mark.asyncio
    async def test_update_profile_rejects_token_fields(self, store, tokens):
        """Test tokens cannot be written through the profile API."""
        user = await create(store, tokens)
        with pytest.raises(ValueError):
            await store.update_profile(user.id, access_token="plaintext")

    @pytest.mark.asyncio
    async def test_empty_update_returns_current(self, store, tokens):
        user = await create(store, tokens)
        current = await store.update_profile(user.id)
        assert current.id == user.id


class TestDeleteUser:

    @pytest.mark.asyncio
    async def test_delete_removes_tokens(self, store, pool, tokens):
        """Test deleting a user removes its blobs."""
        user = await create(store, tokens)
        await store.delete_user(user.id)

        assert user.id not in pool.rows
        assert await store.get_decrypted_tokens(user.id) is None


class ThreadRecordingCipher(TokenCipher):
    """TokenCipher that records the thread of every encrypt/decrypt call."""

    def __init__(self, secret):
        super().__init__(secret)
        self.threads = []

    def encrypt(self, plaintext):
        self.threads.append(threading.get_ident())
        return super().encrypt(plaintext)

    def decrypt(self, blob):
        self.threads.append(threading.get_ident())
        return super().decrypt(blob)


class TestEventLoop:
    """Key derivation must not run on the event loop thread."""

    @pytest.mark.asyncio
    async def test_cipher_runs_off_loop(self, pool, tokens, master_secret):
        """Test create, update and decrypt run the cipher in a worker thread."""
        cipher = ThreadRecordingCipher(master_secret)
        store = UserTokenStore(cipher, pool)
        loop_thread = threading.get_ident()

        user = await create(store, tokens)
        await store.update_tokens(user.id, tokens)
        assert await store.get_decrypted_tokens(user.id) == tokens

        assert len(cipher.threads) == 6
        assert loop_thread not in cipher.threads

    @pytest.mark.asyncio
    async def test_loop_keeps_ticking(self, store, tokens):
        """Test other tasks keep running while tokens are decrypted."""
        user = await create(store, tokens)
        ticks = 0
        done = asyncio.Event()

        async def ticker():
            nonlocal ticks
            while not done.is_set():
                ticks += 1
                await asyncio.sleep(0)

        task = asyncio.create_task(ticker())
        try:
            assert await store.get_decrypted_tokens(user.id) == tokens
        finally:
            done.set()
            await task
        assert ticks > 0
