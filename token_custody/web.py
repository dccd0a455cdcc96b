"""aiohttp wiring for Token Custody.

``setup_token_custody`` must be called while building the application, so a
missing or short master secret stops the process before it serves traffic.
"""
import logging
from typing import Any, Optional

from aiohttp import web

from .conf import TOKEN_CIPHER, TOKEN_STORE
from .vault import TokenCipher, UserTokenStore, VaultConfig

logger = logging.getLogger("token_custody.web")

TOKEN_CIPHER_KEY = web.AppKey(TOKEN_CIPHER, TokenCipher)
TOKEN_STORE_KEY = web.AppKey(TOKEN_STORE, UserTokenStore)


def setup_token_custody(
    app: web.Application,
    config: Optional[VaultConfig] = None,
    db_pool: Any = None,
) -> TokenCipher:
    """Register the token cipher (and the user token store) on an application.

    Args:
        app: aiohttp application being configured.
        config: Vault configuration; loaded from environment when omitted.
        db_pool: Optional asyncpg-compatible pool for the user token store.

    Returns:
        The registered TokenCipher.

    Raises:
        ConfigurationError: If the master secret is missing or too short.
    """
    if config is None:
        config = VaultConfig.from_env()
    cipher = TokenCipher(config)
    app[TOKEN_CIPHER_KEY] = cipher
    if db_pool is not None:
        app[TOKEN_STORE_KEY] = UserTokenStore(cipher, db_pool)
    logger.info(
        "Token custody enabled (store: %s)",
        "yes" if db_pool is not None else "no",
    )
    return cipher


def get_token_cipher(request: web.Request) -> TokenCipher:
    """Return the TokenCipher registered by ``setup_token_custody``."""
    cipher = request.config_dict.get(TOKEN_CIPHER_KEY)
    if cipher is None:
        raise RuntimeError(
            "Token custody is not configured, call setup_token_custody() first"
        )
    return cipher


def get_token_store(request: web.Request) -> UserTokenStore:
    """Return the UserTokenStore registered by ``setup_token_custody``."""
    store = request.config_dict.get(TOKEN_STORE_KEY)
    if store is None:
        raise RuntimeError(
            "User token store is not configured, pass db_pool to setup_token_custody()"
        )
    return store
