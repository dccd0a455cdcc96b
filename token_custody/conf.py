"""Token Custody settings and constants."""

# Environment variable holding the master secret.
ENCRYPTION_KEY_ENV = "ENCRYPTION_KEY"

# Minimum master secret length, in characters.
MIN_SECRET_LENGTH = 32

# aiohttp application keys (names only, see ``token_custody.web``).
TOKEN_CIPHER = "token_custody.cipher"
TOKEN_STORE = "token_custody.store"
