import pytest

from token_custody.vault import TokenCipher

MASTER_SECRET = "0123456789abcdef0123456789abcdef"
OTHER_SECRET = "fedcba9876543210fedcba9876543210"


@pytest.fixture
def master_secret():
    return MASTER_SECRET


@pytest.fixture
def other_secret():
    return OTHER_SECRET


@pytest.fixture
def cipher():
    """TokenCipher bound to the test master secret."""
    return TokenCipher(MASTER_SECRET)
