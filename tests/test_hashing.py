"""Tests for the secret hasher."""
import bcrypt
import pytest
from argon2 import PasswordHasher

from rbac_api.core.exceptions import HashIntegrityError
from rbac_api.core.hashing import SecretHasher


@pytest.fixture
def hasher():
    # Cheap parameters keep the suite fast
    return SecretHasher(PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1))


def test_hash_is_salted(hasher):
    first = hasher.hash("secret1")
    second = hasher.hash("secret1")

    assert first != second
    assert "secret1" not in first


def test_verify(hasher):
    digest = hasher.hash("secret1")

    assert hasher.verify(digest, "secret1") is True
    assert hasher.verify(digest, "secret2") is False


@pytest.mark.parametrize("digest", ["", "not-a-digest", "$2b$garbage"])
def test_malformed_digest_raises(hasher, digest):
    with pytest.raises(HashIntegrityError):
        hasher.verify(digest, "secret1")


def test_legacy_bcrypt_digest(hasher):
    legacy = bcrypt.hashpw(b"secret1", bcrypt.gensalt(rounds=4)).decode()

    assert hasher.verify(legacy, "secret1") is True
    assert hasher.verify(legacy, "wrong") is False
    assert hasher.needs_rehash(legacy) is True
    assert hasher.needs_rehash(hasher.hash("secret1")) is False


async def test_async_variants(hasher):
    digest = await hasher.hash_async("secret1")

    assert await hasher.verify_async(digest, "secret1") is True
