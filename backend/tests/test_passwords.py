"""Unit tests for the credential store (bcrypt hashing/verification)."""

import pytest

from taskapp.core.auth import hash_password, hash_password_async, verify_password, verify_password_async


def test_hash_then_verify():
    h = hash_password("password123")
    assert h.startswith("$2")
    assert verify_password("password123", h)
    assert not verify_password("password124", h)


def test_hash_is_salted():
    assert hash_password("same-password") != hash_password("same-password")


def test_verify_against_other_passwords_hash():
    assert not verify_password("alpha-password", hash_password("beta-password"))


@pytest.mark.parametrize("bad_hash", ["", None, "not-a-bcrypt-hash", "$2b$12$short"])
def test_verify_malformed_hash_returns_false(bad_hash):
    assert verify_password("password123", bad_hash) is False


def test_long_passwords_truncate_at_72_bytes():
    base = "x" * 72
    h = hash_password(base + "tail-one")
    assert verify_password(base + "tail-two", h)


@pytest.mark.asyncio
async def test_async_wrappers_run_in_threadpool():
    h = await hash_password_async("password123")
    assert await verify_password_async("password123", h)
    assert not await verify_password_async("nope", h)
