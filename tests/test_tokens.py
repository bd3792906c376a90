"""Tests for signed and ephemeral tokens."""
from datetime import timedelta

import pytest

from rbac_api.core.exceptions import TokenExpiredError, TokenInvalidError
from rbac_api.core.tokens import (
    PASSWORD_RESET_TOKEN_BYTES,
    VERIFY_EMAIL_TOKEN_BYTES,
    TokenClass,
    TokenIssuer,
    create_ephemeral_token,
    digest_token,
)


@pytest.fixture
def issuer():
    return TokenIssuer(
        secrets_by_class={
            TokenClass.ACCESS: "access-secret",
            TokenClass.REFRESH: "refresh-secret",
            TokenClass.LOGIN: "login-secret",
        },
        lifetimes={
            TokenClass.ACCESS: timedelta(minutes=15),
            TokenClass.REFRESH: timedelta(days=30),
            TokenClass.LOGIN: timedelta(minutes=10),
        },
        algorithm="HS256",
    )


def test_issue_and_verify(issuer):
    token = issuer.issue("user-1", TokenClass.REFRESH, session_id="sid-1")

    payload = issuer.verify(token, TokenClass.REFRESH)

    assert payload.user_id == "user-1"
    assert payload.token_class is TokenClass.REFRESH
    assert payload.session_id == "sid-1"
    assert payload.expires_at > payload.issued_at


def test_login_token_carries_token_id(issuer):
    token = issuer.issue("user-1", TokenClass.LOGIN, token_id="jti-1")

    assert issuer.verify(token, TokenClass.LOGIN).token_id == "jti-1"


@pytest.mark.parametrize(
    "issued_as,verified_as",
    [
        (TokenClass.ACCESS, TokenClass.REFRESH),
        (TokenClass.REFRESH, TokenClass.ACCESS),
        (TokenClass.LOGIN, TokenClass.ACCESS),
    ],
)
def test_token_classes_do_not_cross(issuer, issued_as, verified_as):
    """Test a token of one class never verifies as another."""
    token = issuer.issue("user-1", issued_as)

    with pytest.raises(TokenInvalidError):
        issuer.verify(token, verified_as)


def test_expired_token(issuer):
    token = issuer.issue("user-1", TokenClass.ACCESS, expires_delta=timedelta(seconds=-1))

    with pytest.raises(TokenExpiredError):
        issuer.verify(token, TokenClass.ACCESS)


def test_tampered_token(issuer):
    header, _, signature = issuer.issue("user-1", TokenClass.ACCESS).split(".")
    _, payload, _ = issuer.issue("user-2", TokenClass.ACCESS).split(".")

    with pytest.raises(TokenInvalidError):
        issuer.verify(".".join([header, payload, signature]), TokenClass.ACCESS)


def test_malformed_token(issuer):
    with pytest.raises(TokenInvalidError):
        issuer.verify("not.a.jwt", TokenClass.ACCESS)


def test_issued_at_has_sub_second_precision(issuer):
    token = issuer.issue("user-1", TokenClass.ACCESS)

    issued_at = issuer.verify(token, TokenClass.ACCESS).issued_at

    assert isinstance(issued_at, float)


def test_ephemeral_token_digest_is_deterministic():
    token = create_ephemeral_token(PASSWORD_RESET_TOKEN_BYTES, ttl=timedelta(minutes=10))

    assert token.digest == digest_token(token.plaintext)
    assert token.digest != token.plaintext
    assert token.expires_at is not None
    assert len(token.plaintext) == PASSWORD_RESET_TOKEN_BYTES * 2


def test_ephemeral_token_without_expiry():
    first = create_ephemeral_token(VERIFY_EMAIL_TOKEN_BYTES)
    second = create_ephemeral_token(VERIFY_EMAIL_TOKEN_BYTES)

    assert first.expires_at is None
    assert first.plaintext != second.plaintext
