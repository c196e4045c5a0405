from __future__ import annotations

import pytest

from starter.core.security import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    TokenInvalidError,
    check_password_strength,
    extract_bearer_token,
    hash_password,
    issue_token,
    verify_password,
    verify_token,
)

CLAIMS = {
    "sub": "user-1",
    "email": "alice@example.com",
    "username": "alice",
    "role": "USER",
}


def test_hash_password_verifies_only_matching_password() -> None:
    stored = hash_password("Secret123", rounds=4)

    assert stored != "Secret123"
    assert verify_password("Secret123", stored) is True
    assert verify_password("secret123", stored) is False


def test_hash_password_salts_each_hash() -> None:
    assert hash_password("Secret123", rounds=4) != hash_password("Secret123", rounds=4)


def test_verify_password_returns_false_for_malformed_hash() -> None:
    assert verify_password("Secret123", "not-a-bcrypt-hash") is False


def test_issue_and_verify_token_round_trip_claims() -> None:
    token = issue_token(
        CLAIMS, "access-secret", 60, token_type=TOKEN_TYPE_ACCESS, issuer="test"
    )

    claims = verify_token(token, "access-secret", expected_type=TOKEN_TYPE_ACCESS, issuer="test")

    assert claims.sub == "user-1"
    assert claims.email == "alice@example.com"
    assert claims.username == "alice"
    assert claims.role == "USER"
    assert claims.exp - claims.iat == 60


def test_tokens_issued_back_to_back_differ() -> None:
    first = issue_token(CLAIMS, "secret", 60, token_type=TOKEN_TYPE_REFRESH, issuer="test")
    second = issue_token(CLAIMS, "secret", 60, token_type=TOKEN_TYPE_REFRESH, issuer="test")

    assert first != second


def test_verify_token_rejects_wrong_secret() -> None:
    token = issue_token(CLAIMS, "access-secret", 60, token_type=TOKEN_TYPE_ACCESS, issuer="test")

    with pytest.raises(TokenInvalidError):
        verify_token(token, "other-secret", expected_type=TOKEN_TYPE_ACCESS, issuer="test")


def test_verify_token_rejects_wrong_token_type() -> None:
    token = issue_token(CLAIMS, "secret", 60, token_type=TOKEN_TYPE_ACCESS, issuer="test")

    with pytest.raises(TokenInvalidError):
        verify_token(token, "secret", expected_type=TOKEN_TYPE_REFRESH, issuer="test")


def test_verify_token_rejects_foreign_issuer() -> None:
    token = issue_token(CLAIMS, "secret", 60, token_type=TOKEN_TYPE_ACCESS, issuer="other")

    with pytest.raises(TokenInvalidError):
        verify_token(token, "secret", expected_type=TOKEN_TYPE_ACCESS, issuer="test")


def test_verify_token_rejects_expired_token() -> None:
    token = issue_token(CLAIMS, "secret", -5, token_type=TOKEN_TYPE_ACCESS, issuer="test")

    with pytest.raises(TokenInvalidError):
        verify_token(token, "secret", expected_type=TOKEN_TYPE_ACCESS, issuer="test")


def test_verify_token_rejects_garbage() -> None:
    with pytest.raises(TokenInvalidError):
        verify_token("not.a.jwt", "secret", expected_type=TOKEN_TYPE_ACCESS, issuer="test")


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer abc.def.ghi", None),
        ("Basic abc", None),
        ("Bearer ", None),
        ("Bearer a b", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header: str | None, expected: str | None) -> None:
    assert extract_bearer_token(header) == expected


@pytest.mark.parametrize(
    "password, reason",
    [
        ("Ab1", "at least 8"),
        ("Ab1" + "é" * 35, "at most 72 bytes"),
        ("NOLOWER123", "lowercase"),
        ("noupper123", "uppercase"),
        ("NoDigitsHere", "digit"),
    ],
)
def test_check_password_strength_rejects(password: str, reason: str) -> None:
    with pytest.raises(ValueError, match=reason):
        check_password_strength(password)


def test_check_password_strength_accepts_policy_password() -> None:
    assert check_password_strength("Secret123") == "Secret123"
