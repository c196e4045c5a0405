"""Security primitives for password hashing and token signing."""

from __future__ import annotations

import re
import secrets
import time
from typing import Any

import bcrypt
import jwt
from pydantic import BaseModel, ValidationError

ALGORITHM = "HS256"
BCRYPT_MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 8
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


class TokenInvalidError(ValueError):
    """Raised for any token that cannot be trusted, whatever the cause."""


class TokenClaims(BaseModel):
    """Identity claims carried by both access and refresh tokens."""

    sub: str
    email: str
    username: str
    role: str
    type: str
    iss: str
    iat: int
    exp: int
    jti: str


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash password with bcrypt at the given cost factor."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify password against a stored bcrypt hash.

    Malformed hashes and over-long inputs return ``False`` instead of raising.
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def issue_token(
    claims: dict[str, Any],
    secret: str,
    lifetime_seconds: int,
    *,
    token_type: str,
    issuer: str,
) -> str:
    """Sign ``claims`` into a compact JWT that expires after ``lifetime_seconds``."""
    now_ts = int(time.time())
    payload = {
        **claims,
        "type": token_type,
        "iss": issuer,
        "iat": now_ts,
        "exp": now_ts + int(lifetime_seconds),
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify_token(
    token: str,
    secret: str,
    *,
    expected_type: str,
    issuer: str,
) -> TokenClaims:
    """Decode and verify a signed token, raising :class:`TokenInvalidError` on failure."""
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            issuer=issuer,
            options={"require": ["exp", "iat", "sub"]},
        )
        claims = TokenClaims.model_validate(payload)
    except jwt.PyJWTError as exc:
        raise TokenInvalidError("Invalid token") from exc
    except ValidationError as exc:
        raise TokenInvalidError("Invalid token payload") from exc

    if claims.type != expected_type:
        raise TokenInvalidError("Invalid token type")
    return claims


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from a ``Bearer <token>`` header value, else ``None``."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token or " " in token:
        return None
    return token


def check_password_strength(value: str) -> str:
    """Return ``value`` if it satisfies the password policy, else raise ``ValueError``."""
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(value.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
        raise ValueError(
            f"password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes long"
        )
    if not re.search(r"[a-z]", value):
        raise ValueError("password must contain a lowercase letter")
    if not re.search(r"[A-Z]", value):
        raise ValueError("password must contain an uppercase letter")
    if not re.search(r"\d", value):
        raise ValueError("password must contain a digit")
    return value
