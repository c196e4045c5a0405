"""Authentication service for registration, login, token rotation and revocation."""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from starter.api.errors import ApiError, ApiErrorCode, unauthorized
from starter.auth.models import (
    AuthResult,
    AuthUser,
    RefreshTokenRecord,
    Role,
    TokenPair,
    UserPublic,
)
from starter.auth.repository import AuthRepository
from starter.core.config import AuthConfig
from starter.core.db import utcnow
from starter.core.security import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    TokenClaims,
    TokenInvalidError,
    hash_password,
    issue_token,
    verify_password,
    verify_token,
)

LOGGER = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"
INVALID_REFRESH_TOKEN_MESSAGE = "Invalid refresh token"
INVALID_ACCESS_TOKEN_MESSAGE = "Invalid or expired access token"


class _RefreshRejected(Exception):
    """Internal signal carrying the reason a refresh attempt was refused."""


class AuthService:
    """Authentication domain service over the user directory and token store."""

    def __init__(self, repo: AuthRepository, config: AuthConfig) -> None:
        """Initialize service dependencies."""
        self._repo = repo
        self._config = config
        # Unknown emails are checked against this so every login pays one bcrypt verify.
        self._dummy_password_hash = hash_password(
            uuid.uuid4().hex, config.bcrypt_rounds
        )

    @property
    def access_token_ttl_seconds(self) -> int:
        return self._config.access_token_ttl_seconds

    def bootstrap_admin_user(self) -> AuthUser | None:
        """Create the configured admin account when it does not exist yet."""
        email = self._config.admin_email
        username = self._config.admin_username
        password = self._config.admin_password
        if not (email and username and password):
            return None
        if self._repo.find_user_by_email_or_username(email, username) is not None:
            return None

        admin = self._repo.create_user(
            AuthUser(
                id=uuid.uuid4().hex,
                email=email,
                username=username,
                password_hash=hash_password(password, self._config.bcrypt_rounds),
                role=Role.ADMIN,
                is_active=True,
            )
        )
        LOGGER.info("admin_user_bootstrapped", extra={"user_id": admin.id})
        return admin

    def register(
        self,
        *,
        email: str,
        username: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> AuthResult:
        """Create a USER account and open its first session."""
        if self._repo.find_user_by_email_or_username(email, username) is not None:
            raise self._conflict()

        try:
            user = self._repo.create_user(
                AuthUser(
                    id=uuid.uuid4().hex,
                    email=email,
                    username=username,
                    password_hash=hash_password(password, self._config.bcrypt_rounds),
                    first_name=first_name,
                    last_name=last_name,
                    role=Role.USER,
                    is_active=True,
                )
            )
        except IntegrityError as exc:
            # Lost a race against a concurrent registration.
            raise self._conflict() from exc

        tokens, record = self._build_session(user)
        self._repo.save_refresh_token(record)
        LOGGER.info("user_registered", extra={"user_id": user.id})
        return AuthResult(user=user.to_public(), tokens=tokens)

    def login(self, email: str, password: str) -> AuthResult:
        """Authenticate credentials and issue access/refresh token pair."""
        user = self._repo.get_user_by_email(email)
        if user is None:
            verify_password(password, self._dummy_password_hash)
            LOGGER.warning("login_rejected", extra={"reason": "unknown_email"})
            raise self._invalid_credentials()
        if not verify_password(password, user.password_hash):
            LOGGER.warning(
                "login_rejected",
                extra={"reason": "bad_password", "user_id": user.id},
            )
            raise self._invalid_credentials()
        if not user.is_active:
            LOGGER.warning(
                "login_rejected",
                extra={"reason": "account_disabled", "user_id": user.id},
            )
            raise self._invalid_credentials()

        tokens, record = self._build_session(user)
        self._repo.save_refresh_token(record)
        LOGGER.info("user_logged_in", extra={"user_id": user.id})
        return AuthResult(user=user.to_public(), tokens=tokens)

    def refresh_tokens(self, refresh_token: str) -> TokenPair:
        """Rotate a single-use refresh token into a fresh token pair.

        Every failure, expected or not, is reported as the same 401 so the
        endpoint cannot be used to probe token state.
        """
        try:
            verify_token(
                refresh_token,
                self._config.refresh_secret,
                expected_type=TOKEN_TYPE_REFRESH,
                issuer=self._config.issuer,
            )
            stored = self._repo.get_refresh_token(refresh_token)
            if stored is None:
                raise _RefreshRejected("unknown_token")
            if stored.record.expires_at <= utcnow():
                raise _RefreshRejected("expired")
            if not stored.user.is_active:
                raise _RefreshRejected("account_disabled")

            # Claims come from the current user row so role changes apply.
            tokens, record = self._build_session(stored.user)
            if not self._repo.rotate_refresh_token(refresh_token, record):
                raise _RefreshRejected("already_rotated")
        except (_RefreshRejected, TokenInvalidError) as exc:
            LOGGER.warning("refresh_rejected", extra={"reason": str(exc)})
            raise unauthorized(INVALID_REFRESH_TOKEN_MESSAGE) from None
        except Exception:
            LOGGER.exception("refresh_failed")
            raise unauthorized(INVALID_REFRESH_TOKEN_MESSAGE) from None

        LOGGER.info("tokens_refreshed", extra={"user_id": record.user_id})
        return tokens

    def logout(self, refresh_token: str) -> None:
        """Revoke one refresh token; unknown tokens are ignored."""
        removed = self._repo.delete_refresh_token(refresh_token)
        LOGGER.info("logout", extra={"removed": removed})

    def logout_all(self, user_id: str) -> None:
        """Revoke every refresh token held by ``user_id``."""
        removed = self._repo.delete_refresh_tokens_for_user(user_id)
        LOGGER.info("logout_all", extra={"user_id": user_id, "removed": removed})

    def get_user_by_id(self, user_id: str) -> UserPublic | None:
        """Return user without credential hash, or ``None``."""
        user = self._repo.get_user_by_id(user_id)
        return user.to_public() if user else None

    def update_user_role(self, user_id: str, role: Role) -> UserPublic:
        """Persist a new role for ``user_id``.

        Restricting this to administrators is the caller's job.
        """
        user = self._repo.update_user_role(user_id, role)
        if user is None:
            raise ApiError(
                status_code=404,
                error_code=ApiErrorCode.USER_NOT_FOUND,
                message="User not found",
            )
        LOGGER.info("user_role_updated", extra={"user_id": user_id})
        return user.to_public()

    def cleanup_expired_tokens(self) -> int:
        """Delete expired refresh tokens and return how many were removed.

        Runs unattended, so failures are logged and reported as zero.
        """
        try:
            removed = self._repo.delete_expired_refresh_tokens(utcnow())
        except Exception:
            LOGGER.exception("expired_tokens_cleanup_failed")
            return 0
        LOGGER.info("expired_tokens_removed", extra={"removed": removed})
        return removed

    def verify_access_token(self, token: str) -> TokenClaims:
        """Validate access token signature, expiry and type."""
        try:
            return verify_token(
                token,
                self._config.access_secret,
                expected_type=TOKEN_TYPE_ACCESS,
                issuer=self._config.issuer,
            )
        except TokenInvalidError:
            raise unauthorized(INVALID_ACCESS_TOKEN_MESSAGE) from None

    def _build_session(self, user: AuthUser) -> tuple[TokenPair, RefreshTokenRecord]:
        """Sign a token pair for ``user`` and the refresh record to persist."""
        claims = {
            "sub": user.id,
            "email": user.email,
            "username": user.username,
            "role": str(user.role),
        }
        access_token = issue_token(
            claims,
            self._config.access_secret,
            self._config.access_token_ttl_seconds,
            token_type=TOKEN_TYPE_ACCESS,
            issuer=self._config.issuer,
        )
        refresh_token = issue_token(
            claims,
            self._config.refresh_secret,
            self._config.refresh_token_ttl_seconds,
            token_type=TOKEN_TYPE_REFRESH,
            issuer=self._config.issuer,
        )
        record = RefreshTokenRecord(
            token=refresh_token,
            user_id=user.id,
            expires_at=utcnow()
            + timedelta(seconds=self._config.refresh_token_ttl_seconds),
        )
        tokens = TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=self._config.access_token_ttl_seconds,
        )
        return tokens, record

    @staticmethod
    def _invalid_credentials() -> ApiError:
        return unauthorized(
            INVALID_CREDENTIALS_MESSAGE, ApiErrorCode.AUTH_INVALID_CREDENTIALS
        )

    @staticmethod
    def _conflict() -> ApiError:
        return ApiError(
            status_code=409,
            error_code=ApiErrorCode.AUTH_CONFLICT,
            message="User with this email or username already exists",
        )
