"""Request guards that resolve bearer identities and enforce roles."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Header, Request

from starter.api.errors import ApiError, ApiErrorCode, unauthorized
from starter.auth.models import Role
from starter.auth.service import AuthService
from starter.core.security import extract_bearer_token


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """Identity attached to a request once its access token checks out."""

    user_id: str
    email: str
    username: str
    role: Role


@dataclass(frozen=True)
class RouteAccess:
    """Per-route access policy; an empty role set admits any identity."""

    required_roles: frozenset[Role] = frozenset()

    @classmethod
    def roles(cls, *roles: Role) -> "RouteAccess":
        return cls(required_roles=frozenset(roles))


ADMIN_ONLY = RouteAccess.roles(Role.ADMIN)
STAFF_ONLY = RouteAccess.roles(Role.ADMIN, Role.MODERATOR)


def check_roles(identity: AuthenticatedIdentity, access: RouteAccess) -> AuthenticatedIdentity:
    """Return ``identity`` when its role satisfies ``access``, else raise 403."""
    if access.required_roles and identity.role not in access.required_roles:
        raise ApiError(
            status_code=403,
            error_code=ApiErrorCode.AUTH_FORBIDDEN,
            message="Insufficient permissions",
        )
    return identity


class AuthGuard:
    """Resolve access tokens into identities, re-checking the user on every call."""

    def __init__(self, service: AuthService) -> None:
        self._service = service

    def authenticate_token(self, token: str | None) -> AuthenticatedIdentity:
        """Verify ``token`` and confirm its subject still exists and is active."""
        if not token:
            raise unauthorized("Missing bearer token", ApiErrorCode.AUTH_MISSING_TOKEN)
        claims = self._service.verify_access_token(token)
        user = self._service.get_user_by_id(claims.sub)
        if user is None or not user.is_active:
            raise unauthorized("User not found or inactive")
        return AuthenticatedIdentity(
            user_id=user.id,
            email=user.email,
            username=user.username,
            role=user.role,
        )

    def get_current_identity(
        self,
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> AuthenticatedIdentity:
        """FastAPI dependency: authenticate the bearer header and attach identity."""
        identity = self.authenticate_token(extract_bearer_token(authorization))
        request.state.identity = identity
        return identity

    def require_roles(self, access: RouteAccess) -> Callable[..., AuthenticatedIdentity]:
        """Build a dependency enforcing ``access`` on top of :meth:`get_current_identity`."""

        def dependency(
            identity: AuthenticatedIdentity = Depends(self.get_current_identity),
        ) -> AuthenticatedIdentity:
            return check_roles(identity, access)

        return dependency
