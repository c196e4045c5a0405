"""Authentication API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from starter.api.contracts import ApiErrorResponse, MessageResponse
from starter.api.errors import unauthorized
from starter.auth.guards import (
    ADMIN_ONLY,
    STAFF_ONLY,
    AuthenticatedIdentity,
    AuthGuard,
)
from starter.auth.models import (
    AuthResult,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    RoleUpdateRequest,
    TokenPair,
    UserPublic,
)
from starter.auth.service import AuthService

UNAUTHORIZED_RESPONSES = {401: {"model": ApiErrorResponse}}
ROLE_GATED_RESPONSES = {
    401: {"model": ApiErrorResponse},
    403: {"model": ApiErrorResponse},
}


def create_auth_router(service: AuthService, guard: AuthGuard) -> APIRouter:
    """Build authentication router with session, profile and role endpoints."""
    router = APIRouter(prefix="/auth", tags=["auth"])
    current_identity = Depends(guard.get_current_identity)
    admin_identity = Depends(guard.require_roles(ADMIN_ONLY))
    staff_identity = Depends(guard.require_roles(STAFF_ONLY))

    @router.post(
        "/register",
        status_code=201,
        response_model=AuthResult,
        responses={400: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def register(req: RegisterRequest) -> AuthResult:
        """Create a USER account and return it with a token pair."""
        return service.register(
            email=str(req.email),
            username=req.username,
            password=req.password,
            first_name=req.first_name,
            last_name=req.last_name,
        )

    @router.post(
        "/login",
        response_model=AuthResult,
        responses={400: {"model": ApiErrorResponse}, **UNAUTHORIZED_RESPONSES},
    )
    def login(req: LoginRequest) -> AuthResult:
        """Authenticate user and return token pair."""
        return service.login(str(req.email), req.password)

    @router.post(
        "/refresh",
        response_model=TokenPair,
        responses=UNAUTHORIZED_RESPONSES,
    )
    def refresh(req: RefreshRequest) -> TokenPair:
        """Rotate refresh token and issue new session tokens."""
        return service.refresh_tokens(req.refresh_token)

    @router.post(
        "/logout",
        status_code=204,
        response_class=Response,
        responses=UNAUTHORIZED_RESPONSES,
    )
    def logout(
        req: RefreshRequest,
        identity: AuthenticatedIdentity = current_identity,
    ) -> Response:
        """Invalidate supplied refresh token."""
        service.logout(req.refresh_token)
        return Response(status_code=204)

    @router.post(
        "/logout-all",
        status_code=204,
        response_class=Response,
        responses=UNAUTHORIZED_RESPONSES,
    )
    def logout_all(identity: AuthenticatedIdentity = current_identity) -> Response:
        """Invalidate every refresh token held by the caller."""
        service.logout_all(identity.user_id)
        return Response(status_code=204)

    @router.get("/me", response_model=UserPublic, responses=UNAUTHORIZED_RESPONSES)
    def me(identity: AuthenticatedIdentity = current_identity) -> UserPublic:
        """Return the caller's current profile."""
        user = service.get_user_by_id(identity.user_id)
        if user is None:
            raise unauthorized("User not found or inactive")
        return user

    @router.get(
        "/admin-only",
        response_model=MessageResponse,
        responses=ROLE_GATED_RESPONSES,
    )
    def admin_only(identity: AuthenticatedIdentity = admin_identity) -> MessageResponse:
        return MessageResponse(message=f"Welcome, admin {identity.username}")

    @router.get(
        "/moderator-or-admin",
        response_model=MessageResponse,
        responses=ROLE_GATED_RESPONSES,
    )
    def moderator_or_admin(
        identity: AuthenticatedIdentity = staff_identity,
    ) -> MessageResponse:
        return MessageResponse(
            message=f"Welcome, {identity.role.lower()} {identity.username}"
        )

    @router.patch(
        "/users/{user_id}/role",
        response_model=UserPublic,
        responses={
            400: {"model": ApiErrorResponse},
            404: {"model": ApiErrorResponse},
            **ROLE_GATED_RESPONSES,
        },
    )
    def update_role(
        user_id: str,
        req: RoleUpdateRequest,
        identity: AuthenticatedIdentity = admin_identity,
    ) -> UserPublic:
        """Change another account's role; administrators only."""
        return service.update_user_role(user_id, req.role)

    return router
