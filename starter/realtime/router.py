"""WebSocket endpoint and REST notification API for the real-time gateway."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, status
from starlette.concurrency import run_in_threadpool

from starter.api.contracts import (
    ActiveUserResponse,
    ActiveUsersResponse,
    ApiErrorResponse,
    BroadcastRequest,
    DeliveryResponse,
    NotificationRequest,
    RoleNotificationRequest,
    UsersStatsResponse,
)
from starter.api.errors import ApiError
from starter.auth.guards import STAFF_ONLY, AuthenticatedIdentity, AuthGuard
from starter.core.db import utcnow
from starter.core.security import extract_bearer_token
from starter.realtime.gateway import RealtimeGateway

LOGGER = logging.getLogger(__name__)


def _sender(identity: AuthenticatedIdentity) -> dict[str, str]:
    return {
        "id": identity.user_id,
        "username": identity.username,
        "role": str(identity.role),
    }


def handshake_token(websocket: WebSocket) -> str | None:
    """Resolve the handshake token: bearer header first, then ``token`` query."""
    return extract_bearer_token(websocket.headers.get("authorization")) or (
        websocket.query_params.get("token") or None
    )


def create_realtime_router(gateway: RealtimeGateway, guard: AuthGuard) -> APIRouter:
    """Build the ``/ws`` socket endpoint and ``/websocket`` REST endpoints."""
    router = APIRouter(tags=["realtime"])
    manager = gateway.manager
    current_identity = Depends(guard.get_current_identity)
    staff_identity = Depends(guard.require_roles(STAFF_ONLY))
    unauthorized_responses = {401: {"model": ApiErrorResponse}}
    role_gated_responses = {
        401: {"model": ApiErrorResponse},
        403: {"model": ApiErrorResponse},
    }

    @router.websocket("/ws")
    async def realtime_socket(websocket: WebSocket) -> None:
        try:
            identity = await run_in_threadpool(
                guard.authenticate_token, handshake_token(websocket)
            )
        except ApiError as exc:
            LOGGER.warning("socket_rejected", extra={"reason": exc.error_code})
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.accept()
        user = await gateway.connect(websocket, identity)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    await gateway.reject_frame(user.socket_id, "Binary frames are not supported")
                    continue
                await gateway.handle_frame(user.socket_id, text)
        finally:
            await gateway.disconnect(user.socket_id)

    @router.get(
        "/websocket/active-users",
        response_model=ActiveUsersResponse,
        responses=unauthorized_responses,
    )
    def active_users(
        identity: AuthenticatedIdentity = current_identity,
    ) -> ActiveUsersResponse:
        users = manager.get_all_active_users()
        return ActiveUsersResponse(
            users=[
                ActiveUserResponse(
                    id=user.id,
                    username=user.username,
                    email=user.email,
                    role=user.role,
                    connected_at=user.connected_at,
                )
                for user in users
            ],
            count=len(users),
            stats=UsersStatsResponse(**manager.get_active_users_stats()),
        )

    @router.get(
        "/websocket/users-stats",
        response_model=UsersStatsResponse,
        responses=unauthorized_responses,
    )
    def users_stats(
        identity: AuthenticatedIdentity = current_identity,
    ) -> UsersStatsResponse:
        return UsersStatsResponse(**manager.get_active_users_stats())

    @router.post(
        "/websocket/send-notification",
        response_model=DeliveryResponse,
        responses={400: {"model": ApiErrorResponse}, **unauthorized_responses},
    )
    async def send_notification(
        req: NotificationRequest,
        identity: AuthenticatedIdentity = current_identity,
    ) -> DeliveryResponse:
        """Push a notification to one connected user."""
        delivered = await gateway.send_to_user(
            req.user_id,
            "notification",
            {
                "from": _sender(identity),
                "message": req.message,
                "type": req.type,
                "timestamp": utcnow().isoformat(),
            },
        )
        return DeliveryResponse(
            success=delivered,
            message=(
                "Notification sent successfully"
                if delivered
                else "User not connected or not found"
            ),
            recipients=1 if delivered else 0,
        )

    @router.post(
        "/websocket/broadcast",
        response_model=DeliveryResponse,
        responses=role_gated_responses,
    )
    async def broadcast(
        req: BroadcastRequest,
        identity: AuthenticatedIdentity = staff_identity,
    ) -> DeliveryResponse:
        """Push an announcement to every connected user."""
        recipients = await gateway.broadcast_to_all(
            "broadcast-notification",
            {
                "from": _sender(identity),
                "message": req.message,
                "type": req.type,
                "timestamp": utcnow().isoformat(),
            },
        )
        return DeliveryResponse(
            success=True,
            message="Message broadcasted to all users",
            recipients=recipients,
        )

    @router.post(
        "/websocket/send-to-role",
        response_model=DeliveryResponse,
        responses=role_gated_responses,
    )
    async def send_to_role(
        req: RoleNotificationRequest,
        identity: AuthenticatedIdentity = staff_identity,
    ) -> DeliveryResponse:
        """Push a notification to every connected user holding a role."""
        recipients = await gateway.broadcast_to_role(
            req.role,
            "role-notification",
            {
                "from": _sender(identity),
                "message": req.message,
                "type": req.type,
                "target_role": req.role,
                "timestamp": utcnow().isoformat(),
            },
        )
        return DeliveryResponse(
            success=True,
            message=f"Message sent to {recipients} users with role: {req.role}",
            recipients=recipients,
        )

    return router
