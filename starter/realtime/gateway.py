"""WebSocket fan-out: live connections, rooms and client event handling."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError

from starter.api.errors import ApiErrorCode
from starter.auth.guards import AuthenticatedIdentity
from starter.core.db import utcnow
from starter.realtime.models import (
    ClientEvent,
    RoomMessagePayload,
    RoomPayload,
    SendMessagePayload,
    SocketUser,
)
from starter.realtime.socket_manager import SocketManager

LOGGER = logging.getLogger(__name__)


def _timestamp() -> str:
    return utcnow().isoformat()


class RealtimeGateway:
    """Own live sockets and room membership on top of :class:`SocketManager`.

    Every method runs on the event loop; delivery is best effort and a
    failing socket is logged and skipped.
    """

    def __init__(self, manager: SocketManager) -> None:
        self._manager = manager
        self._sockets: dict[str, WebSocket] = {}
        self._rooms: dict[str, set[str]] = {}

    @property
    def manager(self) -> SocketManager:
        return self._manager

    async def connect(
        self, websocket: WebSocket, identity: AuthenticatedIdentity
    ) -> SocketUser:
        """Register an accepted socket and announce the arrival."""
        socket_id = uuid.uuid4().hex
        self._sockets[socket_id] = websocket
        user = self._manager.add_user(socket_id, identity)

        await self._emit(
            socket_id,
            "connected",
            {
                "message": "Successfully connected to WebSocket",
                "user": {**user.summary(), "email": user.email},
                "timestamp": _timestamp(),
            },
        )
        await self.broadcast_to_all(
            "user-connected",
            {
                "user": user.summary(),
                "timestamp": _timestamp(),
                "active_users_count": self._manager.get_active_users_count(),
            },
        )
        return user

    async def disconnect(self, socket_id: str) -> None:
        """Forget ``socket_id`` and announce the departure."""
        self._sockets.pop(socket_id, None)
        for members in self._rooms.values():
            members.discard(socket_id)
        self._rooms = {room: members for room, members in self._rooms.items() if members}

        user = self._manager.remove_user(socket_id)
        if user is None:
            return
        await self.broadcast_to_all(
            "user-disconnected",
            {
                "user": user.summary(),
                "timestamp": _timestamp(),
                "active_users_count": self._manager.get_active_users_count(),
            },
        )

    async def disconnect_user(self, user_id: str) -> bool:
        """Close the user's current socket, if any."""
        socket_id = self._manager.get_user_socket_id(user_id)
        if socket_id is None:
            return False
        websocket = self._sockets.get(socket_id)
        await self.disconnect(socket_id)
        if websocket is not None:
            await websocket.close()
        return True

    async def send_to_user(self, user_id: str, event: str, data: Any) -> bool:
        socket_id = self._manager.get_user_socket_id(user_id)
        if socket_id is None:
            return False
        return await self._emit(socket_id, event, data)

    async def broadcast_to_all(self, event: str, data: Any) -> int:
        return await self._emit_many(list(self._sockets), event, data)

    async def broadcast_to_room(self, room: str, event: str, data: Any) -> int:
        return await self._emit_many(list(self._rooms.get(room, ())), event, data)

    async def broadcast_to_role(self, role: str, event: str, data: Any) -> int:
        socket_ids = [user.socket_id for user in self._manager.get_active_users_by_role(role)]
        return await self._emit_many(socket_ids, event, data)

    async def handle_frame(self, socket_id: str, raw: str) -> None:
        """Dispatch one inbound text frame from ``socket_id``."""
        user = self._manager.get_user_by_socket_id(socket_id)
        if user is None:
            return
        try:
            frame = ClientEvent.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            await self._emit_error(socket_id, "Malformed event frame", ApiErrorCode.VALIDATION_ERROR)
            return

        handlers = {
            "get-active-users": self._on_get_active_users,
            "get-users-stats": self._on_get_users_stats,
            "send-message": self._on_send_message,
            "join-room": self._on_join_room,
            "leave-room": self._on_leave_room,
            "room-message": self._on_room_message,
        }
        handler = handlers.get(frame.event)
        if handler is None:
            await self._emit_error(
                socket_id, f"Unknown event: {frame.event}", ApiErrorCode.VALIDATION_ERROR
            )
            return
        try:
            await handler(user, frame.data)
        except ValidationError:
            await self._emit_error(
                socket_id, f"Invalid payload for {frame.event}", ApiErrorCode.VALIDATION_ERROR
            )

    async def reject_frame(self, socket_id: str, message: str) -> None:
        """Answer a frame that cannot be decoded as a text event."""
        await self._emit_error(socket_id, message, ApiErrorCode.VALIDATION_ERROR)

    async def _on_get_active_users(self, user: SocketUser, data: dict[str, Any]) -> None:
        users = self._manager.get_all_active_users()
        await self._emit(
            user.socket_id,
            "active-users",
            {
                "users": [
                    {**active.summary(), "connected_at": active.connected_at}
                    for active in users
                ],
                "count": len(users),
            },
        )

    async def _on_get_users_stats(self, user: SocketUser, data: dict[str, Any]) -> None:
        await self._emit(user.socket_id, "users-stats", self._manager.get_active_users_stats())

    async def _on_send_message(self, user: SocketUser, data: dict[str, Any]) -> None:
        payload = SendMessagePayload.model_validate(data)
        message = {
            "from": user.summary(),
            "message": payload.message,
            "timestamp": _timestamp(),
        }
        if not payload.to:
            await self.broadcast_to_all("broadcast-message", message)
            return
        if await self.send_to_user(payload.to, "private-message", message):
            await self._emit(user.socket_id, "message-sent", {**message, "to": payload.to})
        else:
            await self._emit_error(
                user.socket_id, "User not found or offline", ApiErrorCode.REALTIME_USER_OFFLINE
            )

    async def _on_join_room(self, user: SocketUser, data: dict[str, Any]) -> None:
        room = RoomPayload.model_validate(data).room
        others = list(self._rooms.get(room, set()) - {user.socket_id})
        self._rooms.setdefault(room, set()).add(user.socket_id)
        await self._emit_many(
            others,
            "user-joined-room",
            {"user": user.summary(), "room": room, "timestamp": _timestamp()},
        )
        await self._emit(
            user.socket_id,
            "joined-room",
            {"room": room, "message": f"Successfully joined room: {room}"},
        )

    async def _on_leave_room(self, user: SocketUser, data: dict[str, Any]) -> None:
        room = RoomPayload.model_validate(data).room
        members = self._rooms.get(room, set())
        members.discard(user.socket_id)
        if not members:
            self._rooms.pop(room, None)
        await self._emit_many(
            list(members),
            "user-left-room",
            {"user": user.summary(), "room": room, "timestamp": _timestamp()},
        )
        await self._emit(
            user.socket_id,
            "left-room",
            {"room": room, "message": f"Successfully left room: {room}"},
        )

    async def _on_room_message(self, user: SocketUser, data: dict[str, Any]) -> None:
        payload = RoomMessagePayload.model_validate(data)
        await self.broadcast_to_room(
            payload.room,
            "room-message",
            {
                "from": user.summary(),
                "message": payload.message,
                "room": payload.room,
                "timestamp": _timestamp(),
            },
        )

    async def _emit_error(self, socket_id: str, message: str, code: ApiErrorCode) -> None:
        await self._emit(socket_id, "error", {"error_code": str(code), "message": message})

    async def _emit_many(self, socket_ids: list[str], event: str, data: Any) -> int:
        delivered = 0
        for socket_id in socket_ids:
            if await self._emit(socket_id, event, data):
                delivered += 1
        return delivered

    async def _emit(self, socket_id: str, event: str, data: Any) -> bool:
        websocket = self._sockets.get(socket_id)
        if websocket is None:
            return False
        frame = jsonable_encoder({"event": event, "data": data})
        try:
            await websocket.send_json(frame)
        except (WebSocketDisconnect, RuntimeError, OSError):
            LOGGER.warning("socket_send_failed", extra={"socket_id": socket_id})
            return False
        return True
