"""Registry of authenticated users currently holding a live socket."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any

from starter.auth.guards import AuthenticatedIdentity
from starter.core.db import utcnow
from starter.realtime.models import SocketUser

LOGGER = logging.getLogger(__name__)


class SocketManager:
    """Track socket-to-user and user-to-socket bindings.

    A user maps to its most recent socket; earlier sockets of the same user
    stay registered until they disconnect.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._users_by_socket: dict[str, SocketUser] = {}
        self._socket_by_user: dict[str, str] = {}

    def add_user(self, socket_id: str, identity: AuthenticatedIdentity) -> SocketUser:
        user = SocketUser(
            id=identity.user_id,
            email=identity.email,
            username=identity.username,
            role=str(identity.role),
            socket_id=socket_id,
            connected_at=utcnow(),
        )
        with self._lock:
            self._users_by_socket[socket_id] = user
            self._socket_by_user[user.id] = socket_id
        LOGGER.info("socket_connected", extra={"user_id": user.id, "socket_id": socket_id})
        return user

    def remove_user(self, socket_id: str) -> SocketUser | None:
        with self._lock:
            user = self._users_by_socket.pop(socket_id, None)
            if user is None:
                return None
            if self._socket_by_user.get(user.id) == socket_id:
                del self._socket_by_user[user.id]
        LOGGER.info("socket_disconnected", extra={"user_id": user.id, "socket_id": socket_id})
        return user

    def get_user_by_socket_id(self, socket_id: str) -> SocketUser | None:
        with self._lock:
            return self._users_by_socket.get(socket_id)

    def get_user_socket_id(self, user_id: str) -> str | None:
        with self._lock:
            return self._socket_by_user.get(user_id)

    def is_user_connected(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._socket_by_user

    def get_all_active_users(self) -> list[SocketUser]:
        with self._lock:
            return list(self._users_by_socket.values())

    def get_active_users_count(self) -> int:
        with self._lock:
            return len(self._users_by_socket)

    def get_active_users_by_role(self, role: str) -> list[SocketUser]:
        return [user for user in self.get_all_active_users() if user.role == role]

    def get_active_users_stats(self) -> dict[str, Any]:
        """Return total count, per-role counts and connection times."""
        users = self.get_all_active_users()
        users_by_role: dict[str, int] = {}
        for user in users:
            users_by_role[user.role] = users_by_role.get(user.role, 0) + 1
        return {
            "total_users": len(users),
            "users_by_role": users_by_role,
            "connection_times": [
                {"user_id": user.id, "connected_at": user.connected_at}
                for user in users
            ],
        }

    def disconnect_user(self, user_id: str) -> bool:
        """Drop the user's current socket binding; ``False`` if none."""
        socket_id = self.get_user_socket_id(user_id)
        if socket_id is None:
            return False
        return self.remove_user(socket_id) is not None
