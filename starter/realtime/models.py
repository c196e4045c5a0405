"""Real-time connection records and client event payloads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class SocketUser:
    """Authenticated user bound to one live socket."""

    id: str
    email: str
    username: str
    role: str
    socket_id: str
    connected_at: datetime

    def summary(self) -> dict[str, str]:
        return {"id": self.id, "username": self.username, "role": self.role}


class ClientEvent(BaseModel):
    """Inbound frame: ``{"event": ..., "data": {...}}``."""

    event: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class SendMessagePayload(BaseModel):
    message: str = Field(min_length=1)
    to: str | None = None


class RoomPayload(BaseModel):
    room: str = Field(min_length=1)


class RoomMessagePayload(BaseModel):
    room: str = Field(min_length=1)
    message: str = Field(min_length=1)
