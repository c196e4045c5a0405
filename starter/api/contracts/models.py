"""Pydantic API request/response models used in OpenAPI contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class MessageResponse(BaseModel):
    """Plain message payload used by example endpoints."""

    message: str


class ActiveUserResponse(BaseModel):
    """Connected real-time user."""

    id: str
    username: str
    email: str
    role: str
    connected_at: datetime


class ConnectionTimeResponse(BaseModel):
    user_id: str
    connected_at: datetime


class UsersStatsResponse(BaseModel):
    """Aggregated statistics over connected users."""

    total_users: int
    users_by_role: dict[str, int]
    connection_times: list[ConnectionTimeResponse]


class ActiveUsersResponse(BaseModel):
    """Connected users listing with stats."""

    users: list[ActiveUserResponse]
    count: int
    stats: UsersStatsResponse


class NotificationRequest(BaseModel):
    """Direct notification to one connected user."""

    user_id: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: str = "info"


class BroadcastRequest(BaseModel):
    """Announcement to every connected user."""

    message: str = Field(min_length=1)
    type: str = "announcement"


class RoleNotificationRequest(BaseModel):
    """Notification to every connected user holding ``role``."""

    role: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: str = "role-message"


class DeliveryResponse(BaseModel):
    """Outcome of a real-time delivery request."""

    success: bool
    message: str
    recipients: int


class JobStatusResponse(BaseModel):
    """Scheduled job status payload."""

    name: str
    running: bool
    interval_seconds: float
    run_count: int
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    last_error: str = ""


class JobListResponse(BaseModel):
    jobs: list[JobStatusResponse]
