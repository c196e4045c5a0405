"""Public API response contracts."""

from starter.api.contracts.models import (
    ActiveUserResponse,
    ActiveUsersResponse,
    ApiErrorResponse,
    BroadcastRequest,
    ConnectionTimeResponse,
    DeliveryResponse,
    HealthResponse,
    JobListResponse,
    JobStatusResponse,
    MessageResponse,
    NotificationRequest,
    RoleNotificationRequest,
    UsersStatsResponse,
)

__all__ = [
    "ActiveUserResponse",
    "ActiveUsersResponse",
    "ApiErrorResponse",
    "BroadcastRequest",
    "ConnectionTimeResponse",
    "DeliveryResponse",
    "HealthResponse",
    "JobListResponse",
    "JobStatusResponse",
    "MessageResponse",
    "NotificationRequest",
    "RoleNotificationRequest",
    "UsersStatsResponse",
]
