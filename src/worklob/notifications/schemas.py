"""Notification response schemas."""

from __future__ import annotations

from datetime import datetime

from worklob.schemas import CamelModel


class NotificationResponse(CamelModel):
    id: int
    type: str
    title: str
    message: str
    is_read: bool
    created_at: datetime


class NotificationListResponse(CamelModel):
    notifications: list[NotificationResponse]
    total: int
    unread: int
    page: int
    per_page: int
