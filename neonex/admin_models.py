"""Data records used by the admin module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def _iso(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


@dataclass
class DashboardStats:
    """Overall system statistics; ``system_uptime`` is in seconds."""

    total_users: int = 0
    active_users: int = 0
    total_modules: int = 0
    active_modules: int = 0
    total_roles: int = 0
    total_permissions: int = 0
    system_uptime: float = 0.0
    last_backup: datetime | None = None


@dataclass
class SystemHealth:
    """Health and resource figures for the running process."""

    status: str = "healthy"
    database_status: str = ""
    memory_usage_mb: float = 0.0
    thread_count: int = 0
    cpu_usage: float = 0.0
    disk_usage_percent: float = 0.0
    uptime_seconds: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class AuditLog:
    """One recorded user action."""

    user_id: int = 0
    username: str = ""
    action: str = ""
    resource: str = ""
    resource_id: str = ""
    description: str = ""
    ip_address: str = ""
    user_agent: str = ""
    status: str = ""
    error_message: str = ""
    metadata: str = ""
    created_at: datetime | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form; empty ``error_message`` and ``metadata`` are left out."""
        data: dict[str, Any] = {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.username,
            "action": self.action,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "description": self.description,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "status": self.status,
        }
        if self.error_message:
            data["error_message"] = self.error_message
        if self.metadata:
            data["metadata"] = self.metadata
        data["created_at"] = _iso(self.created_at)
        return data


@dataclass
class ActivitySummary:
    total_actions: int = 0
    actions_by_type: dict[str, int] = field(default_factory=dict)
    actions_by_user: dict[str, int] = field(default_factory=dict)
    recent_activities: list[AuditLog] = field(default_factory=list)


@dataclass
class SystemSettings:
    """A global setting; ``type`` is one of string, int, bool or json."""

    key: str
    value: str = ""
    type: str = ""
    category: str = ""
    description: str = ""
    is_public: bool = False
    updated_by: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "type": self.type,
            "category": self.category,
            "description": self.description,
            "is_public": self.is_public,
            "updated_by": self.updated_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class BackupInfo:
    """A backup record; ``type`` is full or incremental."""

    filename: str = ""
    size: int = 0
    type: str = ""
    status: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: int = 0
    id: int | None = None