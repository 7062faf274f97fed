"""Admin business logic: health, audit logging and settings management."""

from __future__ import annotations

import gc
import json
import os
import platform
import sqlite3
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from neonex.admin_models import ActivitySummary, AuditLog, SystemHealth, SystemSettings
from neonex.admin_repository import AdminRepository


class AdminError(Exception):
    """Raised when an admin operation fails."""


class SettingNotFoundError(AdminError, LookupError):
    """Raised when a setting key does not exist."""


class SettingConflictError(AdminError):
    """Raised when creating a setting whose key already exists."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _memory_usage_mb() -> float:
    try:
        with open("/proc/self/statm", encoding="ascii") as statm:
            resident_pages = int(statm.read().split()[1])
        return resident_pages * os.sysconf("SC_PAGE_SIZE") / 1024 / 1024
    except (OSError, ValueError, IndexError, AttributeError):
        pass
    try:
        import resource
    except ImportError:
        return 0.0
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    scale = 1 if sys.platform == "darwin" else 1024
    return peak * scale / 1024 / 1024


def _process_usage() -> tuple[float, int]:
    return _memory_usage_mb(), threading.active_count()


class AdminService:
    """Admin operations on top of an ``AdminRepository``.

    ``probe`` returns the process memory use in MB and its thread count.
    """

    def __init__(
        self,
        repository: AdminRepository,
        *,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utc_now,
        probe: Callable[[], tuple[float, int]] = _process_usage,
    ) -> None:
        self.repository = repository
        self._clock = clock
        self._now = now
        self._probe = probe
        self._started = clock()

    def get_system_health(self) -> SystemHealth:
        memory_mb, threads = self._probe()
        health = SystemHealth(
            status="healthy",
            database_status="connected",
            memory_usage_mb=memory_mb,
            thread_count=threads,
            uptime_seconds=self._clock() - self._started,
            details={
                "num_gc": sum(stat["collections"] for stat in gc.get_stats()),
                "python_version": platform.python_version(),
                "num_cpu": os.cpu_count(),
            },
        )
        if memory_mb > 1000 or threads > 1000:
            health.status = "degraded"
        if memory_mb > 2000 or threads > 10000:
            health.status = "critical"
        return health

    def log_activity(self, log: AuditLog) -> None:
        """Store ``log``, defaulting its time to now and its status to success."""
        if log.created_at is None:
            log.created_at = self._now()
        if not log.status:
            log.status = "success"
        self.repository.create_audit_log(log)

    def get_audit_logs(
        self, page: int, limit: int, filters: Mapping[str, Any] | None = None
    ) -> tuple[list[AuditLog], int]:
        """Page through audit logs; bad page numbers and sizes are corrected."""
        if page < 1:
            page = 1
        if limit < 1 or limit > 100:
            limit = 20
        return self.repository.get_audit_logs(page, limit, filters)

    def get_activity_summary(self, days: int) -> ActivitySummary:
        """Summarise activity; ``days`` is clamped to 1..365, defaulting to 7."""
        if days < 1:
            days = 7
        days = min(days, 365)
        return self.repository.get_activity_summary(days)

    def get_setting(self, key: str) -> SystemSettings:
        try:
            setting = self.repository.get_setting(key)
        except sqlite3.Error as exc:
            raise AdminError("Failed to retrieve setting") from exc
        if setting is None:
            raise SettingNotFoundError("Setting not found")
        return setting

    def get_settings_by_category(self, category: str) -> list[SystemSettings]:
        try:
            return self.repository.get_settings_by_category(category)
        except sqlite3.Error as exc:
            raise AdminError("Failed to retrieve settings") from exc

    def get_all_settings(self, include_private: bool = True) -> list[SystemSettings]:
        try:
            settings = self.repository.get_all_settings()
        except sqlite3.Error as exc:
            raise AdminError("Failed to retrieve settings") from exc
        if include_private:
            return settings
        return [setting for setting in settings if setting.is_public]

    def create_setting(self, setting: SystemSettings) -> None:
        try:
            existing = self.repository.get_setting(setting.key)
        except sqlite3.Error:
            existing = None
        if existing is not None:
            raise SettingConflictError("Setting already exists")
        try:
            self.repository.create_setting(setting)
        except sqlite3.Error as exc:
            raise AdminError("Failed to create setting") from exc

    def update_setting(self, key: str, value: str, updated_by: int) -> None:
        self.get_setting(key)
        try:
            self.repository.update_setting(key, value, updated_by)
        except sqlite3.Error as exc:
            raise AdminError("Failed to update setting") from exc

    def delete_setting(self, key: str) -> None:
        try:
            self.repository.delete_setting(key)
        except sqlite3.Error as exc:
            raise AdminError("Failed to delete setting") from exc

    def get_setting_value(self, key: str) -> Any:
        """Return the setting parsed by its type; unparsable values come back as text."""
        setting = self.get_setting(key)
        if setting.type not in ("int", "bool", "json"):
            return setting.value
        try:
            parsed = json.loads(setting.value)
        except ValueError:
            return setting.value
        if setting.type == "json":
            return parsed
        if setting.type == "int":
            if parsed is None:
                return 0
            if isinstance(parsed, int) and not isinstance(parsed, bool):
                return parsed
            return setting.value
        if parsed is None:
            return False
        return parsed if isinstance(parsed, bool) else setting.value

    def set_setting_value(self, key: str, value: Any, updated_by: int) -> None:
        """Store ``value``, JSON-encoding anything that is not a string."""
        if isinstance(value, str):
            text = value
        else:
            try:
                text = json.dumps(value)
            except (TypeError, ValueError) as exc:
                raise AdminError("Failed to marshal value") from exc
        self.update_setting(key, text, updated_by)

    def log_admin_action(
        self,
        user_id: int,
        username: str,
        action: str,
        resource: str,
        resource_id: str,
        status: str,
        metadata: Any = None,
    ) -> None:
        metadata_text = ""
        if metadata is not None:
            try:
                metadata_text = json.dumps(metadata)
            except (TypeError, ValueError):
                metadata_text = ""
        self.log_activity(
            AuditLog(
                user_id=user_id,
                username=username,
                action=action,
                resource=resource,
                resource_id=str(resource_id),
                description=f"{username} {action} {resource}",
                status=status,
                metadata=metadata_text,
                created_at=self._now(),
            )
        )