"""SQLite storage for audit logs and system settings."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from neonex.admin_models import ActivitySummary, AuditLog, SystemSettings

_SCHEMA = """
CREATE TABLE IF NOT EXISTS audit_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    username TEXT,
    action TEXT,
    resource TEXT,
    resource_id TEXT,
    description TEXT,
    ip_address TEXT,
    user_agent TEXT,
    status TEXT,
    error_msg TEXT,
    metadata TEXT,
    created_at REAL
);
CREATE INDEX IF NOT EXISTS idx_audit_logs_user_id ON audit_logs(user_id);
CREATE INDEX IF NOT EXISTS idx_audit_logs_action ON audit_logs(action);
CREATE INDEX IF NOT EXISTS idx_audit_logs_created_at ON audit_logs(created_at);
CREATE TABLE IF NOT EXISTS system_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    "key" TEXT UNIQUE,
    "value" TEXT,
    "type" TEXT,
    category TEXT,
    description TEXT,
    is_public INTEGER,
    updated_by INTEGER,
    created_at REAL,
    updated_at REAL
);
CREATE INDEX IF NOT EXISTS idx_system_settings_category ON system_settings(category);
CREATE TABLE IF NOT EXISTS backup_infos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    filename TEXT,
    size INTEGER,
    "type" TEXT,
    status TEXT,
    started_at REAL,
    completed_at REAL,
    created_by INTEGER
);
"""

_LOG_COLUMNS = (
    "id, user_id, username, action, resource, resource_id, description, "
    "ip_address, user_agent, status, error_msg, metadata, created_at"
)
_SETTING_COLUMNS = (
    'id, "key", "value", "type", category, description, is_public, '
    "updated_by, created_at, updated_at"
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime | None) -> float | None:
    return None if value is None else value.timestamp()


def _dt(value: float | None) -> datetime | None:
    return None if value is None else datetime.fromtimestamp(value, timezone.utc)


def _log_from_row(row: tuple[Any, ...]) -> AuditLog:
    (lid, user_id, username, action, resource, resource_id, description,
     ip_address, user_agent, status, error_msg, metadata, created_at) = row
    return AuditLog(
        id=lid,
        user_id=user_id or 0,
        username=username or "",
        action=action or "",
        resource=resource or "",
        resource_id=resource_id or "",
        description=description or "",
        ip_address=ip_address or "",
        user_agent=user_agent or "",
        status=status or "",
        error_message=error_msg or "",
        metadata=metadata or "",
        created_at=_dt(created_at),
    )


def _setting_from_row(row: tuple[Any, ...]) -> SystemSettings:
    (sid, key, value, kind, category, description, is_public,
     updated_by, created_at, updated_at) = row
    return SystemSettings(
        id=sid,
        key=key,
        value=value or "",
        type=kind or "",
        category=category or "",
        description=description or "",
        is_public=bool(is_public),
        updated_by=updated_by or 0,
        created_at=_dt(created_at),
        updated_at=_dt(updated_at),
    )


class AdminRepository:
    """Reads and writes admin records through a SQLite connection."""

    def __init__(
        self,
        connection: sqlite3.Connection,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._conn = connection
        self._clock = clock

    def create_schema(self) -> None:
        """Create the admin tables if they do not exist."""
        self._conn.executescript(_SCHEMA)

    def create_audit_log(self, log: AuditLog) -> None:
        """Insert ``log`` and fill in its id and, if unset, its creation time."""
        if log.created_at is None:
            log.created_at = self._clock()
        with self._conn:
            cursor = self._conn.execute(
                f"INSERT INTO audit_logs ({_LOG_COLUMNS}) "
                "VALUES (NULL, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    log.user_id, log.username, log.action, log.resource,
                    log.resource_id, log.description, log.ip_address,
                    log.user_agent, log.status, log.error_message,
                    log.metadata, _ts(log.created_at),
                ),
            )
        log.id = cursor.lastrowid

    def get_audit_logs(
        self, page: int, limit: int, filters: Mapping[str, Any] | None = None
    ) -> tuple[list[AuditLog], int]:
        """Return one page of logs, newest first, and the total matching count.

        Recognised filters: ``user_id`` (int), ``action`` and ``resource``
        (str), ``start_date`` and ``end_date`` (datetime).
        """
        filters = filters or {}
        clauses: list[str] = []
        params: list[Any] = []

        user_id = filters.get("user_id")
        if isinstance(user_id, int) and not isinstance(user_id, bool):
            clauses.append("user_id = ?")
            params.append(user_id)
        for column in ("action", "resource"):
            value = filters.get(column)
            if isinstance(value, str):
                clauses.append(f"{column} = ?")
                params.append(value)
        start = filters.get("start_date")
        if isinstance(start, datetime):
            clauses.append("created_at >= ?")
            params.append(start.timestamp())
        end = filters.get("end_date")
        if isinstance(end, datetime):
            clauses.append("created_at <= ?")
            params.append(end.timestamp())

        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        total = self._conn.execute(
            f"SELECT COUNT(*) FROM audit_logs{where}", params
        ).fetchone()[0]
        rows = self._conn.execute(
            f"SELECT {_LOG_COLUMNS} FROM audit_logs{where} "
            "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            [*params, limit, (page - 1) * limit],
        ).fetchall()
        return [_log_from_row(row) for row in rows], total

    def _grouped_counts(self, column: str, since: float) -> dict[str, int]:
        rows = self._conn.execute(
            f"SELECT {column}, COUNT(*) FROM audit_logs "
            f"WHERE created_at >= ? GROUP BY {column}",
            (since,),
        ).fetchall()
        return {name or "": count for name, count in rows}

    def get_activity_summary(self, days: int) -> ActivitySummary:
        """Count the actions of the last ``days`` days and list the 20 latest."""
        since = (self._clock() - timedelta(days=days)).timestamp()
        total = self._conn.execute(
            "SELECT COUNT(*) FROM audit_logs WHERE created_at >= ?", (since,)
        ).fetchone()[0]
        recent = self._conn.execute(
            f"SELECT {_LOG_COLUMNS} FROM audit_logs "
            "ORDER BY created_at DESC, id DESC LIMIT 20"
        ).fetchall()
        return ActivitySummary(
            total_actions=total,
            actions_by_type=self._grouped_counts("action", since),
            actions_by_user=self._grouped_counts("username", since),
            recent_activities=[_log_from_row(row) for row in recent],
        )

    def get_setting(self, key: str) -> SystemSettings | None:
        row = self._conn.execute(
            f'SELECT {_SETTING_COLUMNS} FROM system_settings WHERE "key" = ?', (key,)
        ).fetchone()
        return None if row is None else _setting_from_row(row)

    def get_settings_by_category(self, category: str) -> list[SystemSettings]:
        rows = self._conn.execute(
            f"SELECT {_SETTING_COLUMNS} FROM system_settings WHERE category = ? ORDER BY id",
            (category,),
        ).fetchall()
        return [_setting_from_row(row) for row in rows]

    def get_all_settings(self) -> list[SystemSettings]:
        rows = self._conn.execute(
            f"SELECT {_SETTING_COLUMNS} FROM system_settings ORDER BY id"
        ).fetchall()
        return [_setting_from_row(row) for row in rows]

    def create_setting(self, setting: SystemSettings) -> None:
        """Insert ``setting``; a duplicate key raises ``sqlite3.IntegrityError``."""
        now = self._clock()
        if setting.created_at is None:
            setting.created_at = now
        if setting.updated_at is None:
            setting.updated_at = now
        with self._conn:
            cursor = self._conn.execute(
                f"INSERT INTO system_settings ({_SETTING_COLUMNS}) "
                "VALUES (NULL, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    setting.key, setting.value, setting.type, setting.category,
                    setting.description, int(setting.is_public), setting.updated_by,
                    _ts(setting.created_at), _ts(setting.updated_at),
                ),
            )
        setting.id = cursor.lastrowid

    def update_setting(self, key: str, value: str, updated_by: int) -> int:
        """Change a setting's value; returns the number of rows changed."""
        with self._conn:
            cursor = self._conn.execute(
                'UPDATE system_settings SET "value" = ?, updated_by = ?, updated_at = ? '
                'WHERE "key" = ?',
                (value, updated_by, _ts(self._clock()), key),
            )
        return cursor.rowcount

    def delete_setting(self, key: str) -> int:
        """Delete a setting; returns the number of rows removed."""
        with self._conn:
            cursor = self._conn.execute('DELETE FROM system_settings WHERE "key" = ?', (key,))
        return cursor.rowcount