"""Seeds the admin module's permissions and default system settings."""

from __future__ import annotations

import sqlite3
from typing import Any, Iterable, Protocol

from neonex.admin_models import SystemSettings
from neonex.admin_repository import AdminRepository
from neonex.admin_service import AdminError

SUPER_ADMIN_ROLE = "super-admin"

ADMIN_PERMISSIONS: tuple[dict[str, str], ...] = (
    {
        "name": "View Dashboard",
        "slug": "admin.dashboard.view",
        "description": "Access admin dashboard",
        "module": "admin",
        "category": "admin",
    },
    {
        "name": "View System Stats",
        "slug": "admin.system.view",
        "description": "View system statistics and health",
        "module": "admin",
        "category": "admin",
    },
    {
        "name": "Manage Users (Admin)",
        "slug": "admin.users.manage",
        "description": "Full admin access to user management",
        "module": "admin",
        "category": "admin",
    },
    {
        "name": "Manage Modules (Admin)",
        "slug": "admin.modules.manage",
        "description": "Full admin access to module management",
        "module": "admin",
        "category": "admin",
    },
    {
        "name": "Manage Roles (Admin)",
        "slug": "admin.roles.manage",
        "description": "Full admin access to role management",
        "module": "admin",
        "category": "admin",
    },
    {
        "name": "Manage Settings",
        "slug": "admin.settings.manage",
        "description": "Manage system settings",
        "module": "admin",
        "category": "admin",
    },
    {
        "name": "View Audit Logs",
        "slug": "admin.logs.view",
        "description": "View system audit logs",
        "module": "admin",
        "category": "admin",
    },
)

DEFAULT_SETTINGS: tuple[dict[str, Any], ...] = (
    {
        "key": "site.name",
        "value": "Neonex Core",
        "type": "string",
        "category": "general",
        "description": "Site name displayed in UI",
        "is_public": True,
    },
    {
        "key": "site.description",
        "value": "Modular Backend Framework",
        "type": "string",
        "category": "general",
        "description": "Site description",
        "is_public": True,
    },
    {
        "key": "maintenance.mode",
        "value": "false",
        "type": "bool",
        "category": "system",
        "description": "Enable maintenance mode",
        "is_public": False,
    },
    {
        "key": "registration.enabled",
        "value": "true",
        "type": "bool",
        "category": "auth",
        "description": "Allow user registration",
        "is_public": True,
    },
    {
        "key": "password.min_length",
        "value": "8",
        "type": "int",
        "category": "auth",
        "description": "Minimum password length",
        "is_public": True,
    },
    {
        "key": "session.timeout",
        "value": "3600",
        "type": "int",
        "category": "auth",
        "description": "Session timeout in seconds",
        "is_public": False,
    },
    {
        "key": "api.rate_limit",
        "value": "100",
        "type": "int",
        "category": "api",
        "description": "API rate limit per minute",
        "is_public": False,
    },
    {
        "key": "logs.retention_days",
        "value": "30",
        "type": "int",
        "category": "system",
        "description": "Number of days to keep audit logs",
        "is_public": False,
    },
)


class _PermissionStore(Protocol):
    def get_permission_id(self, slug: str) -> int | None: ...

    def create_permission(self, permission: dict[str, str]) -> None: ...

    def get_role_id(self, slug: str) -> int | None: ...

    def sync_role_permissions(self, role_id: int, permission_ids: Iterable[int]) -> None: ...


class AdminSeeder:
    """Creates the admin permissions and the default settings when missing.

    ``permissions`` is optional; when given it must offer
    ``get_permission_id(slug)``, ``create_permission(permission)``,
    ``get_role_id(slug)`` and ``sync_role_permissions(role_id, permission_ids)``.
    """

    def __init__(
        self,
        repository: AdminRepository,
        permissions: _PermissionStore | None = None,
    ) -> None:
        self.repository = repository
        self._permissions = permissions

    @property
    def name(self) -> str:
        return "AdminSeeder"

    def run(self) -> None:
        """Seed permissions (if a store is set) and then the default settings."""
        print("Seeding admin data...")
        if self._permissions is not None:
            self._seed_permissions(self._permissions)
        self._seed_settings()
        print("Admin data seeded successfully")

    def _seed_permissions(self, store: _PermissionStore) -> None:
        for permission in ADMIN_PERMISSIONS:
            slug = permission["slug"]
            if store.get_permission_id(slug) is not None:
                continue
            try:
                store.create_permission(dict(permission))
            except Exception as exc:
                raise AdminError(
                    f"failed to seed admin permissions: "
                    f"failed to create permission {slug}: {exc}"
                ) from exc
            print(f"  ✓ Created permission: {slug}")

        role_id = store.get_role_id(SUPER_ADMIN_ROLE)
        if role_id is None:
            return
        permission_ids = [
            permission_id
            for permission in ADMIN_PERMISSIONS
            if (permission_id := store.get_permission_id(permission["slug"])) is not None
        ]
        if permission_ids:
            store.sync_role_permissions(role_id, permission_ids)
            print(f"  ✓ Assigned {len(permission_ids)} admin permissions to super-admin role")

    def _seed_settings(self) -> None:
        for definition in DEFAULT_SETTINGS:
            key = definition["key"]
            try:
                existing = self.repository.get_setting(key)
            except sqlite3.Error:
                continue
            if existing is not None:
                continue
            try:
                self.repository.create_setting(SystemSettings(**definition))
            except sqlite3.Error as exc:
                raise AdminError(
                    f"failed to seed settings: failed to create setting {key}: {exc}"
                ) from exc
            print(f"  ✓ Created setting: {key}")