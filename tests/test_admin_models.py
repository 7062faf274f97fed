from datetime import datetime, timezone

from neonex.admin_models import ActivitySummary, AuditLog, SystemHealth, SystemSettings


def test_audit_log_omits_empty_optional_fields():
    data = AuditLog(user_id=3, username="alice", action="login").to_dict()
    assert "error_message" not in data
    assert "metadata" not in data
    assert data["username"] == "alice"
    assert data["user_id"] == 3
    assert data["created_at"] is None


def test_audit_log_includes_optional_fields_when_set():
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    log = AuditLog(action="delete", error_message="boom", metadata='{"a": 1}', created_at=created)
    data = log.to_dict()
    assert data["error_message"] == "boom"
    assert data["metadata"] == '{"a": 1}'
    assert datetime.fromisoformat(data["created_at"]) == created


def test_system_settings_to_dict_keys_and_values():
    stamp = datetime(2024, 2, 3, 4, 5, tzinfo=timezone.utc)
    setting = SystemSettings(
        key="site.name", value="Neonex Core", type="string", category="general",
        is_public=True, created_at=stamp, updated_at=stamp,
    )
    data = setting.to_dict()
    assert set(data) == {
        "id", "key", "value", "type", "category", "description",
        "is_public", "updated_by", "created_at", "updated_at",
    }
    assert data["key"] == "site.name"
    assert data["is_public"] is True
    assert datetime.fromisoformat(data["updated_at"]) == stamp


def test_mutable_defaults_are_not_shared():
    first, second = ActivitySummary(), ActivitySummary()
    first.actions_by_type["login"] = 1
    assert second.actions_by_type == {}
    health_a, health_b = SystemHealth(), SystemHealth()
    health_a.details["x"] = 1
    assert health_b.details == {}