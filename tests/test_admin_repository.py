import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from neonex.admin_models import AuditLog, SystemSettings
from neonex.admin_repository import AdminRepository

BASE = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock(BASE)


@pytest.fixture
def repo(clock):
    connection = sqlite3.connect(":memory:")
    repository = AdminRepository(connection, clock=clock)
    repository.create_schema()
    yield repository
    connection.close()


def _logs(repo, count):
    logs = []
    for i in range(count):
        log = AuditLog(
            user_id=i % 2 + 1,
            username=f"user{i % 2}",
            action="login" if i % 2 else "update",
            resource="settings" if i < 2 else "users",
            created_at=BASE - timedelta(minutes=count - i),
        )
        repo.create_audit_log(log)
        logs.append(log)
    return logs


def test_create_audit_log_assigns_id_and_time(repo, clock):
    log = AuditLog(username="alice", action="login")
    repo.create_audit_log(log)
    assert log.id is not None
    assert log.created_at == clock.now
    stored, total = repo.get_audit_logs(1, 10)
    assert total == 1
    assert stored[0] == log


def test_get_audit_logs_paginates_newest_first(repo):
    logs = _logs(repo, 5)
    page, total = repo.get_audit_logs(1, 2)
    assert total == len(logs)
    assert [log.id for log in page] == [logs[4].id, logs[3].id]
    page, _ = repo.get_audit_logs(3, 2)
    assert [log.id for log in page] == [logs[0].id]


def test_get_audit_logs_filters(repo):
    logs = _logs(repo, 5)
    by_user, total = repo.get_audit_logs(1, 10, {"user_id": 2})
    assert total == len(by_user)
    assert all(log.user_id == 2 for log in by_user)
    by_action, _ = repo.get_audit_logs(1, 10, {"action": "update"})
    assert {log.action for log in by_action} == {"update"}
    by_resource, _ = repo.get_audit_logs(1, 10, {"resource": "settings"})
    assert {log.id for log in by_resource} == {logs[0].id, logs[1].id}
    windowed, _ = repo.get_audit_logs(
        1, 10, {"start_date": logs[1].created_at, "end_date": logs[3].created_at}
    )
    assert {log.id for log in windowed} == {logs[1].id, logs[2].id, logs[3].id}


def test_activity_summary_counts_recent_window(repo):
    recent = AuditLog(username="alice", action="login", created_at=BASE - timedelta(days=1))
    old = AuditLog(username="bob", action="delete", created_at=BASE - timedelta(days=30))
    repo.create_audit_log(recent)
    repo.create_audit_log(old)
    summary = repo.get_activity_summary(7)
    assert summary.total_actions == 1
    assert summary.actions_by_type == {"login": 1}
    assert summary.actions_by_user == {"alice": 1}
    assert [log.id for log in summary.recent_activities] == [recent.id, old.id]


def test_settings_crud(repo, clock):
    setting = SystemSettings(key="site.name", value="Neonex Core", type="string",
                             category="general", is_public=True)
    repo.create_setting(setting)
    assert repo.get_setting("site.name") == setting
    assert repo.get_settings_by_category("general") == [setting]
    assert repo.get_settings_by_category("auth") == []

    clock.now = BASE + timedelta(hours=1)
    assert repo.update_setting("site.name", "Renamed", 7) == 1
    updated = repo.get_setting("site.name")
    assert updated.value == "Renamed"
    assert updated.updated_by == 7
    assert updated.updated_at == clock.now
    assert updated.created_at == setting.created_at

    assert repo.delete_setting("site.name") == 1
    assert repo.get_setting("site.name") is None
    assert repo.get_all_settings() == []


def test_update_missing_setting_changes_nothing(repo):
    assert repo.update_setting("missing", "x", 1) == 0
    assert repo.delete_setting("missing") == 0


def test_duplicate_setting_key_rejected(repo):
    repo.create_setting(SystemSettings(key="api.rate_limit", value="100"))
    with pytest.raises(sqlite3.IntegrityError):
        repo.create_setting(SystemSettings(key="api.rate_limit", value="200"))