"""A feature store for machine-learning features, backed by SQLite."""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

_SCHEMA = """
CREATE TABLE IF NOT EXISTS features (
    id TEXT PRIMARY KEY,
    name TEXT,
    entity_type TEXT,
    entity_id TEXT,
    "values" TEXT,
    version INTEGER,
    computed_at REAL,
    expires_at REAL,
    metadata TEXT,
    created_at REAL,
    updated_at REAL
);
CREATE INDEX IF NOT EXISTS idx_features_name ON features(name);
CREATE INDEX IF NOT EXISTS idx_features_entity_id ON features(entity_id);
CREATE TABLE IF NOT EXISTS feature_groups (
    id TEXT PRIMARY KEY,
    name TEXT UNIQUE,
    description TEXT,
    features TEXT,
    entity_type TEXT,
    version INTEGER,
    metadata TEXT,
    created_at REAL,
    updated_at REAL
);
"""

_FEATURE_COLUMNS = (
    'id, name, entity_type, entity_id, "values", version, computed_at, '
    "expires_at, metadata, created_at, updated_at"
)

_UPSERT_FEATURE = f"""
INSERT INTO features ({_FEATURE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    name = excluded.name,
    entity_type = excluded.entity_type,
    entity_id = excluded.entity_id,
    "values" = excluded."values",
    version = excluded.version,
    computed_at = excluded.computed_at,
    expires_at = excluded.expires_at,
    metadata = excluded.metadata,
    updated_at = excluded.updated_at
"""

_GROUP_COLUMNS = (
    "id, name, description, features, entity_type, version, metadata, created_at, updated_at"
)


class FeatureNotFoundError(LookupError):
    """Raised when a feature or feature group does not exist."""


@dataclass
class Feature:
    """Feature values for one entity; datetimes are timezone-aware."""

    name: str
    entity_type: str
    entity_id: str
    values: dict[str, Any] = field(default_factory=dict)
    version: int = 0
    id: str = ""
    computed_at: datetime | None = None
    expires_at: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class FeatureGroup:
    """A named set of feature names for one entity type."""

    name: str
    description: str = ""
    features: list[str] = field(default_factory=list)
    entity_type: str = ""
    version: int = 0
    id: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime | None) -> float | None:
    return None if value is None else value.timestamp()


def _dt(value: float | None) -> datetime | None:
    return None if value is None else datetime.fromtimestamp(value, timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


def _parse_iso(value: Any) -> datetime | None:
    if not value:
        return None
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _feature_row(feature: Feature) -> tuple[Any, ...]:
    return (
        feature.id,
        feature.name,
        feature.entity_type,
        feature.entity_id,
        json.dumps(feature.values),
        feature.version,
        _ts(feature.computed_at),
        _ts(feature.expires_at),
        json.dumps(feature.metadata),
        _ts(feature.created_at),
        _ts(feature.updated_at),
    )


def _feature_from_row(row: tuple[Any, ...]) -> Feature:
    (fid, name, entity_type, entity_id, values, version, computed_at,
     expires_at, metadata, created_at, updated_at) = row
    return Feature(
        id=fid,
        name=name,
        entity_type=entity_type,
        entity_id=entity_id,
        values=json.loads(values) if values else {},
        version=version or 0,
        computed_at=_dt(computed_at),
        expires_at=_dt(expires_at),
        metadata=json.loads(metadata) if metadata else {},
        created_at=_dt(created_at),
        updated_at=_dt(updated_at),
    )


def _group_from_row(row: tuple[Any, ...]) -> FeatureGroup:
    (gid, name, description, features, entity_type, version, metadata,
     created_at, updated_at) = row
    return FeatureGroup(
        id=gid,
        name=name,
        description=description or "",
        features=json.loads(features) if features else [],
        entity_type=entity_type or "",
        version=version or 0,
        metadata=json.loads(metadata) if metadata else {},
        created_at=_dt(created_at),
        updated_at=_dt(updated_at),
    )


def _feature_to_json(feature: Feature) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": feature.id,
        "name": feature.name,
        "entity_type": feature.entity_type,
        "entity_id": feature.entity_id,
        "values": feature.values,
        "version": feature.version,
        "computed_at": _iso(feature.computed_at),
    }
    if feature.expires_at is not None:
        data["expires_at"] = _iso(feature.expires_at)
    data["metadata"] = feature.metadata
    data["created_at"] = _iso(feature.created_at)
    data["updated_at"] = _iso(feature.updated_at)
    return data


def _feature_from_json(data: dict[str, Any]) -> Feature:
    if not isinstance(data, dict):
        raise ValueError("feature entries must be JSON objects")
    return Feature(
        id=data.get("id") or "",
        name=data.get("name") or "",
        entity_type=data.get("entity_type") or "",
        entity_id=data.get("entity_id") or "",
        values=data.get("values") or {},
        version=data.get("version") or 0,
        computed_at=_parse_iso(data.get("computed_at")),
        expires_at=_parse_iso(data.get("expires_at")),
        metadata=data.get("metadata") or {},
        created_at=_parse_iso(data.get("created_at")),
        updated_at=_parse_iso(data.get("updated_at")),
    )


class FeatureStore:
    """Stores features in SQLite with an in-memory cache in front.

    ``cleanup_interval`` is in seconds; None disables the background removal
    of expired features. The connection must allow use from other threads
    when the background removal is on.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        *,
        clock: Callable[[], datetime] = _utc_now,
        cleanup_interval: float | None = 3600.0,
    ) -> None:
        self._conn = connection
        self._clock = clock
        self._cache: dict[str, Feature] = {}
        self._lock = threading.RLock()
        self._stop = threading.Event()
        with self._lock:
            self._conn.executescript(_SCHEMA)
        if cleanup_interval is not None:
            threading.Thread(
                target=self._cleanup_loop,
                args=(cleanup_interval,),
                name="feature-store-cleanup",
                daemon=True,
            ).start()

    def _prepare(self, feature: Feature, now: datetime) -> None:
        if not feature.id:
            feature.id = f"{feature.entity_type}:{feature.entity_id}:{feature.name}"
        feature.computed_at = now
        if feature.created_at is None:
            feature.created_at = now
        feature.updated_at = now

    def set_feature(self, feature: Feature) -> None:
        """Insert or replace ``feature``; an empty id becomes ``type:entity:name``."""
        self.batch_set_features([feature])

    def batch_set_features(self, features: Iterable[Feature]) -> None:
        """Save all ``features`` in one transaction."""
        batch = list(features)
        with self._lock:
            now = self._clock()
            for feature in batch:
                self._prepare(feature, now)
            with self._conn:
                self._conn.executemany(_UPSERT_FEATURE, [_feature_row(f) for f in batch])
            for feature in batch:
                self._cache[feature.id] = feature

    def get_feature(self, feature_id: str) -> Feature:
        with self._lock:
            cached = self._cache.get(feature_id)
            if cached is not None and (
                cached.expires_at is None or self._clock() < cached.expires_at
            ):
                return cached
            row = self._conn.execute(
                f"SELECT {_FEATURE_COLUMNS} FROM features WHERE id = ?", (feature_id,)
            ).fetchone()
            if row is None:
                raise FeatureNotFoundError(f"feature not found: {feature_id}")
            feature = _feature_from_row(row)
            self._cache[feature_id] = feature
            return feature

    def get_features_by_entity(self, entity_type: str, entity_id: str) -> list[Feature]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_FEATURE_COLUMNS} FROM features "
                "WHERE entity_type = ? AND entity_id = ? ORDER BY rowid",
                (entity_type, entity_id),
            ).fetchall()
        return [_feature_from_row(row) for row in rows]

    def get_feature_vector(
        self, entity_type: str, entity_id: str, feature_names: Iterable[str]
    ) -> dict[str, Any]:
        """Merge the values of the named features of one entity."""
        by_name = {f.name: f for f in self.get_features_by_entity(entity_type, entity_id)}
        vector: dict[str, Any] = {}
        for name in feature_names:
            feature = by_name.get(name)
            if feature is not None:
                vector.update(feature.values)
        return vector

    def create_feature_group(self, group: FeatureGroup) -> None:
        if not group.id:
            group.id = uuid.uuid4().hex
        now = self._clock()
        if group.created_at is None:
            group.created_at = now
        group.updated_at = now
        with self._lock, self._conn:
            self._conn.execute(
                f"INSERT INTO feature_groups ({_GROUP_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    group.id,
                    group.name,
                    group.description,
                    json.dumps(group.features),
                    group.entity_type,
                    group.version,
                    json.dumps(group.metadata),
                    _ts(group.created_at),
                    _ts(group.updated_at),
                ),
            )

    def get_feature_group(self, name: str) -> FeatureGroup:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_GROUP_COLUMNS} FROM feature_groups WHERE name = ?", (name,)
            ).fetchone()
        if row is None:
            raise FeatureNotFoundError(f"feature group not found: {name}")
        return _group_from_row(row)

    def get_feature_group_vector(
        self, group_name: str, entity_type: str, entity_id: str
    ) -> dict[str, Any]:
        group = self.get_feature_group(group_name)
        return self.get_feature_vector(entity_type, entity_id, group.features)

    def delete_expired_features(self) -> int:
        """Delete features whose expiry has passed; returns how many were removed."""
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM features WHERE expires_at IS NOT NULL AND expires_at < ?",
                (_ts(self._clock()),),
            )
            return cursor.rowcount

    def compute_features(
        self,
        entity_type: str,
        entity_id: str,
        compute: Callable[[str, str], dict[str, Any]],
    ) -> None:
        """Store one feature per name returned by ``compute``."""
        values = compute(entity_type, entity_id)
        self.batch_set_features(
            Feature(
                name=name,
                entity_type=entity_type,
                entity_id=entity_id,
                values={name: value},
                version=1,
            )
            for name, value in values.items()
        )

    def export_features(self, entity_type: str) -> bytes:
        """Return every feature of ``entity_type`` as a JSON array."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_FEATURE_COLUMNS} FROM features WHERE entity_type = ? ORDER BY rowid",
                (entity_type,),
            ).fetchall()
        return json.dumps([_feature_to_json(_feature_from_row(row)) for row in rows]).encode()

    def import_features(self, data: bytes | str) -> None:
        """Save the features of a JSON array produced by ``export_features``."""
        loaded = json.loads(data)
        if loaded is None:
            loaded = []
        if not isinstance(loaded, list):
            raise ValueError("expected a JSON array of features")
        self.batch_set_features([_feature_from_json(item) for item in loaded])

    def stats(self) -> dict[str, int]:
        with self._lock:
            total_features = self._conn.execute("SELECT COUNT(*) FROM features").fetchone()[0]
            total_groups = self._conn.execute("SELECT COUNT(*) FROM feature_groups").fetchone()[0]
            return {
                "total_features": total_features,
                "total_groups": total_groups,
                "cache_size": len(self._cache),
            }

    def close(self) -> None:
        """Stop the background cleanup."""
        self._stop.set()

    def _sweep(self) -> None:
        self.delete_expired_features()
        with self._lock:
            now = self._clock()
            expired = [
                fid for fid, f in self._cache.items()
                if f.expires_at is not None and now > f.expires_at
            ]
            for fid in expired:
                del self._cache[fid]

    def _cleanup_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                self._sweep()
            except sqlite3.Error:
                pass