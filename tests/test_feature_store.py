import json
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from neonex.ai.feature_store import Feature, FeatureGroup, FeatureNotFoundError, FeatureStore


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


@pytest.fixture
def connection():
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(connection, clock):
    feature_store = FeatureStore(connection, clock=clock, cleanup_interval=None)
    yield feature_store
    feature_store.close()


def feature(name, entity_id="42", entity_type="user", **values):
    return Feature(name=name, entity_type=entity_type, entity_id=entity_id, values=values, version=1)


def test_set_feature_builds_id_and_stamps_time(store, clock):
    age = feature("age", age=30)
    store.set_feature(age)
    assert age.id == "user:42:age"
    assert age.computed_at == clock.now
    assert store.get_feature("user:42:age") is age


def test_get_feature_round_trip_through_database(store, connection, clock):
    age = feature("age", age=30)
    age.metadata = {"source": "signup"}
    store.set_feature(age)
    fresh = FeatureStore(connection, clock=clock, cleanup_interval=None)
    loaded = fresh.get_feature(age.id)
    assert loaded is not age
    assert loaded.values == {"age": 30}
    assert loaded.metadata == {"source": "signup"}
    assert (loaded.name, loaded.entity_type, loaded.entity_id) == ("age", "user", "42")
    assert loaded.computed_at == clock.now
    assert loaded.expires_at is None


def test_get_missing_feature_raises(store):
    with pytest.raises(FeatureNotFoundError, match="feature not found: nope"):
        store.get_feature("nope")


def test_set_feature_replaces_existing(store, connection, clock):
    store.set_feature(feature("age", age=30))
    store.set_feature(feature("age", age=31))
    fresh = FeatureStore(connection, clock=clock, cleanup_interval=None)
    assert fresh.get_feature("user:42:age").values == {"age": 31}
    assert store.stats()["total_features"] == 1


def test_features_by_entity_filters(store):
    store.set_feature(feature("age", entity_id="1", age=1))
    store.set_feature(feature("score", entity_id="1", score=2))
    store.set_feature(feature("age", entity_id="2", age=3))
    store.set_feature(feature("price", entity_id="1", entity_type="product", price=4))
    found = store.get_features_by_entity("user", "1")
    assert {f.name for f in found} == {"age", "score"}
    assert store.get_features_by_entity("user", "9") == []


def test_feature_vector_merges_requested_features(store):
    store.set_feature(feature("age", age=30))
    store.set_feature(feature("score", score=0.5, rank=3))
    vector = store.get_feature_vector("user", "42", ["score", "missing"])
    assert vector == {"score": 0.5, "rank": 3}


def test_feature_group_vector(store):
    store.set_feature(feature("age", age=30))
    store.set_feature(feature("score", score=0.5))
    group = FeatureGroup(name="basic", features=["age"], entity_type="user")
    store.create_feature_group(group)
    assert group.id
    loaded = store.get_feature_group("basic")
    assert loaded.features == ["age"]
    assert loaded.id == group.id
    assert store.get_feature_group_vector("basic", "user", "42") == {"age": 30}


def test_missing_feature_group_raises(store):
    with pytest.raises(FeatureNotFoundError, match="feature group not found: nope"):
        store.get_feature_group("nope")
    with pytest.raises(FeatureNotFoundError):
        store.get_feature_group_vector("nope", "user", "42")


def test_duplicate_feature_group_name_rejected(store):
    store.create_feature_group(FeatureGroup(name="g"))
    with pytest.raises(sqlite3.IntegrityError):
        store.create_feature_group(FeatureGroup(name="g"))


def test_batch_set_features_and_stats(store):
    store.batch_set_features([feature("a", a=1), feature("b", b=2)])
    store.create_feature_group(FeatureGroup(name="g"))
    assert store.stats() == {"total_features": 2, "total_groups": 1, "cache_size": 2}


def test_delete_expired_features(store, clock):
    short = feature("short", short=1)
    short.expires_at = clock.now + timedelta(hours=1)
    store.set_feature(short)
    store.set_feature(feature("forever", forever=1))
    assert store.delete_expired_features() == 0
    clock.now += timedelta(hours=2)
    assert store.delete_expired_features() == 1
    assert [f.name for f in store.get_features_by_entity("user", "42")] == ["forever"]
    with pytest.raises(FeatureNotFoundError):
        store.get_feature(short.id)


def test_compute_features(store):
    seen = []

    def compute(entity_type, entity_id):
        seen.append((entity_type, entity_id))
        return {"clicks": 5, "views": 9}

    store.compute_features("user", "7", compute)
    found = store.get_features_by_entity("user", "7")
    assert seen == [("user", "7")]
    assert {f.name: f.values for f in found} == {"clicks": {"clicks": 5}, "views": {"views": 9}}
    assert all(f.version == 1 for f in found)
    assert {f.id for f in found} == {"user:7:clicks", "user:7:views"}


def test_compute_features_error_propagates(store):
    def compute(entity_type, entity_id):
        raise RuntimeError("compute failed")

    with pytest.raises(RuntimeError, match="compute failed"):
        store.compute_features("user", "7", compute)
    assert store.stats()["total_features"] == 0


def test_export_only_includes_entity_type(store):
    store.set_feature(feature("age", age=30))
    store.set_feature(feature("price", entity_type="product", price=4))
    exported = json.loads(store.export_features("user"))
    assert [item["id"] for item in exported] == ["user:42:age"]
    assert "expires_at" not in exported[0]


def test_export_import_round_trip(store, clock):
    expiring = feature("age", age=30)
    expiring.expires_at = clock.now + timedelta(days=1)
    expiring.metadata = {"source": "signup"}
    store.set_feature(expiring)
    store.set_feature(feature("score", score=0.5))
    data = store.export_features("user")

    other = sqlite3.connect(":memory:")
    target = FeatureStore(other, clock=clock, cleanup_interval=None)
    target.import_features(data)
    original = {f.id: f for f in store.get_features_by_entity("user", "42")}
    imported = {f.id: f for f in target.get_features_by_entity("user", "42")}
    other.close()

    assert imported.keys() == original.keys()
    for fid, item in imported.items():
        assert item.values == original[fid].values
        assert item.metadata == original[fid].metadata
        assert item.expires_at == original[fid].expires_at


def test_import_rejects_non_array(store):
    with pytest.raises(ValueError):
        store.import_features(b'{"id": "x"}')