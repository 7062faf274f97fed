import pytest

from neonex.ai.cache import InferenceCache
from neonex.ai.model import (
    InferenceInput,
    InferenceOutput,
    Model,
    ModelConfig,
    ModelError,
    ModelManager,
    ModelMetrics,
    ModelProvider,
    ModelStatus,
    ModelType,
)


class FakeProvider(ModelProvider):
    def __init__(self, status=ModelStatus.READY, fail_predict=False, fail_load=False):
        self.status = status
        self.fail_predict = fail_predict
        self.fail_load = fail_load
        self.loaded = []
        self.unloaded = []
        self.calls = 0
        self.metrics = {}

    def load_model(self, config):
        if self.fail_load:
            raise RuntimeError("boom")
        self.loaded.append(config.id)
        self.metrics[config.id] = ModelMetrics(model_id=config.id)
        return Model(
            id=config.id,
            name=config.name,
            type=config.type,
            provider=config.provider,
            status=self.status,
        )

    def unload_model(self, model_id):
        self.unloaded.append(model_id)

    def predict(self, model_id, inference_input):
        self.calls += 1
        if self.fail_predict:
            raise RuntimeError("boom")
        return InferenceOutput(model_id=model_id, result=f"echo:{inference_input.data}")

    def get_metrics(self, model_id):
        return self.metrics.get(model_id)


@pytest.fixture
def manager():
    return ModelManager(cache=InferenceCache(100, 60.0, cleanup_interval=None))


def load(manager, provider, model_id="m1", name="fake"):
    manager.register_provider(name, provider)
    return manager.load_model(ModelConfig(id=model_id, name="Model", provider=name))


def test_load_and_lookup(manager):
    provider = FakeProvider()
    model = load(manager, provider)
    assert model.id == "m1"
    assert manager.get_model("m1") is model
    assert manager.list_models() == [model]
    assert provider.loaded == ["m1"]


def test_loading_twice_reuses_model(manager):
    provider = FakeProvider()
    first = load(manager, provider)
    second = manager.load_model(ModelConfig(id="m1", provider="fake"))
    assert second is first
    assert provider.loaded == ["m1"]


def test_load_with_unknown_provider(manager):
    with pytest.raises(ModelError, match="provider not found: missing"):
        manager.load_model(ModelConfig(id="m1", provider="missing"))


def test_load_failure_is_wrapped(manager):
    manager.register_provider("fake", FakeProvider(fail_load=True))
    with pytest.raises(ModelError, match="failed to load model") as info:
        manager.load_model(ModelConfig(id="m1", provider="fake"))
    assert isinstance(info.value.__cause__, RuntimeError)
    assert manager.get_model("m1") is None


def test_predict_updates_stats(manager):
    model = load(manager, FakeProvider())
    output = manager.predict(InferenceInput(model_id="m1", data="hi"))
    assert output.result == "echo:hi"
    assert output.latency >= 0
    assert output.timestamp is not None
    assert model.request_count == 1
    assert model.last_used_at is not None


def test_predict_uses_cache(manager):
    provider = FakeProvider()
    model = load(manager, provider)
    first = manager.predict(InferenceInput(model_id="m1", data="hi"))
    second = manager.predict(InferenceInput(model_id="m1", data="hi"))
    assert second is first
    assert provider.calls == 1
    assert model.request_count == 1


def test_predict_unknown_model(manager):
    with pytest.raises(ModelError, match="model not found: nope"):
        manager.predict(InferenceInput(model_id="nope", data="x"))


def test_predict_model_not_ready(manager):
    load(manager, FakeProvider(status=ModelStatus.LOADING))
    with pytest.raises(ModelError, match=r"model not ready: m1 \(status: loading\)"):
        manager.predict(InferenceInput(model_id="m1", data="x"))


def test_predict_failure_is_wrapped(manager):
    model = load(manager, FakeProvider(fail_predict=True))
    with pytest.raises(ModelError, match="inference failed"):
        manager.predict(InferenceInput(model_id="m1", data="x"))
    assert model.request_count == 0


def test_unload_model(manager):
    provider = FakeProvider()
    load(manager, provider)
    manager.unload_model("m1")
    assert provider.unloaded == ["m1"]
    assert manager.get_model("m1") is None
    with pytest.raises(ModelError, match="model not found: m1"):
        manager.unload_model("m1")


def test_metrics_come_from_provider(manager):
    provider = FakeProvider()
    load(manager, provider)
    assert manager.get_metrics("m1") is provider.metrics["m1"]
    assert manager.get_metrics("unknown") is None
    assert manager.get_all_metrics() == {"m1": provider.metrics["m1"]}


def test_warm_up_ignores_unknown_and_failures(manager):
    good = FakeProvider()
    bad = FakeProvider(fail_predict=True)
    load(manager, good, model_id="good", name="good")
    load(manager, bad, model_id="bad", name="bad")
    assert manager.warm_up(["good", "bad", "absent"]) is None
    assert good.calls == 1
    assert bad.calls == 1
    assert manager.get_model("good").request_count == 1


def test_close_unloads_everything(manager):
    provider = FakeProvider()
    load(manager, provider, model_id="a")
    manager.load_model(ModelConfig(id="b", provider="fake"))
    manager.close()
    assert sorted(provider.unloaded) == ["a", "b"]
    assert manager.list_models() == []


def test_enum_values_match_wire_names():
    assert ModelType.NER.value == "named_entity_recognition"
    assert ModelStatus.READY.value == "ready"
    assert ModelType("embedding") is ModelType.EMBEDDING