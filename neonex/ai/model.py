"""AI model descriptions, provider interface and the model manager."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from neonex.ai.cache import InferenceCache


class ModelType(str, Enum):
    TEXT_GENERATION = "text_generation"
    TEXT_CLASSIFICATION = "text_classification"
    IMAGE_CLASSIFICATION = "image_classification"
    OBJECT_DETECTION = "object_detection"
    EMBEDDING = "embedding"
    SENTIMENT = "sentiment"
    NER = "named_entity_recognition"
    TRANSLATION = "translation"
    QUESTION_ANSWERING = "question_answering"
    SUMMARIZATION = "summarization"


class ModelStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    UNLOADED = "unloaded"


class ModelError(Exception):
    """Raised when a model cannot be loaded, found or run."""


@dataclass
class Model:
    """A loaded AI/ML model."""

    id: str
    name: str = ""
    version: str = ""
    type: ModelType = ModelType.TEXT_GENERATION
    status: ModelStatus = ModelStatus.LOADING
    endpoint: str = ""
    provider: str = ""
    config: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)
    loaded_at: datetime | None = None
    last_used_at: datetime | None = None
    request_count: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )


@dataclass
class ModelConfig:
    """Settings used to load a model."""

    id: str
    name: str = ""
    version: str = ""
    type: ModelType = ModelType.TEXT_GENERATION
    provider: str = ""
    endpoint: str = ""
    api_key: str = ""
    config: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class InferenceInput:
    model_id: str
    data: Any = None
    parameters: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class InferenceOutput:
    """Result of one inference; ``latency`` is in seconds."""

    model_id: str
    result: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)
    latency: float = 0.0
    timestamp: datetime | None = None


@dataclass
class ModelMetrics:
    """Request statistics for a model; latencies are in seconds."""

    model_id: str
    request_count: int = 0
    total_latency: float = 0.0
    avg_latency: float = 0.0
    error_count: int = 0
    last_request_at: datetime | None = None


class ModelProvider(ABC):
    """A backend able to load models and run inference on them."""

    @abstractmethod
    def load_model(self, config: ModelConfig) -> Model: ...

    @abstractmethod
    def unload_model(self, model_id: str) -> None: ...

    @abstractmethod
    def predict(self, model_id: str, inference_input: InferenceInput) -> InferenceOutput: ...

    @abstractmethod
    def get_metrics(self, model_id: str) -> ModelMetrics | None: ...


class ModelManager:
    """Tracks loaded models, dispatches inference to providers and caches results."""

    def __init__(self, cache: InferenceCache | None = None) -> None:
        self._models: dict[str, Model] = {}
        self._providers: dict[str, ModelProvider] = {}
        self._cache = InferenceCache(1000, 3600.0) if cache is None else cache
        self._lock = threading.RLock()

    def register_provider(self, name: str, provider: ModelProvider) -> None:
        with self._lock:
            self._providers[name] = provider

    def _provider(self, name: str) -> ModelProvider | None:
        with self._lock:
            return self._providers.get(name)

    def load_model(self, config: ModelConfig) -> Model:
        """Load a model through its provider; an already loaded id is returned as is."""
        with self._lock:
            existing = self._models.get(config.id)
        if existing is not None:
            return existing

        provider = self._provider(config.provider)
        if provider is None:
            raise ModelError(f"provider not found: {config.provider}")
        try:
            model = provider.load_model(config)
        except Exception as exc:
            raise ModelError(f"failed to load model: {exc}") from exc

        with self._lock:
            self._models[config.id] = model
        return model

    def unload_model(self, model_id: str) -> None:
        with self._lock:
            model = self._models.get(model_id)
            if model is None:
                raise ModelError(f"model not found: {model_id}")
            provider = self._providers.get(model.provider)
        if provider is None:
            raise ModelError(f"provider not found: {model.provider}")
        provider.unload_model(model_id)
        with self._lock:
            self._models.pop(model_id, None)

    def predict(self, inference_input: InferenceInput) -> InferenceOutput:
        """Run inference, answering from the cache when possible."""
        cached = self._cache.get(inference_input)
        if cached is not None:
            return cached

        model_id = inference_input.model_id
        model = self.get_model(model_id)
        if model is None:
            raise ModelError(f"model not found: {model_id}")
        if model.status != ModelStatus.READY:
            status = getattr(model.status, "value", model.status)
            raise ModelError(f"model not ready: {model_id} (status: {status})")

        provider = self._provider(model.provider)
        if provider is None:
            raise ModelError(f"provider not found: {model.provider}")

        started = time.perf_counter()
        try:
            output = provider.predict(model_id, inference_input)
        except Exception as exc:
            raise ModelError(f"inference failed: {exc}") from exc

        with model._lock:
            model.last_used_at = datetime.now(timezone.utc)
            model.request_count += 1

        output.latency = time.perf_counter() - started
        output.timestamp = datetime.now(timezone.utc)
        self._cache.set(inference_input, output)
        return output

    def get_model(self, model_id: str) -> Model | None:
        with self._lock:
            return self._models.get(model_id)

    def list_models(self) -> list[Model]:
        with self._lock:
            return list(self._models.values())

    def get_metrics(self, model_id: str) -> ModelMetrics | None:
        """Metrics from the model's provider, or basic counts when it has none."""
        model = self.get_model(model_id)
        if model is None:
            return None
        provider = self._provider(model.provider)
        if provider is not None:
            return provider.get_metrics(model_id)
        with model._lock:
            return ModelMetrics(
                model_id=model.id,
                request_count=model.request_count,
                last_request_at=model.last_used_at,
            )

    def get_all_metrics(self) -> dict[str, ModelMetrics]:
        with self._lock:
            model_ids = list(self._models)
        result = {}
        for model_id in model_ids:
            metrics = self.get_metrics(model_id)
            if metrics is not None:
                result[model_id] = metrics
        return result

    def warm_up(self, model_ids: list[str]) -> None:
        """Run a throwaway inference on each loaded model; failures are ignored."""
        for model_id in model_ids:
            if self.get_model(model_id) is None:
                continue
            try:
                self.predict(InferenceInput(model_id=model_id, data="warmup"))
            except ModelError:
                pass

    def close(self) -> None:
        """Unload every model from its provider and stop the cache."""
        with self._lock:
            models = list(self._models.items())
            self._models = {}
        for model_id, model in models:
            provider = self._provider(model.provider)
            if provider is None:
                continue
            try:
                provider.unload_model(model_id)
            except Exception:
                pass
        self._cache.close()