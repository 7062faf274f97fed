"""A model provider that calls an OpenAI-compatible HTTP API."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import httpx

from neonex.ai.model import (
    InferenceInput,
    InferenceOutput,
    Model,
    ModelConfig,
    ModelError,
    ModelMetrics,
    ModelProvider,
    ModelStatus,
)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


@dataclass
class OpenAIConfig:
    api_key: str = ""
    base_url: str = ""


class OpenAIProvider(ModelProvider):
    """Runs chat, completion and embedding requests against the API."""

    def __init__(
        self,
        config: OpenAIConfig,
        *,
        client: httpx.Client | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._api_key = config.api_key
        self.base_url = config.base_url or DEFAULT_BASE_URL
        self._owns_client = client is None
        self._client = httpx.Client(timeout=timeout) if client is None else client
        self._metrics: dict[str, ModelMetrics] = {}
        self._lock = threading.Lock()

    def load_model(self, config: ModelConfig) -> Model:
        model = Model(
            id=config.id,
            name=config.name,
            version=config.version,
            type=config.type,
            status=ModelStatus.READY,
            endpoint=config.endpoint,
            provider="openai",
            config=config.config,
            metadata=config.metadata,
            loaded_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._metrics[config.id] = ModelMetrics(model_id=config.id)
        return model

    def unload_model(self, model_id: str) -> None:
        with self._lock:
            self._metrics.pop(model_id, None)

    def predict(self, model_id: str, inference_input: InferenceInput) -> InferenceOutput:
        """Dispatch on ``parameters["type"]``: chat (default), completion or embedding."""
        started = time.perf_counter()
        kind = inference_input.parameters.get("type")
        handlers: dict[str, Callable[[str, InferenceInput], Any]] = {
            "completion": self._completion,
            "embedding": self._embedding,
        }
        handler = handlers.get(kind, self._chat_completion) if isinstance(kind, str) else self._chat_completion
        try:
            result = handler(model_id, inference_input)
        except Exception:
            self._record(model_id, time.perf_counter() - started, error=True)
            raise
        self._record(model_id, time.perf_counter() - started, error=False)
        return InferenceOutput(
            model_id=model_id,
            result=result,
            metadata={},
            latency=time.perf_counter() - started,
            timestamp=datetime.now(timezone.utc),
        )

    def get_metrics(self, model_id: str) -> ModelMetrics | None:
        with self._lock:
            return self._metrics.get(model_id)

    def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> OpenAIProvider:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @staticmethod
    def _add_options(body: dict[str, Any], parameters: dict[str, Any]) -> None:
        for option in ("temperature", "max_tokens"):
            if option in parameters:
                body[option] = parameters[option]

    def _chat_completion(self, model_id: str, inference_input: InferenceInput) -> Any:
        messages = [{"role": "user", "content": str(inference_input.data)}]
        if "system" in inference_input.parameters:
            system = str(inference_input.parameters["system"])
            messages.insert(0, {"role": "system", "content": system})
        body: dict[str, Any] = {"model": model_id, "messages": messages}
        self._add_options(body, inference_input.parameters)
        return self._post("/chat/completions", body)

    def _completion(self, model_id: str, inference_input: InferenceInput) -> Any:
        body: dict[str, Any] = {"model": model_id, "prompt": inference_input.data}
        self._add_options(body, inference_input.parameters)
        return self._post("/completions", body)

    def _embedding(self, model_id: str, inference_input: InferenceInput) -> Any:
        return self._post("/embeddings", {"model": model_id, "input": inference_input.data})

    def _post(self, path: str, body: dict[str, Any]) -> Any:
        response = self._client.post(
            self.base_url + path,
            json=body,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        if response.status_code != httpx.codes.OK:
            raise ModelError(f"API error: {response.status_code} - {response.text}")
        return response.json()

    def _record(self, model_id: str, latency: float, *, error: bool) -> None:
        with self._lock:
            metrics = self._metrics.setdefault(model_id, ModelMetrics(model_id=model_id))
            metrics.request_count += 1
            metrics.total_latency += latency
            metrics.avg_latency = metrics.total_latency / metrics.request_count
            metrics.last_request_at = datetime.now(timezone.utc)
            if error:
                metrics.error_count += 1