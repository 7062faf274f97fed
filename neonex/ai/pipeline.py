"""Multi-step inference pipelines built from transforms and model calls."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping

from neonex.ai.model import InferenceInput, ModelManager

Transform = Callable[[Any], Any]


class StepType(str, Enum):
    PREPROCESS = "preprocess"
    MODEL = "model"
    POSTPROCESS = "postprocess"
    TRANSFORM = "transform"


_TRANSFORM_STEPS = frozenset({StepType.PREPROCESS, StepType.POSTPROCESS, StepType.TRANSFORM})


class PipelineError(Exception):
    """Raised when a pipeline is missing or one of its steps fails.

    ``result`` holds the partial result of a failed execution, if any.
    """

    def __init__(self, message: str, result: PipelineResult | None = None) -> None:
        super().__init__(message)
        self.result = result


@dataclass
class PipelineStep:
    name: str
    type: StepType
    model_id: str = ""
    transform: Transform | None = None
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class Pipeline:
    id: str = ""
    name: str = ""
    description: str = ""
    steps: list[PipelineStep] = field(default_factory=list)
    config: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass
class StepResult:
    """Outcome of one step; ``latency`` is in seconds."""

    step_name: str
    input: Any
    output: Any = None
    latency: float = 0.0
    error: Exception | None = None


@dataclass
class PipelineResult:
    """Outcome of a pipeline run; ``latency`` is in seconds."""

    pipeline_id: str
    input: Any
    output: Any = None
    step_results: list[StepResult] = field(default_factory=list)
    latency: float = 0.0
    timestamp: datetime | None = None


class PipelineManager:
    """Stores pipelines and runs them against a model manager."""

    def __init__(self, model_manager: ModelManager) -> None:
        self._pipelines: dict[str, Pipeline] = {}
        self._models = model_manager
        self._lock = threading.Lock()

    def create_pipeline(self, pipeline: Pipeline) -> None:
        """Store ``pipeline``, giving it an id when it has none."""
        if not pipeline.id:
            pipeline.id = f"pipeline-{time.time_ns()}"
        pipeline.created_at = datetime.now(timezone.utc)
        with self._lock:
            self._pipelines[pipeline.id] = pipeline

    def get_pipeline(self, pipeline_id: str) -> Pipeline:
        with self._lock:
            pipeline = self._pipelines.get(pipeline_id)
        if pipeline is None:
            raise PipelineError(f"pipeline not found: {pipeline_id}")
        return pipeline

    def list_pipelines(self) -> list[Pipeline]:
        with self._lock:
            return list(self._pipelines.values())

    def delete_pipeline(self, pipeline_id: str) -> None:
        with self._lock:
            if pipeline_id not in self._pipelines:
                raise PipelineError(f"pipeline not found: {pipeline_id}")
            del self._pipelines[pipeline_id]

    def _run_step(self, step: PipelineStep, data: Any) -> Any:
        if step.type in _TRANSFORM_STEPS:
            return data if step.transform is None else step.transform(data)
        if step.type == StepType.MODEL:
            if not step.model_id:
                raise PipelineError("model_id required for model step")
            output = self._models.predict(
                InferenceInput(model_id=step.model_id, data=data, parameters=step.parameters)
            )
            return output.result
        raise PipelineError(f"unknown step type: {getattr(step.type, 'value', step.type)}")

    def execute(self, pipeline_id: str, data: Any) -> PipelineResult:
        """Feed ``data`` through every step in order and return the result."""
        started = time.perf_counter()
        pipeline = self.get_pipeline(pipeline_id)
        result = PipelineResult(pipeline_id=pipeline_id, input=data)
        current = data

        for step in pipeline.steps:
            step_started = time.perf_counter()
            step_result = StepResult(step_name=step.name, input=current)
            try:
                output = self._run_step(step, current)
            except Exception as exc:
                step_result.error = exc
                step_result.latency = time.perf_counter() - step_started
                result.step_results.append(step_result)
                result.latency = time.perf_counter() - started
                result.timestamp = datetime.now(timezone.utc)
                raise PipelineError(f"step {step.name} failed: {exc}", result) from exc
            step_result.output = output
            step_result.latency = time.perf_counter() - step_started
            result.step_results.append(step_result)
            current = output

        result.output = current
        result.latency = time.perf_counter() - started
        result.timestamp = datetime.now(timezone.utc)
        return result


def text_preprocessor(data: Any) -> str:
    """Accept text input unchanged; anything else is rejected."""
    if not isinstance(data, str):
        raise TypeError("expected string input")
    return data


def json_extractor(field_path: str) -> Transform:
    """Return a transform that picks ``field_path`` out of a mapping."""

    def extract(data: Any) -> Any:
        if not isinstance(data, Mapping):
            raise TypeError("expected map input")
        if field_path not in data:
            raise KeyError(f"field not found: {field_path}")
        return data[field_path]

    return extract


def batch_processor(batch_size: int, process: Transform) -> Transform:
    """Return a transform that applies ``process`` to every item of a list."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    def run(data: Any) -> list[Any]:
        if not isinstance(data, (list, tuple)):
            raise TypeError("expected slice input")
        results: list[Any] = []
        for start in range(0, len(data), batch_size):
            results.extend(process(item) for item in data[start : start + batch_size])
        return results

    return run