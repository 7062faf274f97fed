# neonex

The core of a modular backend framework. It gives you the parts an
application is assembled from:

- `neonex.config`: database settings taken from the environment
  (`load_database_config`, `build_dsn`, `init_database`, `DatabaseManager`).
- `neonex.container`: a dependency container that holds singleton or
  transient providers (`Container`, `ProviderType`).
- `neonex.registry`: a module registry. It finds modules through
  `module.json` files and runs their service, route and init hooks
  (`Module`, `ModuleRegistry`).
- `neonex.users`, `neonex.product`: repositories and services backed by SQLite.
- `neonex.admin_models`, `neonex.admin_repository`, `neonex.admin_service`,
  `neonex.admin_seeder`: audit logs, activity summaries, system health and
  typed system settings.
- `neonex.ai`: inference tooling. It covers a model manager with a result
  cache, pipelines, an OpenAI-compatible HTTP provider and a feature store.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install ".[test]"
```

## A quick look

```python
from neonex.container import Container, ProviderType

container = Container()
container.provide("greeting", lambda: "hello", ProviderType.SINGLETON)
assert container.resolve("greeting") == "hello"
```

```python
from neonex.ai.model import ModelManager, ModelConfig, InferenceInput
from neonex.ai.openai_provider import OpenAIConfig, OpenAIProvider

manager = ModelManager()
manager.register_provider("openai", OpenAIProvider(OpenAIConfig(api_key="placeholder")))
manager.load_model(ModelConfig(id="gpt-4o-mini", name="chat", provider="openai"))
output = manager.predict(InferenceInput(model_id="gpt-4o-mini", data="Hello"))
```

Pipelines chain transforms and model calls:

```python
from neonex.ai.pipeline import PipelineManager, Pipeline, PipelineStep, StepType, text_preprocessor

pipelines = PipelineManager(manager)
pipelines.create_pipeline(Pipeline(
    id="clean",
    name="clean",
    steps=[PipelineStep(name="pre", type=StepType.PREPROCESS, transform=text_preprocessor)],
))
result = pipelines.execute("clean", "some text")
```

Errors are raised as exceptions. For example, `ModelError`, `PipelineError`,
`FeatureNotFoundError`, `SettingNotFoundError`, `SettingConflictError`,
`ProductNotFoundError` and `UnsupportedDriverError`.

## Running the tests

```
pytest
```