"""Model management, inference caching, pipelines, providers and a feature store."""