"""Core of a modular backend framework: container, registry, modules and AI tooling."""

__version__ = "0.1.0"