"""Application modules and the registry that discovers and loads them."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

from neonex.container import Container


class Module(ABC):
    """A pluggable application module."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The module's unique name."""

    @abstractmethod
    def init(self) -> None:
        """Initialise the module after registration."""

    @abstractmethod
    def routes(self, router: Any, container: Container) -> None:
        """Attach the module's routes to ``router``."""

    @abstractmethod
    def register_services(self, container: Container) -> None:
        """Register the module's services in ``container``."""


ModuleFactory = Callable[[], Module]

MODULE_MAP: dict[str, ModuleFactory] = {}
"""Factories for known modules, keyed by module name."""


def _read_metadata(path: Path) -> tuple[str, bool]:
    try:
        meta = json.loads(path.read_text(encoding="utf-8"))
    except ValueError:
        meta = {}
    if not isinstance(meta, dict):
        meta = {}
    name = meta.get("name")
    return (name if isinstance(name, str) else ""), meta.get("enabled") is True


class ModuleRegistry:
    """Keeps the registered modules in registration order."""

    def __init__(self, factories: dict[str, ModuleFactory] | None = None) -> None:
        self.modules: list[Module] = []
        self._factories = MODULE_MAP if factories is None else factories

    def register(self, module: Module) -> None:
        print("Register module:", module.name)
        self.modules.append(module)

    def load(self) -> None:
        """Initialise every registered module."""
        for module in self.modules:
            print("Init module:", module.name)
            module.init()

    def load_routes(self, router: Any, container: Container) -> None:
        for module in self.modules:
            module.routes(router, container)

    def register_module_services(self, container: Container) -> None:
        for module in self.modules:
            module.register_services(container)

    def auto_discover(self, modules_dir: str | Path = "modules") -> None:
        """Register every enabled module described by ``<dir>/<name>/module.json``."""
        root = Path(modules_dir)
        try:
            entries = sorted(root.iterdir(), key=lambda entry: entry.name)
        except OSError as exc:
            print("Cannot read modules folder:", exc)
            return

        for entry in entries:
            if not entry.is_dir():
                continue
            meta_file = entry / "module.json"
            try:
                name, enabled = _read_metadata(meta_file)
            except OSError:
                print(f"No metadata for module '{entry.name}', skipping...")
                continue

            if not enabled:
                print("⏹️  Module disabled:", name)
                continue

            factory = self._factories.get(name)
            if factory is None:
                print("No factory found for:", name)
                continue

            self.register(factory())