"""
Filter Registry - Catalog of known filter kinds.

The registry maps a kind name ("volume", "buffersink", ...) to the Filter
subclass implementing it. Graphs look kinds up here when a node is
allocated; the engine itself knows no kind by name.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from typing import Any, Optional, Type

from framegraph.filters.base import Filter, SinkFilter, SourceFilter

logger = logging.getLogger(__name__)

# Global registry instance
_registry: Optional[FilterRegistry] = None

# Abstract bases that are never registered as kinds
_BASE_CLASSES = (Filter, SourceFilter, SinkFilter)


class FilterRegistry:
    """
    Central registry for filter kinds.

    Provides registration, lookup and discovery of Filter subclasses.
    """

    def __init__(self):
        self._kinds: dict[str, Type[Filter]] = {}

    # ==================== Registration ====================

    def register(self, name: str, filter_class: Type[Filter]) -> None:
        """Register a filter kind under a name."""
        if not (isinstance(filter_class, type) and issubclass(filter_class, Filter)):
            raise TypeError(f"Not a filter class: {filter_class!r}")
        existing = self._kinds.get(name)
        if existing is not None and existing is not filter_class:
            logger.warning(f"Replacing filter kind '{name}': {existing.__name__} -> {filter_class.__name__}")
        self._kinds[name] = filter_class
        logger.debug(f"Registered filter kind: {name}")

    def unregister(self, name: str) -> None:
        self._kinds.pop(name, None)

    # ==================== Retrieval ====================

    def get_filter_class(self, name: str) -> Optional[Type[Filter]]:
        """Get a filter class by kind name."""
        return self._kinds.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._kinds

    def get_all_kinds(self) -> dict[str, Type[Filter]]:
        """Get all registered filter kinds."""
        return self._kinds.copy()

    def list_kinds(self) -> list[str]:
        return sorted(self._kinds)

    def describe(self, name: str) -> dict[str, Any]:
        """Describe a kind's ports and options (for listings)."""
        filter_class = self._kinds[name]
        metadata = filter_class.metadata
        return {
            "name": name,
            "description": metadata.description,
            "role": metadata.role.value,
            "inputs": [
                f"{port.name}:{port.media_type.value}" + (" (optional)" if port.optional else "")
                for port in metadata.inputs
            ],
            "outputs": [
                f"{port.name}:{port.media_type.value}" + (" (optional)" if port.optional else "")
                for port in metadata.outputs
            ],
            "options": {key: spec.help for key, spec in metadata.options.items()},
        }

    # ==================== Discovery ====================

    def discover_filters(self, package_name: str = "framegraph.filters") -> int:
        """
        Import every module of a package and register the filter kinds found.

        Returns:
            Number of kinds registered
        """
        package = importlib.import_module(package_name)
        count = 0

        if hasattr(package, "__path__"):
            for _, name, _ in pkgutil.iter_modules(package.__path__):
                try:
                    module = importlib.import_module(f"{package_name}.{name}")
                except ImportError as e:
                    logger.warning(f"Failed to import {package_name}.{name}: {e}")
                    continue
                count += self._register_from_module(module)
        else:
            count += self._register_from_module(package)

        logger.debug(f"Discovered {count} filter kinds in {package_name}")
        return count

    def _register_from_module(self, module: Any) -> int:
        """Register all filter kinds defined in a module."""
        count = 0

        for attr_name in dir(module):
            if attr_name.startswith("_"):
                continue

            attr = getattr(module, attr_name)
            if not isinstance(attr, type) or attr in _BASE_CLASSES:
                continue
            if not issubclass(attr, Filter) or getattr(attr, "__abstractmethods__", None):
                continue
            # Only classes defined here, not ones imported from elsewhere
            if attr.__module__ != module.__name__:
                continue

            self.register(attr.metadata.name, attr)
            count += 1

        return count


def get_registry() -> FilterRegistry:
    """Get the global filter registry, with the built-in kinds registered."""
    global _registry
    if _registry is None:
        _registry = FilterRegistry()
        _registry.discover_filters()
    return _registry


def register_filter(name: str):
    """Decorator to register a filter kind in the global registry."""
    def decorator(cls: Type[Filter]) -> Type[Filter]:
        get_registry().register(name, cls)
        return cls
    return decorator
