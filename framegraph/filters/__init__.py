"""
Filter kinds - the catalog of node types a graph can allocate.

Built-in kinds live in the modules of this package and are registered
the first time the global registry is requested.
"""

from framegraph.filters.base import (
    Filter,
    FilterMetadata,
    FilterRole,
    OptionSpec,
    PortSpec,
    SinkFilter,
    SourceFilter,
)
from framegraph.filters.registry import FilterRegistry, get_registry, register_filter

__all__ = [
    "Filter",
    "FilterMetadata",
    "FilterRole",
    "OptionSpec",
    "PortSpec",
    "SinkFilter",
    "SourceFilter",
    "FilterRegistry",
    "get_registry",
    "register_filter",
]
