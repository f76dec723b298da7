"""
Configuration management for filter graphs.

A graph can be described in a YAML or JSON file: the filters to allocate
(kind, instance name, options) and the links between their ports.

Example (YAML):
    name: audio_gain
    queue_size: 32
    filters:
      - {name: in, kind: abuffer, options: {sample_rate: 48000}}
      - {name: gain, kind: volume, options: {volume: 0.5}}
      - {name: out, kind: abuffersink}
    links:
      - {from: "in:0", to: "gain:0"}
      - {from: gain, to: out}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


# Frames a source holds before push() reports backpressure
DEFAULT_QUEUE_SIZE = 16

# Upper bound on filters per graph
DEFAULT_MAX_NODES = 1024


def parse_endpoint(value: str) -> tuple[str, int]:
    """Parse "name:port" (port defaults to 0)."""
    name, sep, port = str(value).rpartition(":")
    if not sep:
        return str(value), 0
    if not name or not port.isdigit():
        raise ValueError(f"Invalid link endpoint: '{value}' (expected name or name:port)")
    return name, int(port)


@dataclass
class FilterConfig:
    """One filter of a graph description."""
    kind: str
    name: str = ""
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilterConfig:
        if "kind" not in data:
            raise ValueError(f"Filter entry without 'kind': {data}")
        return cls(
            kind=str(data["kind"]),
            name=str(data.get("name") or ""),
            options=dict(data.get("options") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind}
        if self.name:
            data["name"] = self.name
        if self.options:
            data["options"] = self.options
        return data


@dataclass
class LinkConfig:
    """One link of a graph description."""
    src: str
    dst: str
    src_port: int = 0
    dst_port: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LinkConfig:
        if "from" not in data or "to" not in data:
            raise ValueError(f"Link entry needs 'from' and 'to': {data}")
        src, src_port = parse_endpoint(data["from"])
        dst, dst_port = parse_endpoint(data["to"])
        return cls(src=src, dst=dst, src_port=src_port, dst_port=dst_port)

    def to_dict(self) -> dict[str, Any]:
        return {"from": f"{self.src}:{self.src_port}", "to": f"{self.dst}:{self.dst_port}"}

    def __str__(self) -> str:
        return f"{self.src}:{self.src_port} -> {self.dst}:{self.dst_port}"


@dataclass
class GraphConfig:
    """
    Configuration container for a filter graph.

    Attributes:
        name: Graph name (used in logs)
        queue_size: Default source queue capacity
        max_nodes: Maximum number of filters
        filters: Filters to allocate, in order
        links: Links to create once every filter exists
    """

    name: str = "FilterGraph"
    queue_size: int = DEFAULT_QUEUE_SIZE
    max_nodes: int = DEFAULT_MAX_NODES
    filters: list[FilterConfig] = field(default_factory=list)
    links: list[LinkConfig] = field(default_factory=list)

    @classmethod
    def from_file(cls, path: Path | str) -> GraphConfig:
        """Load configuration from a YAML or JSON file."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, 'r') as f:
            if path.suffix in ('.yaml', '.yml'):
                data = yaml.safe_load(f)
            elif path.suffix == '.json':
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {path.suffix}")

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GraphConfig:
        """Create configuration from a dictionary."""
        config = cls()

        if "name" in data:
            config.name = str(data["name"])

        if "queue_size" in data:
            config.queue_size = int(data["queue_size"])

        if "max_nodes" in data:
            config.max_nodes = int(data["max_nodes"])

        config.filters = [FilterConfig.from_dict(entry) for entry in data.get("filters") or []]
        config.links = [LinkConfig.from_dict(entry) for entry in data.get("links") or []]

        # Unnamed filters get the name the graph would give them
        for index, entry in enumerate(config.filters):
            if not entry.name:
                entry.name = f"{entry.kind}_{index}"

        return config

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a dictionary."""
        return {
            "name": self.name,
            "queue_size": self.queue_size,
            "max_nodes": self.max_nodes,
            "filters": [entry.to_dict() for entry in self.filters],
            "links": [entry.to_dict() for entry in self.links],
        }

    def save(self, path: Path | str):
        """Save configuration to a YAML or JSON file."""
        path = Path(path)

        with open(path, 'w') as f:
            if path.suffix in ('.yaml', '.yml'):
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
            elif path.suffix == '.json':
                json.dump(self.to_dict(), f, indent=2)
            else:
                raise ValueError(f"Unsupported config format: {path.suffix}")

        logger.info(f"Configuration saved to: {path}")

    def validate(self) -> list[str]:
        """
        Validate the configuration and return a list of errors.
        Returns an empty list if configuration is valid.

        Only checks what can be checked without a registry; kinds, ports
        and topology are checked when the graph is built.
        """
        errors = []

        if self.queue_size < 1:
            errors.append(f"queue_size must be >= 1, got {self.queue_size}")

        if self.max_nodes < 1:
            errors.append(f"max_nodes must be >= 1, got {self.max_nodes}")

        if len(self.filters) > self.max_nodes:
            errors.append(f"{len(self.filters)} filters exceed max_nodes={self.max_nodes}")

        names = [entry.name for entry in self.filters]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        for name in duplicates:
            errors.append(f"Duplicate filter name: {name}")

        known = set(names)
        for entry in self.links:
            for endpoint in (entry.src, entry.dst):
                if endpoint not in known:
                    errors.append(f"Link {entry} refers to unknown filter '{endpoint}'")

        return errors
