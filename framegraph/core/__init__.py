"""
Core engine components - frames, nodes, graphs and the execution driver.
"""

from framegraph.core.errors import (
    FilterGraphError,
    AllocationError,
    UnknownFilterKind,
    InvalidState,
    PortOutOfRange,
    PortAlreadyLinked,
    LinkRejected,
    ConfigurationError,
    GraphNotConfigured,
    StreamClosed,
    Backpressure,
    InitializationError,
    ProcessingError,
)
from framegraph.core.frame import Frame, MediaType
from framegraph.core.result import PullResult, PullStatus
from framegraph.core.config import GraphConfig, FilterConfig, LinkConfig
from framegraph.core.node import FilterNode, Link, NodeState
from framegraph.core.driver import ExecutionDriver, StepStatus, run_graph
from framegraph.core.graph import FilterGraph, GraphState

__all__ = [
    "FilterGraphError",
    "AllocationError",
    "UnknownFilterKind",
    "InvalidState",
    "PortOutOfRange",
    "PortAlreadyLinked",
    "LinkRejected",
    "ConfigurationError",
    "GraphNotConfigured",
    "StreamClosed",
    "Backpressure",
    "InitializationError",
    "ProcessingError",
    "Frame",
    "MediaType",
    "PullResult",
    "PullStatus",
    "GraphConfig",
    "FilterConfig",
    "LinkConfig",
    "FilterNode",
    "Link",
    "NodeState",
    "ExecutionDriver",
    "StepStatus",
    "run_graph",
    "FilterGraph",
    "GraphState",
]
