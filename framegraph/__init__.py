"""
FrameGraph - Pull-driven filter graph engine for decoded media frames.

Build a graph of named filters, link their ports, configure it once, then
push frames into its sources and pull frames out of its sinks.
"""

__version__ = "0.1.0"
__author__ = "FrameGraph Team"

from framegraph.core.graph import FilterGraph, GraphState
from framegraph.core.node import FilterNode, NodeState
from framegraph.core.frame import Frame, MediaType
from framegraph.core.result import PullResult, PullStatus
from framegraph.core.config import GraphConfig
from framegraph.core.driver import run_graph

__all__ = [
    "FilterGraph",
    "GraphState",
    "FilterNode",
    "NodeState",
    "Frame",
    "MediaType",
    "PullResult",
    "PullStatus",
    "GraphConfig",
    "run_graph",
]
