"""
Filter Graph - owner of filter nodes and the links between them.

A graph is built (nodes allocated, initialized and linked), configured once
(validated and locked), then run by pushing frames into its sources and
pulling frames out of its sinks. Destroying it releases every node and
every frame still buffered inside.

The engine has no internal locking: drive a graph from one thread at a time.
"""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from framegraph.core.config import DEFAULT_MAX_NODES, DEFAULT_QUEUE_SIZE, GraphConfig
from framegraph.core.driver import ExecutionDriver
from framegraph.core.errors import (
    AllocationError,
    Backpressure,
    ConfigurationError,
    FilterGraphError,
    GraphNotConfigured,
    InitializationError,
    InvalidState,
    ProcessingError,
    StreamClosed,
    UnknownFilterKind,
)
from framegraph.core.frame import Frame
from framegraph.core.node import FilterNode, Link, NodeState
from framegraph.core.result import PullResult
from framegraph.filters.base import FilterRole

if TYPE_CHECKING:
    from framegraph.filters.registry import FilterRegistry

logger = logging.getLogger(__name__)

_graph_ids = itertools.count(1)


class GraphState(Enum):
    """Lifecycle state of a filter graph."""
    BUILDING = "building"
    CONFIGURED = "configured"
    FAILED = "failed"
    RELEASED = "released"


class FilterGraph:
    """
    A directed acyclic graph of filter nodes.

    The graph:
    - Allocates nodes by kind name from a filter registry
    - Owns every node (an arena keyed by integer handle) and every link
    - Validates and locks the topology in configure()
    - Moves frames on demand when a sink is pulled

    Example:
        graph = FilterGraph()
        src = graph.add_filter("abuffer", {"sample_rate": 48000})
        vol = graph.add_filter("volume", {"volume": 0.5})
        sink = graph.add_filter("abuffersink")
        graph.link(src, 0, vol, 0)
        graph.link(vol, 0, sink, 0)
        graph.configure()

        graph.push(src, frame)
        result = graph.pull(sink)
    """

    HOOK_EVENTS = ("configured", "frame_pushed", "frame_pulled", "end_of_stream", "error")

    def __init__(
        self,
        name: str = "FilterGraph",
        registry: Optional[FilterRegistry] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        max_nodes: int = DEFAULT_MAX_NODES,
    ):
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        if max_nodes < 1:
            raise ValueError("max_nodes must be >= 1")

        if registry is None:
            from framegraph.filters.registry import get_registry
            registry = get_registry()

        try:
            self._nodes: dict[int, FilterNode] = {}
            self._links: list[Link] = []
            self._hooks: dict[str, list[Callable]] = defaultdict(list)
            self._driver = ExecutionDriver()
        except MemoryError as e:
            raise AllocationError(f"Cannot allocate filter graph '{name}'") from e

        self.id = next(_graph_ids)
        self.name = name
        self._registry = registry
        self._queue_size = queue_size
        self._max_nodes = max_nodes
        self._handles = itertools.count()
        self._state = GraphState.BUILDING
        self._execution_order: list[str] = []
        self._fatal_error: Optional[ProcessingError] = None
        self._ended_sinks: set[int] = set()

    # ==================== State ====================

    @property
    def state(self) -> GraphState:
        return self._state

    @property
    def is_building(self) -> bool:
        return self._state is GraphState.BUILDING

    @property
    def is_configured(self) -> bool:
        return self._state is GraphState.CONFIGURED

    @property
    def is_released(self) -> bool:
        return self._state is GraphState.RELEASED

    @property
    def registry(self) -> FilterRegistry:
        return self._registry

    @property
    def queue_size(self) -> int:
        return self._queue_size

    @property
    def fatal_error(self) -> Optional[ProcessingError]:
        return self._fatal_error

    def _require_building(self, action: str) -> None:
        if self._state is not GraphState.BUILDING:
            raise InvalidState(f"Cannot {action}: graph '{self.name}' is {self._state.value}")

    # ==================== Nodes ====================

    def alloc_filter(self, kind: str, name: Optional[str] = None) -> FilterNode:
        """
        Allocate a node of the given kind, in the Allocated state.

        Raises:
            InvalidState: If the graph is not Building
            UnknownFilterKind: If the registry has no such kind
            AllocationError: If the node limit is reached or the name is taken
        """
        self._require_building("allocate filters")

        filter_class = self._registry.get_filter_class(kind)
        if filter_class is None:
            logger.warning(f"Filter kind not found: {kind}")
            raise UnknownFilterKind(kind)

        if len(self._nodes) >= self._max_nodes:
            raise AllocationError(
                f"Graph '{self.name}' is full ({self._max_nodes} filters)"
            )

        handle = next(self._handles)
        name = name or f"{kind}_{handle}"
        if self.get_filter(name) is not None:
            raise AllocationError(f"Filter with name '{name}' already exists", node_name=name)

        try:
            node = FilterNode(self, handle, filter_class, name)
        except MemoryError as e:
            raise AllocationError(f"Cannot allocate filter '{name}'", node_name=name) from e

        self._nodes[handle] = node
        logger.debug(f"Allocated filter: {name} ({kind})")
        return node

    def add_filter(
        self,
        kind: str,
        options: Optional[dict[str, Any]] = None,
        name: Optional[str] = None,
    ) -> FilterNode:
        """
        Allocate, configure and initialize a node in one call.

        A node that fails to initialize is released before the error is
        re-raised, so it never blocks configure().
        """
        node = self.alloc_filter(kind, name=name)
        try:
            node.set_options(options or {})
            node.initialize()
        except InitializationError:
            node.free()
            raise
        return node

    def get_filter(self, name: str) -> Optional[FilterNode]:
        """Get a live node by instance name."""
        for node in self._nodes.values():
            if node.name == name:
                return node
        return None

    def get_filter_by_handle(self, handle: int) -> Optional[FilterNode]:
        return self._nodes.get(handle)

    @property
    def filters(self) -> list[FilterNode]:
        """Live nodes in allocation order."""
        return list(self._nodes.values())

    @property
    def sources(self) -> list[FilterNode]:
        return [node for node in self._nodes.values() if node.is_source]

    @property
    def sinks(self) -> list[FilterNode]:
        return [node for node in self._nodes.values() if node.is_sink]

    @property
    def links(self) -> list[Link]:
        return list(self._links)

    def _forget_node(self, node: FilterNode) -> None:
        self._nodes.pop(node.handle, None)
        if node.name in self._execution_order:
            self._execution_order.remove(node.name)

    # ==================== Links ====================

    def link(self, src: FilterNode, src_port: int, dst: FilterNode, dst_port: int) -> Link:
        """Link src's output port to dst's input port. See FilterNode.link()."""
        return src.link(src_port, dst, dst_port)

    def _register_link(self, link: Link) -> None:
        self._links.append(link)

    def _unregister_link(self, link: Link) -> None:
        if link in self._links:
            self._links.remove(link)

    # ==================== Configuration ====================

    def _resolve_execution_order(self, diagnostics: list[str]) -> list[str]:
        """
        Order live nodes so every node comes after the nodes feeding it.

        Nodes caught in a cycle are reported in diagnostics and appended
        at the end in allocation order.
        """
        names = {node.handle: node.name for node in self._nodes.values()}

        # Kahn's algorithm for topological sort
        in_degree: dict[str, int] = {name: 0 for name in names.values()}
        graph: dict[str, list[str]] = defaultdict(list)

        for link in self._links:
            if link.src.handle not in names or link.dst.handle not in names:
                continue
            if link.src.state is NodeState.RELEASED or link.dst.state is NodeState.RELEASED:
                continue
            graph[link.src.name].append(link.dst.name)
            in_degree[link.dst.name] += 1

        queue = [name for name, degree in in_degree.items() if degree == 0]
        result = []

        while queue:
            # Sort for deterministic order
            queue.sort()
            node_name = queue.pop(0)
            result.append(node_name)

            for dependent in graph[node_name]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(in_degree):
            remaining = [name for name in names.values() if name not in result]
            diagnostics.append(f"Cycle detected involving filters: {', '.join(sorted(remaining))}")
            result.extend(remaining)

        return result

    def configure(self) -> None:
        """
        Validate the topology and lock the graph.

        All problems are collected before failing. On failure the graph
        moves to Failed and nothing is locked.

        Raises:
            InvalidState: If the graph is not Building (including a second call)
            ConfigurationError: With every diagnostic found
        """
        if self._state is not GraphState.BUILDING:
            raise InvalidState(
                f"Graph '{self.name}' cannot be configured: it is {self._state.value}"
            )

        diagnostics: list[str] = []

        for node in self._nodes.values():
            if node.state is not NodeState.INITIALIZED:
                diagnostics.append(f"Filter '{node.name}' is {node.state.value}, not initialized")

            for port, spec in enumerate(node.metadata.inputs):
                if node.inputs[port] is None and not spec.optional:
                    diagnostics.append(
                        f"Input port {port} ({spec.name}) of '{node.name}' is not linked"
                    )
            for port, spec in enumerate(node.metadata.outputs):
                if node.outputs[port] is None and not spec.optional:
                    diagnostics.append(
                        f"Output port {port} ({spec.name}) of '{node.name}' is not linked"
                    )

        order = self._resolve_execution_order(diagnostics)

        if diagnostics:
            self._state = GraphState.FAILED
            for message in diagnostics:
                logger.error(f"Graph '{self.name}': {message}")
            raise ConfigurationError(diagnostics)

        self._execution_order = order
        self._state = GraphState.CONFIGURED
        logger.info(
            f"Configured graph '{self.name}': {len(self._nodes)} filters, {len(self._links)} links"
        )
        logger.debug(f"Execution order: {' -> '.join(order)}")
        self._trigger_hooks("configured", self)

    # ==================== Hooks ====================

    def add_hook(self, event: str, callback: Callable) -> FilterGraph:
        """
        Add a hook callback for graph events.

        Events:
            - configured: After configure() succeeds (receives the graph)
            - frame_pushed: After a frame is queued in a source (receives the node)
            - frame_pulled: After a sink produced a frame (receives the node)
            - end_of_stream: The first time a sink reports EndOfStream (receives the node)
            - error: When a pull fails (receives the node and the error)

        Hooks never see frames; frames belong to whoever pushed or pulled them.
        """
        if event not in self.HOOK_EVENTS:
            raise ValueError(f"Unknown hook event: {event}")
        self._hooks[event].append(callback)
        return self

    def _trigger_hooks(self, event: str, *args, **kwargs):
        """Trigger all hooks for an event."""
        for callback in self._hooks[event]:
            try:
                callback(*args, **kwargs)
            except Exception as e:
                logger.warning(f"Hook callback failed for event '{event}': {e}")

    # ==================== Push / pull ====================

    def _check_runnable(self, node: FilterNode, action: str) -> None:
        if self._state is GraphState.RELEASED:
            raise InvalidState(f"Cannot {action}: graph '{self.name}' has been released")
        if self._fatal_error is not None:
            raise self._fatal_error
        if self._state is not GraphState.CONFIGURED:
            raise GraphNotConfigured(
                f"Cannot {action}: graph '{self.name}' is {self._state.value}, not configured"
            )
        if node.graph_id != self.id:
            raise InvalidState(f"Filter '{node.name}' does not belong to graph '{self.name}'", node_name=node.name)
        if node.state is NodeState.RELEASED:
            raise InvalidState(f"Filter '{node.name}' has been released", node_name=node.name)

    def push(self, node: FilterNode, frame: Optional[Frame]) -> None:
        """
        Hand a frame to a source; None signals end-of-stream.

        The graph takes ownership of the frame. Never blocks.

        Raises:
            GraphNotConfigured: Before configure()
            InvalidState: If node is not a live source of this graph
            StreamClosed: If the source already signalled end-of-stream
            Backpressure: If the source queue is full; retry after pulling
        """
        self._check_runnable(node, "push")
        if not node.is_source:
            raise InvalidState(f"Filter '{node.name}' ({node.kind}) is not a source", node_name=node.name)
        if node.source_eof:
            raise StreamClosed(f"Source '{node.name}' already signalled end of stream", node_name=node.name)

        if frame is None:
            node._source_eof = True
            logger.debug(f"Source '{node.name}' signalled end of stream")
            return

        if not isinstance(frame, Frame):
            raise TypeError(f"Expected a Frame, got {type(frame).__name__}")

        capacity = node.filter.queue_size or self._queue_size
        if node.queued >= capacity:
            raise Backpressure(node.name, capacity)

        node._queue.append(frame)
        self._trigger_hooks("frame_pushed", node)

    def pull(self, node: FilterNode) -> PullResult:
        """
        Pull one frame from a sink, running as much propagation as needed.

        Returns:
            Produced (an independent copy the caller owns), Pending, EndOfStream,
            or Error carrying the ProcessingError raised during propagation

        Raises:
            GraphNotConfigured: Before configure()
            InvalidState: If node is not a live sink of this graph
        """
        if self._fatal_error is not None and self._state is not GraphState.RELEASED:
            return PullResult.failure_result(self._fatal_error)

        self._check_runnable(node, "pull")
        if not node.is_sink:
            raise InvalidState(f"Filter '{node.name}' ({node.kind}) is not a sink", node_name=node.name)

        try:
            result = self._driver.pull(node)
        except ProcessingError as e:
            if e.fatal:
                self._fail(e)
            self._trigger_hooks("error", node, e)
            return PullResult.failure_result(e)

        if result.produced:
            self._trigger_hooks("frame_pulled", node)
        elif result.end_of_stream and node.handle not in self._ended_sinks:
            self._ended_sinks.add(node.handle)
            logger.debug(f"Sink '{node.name}' reached end of stream")
            self._trigger_hooks("end_of_stream", node)

        return result

    def _fail(self, error: ProcessingError) -> None:
        self._fatal_error = error
        self._state = GraphState.FAILED
        logger.error(f"Graph '{self.name}' failed: {error}")

    # ==================== Destruction ====================

    def destroy(self) -> None:
        """
        Release every node and every buffered frame.

        Safe at any point of the build/push/pull cycle. No hook fires once
        destruction starts.

        Raises:
            InvalidState: If the graph was already released
        """
        if self._state is GraphState.RELEASED:
            raise InvalidState(f"Graph '{self.name}' has already been released")

        self._hooks.clear()

        for node in list(self._nodes.values()):
            node._release()
        for link in self._links:
            link.close()

        dropped = len(self._nodes)
        self._nodes.clear()
        self._links.clear()
        self._execution_order = []
        self._state = GraphState.RELEASED
        logger.info(f"Destroyed graph '{self.name}' ({dropped} filters released)")

    def __enter__(self) -> FilterGraph:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._state is not GraphState.RELEASED:
            self.destroy()

    # ==================== Description ====================

    def dump(self) -> str:
        """
        Describe the graph: filters in execution order with their links.

        Returns:
            A multi-line human readable description
        """
        order = self._execution_order or self._resolve_execution_order([])

        lines = [f"Filter graph: {self.name} ({self._state.value})", "=" * 50]
        for i, node_name in enumerate(order, 1):
            node = self.get_filter(node_name)
            role = "" if node.metadata.role is FilterRole.FILTER else f" [{node.metadata.role.value}]"
            lines.append(f"  {i}. {node.name} ({node.kind}){role}")

            for port, spec in enumerate(node.metadata.inputs):
                link = node.inputs[port]
                peer = f"{link.src.name}:{link.src_port}" if link else "(unlinked)"
                lines.append(f"       in  {port} {spec.name} [{spec.media_type.value}] <- {peer}")
            for port, spec in enumerate(node.metadata.outputs):
                link = node.outputs[port]
                peer = f"{link.dst.name}:{link.dst_port}" if link else "(unlinked)"
                lines.append(f"       out {port} {spec.name} [{spec.media_type.value}] -> {peer}")
        lines.append("=" * 50)
        return "\n".join(lines)

    @classmethod
    def from_config(
        cls,
        config: GraphConfig,
        registry: Optional[FilterRegistry] = None,
        configure: bool = True,
    ) -> FilterGraph:
        """
        Build a graph from a configuration.

        Args:
            config: Graph configuration
            registry: Filter registry to allocate from (default: global)
            configure: Whether to configure the graph before returning it

        Returns:
            The graph, configured unless configure=False

        Raises:
            FilterGraphError: Any error met while building; the partially
                built graph is destroyed first
        """
        graph = cls(
            name=config.name,
            registry=registry,
            queue_size=config.queue_size,
            max_nodes=config.max_nodes,
        )

        try:
            for entry in config.filters:
                graph.add_filter(entry.kind, entry.options, name=entry.name)

            for entry in config.links:
                src = graph.get_filter(entry.src)
                dst = graph.get_filter(entry.dst)
                if src is None or dst is None:
                    missing = entry.src if src is None else entry.dst
                    raise ConfigurationError([f"Link {entry} refers to unknown filter '{missing}'"])
                graph.link(src, entry.src_port, dst, entry.dst_port)

            if configure:
                graph.configure()
        except FilterGraphError:
            graph.destroy()
            raise

        return graph

    def __repr__(self) -> str:
        return f"FilterGraph(name='{self.name}', state={self._state.value}, filters={len(self._nodes)})"
