"""
Filter nodes and the links between their ports.

A FilterNode is one instance of a filter kind inside a graph. It collects
string options while Allocated, turns them into a filter instance on
initialize(), and owns the per-port link endpoints frames travel through.
"""

from __future__ import annotations

import logging
import weakref
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Type

from framegraph.core.errors import (
    InitializationError,
    InvalidState,
    LinkRejected,
    PortAlreadyLinked,
    PortOutOfRange,
    ProcessingError,
)
from framegraph.core.frame import Frame
from framegraph.filters.base import FilterRole

if TYPE_CHECKING:
    from framegraph.core.graph import FilterGraph
    from framegraph.core.result import PullResult
    from framegraph.filters.base import Filter, FilterMetadata

logger = logging.getLogger(__name__)


class NodeState(Enum):
    """Lifecycle state of a filter node."""
    ALLOCATED = "allocated"
    INITIALIZED = "initialized"
    FAILED = "failed"
    RELEASED = "released"


@dataclass(eq=False)
class Link:
    """
    A directed edge from an output port to an input port.

    The link queues frames until the consumer asks for them. Once eof is
    set no frame is added; the consumer sees end-of-stream after draining.
    A closed link has lost its consumer and discards what it is sent.
    """
    src: FilterNode
    src_port: int
    dst: FilterNode
    dst_port: int
    queue: deque[Frame] = field(default_factory=deque)
    eof: bool = False
    closed: bool = False

    @property
    def drained(self) -> bool:
        return self.eof and not self.queue

    def send(self, frame: Frame) -> bool:
        if self.closed or self.eof:
            return False
        self.queue.append(frame)
        return True

    def finish(self) -> None:
        self.eof = True

    def close(self) -> None:
        self.closed = True
        self.eof = True
        self.queue.clear()

    def __repr__(self) -> str:
        return f"Link({self.src.name}:{self.src_port} -> {self.dst.name}:{self.dst_port}, queued={len(self.queue)})"


class FilterNode:
    """
    A node of a filter graph.

    Nodes are created by FilterGraph.alloc_filter() and owned by that graph.
    The node keeps only a weak reference to its graph, used to check the
    graph's lifecycle before an operation; same-graph checks compare ids.
    """

    def __init__(
        self,
        graph: FilterGraph,
        handle: int,
        filter_class: Type[Filter],
        name: str,
    ):
        self._graph_ref = weakref.ref(graph)
        self._graph_id = graph.id
        self._handle = handle
        self._filter_class = filter_class
        self._name = name
        self._options: dict[str, str] = {}
        self._state = NodeState.ALLOCATED
        self._filter: Optional[Filter] = None

        metadata = filter_class.metadata
        self._inputs: list[Optional[Link]] = [None] * metadata.nb_inputs
        self._outputs: list[Optional[Link]] = [None] * metadata.nb_outputs
        self._input_ended = [False] * metadata.nb_inputs
        self._finished = False
        self._emitted = 0

        # Frames pushed from outside (sources only)
        self._queue: deque[Frame] = deque()
        self._source_eof = False

    # ==================== Identity ====================

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> str:
        return self._filter_class.metadata.name

    @property
    def handle(self) -> int:
        return self._handle

    @property
    def graph_id(self) -> int:
        return self._graph_id

    @property
    def metadata(self) -> FilterMetadata:
        return self._filter_class.metadata

    @property
    def state(self) -> NodeState:
        return self._state

    @property
    def filter(self) -> Optional[Filter]:
        return self._filter

    @property
    def is_source(self) -> bool:
        return self.metadata.role is FilterRole.SOURCE

    @property
    def is_sink(self) -> bool:
        return self.metadata.role is FilterRole.SINK

    @property
    def nb_inputs(self) -> int:
        return len(self._inputs)

    @property
    def nb_outputs(self) -> int:
        return len(self._outputs)

    @property
    def inputs(self) -> tuple[Optional[Link], ...]:
        return tuple(self._inputs)

    @property
    def outputs(self) -> tuple[Optional[Link], ...]:
        return tuple(self._outputs)

    @property
    def options(self) -> dict[str, str]:
        """Options stored so far (empty once initialized)."""
        return dict(self._options)

    @property
    def finished(self) -> bool:
        """Whether every output of this node has reached end-of-stream."""
        return self._finished

    @property
    def emitted(self) -> int:
        return self._emitted

    @property
    def queued(self) -> int:
        """Number of pushed frames waiting in a source."""
        return len(self._queue)

    @property
    def source_eof(self) -> bool:
        return self._source_eof

    def _owner(self) -> FilterGraph:
        graph = self._graph_ref()
        if graph is None or graph.is_released:
            raise InvalidState(f"Graph of filter '{self._name}' has been released", node_name=self._name)
        if self._state is NodeState.RELEASED:
            raise InvalidState(f"Filter '{self._name}' has been released", node_name=self._name)
        return graph

    def _require_building(self, action: str) -> FilterGraph:
        graph = self._owner()
        if not graph.is_building:
            raise InvalidState(
                f"Cannot {action} '{self._name}': graph '{graph.name}' is {graph.state.value}",
                node_name=self._name,
            )
        return graph

    # ==================== Options & initialization ====================

    def set_option(self, key: str, value: Any) -> FilterNode:
        """
        Store an option for initialize(). Values are stringified and not
        checked until initialize().

        Returns:
            Self for method chaining
        """
        self._owner()
        if self._state is not NodeState.ALLOCATED:
            raise InvalidState(
                f"Cannot set option '{key}' on '{self._name}': filter is {self._state.value}",
                node_name=self._name,
            )
        if isinstance(value, bool):
            value = "1" if value else "0"
        self._options[str(key)] = str(value)
        return self

    def set_options(self, options: dict[str, Any]) -> FilterNode:
        for key, value in options.items():
            self.set_option(key, value)
        return self

    def initialize(self) -> FilterNode:
        """
        Apply the stored options and create the filter instance.

        Stored options are cleared whatever the outcome and are never
        applied twice.

        Raises:
            InvalidState: If the node is not Allocated or the graph is not Building
            InitializationError: If an option or the filter itself was rejected
        """
        self._require_building("initialize")
        if self._state is not NodeState.ALLOCATED:
            raise InvalidState(
                f"Filter '{self._name}' cannot be initialized: it is {self._state.value}",
                node_name=self._name,
            )

        options, self._options = self._options, {}

        try:
            parsed = self._filter_class.parse_options(options)
            instance = self._filter_class(parsed)
            instance.init()
        except InitializationError as e:
            self._state = NodeState.FAILED
            e.node_name = self._name
            logger.error(f"Filter '{self._name}' rejected option '{e.option}': {e}")
            raise
        except Exception as e:
            self._state = NodeState.FAILED
            logger.error(f"Filter '{self._name}' failed to initialize: {e}")
            raise InitializationError(
                f"Filter '{self._name}' failed to initialize: {e}",
                node_name=self._name,
            ) from e

        self._filter = instance
        self._state = NodeState.INITIALIZED
        logger.debug(f"Initialized filter '{self._name}' ({self.kind}) with {len(parsed)} option(s)")
        return self

    # ==================== Linking ====================

    def link(self, output_port: int, other: FilterNode, input_port: int) -> Link:
        """
        Link an output port of this node to an input port of another node.

        Raises:
            InvalidState: If the graph is not Building or a node is released
            PortOutOfRange: If either port index is outside the declared ports
            PortAlreadyLinked: If either port already has a link
            LinkRejected: If the nodes are in different graphs or the port
                media types differ
        """
        graph = self._require_building("link")

        if other.graph_id != self._graph_id:
            raise LinkRejected(
                f"Cannot link '{self._name}' to '{other.name}': filters belong to different graphs",
                node_name=self._name,
            )
        other._owner()

        if not 0 <= output_port < self.nb_outputs:
            raise PortOutOfRange(self._name, "output", output_port, self.nb_outputs)
        if not 0 <= input_port < other.nb_inputs:
            raise PortOutOfRange(other.name, "input", input_port, other.nb_inputs)

        if self._outputs[output_port] is not None:
            raise PortAlreadyLinked(self._name, "output", output_port)
        if other._inputs[input_port] is not None:
            raise PortAlreadyLinked(other.name, "input", input_port)

        src_type = self.metadata.outputs[output_port].media_type
        dst_type = other.metadata.inputs[input_port].media_type
        if src_type is not dst_type:
            raise LinkRejected(
                f"Cannot link {src_type.value} output '{self._name}:{output_port}' "
                f"to {dst_type.value} input '{other.name}:{input_port}'",
                node_name=self._name,
            )

        link = Link(src=self, src_port=output_port, dst=other, dst_port=input_port)
        self._outputs[output_port] = link
        other._inputs[input_port] = link
        graph._register_link(link)

        logger.debug(f"Linked {self._name}:{output_port} -> {other.name}:{input_port}")
        return link

    # ==================== Frame flow ====================

    def push_frame(self, frame: Optional[Frame]) -> None:
        """Push a frame (None for end-of-stream) into this source."""
        self._owner().push(self, frame)

    def pull_frame(self) -> PullResult:
        """Pull the next frame from this sink."""
        return self._owner().pull(self)

    def emit(self, port: int, frame: Frame) -> None:
        """
        Send a frame out of an output port. Called by the filter.

        Frames sent to an unlinked (optional) port or to a link whose
        consumer is gone are dropped.
        """
        if not 0 <= port < self.nb_outputs:
            raise ProcessingError(
                f"Filter '{self._name}' emitted on output port {port} "
                f"but has {self.nb_outputs} output port(s)",
                node_name=self._name,
            )
        self._emitted += 1
        link = self._outputs[port]
        if link is None:
            logger.debug(f"Dropped frame on unlinked output {self._name}:{port}")
        elif not link.send(frame):
            logger.warning(f"Dropped frame on {self._name}:{port}: consumer '{link.dst.name}' is gone")

    def input_ended(self, port: int) -> bool:
        """Whether an input port has delivered its last frame."""
        return self._input_ended[port]

    def input_queued(self, port: int) -> int:
        link = self._inputs[port]
        return len(link.queue) if link is not None else 0

    def _end_input(self, port: int) -> None:
        self._input_ended[port] = True

    def _finish(self) -> None:
        self._finished = True
        for link in self._outputs:
            if link is not None:
                link.finish()

    # ==================== Release ====================

    def free(self) -> None:
        """
        Release this node before the graph is destroyed.

        Downstream nodes see end-of-stream on the links this node fed;
        frames sent towards this node are discarded from now on.
        While the graph is still Building the node's links are removed
        instead, leaving the peer ports free to be linked again.
        """
        if self._state is NodeState.RELEASED:
            raise InvalidState(f"Filter '{self._name}' has already been released", node_name=self._name)

        graph = self._graph_ref()
        if graph is not None and graph.is_building:
            self._detach_links(graph)
        self._release()
        if graph is not None:
            graph._forget_node(self)

    def _detach_links(self, graph: FilterGraph) -> None:
        for port, link in enumerate(self._outputs):
            if link is not None:
                link.dst._inputs[link.dst_port] = None
                graph._unregister_link(link)
                self._outputs[port] = None
        for port, link in enumerate(self._inputs):
            if link is not None:
                link.src._outputs[link.src_port] = None
                graph._unregister_link(link)
                self._inputs[port] = None

    def _release(self) -> None:
        if self._filter is not None:
            try:
                self._filter.uninit()
            except Exception as e:
                logger.warning(f"Error releasing filter '{self._name}': {e}")

        for link in self._outputs:
            if link is not None:
                link.finish()
        for link in self._inputs:
            if link is not None:
                link.close()

        self._queue.clear()
        self._options.clear()
        self._filter = None
        self._finished = True
        self._state = NodeState.RELEASED
        logger.debug(f"Released filter '{self._name}'")

    def __repr__(self) -> str:
        return f"FilterNode(name='{self._name}', kind='{self.kind}', state={self._state.value})"
