"""
Execution Driver - pull-driven frame propagation.

Nothing runs in the background. Pulling a sink asks the node feeding it for
output; that node delivers one queued input frame to its filter, or handles
an input reaching end-of-stream, or in turn asks the nodes feeding the
inputs it wants. Every request ends in one of three ways:

    OK     something was emitted or the node's state advanced
    AGAIN  the node is starved until more frames are pushed
    EOF    the node will never emit again

The graph is acyclic once configured, so the recursion is bounded by the
longest path through the graph.
"""

from __future__ import annotations

import errno
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Union

from framegraph.core.errors import Backpressure, FilterGraphError, ProcessingError
from framegraph.core.frame import Frame
from framegraph.core.node import FilterNode, NodeState
from framegraph.core.result import PullResult

if TYPE_CHECKING:
    from framegraph.core.graph import FilterGraph

logger = logging.getLogger(__name__)


class StepStatus(Enum):
    """Outcome of asking a node for output."""
    OK = "ok"
    AGAIN = "again"
    EOF = "eof"


class ExecutionDriver:
    """Runs propagation for the nodes of one graph."""

    def pull(self, sink: FilterNode) -> PullResult:
        """
        Run propagation until the sink has a frame, is starved or has ended.

        Raises:
            ProcessingError: If a filter fails along the way
        """
        link = sink.inputs[0]

        while True:
            if link is not None and link.queue:
                frame = link.queue.popleft()
                self._invoke(sink, sink.filter.filter_frame, 0, frame, sink)
                return PullResult.produced_result(sink.filter.take())

            if link is None or link.drained:
                if not sink.finished:
                    sink._end_input(0)
                    sink._finish()
                return PullResult.end_of_stream_result()

            if self.request(link.src) is StepStatus.AGAIN:
                return PullResult.pending_result()

    def request(self, node: FilterNode) -> StepStatus:
        """Ask a node to produce output."""
        if node.state is NodeState.RELEASED or node.finished:
            return StepStatus.EOF

        if node.is_source:
            return self._request_source(node)

        while True:
            before = node.emitted
            advanced = self._step(node)

            if node.emitted != before:
                return StepStatus.OK
            if node.finished:
                return StepStatus.EOF
            if advanced:
                continue

            starving = [
                port for port in node.filter.wanted_inputs(node)
                if node.inputs[port] is not None
                and not node.inputs[port].queue
                and not node.inputs[port].eof
            ]

            progressed = False
            for port in starving:
                if self.request(node.inputs[port].src) is not StepStatus.AGAIN:
                    progressed = True

            if not progressed:
                return StepStatus.AGAIN

    def _request_source(self, node: FilterNode) -> StepStatus:
        if node._queue:
            frame = node._queue.popleft()
            self._invoke(node, node.filter.filter_frame, 0, frame, node)
            return StepStatus.OK

        if node.source_eof:
            before = node.emitted
            self._finish(node)
            return StepStatus.OK if node.emitted != before else StepStatus.EOF

        return StepStatus.AGAIN

    def _step(self, node: FilterNode) -> bool:
        """Deliver one queued frame or one end-of-stream. Returns False if idle."""
        for port in node.filter.wanted_inputs(node):
            link = node.inputs[port]
            if link is not None and link.queue:
                frame = link.queue.popleft()
                self._invoke(node, node.filter.filter_frame, port, frame, node)
                return True

        for port, link in enumerate(node.inputs):
            if node.input_ended(port):
                continue
            if link is None or link.drained:
                node._end_input(port)
                logger.debug(f"Input {node.name}:{port} reached end of stream")
                try:
                    self._invoke(node, node.filter.end_of_stream, port, node)
                finally:
                    # The port is ended either way; the node must still finish
                    if all(node.input_ended(p) for p in range(node.nb_inputs)):
                        self._finish(node)
                return True

        return False

    def _finish(self, node: FilterNode) -> None:
        try:
            self._invoke(node, node.filter.flush, node)
        finally:
            node._finish()
            logger.debug(f"Filter '{node.name}' finished")

    def _invoke(self, node: FilterNode, method: Callable[..., Any], *args: Any) -> None:
        """Call into a filter, turning whatever it raises into a ProcessingError."""
        try:
            method(*args)
        except ProcessingError as e:
            if e.node_name is None:
                e.node_name = node.name
            logger.error(f"Filter '{node.name}' failed: {e}")
            raise
        except MemoryError as e:
            logger.error(f"Filter '{node.name}' ran out of memory")
            raise ProcessingError(
                f"Filter '{node.name}' ran out of memory",
                code=errno.ENOMEM,
                node_name=node.name,
                fatal=True,
            ) from e
        except Exception as e:
            logger.error(f"Filter '{node.name}' raised {type(e).__name__}: {e}")
            raise ProcessingError(
                f"Filter '{node.name}' failed: {e}",
                code=errno.EINVAL,
                node_name=node.name,
            ) from e


_DONE = object()


def run_graph(
    graph: FilterGraph,
    feeds: dict[Union[FilterNode, str], Iterable[Frame]],
    sinks: Optional[list[Union[FilterNode, str]]] = None,
    on_frame: Optional[Callable[[FilterNode, Frame], None]] = None,
) -> dict[str, list[Frame]]:
    """
    Drive a configured graph to completion.

    Pushes each feed into its source until the source reports backpressure
    or the feed runs out (then signals end-of-stream), pulls every sink
    until it is Pending, and repeats until every sink reports EndOfStream.
    Sources without a feed are closed straight away.

    Args:
        graph: A configured graph
        feeds: Frames to push, keyed by source node or name
        sinks: Sinks to drain (default: every sink of the graph)
        on_frame: Called with (sink, frame) for each produced frame;
            when given, frames are not collected

    Returns:
        Produced frames keyed by sink name

    Raises:
        ProcessingError: The first error any pull returned
    """
    iterators: dict[FilterNode, Any] = {}
    for key, frames in feeds.items():
        node = graph.get_filter(key) if isinstance(key, str) else key
        if node is None or not node.is_source:
            raise FilterGraphError(f"Not a source of graph '{graph.name}': {key!r}")
        iterators[node] = iter(frames)
    for source in graph.sources:
        if source not in iterators and not source.source_eof:
            graph.push(source, None)

    targets = [graph.get_filter(s) if isinstance(s, str) else s for s in (sinks or graph.sinks)]
    collected: dict[str, list[Frame]] = {sink.name: [] for sink in targets}
    open_sinks = list(targets)
    carried: dict[FilterNode, Frame] = {}

    while open_sinks:
        for source, frames in list(iterators.items()):
            while True:
                frame = carried.pop(source, None)
                if frame is None:
                    frame = next(frames, _DONE)
                if frame is _DONE:
                    graph.push(source, None)
                    del iterators[source]
                    break
                try:
                    graph.push(source, frame)
                except Backpressure:
                    carried[source] = frame
                    break

        progressed = False
        for sink in list(open_sinks):
            while True:
                result = graph.pull(sink)
                if result.produced:
                    progressed = True
                    if on_frame is not None:
                        on_frame(sink, result.frame)
                    else:
                        collected[sink.name].append(result.frame)
                    continue
                if result.end_of_stream:
                    progressed = True
                    open_sinks.remove(sink)
                elif result.failed:
                    raise result.error
                break

        if not iterators and not carried and not progressed and open_sinks:
            names = ", ".join(sink.name for sink in open_sinks)
            raise FilterGraphError(f"Graph '{graph.name}' stalled: sinks still pending ({names})")

    logger.info(
        f"Graph '{graph.name}' drained: "
        + ", ".join(f"{name}={len(frames)}" for name, frames in collected.items())
    )
    return collected
