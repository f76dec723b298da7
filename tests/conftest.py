"""
Test Configuration
==================

Pytest fixtures and test-only filter kinds for FrameGraph.
"""

import numpy as np
import pytest

from framegraph.core.errors import InitializationError, ProcessingError
from framegraph.core.frame import Frame, MediaType
from framegraph.core.graph import FilterGraph
from framegraph.filters.base import (
    Filter,
    FilterMetadata,
    OptionSpec,
    PortSpec,
    parse_choice,
    parse_non_negative_int,
)
from framegraph.filters.registry import FilterRegistry


class TeeFilter(Filter):
    """Video filter with a second, optional output."""

    metadata = FilterMetadata(
        name="tee",
        description="Copy to an optional second output",
        inputs=(PortSpec("default", MediaType.VIDEO),),
        outputs=(
            PortSpec("main", MediaType.VIDEO),
            PortSpec("copy", MediaType.VIDEO, optional=True),
        ),
    )

    def filter_frame(self, port, frame, node):
        node.emit(1, frame.clone())
        node.emit(0, frame)


class FaultyFilter(Filter):
    """Video filter failing on demand, on frames whose pts is listed in fail_at."""

    metadata = FilterMetadata(
        name="faulty",
        description="Fail while filtering",
        inputs=(PortSpec("default", MediaType.VIDEO),),
        outputs=(PortSpec("default", MediaType.VIDEO),),
        options={
            "mode": OptionSpec(parse_choice("error", "fatal", "crash", "init"), "error"),
            "fail_at": OptionSpec(parse_non_negative_int, 0),
        },
    )

    def init(self):
        if self._options["mode"] == "init":
            raise InitializationError("refusing to start", option="mode")

    def filter_frame(self, port, frame, node):
        if frame.pts != self._options["fail_at"]:
            node.emit(0, frame)
            return
        mode = self._options["mode"]
        if mode == "fatal":
            raise MemoryError("out of frame pool")
        if mode == "crash":
            raise RuntimeError("filter crashed")
        raise ProcessingError("bad frame")


class HoldFilter(Filter):
    """Video filter that keeps every frame until flush."""

    metadata = FilterMetadata(
        name="hold",
        description="Emit everything at end of stream",
        inputs=(PortSpec("default", MediaType.VIDEO),),
        outputs=(PortSpec("default", MediaType.VIDEO),),
    )

    def init(self):
        self.held = []

    def filter_frame(self, port, frame, node):
        self.held.append(frame)

    def flush(self, node):
        for frame in self.held:
            node.emit(0, frame)
        self.held = []


class StumbleFilter(Filter):
    """Video pass-through whose end-of-stream handling fails."""

    metadata = FilterMetadata(
        name="stumble",
        description="Fail when the input ends",
        inputs=(PortSpec("default", MediaType.VIDEO),),
        outputs=(PortSpec("default", MediaType.VIDEO),),
    )

    def filter_frame(self, port, frame, node):
        node.emit(0, frame)

    def end_of_stream(self, port, node):
        raise ProcessingError("end of stream failed")


@pytest.fixture
def registry():
    """Provide a registry with the built-in kinds plus test kinds."""
    registry = FilterRegistry()
    registry.discover_filters()
    for cls in (TeeFilter, FaultyFilter, HoldFilter, StumbleFilter):
        registry.register(cls.metadata.name, cls)
    return registry


@pytest.fixture
def graph(registry):
    """Provide an empty graph, destroyed after the test if still alive."""
    graph = FilterGraph(name="test", registry=registry, queue_size=4)
    yield graph
    if not graph.is_released:
        graph.destroy()


@pytest.fixture
def video_frame():
    """Provide a factory for small rgb24 video frames."""
    def make(pts=0, width=8, height=6, value=None):
        data = np.zeros((height, width, 3), dtype=np.uint8)
        data[...] = pts % 256 if value is None else value
        return Frame.video(data, pts=pts)
    return make


@pytest.fixture
def audio_frame():
    """Provide a factory for float stereo audio frames."""
    def make(pts=0, value=0.25, nb_samples=64, channels=2, sample_rate=48000):
        data = np.full((nb_samples, channels), value, dtype=np.float32)
        return Frame.audio(data, sample_rate, pts=pts)
    return make


@pytest.fixture
def video_chain(graph):
    """Provide a configured buffer -> null -> buffersink graph."""
    src = graph.add_filter("buffer", name="in")
    mid = graph.add_filter("null", name="mid")
    sink = graph.add_filter("buffersink", name="out")
    graph.link(src, 0, mid, 0)
    graph.link(mid, 0, sink, 0)
    graph.configure()
    return graph, src, sink
