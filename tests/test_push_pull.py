"""Tests for frame flow: push, pull and the drive loop."""

import errno

import numpy as np
import pytest

from framegraph.core.driver import run_graph
from framegraph.core.errors import (
    Backpressure,
    FilterGraphError,
    GraphNotConfigured,
    InvalidState,
    ProcessingError,
    StreamClosed,
)
from framegraph.core.graph import GraphState
from framegraph.core.result import PullStatus


def _chain(graph, *kinds, options=None):
    """Build and configure buffer -> kinds... -> buffersink."""
    options = options or {}
    nodes = [graph.add_filter("buffer", name="in")]
    for index, kind in enumerate(kinds):
        nodes.append(graph.add_filter(kind, options.get(kind), name=f"{kind}{index}"))
    nodes.append(graph.add_filter("buffersink", name="out"))
    for src, dst in zip(nodes, nodes[1:]):
        graph.link(src, 0, dst, 0)
    graph.configure()
    return nodes[0], nodes[-1]


def _drain(graph, sink):
    frames = []
    while True:
        result = graph.pull(sink)
        if not result.produced:
            return frames, result
        frames.append(result.frame)


class TestOrdering:
    """Frames leave in the order they entered."""

    def test_fifo_through_chain(self, video_chain, video_frame):
        graph, src, sink = video_chain
        for pts in range(4):
            graph.push(src, video_frame(pts))

        frames, last = _drain(graph, sink)
        assert [frame.pts for frame in frames] == [0, 1, 2, 3]
        assert last.pending

    def test_drain_reaches_end_of_stream(self, video_chain, video_frame):
        graph, src, sink = video_chain
        graph.push(src, video_frame(0))
        graph.push(src, video_frame(1))
        graph.push(src, None)

        frames, last = _drain(graph, sink)
        assert len(frames) == 2
        assert last.end_of_stream
        assert graph.pull(sink).end_of_stream

    def test_pending_without_input(self, video_chain):
        graph, _, sink = video_chain
        result = graph.pull(sink)
        assert result.status is PullStatus.PENDING
        assert graph.pull(sink).pending

    def test_end_of_stream_without_frames(self, video_chain):
        graph, src, sink = video_chain
        graph.push(src, None)
        assert graph.pull(sink).end_of_stream

    def test_interleaved_push_and_pull(self, video_chain, video_frame):
        graph, src, sink = video_chain
        seen = []
        for pts in range(10):
            graph.push(src, video_frame(pts))
            seen.append(graph.pull(sink).unwrap().pts)
            assert graph.pull(sink).pending
        assert seen == list(range(10))

    def test_audio_round_trip(self, graph, audio_frame):
        src = graph.add_filter("abuffer", {"sample_rate": 48000, "channels": 2})
        gain = graph.add_filter("volume", {"volume": 0.5})
        sink = graph.add_filter("abuffersink", {"sample_fmts": "flt"})
        graph.link(src, 0, gain, 0)
        graph.link(gain, 0, sink, 0)
        graph.configure()

        graph.push(src, audio_frame(pts=0, value=0.5))
        graph.push(src, None)

        frame = graph.pull(sink).unwrap()
        assert frame.pts == 0
        assert np.allclose(frame.data, 0.25)
        assert frame.data.dtype == np.float32
        assert graph.pull(sink).end_of_stream

    def test_flush_emits_held_frames(self, graph, video_frame):
        src, sink = _chain(graph, "hold")
        for pts in range(3):
            graph.push(src, video_frame(pts))
        assert graph.pull(sink).pending

        graph.push(src, None)
        frames, last = _drain(graph, sink)
        assert [frame.pts for frame in frames] == [0, 1, 2]
        assert last.end_of_stream


class TestPushRules:
    """Preconditions and limits of push()."""

    def test_backpressure_at_capacity(self, video_chain, video_frame):
        graph, src, sink = video_chain
        for pts in range(graph.queue_size):
            graph.push(src, video_frame(pts))

        with pytest.raises(Backpressure) as exc:
            graph.push(src, video_frame(99))
        assert exc.value.capacity == graph.queue_size

        assert graph.pull(sink).produced
        graph.push(src, video_frame(4))
        frames, _ = _drain(graph, sink)
        assert [frame.pts for frame in frames] == [1, 2, 3, 4]

    def test_source_queue_size_option(self, graph, video_frame):
        src = graph.add_filter("buffer", {"queue_size": 1})
        sink = graph.add_filter("buffersink")
        graph.link(src, 0, sink, 0)
        graph.configure()

        graph.push(src, video_frame(0))
        with pytest.raises(Backpressure):
            graph.push(src, video_frame(1))

    def test_push_after_end_of_stream(self, video_chain, video_frame):
        graph, src, _ = video_chain
        src.push_frame(None)
        with pytest.raises(StreamClosed):
            src.push_frame(video_frame())
        with pytest.raises(StreamClosed):
            graph.push(src, None)

    def test_push_before_configure(self, graph, video_frame):
        src = graph.add_filter("buffer")
        with pytest.raises(GraphNotConfigured):
            graph.push(src, video_frame())

    def test_pull_before_configure(self, graph):
        sink = graph.add_filter("buffersink")
        with pytest.raises(GraphNotConfigured):
            graph.pull(sink)

    def test_push_into_non_source(self, video_chain, video_frame):
        graph, _, sink = video_chain
        with pytest.raises(InvalidState):
            graph.push(sink, video_frame())

    def test_pull_from_non_sink(self, video_chain):
        graph, src, _ = video_chain
        with pytest.raises(InvalidState):
            graph.pull(src)

    def test_push_non_frame(self, video_chain):
        graph, src, _ = video_chain
        with pytest.raises(TypeError):
            graph.push(src, np.zeros((2, 2)))


class TestOwnership:
    """Pulled frames belong to the caller."""

    def test_sink_copy_isolation(self, video_chain, video_frame):
        graph, src, sink = video_chain
        graph.push(src, video_frame(0, value=10))
        graph.push(src, video_frame(1, value=20))

        first = graph.pull(sink).unwrap()
        first.data[...] = 255
        second = graph.pull(sink).unwrap()

        assert second.data.max() == 20
        assert sink.filter.take().data.max() == 20
        second.data[...] = 0
        assert sink.filter.take().data.max() == 20

    def test_split_outputs_are_independent(self, graph, video_frame):
        src = graph.add_filter("buffer")
        split = graph.add_filter("split")
        left = graph.add_filter("buffersink", name="left")
        right = graph.add_filter("buffersink", name="right")
        graph.link(src, 0, split, 0)
        graph.link(split, 0, left, 0)
        graph.link(split, 1, right, 0)
        graph.configure()

        graph.push(src, video_frame(7, value=3))
        graph.push(src, None)

        a = graph.pull(left).unwrap()
        b = graph.pull(right).unwrap()
        a.data[...] = 0
        assert (a.pts, b.pts) == (7, 7)
        assert b.data.max() == 3
        assert graph.pull(left).end_of_stream
        assert graph.pull(right).end_of_stream


class TestErrors:
    """Failures raised by filters during propagation."""

    def test_non_fatal_error_is_returned(self, graph, video_frame):
        src, sink = _chain(graph, "faulty", options={"faulty": {"fail_at": 1}})
        errors = []
        graph.add_hook("error", lambda node, error: errors.append((node.name, error)))

        for pts in range(3):
            graph.push(src, video_frame(pts))

        assert graph.pull(sink).unwrap().pts == 0
        result = graph.pull(sink)
        assert result.failed
        assert result.error.node_name == "faulty0"
        assert result.error.code == errno.EINVAL
        assert not result.error.fatal
        assert errors == [("out", result.error)]

        assert graph.pull(sink).unwrap().pts == 2
        assert graph.state is GraphState.CONFIGURED

    def test_unexpected_exception_becomes_processing_error(self, graph, video_frame):
        src, sink = _chain(graph, "faulty", options={"faulty": {"mode": "crash"}})
        graph.push(src, video_frame(0))

        result = graph.pull(sink)
        assert isinstance(result.error, ProcessingError)
        assert "filter crashed" in str(result.error)
        assert isinstance(result.error.__cause__, RuntimeError)

    def test_fatal_error_fails_graph(self, graph, video_frame):
        src, sink = _chain(graph, "faulty", options={"faulty": {"mode": "fatal"}})
        graph.push(src, video_frame(0))
        graph.push(src, video_frame(1))

        result = graph.pull(sink)
        assert result.failed
        assert result.error.fatal
        assert result.error.code == errno.ENOMEM
        assert graph.state is GraphState.FAILED
        assert graph.fatal_error is result.error

        assert graph.pull(sink).error is result.error
        with pytest.raises(ProcessingError) as exc:
            graph.push(src, video_frame(2))
        assert exc.value is result.error

    def test_source_rejects_mismatched_frame(self, graph, video_frame):
        src = graph.add_filter("buffer", {"width": 16, "height": 16})
        sink = graph.add_filter("buffersink")
        graph.link(src, 0, sink, 0)
        graph.configure()

        graph.push(src, video_frame(0, width=8, height=6))
        result = graph.pull(sink)
        assert result.failed
        assert result.error.node_name == src.name

    def test_sink_rejects_format(self, graph, video_frame):
        src = graph.add_filter("buffer")
        sink = graph.add_filter("buffersink", {"pix_fmts": "gray"})
        graph.link(src, 0, sink, 0)
        graph.configure()

        graph.push(src, video_frame(0))
        assert graph.pull(sink).failed

    def test_failed_end_of_stream_still_ends_sink(self, graph, video_frame):
        src, sink = _chain(graph, "stumble")
        graph.push(src, video_frame(0))
        graph.push(src, None)

        assert graph.pull(sink).unwrap().pts == 0
        result = graph.pull(sink)
        assert result.failed
        assert result.error.node_name == "stumble0"
        assert graph.get_filter("stumble0").finished
        assert graph.pull(sink).end_of_stream
        assert graph.pull(sink).end_of_stream


class TestFreeDuringRun:
    """Releasing nodes of a running graph."""

    def test_freed_middle_node_ends_stream(self, graph, video_frame):
        src, sink = _chain(graph, "null")
        graph.push(src, video_frame(0))
        graph.get_filter("null0").free()

        assert graph.pull(sink).end_of_stream

    def test_freed_sink_rejects_pull(self, video_chain):
        graph, _, sink = video_chain
        sink.free()
        with pytest.raises(InvalidState):
            graph.pull(sink)


class TestRunGraph:
    """The run_graph drive loop."""

    def test_drains_more_frames_than_capacity(self, video_chain, video_frame):
        graph, _, _ = video_chain
        frames = (video_frame(pts) for pts in range(3 * graph.queue_size))

        results = run_graph(graph, {"in": frames})

        assert [frame.pts for frame in results["out"]] == list(range(3 * graph.queue_size))

    def test_on_frame_callback(self, video_chain, video_frame):
        graph, src, _ = video_chain
        seen = []
        results = run_graph(graph, {src: [video_frame(0), video_frame(1)]},
                            on_frame=lambda sink, frame: seen.append((sink.name, frame.pts)))
        assert seen == [("out", 0), ("out", 1)]
        assert results == {"out": []}

    def test_amix_of_two_sources(self, graph, audio_frame):
        a = graph.add_filter("abuffer", name="a")
        b = graph.add_filter("abuffer", name="b")
        mix = graph.add_filter("amix", {"normalize": False})
        sink = graph.add_filter("abuffersink", name="out")
        graph.link(a, 0, mix, 0)
        graph.link(b, 0, mix, 1)
        graph.link(mix, 0, sink, 0)
        graph.configure()

        results = run_graph(graph, {
            "a": [audio_frame(pts=0, value=0.25), audio_frame(pts=64, value=0.25)],
            "b": [audio_frame(pts=0, value=0.5)],
        })

        frames = results["out"]
        assert [frame.pts for frame in frames] == [0, 64]
        assert np.allclose(frames[0].data, 0.75)
        assert np.allclose(frames[1].data, 0.25)

    def test_unfed_sources_are_closed(self, graph):
        src = graph.add_filter("buffer", name="in")
        sink = graph.add_filter("buffersink", name="out")
        graph.link(src, 0, sink, 0)
        graph.configure()

        assert run_graph(graph, {}) == {"out": []}
        assert src.source_eof

    def test_error_is_raised(self, graph, video_frame):
        src, _ = _chain(graph, "faulty")
        with pytest.raises(ProcessingError):
            run_graph(graph, {src: [video_frame(0)]})

    def test_unknown_feed(self, video_chain):
        graph, _, _ = video_chain
        with pytest.raises(FilterGraphError):
            run_graph(graph, {"out": []})
