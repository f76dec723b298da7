"""Tests for node allocation, options, initialization and linking."""

import pytest

from framegraph.core.errors import (
    AllocationError,
    InitializationError,
    InvalidState,
    LinkRejected,
    PortAlreadyLinked,
    PortOutOfRange,
    UnknownFilterKind,
)
from framegraph.core.frame import MediaType
from framegraph.core.graph import FilterGraph
from framegraph.core.node import NodeState

BUILTIN_KINDS = [
    "buffer", "abuffer", "buffersink", "abuffersink",
    "null", "negate", "hflip", "scale", "split",
    "anull", "volume", "asplit", "amix",
]

_PASS_THROUGH = {MediaType.VIDEO: "null", MediaType.AUDIO: "anull"}
_SOURCE = {MediaType.VIDEO: "buffer", MediaType.AUDIO: "abuffer"}


class TestAllocation:
    """alloc_filter and add_filter."""

    def test_default_name_uses_kind_and_handle(self, graph):
        first = graph.alloc_filter("null")
        second = graph.alloc_filter("null")
        assert first.name == "null_0"
        assert second.name == "null_1"
        assert first.state is NodeState.ALLOCATED
        assert graph.get_filter("null_1") is second
        assert graph.get_filter_by_handle(first.handle) is first

    def test_unknown_kind(self, graph):
        with pytest.raises(UnknownFilterKind) as exc:
            graph.alloc_filter("does_not_exist")
        assert exc.value.kind == "does_not_exist"
        assert graph.filters == []

    def test_duplicate_name(self, graph):
        graph.alloc_filter("null", name="a")
        with pytest.raises(AllocationError):
            graph.alloc_filter("hflip", name="a")

    def test_node_limit(self, registry):
        graph = FilterGraph(registry=registry, max_nodes=2)
        graph.alloc_filter("null")
        graph.alloc_filter("null")
        with pytest.raises(AllocationError):
            graph.alloc_filter("null")
        graph.destroy()

    def test_add_filter_frees_rejected_node(self, graph):
        with pytest.raises(InitializationError) as exc:
            graph.add_filter("volume", {"volume": "loud"}, name="gain")
        assert exc.value.option == "volume"
        assert exc.value.node_name == "gain"
        assert graph.get_filter("gain") is None

    def test_alloc_after_configure(self, video_chain):
        graph, _, _ = video_chain
        with pytest.raises(InvalidState):
            graph.alloc_filter("null")


class TestOptions:
    """Option storage and initialization."""

    def test_options_are_stringified(self, graph):
        node = graph.alloc_filter("negate")
        node.set_option("negate_alpha", True)
        node.set_options({"extra": 3})
        assert node.options == {"negate_alpha": "1", "extra": "3"}

    def test_initialize_applies_typed_options(self, graph):
        node = graph.alloc_filter("volume")
        node.set_option("volume", "0.5").initialize()
        assert node.state is NodeState.INITIALIZED
        assert node.filter.options["volume"] == 0.5
        assert node.options == {}

    def test_defaults_fill_missing_options(self, graph):
        node = graph.add_filter("amix")
        assert node.filter.options == {"duration": "longest", "normalize": True}

    def test_unknown_option_names_key(self, graph):
        node = graph.alloc_filter("hflip")
        node.set_option("nope", "1")
        with pytest.raises(InitializationError) as exc:
            node.initialize()
        assert exc.value.option == "nope"
        assert node.state is NodeState.FAILED

    def test_out_of_range_option(self, graph):
        node = graph.alloc_filter("volume").set_option("volume", 300)
        with pytest.raises(InitializationError) as exc:
            node.initialize()
        assert exc.value.option == "volume"

    def test_filter_init_rejects_combination(self, graph):
        node = graph.alloc_filter("scale").set_options({"width": -1, "height": -1})
        with pytest.raises(InitializationError):
            node.initialize()

    def test_filter_init_failure(self, graph):
        node = graph.alloc_filter("faulty").set_option("mode", "init")
        with pytest.raises(InitializationError) as exc:
            node.initialize()
        assert exc.value.option == "mode"
        assert node.state is NodeState.FAILED

    def test_set_option_after_initialize(self, graph):
        node = graph.add_filter("null")
        with pytest.raises(InvalidState):
            node.set_option("anything", "1")

    def test_initialize_twice(self, graph):
        node = graph.add_filter("null")
        with pytest.raises(InvalidState):
            node.initialize()

    def test_initialize_after_failure(self, graph):
        node = graph.alloc_filter("null").set_option("bogus", "1")
        with pytest.raises(InitializationError):
            node.initialize()
        with pytest.raises(InvalidState):
            node.initialize()


class TestLinking:
    """Port checks when linking."""

    @pytest.mark.parametrize("kind", BUILTIN_KINDS)
    def test_output_port_out_of_range(self, graph, kind):
        node = graph.alloc_filter(kind)
        peer = graph.alloc_filter("null")
        with pytest.raises(PortOutOfRange) as exc:
            node.link(node.nb_outputs, peer, 0)
        assert exc.value.direction == "output"
        with pytest.raises(PortOutOfRange):
            node.link(-1, peer, 0)

    @pytest.mark.parametrize("kind", BUILTIN_KINDS)
    def test_input_port_out_of_range(self, graph, kind):
        node = graph.alloc_filter(kind)
        source = graph.alloc_filter("buffer")
        with pytest.raises(PortOutOfRange) as exc:
            source.link(0, node, node.nb_inputs)
        assert exc.value.direction == "input"
        assert exc.value.count == node.nb_inputs

    @pytest.mark.parametrize("kind", BUILTIN_KINDS)
    def test_output_port_already_linked(self, graph, kind):
        node = graph.alloc_filter(kind)
        if node.nb_outputs == 0:
            pytest.skip("kind has no outputs")
        media = node.metadata.outputs[0].media_type
        first = graph.alloc_filter(_PASS_THROUGH[media])
        second = graph.alloc_filter(_PASS_THROUGH[media])

        node.link(0, first, 0)
        with pytest.raises(PortAlreadyLinked) as exc:
            node.link(0, second, 0)
        assert exc.value.direction == "output"

    @pytest.mark.parametrize("kind", BUILTIN_KINDS)
    def test_input_port_already_linked(self, graph, kind):
        node = graph.alloc_filter(kind)
        if node.nb_inputs == 0:
            pytest.skip("kind has no inputs")
        media = node.metadata.inputs[0].media_type
        first = graph.alloc_filter(_SOURCE[media])
        second = graph.alloc_filter(_SOURCE[media])

        first.link(0, node, 0)
        with pytest.raises(PortAlreadyLinked) as exc:
            second.link(0, node, 0)
        assert exc.value.direction == "input"

    def test_media_type_mismatch(self, graph):
        source = graph.alloc_filter("buffer")
        audio = graph.alloc_filter("anull")
        with pytest.raises(LinkRejected):
            source.link(0, audio, 0)
        assert source.outputs[0] is None

    def test_nodes_of_different_graphs(self, graph, registry):
        other = FilterGraph(name="other", registry=registry)
        try:
            source = graph.alloc_filter("buffer")
            foreign = other.alloc_filter("null")
            with pytest.raises(LinkRejected):
                source.link(0, foreign, 0)
        finally:
            other.destroy()

    def test_link_before_initialize(self, graph):
        source = graph.alloc_filter("buffer")
        mid = graph.alloc_filter("null")
        link = graph.link(source, 0, mid, 0)
        assert source.outputs[0] is link
        assert mid.inputs[0] is link
        assert graph.links == [link]

    def test_link_after_configure(self, video_chain):
        graph, src, sink = video_chain
        with pytest.raises(InvalidState):
            graph.link(src, 0, sink, 0)


class TestFree:
    """Releasing single nodes."""

    def test_free_twice(self, graph):
        node = graph.alloc_filter("null")
        node.free()
        assert node.state is NodeState.RELEASED
        assert graph.get_filter(node.name) is None
        with pytest.raises(InvalidState):
            node.free()

    def test_freed_node_rejects_operations(self, graph):
        node = graph.alloc_filter("null")
        peer = graph.alloc_filter("null")
        node.free()
        with pytest.raises(InvalidState):
            node.set_option("a", "b")
        with pytest.raises(InvalidState):
            peer.link(0, node, 0)

    def test_free_while_building_unlinks_peers(self, graph):
        src = graph.add_filter("buffer")
        old = graph.add_filter("null")
        sink = graph.add_filter("buffersink")
        graph.link(src, 0, old, 0)
        graph.link(old, 0, sink, 0)

        old.free()
        assert src.outputs == (None,)
        assert sink.inputs == (None,)
        assert graph.links == []

        new = graph.add_filter("null")
        first = graph.link(src, 0, new, 0)
        second = graph.link(new, 0, sink, 0)
        assert graph.links == [first, second]
        graph.configure()
        assert graph.is_configured
