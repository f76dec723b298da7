"""
Buffer sources and sinks - the boundary of a graph.

Sources accept frames pushed by the caller; sinks hand frames back on pull.
Their options describe what the caller promises to push (sources) or what
the caller is prepared to receive (sinks); a frame that breaks the promise
fails with a ProcessingError and is dropped.
"""

from __future__ import annotations

import logging

from framegraph.core.errors import InitializationError, ProcessingError
from framegraph.core.frame import AUDIO_FORMATS, VIDEO_FORMATS, Frame, MediaType
from framegraph.filters.base import (
    FilterMetadata,
    FilterRole,
    OptionSpec,
    PortSpec,
    SinkFilter,
    SourceFilter,
    parse_format_list,
    parse_non_negative_int,
)
from framegraph.filters.registry import register_filter

logger = logging.getLogger(__name__)


_QUEUE_SIZE_OPTION = OptionSpec(
    parse_non_negative_int, 0, "Pushed frames held before backpressure (0 = graph default)"
)


@register_filter("buffer")
class BufferSource(SourceFilter):
    """Video source fed with FilterGraph.push()."""

    metadata = FilterMetadata(
        name="buffer",
        description="Buffer video frames and make them available to the graph",
        role=FilterRole.SOURCE,
        outputs=(PortSpec("default", MediaType.VIDEO),),
        options={
            "width": OptionSpec(parse_non_negative_int, 0, "Expected frame width (0 = any)"),
            "height": OptionSpec(parse_non_negative_int, 0, "Expected frame height (0 = any)"),
            "pix_fmt": OptionSpec(str, "", "Expected pixel format (empty = any)"),
            "queue_size": _QUEUE_SIZE_OPTION,
        },
    )

    def init(self) -> None:
        pix_fmt = self._options["pix_fmt"]
        if pix_fmt and pix_fmt not in VIDEO_FORMATS:
            raise InitializationError(f"Unknown pixel format '{pix_fmt}'", option="pix_fmt")

    def check_frame(self, frame: Frame) -> None:
        width = self._options["width"]
        height = self._options["height"]
        if (width and frame.width != width) or (height and frame.height != height):
            raise ProcessingError(
                f"Frame size {frame.width}x{frame.height} does not match "
                f"buffer size {width or '*'}x{height or '*'}"
            )
        pix_fmt = self._options["pix_fmt"]
        if pix_fmt and frame.format != pix_fmt:
            raise ProcessingError(f"Frame format '{frame.format}' does not match '{pix_fmt}'")


@register_filter("abuffer")
class AudioBufferSource(SourceFilter):
    """Audio source fed with FilterGraph.push()."""

    metadata = FilterMetadata(
        name="abuffer",
        description="Buffer audio frames and make them available to the graph",
        role=FilterRole.SOURCE,
        outputs=(PortSpec("default", MediaType.AUDIO),),
        options={
            "sample_rate": OptionSpec(parse_non_negative_int, 0, "Expected sample rate (0 = any)"),
            "channels": OptionSpec(parse_non_negative_int, 0, "Expected channel count (0 = any)"),
            "sample_fmt": OptionSpec(str, "", "Expected sample format (empty = any)"),
            "queue_size": _QUEUE_SIZE_OPTION,
        },
    )

    def init(self) -> None:
        sample_fmt = self._options["sample_fmt"]
        if sample_fmt and sample_fmt not in AUDIO_FORMATS:
            raise InitializationError(f"Unknown sample format '{sample_fmt}'", option="sample_fmt")

    def check_frame(self, frame: Frame) -> None:
        sample_rate = self._options["sample_rate"]
        if sample_rate and frame.sample_rate != sample_rate:
            raise ProcessingError(
                f"Frame sample rate {frame.sample_rate} does not match {sample_rate}"
            )
        channels = self._options["channels"]
        if channels and frame.channels != channels:
            raise ProcessingError(f"Frame has {frame.channels} channel(s), expected {channels}")
        sample_fmt = self._options["sample_fmt"]
        if sample_fmt and frame.format != sample_fmt:
            raise ProcessingError(f"Frame format '{frame.format}' does not match '{sample_fmt}'")


@register_filter("buffersink")
class BufferSink(SinkFilter):
    """Video sink drained with FilterGraph.pull()."""

    metadata = FilterMetadata(
        name="buffersink",
        description="Buffer video frames and make them available to the caller",
        role=FilterRole.SINK,
        inputs=(PortSpec("default", MediaType.VIDEO),),
        options={
            "pix_fmts": OptionSpec(parse_format_list, (), "Accepted pixel formats, '|'-separated"),
        },
    )

    def init(self) -> None:
        unknown = [fmt for fmt in self._options["pix_fmts"] if fmt not in VIDEO_FORMATS]
        if unknown:
            raise InitializationError(f"Unknown pixel format(s): {', '.join(unknown)}", option="pix_fmts")

    def accepted_formats(self) -> tuple[str, ...]:
        return self._options["pix_fmts"]


@register_filter("abuffersink")
class AudioBufferSink(SinkFilter):
    """Audio sink drained with FilterGraph.pull()."""

    metadata = FilterMetadata(
        name="abuffersink",
        description="Buffer audio frames and make them available to the caller",
        role=FilterRole.SINK,
        inputs=(PortSpec("default", MediaType.AUDIO),),
        options={
            "sample_fmts": OptionSpec(parse_format_list, (), "Accepted sample formats, '|'-separated"),
        },
    )

    def init(self) -> None:
        unknown = [fmt for fmt in self._options["sample_fmts"] if fmt not in AUDIO_FORMATS]
        if unknown:
            raise InitializationError(f"Unknown sample format(s): {', '.join(unknown)}", option="sample_fmts")

    def accepted_formats(self) -> tuple[str, ...]:
        return self._options["sample_fmts"]
