"""
Audio filter kinds.

Float formats ("flt", "dbl") are kept within [-1.0, 1.0]; integer formats
are clipped to the range of their dtype.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import numpy as np

from framegraph.core.errors import ProcessingError
from framegraph.core.frame import Frame, MediaType
from framegraph.filters.base import (
    Filter,
    FilterMetadata,
    OptionSpec,
    PortSpec,
    parse_bool,
    parse_choice,
    parse_float_range,
)
from framegraph.filters.registry import register_filter

if TYPE_CHECKING:
    from framegraph.core.node import FilterNode

logger = logging.getLogger(__name__)

_AUDIO_IN = (PortSpec("default", MediaType.AUDIO),)
_AUDIO_OUT = (PortSpec("default", MediaType.AUDIO),)


def _to_dtype(samples: np.ndarray, dtype: np.dtype) -> np.ndarray:
    """Clip float samples to the range of dtype and convert."""
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(samples), info.min, info.max).astype(dtype)
    return np.clip(samples, -1.0, 1.0).astype(dtype)


@register_filter("anull")
class AudioNullFilter(Filter):
    """Pass audio frames through unchanged."""

    metadata = FilterMetadata(
        name="anull",
        description="Pass the source unchanged to the output",
        inputs=_AUDIO_IN,
        outputs=_AUDIO_OUT,
    )

    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        node.emit(0, frame)


@register_filter("volume")
class VolumeFilter(Filter):
    """Scale sample amplitude."""

    metadata = FilterMetadata(
        name="volume",
        description="Change input volume",
        inputs=_AUDIO_IN,
        outputs=_AUDIO_OUT,
        options={
            "volume": OptionSpec(parse_float_range(0.0, 256.0), 1.0, "Gain factor"),
        },
    )

    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        gain = self._options["volume"]
        if gain == 1.0:
            node.emit(0, frame)
            return
        scaled = frame.data.astype(np.float64) * gain
        node.emit(0, frame.replace(_to_dtype(scaled, frame.data.dtype)))


@register_filter("asplit")
class AudioSplitFilter(Filter):
    """Send every audio frame to two outputs."""

    metadata = FilterMetadata(
        name="asplit",
        description="Pass on the audio input to two audio outputs",
        inputs=_AUDIO_IN,
        outputs=(PortSpec("output0", MediaType.AUDIO), PortSpec("output1", MediaType.AUDIO)),
    )

    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        node.emit(1, frame.clone())
        node.emit(0, frame)


@register_filter("amix")
class AudioMixFilter(Filter):
    """
    Mix two audio inputs into one.

    Frames are mixed pairwise: one frame from each input that is still
    running. A shorter frame is padded with silence. With duration
    "longest" an input that ended simply drops out of the mix; with
    "shortest" (or "first", for input 0) output stops when that input ends.
    """

    metadata = FilterMetadata(
        name="amix",
        description="Audio mixing",
        inputs=(PortSpec("input0", MediaType.AUDIO), PortSpec("input1", MediaType.AUDIO)),
        outputs=_AUDIO_OUT,
        options={
            "duration": OptionSpec(parse_choice("longest", "shortest", "first"), "longest",
                                   "When to stop mixing"),
            "normalize": OptionSpec(parse_bool, True, "Divide the sum by the number of mixed inputs"),
        },
    )

    def init(self) -> None:
        self._pending: list[Optional[Frame]] = [None, None]
        self._stopped = False

    def uninit(self) -> None:
        self._pending = [None, None]

    def wanted_inputs(self, node: FilterNode) -> list[int]:
        return [
            port for port in range(2)
            if self._pending[port] is None and not node.input_ended(port)
        ]

    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        if self._stopped:
            return
        self._pending[port] = frame
        self._mix_ready(node)

    def end_of_stream(self, port: int, node: FilterNode) -> None:
        duration = self._options["duration"]
        if duration == "shortest" or (duration == "first" and port == 0):
            logger.debug(f"amix '{node.name}' stops: input {port} ended")
            self._stopped = True
            self._pending = [None, None]
            return
        self._mix_ready(node)

    def _mix_ready(self, node: FilterNode) -> None:
        if self._stopped:
            return
        running = [
            port for port in range(2)
            if self._pending[port] is not None or not node.input_ended(port)
        ]
        if not running or any(self._pending[port] is None for port in running):
            return

        frames = [self._pending[port] for port in running]
        self._pending = [None, None]
        node.emit(0, self._mix(frames))

    def _mix(self, frames: list[Frame]) -> Frame:
        first = frames[0]
        for frame in frames[1:]:
            if frame.sample_rate != first.sample_rate:
                raise ProcessingError(
                    f"amix inputs differ in sample rate ({first.sample_rate} vs {frame.sample_rate})"
                )
            if frame.channels != first.channels:
                raise ProcessingError(
                    f"amix inputs differ in channels ({first.channels} vs {frame.channels})"
                )

        length = max(frame.nb_samples for frame in frames)
        mixed = np.zeros((length, first.channels), dtype=np.float64)
        for frame in frames:
            mixed[: frame.nb_samples] += frame.data
        if self._options["normalize"]:
            mixed /= len(frames)

        pts_values = [frame.pts for frame in frames if frame.pts is not None]
        return first.replace(
            _to_dtype(mixed, first.data.dtype),
            pts=min(pts_values) if pts_values else None,
        )
