"""
Video filter kinds.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from framegraph.core.errors import InitializationError, ProcessingError
from framegraph.core.frame import Frame, MediaType
from framegraph.filters.base import (
    Filter,
    FilterMetadata,
    OptionSpec,
    PortSpec,
    parse_bool,
    parse_choice,
)
from framegraph.filters.registry import register_filter

if TYPE_CHECKING:
    from framegraph.core.node import FilterNode

logger = logging.getLogger(__name__)

_VIDEO_IN = (PortSpec("default", MediaType.VIDEO),)
_VIDEO_OUT = (PortSpec("default", MediaType.VIDEO),)

_RESAMPLING = {
    "nearest": Image.Resampling.NEAREST,
    "bilinear": Image.Resampling.BILINEAR,
    "bicubic": Image.Resampling.BICUBIC,
    "lanczos": Image.Resampling.LANCZOS,
}


@register_filter("null")
class NullFilter(Filter):
    """Pass video frames through unchanged."""

    metadata = FilterMetadata(
        name="null",
        description="Pass the source unchanged to the output",
        inputs=_VIDEO_IN,
        outputs=_VIDEO_OUT,
    )

    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        node.emit(0, frame)


@register_filter("negate")
class NegateFilter(Filter):
    """Invert pixel values of 8-bit frames."""

    metadata = FilterMetadata(
        name="negate",
        description="Negate input video",
        inputs=_VIDEO_IN,
        outputs=_VIDEO_OUT,
        options={
            "negate_alpha": OptionSpec(parse_bool, False, "Also negate the alpha channel"),
        },
    )

    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        if frame.data.dtype != np.uint8:
            raise ProcessingError(f"negate needs 8-bit frames, got {frame.data.dtype}")

        data = 255 - frame.data
        if frame.format == "rgba" and not self._options["negate_alpha"]:
            data[..., 3] = frame.data[..., 3]
        node.emit(0, frame.replace(data))


@register_filter("hflip")
class HFlipFilter(Filter):
    """Mirror frames horizontally."""

    metadata = FilterMetadata(
        name="hflip",
        description="Horizontally flip the input video",
        inputs=_VIDEO_IN,
        outputs=_VIDEO_OUT,
    )

    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        node.emit(0, frame.replace(np.ascontiguousarray(frame.data[:, ::-1])))


@register_filter("scale")
class ScaleFilter(Filter):
    """
    Resize frames with Pillow.

    A dimension of -1 keeps the aspect ratio from the other one; 0 keeps
    the input dimension.
    """

    metadata = FilterMetadata(
        name="scale",
        description="Scale the input video size",
        inputs=_VIDEO_IN,
        outputs=_VIDEO_OUT,
        options={
            "width": OptionSpec(int, 0, "Output width (-1 = keep aspect, 0 = input width)"),
            "height": OptionSpec(int, 0, "Output height (-1 = keep aspect, 0 = input height)"),
            "flags": OptionSpec(parse_choice(*_RESAMPLING), "bilinear", "Resampling algorithm"),
        },
    )

    def init(self) -> None:
        for key in ("width", "height"):
            if self._options[key] < -1:
                raise InitializationError(f"{key} must be >= -1, got {self._options[key]}", option=key)
        if self._options["width"] == -1 and self._options["height"] == -1:
            raise InitializationError("width and height cannot both be -1", option="height")

    def output_size(self, width: int, height: int) -> tuple[int, int]:
        """Output (width, height) for a given input size."""
        out_w = self._options["width"] or width
        out_h = self._options["height"] or height
        if out_w == -1:
            out_w = max(1, round(width * out_h / height))
        if out_h == -1:
            out_h = max(1, round(height * out_w / width))
        return out_w, out_h

    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        size = self.output_size(frame.width, frame.height)
        if size == (frame.width, frame.height):
            node.emit(0, frame)
            return

        if frame.data.dtype != np.uint8:
            raise ProcessingError(f"scale needs 8-bit frames, got {frame.data.dtype}")

        image = Image.fromarray(frame.data)
        resized = image.resize(size, _RESAMPLING[self._options["flags"]])
        node.emit(0, frame.replace(np.asarray(resized).copy()))


@register_filter("split")
class SplitFilter(Filter):
    """Send every video frame to two outputs."""

    metadata = FilterMetadata(
        name="split",
        description="Pass on the input to two video outputs",
        inputs=_VIDEO_IN,
        outputs=(PortSpec("output0", MediaType.VIDEO), PortSpec("output1", MediaType.VIDEO)),
    )

    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        # Each output owns its frame
        node.emit(1, frame.clone())
        node.emit(0, frame)
