"""
Frame data model.

A Frame is one unit of already-decoded media: a numpy payload plus a small
metadata header. Frames have a single owner at a time. Whoever hands a frame
across a push or pull boundary gives it up; anything that needs to keep a
frame while also handing it on must hand on a clone().

Payload layout:
    video: (height, width) or (height, width, channels), usually uint8
    audio: (nb_samples, channels), usually float32 in [-1.0, 1.0]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Any, Optional

import numpy as np


class MediaType(Enum):
    """Kind of media carried by a frame or a port."""
    VIDEO = "video"
    AUDIO = "audio"


# Channel count implied by each video format tag
VIDEO_FORMATS = {
    "gray": 1,
    "rgb24": 3,
    "rgba": 4,
}

AUDIO_FORMATS = {"flt", "dbl", "s16", "s32"}


@dataclass
class Frame:
    """
    A decoded audio or video frame.

    Attributes:
        data: Frame payload
        media_type: Audio or video
        format: Pixel or sample format tag (e.g. "rgb24", "flt")
        pts: Presentation timestamp in time_base units, None if unknown
        time_base: Unit of pts
        sample_rate: Samples per second (audio only)
        metadata: Free-form side data copied along with the frame
    """

    data: np.ndarray
    media_type: MediaType
    format: str
    pts: Optional[int] = None
    time_base: Fraction = Fraction(1, 1)
    sample_rate: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.data, np.ndarray):
            raise TypeError(f"Frame data must be a numpy array, got {type(self.data).__name__}")

        if self.media_type is MediaType.VIDEO:
            if self.data.ndim not in (2, 3):
                raise ValueError(f"Video payload must be HxW or HxWxC, got shape {self.data.shape}")
        else:
            if self.data.ndim != 2:
                raise ValueError(f"Audio payload must be samples x channels, got shape {self.data.shape}")
            if self.sample_rate <= 0:
                raise ValueError("Audio frames need a positive sample_rate")

    @classmethod
    def video(
        cls,
        data: np.ndarray,
        pts: Optional[int] = None,
        format: Optional[str] = None,
        time_base: Fraction = Fraction(1, 25),
        **metadata,
    ) -> Frame:
        """Create a video frame, guessing the format from the channel count."""
        data = np.asarray(data)
        if format is None:
            channels = data.shape[2] if data.ndim == 3 else 1
            format = {1: "gray", 3: "rgb24", 4: "rgba"}.get(channels, "rgb24")
        return cls(
            data=data,
            media_type=MediaType.VIDEO,
            format=format,
            pts=pts,
            time_base=time_base,
            metadata=metadata,
        )

    @classmethod
    def audio(
        cls,
        data: np.ndarray,
        sample_rate: int,
        pts: Optional[int] = None,
        format: str = "flt",
        **metadata,
    ) -> Frame:
        """Create an audio frame. Mono 1-D payloads become (n, 1)."""
        data = np.asarray(data)
        if data.ndim == 1:
            data = data.reshape(-1, 1)
        return cls(
            data=data,
            media_type=MediaType.AUDIO,
            format=format,
            pts=pts,
            time_base=Fraction(1, sample_rate) if sample_rate > 0 else Fraction(1, 1),
            sample_rate=sample_rate,
            metadata=metadata,
        )

    @property
    def is_video(self) -> bool:
        return self.media_type is MediaType.VIDEO

    @property
    def is_audio(self) -> bool:
        return self.media_type is MediaType.AUDIO

    @property
    def width(self) -> int:
        return int(self.data.shape[1]) if self.is_video else 0

    @property
    def height(self) -> int:
        return int(self.data.shape[0]) if self.is_video else 0

    @property
    def channels(self) -> int:
        if self.is_audio:
            return int(self.data.shape[1])
        return 1 if self.data.ndim == 2 else int(self.data.shape[2])

    @property
    def nb_samples(self) -> int:
        return int(self.data.shape[0]) if self.is_audio else 0

    @property
    def time(self) -> Optional[float]:
        """Presentation time in seconds."""
        if self.pts is None:
            return None
        return float(self.pts * self.time_base)

    def clone(self) -> Frame:
        """Return an independent copy; mutating one never affects the other."""
        return Frame(
            data=self.data.copy(),
            media_type=self.media_type,
            format=self.format,
            pts=self.pts,
            time_base=self.time_base,
            sample_rate=self.sample_rate,
            metadata=dict(self.metadata),
        )

    def replace(self, data: np.ndarray, **changes) -> Frame:
        """Return a frame with the same header and a new payload."""
        fields = {
            "media_type": self.media_type,
            "format": self.format,
            "pts": self.pts,
            "time_base": self.time_base,
            "sample_rate": self.sample_rate,
            "metadata": dict(self.metadata),
        }
        fields.update(changes)
        return Frame(data=data, **fields)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the payload."""
        if self.is_video:
            layout = f"{self.width}x{self.height}"
        else:
            layout = f"{self.nb_samples}x{self.channels}@{self.sample_rate}"
        return f"Frame({self.media_type.value}, {self.format}, {layout}, pts={self.pts})"
