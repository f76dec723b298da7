"""
Bridges between MoviePy clips and frames.

MoviePy does the decoding and encoding; these helpers only turn the arrays
it produces into Frames ready to push, and pulled Frames back into clips.
"""

from __future__ import annotations

import logging
from fractions import Fraction
from typing import Iterable, Iterator, Optional

import numpy as np
from moviepy import AudioClip, ImageSequenceClip, VideoClip
from moviepy.audio.AudioClip import AudioArrayClip

from framegraph.core.frame import Frame

logger = logging.getLogger(__name__)


def _time_base(fps: float) -> Fraction:
    """Time base of one frame at fps (30000/1001 fps -> 1001/30000)."""
    return 1 / Fraction(fps).limit_denominator(1001)


def frames_from_clip(clip: VideoClip, fps: Optional[float] = None) -> Iterator[Frame]:
    """
    Yield the frames of a video clip.

    Args:
        clip: MoviePy video clip
        fps: Sampling rate (default: the clip's own fps)

    Yields:
        rgb24 video frames with pts counted in frames
    """
    fps = fps or getattr(clip, "fps", None)
    if not fps:
        raise ValueError("Clip has no fps; pass fps explicitly")

    time_base = _time_base(fps)
    logger.debug(f"Reading clip frames at {fps} fps (time base {time_base})")

    for index, data in enumerate(clip.iter_frames(fps=fps, dtype="uint8")):
        yield Frame.video(data, pts=index, format="rgb24", time_base=time_base)


def clip_from_frames(frames: Iterable[Frame], fps: Optional[float] = None) -> ImageSequenceClip:
    """
    Build a clip from video frames.

    Gray frames are expanded to RGB and alpha is dropped, as MoviePy
    expects RGB images.

    Args:
        frames: Video frames in presentation order
        fps: Clip frame rate (default: derived from the first frame's time base)
    """
    images = []
    first: Optional[Frame] = None
    for frame in frames:
        if not frame.is_video:
            raise ValueError(f"Expected video frames, got {frame!r}")
        first = first or frame
        data = frame.data
        if data.ndim == 2:
            data = np.stack([data] * 3, axis=-1)
        elif data.shape[2] == 4:
            data = data[..., :3]
        images.append(data)

    if first is None:
        raise ValueError("Cannot build a clip from zero frames")

    if fps is None:
        fps = float(1 / first.time_base)

    return ImageSequenceClip(images, fps=fps)


def frames_from_audio_clip(
    clip: AudioClip,
    sample_rate: int = 44100,
    nb_samples: int = 1024,
) -> Iterator[Frame]:
    """
    Yield an audio clip as fixed-size float frames.

    Args:
        clip: MoviePy audio clip
        sample_rate: Sampling rate to render the clip at
        nb_samples: Samples per frame (the last frame may be shorter)
    """
    if nb_samples < 1:
        raise ValueError("nb_samples must be >= 1")

    samples = np.asarray(clip.to_soundarray(fps=sample_rate), dtype=np.float32)
    if samples.ndim == 1:
        samples = samples.reshape(-1, 1)

    for start in range(0, len(samples), nb_samples):
        yield Frame.audio(samples[start:start + nb_samples].copy(), sample_rate, pts=start)


def audio_clip_from_frames(frames: Iterable[Frame]) -> AudioArrayClip:
    """Concatenate audio frames into one clip."""
    chunks = []
    sample_rate = 0
    for frame in frames:
        if not frame.is_audio:
            raise ValueError(f"Expected audio frames, got {frame!r}")
        if sample_rate and frame.sample_rate != sample_rate:
            raise ValueError(f"Mixed sample rates: {sample_rate} and {frame.sample_rate}")
        sample_rate = frame.sample_rate
        chunks.append(frame.data.astype(np.float64))

    if not chunks:
        raise ValueError("Cannot build a clip from zero frames")

    return AudioArrayClip(np.concatenate(chunks), fps=sample_rate)
