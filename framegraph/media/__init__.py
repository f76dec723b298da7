"""
Conversions between MoviePy clips and frames.
"""

from framegraph.media.clip import (
    frames_from_clip,
    clip_from_frames,
    frames_from_audio_clip,
    audio_clip_from_frames,
)

__all__ = [
    "frames_from_clip",
    "clip_from_frames",
    "frames_from_audio_clip",
    "audio_clip_from_frames",
]
