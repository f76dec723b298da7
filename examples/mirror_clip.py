#!/usr/bin/env python3
"""
Mirror Clip Example

This example shows how to drive a filter graph by hand:
1. Read a video file with MoviePy
2. Push its frames through buffer -> hflip -> scale -> buffersink
3. Pull the filtered frames and write them back out

Usage:
    python examples/mirror_clip.py input.mp4 output.mp4 [width]
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from moviepy import VideoFileClip

from framegraph import FilterGraph
from framegraph.core.errors import Backpressure
from framegraph.media import clip_from_frames, frames_from_clip


def main():
    if len(sys.argv) < 3:
        print("Usage: python mirror_clip.py input.mp4 output.mp4 [width]")
        sys.exit(1)

    input_path = Path(sys.argv[1])
    output_path = Path(sys.argv[2])
    width = int(sys.argv[3]) if len(sys.argv) > 3 else -1

    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}")
        sys.exit(1)

    clip = VideoFileClip(str(input_path))
    print(f"Processing: {input_path} ({clip.w}x{clip.h} @ {clip.fps} fps)")

    with FilterGraph(name="MirrorClip") as graph:
        src = graph.add_filter("buffer", {"width": clip.w, "height": clip.h}, name="in")
        flip = graph.add_filter("hflip", name="flip")
        scale = graph.add_filter("scale", {"width": width, "height": -1 if width > 0 else 0}, name="scale")
        sink = graph.add_filter("buffersink", name="out")

        graph.link(src, 0, flip, 0)
        graph.link(flip, 0, scale, 0)
        graph.link(scale, 0, sink, 0)
        graph.configure()
        print(graph.dump())

        output = []

        def drain():
            while True:
                result = graph.pull(sink)
                if result.produced:
                    output.append(result.frame)
                    continue
                result.unwrap()
                return result.end_of_stream

        for frame in frames_from_clip(clip):
            while True:
                try:
                    graph.push(src, frame)
                    break
                except Backpressure:
                    drain()

        graph.push(src, None)
        drain()

    print(f"Filtered {len(output)} frames")
    clip_from_frames(output, fps=clip.fps).write_videofile(str(output_path))
    print(f"Output: {output_path}")


if __name__ == "__main__":
    main()
