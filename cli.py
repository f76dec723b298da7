#!/usr/bin/env python3
"""
FrameGraph CLI - Command-line interface for filter graphs.

Usage:
    framegraph kinds
    framegraph describe graph.yaml
    framegraph run graph.yaml --frames 50
    framegraph run graph.yaml --input clip.mp4 --output out.mp4
"""

from __future__ import annotations

import argparse
import logging
import sys
from fractions import Fraction
from typing import Iterator, Optional

import numpy as np

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("framegraph")


def setup_logging(verbose: bool = False, quiet: bool = False):
    """Configure logging based on verbosity settings."""
    if quiet:
        logging.getLogger().setLevel(logging.WARNING)
    elif verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def synthetic_video(count: int, width: int, height: int, fps: int = 25) -> Iterator:
    """Moving horizontal gradient, rgb24."""
    from framegraph.core.frame import Frame

    ramp = np.linspace(0, 255, width, dtype=np.float64)
    for index in range(count):
        row = ((ramp + index * 8) % 256).astype(np.uint8)
        data = np.repeat(row[np.newaxis, :, np.newaxis], height, axis=0).repeat(3, axis=2)
        yield Frame.video(data, pts=index, time_base=Fraction(1, fps))


def synthetic_audio(count: int, sample_rate: int, channels: int = 2, nb_samples: int = 1024) -> Iterator:
    """440 Hz sine, float32."""
    from framegraph.core.frame import Frame

    for index in range(count):
        start = index * nb_samples
        t = (np.arange(nb_samples) + start) / sample_rate
        wave = (0.5 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)
        yield Frame.audio(np.repeat(wave[:, np.newaxis], channels, axis=1), sample_rate, pts=start)


def _load_graph(path: str):
    from framegraph.core.config import GraphConfig
    from framegraph.core.errors import FilterGraphError
    from framegraph.core.graph import FilterGraph

    config = GraphConfig.from_file(path)
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(error)
        sys.exit(1)

    try:
        return FilterGraph.from_config(config)
    except FilterGraphError as e:
        for message in getattr(e, "diagnostics", None) or [str(e)]:
            logger.error(message)
        sys.exit(1)


def cmd_kinds(args):
    """List registered filter kinds."""
    from framegraph.filters.registry import get_registry

    registry = get_registry()

    print("\nAvailable Filter Kinds:")
    print("=" * 60)

    for name in registry.list_kinds():
        info = registry.describe(name)
        print(f"\n{name} [{info['role']}]: {info['description']}")
        print(f"  Inputs: {', '.join(info['inputs']) or '-'}")
        print(f"  Outputs: {', '.join(info['outputs']) or '-'}")
        for key, help_text in info["options"].items():
            print(f"  --{key}: {help_text}")


def cmd_describe(args):
    """Build and configure a graph, then print its structure."""
    graph = _load_graph(args.config)
    print()
    print(graph.dump())
    graph.destroy()


def cmd_run(args):
    """Feed frames through a graph and drain its sinks."""
    from framegraph.core.driver import run_graph
    from framegraph.core.errors import FilterGraphError

    graph = _load_graph(args.config)
    feeds = {}

    for source in graph.sources:
        if source.kind == "buffer":
            if args.input:
                from moviepy import VideoFileClip
                from framegraph.media.clip import frames_from_clip

                clip = VideoFileClip(args.input)
                feeds[source] = frames_from_clip(clip, fps=args.fps)
            else:
                feeds[source] = synthetic_video(args.frames, args.width, args.height, fps=int(args.fps))
        else:
            feeds[source] = synthetic_audio(args.frames, args.sample_rate)

    try:
        results = run_graph(graph, feeds)
    except FilterGraphError as e:
        logger.error(f"Graph failed: {e}")
        graph.destroy()
        sys.exit(1)

    for sink_name, frames in results.items():
        logger.info(f"Sink '{sink_name}': {len(frames)} frame(s)")

    if args.output:
        from framegraph.media.clip import clip_from_frames

        video = next((frames for frames in results.values() if frames and frames[0].is_video), None)
        if video is None:
            logger.error("No video frames to write")
        else:
            clip_from_frames(video, fps=args.fps).write_videofile(args.output, logger=None)
            logger.info(f"Output: {args.output}")

    graph.destroy()


def main(argv: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(
        description="FrameGraph - Pull-driven filter graphs for decoded media frames",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List filter kinds
  framegraph kinds

  # Validate a graph and show its structure
  framegraph describe graph.yaml

  # Push 100 synthetic frames through a graph
  framegraph run graph.yaml --frames 100

  # Filter a video file
  framegraph run graph.yaml --input clip.mp4 --output filtered.mp4
        """,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-error output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # ==================== Kinds Command ====================
    kinds_parser = subparsers.add_parser(
        "kinds",
        help="List available filter kinds",
    )
    kinds_parser.set_defaults(func=cmd_kinds)

    # ==================== Describe Command ====================
    describe_parser = subparsers.add_parser(
        "describe",
        help="Validate a graph configuration and print its structure",
    )
    describe_parser.add_argument(
        "config",
        help="Graph configuration file (YAML or JSON)",
    )
    describe_parser.set_defaults(func=cmd_describe)

    # ==================== Run Command ====================
    run_parser = subparsers.add_parser(
        "run",
        help="Run frames through a graph",
    )
    run_parser.add_argument(
        "config",
        help="Graph configuration file (YAML or JSON)",
    )
    run_parser.add_argument(
        "--frames",
        type=int,
        default=25,
        help="Synthetic frames per source (default: 25)",
    )
    run_parser.add_argument(
        "--width",
        type=int,
        default=320,
        help="Synthetic video width (default: 320)",
    )
    run_parser.add_argument(
        "--height",
        type=int,
        default=240,
        help="Synthetic video height (default: 240)",
    )
    run_parser.add_argument(
        "--fps",
        type=float,
        default=25.0,
        help="Video frame rate (default: 25)",
    )
    run_parser.add_argument(
        "--sample-rate",
        type=int,
        default=48000,
        help="Synthetic audio sample rate (default: 48000)",
    )
    run_parser.add_argument(
        "-i", "--input",
        help="Video file to feed video sources instead of synthetic frames",
    )
    run_parser.add_argument(
        "-o", "--output",
        help="Write the first video sink's frames to this file",
    )
    run_parser.set_defaults(func=cmd_run)

    # Parse and execute
    args = parser.parse_args(argv)

    setup_logging(
        verbose=getattr(args, 'verbose', False),
        quiet=getattr(args, 'quiet', False),
    )

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
