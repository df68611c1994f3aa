#!/usr/bin/env python3
"""
Video Slide Extractor

Splits a video recording (lecture, webinar, conference talk) into static
and moving segments, saves the first and last frame of every static segment
as a JPEG image and marks slides that were already shown earlier.

Usage:
    slide-segmenter <video_file>
    python -m slide_segmenter.extract_slides /path/to/video.mp4 --fps 2

Output:
    Creates a folder with the same name as the video file (without extension)
    in the same directory as the video, containing frame_NNNN_first.jpg /
    frame_NNNN_last.jpg images and a manifest.json describing every segment.
"""

import argparse
import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import cv2

from .config import AnalysisConfig, load_settings
from .duplicate_detector import detect_duplicates
from .errors import ConfigError, SlideSegmenterError
from .frame_hasher import decode_image
from .frame_source import extract_frames, probe_duration
from .models import AnalysisResult, Frame, FrameMetadata, FramePosition, get_static_segments
from .video_analyzer import analyze

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"


def parse_grid(value: str) -> Tuple[int, int]:
    """Parse a COLSxROWS grid such as '4x4'."""
    try:
        cols, rows = (int(part) for part in value.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Grid must look like 4x4, got {value!r}")
    return cols, rows


def save_frame(frame: Frame, metadata: FrameMetadata, output_dir: str, filename: str,
               quality: int) -> None:
    """Write one representative frame as JPEG and record where it went."""
    output_path = os.path.join(output_dir, filename)
    image = decode_image(frame.image)
    if not cv2.imwrite(output_path, image, [cv2.IMWRITE_JPEG_QUALITY, quality]):
        raise OSError(f"Could not write slide image: {output_path}")
    metadata.blob_path = filename
    metadata.url = Path(output_path).resolve().as_uri()


def save_slides(result: AnalysisResult, output_dir: str, quality: int = 80,
                skip_duplicates: bool = False, verbose: bool = True) -> int:
    """
    Save the first/last frames of every static segment.

    The last frame is only written when it is a different image than the
    first one; otherwise both metadata records point at the same file.
    Returns the number of images written.
    """
    os.makedirs(output_dir, exist_ok=True)
    written = 0

    for i, segment in enumerate(result.segments):
        if not segment.is_static:
            continue

        captures = [(FramePosition.FIRST, segment.first_capture, segment.first_frame)]
        if not segment.last_is_first:
            captures.append((FramePosition.LAST, segment.last_capture, segment.last_frame))

        for position, frame, metadata in captures:
            if skip_duplicates and metadata.duplicate_of is not None:
                metadata.skip_reason = "duplicate"
                continue
            filename = f"frame_{i:04d}_{position.value}.jpg"
            save_frame(frame, metadata, output_dir, filename, quality)
            written += 1
            if verbose:
                print(f"  Saved: {filename} (at {format_timestamp(frame.timestamp)})")

        if segment.last_is_first:
            segment.last_frame.blob_path = segment.first_frame.blob_path
            segment.last_frame.url = segment.first_frame.url
            segment.last_frame.skip_reason = segment.first_frame.skip_reason

    return written


def write_manifest(result: AnalysisResult, output_dir: str, video_id: str) -> str:
    manifest = {
        video_id: {
            **result.to_dict(),
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        }
    }
    manifest_path = os.path.join(output_dir, MANIFEST_FILENAME)
    with open(manifest_path, 'w', encoding='utf-8') as f:
        json.dump(manifest, f, indent=2)
    return manifest_path


def format_timestamp(seconds: float) -> str:
    minutes = int(seconds // 60)
    return f"{minutes:02d}:{int(seconds % 60):02d}"


def extract_slides(video_path: str, output_dir: str,
                   config: Optional[AnalysisConfig] = None,
                   video_id: Optional[str] = None,
                   quality: int = 80,
                   skip_duplicates: bool = False,
                   verbose: bool = True) -> AnalysisResult:
    """
    Extract slides from a video file.

    Args:
        video_path: Path to the input video file
        output_dir: Directory to save extracted slides and the manifest
        config: Analysis configuration (defaults to AnalysisConfig())
        video_id: Identifier used in frame ids and the manifest (default: file stem)
        quality: JPEG quality for saved slides
        skip_duplicates: Do not write frames already shown earlier in the video
        verbose: Print progress information

    Returns:
        The analysis result, with duplicates and storage paths filled in
    """
    config = config or AnalysisConfig()
    video_id = video_id or Path(video_path).stem
    start_time = time.time()

    duration = probe_duration(video_path)
    if verbose:
        print(f"Video: {os.path.basename(video_path)}")
        print(f"Duration: {duration:.1f}s ({duration/60:.1f} minutes)")
        print(f"Sampling at {config.fps} fps, grid {config.grid_cols}x{config.grid_rows}")
        print("Analyzing frames...")

    def report(current, total, segment_count):
        if verbose and current % 100 == 0:
            progress = f"{current / total * 100:.1f}%" if total else f"{current} frames"
            print(f"  Progress: {progress} ({segment_count} segments)")

    frames = extract_frames(video_path, config.fps, config.max_width)
    result = analyze(frames, config, video_duration=duration, video_id=video_id,
                     on_progress=report, find_duplicates=False)

    duplicates = detect_duplicates(result.segments, config.duplicate_hash_threshold)
    static_count = len(get_static_segments(result.segments))
    if verbose:
        print(f"Found {len(result.segments)} segments ({static_count} static) "
              f"in {result.total_frames} frames, {duplicates} duplicate frames")
        print(f"\nSaving slides to {output_dir}...")

    written = save_slides(result, output_dir, quality=quality,
                          skip_duplicates=skip_duplicates, verbose=verbose)
    manifest_path = write_manifest(result, output_dir, video_id)
    logger.info("Wrote %d images and %s", written, manifest_path)

    if verbose:
        print(f"  Saved manifest: {manifest_path}")
        runtime_sec = time.time() - start_time
        print(f"\nDone! Saved {written} slide images to {output_dir}")
        print(f"Runtime: {runtime_sec:.1f}s ({runtime_sec/60:.2f} minutes)")

    return result


def build_parser() -> argparse.ArgumentParser:
    defaults = AnalysisConfig()
    parser = argparse.ArgumentParser(
        description="Extract presentation slides from video recordings.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  slide-segmenter video.mp4
  slide-segmenter /path/to/recording.mp4 --fps 2 --grid 6x4
  slide-segmenter meeting.mp4 --skip-duplicates --quiet
        """
    )

    parser.add_argument("video", help="Path to the video file")
    parser.add_argument("--output", "-o",
                        help="Output directory (default: same directory as video, named after video)")
    parser.add_argument("--video-id", help="Identifier for frame ids and the manifest (default: file name)")
    parser.add_argument("--fps", type=float, default=defaults.fps,
                        help=f"Frames sampled per second (default: {defaults.fps})")
    parser.add_argument("--max-width", type=int, default=defaults.max_width,
                        help=f"Downscale frames wider than this (default: {defaults.max_width})")
    parser.add_argument("--grid", type=parse_grid,
                        default=(defaults.grid_cols, defaults.grid_rows),
                        help=f"Hash grid as COLSxROWS (default: {defaults.grid_cols}x{defaults.grid_rows})")
    parser.add_argument("--cell-threshold", type=int, default=defaults.cell_hash_threshold,
                        help=f"Max Hamming distance for matching grid cells (default: {defaults.cell_hash_threshold})")
    parser.add_argument("--min-cell-ratio", type=float, default=defaults.min_static_cell_ratio,
                        help=f"Fraction of cells that must match (default: {defaults.min_static_cell_ratio})")
    parser.add_argument("--min-static-frames", type=int, default=defaults.min_static_frames,
                        help=f"Frames needed to confirm a new slide (default: {defaults.min_static_frames})")
    parser.add_argument("--crop", type=float, default=defaults.center_crop_ratio,
                        help=f"Center crop ratio before hashing (default: {defaults.center_crop_ratio})")
    parser.add_argument("--duplicate-threshold", type=int, default=defaults.duplicate_hash_threshold,
                        help=f"Max Hamming distance for duplicate slides (default: {defaults.duplicate_hash_threshold})")
    parser.add_argument("--workers", type=int, default=defaults.hash_workers,
                        help=f"Threads for hashing slide frames (default: {defaults.hash_workers})")
    parser.add_argument("--skip-duplicates", action="store_true",
                        help="Do not save frames that repeat an earlier slide")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress progress output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else settings.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        config = AnalysisConfig(
            grid_cols=args.grid[0],
            grid_rows=args.grid[1],
            cell_hash_threshold=args.cell_threshold,
            min_static_cell_ratio=args.min_cell_ratio,
            min_static_frames=args.min_static_frames,
            fps=args.fps,
            max_width=args.max_width,
            center_crop_ratio=args.crop,
            duplicate_hash_threshold=args.duplicate_threshold,
            hash_workers=args.workers,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    # Validate input
    video_path = Path(args.video).resolve()
    if not video_path.exists():
        print(f"Error: Video file not found: {video_path}", file=sys.stderr)
        sys.exit(1)

    # Determine output directory
    if args.output:
        output_dir = Path(args.output).resolve()
    elif settings.output_dir:
        output_dir = settings.output_dir.resolve() / video_path.stem
    else:
        output_dir = video_path.parent / video_path.stem

    try:
        result = extract_slides(
            str(video_path),
            str(output_dir),
            config=config,
            video_id=args.video_id,
            quality=settings.slide_image_quality,
            skip_duplicates=args.skip_duplicates,
            verbose=not args.quiet,
        )

        if not get_static_segments(result.segments):
            print("Warning: No slides were detected in the video.", file=sys.stderr)
            sys.exit(1)

    except SlideSegmenterError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
