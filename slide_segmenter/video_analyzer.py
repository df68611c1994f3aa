"""
Video analysis driver.

Feeds an ordered frame sequence through the segment detector, then hashes
the representative frames of every static segment so the duplicate pass can
compare slides across the whole video.
"""

import logging
from collections.abc import Sized
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional

from .config import AnalysisConfig, DEFAULT_CONFIG
from .duplicate_detector import detect_duplicates
from .frame_hasher import compute_frame_hash
from .models import (
    AnalysisResult,
    Frame,
    FrameMetadata,
    FramePosition,
    Segment,
    get_static_segments,
)
from .segment_detector import SegmentDetector

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Optional[int], int], None]


def make_frame_id(video_id: str, segment_index: int, position: FramePosition) -> str:
    return f"{video_id}_{segment_index}_{position.value}"


def _hash_representatives(segments: List[Segment], config: AnalysisConfig) -> None:
    """Compute full-frame hashes for static segment first/last frames, in parallel."""
    pending: List[Frame] = []
    for segment in get_static_segments(segments):
        pending.append(segment.first_capture)
        if not segment.last_is_first:
            pending.append(segment.last_capture)
    pending = [frame for frame in pending if frame.frame_hash is None]
    if not pending:
        return

    with ThreadPoolExecutor(max_workers=config.hash_workers) as executor:
        hashes = list(executor.map(
            lambda frame: compute_frame_hash(frame.image, config.center_crop_ratio),
            pending,
        ))
    for frame, frame_hash in zip(pending, hashes):
        frame.frame_hash = frame_hash


def _attach_metadata(segments: List[Segment], video_id: str) -> None:
    for i, segment in enumerate(segments):
        if not segment.is_static:
            continue
        first_hash = segment.first_capture.frame_hash
        # Same captured image: reuse the hash instead of recomputing it.
        last_hash = first_hash if segment.last_is_first else segment.last_capture.frame_hash
        segment.first_frame = FrameMetadata(
            frame_id=make_frame_id(video_id, i, FramePosition.FIRST),
            phash=first_hash,
        )
        segment.last_frame = FrameMetadata(
            frame_id=make_frame_id(video_id, i, FramePosition.LAST),
            phash=last_hash,
        )


def analyze(frames: Iterable[Frame],
            config: AnalysisConfig = DEFAULT_CONFIG,
            video_duration: Optional[float] = None,
            video_id: str = "video",
            on_progress: Optional[ProgressCallback] = None,
            find_duplicates: bool = True) -> AnalysisResult:
    """
    Segment a video into static and moving parts.

    Args:
        frames: Frames in strict index order (a list or any iterator)
        config: Analysis configuration
        video_duration: Duration measured upstream; defaults to frames / fps
        video_id: Prefix for the frame ids of static segment metadata
        on_progress: Called as on_progress(current, total, segment_count)
            after every frame; total is None when frames has no length
        find_duplicates: Link repeated slides with detect_duplicates() using
            config.duplicate_hash_threshold. Pass False to run it separately.

    Returns:
        AnalysisResult with static segments carrying first/last FrameMetadata
        (duplicate_of stays empty when find_duplicates is False)
    """
    total = len(frames) if isinstance(frames, Sized) else None
    detector = SegmentDetector(config)

    processed = 0
    for frame in frames:
        detector.process_frame(frame)
        processed += 1
        if on_progress is not None:
            on_progress(processed, total, len(detector.segments))
        if processed % 100 == 0:
            logger.debug("Analyzed %d frames (%d segments)", processed, len(detector.segments))

    if video_duration is None:
        video_duration = processed / config.fps

    if processed == 0:
        logger.info("No frames to analyze")
        return AnalysisResult(segments=[], total_frames=0, video_duration=video_duration)

    segments = detector.finalize()
    _hash_representatives(segments, config)
    _attach_metadata(segments, video_id)
    if find_duplicates:
        detect_duplicates(segments, config.duplicate_hash_threshold)

    static_count = len(get_static_segments(segments))
    logger.info("Analyzed %d frames: %d segments (%d static)",
                processed, len(segments), static_count)
    return AnalysisResult(
        segments=segments,
        total_frames=processed,
        video_duration=video_duration,
    )
