"""
Duplicate slide detection across a whole video.

Each static segment's first and last frames are compared against the
first/last frames of every earlier static segment. The earliest match
wins, so a slide shown three times always points back to its first
appearance.
"""

import logging
from typing import List, Optional, Tuple

from .config import DEFAULT_CONFIG
from .errors import DetectorInvariantError
from .frame_hasher import hashes_similar
from .models import DuplicateRef, FramePosition, Segment, get_static_segments

logger = logging.getLogger(__name__)


def find_duplicate(phash: str, seen: List[Tuple[int, str, str]],
                   threshold: int) -> Optional[DuplicateRef]:
    """Return a reference to the earliest seen frame similar to phash."""
    for segment_id, first_hash, last_hash in seen:
        if hashes_similar(phash, first_hash, threshold):
            return DuplicateRef(segment_id, FramePosition.FIRST)
        if hashes_similar(phash, last_hash, threshold):
            return DuplicateRef(segment_id, FramePosition.LAST)
    return None


def detect_duplicates(segments: List[Segment],
                      threshold: int = DEFAULT_CONFIG.duplicate_hash_threshold) -> int:
    """
    Fill in duplicate_of on static segment frame metadata, in place.

    segment_id in each reference is the position of the earlier segment
    among the static segments only, so moving segments in between do not
    shift it. Returns the number of frames marked as duplicates.
    """
    seen: List[Tuple[int, str, str]] = []
    marked = 0

    for i, segment in enumerate(get_static_segments(segments)):
        if segment.first_frame is None or segment.last_frame is None:
            raise DetectorInvariantError(
                f"Static segment {i} has no frame metadata; run analyze() first"
            )

        for metadata in (segment.first_frame, segment.last_frame):
            metadata.duplicate_of = find_duplicate(metadata.phash, seen, threshold)
            if metadata.duplicate_of is not None:
                marked += 1
                logger.debug("%s duplicates static segment %d (%s)", metadata.frame_id,
                             metadata.duplicate_of.segment_id,
                             metadata.duplicate_of.frame_position.value)

        seen.append((i, segment.first_frame.phash, segment.last_frame.phash))

    logger.info("Marked %d duplicate frames across %d static segments", marked, len(seen))
    return marked
