"""
Static/moving segmentation of an ordered frame sequence.

The detector is a small state machine driven one frame at a time:

    (no frames) -> STATIC <-> MOVING -> flushed

While static, every frame is compared against the grid hashes of the
segment's first frame (the anchor). A frame that does not match ends the
static segment and opens a moving one. While moving, frames that keep
matching each other are collected in a tentative buffer; once the buffer
holds min_static_frames frames they are split off into a new static
segment. Shorter runs stay part of the moving segment.

step() and flush() never modify the state they are given, so any
intermediate state can be kept around, compared or replayed.
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Tuple

from .config import AnalysisConfig, DEFAULT_CONFIG
from .errors import DetectorInvariantError
from .frame_hasher import compare_grid_hashes, compute_grid_hashes
from .models import Frame, Segment, SegmentKind

logger = logging.getLogger(__name__)

GridHashes = Tuple[str, ...]


@dataclass(frozen=True)
class DetectorState:
    """Everything the detector knows after a prefix of the frame sequence."""
    segments: Tuple[Segment, ...] = ()
    current: Optional[Segment] = None
    anchor_hashes: Optional[GridHashes] = None
    tentative: Tuple[Frame, ...] = ()
    tentative_anchor_hashes: Optional[GridHashes] = None

    def describe(self) -> str:
        kind = self.current.kind.value if self.current else "none"
        return (f"current={kind} committed={len(self.segments)} "
                f"tentative={len(self.tentative)}")


def ensure_grid_hashes(frame: Frame, config: AnalysisConfig) -> GridHashes:
    """Compute the frame's grid hashes once and memoize them on the frame."""
    if frame.grid_hashes is None:
        frame.grid_hashes = compute_grid_hashes(
            frame.image, config.grid_cols, config.grid_rows, config.center_crop_ratio
        )
    return tuple(frame.grid_hashes)


def _matches(anchor: Optional[GridHashes], hashes: GridHashes, config: AnalysisConfig) -> bool:
    if anchor is None:
        return False
    return compare_grid_hashes(
        anchor, hashes, config.cell_hash_threshold, config.min_static_cell_ratio
    )


def _new_segment(kind: SegmentKind, frame: Frame) -> Segment:
    segment = Segment(
        kind=kind,
        start_time=frame.timestamp,
        end_time=frame.timestamp,
        frame_indices=(frame.index,),
    )
    if kind is SegmentKind.STATIC:
        segment.first_capture = frame
        segment.last_capture = frame
        segment.last_is_first = True
    return segment


def _extend_static(segment: Segment, frame: Frame) -> Segment:
    return replace(
        segment,
        frame_indices=segment.frame_indices + (frame.index,),
        end_time=frame.timestamp,
        last_capture=frame,
        last_is_first=False,
    )


def _extend_moving(segment: Segment, frame: Frame) -> Segment:
    return replace(
        segment,
        frame_indices=segment.frame_indices + (frame.index,),
        end_time=frame.timestamp,
    )


def commit(segments: Tuple[Segment, ...], segment: Optional[Segment]) -> Tuple[Segment, ...]:
    """
    Append a finished segment, merging it into the previous one if both
    have the same kind. Empty segments are dropped.
    """
    if segment is None or not segment.frame_indices:
        return segments

    if segments and segments[-1].kind is segment.kind:
        previous = segments[-1]
        merged = replace(
            previous,
            frame_indices=previous.frame_indices + segment.frame_indices,
            end_time=segment.end_time,
        )
        if segment.is_static:
            merged.last_capture = segment.last_capture
            merged.last_is_first = False
        logger.debug("Merged %s segment into previous (%.2fs-%.2fs)",
                     segment.kind.value, merged.start_time, merged.end_time)
        return segments[:-1] + (merged,)

    return segments + (segment,)


def _step_static(state: DetectorState, frame: Frame, hashes: GridHashes,
                 config: AnalysisConfig) -> DetectorState:
    current = state.current
    if _matches(state.anchor_hashes, hashes, config):
        return replace(state, current=_extend_static(current, frame))

    # Static -> moving. The frame that broke the scene seeds the tentative buffer.
    logger.debug("Static segment ended at frame %d (%.2fs)", frame.index, frame.timestamp)
    return DetectorState(
        segments=commit(state.segments, current),
        current=_new_segment(SegmentKind.MOVING, frame),
        anchor_hashes=None,
        tentative=(frame,),
        tentative_anchor_hashes=hashes,
    )


def _confirm_tentative(state: DetectorState, tentative: Tuple[Frame, ...]) -> DetectorState:
    moving = state.current
    buffered = {f.index for f in tentative}
    remaining = tuple(i for i in moving.frame_indices if i not in buffered)

    if not remaining:
        # Hard cut: the moving segment consisted only of the new scene.
        # Its first frame stays behind as a one-frame transition so the
        # new static segment is not merged into the one before it.
        remaining = (tentative[0].index,)
        tentative = tentative[1:]

    first = tentative[0]
    moving = replace(moving, frame_indices=remaining, end_time=first.timestamp)

    static = _new_segment(SegmentKind.STATIC, first)
    for buffered_frame in tentative[1:]:
        static = _extend_static(static, buffered_frame)

    logger.debug("Confirmed static segment at frame %d (%.2fs) after %d matching frames",
                 first.index, first.timestamp, len(tentative))
    return DetectorState(
        segments=commit(state.segments, moving),
        current=static,
        anchor_hashes=tuple(first.grid_hashes),
        tentative=(),
        tentative_anchor_hashes=None,
    )


def _step_moving(state: DetectorState, frame: Frame, hashes: GridHashes,
                 config: AnalysisConfig) -> DetectorState:
    if state.tentative_anchor_hashes is not None:
        if _matches(state.tentative_anchor_hashes, hashes, config):
            tentative = state.tentative + (frame,)
            if len(tentative) >= config.min_static_frames:
                return _confirm_tentative(state, tentative)
            state = replace(state, tentative=tentative)
        else:
            logger.debug("Tentative run reset at frame %d", frame.index)
            state = replace(state, tentative=(frame,), tentative_anchor_hashes=hashes)

    return replace(state, current=_extend_moving(state.current, frame))


def step(state: DetectorState, frame: Frame,
         config: AnalysisConfig = DEFAULT_CONFIG) -> DetectorState:
    """Feed one frame to the detector and return the resulting state."""
    hashes = ensure_grid_hashes(frame, config)

    if state.current is None:
        if state.segments:
            raise DetectorInvariantError(
                f"No current segment at frame {frame.index} after segments were committed"
            )
        # The very first frame always opens a static segment.
        new_state = DetectorState(
            current=_new_segment(SegmentKind.STATIC, frame),
            anchor_hashes=hashes,
        )
    elif state.current.kind is SegmentKind.STATIC:
        if state.anchor_hashes is None:
            raise DetectorInvariantError(f"Static segment without anchor at frame {frame.index}")
        new_state = _step_static(state, frame, hashes, config)
    else:
        new_state = _step_moving(state, frame, hashes, config)

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("frame %d: %s", frame.index, new_state.describe())
    return new_state


def flush(state: DetectorState) -> DetectorState:
    """
    Commit whatever segment is in progress. A tentative run that never
    reached min_static_frames stays part of the moving segment.
    """
    return DetectorState(segments=commit(state.segments, state.current))


def detect_segments(frames: Iterable[Frame],
                    config: AnalysisConfig = DEFAULT_CONFIG) -> List[Segment]:
    """Run the detector over an ordered frame sequence."""
    state = DetectorState()
    for frame in frames:
        state = step(state, frame, config)
    return list(flush(state).segments)


class SegmentDetector:
    """Stateful wrapper around step()/flush() for frame-at-a-time callers."""

    def __init__(self, config: AnalysisConfig = DEFAULT_CONFIG):
        self.config = config
        self.state = DetectorState()
        self._finalized = False

    def process_frame(self, frame: Frame) -> None:
        if self._finalized:
            raise DetectorInvariantError("process_frame() called after finalize()")
        self.state = step(self.state, frame, self.config)

    def finalize(self) -> List[Segment]:
        if not self._finalized:
            self.state = flush(self.state)
            self._finalized = True
        return list(self.state.segments)

    @property
    def segments(self) -> List[Segment]:
        """Segments committed so far (the in-progress one is not included)."""
        return list(self.state.segments)
