"""
Data model shared by the detector, the analyzer and the duplicate pass.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Tuple, Union

import numpy as np

# Encoded image bytes (PNG/JPEG) or an already decoded BGR/grayscale array.
ImageData = Union[bytes, np.ndarray]


class SegmentKind(str, Enum):
    STATIC = "static"
    MOVING = "moving"


class FramePosition(str, Enum):
    FIRST = "first"
    LAST = "last"


@dataclass(eq=False)
class Frame:
    """One sampled instant of the video."""
    index: int
    timestamp: float
    image: ImageData
    grid_hashes: Optional[List[str]] = None
    frame_hash: Optional[str] = None


@dataclass(frozen=True)
class DuplicateRef:
    """Back-reference to an earlier segment's first or last frame."""
    segment_id: int
    frame_position: FramePosition

    def to_dict(self) -> dict:
        return {"segmentId": self.segment_id, "framePosition": self.frame_position.value}


@dataclass
class FrameMetadata:
    """Externally visible description of a static segment's representative frame."""
    frame_id: str
    phash: str
    duplicate_of: Optional[DuplicateRef] = None
    skip_reason: Optional[str] = None
    blob_path: Optional[str] = None
    url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "frameId": self.frame_id,
            "phash": self.phash,
            "duplicateOf": self.duplicate_of.to_dict() if self.duplicate_of else None,
            "skipReason": self.skip_reason,
            "blobPath": self.blob_path,
            "url": self.url,
        }


@dataclass
class Segment:
    """
    A maximal contiguous run of frames sharing one classification.

    Static segments keep the Frame records of their first and last matching
    frames. last_is_first is set when both are the same captured image, so
    the analyzer can reuse the first frame's hash instead of recomputing it.
    first_frame/last_frame metadata is filled in by the analyzer after the
    detector has finished.
    """
    kind: SegmentKind
    start_time: float
    end_time: float
    frame_indices: Tuple[int, ...] = ()
    first_capture: Optional[Frame] = field(default=None, repr=False)
    last_capture: Optional[Frame] = field(default=None, repr=False)
    last_is_first: bool = True
    first_frame: Optional[FrameMetadata] = None
    last_frame: Optional[FrameMetadata] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def is_static(self) -> bool:
        return self.kind is SegmentKind.STATIC

    def to_dict(self) -> dict:
        data = {
            "kind": self.kind.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
        }
        if self.is_static:
            data["firstFrame"] = self.first_frame.to_dict() if self.first_frame else None
            data["lastFrame"] = self.last_frame.to_dict() if self.last_frame else None
        return data


@dataclass
class AnalysisResult:
    segments: List[Segment]
    total_frames: int
    video_duration: Optional[float]

    def to_dict(self) -> dict:
        return {
            "segments": [segment.to_dict() for segment in self.segments],
            "totalFrames": self.total_frames,
            "videoDuration": self.video_duration,
        }


def get_static_segments(segments: List[Segment]) -> List[Segment]:
    """Return only the static segments, in timeline order."""
    return [segment for segment in segments if segment.is_static]
