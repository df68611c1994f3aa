"""
Slide segmentation for presentation videos.

Splits a sampled frame sequence into static (slide) and moving segments
and links static segments that show the same slide again.
"""

from .config import AnalysisConfig, DEFAULT_CONFIG
from .duplicate_detector import detect_duplicates
from .errors import (
    SlideSegmenterError,
    ImageDecodeError,
    ConfigError,
    DetectorInvariantError,
    FrameExtractionError,
)
from .models import (
    AnalysisResult,
    DuplicateRef,
    Frame,
    FrameMetadata,
    FramePosition,
    Segment,
    SegmentKind,
    get_static_segments,
)
from .segment_detector import SegmentDetector, detect_segments
from .video_analyzer import analyze

__version__ = "0.1.0"
