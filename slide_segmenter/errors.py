"""
Error types raised by the slide segmenter.

Callers can tell a bad input image from a bad configuration from an
internal bug by the exception class, since each needs a different fix.
"""


class SlideSegmenterError(Exception):
    """Base class for every error raised by this package."""


class ImageDecodeError(SlideSegmenterError, ValueError):
    """Frame image bytes are empty or could not be decoded."""


class ConfigError(SlideSegmenterError, ValueError):
    """Configuration is invalid or does not fit the frame resolution."""


class DetectorInvariantError(SlideSegmenterError, RuntimeError):
    """The segment detector reached a state that should be impossible."""


class FrameExtractionError(SlideSegmenterError, RuntimeError):
    """The source video could not be opened, probed or sampled."""
