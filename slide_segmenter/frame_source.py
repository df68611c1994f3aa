"""
Frame extraction from video files.

This is the boundary between a video on disk and the analyzer: frames are
sampled at a fixed rate, scaled down to a maximum width and yielded in strict
index order, with frame k always at timestamp k / fps.
"""

import logging
from typing import Iterator

import cv2
from moviepy import VideoFileClip

from .errors import FrameExtractionError
from .models import Frame

logger = logging.getLogger(__name__)


def probe_duration(video_path: str) -> float:
    """Return the duration of a video in seconds."""
    try:
        clip = VideoFileClip(video_path)
    except OSError as exc:
        raise FrameExtractionError(f"Could not probe video file: {video_path}: {exc}") from exc
    try:
        duration = clip.duration
    finally:
        clip.close()
    if duration is None:
        raise FrameExtractionError(f"Video file has no duration: {video_path}")
    return float(duration)


def scale_to_width(frame, max_width: int):
    height, width = frame.shape[:2]
    if width <= max_width:
        return frame
    new_height = max(1, round(height * max_width / width))
    return cv2.resize(frame, (max_width, new_height), interpolation=cv2.INTER_AREA)


def extract_frames(video_path: str, fps: float = 1, max_width: int = 1280) -> Iterator[Frame]:
    """
    Yield frames sampled from a video at the given rate.

    Frames are read sequentially (no seeking) and the first decoded frame
    at or after each sample time k / fps is kept. When fps is higher than
    the source rate, a source frame is repeated for every sample time it
    covers. Only frames that are yielded stay in memory.
    """
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise FrameExtractionError(f"Could not open video file: {video_path}")

    native_fps = cap.get(cv2.CAP_PROP_FPS)
    if not native_fps or native_fps <= 0:
        cap.release()
        raise FrameExtractionError(f"Video reports no frame rate: {video_path}")

    logger.info("Extracting frames from %s at %s fps (source %.2f fps, max width %d)",
                video_path, fps, native_fps, max_width)

    index = 0
    frame_num = 0
    try:
        while True:
            ret, image = cap.read()
            if not ret:
                break
            # Sample k is due once the source frame time reaches k / fps.
            scaled = None
            while frame_num / native_fps + 1e-9 >= index / fps:
                if scaled is None:
                    scaled = scale_to_width(image, max_width)
                yield Frame(index=index, timestamp=index / fps, image=scaled)
                index += 1
            frame_num += 1
    finally:
        cap.release()

    logger.info("Extracted %d frames from %d source frames", index, frame_num)
