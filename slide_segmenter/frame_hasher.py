"""
Perceptual hashing of video frames.

Frames are compared two ways:
- grid hashes: the center crop is split into a grid and every cell gets its
  own perceptual hash. Two frames show the same scene when most cells match,
  so a moving cursor or a small webcam overlay does not break a slide.
- frame hash: one perceptual hash over the whole center crop, used to spot
  repeated slides across the video.
"""

from typing import List, Sequence, Tuple

import cv2
import numpy as np

from .errors import ConfigError, ImageDecodeError
from .models import ImageData


def decode_image(data: ImageData) -> np.ndarray:
    """Decode encoded image bytes, or pass an already decoded array through."""
    if isinstance(data, np.ndarray):
        if data.size == 0:
            raise ImageDecodeError("Empty image array")
        return data

    if not data:
        raise ImageDecodeError("Empty image bytes")
    try:
        image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    except cv2.error as exc:
        raise ImageDecodeError(f"Unable to decode image bytes: {exc}") from exc
    if image is None or image.size == 0:
        raise ImageDecodeError(f"Unable to decode image bytes ({len(data)} bytes)")
    return image


def compute_phash(image: np.ndarray, hash_size: int = 32) -> str:
    """
    Compute perceptual hash of an image using DCT (Discrete Cosine Transform).

    The perceptual hash algorithm:
    1. Resize image to hash_size x hash_size
    2. Convert to grayscale
    3. Apply DCT to get frequency components
    4. Take low-frequency 8x8 block (captures image structure, ignores fine details)
    5. Compute median and create binary hash (above/below median)

    Returns the 64 bits as a 16 character hex string.
    """
    resized = cv2.resize(image, (hash_size, hash_size), interpolation=cv2.INTER_AREA)

    if len(resized.shape) == 3:
        gray = cv2.cvtColor(resized, cv2.COLOR_BGR2GRAY)
    else:
        gray = resized

    dct = cv2.dct(np.float32(gray))
    dct_low = dct[:8, :8]
    median = np.median(dct_low)
    bits = (dct_low > median).flatten()
    return np.packbits(bits).tobytes().hex()


def hash_distance(hash1: str, hash2: str) -> int:
    """Hamming distance between two hex hashes of equal length."""
    return bin(int(hash1, 16) ^ int(hash2, 16)).count("1")


def hashes_similar(hash1: str, hash2: str, threshold: int = 5) -> bool:
    return hash_distance(hash1, hash2) <= threshold


def center_crop_box(width: int, height: int,
                    center_crop_ratio: float = 0.6) -> Tuple[int, int, int, int]:
    """Return (left, top, crop_width, crop_height) of the centered crop."""
    crop_w = max(1, int(width * center_crop_ratio))
    crop_h = max(1, int(height * center_crop_ratio))
    left = (width - crop_w) // 2
    top = (height - crop_h) // 2
    return left, top, crop_w, crop_h


def crop_center(image: np.ndarray, center_crop_ratio: float = 0.6) -> np.ndarray:
    height, width = image.shape[:2]
    left, top, crop_w, crop_h = center_crop_box(width, height, center_crop_ratio)
    return image[top:top + crop_h, left:left + crop_w]


def compute_grid_hashes(image: ImageData, grid_cols: int = 4, grid_rows: int = 4,
                        center_crop_ratio: float = 0.6) -> List[str]:
    """
    Hash every cell of a grid laid over the center crop of a frame.

    Hashes are returned row-major. Cells are floor(crop/grid) pixels, so any
    remainder on the right and bottom edges is left out.
    """
    cropped = crop_center(decode_image(image), center_crop_ratio)
    crop_h, crop_w = cropped.shape[:2]

    cell_w = crop_w // grid_cols
    cell_h = crop_h // grid_rows
    if cell_w == 0 or cell_h == 0:
        raise ConfigError(
            f"Grid dimensions ({grid_cols}x{grid_rows}) result in zero-sized cells "
            f"for image ({crop_w}x{crop_h})"
        )

    hashes = []
    for row in range(grid_rows):
        for col in range(grid_cols):
            cell = cropped[row * cell_h:(row + 1) * cell_h, col * cell_w:(col + 1) * cell_w]
            hashes.append(compute_phash(cell))
    return hashes


def compute_frame_hash(image: ImageData, center_crop_ratio: float = 0.6) -> str:
    """Single perceptual hash over the whole center crop, for duplicate detection."""
    return compute_phash(crop_center(decode_image(image), center_crop_ratio))


def compare_grid_hashes(hashes1: Sequence[str], hashes2: Sequence[str],
                        threshold: int = 5, min_match_ratio: float = 0.8) -> bool:
    """
    Compare two grid hash lists cell by cell.

    Returns True if at least min_match_ratio of the cells are within
    threshold. Lists of different length, or empty lists, never match.
    """
    if len(hashes1) != len(hashes2) or not hashes1:
        return False

    matches = sum(1 for h1, h2 in zip(hashes1, hashes2) if hashes_similar(h1, h2, threshold))
    return matches / len(hashes1) >= min_match_ratio
