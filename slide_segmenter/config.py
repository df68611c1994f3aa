"""
Analysis configuration and environment settings.

AnalysisConfig is the immutable per-run configuration for the segmenter.
Settings holds the handful of values read from the environment (or a .env
file) that only matter to the command line tool.
"""

import os
from dataclasses import dataclass, asdict, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError


@dataclass(frozen=True)
class AnalysisConfig:
    """Configuration for one analysis run."""
    grid_cols: int = 4
    grid_rows: int = 4
    cell_hash_threshold: int = 5
    min_static_cell_ratio: float = 0.8
    min_static_frames: int = 3
    fps: float = 1
    max_width: int = 1280
    center_crop_ratio: float = 0.6
    duplicate_hash_threshold: int = 5
    hash_workers: int = 4

    def __post_init__(self):
        if self.grid_cols < 1 or self.grid_rows < 1:
            raise ConfigError(
                f"Grid must be at least 1x1, got {self.grid_cols}x{self.grid_rows}"
            )
        if self.fps <= 0:
            raise ConfigError(f"fps must be positive, got {self.fps}")
        if self.max_width < 1:
            raise ConfigError(f"max_width must be positive, got {self.max_width}")
        if not 0 < self.center_crop_ratio <= 1:
            raise ConfigError(
                f"center_crop_ratio must be in (0, 1], got {self.center_crop_ratio}"
            )
        if not 0 <= self.min_static_cell_ratio <= 1:
            raise ConfigError(
                f"min_static_cell_ratio must be in [0, 1], got {self.min_static_cell_ratio}"
            )
        if self.cell_hash_threshold < 0 or self.duplicate_hash_threshold < 0:
            raise ConfigError("Hash thresholds must not be negative")
        if self.min_static_frames < 1:
            raise ConfigError(
                f"min_static_frames must be at least 1, got {self.min_static_frames}"
            )
        if self.hash_workers < 1:
            raise ConfigError(f"hash_workers must be at least 1, got {self.hash_workers}")

    def with_overrides(self, **overrides) -> "AnalysisConfig":
        """Return a validated copy with the given fields replaced."""
        unknown = set(overrides) - set(asdict(self))
        if unknown:
            raise ConfigError(f"Unknown config fields: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)

    def to_dict(self) -> dict:
        return asdict(self)


DEFAULT_CONFIG = AnalysisConfig()


@dataclass(frozen=True)
class Settings:
    """Values read from the environment."""
    slide_image_quality: int = 80
    output_dir: Optional[Path] = None
    log_level: str = "INFO"


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """
    Read settings from the environment.

    A .env file is loaded first if present (explicit path, or the current
    directory), without overriding variables that are already set.
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        env_path = Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)

    raw_quality = os.environ.get("SLIDE_IMAGE_QUALITY", "80")
    try:
        quality = int(raw_quality)
    except ValueError:
        raise ConfigError(f"SLIDE_IMAGE_QUALITY must be an integer, got {raw_quality!r}")
    if not 0 <= quality <= 100:
        raise ConfigError(f"SLIDE_IMAGE_QUALITY must be in [0, 100], got {quality}")

    output_dir = os.environ.get("SLIDES_OUTPUT_DIR")
    return Settings(
        slide_image_quality=quality,
        output_dir=Path(output_dir) if output_dir else None,
        log_level=os.environ.get("SLIDES_LOG_LEVEL", "INFO").upper(),
    )
