"""
Page records for the conversion pipeline.
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Page:
    """A rasterized page: its 0-based index and the cached image file."""

    index: int
    image_path: Path
