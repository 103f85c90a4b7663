"""
Rasterized pages and their on-disk cache.
"""

from .models import Page
from .page_cache import CACHE_NAMESPACE, FRAMES_DIRNAME, PageCache, cache_key

__all__ = [
    "Page",
    "PageCache",
    "cache_key",
    "CACHE_NAMESPACE",
    "FRAMES_DIRNAME",
]
