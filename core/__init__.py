"""
Core backend for PDF to MP4 conversion.
Page rasterization and the page-image cache only; no timing or encoding.
"""

from .document import PDFDocumentReader
from .page import Page, PageCache, cache_key

__all__ = [
    "PDFDocumentReader",
    "Page",
    "PageCache",
    "cache_key",
]
