"""PDF document access."""

from .pdf_reader import DEFAULT_SCALE, PDFDocumentReader

__all__ = ["PDFDocumentReader", "DEFAULT_SCALE"]
