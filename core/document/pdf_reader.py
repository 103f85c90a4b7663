"""
PDF page rasterization for the conversion pipeline.
Pages are rendered lazily, one at a time, in page order.
"""

import logging
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union

import fitz  # PyMuPDF
from PIL import Image

from core.errors import InvalidInputError

logger = logging.getLogger(__name__)

# Render scale used when none is given (2.0 ≈ 144 dpi)
DEFAULT_SCALE = 2.0


class PDFDocumentReader:
    """
    Opens a PDF and renders its pages to PIL images.

    Usage::

        with PDFDocumentReader("slides.pdf") as reader:
            for index, image in reader.iter_pages(scale=2.0):
                image.save(f"{index}.png")
    """

    def __init__(self, file_path: Union[str, Path]):
        self.file_path = Path(file_path)
        self.doc: Optional[fitz.Document] = None

        if not self.file_path.is_file():
            raise InvalidInputError(f"Input file not found: {self.file_path}")
        try:
            self.doc = fitz.open(str(self.file_path))
        except Exception as e:
            raise InvalidInputError(f"Failed to open PDF '{self.file_path}': {e}") from e

        self.page_count: int = self.doc.page_count
        if self.page_count == 0:
            self.close()
            raise InvalidInputError(f"Document has no pages: {self.file_path}")

    def render_page(self, page_index: int, scale: float = DEFAULT_SCALE) -> Image.Image:
        """
        Render one page to an RGB image.

        Args:
            page_index: 0-based index of the page
            scale: Resolution scale factor

        Raises:
            InvalidInputError: If the page index is out of range.
        """
        if page_index < 0 or page_index >= self.page_count:
            raise InvalidInputError(
                f"Page index {page_index} out of range "
                f"(document has {self.page_count} pages)"
            )
        page = self.doc.load_page(page_index)
        mat = fitz.Matrix(scale, scale)
        pix = page.get_pixmap(matrix=mat, alpha=False)
        return Image.frombytes("RGB", [pix.width, pix.height], pix.samples)

    def iter_pages(self, scale: float = DEFAULT_SCALE) -> Iterator[Tuple[int, Image.Image]]:
        """Yield ``(page_index, image)`` for every page, in order."""
        for index in range(self.page_count):
            yield index, self.render_page(index, scale)
            logger.debug("Rendered page %d/%d", index + 1, self.page_count)

    def close(self) -> None:
        """Close the document."""
        if self.doc is not None:
            self.doc.close()
            self.doc = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __len__(self) -> int:
        return self.page_count

    def __repr__(self) -> str:
        return f"PDFDocumentReader('{self.file_path}', pages={self.page_count})"
