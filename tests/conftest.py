import os
import time
from pathlib import Path

import fitz
import pytest


def make_pdf(path: Path, pages: int, size=(200, 100)) -> Path:
    """Write a *pages*-page PDF whose mtime is a minute in the past."""
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=size[0], height=size[1])
        page.insert_text((20, 50), f"Page {i + 1}")
    doc.save(str(path))
    doc.close()

    past = time.time() - 60
    os.utime(path, (past, past))
    return path


@pytest.fixture
def pdf_factory(tmp_path):
    def _make(pages: int = 3, name: str = "slides.pdf", size=(200, 100)) -> Path:
        return make_pdf(tmp_path / name, pages, size)

    return _make
