"""
On-disk cache of rasterized page images.

Pages of a document are stored under
``<tmp-root>/pdf-to-mp4/<name>-<hash>/`` as ``0.png``, ``1.png``, …,
where ``<hash>`` is the first 12 hex digits of the MD5 of the
document's absolute path.  A cache is trusted only while its first image
is newer than the document.
"""

import hashlib
import logging
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from PIL import Image

from core.errors import CacheError, FilesystemError

from .models import Page

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "pdf-to-mp4"
FRAMES_DIRNAME = "frames"
_DIGEST_LENGTH = 12


def cache_key(pdf_path: Union[str, Path]) -> str:
    """Return ``<name>-<digest>`` for the document at *pdf_path*."""
    absolute = Path(pdf_path).resolve()
    digest = hashlib.md5(str(absolute).encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]
    return f"{absolute.stem}-{digest}"


class PageCache:
    """
    Stores and looks up page images for one document.

    Usage::

        cache = PageCache("slides.pdf")
        pages = cache.lookup()
        if pages is None:
            pages = cache.store(render_all_pages())
    """

    def __init__(self, pdf_path: Union[str, Path], root: Optional[Path] = None):
        self.pdf_path = Path(pdf_path).resolve()
        self.root = Path(root) if root else Path(tempfile.gettempdir())
        self.directory = self.root / CACHE_NAMESPACE / cache_key(self.pdf_path)

    @property
    def frames_dir(self) -> Path:
        """Scratch directory for the current run's letterboxed frames."""
        return self.directory / FRAMES_DIRNAME

    def ensure_directory(self) -> Path:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Cannot create cache directory {self.directory}: {e}") from e
        return self.directory

    def page_path(self, index: int) -> Path:
        return self.directory / f"{index}.png"

    def _cached_files(self) -> List[Path]:
        files = [p for p in self.directory.glob("*.png") if p.stem.isdigit()]
        return sorted(files, key=lambda p: int(p.stem))

    def lookup(self) -> Optional[List[Page]]:
        """
        Return cached pages, or ``None`` on a miss.

        Read errors are logged and reported as a miss.
        """
        try:
            return self._lookup()
        except CacheError as e:
            logger.warning("Ignoring page cache: %s", e)
            return None

    def _lookup(self) -> Optional[List[Page]]:
        if not self.directory.is_dir():
            return None
        try:
            files = self._cached_files()
            if not files:
                return None
            source_mtime = self.pdf_path.stat().st_mtime
            first_mtime = files[0].stat().st_mtime
        except OSError as e:
            raise CacheError(f"cannot read {self.directory}: {e}") from e

        if first_mtime <= source_mtime:
            logger.debug("Cache at %s is older than %s", self.directory, self.pdf_path)
            return None

        if [int(p.stem) for p in files] != list(range(len(files))):
            logger.debug("Cache at %s has gaps in page numbering", self.directory)
            return None

        logger.info("Using cached images")
        return [Page(index=int(p.stem), image_path=p) for p in files]

    def store(self, pages: Iterable[Tuple[int, Image.Image]]) -> List[Page]:
        """
        Write rendered pages to the cache.

        Stale images from an earlier, longer version of the document are
        removed first.

        Raises:
            FilesystemError: If an image cannot be written.
        """
        self.ensure_directory()
        self.clear_pages()

        stored: List[Page] = []
        try:
            for index, image in pages:
                path = self.page_path(index)
                try:
                    image.save(path, format="PNG")
                except OSError as e:
                    raise FilesystemError(f"Cannot write cached page {path}: {e}") from e
                stored.append(Page(index=index, image_path=path))
        except Exception:
            # a partial cache would look valid to the next lookup
            self._discard(stored)
            raise

        logger.info("Cached images for future use")
        return stored

    def clear_pages(self) -> None:
        for path in self._cached_files():
            try:
                path.unlink()
            except OSError as e:
                raise FilesystemError(f"Cannot remove stale page {path}: {e}") from e

    @staticmethod
    def _discard(pages: List[Page]) -> None:
        for page in pages:
            try:
                page.image_path.unlink()
            except OSError as e:
                logger.warning("Could not remove partial cache file %s: %s", page.image_path, e)

    def __repr__(self) -> str:
        return f"PageCache('{self.directory}')"
