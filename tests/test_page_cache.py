import hashlib
import logging
import os
import time

import pytest
from PIL import Image

from core.errors import FilesystemError
from core.page import CACHE_NAMESPACE, PageCache, cache_key


def _images(n):
    return [(i, Image.new("RGB", (8, 6), (i * 20 % 256, 0, 0))) for i in range(n)]


def test_cache_key_hashes_absolute_path(pdf_factory):
    pdf = pdf_factory(name="deck.pdf")
    key = cache_key(pdf)
    stem, digest = key.rsplit("-", 1)
    assert stem == "deck"
    assert digest == hashlib.md5(str(pdf.resolve()).encode("utf-8")).hexdigest()[:12]


def test_cache_lives_under_namespace(pdf_factory, tmp_path):
    pdf = pdf_factory()
    cache = PageCache(pdf, root=tmp_path / "cache")
    assert cache.directory == tmp_path / "cache" / CACHE_NAMESPACE / cache_key(pdf)
    assert cache.frames_dir == cache.directory / "frames"


def test_empty_cache_is_a_miss(pdf_factory, tmp_path):
    cache = PageCache(pdf_factory(), root=tmp_path)
    assert cache.lookup() is None
    cache.ensure_directory()
    assert cache.lookup() is None


def test_stored_pages_are_found_again(pdf_factory, tmp_path, caplog):
    cache = PageCache(pdf_factory(), root=tmp_path)
    stored = cache.store(_images(3))
    assert [p.image_path.name for p in stored] == ["0.png", "1.png", "2.png"]

    with caplog.at_level(logging.INFO):
        pages = cache.lookup()
    assert [p.index for p in pages] == [0, 1, 2]
    assert "Using cached images" in caplog.text


def test_lookup_orders_pages_numerically(pdf_factory, tmp_path):
    cache = PageCache(pdf_factory(), root=tmp_path)
    cache.store(_images(12))
    names = [p.image_path.name for p in cache.lookup()]
    assert names[9:] == ["9.png", "10.png", "11.png"]


def test_document_newer_than_cache_is_a_miss(pdf_factory, tmp_path):
    pdf = pdf_factory()
    cache = PageCache(pdf, root=tmp_path)
    cache.store(_images(2))

    future = time.time() + 60
    os.utime(pdf, (future, future))
    assert cache.lookup() is None


def test_gap_in_numbering_is_a_miss(pdf_factory, tmp_path):
    cache = PageCache(pdf_factory(), root=tmp_path)
    cache.store(_images(3))
    cache.page_path(1).unlink()
    assert cache.lookup() is None


def test_store_replaces_pages_of_a_longer_version(pdf_factory, tmp_path):
    cache = PageCache(pdf_factory(), root=tmp_path)
    cache.store(_images(4))
    cache.store(_images(2))
    assert sorted(p.name for p in cache.directory.glob("*.png")) == ["0.png", "1.png"]


def test_interrupted_store_leaves_no_pages(pdf_factory, tmp_path):
    cache = PageCache(pdf_factory(), root=tmp_path)

    def render():
        yield 0, Image.new("RGB", (8, 6))
        raise RuntimeError("renderer crashed")

    with pytest.raises(RuntimeError):
        cache.store(render())
    assert list(cache.directory.glob("*.png")) == []
    assert cache.lookup() is None


def test_unwritable_cache_raises_filesystem_error(pdf_factory, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    cache = PageCache(pdf_factory(), root=blocker)
    with pytest.raises(FilesystemError):
        cache.store(_images(1))


def test_read_error_is_reported_as_miss(pdf_factory, tmp_path, monkeypatch, caplog):
    cache = PageCache(pdf_factory(), root=tmp_path)
    cache.store(_images(1))

    def broken(self):
        raise PermissionError("denied")

    monkeypatch.setattr(PageCache, "_cached_files", broken)
    with caplog.at_level(logging.WARNING):
        assert cache.lookup() is None
    assert "Ignoring page cache" in caplog.text
