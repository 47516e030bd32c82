"""Presentation listing: scanned files joined with their catalog entries."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from catalog import CatalogStore, canonical_key
from media_scanner import MediaFile, MediaScanner
from memo_cache import MemoCache


LOGGER = logging.getLogger(__name__)


SCAN_CACHE_KEY = 'library:scan'


def hydrate(files: Iterable[MediaFile], store: CatalogStore) -> List[Dict[str, object]]:
    """Build listing records for ``files``.

    Files without a catalog entry (not reconciled yet, or removed in the
    meantime) are skipped with a warning.
    """
    records = []
    for media in files:
        entry = store.find_by_key(canonical_key(media.path))
        if entry is None:
            LOGGER.warning("No catalog entry for %s; skipping", media.path)
            continue
        records.append({
            'id': entry.id,
            'name': media.name,
            'path': media.path,
            'title': entry.title,
            'description': entry.description,
            'favorite': entry.favorite,
            'poster': entry.poster,
            'backdrop': entry.backdrop,
        })
    return records


class LibraryService:
    def __init__(self, scanner: MediaScanner, store: CatalogStore, cache: Optional[MemoCache] = None) -> None:
        self.scanner = scanner
        self.store = store
        self.cache = cache or MemoCache(None)

    def scanned_files(self) -> List[MediaFile]:
        return self.cache.get_or_compute(SCAN_CACHE_KEY, self.scanner.scan)

    def listing(self, name_filter: Optional[str] = None) -> List[Dict[str, object]]:
        files = self.scanned_files()
        if name_filter:
            needle = name_filter.casefold()
            files = [media for media in files if needle in media.name.casefold()]
        return hydrate(files, self.store)

    def invalidate(self) -> None:
        self.cache.invalidate(SCAN_CACHE_KEY)
