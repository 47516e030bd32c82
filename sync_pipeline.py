"""Scan, reconcile and resolve in one sequential run."""
from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Optional

from catalog import CatalogReconciler, CatalogStore
from library import LibraryService
from media_scanner import MediaScanner
from metadata_resolver import MetadataResolver


LOGGER = logging.getLogger(__name__)


class SyncPipeline:
    def __init__(
        self,
        scanner: MediaScanner,
        reconciler: CatalogReconciler,
        resolver: Optional[MetadataResolver],
        store: CatalogStore,
        library: Optional[LibraryService] = None,
    ) -> None:
        self.scanner = scanner
        self.reconciler = reconciler
        self.resolver = resolver
        self.store = store
        self.library = library
        self._run_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def run(self) -> Dict[str, object]:
        """Run the pipeline unless another run is in progress.

        Failures inside a run only shrink the set of updated entries;
        ``pending`` in the summary tells how much work is left.
        """
        if not self._run_lock.acquire(blocking=False):
            LOGGER.info("Sync requested while another sync is running")
            return {'status': 'already_running'}
        start_time = time.perf_counter()
        try:
            summary = self._run_impl()
        finally:
            self._run_lock.release()
        summary['duration_seconds'] = round(time.perf_counter() - start_time, 3)
        LOGGER.info("Sync finished: %s", summary)
        return summary

    def _run_impl(self) -> Dict[str, object]:
        files = self.scanner.scan()
        reconcile_summary = self.reconciler.reconcile(files)
        if self.library is not None:
            self.library.invalidate()

        if self.resolver is None:
            LOGGER.info("TMDB credentials missing; metadata resolution skipped")
            resolve_summary = None
        else:
            resolve_summary = self.resolver.resolve_pending()

        return {
            'status': 'ok',
            'reconcile': reconcile_summary,
            'resolve': resolve_summary,
            'pending': self.store.count_pending(),
        }
