"""
============================================================================
CINESYNC - Change-List Discovery
============================================================================
Walks TMDB's /movie/changes pages and feeds non-adult movie ids into the
id stream.

🎯 TWO STEPS:
    1. Page 1 is fetched on the calling thread; its total_pages is the
       loop bound for everything else (default_total_pages when page 1
       fails)
    2. Pages 2..total_pages are fetched on a thread pool; when all of them
       are done the id stream is closed

A page that fails is logged, counted and skipped. Discovery always goes
on with the remaining pages.
============================================================================
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from pydantic import ValidationError

from cinesync.errors import SourceFetchError
from cinesync.report import SyncReport
from cinesync.streams import RecordStream
from cinesync.tmdb_client import TMDBClient
from cinesync.tmdb_schema import ChangesPage

logger = logging.getLogger(__name__)


class DiscoveryDriver:
    """Fetches change-list pages and emits movie ids."""

    def __init__(
        self,
        client: TMDBClient,
        id_stream: RecordStream,
        report: SyncReport,
        max_workers: int = 8,
        max_pages: Optional[int] = None,
        default_total_pages: int = 500,
    ):
        self.client = client
        self.id_stream = id_stream
        self.report = report
        self.max_workers = max_workers
        self.max_pages = max_pages
        self.default_total_pages = default_total_pages

    def fetch_page(self, page: int) -> Optional[ChangesPage]:
        """
        Fetch one page and emit its non-adult ids in page order.

        Returns:
            The parsed page, or None if the page was dropped
        """
        try:
            changes = self.client.get_changes_page(page)
        except (SourceFetchError, ValidationError) as e:
            logger.error("Error fetching change page %d: %s", page, e)
            self.report.record_page_dropped()
            return None

        emitted = 0
        for entry in changes.results:
            if entry.adult:
                continue
            self.id_stream.put(entry.id)
            emitted += 1

        self.report.record_page(emitted, skipped_adult=len(changes.results) - emitted)
        logger.debug("Change page %d: %d ids", page, emitted)
        return changes

    def fetch_first_page(self) -> int:
        """
        Step 1: fetch page 1 and return the page loop bound.

        Without page 1 the page count is unknown, so default_total_pages is
        walked instead; pages past the real end answer with no results.
        """
        first = self.fetch_page(1)
        total_pages = max(1, first.total_pages) if first is not None else self.default_total_pages

        if self.max_pages is not None and total_pages > self.max_pages:
            logger.info("Capping change pages at %d (bound was %d)", self.max_pages, total_pages)
            total_pages = self.max_pages

        if first is None:
            logger.error("Change page 1 failed; walking pages 2..%d without a known page count",
                         total_pages)
        return total_pages

    def fetch_remaining_pages(self, total_pages: int) -> None:
        """Step 2: fetch pages 2..total_pages, then close the id stream."""
        try:
            if total_pages >= 2:
                with ThreadPoolExecutor(max_workers=self.max_workers,
                                        thread_name_prefix='discovery') as pool:
                    # list() re-raises anything fetch_page did not handle
                    list(pool.map(self.fetch_page, range(2, total_pages + 1)))
        finally:
            self.id_stream.close()

    def start(self, total_pages: int) -> threading.Thread:
        """Run step 2 on a background thread."""
        thread = threading.Thread(
            target=self.fetch_remaining_pages,
            args=(total_pages,),
            name='discovery-driver',
            daemon=True,
        )
        thread.start()
        return thread
