"""
============================================================================
CINESYNC - Movie Detail Fetch
============================================================================
Consumes the id stream, fetches each movie with credits and release dates,
decomposes it (cinesync.records) and puts the rows on the typed streams.

A movie that cannot be fetched, parsed or decomposed is logged, counted
and left out of the run; nothing is emitted for it.

When the id stream is closed and every fetch has finished, all typed
streams are closed once. That close lets each batch writer flush its last
partial batch and return.
============================================================================
"""

import functools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from pydantic import ValidationError

from cinesync.errors import DecompositionError, SourceFetchError
from cinesync.records import decompose_movie
from cinesync.report import SyncReport
from cinesync.streams import MovieStreams, RecordStream
from cinesync.tmdb_client import TMDBClient

logger = logging.getLogger(__name__)


class DetailDriver:
    """Runs one detail fetch per discovered movie id on a bounded pool."""

    def __init__(
        self,
        client: TMDBClient,
        id_stream: RecordStream,
        streams: MovieStreams,
        report: SyncReport,
        max_workers: int = 32,
    ):
        self.client = client
        self.id_stream = id_stream
        self.streams = streams
        self.report = report
        self.max_workers = max_workers
        # Bounds ids handed to the executor but not yet finished
        self._slots = threading.BoundedSemaphore(max_workers * 2)

    def fetch_movie(self, movie_id: int) -> bool:
        """
        Fetch, decompose and emit one movie.

        Returns:
            True if the movie's rows were emitted, False if it was dropped
        """
        try:
            document = self.client.get_movie_details(movie_id)
            records = decompose_movie(document)
        except (SourceFetchError, ValidationError, DecompositionError) as e:
            logger.error("Error fetching details for movie %d: %s", movie_id, e)
            self.report.record_movie_dropped()
            return False

        self.streams.emit(records)
        self.report.record_movie()
        return True

    def _finish(self, movie_id: int, future: Future) -> None:
        """Done-callback: free the slot and count a fetch that raised."""
        try:
            error = future.exception()
            if error is not None:
                logger.error("Unexpected error fetching details for movie %d: %r", movie_id, error)
                self.report.record_movie_dropped()
        finally:
            self._slots.release()

    def run(self) -> None:
        """
        Drain the id stream, wait for all fetches, close the typed streams.

        Futures are not kept: each done-callback frees its slot and counts a
        fetch that raised, and leaving the pool joins the rest.
        """
        try:
            with ThreadPoolExecutor(max_workers=self.max_workers,
                                    thread_name_prefix='details') as pool:
                for movie_id in self.id_stream:
                    self._slots.acquire()
                    future = pool.submit(self.fetch_movie, movie_id)
                    future.add_done_callback(functools.partial(self._finish, movie_id))
        finally:
            self.streams.close()

    def start(self) -> threading.Thread:
        """Run the driver on a background thread."""
        thread = threading.Thread(target=self.run, name='detail-driver', daemon=True)
        thread.start()
        return thread
