"""
============================================================================
CINESYNC - Bounded Record Streams
============================================================================
FIFO channels between pipeline stages.

    discovery ──ids──▶ detail fetch ──8 typed streams──▶ batch writers

Each stream is a fixed-capacity queue: a producer that outruns its
consumer blocks on put() once the queue is full (backpressure), so memory
stays bounded. Closing a stream enqueues a sentinel that ends iteration
for the consumer after every earlier item has been delivered.
============================================================================
"""

import logging
import queue
import threading
from typing import Any, Dict, Iterator

from config import ProcessingConfig
from cinesync.records import MovieRecords

logger = logging.getLogger(__name__)

_CLOSED = object()


class RecordStream:
    """Bounded single-consumer queue with an explicit close signal."""

    def __init__(self, name: str, capacity: int):
        if capacity < 1:
            raise ValueError(f"stream '{name}' needs a positive capacity, got {capacity}")
        self.name = name
        self.capacity = capacity
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=capacity)
        self._close_lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, item: Any) -> None:
        """Append an item, blocking while the stream is full."""
        if self._closed:
            raise RuntimeError(f"stream '{self.name}' is closed")
        if self._queue.full():
            logger.debug("Stream %s is full (%d items), producer waiting", self.name, self.capacity)
        self._queue.put(item)

    def close(self) -> None:
        """Signal end of stream. Only the first call has an effect."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        # May block until the consumer frees a slot
        self._queue.put(_CLOSED)

    def qsize(self) -> int:
        return self._queue.qsize()

    def __iter__(self) -> Iterator[Any]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item


class MovieStreams:
    """
    The eight typed streams filled by the detail fetchers.

    Attribute names match the MovieRecords fields, one stream per table.
    """

    NAMES = (
        'movies', 'people', 'actors', 'directors',
        'genres', 'countries', 'release_countries', 'local_releases',
    )

    def __init__(self, capacities: Dict[str, int]):
        missing = [name for name in self.NAMES if name not in capacities]
        if missing:
            raise ValueError(f"missing stream capacities: {', '.join(missing)}")
        self._streams = {name: RecordStream(name, capacities[name]) for name in self.NAMES}

    @classmethod
    def from_config(cls, processing: ProcessingConfig) -> 'MovieStreams':
        return cls({
            'movies': processing.movie_capacity,
            'people': processing.people_capacity,
            'actors': processing.actor_capacity,
            'directors': processing.director_capacity,
            'genres': processing.genre_capacity,
            'countries': processing.country_capacity,
            'release_countries': processing.release_country_capacity,
            'local_releases': processing.local_release_capacity,
        })

    def __getattr__(self, name: str) -> RecordStream:
        streams = self.__dict__.get('_streams', {})
        if name in streams:
            return streams[name]
        raise AttributeError(name)

    def __getitem__(self, name: str) -> RecordStream:
        return self._streams[name]

    def __iter__(self) -> Iterator[RecordStream]:
        return iter(self._streams.values())

    def emit(self, records: MovieRecords) -> None:
        """
        Put every record of one movie on its stream.

        Release countries are emitted before local releases, so a parent row
        always precedes its children on the way to the writers.
        """
        self.movies.put(records.movie)
        for person in records.people:
            self.people.put(person)
        for actor in records.actors:
            self.actors.put(actor)
        for director in records.directors:
            self.directors.put(director)
        for genre in records.genres:
            self.genres.put(genre)
        for country in records.countries:
            self.countries.put(country)
        for release_country in records.release_countries:
            self.release_countries.put(release_country)
        for local_release in records.local_releases:
            self.local_releases.put(local_release)

    def close(self) -> None:
        for stream in self._streams.values():
            stream.close()
