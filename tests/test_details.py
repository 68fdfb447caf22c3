"""Tests for the movie detail fetch stage."""

import pytest

from cinesync.details import DetailDriver
from cinesync.records import COUNTRY_SLOTS
from cinesync.report import SyncReport
from cinesync.streams import MovieStreams, RecordStream
from cinesync.tmdb_client import TMDBClient
from tmdb_fakes import FakeSession, movie_payload


@pytest.fixture
def streams() -> MovieStreams:
    return MovieStreams({name: 1000 for name in MovieStreams.NAMES})


def _driver(client: TMDBClient, ids, streams: MovieStreams, report: SyncReport) -> DetailDriver:
    id_stream = RecordStream("movie_ids", 100)
    for movie_id in ids:
        id_stream.put(movie_id)
    id_stream.close()
    return DetailDriver(client, id_stream, streams, report, max_workers=4)


def test_fetched_movies_are_emitted(fake_session: FakeSession, client: TMDBClient,
                                    streams: MovieStreams, report: SyncReport) -> None:
    fake_session.movies = {100: movie_payload(100), 200: movie_payload(200)}

    _driver(client, [100, 200], streams, report).run()

    assert sorted(movie.id for movie in streams.movies) == [100, 200]
    assert len(list(streams.people)) == 6
    assert len(list(streams.local_releases)) == 2
    assert report.movies_fetched == 2
    assert report.movies_dropped == 0


def test_failed_movie_is_dropped(fake_session: FakeSession, client: TMDBClient,
                                 streams: MovieStreams, report: SyncReport) -> None:
    fake_session.movies = {100: movie_payload(100)}

    _driver(client, [100, 300], streams, report).run()

    assert [movie.id for movie in streams.movies] == [100]
    assert {actor.movie_id for actor in streams.actors} == {100}
    assert report.movies_fetched == 1
    assert report.movies_dropped == 1
    assert fake_session.movies_requested() == [100, 300]


def test_malformed_movie_emits_nothing(fake_session: FakeSession, client: TMDBClient,
                                       streams: MovieStreams, report: SyncReport) -> None:
    fake_session.movies = {
        1: {"title": "missing id"},
        2: movie_payload(2, releases=[(f"C{i}", []) for i in range(COUNTRY_SLOTS + 1)]),
    }
    driver = _driver(client, [], streams, report)

    assert driver.fetch_movie(1) is False
    assert driver.fetch_movie(2) is False

    assert all(stream.qsize() == 0 for stream in streams)
    assert report.movies_dropped == 2


def test_run_closes_streams_when_no_ids(client: TMDBClient, streams: MovieStreams, report: SyncReport) -> None:
    _driver(client, [], streams, report).run()

    assert all(stream.closed for stream in streams)
    assert list(streams.movies) == []


def test_start_runs_in_background(fake_session: FakeSession, client: TMDBClient,
                                  streams: MovieStreams, report: SyncReport) -> None:
    fake_session.movies = {100: movie_payload(100)}

    thread = _driver(client, [100], streams, report).start()
    movies = list(streams.movies)
    thread.join(5)

    assert not thread.is_alive()
    assert [movie.id for movie in movies] == [100]


def test_unexpected_error_counted_as_dropped_movie(monkeypatch, fake_session: FakeSession, client: TMDBClient,
                                                   streams: MovieStreams, report: SyncReport) -> None:
    fake_session.movies = {100: movie_payload(100), 200: movie_payload(200)}
    fetch = client.get_movie_details

    def flaky_fetch(movie_id: int):
        if movie_id == 200:
            raise RuntimeError("connection pool exhausted")
        return fetch(movie_id)

    monkeypatch.setattr(client, "get_movie_details", flaky_fetch)

    _driver(client, [100, 200], streams, report).run()

    assert [movie.id for movie in streams.movies] == [100]
    assert report.movies_fetched == 1
    assert report.movies_dropped == 1
    assert all(stream.closed for stream in streams)
