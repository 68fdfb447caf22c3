"""End-to-end tests for the sync pipeline against a fake TMDB and SQLite."""

import functools
import threading
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from config import Config, load_config
from cinesync import sync_movies
from cinesync.batch_writer import BatchWriter
from cinesync.errors import UnsupportedDatabaseError
from cinesync.models import (
    CinemaPerson, LocalRelease, Movie, MovieActor, MovieCountry,
    MovieDirector, MovieGenre, ReleaseCountry, build_engine, create_tables,
)
from cinesync.rate_limiter import RateLimiter
from cinesync.sync_movies import WRITE_STAGES, WRITER_TABLES, apply_overrides, parse_args, run_sync
from cinesync.tmdb_client import TMDBClient
from tmdb_fakes import FakeResponse, FakeSession, changes_payload, movie_payload


@pytest.fixture
def tmdb() -> FakeSession:
    return FakeSession(
        changes={
            1: changes_payload([100, 200, 666], total_pages=2, adult_ids=[666]),
            2: changes_payload([300], page=2, total_pages=2),
        },
        movies={
            100: movie_payload(100, title="The Matrix"),
            200: movie_payload(200, title="The Matrix Reloaded", releases=(
                ("US", [("2003-05-15T00:00:00.000Z", 3, "")]),
                ("DE", [("2003-05-22T00:00:00.000Z", 3, ""), ("2003-10-01T00:00:00.000Z", 5, "DVD")]),
            )),
            300: movie_payload(300, title="Unreleased", release_date="", releases=()),
        },
    )


def _client(session: FakeSession) -> TMDBClient:
    return TMDBClient("test-token", RateLimiter(10_000), session=session)


def _counts(engine) -> dict:
    with engine.connect() as conn:
        return {
            model.__tablename__: conn.execute(select(func.count()).select_from(model.__table__)).scalar_one()
            for model in (Movie, CinemaPerson, MovieActor, MovieDirector, MovieGenre,
                          MovieCountry, ReleaseCountry, LocalRelease)
        }


EXPECTED_COUNTS = {
    'movie': 3,
    'cinema_person': 3,
    'movie_actor': 6,
    'movie_director': 3,
    'movie_genre': 6,
    'movie_country': 3,
    'release_country': 3,
    'local_release': 4,
}


def test_writer_layout_covers_every_stream() -> None:
    staged = [name for stage in WRITE_STAGES for name in stage]
    assert sorted(staged) == sorted(WRITER_TABLES)
    assert staged.index('movies') < staged.index('actors')
    assert staged.index('people') < staged.index('directors')
    assert staged.index('release_countries') < staged.index('local_releases')


def test_run_sync_writes_every_table(test_config: Config, engine, tmdb: FakeSession) -> None:
    report = run_sync(test_config, client=_client(tmdb), engine=engine, show_progress=False)

    assert _counts(engine) == EXPECTED_COUNTS
    assert 666 not in tmdb.movies_requested()
    assert report.pages_fetched == 2
    assert report.movies_fetched == 3
    assert report.adult_ids_skipped == 1
    assert not report.has_failures
    assert report.finished_at is not None

    with engine.connect() as conn:
        release_date = conn.execute(select(Movie.primary_release_date).where(Movie.id == 300)).scalar_one()
        parents = set(conn.execute(select(ReleaseCountry.id)).scalars())
        children = set(conn.execute(select(LocalRelease.release_country_id)).scalars())
    assert release_date is None
    assert children <= parents


def test_rerun_is_idempotent_and_refreshes_movies(test_config: Config, engine, tmdb: FakeSession) -> None:
    run_sync(test_config, client=_client(tmdb), engine=engine, show_progress=False)

    tmdb.movies[100]["title"] = "The Matrix (Remastered)"
    tmdb.movies[100]["credits"]["cast"][0]["name"] = "Renamed Actor"
    report = run_sync(test_config, client=_client(tmdb), engine=engine, show_progress=False)

    assert _counts(engine) == EXPECTED_COUNTS
    assert not report.has_failures
    with engine.connect() as conn:
        title = conn.execute(select(Movie.title).where(Movie.id == 100)).scalar_one()
        name = conn.execute(select(CinemaPerson.name).where(CinemaPerson.id == 1)).scalar_one()
    assert title == "The Matrix (Remastered)"
    assert name == "Keanu Reeves"


def test_failed_movie_is_left_out(test_config: Config, engine, tmdb: FakeSession) -> None:
    del tmdb.movies[200]

    report = run_sync(test_config, client=_client(tmdb), engine=engine, show_progress=False)

    with engine.connect() as conn:
        movie_ids = sorted(conn.execute(select(Movie.id)).scalars())
        release_movies = set(conn.execute(select(ReleaseCountry.movie_id)).scalars())
    assert movie_ids == [100, 300]
    assert release_movies == {100}
    assert report.movies_dropped == 1
    assert report.has_failures


def test_first_page_failure_still_walks_other_pages(test_config: Config, engine) -> None:
    session = FakeSession(
        changes={
            1: FakeResponse(503, {"status_message": "Service unavailable"}),
            2: changes_payload([100], page=2, total_pages=3),
        },
        movies={100: movie_payload(100)},
    )

    report = run_sync(test_config, client=_client(session), engine=engine, show_progress=False)

    assert session.pages_requested() == [1, 2, 3]
    assert report.pages_dropped == 2
    assert report.movies_fetched == 1
    assert _counts(engine)['movie'] == 1


def test_stages_finish_before_next_stage_starts(monkeypatch, test_config: Config, engine,
                                                tmdb: FakeSession) -> None:
    events = []
    lock = threading.Lock()
    original_run = BatchWriter.run

    def recording_run(writer: BatchWriter) -> None:
        with lock:
            events.append(('start', writer.name))
        original_run(writer)
        with lock:
            events.append(('end', writer.name))

    monkeypatch.setattr(BatchWriter, 'run', recording_run)

    run_sync(test_config, client=_client(tmdb), engine=engine, show_progress=False)

    assert len(events) == 2 * len(WRITER_TABLES)
    for earlier, later in zip(WRITE_STAGES, WRITE_STAGES[1:]):
        last_end = max(events.index(('end', name)) for name in earlier)
        first_start = min(events.index(('start', name)) for name in later)
        assert last_end < first_start, f"{later} started before {earlier} finished"
    assert _counts(engine) == EXPECTED_COUNTS


def test_run_sync_closes_the_client_it_builds(monkeypatch, test_config: Config, engine,
                                              tmdb: FakeSession) -> None:
    monkeypatch.setattr(sync_movies, 'TMDBClient', functools.partial(TMDBClient, session=tmdb))

    run_sync(test_config, engine=engine, show_progress=False)

    assert tmdb.closed


def test_run_sync_leaves_a_given_client_open(test_config: Config, engine, tmdb: FakeSession) -> None:
    run_sync(test_config, client=_client(tmdb), engine=engine, show_progress=False)

    assert not tmdb.closed


def test_small_batches_and_max_pages(test_env: dict, engine, tmdb: FakeSession) -> None:
    cfg = load_config({**test_env, "BATCH_SIZE": "1", "MAX_PAGES": "1"})

    report = run_sync(cfg, client=_client(tmdb), engine=engine, show_progress=False)

    assert tmdb.pages_requested() == [1]
    assert _counts(engine)['movie'] == 2
    assert report.batches_committed['movie'] == 2


def test_unsupported_dialect_rejected_before_fetching(test_config: Config, tmdb: FakeSession) -> None:
    engine = SimpleNamespace(dialect=SimpleNamespace(name='mysql'))

    with pytest.raises(UnsupportedDatabaseError):
        run_sync(test_config, client=_client(tmdb), engine=engine)

    assert tmdb.calls == []


# ============================================================================
# COMMAND-LINE INTERFACE
# ============================================================================

def test_apply_overrides(test_config: Config) -> None:
    args = parse_args(['--workers', '8', '--rate-limit', '5', '--batch', '10',
                       '--max-pages', '2', '--no-progress'])

    cfg = apply_overrides(test_config, args)

    assert cfg.api.parallel_workers == 8
    assert cfg.api.tmdb_rate_limit == 5.0
    assert cfg.processing.batch_size == 10
    assert cfg.processing.max_pages == 2
    assert cfg.processing.show_progress is False
    assert test_config.api.parallel_workers == 4


def test_no_overrides_keeps_config(test_config: Config) -> None:
    cfg = apply_overrides(test_config, parse_args([]))
    assert cfg.model_dump() == test_config.model_dump()


def test_main_rejects_invalid_option(monkeypatch, test_config: Config, restore_logging) -> None:
    monkeypatch.setattr(sync_movies, 'config', test_config)
    assert sync_movies.main(['--batch', '0']) == 1


def test_main_requires_token(monkeypatch, test_env: dict, restore_logging) -> None:
    env = {key: value for key, value in test_env.items() if key != "TMDB_READ_TOKEN"}
    monkeypatch.setattr(sync_movies, 'config', load_config(env))

    assert sync_movies.main([]) == 1


def test_main_runs_full_sync(monkeypatch, test_config: Config, tmdb: FakeSession, restore_logging) -> None:
    monkeypatch.setattr(sync_movies, 'config', test_config)
    monkeypatch.setattr(sync_movies, 'TMDBClient', functools.partial(TMDBClient, session=tmdb))

    assert sync_movies.main(['--create-tables', '--no-progress']) == 0

    engine = build_engine(test_config.database)
    try:
        assert _counts(engine) == EXPECTED_COUNTS
    finally:
        engine.dispose()


def test_main_completes_with_dropped_units(monkeypatch, test_config: Config, restore_logging) -> None:
    engine = build_engine(test_config.database)
    create_tables(engine)
    engine.dispose()
    monkeypatch.setattr(sync_movies, 'config', test_config)
    monkeypatch.setattr(sync_movies, 'TMDBClient', functools.partial(TMDBClient, session=FakeSession()))

    assert sync_movies.main(['--no-progress']) == 0
