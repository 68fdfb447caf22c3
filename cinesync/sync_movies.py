"""
============================================================================
CINESYNC - TMDB Change Sync
============================================================================
Pulls every recently changed movie from TMDB and writes it, decomposed
into relational rows, to the configured database. Runs once and exits.

🎯 PIPELINE:
    discovery (change pages) ──ids──▶ detail fetch ──8 streams──▶ writers

    All TMDB requests share one rate limiter. Writers run in stages so
    parent rows are committed before the rows that reference them:

        1. movie, cinema_person
        2. movie_actor, movie_director
        3. movie_genre, movie_country, release_country
        4. local_release

    Every writer of a stage must have flushed its last batch before the
    next stage starts.

🔧 USAGE:
    python -m cinesync.sync_movies [--create-tables] [--max-pages N]

    Options:
        --create-tables   Create missing tables before syncing
        --max-pages N     Fetch at most N change pages
        --batch SIZE      Rows per committed batch (default: 500)
        --workers N       Concurrent movie detail requests (default: 32)
        --rate-limit N    TMDB requests per second (default: 40)
        --no-progress     Hide per-table progress bars

⚠️  FAILURES:
    A failed page, movie or batch is logged, counted and skipped; nothing
    is retried. The report printed at the end lists what was dropped.
============================================================================
"""

import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
import argparse
import logging
from concurrent.futures import ThreadPoolExecutor

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import Table
from sqlalchemy.engine import Engine

from config import Config, config
from cinesync.batch_writer import BatchWriter, ConflictPolicy, dialect_insert
from cinesync.details import DetailDriver
from cinesync.discovery import DiscoveryDriver
from cinesync.errors import UnsupportedDatabaseError
from cinesync.log_setup import setup_logging
from cinesync.models import (
    CinemaPerson, LocalRelease, Movie, MovieActor, MovieCountry,
    MovieDirector, MovieGenre, ReleaseCountry,
    build_engine, build_session_factory, create_tables,
)
from cinesync.rate_limiter import RateLimiter
from cinesync.report import SyncReport
from cinesync.streams import MovieStreams, RecordStream
from cinesync.tmdb_client import TMDBClient

logger = logging.getLogger(__name__)


# ============================================================================
# WRITER LAYOUT
# ============================================================================

# Stream name → (target table, conflict policy)
WRITER_TABLES: Dict[str, Tuple[Table, ConflictPolicy]] = {
    'movies': (Movie.__table__, ConflictPolicy.UPSERT),
    'people': (CinemaPerson.__table__, ConflictPolicy.INSERT_IF_ABSENT),
    'actors': (MovieActor.__table__, ConflictPolicy.INSERT_IF_ABSENT),
    'directors': (MovieDirector.__table__, ConflictPolicy.INSERT_IF_ABSENT),
    'genres': (MovieGenre.__table__, ConflictPolicy.INSERT_IF_ABSENT),
    'countries': (MovieCountry.__table__, ConflictPolicy.INSERT_IF_ABSENT),
    'release_countries': (ReleaseCountry.__table__, ConflictPolicy.INSERT_IF_ABSENT),
    'local_releases': (LocalRelease.__table__, ConflictPolicy.INSERT_IF_ABSENT),
}

# Parents before children; one full join per stage
WRITE_STAGES: Tuple[Tuple[str, ...], ...] = (
    ('movies', 'people'),
    ('actors', 'directors'),
    ('genres', 'countries', 'release_countries'),
    ('local_releases',),
)


def build_writers(
    streams: MovieStreams,
    engine: Engine,
    batch_size: int,
    report: SyncReport,
    show_progress: bool = False,
) -> Dict[str, BatchWriter]:
    """One BatchWriter per typed stream."""
    session_factory = build_session_factory(engine)
    writers = {}
    for name, (table, policy) in WRITER_TABLES.items():
        writers[name] = BatchWriter(
            name=name,
            stream=streams[name],
            table=table,
            policy=policy,
            session_factory=session_factory,
            batch_size=batch_size,
            report=report,
            show_progress=show_progress,
        )
    return writers


def run_stage(writers: Sequence[BatchWriter]) -> None:
    """Run the writers of one stage concurrently and wait for all of them."""
    with ThreadPoolExecutor(max_workers=len(writers), thread_name_prefix='writer') as pool:
        futures = [pool.submit(writer.run) for writer in writers]
        for future in futures:
            future.result()


# ============================================================================
# SYNC
# ============================================================================

def run_sync(
    cfg: Config,
    client: Optional[TMDBClient] = None,
    engine: Optional[Engine] = None,
    show_progress: Optional[bool] = None,
) -> SyncReport:
    """
    Run one full sync.

    Args:
        cfg: Loaded configuration
        client: TMDB client to use (built from cfg.api when omitted)
        engine: Database engine (built from cfg.database when omitted)
        show_progress: Override cfg.processing.show_progress

    Returns:
        The run report

    Raises:
        UnsupportedDatabaseError: If the engine's dialect is not SQLite or PostgreSQL
    """
    report = SyncReport()
    processing = cfg.processing

    if engine is None:
        engine = build_engine(cfg.database)
    dialect_insert(engine.dialect.name)

    owns_client = client is None
    if owns_client:
        limiter = RateLimiter(cfg.api.tmdb_rate_limit, burst=cfg.api.tmdb_burst)
        client = TMDBClient(
            cfg.api.tmdb_read_token,
            limiter,
            base_url=cfg.api.tmdb_base_url,
            language=cfg.api.tmdb_language,
            timeout=cfg.api.timeout,
            report=report,
            max_wait=cfg.api.rate_limit_max_wait,
        )
    elif client.report is None:
        client.report = report

    if show_progress is None:
        show_progress = processing.show_progress

    id_stream = RecordStream('movie_ids', processing.id_capacity)
    streams = MovieStreams.from_config(processing)

    discovery = DiscoveryDriver(
        client, id_stream, report,
        max_workers=cfg.api.discovery_workers,
        max_pages=processing.max_pages,
        default_total_pages=processing.default_total_pages,
    )
    details = DetailDriver(client, id_stream, streams, report, max_workers=cfg.api.parallel_workers)
    writers = build_writers(streams, engine, processing.batch_size, report, show_progress)

    try:
        print("\n🔍 Fetching change page 1...")
        total_pages = discovery.fetch_first_page()
        print(f"   📄 Change pages to fetch: {total_pages:,}")

        background = [discovery.start(total_pages), details.start()]

        for i, stage in enumerate(WRITE_STAGES, 1):
            print(f"\n{'='*70}")
            print(f"[{i}/{len(WRITE_STAGES)}] WRITING {', '.join(WRITER_TABLES[name][0].name for name in stage)}")
            print(f"{'='*70}")
            run_stage([writers[name] for name in stage])

        for thread in background:
            thread.join()
    finally:
        if owns_client:
            client.close()

    report.finish()
    logger.info("Sync finished: %d movies written, %d units dropped",
                report.movies_fetched, report.dropped_units)
    return report


# ============================================================================
# COMMAND-LINE INTERFACE
# ============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Sync recently changed TMDB movies into the database',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--create-tables',
        action='store_true',
        help='Create missing tables before syncing'
    )

    parser.add_argument(
        '--max-pages',
        type=int,
        help='Fetch at most N change pages'
    )

    parser.add_argument(
        '--batch',
        type=int,
        help='Rows per committed batch (default: BATCH_SIZE or 500)'
    )

    parser.add_argument(
        '--workers',
        type=int,
        help='Concurrent movie detail requests (default: PARALLEL_WORKERS or 32)'
    )

    parser.add_argument(
        '--rate-limit',
        type=float,
        help='TMDB requests per second (default: TMDB_RATE_LIMIT or 40)'
    )

    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Hide per-table progress bars'
    )

    return parser.parse_args(argv)


def apply_overrides(cfg: Config, args: argparse.Namespace) -> Config:
    """Return a copy of cfg with command-line overrides applied (and validated)."""
    api = cfg.api.model_dump()
    processing = cfg.processing.model_dump()

    if args.workers is not None:
        api['parallel_workers'] = args.workers
    if args.rate_limit is not None:
        api['tmdb_rate_limit'] = args.rate_limit
    if args.batch is not None:
        processing['batch_size'] = args.batch
    if args.max_pages is not None:
        processing['max_pages'] = args.max_pages
    if args.no_progress:
        processing['show_progress'] = False

    return cfg.model_copy(update={
        'api': type(cfg.api).model_validate(api),
        'processing': type(cfg.processing).model_validate(processing),
    })


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        cfg = apply_overrides(config, args)
    except ValueError as e:
        print(f"❌ Invalid option: {e}")
        return 1

    setup_logging(cfg.logging)

    print("\n" + "="*70)
    print("🎬 CINESYNC - TMDB Change Sync")
    print("="*70)
    print(f"📅 Started: {datetime.now().strftime('%H:%M:%S')}")
    print(f"💾 Database: {cfg.database.database_url}")
    print(f"📦 Batch size: {cfg.processing.batch_size:,} rows")
    print(f"⏱️  Rate limit: {cfg.api.tmdb_rate_limit:g} requests/second")

    if not cfg.api.has_tmdb():
        print("\n❌ TMDB read token missing!")
        print("Set TMDB_READ_TOKEN (or API_ACCESS_TOKEN) in your .env file.")
        return 1

    engine = build_engine(cfg.database)
    try:
        if args.create_tables:
            create_tables(engine)
            print("   ✅ Created missing tables")

        report = run_sync(cfg, engine=engine)
    except UnsupportedDatabaseError as e:
        print(f"\n❌ {e}")
        return 1
    finally:
        engine.dispose()

    print(f"\n{report.summary()}")

    print("\n" + "="*70)
    if report.has_failures:
        print("⚠️  SYNC COMPLETE WITH DROPPED UNITS (see log for details)")
    else:
        print("✅ SYNC COMPLETE!")
    print("="*70)
    print(f"\n📅 Finished: {datetime.now().strftime('%H:%M:%S')}")
    print("="*70 + "\n")

    return 0


if __name__ == "__main__":
    sys.exit(main())
