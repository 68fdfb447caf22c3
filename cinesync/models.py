"""
============================================================================
CINESYNC - Database Schema
============================================================================
SQLAlchemy tables for the synced TMDB catalog and the engine factory.

📊 DATABASE TABLES (8 tables, one per record stream):
    1. movie            - Base movie rows (upserted)
    2. cinema_person    - Actors and directors (insert-if-absent)
    3. movie_actor      - movie ↔ actor
    4. movie_director   - movie ↔ director
    5. movie_genre      - movie ↔ TMDB genre id
    6. movie_country    - movie ↔ production country
    7. release_country  - one row per (movie, release country)
    8. local_release    - release events inside a release country

🔧 KEYS:
    - Association tables use the pair as primary key, so a re-run cannot
      create a second row for the same pair
    - release_country.id / local_release.id are synthetic ids computed at
      decomposition time (see cinesync.records)

⚠️  WRITE ORDER:
    Foreign keys are satisfied by the staged writer order in
    cinesync.sync_movies, not by deferred constraints. SQLite does not
    enforce them unless PRAGMA foreign_keys is on.
============================================================================
"""

from sqlalchemy import (
    BigInteger, Column, Date, DateTime, Float, ForeignKey, Index, Integer,
    String, Text, create_engine, event
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import DatabaseConfig

Base = declarative_base()


# ============================================================================
# TABLE DEFINITIONS
# ============================================================================

class Movie(Base):
    """
    Base movie information from /movie/{id}.

    🎯 CONFLICT POLICY: upsert - a later sync overwrites every column
    """
    __tablename__ = 'movie'

    id = Column(Integer, primary_key=True, autoincrement=False, comment='TMDB movie id')
    title = Column(String(500), nullable=False, comment='Title in the requested language')
    original_title = Column(String(500), nullable=True, comment='Title in the original language')
    original_language = Column(String(10), nullable=True, comment='ISO 639-1 code')
    poster_path = Column(String(200), nullable=True, comment='Relative TMDB image path')
    popularity = Column(Float, nullable=False, default=0.0, comment='TMDB popularity score')
    runtime = Column(Integer, nullable=True, comment='Duration in minutes')
    budget = Column(BigInteger, nullable=False, default=0, comment='Budget in USD')
    primary_release_date = Column(Date, nullable=True, comment='NULL when TMDB has no date')

    __table_args__ = (
        Index('idx_movie_release_date', 'primary_release_date'),
        Index('idx_movie_popularity', 'popularity'),
    )

    def __repr__(self):
        return f"<Movie(id={self.id}, title='{self.title}')>"


class CinemaPerson(Base):
    """
    Actors and directors referenced by any movie.

    🎯 CONFLICT POLICY: insert-if-absent - the first name seen is kept
    """
    __tablename__ = 'cinema_person'

    id = Column(Integer, primary_key=True, autoincrement=False, comment='TMDB person id')
    name = Column(String(300), nullable=False, comment='Display name')

    def __repr__(self):
        return f"<CinemaPerson(id={self.id}, name='{self.name}')>"


class MovieActor(Base):
    __tablename__ = 'movie_actor'

    movie_id = Column(Integer, ForeignKey('movie.id', ondelete='CASCADE'), primary_key=True)
    actor_id = Column(Integer, ForeignKey('cinema_person.id', ondelete='CASCADE'), primary_key=True)

    __table_args__ = (
        # Reverse lookup: all movies of an actor
        Index('idx_movie_actor_actor', 'actor_id'),
    )


class MovieDirector(Base):
    __tablename__ = 'movie_director'

    movie_id = Column(Integer, ForeignKey('movie.id', ondelete='CASCADE'), primary_key=True)
    director_id = Column(Integer, ForeignKey('cinema_person.id', ondelete='CASCADE'), primary_key=True)

    __table_args__ = (
        Index('idx_movie_director_director', 'director_id'),
    )


class MovieGenre(Base):
    __tablename__ = 'movie_genre'

    movie_id = Column(Integer, ForeignKey('movie.id', ondelete='CASCADE'), primary_key=True)
    genre_id = Column(Integer, primary_key=True, comment='TMDB genre id')

    __table_args__ = (
        Index('idx_movie_genre_genre', 'genre_id'),
    )


class MovieCountry(Base):
    __tablename__ = 'movie_country'

    movie_id = Column(Integer, ForeignKey('movie.id', ondelete='CASCADE'), primary_key=True)
    country_iso = Column(String(2), primary_key=True, comment='ISO 3166-1 alpha-2 production country')

    __table_args__ = (
        Index('idx_movie_country_iso', 'country_iso'),
    )


class ReleaseCountry(Base):
    """
    A country in which the movie was released.

    🔗 JOINS: local_release.release_country_id → id
    """
    __tablename__ = 'release_country'

    id = Column(BigInteger, primary_key=True, autoincrement=False, comment='Synthetic id, see records.release_country_id')
    movie_id = Column(Integer, ForeignKey('movie.id', ondelete='CASCADE'), nullable=False)
    iso_3166_1 = Column(String(2), nullable=False, comment='ISO 3166-1 alpha-2 country code')

    __table_args__ = (
        Index('idx_release_country_movie', 'movie_id'),
    )

    def __repr__(self):
        return f"<ReleaseCountry(id={self.id}, movie_id={self.movie_id}, iso='{self.iso_3166_1}')>"


class LocalRelease(Base):
    """
    One release event (premiere, theatrical, digital, ...) in one country.

    📊 type: 1 Premiere, 2 Theatrical (limited), 3 Theatrical,
             4 Digital, 5 Physical, 6 TV
    """
    __tablename__ = 'local_release'

    id = Column(BigInteger, primary_key=True, autoincrement=False, comment='Synthetic id, see records.local_release_id')
    release_country_id = Column(
        BigInteger,
        ForeignKey('release_country.id', ondelete='CASCADE'),
        nullable=False,
    )
    release_date = Column(DateTime(timezone=True), nullable=False)
    type = Column(Integer, nullable=False, comment='TMDB release type (1-6)')
    note = Column(Text, nullable=True, comment='NULL when TMDB sends an empty note')

    __table_args__ = (
        Index('idx_local_release_parent', 'release_country_id'),
        Index('idx_local_release_date', 'release_date'),
    )

    def __repr__(self):
        return f"<LocalRelease(id={self.id}, date={self.release_date}, type={self.type})>"


# ============================================================================
# DATABASE SETUP
# ============================================================================

def build_engine(database_config: DatabaseConfig) -> Engine:
    """
    Create the SQLAlchemy engine for the configured database.

    SQLite gets check_same_thread=False (writers run on worker threads)
    and the bulk-write pragmas below.
    """
    if database_config.is_sqlite:
        engine = create_engine(
            database_config.database_url,
            echo=database_config.echo,
            connect_args={
                'check_same_thread': False,
                'timeout': 30
            },
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            """
            🔧 PERFORMANCE TUNING:
            - journal_mode=WAL: concurrent writers in one stage do not block readers
            - synchronous=NORMAL: Balance between safety and speed
            - cache_size=10000: Use more memory for caching
            - temp_store=MEMORY: Keep temporary tables in memory
            """
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA cache_size=10000")
            cursor.execute("PRAGMA temp_store=MEMORY")
            cursor.close()

        return engine

    return create_engine(
        database_config.database_url,
        echo=database_config.echo,
        pool_size=database_config.pool_size,
        max_overflow=database_config.max_overflow,
        pool_pre_ping=True,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to ``engine``, one session per batch."""
    return sessionmaker(autoflush=False, bind=engine)


def create_tables(engine: Engine) -> None:
    """Create all tables and indexes that do not exist yet."""
    Base.metadata.create_all(engine)
