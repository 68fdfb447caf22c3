"""
============================================================================
CINESYNC - Relational Records and Movie Decomposition
============================================================================
Turns one parsed TMDB movie document into the flat rows written by the
batch writers. One record type per table; field names equal column names.

🎯 DECOMPOSITION (per movie):
    - 1 MovieRecord
    - per cast member:      PersonRecord + MovieActorRecord
    - per director:         PersonRecord + MovieDirectorRecord
    - per genre:            MovieGenreRecord
    - per production country: MovieCountryRecord
    - per release country i:  ReleaseCountryRecord(id = release_country_id(movie, i))
        - per local release n: LocalReleaseRecord(id = local_release_id(movie, i, n))

🔧 SYNTHETIC IDS:
    Release-country and local-release ids are packed from the movie id and
    the positions in the document, so every worker derives them on its own
    and re-syncing an unchanged movie produces the same ids:

        release_country_id(m, i) = (m * COUNTRY_SLOTS + i) * LOCAL_RELEASE_SLOTS
        local_release_id(m, i, n) = release_country_id(m, i) + n
============================================================================
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from cinesync.errors import DecompositionError
from cinesync.tmdb_schema import MovieDocument

# Slots reserved per movie for release countries, and per release country
# for local releases. Positions outside [0, slots) cannot be packed.
COUNTRY_SLOTS = 1000
LOCAL_RELEASE_SLOTS = 1000


# ============================================================================
# RECORD TYPES
# ============================================================================

@dataclass(frozen=True)
class MovieRecord:
    id: int
    title: str
    original_title: Optional[str]
    original_language: Optional[str]
    poster_path: Optional[str]
    popularity: float
    runtime: Optional[int]
    budget: int
    primary_release_date: Optional[date]


@dataclass(frozen=True)
class PersonRecord:
    id: int
    name: str


@dataclass(frozen=True)
class MovieActorRecord:
    movie_id: int
    actor_id: int


@dataclass(frozen=True)
class MovieDirectorRecord:
    movie_id: int
    director_id: int


@dataclass(frozen=True)
class MovieGenreRecord:
    movie_id: int
    genre_id: int


@dataclass(frozen=True)
class MovieCountryRecord:
    movie_id: int
    country_iso: str


@dataclass(frozen=True)
class ReleaseCountryRecord:
    id: int
    movie_id: int
    iso_3166_1: str


@dataclass(frozen=True)
class LocalReleaseRecord:
    id: int
    release_country_id: int
    release_date: datetime
    type: int
    note: Optional[str]


@dataclass
class MovieRecords:
    """Every row produced by one movie, grouped by target table."""

    movie: MovieRecord
    people: List[PersonRecord] = field(default_factory=list)
    actors: List[MovieActorRecord] = field(default_factory=list)
    directors: List[MovieDirectorRecord] = field(default_factory=list)
    genres: List[MovieGenreRecord] = field(default_factory=list)
    countries: List[MovieCountryRecord] = field(default_factory=list)
    release_countries: List[ReleaseCountryRecord] = field(default_factory=list)
    local_releases: List[LocalReleaseRecord] = field(default_factory=list)


# ============================================================================
# SYNTHETIC IDS
# ============================================================================

def release_country_id(movie_id: int, position: int) -> int:
    """
    Id of the release-country row at ``position`` in the movie's release list.

    Raises:
        DecompositionError: If position does not fit in COUNTRY_SLOTS
    """
    if not 0 <= position < COUNTRY_SLOTS:
        raise DecompositionError(
            f"movie {movie_id}: release country position {position} "
            f"outside [0, {COUNTRY_SLOTS})"
        )
    return (movie_id * COUNTRY_SLOTS + position) * LOCAL_RELEASE_SLOTS


def local_release_id(movie_id: int, country_position: int, release_position: int) -> int:
    """
    Id of a local release: its parent's id offset by its position.

    Raises:
        DecompositionError: If either position does not fit its slot range
    """
    if not 0 <= release_position < LOCAL_RELEASE_SLOTS:
        raise DecompositionError(
            f"movie {movie_id}: local release position {release_position} "
            f"outside [0, {LOCAL_RELEASE_SLOTS})"
        )
    return release_country_id(movie_id, country_position) + release_position


# ============================================================================
# DECOMPOSITION
# ============================================================================

def decompose_movie(document: MovieDocument) -> MovieRecords:
    """
    Split a movie document into one row set per table.

    Collections keep document order; each release country precedes its
    local releases.

    Args:
        document: Parsed /movie/{id} payload

    Returns:
        MovieRecords for this movie

    Raises:
        DecompositionError: If a synthetic id cannot be packed
    """
    movie_id = document.id

    records = MovieRecords(
        movie=MovieRecord(
            id=movie_id,
            title=document.title,
            original_title=document.original_title,
            original_language=document.original_language,
            poster_path=document.poster_path,
            popularity=document.popularity,
            runtime=document.runtime,
            budget=document.budget,
            primary_release_date=document.release_date,
        )
    )

    for actor in document.cast:
        records.people.append(PersonRecord(id=actor.id, name=actor.name))
        records.actors.append(MovieActorRecord(movie_id=movie_id, actor_id=actor.id))

    for director in document.directors:
        records.people.append(PersonRecord(id=director.id, name=director.name))
        records.directors.append(MovieDirectorRecord(movie_id=movie_id, director_id=director.id))

    for genre in document.genres:
        records.genres.append(MovieGenreRecord(movie_id=movie_id, genre_id=genre.id))

    for country in document.production_countries:
        records.countries.append(
            MovieCountryRecord(movie_id=movie_id, country_iso=country.iso_3166_1)
        )

    for i, release_country in enumerate(document.release_countries):
        parent_id = release_country_id(movie_id, i)
        records.release_countries.append(
            ReleaseCountryRecord(id=parent_id, movie_id=movie_id, iso_3166_1=release_country.iso_3166_1)
        )

        for n, local_release in enumerate(release_country.release_dates):
            records.local_releases.append(
                LocalReleaseRecord(
                    id=local_release_id(movie_id, i, n),
                    release_country_id=parent_id,
                    release_date=local_release.release_date,
                    type=local_release.type,
                    note=local_release.note,
                )
            )

    return records
