"""
============================================================================
CINESYNC - TMDB Response Models
============================================================================
Pydantic models for the two TMDB v3 payloads the sync reads.

📊 ENDPOINTS:
    1. GET /movie/changes?page=N
       {"results": [{"id": 603, "adult": false}, ...],
        "page": 1, "total_pages": 12, "total_results": 1150}

    2. GET /movie/{id}?append_to_response=release_dates,credits
       Movie scalars plus:
         - genres:               [{"id": 28, "name": "Action"}]
         - production_countries: [{"iso_3166_1": "US", "name": "..."}]
         - credits.cast / credits.crew (crew filtered on job == "Director")
         - release_dates.results: [{"iso_3166_1": "US",
                                    "release_dates": [{"release_date": "...",
                                                       "type": 3, "note": ""}]}]

🔧 NORMALIZATION:
    - Empty release_date strings become None (never "")
    - Empty local release notes become None
    - Unknown fields are ignored
============================================================================
"""

from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator


def _empty_to_none(value: Any) -> Any:
    """TMDB sends "" for unknown dates and notes."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ============================================================================
# CHANGE LIST
# ============================================================================

class ChangeEntry(BaseModel):
    """One entry of the change list."""

    id: int
    adult: Optional[bool] = None

    class Config:
        extra = 'ignore'


class ChangesPage(BaseModel):
    """One page of /movie/changes."""

    results: List[ChangeEntry] = Field(default_factory=list)
    page: int = 1
    total_pages: int = 1
    total_results: int = 0

    class Config:
        extra = 'ignore'


# ============================================================================
# MOVIE DETAILS
# ============================================================================

class CastMember(BaseModel):
    id: int
    name: str = ""

    class Config:
        extra = 'ignore'


class CrewMember(BaseModel):
    id: int
    name: str = ""
    job: Optional[str] = None

    class Config:
        extra = 'ignore'


class Credits(BaseModel):
    cast: List[CastMember] = Field(default_factory=list)
    crew: List[CrewMember] = Field(default_factory=list)

    class Config:
        extra = 'ignore'


class Genre(BaseModel):
    id: int
    name: str = ""

    class Config:
        extra = 'ignore'


class ProductionCountry(BaseModel):
    iso_3166_1: str
    name: str = ""

    class Config:
        extra = 'ignore'


class LocalReleaseDate(BaseModel):
    """A single release event inside one country."""

    release_date: datetime
    type: int
    note: Optional[str] = None
    certification: Optional[str] = None

    @field_validator('note', mode='before')
    @classmethod
    def blank_note(cls, v: Any) -> Any:
        return _empty_to_none(v)

    class Config:
        extra = 'ignore'


class ReleaseCountry(BaseModel):
    """A country and its local release events, in document order."""

    iso_3166_1: str
    release_dates: List[LocalReleaseDate] = Field(default_factory=list)

    class Config:
        extra = 'ignore'


class ReleaseDates(BaseModel):
    results: List[ReleaseCountry] = Field(default_factory=list)

    class Config:
        extra = 'ignore'


class MovieDocument(BaseModel):
    """
    Full movie document as returned by /movie/{id} with credits and
    release dates appended.
    """

    id: int
    title: str = ""
    original_title: Optional[str] = None
    original_language: Optional[str] = None
    poster_path: Optional[str] = None
    popularity: float = 0.0
    runtime: Optional[int] = None
    budget: int = 0
    release_date: Optional[date] = None

    genres: List[Genre] = Field(default_factory=list)
    production_countries: List[ProductionCountry] = Field(default_factory=list)
    credits: Credits = Field(default_factory=Credits)
    release_dates: ReleaseDates = Field(default_factory=ReleaseDates)

    @field_validator('release_date', mode='before')
    @classmethod
    def blank_release_date(cls, v: Any) -> Any:
        return _empty_to_none(v)

    @property
    def cast(self) -> List[CastMember]:
        return self.credits.cast

    @property
    def directors(self) -> List[CrewMember]:
        """Crew members credited with the Director job."""
        return [member for member in self.credits.crew if member.job == 'Director']

    @property
    def release_countries(self) -> List[ReleaseCountry]:
        return self.release_dates.results

    class Config:
        extra = 'ignore'
