"""
============================================================================
CINESYNC - TMDB API Client
============================================================================
Thin requests-based client for the two endpoints the sync needs.

🔧 USAGE:
    limiter = RateLimiter(rate=40)
    client = TMDBClient(read_token, limiter)
    page = client.get_changes_page(1)
    movie = client.get_movie_details(603)

⚠️  ERRORS:
    - Transport errors, non-200 responses, non-JSON bodies → SourceFetchError
    - Payloads that don't match the response models → pydantic ValidationError
    Nothing is retried; callers drop the page or movie.
============================================================================
"""

import logging
from typing import Any, Dict, Optional

import requests

from cinesync.errors import SourceFetchError
from cinesync.rate_limiter import RateLimiter
from cinesync.report import SyncReport
from cinesync.tmdb_schema import ChangesPage, MovieDocument

logger = logging.getLogger(__name__)


class TMDBClient:
    """Client for The Movie Database API v3."""

    def __init__(
        self,
        read_token: str,
        limiter: RateLimiter,
        base_url: str = "https://api.themoviedb.org/3",
        language: str = "en-US",
        timeout: int = 30,
        session: Optional[requests.Session] = None,
        report: Optional[SyncReport] = None,
        max_wait: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.language = language
        self.timeout = timeout
        self.limiter = limiter
        self.report = report
        self.max_wait = max_wait
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {read_token}',
            'accept': 'application/json'
        })

    def _rate_limit_wait(self):
        """Wait for the shared limiter; a failed wait is logged and ignored."""
        if not self.limiter.acquire(self.max_wait) and self.report is not None:
            self.report.record_rate_limit_failure()

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Rate-limited GET returning the decoded JSON body."""
        self._rate_limit_wait()

        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise SourceFetchError(f"request to {url} failed: {e}", url=url) from e

        if response.status_code != 200:
            raise SourceFetchError(
                f"unexpected HTTP status code: {response.status_code}",
                url=url,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise SourceFetchError(f"invalid JSON from {url}: {e}", url=url,
                                   status_code=response.status_code) from e

    def get_changes_page(self, page: int) -> ChangesPage:
        """Fetch one page (1-based) of recently changed movies."""
        data = self._get("/movie/changes", {'page': page})
        return ChangesPage.model_validate(data)

    def get_movie_details(self, movie_id: int) -> MovieDocument:
        """Fetch a movie with credits and release dates appended."""
        data = self._get(
            f"/movie/{movie_id}",
            {
                'append_to_response': 'release_dates,credits',
                'language': self.language,
            }
        )
        return MovieDocument.model_validate(data)

    def close(self):
        self.session.close()
