"""
============================================================================
CINESYNC - Run Report
============================================================================
Counters for every unit of work the sync processes or drops.

Failures never stop the run: a failed page, movie or batch is logged where
it happens and counted here, and the totals are printed at the end so
partial data loss is visible without reading the log.
============================================================================
"""

import threading
from collections import defaultdict
from datetime import datetime
from typing import Dict, List


class SyncReport:
    """Thread-safe run counters shared by fetchers and writers."""

    def __init__(self):
        self._lock = threading.Lock()
        self.started_at = datetime.now()
        self.finished_at = None

        self.pages_fetched = 0
        self.pages_dropped = 0
        self.ids_discovered = 0
        self.adult_ids_skipped = 0
        self.movies_fetched = 0
        self.movies_dropped = 0
        self.rate_limit_failures = 0

        self.batches_committed: Dict[str, int] = defaultdict(int)
        self.batches_failed: Dict[str, int] = defaultdict(int)
        self.rows_committed: Dict[str, int] = defaultdict(int)
        self.rows_dropped: Dict[str, int] = defaultdict(int)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_page(self, emitted: int, skipped_adult: int = 0) -> None:
        with self._lock:
            self.pages_fetched += 1
            self.ids_discovered += emitted
            self.adult_ids_skipped += skipped_adult

    def record_page_dropped(self) -> None:
        with self._lock:
            self.pages_dropped += 1

    def record_movie(self) -> None:
        with self._lock:
            self.movies_fetched += 1

    def record_movie_dropped(self) -> None:
        with self._lock:
            self.movies_dropped += 1

    def record_rate_limit_failure(self) -> None:
        with self._lock:
            self.rate_limit_failures += 1

    def record_batch(self, table: str, rows: int) -> None:
        with self._lock:
            self.batches_committed[table] += 1
            self.rows_committed[table] += rows

    def record_batch_failed(self, table: str, rows: int) -> None:
        with self._lock:
            self.batches_failed[table] += 1
            self.rows_dropped[table] += rows

    def finish(self) -> None:
        self.finished_at = datetime.now()

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    @property
    def failed_batches(self) -> int:
        return sum(self.batches_failed.values())

    @property
    def dropped_units(self) -> int:
        """Pages, movies and batches that were given up on."""
        return self.pages_dropped + self.movies_dropped + self.failed_batches

    @property
    def has_failures(self) -> bool:
        return self.dropped_units > 0

    def summary(self) -> str:
        """Render the report as text."""
        report: List[str] = []
        report.append("="*70)
        report.append("SYNC REPORT")
        report.append("="*70)
        report.append(f"\nStarted:  {self.started_at.strftime('%Y-%m-%d %H:%M:%S')}")
        if self.finished_at:
            elapsed = (self.finished_at - self.started_at).total_seconds()
            report.append(f"Finished: {self.finished_at.strftime('%Y-%m-%d %H:%M:%S')} ({elapsed/60:.1f} minutes)")

        report.append(f"\n{'='*70}")
        report.append("FETCH")
        report.append(f"{'='*70}")
        report.append(f"Change pages fetched: {self.pages_fetched:,}")
        report.append(f"Change pages dropped: {self.pages_dropped:,}")
        report.append(f"Movie ids discovered: {self.ids_discovered:,} (adult skipped: {self.adult_ids_skipped:,})")
        report.append(f"Movies fetched:       {self.movies_fetched:,}")
        report.append(f"Movies dropped:       {self.movies_dropped:,}")
        if self.rate_limit_failures:
            report.append(f"Rate limiter failures: {self.rate_limit_failures:,}")

        report.append(f"\n{'='*70}")
        report.append("WRITE")
        report.append(f"{'='*70}")
        tables = sorted(set(self.batches_committed) | set(self.batches_failed))
        if not tables:
            report.append("No rows written")
        for table in tables:
            line = (f"  • {table}: {self.rows_committed[table]:,} rows in "
                    f"{self.batches_committed[table]:,} batches")
            if self.batches_failed[table]:
                line += (f" - {self.batches_failed[table]:,} batches failed "
                         f"({self.rows_dropped[table]:,} rows dropped)")
            report.append(line)

        report.append(f"\nDropped units (pages + movies + batches): {self.dropped_units:,}")

        return "\n".join(report)
