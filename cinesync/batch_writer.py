"""
============================================================================
CINESYNC - Batched, Conflict-Resolving Writers
============================================================================
One BatchWriter drains one typed stream into one table.

🎯 BEHAVIOR:
    - Rows are buffered until batch_size, then committed as one transaction
    - When the stream closes, the remaining partial batch is committed
    - A failed commit is rolled back, logged and counted; the writer moves
      on to the next batch (no retry)

🔧 CONFLICT POLICIES:
    UPSERT            INSERT ... ON CONFLICT (pk) DO UPDATE SET <all columns>
                      (movie rows: a re-sync overwrites the stored row)
    INSERT_IF_ABSENT  INSERT ... ON CONFLICT DO NOTHING
                      (people, associations, releases: duplicates are skipped)

Supported dialects: SQLite and PostgreSQL.
============================================================================
"""

import logging
from dataclasses import asdict
from enum import Enum
from typing import Any, Dict, List

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from tqdm import tqdm

from cinesync.errors import UnsupportedDatabaseError
from cinesync.report import SyncReport
from cinesync.streams import RecordStream

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    'sqlite': sqlite.insert,
    'postgresql': postgresql.insert,
}


class ConflictPolicy(str, Enum):
    UPSERT = 'upsert'
    INSERT_IF_ABSENT = 'insert_if_absent'


def dialect_insert(dialect_name: str):
    """
    Return the dialect's insert() construct that supports ON CONFLICT.

    Raises:
        UnsupportedDatabaseError: For dialects other than SQLite and PostgreSQL
    """
    try:
        return _DIALECT_INSERTS[dialect_name]
    except KeyError:
        raise UnsupportedDatabaseError(
            f"database dialect '{dialect_name}' is not supported "
            f"(expected one of: {', '.join(sorted(_DIALECT_INSERTS))})"
        ) from None


def build_statement(table: Table, rows: List[Dict[str, Any]], policy: ConflictPolicy, dialect_name: str):
    """
    Build the conflict-resolving multi-row INSERT for one batch.

    For UPSERT, rows sharing a primary key are collapsed to the last one,
    since PostgreSQL refuses to update the same row twice in one statement.
    """
    insert = dialect_insert(dialect_name)
    key_columns = [column.name for column in table.primary_key.columns]

    if policy is ConflictPolicy.UPSERT:
        unique_rows = {tuple(row[name] for name in key_columns): row for row in rows}
        stmt = insert(table).values(list(unique_rows.values()))
        update_columns = {
            column.name: stmt.excluded[column.name]
            for column in table.columns
            if not column.primary_key
        }
        return stmt.on_conflict_do_update(index_elements=key_columns, set_=update_columns)

    stmt = insert(table).values(rows)
    return stmt.on_conflict_do_nothing(index_elements=key_columns)


class BatchWriter:
    """Drains one RecordStream into one table in fixed-size batches."""

    def __init__(
        self,
        name: str,
        stream: RecordStream,
        table: Table,
        policy: ConflictPolicy,
        session_factory: sessionmaker,
        batch_size: int,
        report: SyncReport,
        show_progress: bool = False,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.name = name
        self.stream = stream
        self.table = table
        self.policy = policy
        self.session_factory = session_factory
        self.batch_size = batch_size
        self.report = report
        self.show_progress = show_progress

    def run(self) -> None:
        """Write every record of the stream; returns after the final flush."""
        batch: List[Dict[str, Any]] = []

        with tqdm(desc=f"   {self.table.name}", unit=" rows",
                  disable=not self.show_progress, leave=True) as pbar:
            for record in self.stream:
                batch.append(asdict(record))

                if len(batch) >= self.batch_size:
                    self.commit_batch(batch)
                    pbar.update(len(batch))
                    batch = []

            if batch:
                self.commit_batch(batch, final=True)
                pbar.update(len(batch))

    def commit_batch(self, rows: List[Dict[str, Any]], final: bool = False) -> bool:
        """
        Commit one batch in its own transaction.

        Returns:
            True if committed, False if the batch was rolled back and dropped
        """
        session: Session = self.session_factory()
        try:
            stmt = build_statement(self.table, rows, self.policy, session.get_bind().dialect.name)
            session.execute(stmt)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Error writing %sbatch of %d rows to %s: %s",
                         "final " if final else "", len(rows), self.table.name, e)
            self.report.record_batch_failed(self.table.name, len(rows))
            return False
        finally:
            session.close()

        self.report.record_batch(self.table.name, len(rows))
        return True
