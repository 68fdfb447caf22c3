"""Pytest configuration and shared fixtures."""

import os
import sys
import tempfile
from pathlib import Path

# Keep config's directory creation and log file out of the working tree.
# Must run before anything imports config.
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="cinesync-tests-"))
os.environ.setdefault("DATA_DIR", str(_TEST_ROOT / "data"))
os.environ.setdefault("LOGS_DIR", str(_TEST_ROOT / "logs"))
os.environ.setdefault("LOG_FILE", str(_TEST_ROOT / "logs" / "cinesync.log"))

project_root = Path(__file__).resolve().parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import pytest

from config import Config, DatabaseConfig, load_config
from cinesync.models import build_engine, create_tables
from cinesync.rate_limiter import RateLimiter
from cinesync.report import SyncReport
from cinesync.tmdb_client import TMDBClient
from tmdb_fakes import FakeSession


@pytest.fixture
def test_env(tmp_path: Path) -> dict:
    return {
        "TMDB_READ_TOKEN": "test-token",
        "DATABASE_URL": f"sqlite:///{tmp_path / 'cinesync.db'}",
        "DATA_DIR": str(tmp_path / "data"),
        "LOGS_DIR": str(tmp_path / "logs"),
        "LOG_FILE": str(tmp_path / "logs" / "cinesync.log"),
        "LOG_CONSOLE": "False",
        "SHOW_PROGRESS": "False",
        "TMDB_RATE_LIMIT": "1000",
        "PARALLEL_WORKERS": "4",
        "DISCOVERY_WORKERS": "2",
        "DEFAULT_TOTAL_PAGES": "3",
    }


@pytest.fixture
def test_config(test_env: dict) -> Config:
    return load_config(test_env)


@pytest.fixture
def engine(tmp_path: Path):
    db_engine = build_engine(DatabaseConfig(database_url=f"sqlite:///{tmp_path / 'writer.db'}"))
    create_tables(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def report() -> SyncReport:
    return SyncReport()


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(fake_session: FakeSession, report: SyncReport) -> TMDBClient:
    return TMDBClient(
        "test-token",
        RateLimiter(rate=10_000),
        session=fake_session,
        report=report,
    )


@pytest.fixture
def restore_logging():
    """Remove handlers installed by setup_logging after the test."""
    import logging

    root = logging.getLogger()
    level = root.level
    yield root
    for handler in list(root.handlers):
        if getattr(handler, '_cinesync', False):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
