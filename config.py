"""
============================================================================
CINESYNC - Configuration Manager
============================================================================
This module loads and validates all configuration from .env file.
Provides type-safe access to settings throughout the sync job.

🔧 USAGE:
    from config import config

    # Access settings with autocomplete and type checking
    token = config.api.tmdb_read_token
    batch_size = config.processing.batch_size
    database_url = config.database.database_url

🔧 CUSTOMIZE:
    - Add new settings in the appropriate Config class section
    - Update validation logic in validators as needed
    - Modify default values to match your database and API quota

📝 FEATURES:
    - Automatic .env loading
    - Type validation with Pydantic
    - Helpful error messages for missing/invalid settings
    - Organized by functional area
    - PostgreSQL URL assembled from POSTGRES_* variables when needed
============================================================================
"""

import os
from pathlib import Path
from typing import Optional, Dict, Any
from urllib.parse import quote_plus
from pydantic import BaseModel, Field, field_validator, model_validator
from dotenv import load_dotenv
import sys


# ============================================================================
# FIND AND LOAD .env FILE
# ============================================================================
# This searches for .env file starting from current directory up to project root

def find_dotenv() -> Optional[Path]:
    """
    Find .env file by searching up the directory tree.

    Returns:
        Path to .env file if found, None otherwise
    """
    current = Path.cwd()

    # Search up to 5 levels up
    for _ in range(5):
        env_file = current / ".env"
        if env_file.exists():
            return env_file

        # Stop at root directory
        if current.parent == current:
            break

        current = current.parent

    return None


# Load environment variables
env_path = find_dotenv()
if env_path:
    load_dotenv(env_path)
    print(f"✅ Loaded environment from: {env_path}")
else:
    print("⚠️  No .env file found. Using environment variables or defaults.")


# ============================================================================
# API CONFIGURATION
# ============================================================================
# Settings for the TMDB API (authentication, rate limiting, concurrency)

class APIConfig(BaseModel):
    """
    TMDB authentication, rate limiting and fetch concurrency.

    🔧 CUSTOMIZE: Lower tmdb_rate_limit if TMDB starts answering 429
    """

    tmdb_read_token: str = Field(
        default="",
        description="TMDB Read Access Token (sent as Bearer token)"
    )
    tmdb_base_url: str = Field(
        default="https://api.themoviedb.org/3",
        description="TMDB API base URL"
    )
    tmdb_language: str = Field(
        default="en-US",
        description="Language requested for movie details"
    )
    tmdb_rate_limit: float = Field(
        default=40.0,
        gt=0.0,
        le=1000.0,
        description="TMDB requests per second, shared by every fetcher"
    )
    tmdb_burst: int = Field(
        default=1,
        ge=1,
        le=100,
        description="Requests admitted back-to-back before throttling applies"
    )
    rate_limit_max_wait: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Longest single limiter wait in seconds (unset = no bound)"
    )

    parallel_workers: int = Field(
        default=32,
        ge=1,
        le=256,
        description="Concurrent movie detail requests"
    )
    discovery_workers: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Concurrent change-list page requests"
    )
    timeout: int = Field(
        default=30,
        ge=5,
        le=300,
        description="Request timeout in seconds"
    )

    @field_validator('tmdb_read_token')
    @classmethod
    def validate_token_format(cls, v: str) -> str:
        """Warn when the token is still the .env.example placeholder."""
        if v and v.startswith('your_') and v.endswith('_here'):
            print("⚠️  TMDB_READ_TOKEN is placeholder value. Sync cannot run.")
        return v

    def has_tmdb(self) -> bool:
        """Check if TMDB API is configured."""
        return bool(self.tmdb_read_token and not self.tmdb_read_token.startswith('your_'))

    class Config:
        """Pydantic configuration."""
        extra = 'ignore'  # Ignore extra fields


# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================
# Settings for database connections (SQLite, PostgreSQL)

class DatabaseConfig(BaseModel):
    """
    Database connection and configuration.

    🔧 CUSTOMIZE: Point DATABASE_URL at PostgreSQL for production
    """

    database_url: str = Field(
        default="sqlite:///data/cinesync.db",
        description="Database connection URL"
    )

    echo: bool = Field(
        default=False,
        description="Echo SQL queries (useful for debugging)"
    )

    pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connection pool size (PostgreSQL only)"
    )

    max_overflow: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Max overflow connections (PostgreSQL only)"
    )

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite."""
        return self.database_url.startswith('sqlite')

    @property
    def is_postgresql(self) -> bool:
        """Check if using PostgreSQL."""
        return self.database_url.startswith('postgresql')

    @property
    def database_path(self) -> Optional[Path]:
        """Get database file path for SQLite."""
        if self.is_sqlite:
            # Extract path from sqlite:///path/to/db.db
            path_str = self.database_url.replace('sqlite:///', '')
            return Path(path_str)
        return None

    class Config:
        """Pydantic configuration."""
        extra = 'ignore'


def build_postgres_url(env: Dict[str, str]) -> Optional[str]:
    """
    Build a PostgreSQL URL from the POSTGRES_* variables.

    Args:
        env: Mapping of environment variables

    Returns:
        SQLAlchemy URL with sslmode=require, or None when POSTGRES_HOST is unset
    """
    host = env.get('POSTGRES_HOST')
    if not host:
        return None

    user = quote_plus(env.get('POSTGRES_USER', ''))
    password = quote_plus(env.get('POSTGRES_PASSWORD', ''))
    port = env.get('POSTGRES_PORT') or '5432'
    database = env.get('POSTGRES_DATABASE', '')
    credentials = f"{user}:{password}@" if password else (f"{user}@" if user else "")

    return f"postgresql+psycopg2://{credentials}{host}:{port}/{database}?sslmode=require"


# ============================================================================
# PATHS CONFIGURATION
# ============================================================================
# File and directory paths for data and logs

class PathsConfig(BaseModel):
    """
    Project directory structure.

    🔧 CUSTOMIZE: Adjust paths to match your preferred structure
    """

    data_dir: Path = Field(
        default=Path("./data"),
        description="Main data directory (SQLite database lives here)"
    )
    logs_dir: Path = Field(
        default=Path("./data/logs"),
        description="Application logs"
    )

    @model_validator(mode='after')
    def create_directories(self) -> 'PathsConfig':
        """Create directories if they don't exist."""
        for directory in (self.data_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

        return self

    class Config:
        """Pydantic configuration."""
        extra = 'ignore'


# ============================================================================
# PROCESSING CONFIGURATION
# ============================================================================
# Batch sizes and stream capacities for the ingestion pipeline

class ProcessingConfig(BaseModel):
    """
    Pipeline sizing.

    Stream capacities bound memory: a full stream blocks its producers until
    the matching writer drains it. Streams written in later stages keep
    filling while earlier stages run, so size them above the volume of one run.

    🔧 CUSTOMIZE: Raise capacities (ID_CAPACITY, PEOPLE_CAPACITY, ...) when
       syncing more than a few days of changes
    """

    batch_size: int = Field(
        default=500,
        ge=1,
        le=10000,
        description="Rows per committed batch"
    )
    max_pages: Optional[int] = Field(
        default=None,
        ge=1,
        description="Upper bound on change-list pages (unset = all pages)"
    )
    default_total_pages: int = Field(
        default=500,
        ge=1,
        description="Pages walked when change page 1 fails and total_pages is unknown"
    )
    show_progress: bool = Field(
        default=True,
        description="Show a tqdm progress bar per writer"
    )

    # Stream capacities
    id_capacity: int = Field(default=20_000, ge=1, description="Movie id stream")
    movie_capacity: int = Field(default=20_000, ge=1, description="Movie rows")
    people_capacity: int = Field(default=200_000, ge=1, description="Person rows")
    actor_capacity: int = Field(default=100_000, ge=1, description="Movie-actor rows")
    director_capacity: int = Field(default=100_000, ge=1, description="Movie-director rows")
    genre_capacity: int = Field(default=50_000, ge=1, description="Movie-genre rows")
    country_capacity: int = Field(default=100_000, ge=1, description="Movie-country rows")
    release_country_capacity: int = Field(
        default=1_000_000, ge=1, description="Release-country rows"
    )
    local_release_capacity: int = Field(
        default=1_000_000, ge=1, description="Local-release rows"
    )

    class Config:
        """Pydantic configuration."""
        extra = 'ignore'


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================
# Settings for application logging

class LoggingConfig(BaseModel):
    """
    Logging configuration.

    🔧 CUSTOMIZE: Adjust log levels and formats
    """

    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )
    log_file: Path = Field(
        default=Path("./data/logs/cinesync.log"),
        description="Log file path"
    )

    # Console logging
    console_output: bool = Field(
        default=True,
        description="Print logs to console"
    )

    # Log format
    log_format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log message format"
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log timestamp format"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        allowed = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got '{v}'")
        return v_upper

    class Config:
        """Pydantic configuration."""
        extra = 'ignore'


# ============================================================================
# MAIN CONFIGURATION
# ============================================================================
# Central configuration object combining all settings

class Config(BaseModel):
    """
    Main configuration class combining all settings.

    🔧 USAGE:
        from config import config

        # Access nested settings
        token = config.api.tmdb_read_token
        batch_size = config.processing.batch_size
    """

    # Configuration sections
    api: APIConfig
    database: DatabaseConfig
    paths: PathsConfig
    processing: ProcessingConfig
    logging: LoggingConfig

    # Project metadata
    project_name: str = Field(
        default="CineSync",
        description="Project name"
    )
    version: str = Field(
        default="0.1.0",
        description="Project version"
    )

    def print_summary(self):
        """
        Print configuration summary.

        🔧 USAGE: Call this to verify your configuration loaded correctly
            from config import config
            config.print_summary()
        """
        print("\n" + "="*70)
        print(f"🎬 {self.project_name} v{self.version} - Configuration Summary")
        print("="*70)

        print(f"\n📂 Data Directory: {self.paths.data_dir.absolute()}")

        print("\n🔑 TMDB:")
        print(f"  • Token: {'✅ Configured' if self.api.has_tmdb() else '❌ Missing'}")
        print(f"  • Rate: {self.api.tmdb_rate_limit:g} req/s (burst {self.api.tmdb_burst})")
        print(f"  • Workers: {self.api.parallel_workers} detail, "
              f"{self.api.discovery_workers} discovery")

        print("\n💾 Database:")
        print(f"  • Type: {'SQLite' if self.database.is_sqlite else 'PostgreSQL'}")
        print(f"  • URL: {self.database.database_url}")

        print("\n⚡ Processing:")
        print(f"  • Batch Size: {self.processing.batch_size}")
        print(f"  • Max Pages: {self.processing.max_pages or 'all'}")

        print("\n📝 Logging:")
        print(f"  • Level: {self.logging.log_level}")
        print(f"  • File: {self.logging.log_file.absolute()}")

        print("\n" + "="*70 + "\n")

    class Config:
        """Pydantic configuration."""
        extra = 'ignore'


# ============================================================================
# LOAD CONFIGURATION
# ============================================================================
# Load settings from environment variables

# Environment variable → ProcessingConfig stream capacity field
CAPACITY_VARIABLES = {
    'ID_CAPACITY': 'id_capacity',
    'MOVIE_CAPACITY': 'movie_capacity',
    'PEOPLE_CAPACITY': 'people_capacity',
    'ACTOR_CAPACITY': 'actor_capacity',
    'DIRECTOR_CAPACITY': 'director_capacity',
    'GENRE_CAPACITY': 'genre_capacity',
    'COUNTRY_CAPACITY': 'country_capacity',
    'RELEASE_COUNTRY_CAPACITY': 'release_country_capacity',
    'LOCAL_RELEASE_CAPACITY': 'local_release_capacity',
}


def load_config(env: Optional[Dict[str, str]] = None) -> Config:
    """
    Load configuration from environment variables.

    Args:
        env: Variables to read instead of os.environ (used by tests)

    Returns:
        Configured Config object

    Exits the process with status 1 when a value is invalid.
    """
    source = os.environ if env is None else env

    def get_env(key: str, default: Any = None) -> Any:
        """Get environment variable with fallback."""
        return source.get(key, default)

    def get_optional(key: str, cast) -> Any:
        """Get an optional numeric variable; empty or '0' means unset."""
        value = source.get(key)
        if value in (None, '', '0'):
            return None
        return cast(value)

    try:
        database_url = get_env('DATABASE_URL') or build_postgres_url(source) \
            or 'sqlite:///data/cinesync.db'

        # Unset capacities keep the ProcessingConfig defaults
        capacities = {
            field: int(get_env(key))
            for key, field in CAPACITY_VARIABLES.items()
            if get_env(key)
        }

        # Load each configuration section
        config_obj = Config(
            api=APIConfig(
                tmdb_read_token=get_env('TMDB_READ_TOKEN') or get_env('API_ACCESS_TOKEN', ''),
                tmdb_base_url=get_env('TMDB_BASE_URL', 'https://api.themoviedb.org/3'),
                tmdb_language=get_env('TMDB_LANGUAGE', 'en-US'),
                tmdb_rate_limit=float(get_env('TMDB_RATE_LIMIT', 40)),
                tmdb_burst=int(get_env('TMDB_BURST', 1)),
                rate_limit_max_wait=get_optional('RATE_LIMIT_MAX_WAIT', float),
                parallel_workers=int(get_env('PARALLEL_WORKERS', 32)),
                discovery_workers=int(get_env('DISCOVERY_WORKERS', 8)),
                timeout=int(get_env('REQUEST_TIMEOUT', 30)),
            ),
            database=DatabaseConfig(
                database_url=database_url,
                echo=get_env('DATABASE_ECHO', 'False').lower() == 'true',
            ),
            paths=PathsConfig(
                data_dir=Path(get_env('DATA_DIR', './data')),
                logs_dir=Path(get_env('LOGS_DIR', './data/logs')),
            ),
            processing=ProcessingConfig(
                batch_size=int(get_env('BATCH_SIZE', 500)),
                max_pages=get_optional('MAX_PAGES', int),
                default_total_pages=int(get_env('DEFAULT_TOTAL_PAGES', 500)),
                show_progress=get_env('SHOW_PROGRESS', 'True').lower() == 'true',
                **capacities,
            ),
            logging=LoggingConfig(
                log_level=get_env('LOG_LEVEL', 'INFO'),
                log_file=Path(get_env('LOG_FILE', './data/logs/cinesync.log')),
                console_output=get_env('LOG_CONSOLE', 'True').lower() == 'true',
            ),
        )

        return config_obj

    except Exception as e:
        print(f"❌ Error loading configuration: {e}")
        print("Please check your .env file and ensure all values are valid.")
        sys.exit(1)


# ============================================================================
# GLOBAL CONFIG INSTANCE
# ============================================================================
# Single configuration instance used throughout the application

# Load configuration on module import
config = load_config()

# Print summary if running as main script
if __name__ == "__main__":
    config.print_summary()
