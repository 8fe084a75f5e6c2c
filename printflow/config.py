"""
PrintFlow Workflow Engine
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'printflow_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _weekdays(raw: str) -> tuple[int, ...]:
    """Parse "0,1,2,3,4" (0 = Monday) into a sorted tuple of ISO weekday numbers."""
    days = sorted({int(d) for d in raw.split(",") if d.strip()})
    if not days or any(d < 0 or d > 6 for d in days):
        raise RuntimeError(f"WORKING_WEEKDAYS must list weekday numbers 0-6, got {raw!r}")
    return tuple(days)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # Rate limiter storage (Redis in production, memory for dev)
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # ── Working calendar (Task Scheduler) ────────────────────────────────
    # man_hours are working hours; one working day absorbs this many of them.
    WORKING_HOURS_PER_DAY = float(os.getenv("WORKING_HOURS_PER_DAY", "8"))
    # ISO weekday numbers (0 = Monday) that count as working days.
    WORKING_WEEKDAYS = _weekdays(os.getenv("WORKING_WEEKDAYS", "0,1,2,3,4"))

    # ── Dependency graph ─────────────────────────────────────────────────
    # "warn": drop a declared dependency with no instance in the project and
    #         report it in the graph warnings.
    # "error": treat it as an IntegrityError.
    DEPENDENCY_MISSING_POLICY = os.getenv("DEPENDENCY_MISSING_POLICY", "warn")

    # Upper bound on ids accepted by one batch status transition
    MAX_BATCH_SIZE = int(os.getenv("MAX_BATCH_SIZE", "500"))


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )
    # Auth disabled by default in development for convenience
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "false")


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    # Auth disabled in test environment; tests set roles via X-User-Role
    API_AUTH_ENABLED = "false"
    RATELIMIT_ENABLED = False

    # Pinned so scheduling tests never depend on the host environment
    WORKING_HOURS_PER_DAY = 8.0
    WORKING_WEEKDAYS = (0, 1, 2, 3, 4)
    DEPENDENCY_MISSING_POLICY = "warn"


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
