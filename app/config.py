"""
Content Operations Dashboard
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'content_ops_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _int_env(name, default):
    return int(os.getenv(name, str(default)))


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,   # recycle connections every 5 min
        "pool_timeout": 20,    # wait max 20s for a connection from pool
    }

    # Redis (cluster-preview cache, rate-limit storage)
    REDIS_URL = os.getenv("REDIS_URL", "")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # AI collaborator: "anthropic" or "local"
    AI_PROVIDER = os.getenv("AI_PROVIDER", "anthropic")
    ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
    CLUSTER_MODEL = os.getenv("CLUSTER_MODEL", "claude-3-5-haiku-latest")
    CLUSTER_CACHE_TTL = _int_env("CLUSTER_CACHE_TTL", 300)

    # Topic generation
    TOPIC_TIME_WINDOW_DAYS = _int_env("TOPIC_TIME_WINDOW_DAYS", 7)
    TOPIC_MAX_PROPOSALS = _int_env("TOPIC_MAX_PROPOSALS", 5)
    TOPIC_STORY_LIMIT = _int_env("TOPIC_STORY_LIMIT", 50)

    # Dashboards
    UPCOMING_MILESTONE_DAYS = _int_env("UPCOMING_MILESTONE_DAYS", 7)


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    REDIS_URL = ""
    AI_PROVIDER = "local"
    ANTHROPIC_API_KEY = None


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    # Override engine options with PostgreSQL statement timeout
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
