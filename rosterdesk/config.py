"""
Configuration classes for RosterDesk.
Supports Development, Testing, and Production environments.
"""
import os


class Config:
    """Base configuration with default settings."""

    # Security - SECRET_KEY is validated in production config
    # WARNING: Never use the fallback key in production!
    _secret_key = os.environ.get('SECRET_KEY')
    if not _secret_key:
        import warnings
        warnings.warn(
            "SECRET_KEY not set in environment. Using insecure default key. "
            "Set SECRET_KEY environment variable for production!",
            UserWarning
        )
        _secret_key = 'dev-secret-key-change-in-production'
    SECRET_KEY = _secret_key

    # Database
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Engine options: PostgreSQL-specific settings only when not using SQLite
    SQLALCHEMY_ENGINE_OPTIONS = (
        {}
        if os.environ.get('DATABASE_URL', '').startswith('sqlite')
        else {
            'pool_pre_ping': True,
            'pool_recycle': 300,
        }
    )

    # Rate Limiting
    RATELIMIT_STORAGE_URL = 'memory://'
    RATELIMIT_DEFAULT = os.environ.get('RATE_LIMIT_GLOBAL', '100/minute')
    RATELIMIT_HEADERS_ENABLED = True

    # Caching
    CACHE_TYPE = 'SimpleCache'
    CACHE_DEFAULT_TIMEOUT = 300
    HOLIDAY_CACHE_TIMEOUT = int(os.environ.get('HOLIDAY_CACHE_TIMEOUT', 3600))

    # JWT (separate key for API tokens, falls back to SECRET_KEY if not set)
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY')

    # Sentry (error monitoring, production only)
    SENTRY_DSN = os.environ.get('SENTRY_DSN')

    # Coverage analysis
    COVERAGE_THRESHOLD = int(os.environ.get('COVERAGE_THRESHOLD', 90))
    COVERAGE_DEFAULT_MIN_STAFF = int(os.environ.get('COVERAGE_DEFAULT_MIN_STAFF', 1))

    # Bulk generation: skip | overwrite | prompt
    BULK_CONFLICT_POLICY = os.environ.get('BULK_CONFLICT_POLICY', 'skip')

    # Rotation drafts
    ROTATION_TIE_BREAK = os.environ.get('ROTATION_TIE_BREAK', 'sequential')  # sequential | random
    ROTATION_FINALIZE_POLICY = os.environ.get('ROTATION_FINALIZE_POLICY', 'skip')  # skip | fail


class DevelopmentConfig(Config):
    """Development configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///rosterdesk_dev.db'
    SQLALCHEMY_ENGINE_OPTIONS = {}

    SQLALCHEMY_ECHO = False


class TestingConfig(Config):
    """Testing configuration."""

    TESTING = True
    DEBUG = True

    # Use SQLite in-memory for tests (portable, no external DB required)
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL') or \
        'sqlite:///:memory:'

    # SQLite-specific settings
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Disable rate limiting in tests
    RATELIMIT_ENABLED = False

    CACHE_TYPE = 'NullCache'

    JWT_SECRET_KEY = 'test-jwt-secret'


class ProductionConfig(Config):
    """Production configuration."""

    DEBUG = False

    # SECRET_KEY and DATABASE_URL - validated in init_app (not at import time)
    SECRET_KEY = os.environ.get('SECRET_KEY')
    # SQLAlchemy 2.x requires the postgresql:// scheme
    _db_url = os.environ.get('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # Redis for rate limiting (REQUIRED in production for multi-worker consistency)
    RATELIMIT_STORAGE_URL = os.environ.get('REDIS_URL', 'memory://')

    _redis_url = os.environ.get('REDIS_URL')
    CACHE_TYPE = 'RedisCache' if _redis_url else 'SimpleCache'
    CACHE_REDIS_URL = _redis_url
    CACHE_DEFAULT_TIMEOUT = 600

    # Database connection pool (production-tuned)
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
        'pool_size': 10,
        'max_overflow': 20,
    }

    @classmethod
    def init_app(cls, app):
        """Production-specific initialization with validation."""
        import logging
        logger = logging.getLogger(__name__)

        if not cls.SECRET_KEY:
            raise ValueError("SECRET_KEY environment variable is required in production")
        if not cls.SQLALCHEMY_DATABASE_URI:
            raise ValueError("DATABASE_URL environment variable is required in production")

        if cls.BULK_CONFLICT_POLICY not in ('skip', 'overwrite', 'prompt'):
            raise ValueError(f"Invalid BULK_CONFLICT_POLICY: {cls.BULK_CONFLICT_POLICY}")
        if cls.ROTATION_FINALIZE_POLICY not in ('skip', 'fail'):
            raise ValueError(f"Invalid ROTATION_FINALIZE_POLICY: {cls.ROTATION_FINALIZE_POLICY}")

        if not os.environ.get('REDIS_URL'):
            logger.warning(
                "REDIS_URL not set; cache and rate limiter use in-memory storage. "
                "Set REDIS_URL for production multi-worker consistency."
            )

        if not os.environ.get('JWT_SECRET_KEY'):
            logger.warning(
                "JWT_SECRET_KEY not set; JWT tokens signed with SECRET_KEY. "
                "Set JWT_SECRET_KEY for key separation."
            )


# Configuration dictionary for easy access
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
