"""
Configuration management for the Sejenak loyalty engine.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _database_url(default: str) -> str:
    url = os.getenv('DATABASE_URL', default)
    if url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        url = url.replace('postgres://', 'postgresql://', 1)
    return url


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # SendGrid
    SENDGRID_API_KEY = os.getenv('SENDGRID_API_KEY', '')
    SENDGRID_SENDER_EMAIL = os.getenv('SENDGRID_SENDER_EMAIL', 'noreply@sejenak.com')
    EMAIL_BATCH_SIZE = 1000

    # Error reporting is off unless a DSN is set
    SENTRY_DSN = os.getenv('SENTRY_DSN', '')
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv('SENTRY_TRACES_SAMPLE_RATE', '0'))

    # Storage reads are paged so large tables never load in one query
    STORAGE_PAGE_SIZE = int(os.getenv('STORAGE_PAGE_SIZE', '1000'))

    # Loyalty defaults
    TIER_ORDER = ('Grace', 'Signature', 'Elite')
    TREND_MIN_BUCKETS = 6
    TREND_MAX_BUCKETS = 12
    ALERT_LIMIT = 5
    RESET_CONFIRMATION = 'RESET'

    # Legacy tier names folded into the current ladder for reporting
    LEGACY_TIER_ALIASES = {
        'bliss': 'Grace',
        'silver': 'Signature',
        'vip': 'Elite',
        'gold': 'Elite',
        'platinum': 'Elite',
    }


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url('sqlite:///sejenak_dev.db')


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _database_url('')

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,
    }

    @classmethod
    def validate(cls) -> None:
        """
        Check production settings before the app starts serving.

        Raises:
            RuntimeError: If SECRET_KEY or DATABASE_URL is unusable
        """
        secret_key = os.getenv('SECRET_KEY', '')
        if not secret_key:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY environment variable is not set!\n"
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )
        if len(secret_key) < 32:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY is too short (minimum 32 characters required)!"
            )
        if not cls.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("CRITICAL: DATABASE_URL environment variable is not set!")


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SENDGRID_API_KEY = 'SG.test-key'
    STORAGE_PAGE_SIZE = 2
    SENTRY_DSN = ''


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate()
