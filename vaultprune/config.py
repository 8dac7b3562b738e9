import os
import tempfile


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


class Config:
    """Base configuration"""

    # Flask
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'change-me'

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:////data/vaultprune.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Directories
    STAGING_DIR = os.environ.get('STAGING_DIR') or '/data/staging'
    LOG_DIR = os.environ.get('LOG_DIR') or '/data/logs'

    # Retention
    RETENTION_DRY_RUN = _env_flag('RETENTION_DRY_RUN')
    RETENTION_MAX_WORKERS = int(os.environ.get('RETENTION_MAX_WORKERS', 4))
    RETENTION_INCLUDE_HEURISTIC = _env_flag('RETENTION_INCLUDE_HEURISTIC')

    # Scheduler
    SCHEDULER_ENABLED = _env_flag('SCHEDULER_ENABLED', 'true')
    SCHEDULER_TIMEZONE = 'UTC'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = False

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(DATA_DIR, "vaultprune.db")}'
    STAGING_DIR = os.path.join(DATA_DIR, 'staging')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class TestingConfig(Config):
    """Test configuration: in-memory database, no scheduler"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SECRET_KEY = 'test-secret-key'
    SCHEDULER_ENABLED = False
    RETENTION_DRY_RUN = False
    RETENTION_MAX_WORKERS = 1
    LOG_DIR = None
    STAGING_DIR = os.path.join(tempfile.gettempdir(), 'vaultprune-test-staging')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}
