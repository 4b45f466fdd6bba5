"""Flask app settings"""
import os
from dotenv import load_dotenv

# Load .env
load_dotenv()


def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base settings"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key'
    DB_HOST = os.environ.get('DB_HOST', 'localhost')
    DB_PORT = int(os.environ.get('DB_PORT', 3306))
    DB_USER = os.environ.get('DB_USER', 'root')
    DB_PASSWORD = os.environ.get('DB_PASSWORD', '')
    DB_NAME = os.environ.get('DB_NAME', 'gymdb')
    DB_POOL_SIZE = int(os.environ.get('DB_POOL_SIZE', 10))
    FLASK_ENV = os.environ.get('FLASK_ENV', 'production')
    DEBUG = (FLASK_ENV == 'development')
    TESTING = False

    # Bearer tokens issued by the identity provider (seconds)
    AUTH_TOKEN_MAX_AGE = int(os.environ.get('AUTH_TOKEN_MAX_AGE', 12 * 60 * 60))

    # Booking rules
    CREDIT_PRECHECK_ENABLED = _env_flag('CREDIT_PRECHECK_ENABLED', True)
    ENFORCE_CREDITS_IN_TRANSACTION = _env_flag('ENFORCE_CREDITS_IN_TRANSACTION', True)
    DEFAULT_CLASS_DURATION = int(os.environ.get('DEFAULT_CLASS_DURATION', 60))
    DASHBOARD_DAYS = int(os.environ.get('DASHBOARD_DAYS', 7))
    GENERATOR_MAX_DAYS = int(os.environ.get('GENERATOR_MAX_DAYS', 92))

    LOG_DIR = os.environ.get('LOG_DIR', 'logs')
    LOG_TO_FILE = _env_flag('LOG_TO_FILE', True)

    @staticmethod
    def init_app(app):
        """Hook run while the app is being created"""
        pass


class DevelopmentConfig(Config):
    """Development settings"""
    DEBUG = True


class ProductionConfig(Config):
    """Production settings"""
    DEBUG = False


class TestingConfig(Config):
    """Test settings (in-memory store injected by the test suite)"""
    TESTING = True
    DEBUG = False
    SECRET_KEY = 'test-secret-key'
    LOG_TO_FILE = False


# Settings per environment
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}
