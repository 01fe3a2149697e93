# PTE Intensive Management Configuration

import logging
import os
from datetime import timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).parent.absolute()

DEFAULT_SECRET_KEY = 'pte-intensive-secret-key-change-me'


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or DEFAULT_SECRET_KEY

    # Session Configuration
    PERMANENT_SESSION_LIFETIME = timedelta(hours=8)
    SESSION_COOKIE_SECURE = False  # Set to True in production with HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Scheduler Configuration
    CRON_SECRET = os.environ.get('CRON_SECRET')
    APP_BASE_URL = os.environ.get('APP_BASE_URL') or 'http://localhost:5000'
    SCHEDULER_TIMEOUT_SECONDS = 30

    # Email Configuration (SendGrid)
    SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY')
    SENDER_EMAIL = os.environ.get('SENDER_EMAIL')
    SENDER_NAME = os.environ.get('SENDER_NAME') or 'PTE Intensive Management'
    ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL')

    # Webhook Configuration
    WEBHOOK_TIMEOUT_SECONDS = 10
    LEADS_WEBHOOK_URL = os.environ.get('LEADS_WEBHOOK_URL')

    # Document Store Configuration (Firestore)
    FIREBASE_CREDENTIALS_JSON = os.environ.get('FIREBASE_CREDENTIALS_JSON')
    FIREBASE_CREDENTIALS_PATH = os.environ.get('FIREBASE_CREDENTIALS_PATH')
    FIREBASE_PROJECT_ID = os.environ.get('FIREBASE_PROJECT_ID')

    # Reminder Configuration
    BUSINESS_TIMEZONE = os.environ.get('BUSINESS_TIMEZONE') or 'Asia/Bangkok'
    OVERDUE_AFTER_DAYS = 14
    COURSE_END_WINDOW_MONTHS = 2

    # Access Control Configuration
    ACCESS_SIGNIN_PATH = '/auth/signin'
    ACCESS_ROLE_SECTIONS = {}  # extra role -> section prefix rules
    ACCESS_ALLOW_UNSET_ROLE = True
    ACCESS_RESTRICT_UNLISTED_ROLES = _env_flag('ACCESS_RESTRICT_UNLISTED_ROLES')

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'pte_center.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    # Development Configuration
    DEBUG = _env_flag('DEBUG')
    TESTING = False
    STRICT_CONFIG = False

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration"""
        app.config.from_object(cls)

        logging.basicConfig(
            level=getattr(logging, str(cls.LOG_LEVEL).upper(), logging.INFO),
            format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        )


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False

    # More verbose logging
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True

    SECRET_KEY = 'testing-secret-key'
    CRON_SECRET = 'testing-cron-secret'
    APP_BASE_URL = 'http://testserver'

    SENDGRID_API_KEY = 'SG.testing'
    SENDER_EMAIL = 'noreply@pte-intensive.test'
    ADMIN_EMAIL = 'admin@pte-intensive.test'
    LEADS_WEBHOOK_URL = 'https://discord.test/api/webhooks/leads'

    FIREBASE_CREDENTIALS_JSON = None
    FIREBASE_CREDENTIALS_PATH = None
    FIREBASE_PROJECT_ID = None

    BUSINESS_TIMEZONE = 'Asia/Bangkok'
    ACCESS_RESTRICT_UNLISTED_ROLES = False
    LOG_LEVEL = 'WARNING'


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False
    STRICT_CONFIG = True

    # Enhanced security for production
    SESSION_COOKIE_SECURE = True  # Requires HTTPS

    # Production logging
    LOG_LEVEL = 'WARNING'

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        # Setup file logging
        if not app.debug:
            cls.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                cls.LOG_FILE,
                maxBytes=cls.LOG_MAX_BYTES,
                backupCount=cls.LOG_BACKUP_COUNT
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)

            app.logger.setLevel(logging.INFO)
            app.logger.info('PTE Intensive Management startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration based on environment variable"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')
    return config.get(config_name, DevelopmentConfig)


# Validation functions
def validate_config(config_class):
    """
    Validate configuration settings.

    Returns:
        list: (is_fatal, message) pairs for every problem found
    """
    problems = []

    if config_class.SECRET_KEY == DEFAULT_SECRET_KEY:
        problems.append((config_class.STRICT_CONFIG, 'SECRET_KEY is using the built-in default'))

    # Email is checked again at send time; missing values only warn here
    for name in ('SENDGRID_API_KEY', 'SENDER_EMAIL', 'ADMIN_EMAIL'):
        if not getattr(config_class, name):
            problems.append((False, f"{name} is not set; email notifications will fail"))

    if not config_class.LEADS_WEBHOOK_URL:
        problems.append((False, 'LEADS_WEBHOOK_URL is not set; lead follow-up alerts will fail'))

    if not config_class.CRON_SECRET:
        problems.append((False, 'CRON_SECRET is not set; scheduled reminders cannot authenticate'))

    return problems


# Initialize configuration
def init_config(app, config_name=None):
    """Initialize application with configuration"""
    config_class = get_config(config_name)
    config_class.init_app(app)

    fatal = False
    for is_fatal, message in validate_config(config_class):
        if is_fatal:
            app.logger.error(f"Configuration error: {message}")
            fatal = True
        else:
            app.logger.warning(f"Configuration warning: {message}")

    if fatal:
        raise RuntimeError("Configuration validation failed")

    return config_class
