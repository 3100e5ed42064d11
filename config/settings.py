# config/settings.py
"""
Environment configurations loaded by the application factory
"""

import os
from pathlib import Path

from config.security import SecurityConfig

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class BaseConfig(SecurityConfig):
    """Settings common to every environment"""

    APP_NAME = 'SAP Technologies'
    VERSION = os.environ.get('APP_VERSION', '1.0.0')

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or f"sqlite:///{BASE_DIR / 'instance' / 'site.db'}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DB_POOL_SIZE = int(os.environ.get('DB_POOL_SIZE', 10))
    DB_MAX_OVERFLOW = int(os.environ.get('DB_MAX_OVERFLOW', 20))
    SLOW_QUERY_THRESHOLD = 1.0  # seconds
    SLOW_REQUEST_THRESHOLD = 1000  # milliseconds

    # Redis cache
    REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/1')
    CACHE_ENABLED = _env_flag('CACHE_ENABLED', True)
    CATEGORY_CACHE_TTL = 3600
    NOMINATION_CACHE_TTL = 300

    # Celery
    CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/2')
    CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', 'redis://localhost:6379/2')
    CELERY_TASK_ALWAYS_EAGER = False

    # Uploads
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER') or str(BASE_DIR / 'uploads')
    IMAGE_MAX_DIMENSION = 1600

    # Public site
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'https://www.sap-technologies.com')
    AWARD_YEAR = os.environ.get('AWARD_YEAR', '2025')
    AWARDS_NAME = 'SAPHANIOX AWARDS'

    # Outgoing mail
    SMTP_HOST = os.environ.get('SMTP_HOST', 'smtp.gmail.com')
    SMTP_PORT = int(os.environ.get('SMTP_PORT', 465))
    SMTP_USER = os.environ.get('SMTP_USER') or os.environ.get('GMAIL_USER')
    SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD') or os.environ.get('GMAIL_PASS')
    SMTP_TIMEOUT = 30
    MAIL_FROM = os.environ.get('MAIL_FROM') or SMTP_USER or 'noreply@sap-technologies.com'
    MAIL_FROM_NAME = 'SAP Technologies'
    MAIL_DOMAIN = os.environ.get('MAIL_DOMAIN', 'sap-technologies.com')
    NOTIFY_EMAIL = os.environ.get('NOTIFY_EMAIL') or MAIL_FROM
    MAIL_SUPPRESS_SEND = _env_flag('MAIL_SUPPRESS_SEND', False)
    MAIL_MAX_RETRIES = 3

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_TO_SYSLOG = _env_flag('LOG_TO_SYSLOG', False)
    SYSLOG_ADDRESS = os.environ.get('SYSLOG_ADDRESS', '/dev/log')
    LOG_FILE = os.environ.get('LOG_FILE')


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SESSION_COOKIE_SECURE = False
    WTF_CSRF_ENABLED = _env_flag('WTF_CSRF_ENABLED', False)
    RATELIMIT_STORAGE_URI = 'memory://'
    MAIL_SUPPRESS_SEND = _env_flag('MAIL_SUPPRESS_SEND', True)
    CELERY_TASK_ALWAYS_EAGER = _env_flag('CELERY_TASK_ALWAYS_EAGER', True)
    LOG_LEVEL = 'DEBUG'


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SESSION_COOKIE_SECURE = False
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'
    CACHE_ENABLED = False
    CELERY_TASK_ALWAYS_EAGER = True
    MAIL_SUPPRESS_SEND = True
    PASSWORD_HASH_ITERATIONS = 1000
    NOTIFY_EMAIL = 'admin@sap-technologies.com'
    ENCRYPTION_KEY = 'testing-encryption-key'
    SECRET_KEY = 'testing-secret-key'
    LOG_LEVEL = 'WARNING'


class ProductionConfig(BaseConfig):
    LOG_TO_SYSLOG = _env_flag('LOG_TO_SYSLOG', True)


CONFIG_BY_NAME = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
