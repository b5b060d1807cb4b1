import os
from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(RuntimeError):
    """Raised at startup when required settings are missing."""


REQUIRED_SETTINGS = (
    'LINE_CHANNEL_SECRET',
    'LINE_CHANNEL_TOKEN',
    'SQLALCHEMY_DATABASE_URI',
    'R2_ACCESS_KEY_ID',
    'R2_SECRET_ACCESS_KEY',
    'R2_BASE_ENDPOINT',
    'R2_BUCKET_NAME',
    'R2_PUBLIC_BASE_URL',
)


def normalize_database_url(url):
    """SQLAlchemy only accepts the postgresql:// scheme."""
    if url and url.startswith('postgres://'):
        return 'postgresql://' + url[len('postgres://'):]
    return url


def missing_settings(config) -> list:
    """Return the names of required settings that are unset or blank."""
    return [key for key in REQUIRED_SETTINGS if not config.get(key)]


class Config:
    # LINE Messaging API
    LINE_CHANNEL_SECRET = os.environ.get('LINE_CHANNEL_SECRET')
    LINE_CHANNEL_TOKEN = os.environ.get('LINE_CHANNEL_TOKEN')

    # Database Configuration (DB_CONN_STR kept for older deployments)
    SQLALCHEMY_DATABASE_URI = normalize_database_url(
        os.environ.get('DATABASE_URL') or os.environ.get('DB_CONN_STR')
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {'pool_pre_ping': True}

    # Object storage (Cloudflare R2, S3 compatible)
    R2_ACCESS_KEY_ID = os.environ.get('R2_ACCESS_KEY_ID')
    R2_SECRET_ACCESS_KEY = os.environ.get('R2_SECRET_ACCESS_KEY')
    R2_BASE_ENDPOINT = os.environ.get('R2_BASE_ENDPOINT')
    R2_BUCKET_NAME = os.environ.get('R2_BUCKET_NAME')
    R2_REGION = os.environ.get('R2_REGION', 'auto')
    # e.g. https://pub-<bucket id>.r2.dev
    R2_PUBLIC_BASE_URL = os.environ.get('R2_PUBLIC_BASE_URL')

    # Server
    PORT = int(os.environ.get('PORT', 8080))
    WAITRESS_THREADS = int(os.environ.get('WAITRESS_THREADS', 8))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
    TEXT_FETCH_TIMEOUT = float(os.environ.get('TEXT_FETCH_TIMEOUT', 10))

    # Rate limiting for the webhook endpoint. CALLBACK_RATE_LIMIT is a global
    # cap on /callback shared by all users, not a per-address limit.
    RATELIMIT_ENABLED = os.environ.get('RATELIMIT_ENABLED', 'true').lower() in ('true', '1', 'yes', 'y')
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_STRATEGY = 'fixed-window'
    CALLBACK_RATE_LIMIT = os.environ.get('CALLBACK_RATE_LIMIT', '600 per minute')
