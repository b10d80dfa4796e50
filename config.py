"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name, default):
    return os.getenv(name, default).lower() == 'true'


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    JSON_SORT_KEYS = False

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'quotations')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'quotations')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'quotations')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Quote policy (defaults; organizations may override them via quote_settings)
    QUOTE_VALID_DAYS = int(os.getenv('QUOTE_VALID_DAYS', '7'))
    QUOTE_PRICE_CHANGE_THRESHOLD = float(os.getenv('QUOTE_PRICE_CHANGE_THRESHOLD', '5'))
    QUOTE_REQUIRES_APPROVAL_ON_INCREASE = _env_bool('QUOTE_REQUIRES_APPROVAL_ON_INCREASE', 'true')
    QUOTE_APPLY_LOWER_PRICE_AUTOMATICALLY = _env_bool('QUOTE_APPLY_LOWER_PRICE_AUTOMATICALLY', 'true')
    QUOTE_ALLOW_EXPIRED = _env_bool('QUOTE_ALLOW_EXPIRED', 'false')

    # Business Information (for payment receipts)
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', 'Mi Negocio')
    BUSINESS_ADDRESS = os.getenv('BUSINESS_ADDRESS', '')
    BUSINESS_PHONE = os.getenv('BUSINESS_PHONE', '')
    BUSINESS_EMAIL = os.getenv('BUSINESS_EMAIL', '')

    # Webpay Plus (Transbank REST API)
    # Integration defaults are Transbank's public test credentials
    WEBPAY_BASE_URL = os.getenv('WEBPAY_BASE_URL', 'https://webpay3gint.transbank.cl')
    WEBPAY_COMMERCE_CODE = os.getenv('WEBPAY_COMMERCE_CODE', '597055555532')
    WEBPAY_API_KEY = os.getenv(
        'WEBPAY_API_KEY',
        '579B532A7440BB0C9079DED94D31EA1615BACEB56610332264630D42D0A36B1C'
    )
    WEBPAY_RETURN_URL = os.getenv('WEBPAY_RETURN_URL', 'http://localhost:5000/payments/webpay/callback')
    WEBPAY_TIMEOUT = int(os.getenv('WEBPAY_TIMEOUT', '10'))

    # Object Storage Configuration (payment proofs)
    # Compatible with AWS S3, DigitalOcean Spaces, MinIO
    S3_ENDPOINT = os.getenv('S3_ENDPOINT', 'http://minio:9000')
    S3_ACCESS_KEY = os.getenv('S3_ACCESS_KEY', 'minioadmin')
    S3_SECRET_KEY = os.getenv('S3_SECRET_KEY', 'minioadmin')
    S3_BUCKET = os.getenv('S3_BUCKET', 'payment-proofs')
    S3_REGION = os.getenv('S3_REGION', 'us-east-1')
    S3_PUBLIC_URL = os.getenv('S3_PUBLIC_URL', 'http://localhost:9000')

    # Upload constraints
    MAX_UPLOAD_SIZE = int(os.getenv('MAX_UPLOAD_SIZE', 5 * 1024 * 1024))  # 5MB
    ALLOWED_EXTENSIONS = {'jpg', 'jpeg', 'png', 'pdf', 'webp'}
    ALLOWED_MIME_TYPES = {
        'image/jpeg',
        'image/png',
        'image/webp',
        'application/pdf'
    }

    # Redis (cache + cart event channel)
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_PRICE_LISTS_TTL = int(os.getenv('CACHE_PRICE_LISTS_TTL', '300'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'quotations')
    CART_EVENTS_ENABLED = os.getenv('CART_EVENTS_ENABLED', 'true').lower() == 'true'


class TestConfig(Config):
    """Configuration used by the test suite (in-memory SQLite, no Redis)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    CACHE_ENABLED = False
    CART_EVENTS_ENABLED = False
