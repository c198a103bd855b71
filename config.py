"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')

    # Database - Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'backoffice')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'backoffice')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'backoffice')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Override credentials for verified units and protected transitions.
    # Shared secret pairs, checked fresh on every protected call.
    OVERRIDE_USERNAME = os.getenv('OVERRIDE_USERNAME', '')
    OVERRIDE_PASSWORD = os.getenv('OVERRIDE_PASSWORD', '')
    OVERRIDE_ALT_USERNAME = os.getenv('OVERRIDE_ALT_USERNAME', '')
    OVERRIDE_ALT_PASSWORD = os.getenv('OVERRIDE_ALT_PASSWORD', '')

    # Bulk operations
    UNIT_BULK_CHUNK_SIZE = int(os.getenv('UNIT_BULK_CHUNK_SIZE', '500'))
    BULK_DELETE_CONFIRMATION = os.getenv('BULK_DELETE_CONFIRMATION', 'DELETE')

    # Customer typeahead
    CUSTOMER_SUGGESTION_LIMIT = int(os.getenv('CUSTOMER_SUGGESTION_LIMIT', '8'))

    # Invoice tax defaults (percent)
    INVOICE_CGST_PERCENT = os.getenv('INVOICE_CGST_PERCENT', '9')
    INVOICE_SGST_PERCENT = os.getenv('INVOICE_SGST_PERCENT', '9')
    INVOICE_IGST_PERCENT = os.getenv('INVOICE_IGST_PERCENT', '18')

    # Unit listing
    UNITS_PAGE_SIZES = (20, 50, 100)


class TestingConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    ENV = 'testing'
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False

    OVERRIDE_USERNAME = 'admin'
    OVERRIDE_PASSWORD = 'admin-secret'
    OVERRIDE_ALT_USERNAME = 'manager'
    OVERRIDE_ALT_PASSWORD = 'manager-secret'

    UNIT_BULK_CHUNK_SIZE = 500
