"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _optional_int(name):
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return None
    return int(value)


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')

    # Database (cart snapshots only; the catalog lives elsewhere)
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///storefront.db')
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Catalog documents to preload (JSON list of product payloads)
    CATALOG_PATH = os.getenv('CATALOG_PATH')

    # Promo window (hours of day, local time)
    PROMO_START_HOUR = int(os.getenv('PROMO_START_HOUR', '18'))
    PROMO_END_HOUR = int(os.getenv('PROMO_END_HOUR', '9'))
    PROMO_POLL_INTERVAL = int(os.getenv('PROMO_POLL_INTERVAL', '60'))  # seconds
    PROMO_TEST_HOUR = _optional_int('PROMO_TEST_HOUR')  # Fixed hour override for testing

    # Cart
    PRICE_TOLERANCE = os.getenv('PRICE_TOLERANCE', '0.01')
    CART_PERSISTENCE_ENABLED = os.getenv('CART_PERSISTENCE_ENABLED', 'true').lower() == 'true'
    CART_CLOCK_AUTOSTART = os.getenv('CART_CLOCK_AUTOSTART', 'true').lower() == 'true'
    CART_SESSION_LIMIT = int(os.getenv('CART_SESSION_LIMIT', '1000'))  # live carts kept in memory
    CART_SESSION_IDLE_SECONDS = int(os.getenv('CART_SESSION_IDLE_SECONDS', '1800'))

    # Delivery policy
    DELIVERY_STANDARD_CHARGE = os.getenv('DELIVERY_STANDARD_CHARGE', '30')
    DELIVERY_ALWAYS_FREE = os.getenv('DELIVERY_ALWAYS_FREE', 'true').lower() == 'true'
    DELIVERY_FREE_THRESHOLD = os.getenv('DELIVERY_FREE_THRESHOLD')  # e.g. 500

    # Display
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '₹')


class TestConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    DATABASE_URL = 'sqlite://'
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = False
    CATALOG_PATH = None
    CART_CLOCK_AUTOSTART = False
    PROMO_TEST_HOUR = 12
    DELIVERY_ALWAYS_FREE = True
    DELIVERY_FREE_THRESHOLD = None
